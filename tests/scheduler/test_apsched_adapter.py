from __future__ import annotations

from types import SimpleNamespace

import pytest
from apscheduler.jobstores.base import JobLookupError
from apscheduler.triggers.cron import CronTrigger

from listsync.config import AutomaticProcessing, GlobalConfig, TriggerKind
from listsync.errors import InvalidSchedule
from listsync.scheduler import GLOBAL_JOB_ID, APSchedulerAdapter, list_job_id


class StubScheduler:
    def __init__(self) -> None:
        self.jobs: dict[str, SimpleNamespace] = {}
        self.events: list[str] = []

    def add_job(self, func, trigger, id, args=None, replace_existing=False):  # noqa: ANN001, A002
        assert replace_existing is True
        self.jobs[id] = SimpleNamespace(id=id, func=func, trigger=trigger, args=args or [], next_run_time=None)

    def remove_job(self, job_id):  # noqa: ANN001
        if job_id not in self.jobs:
            raise JobLookupError(job_id)
        del self.jobs[job_id]

    def get_job(self, job_id):  # noqa: ANN001
        return self.jobs.get(job_id)

    def get_jobs(self):
        return list(self.jobs.values())

    def start(self):
        self.events.append("started")

    def shutdown(self, wait=False):  # noqa: ARG002
        self.events.append("shutdown")


class InlinePool:
    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn, *args):  # noqa: ANN001
        self.submitted += 1
        fn(*args)


@pytest.fixture
def adapter_parts(temp_config_repository):
    calls: list[object] = []
    stub = StubScheduler()
    pool = InlinePool()
    adapter = APSchedulerAdapter(
        temp_config_repository,
        pool,  # type: ignore[arg-type]
        process_list_callback=calls.append,
        process_batch_callback=calls.append,
        scheduler=stub,  # type: ignore[arg-type]
    )
    return adapter, stub, pool, calls


def test_load_scheduled_lists_only_enabled_with_schedule(adapter_parts, add_list) -> None:
    adapter, stub, _, _ = adapter_parts
    add_list(id=1, schedule="*/5 * * * *")
    add_list(id=2, schedule=None)
    add_list(id=3, schedule="0 3 * * *", enabled=False)

    assert adapter.load_scheduled_lists() == 1
    assert set(stub.jobs) == {list_job_id(1)}
    job = stub.jobs[list_job_id(1)]
    assert isinstance(job.trigger, CronTrigger)
    assert job.args == [1]
    assert adapter.is_scheduled(1)
    assert not adapter.is_scheduled(2)


def test_reload_is_idempotent_and_drops_stale_timers(adapter_parts, add_list, temp_config_repository) -> None:
    adapter, stub, _, _ = adapter_parts
    add_list(id=1, schedule="*/5 * * * *")
    add_list(id=2, schedule="0 * * * *")
    adapter.load_scheduled_lists()
    adapter.load_scheduled_lists()
    assert set(stub.jobs) == {list_job_id(1), list_job_id(2)}

    temp_config_repository.delete_list(2)
    adapter.load_scheduled_lists()
    assert set(stub.jobs) == {list_job_id(1)}


def test_unschedule_is_noop_when_missing(adapter_parts) -> None:
    adapter, stub, _, _ = adapter_parts
    adapter.unschedule_list(404)
    adapter.schedule_list(5, "0 0 * * *", "Europe/Paris")
    adapter.schedule_list(6, "0 0 * * *")
    adapter.unschedule_list(5)
    assert set(stub.jobs) == {list_job_id(6)}
    adapter.unschedule_all()
    assert stub.jobs == {}


def test_schedule_rejects_invalid_cron_and_timezone(adapter_parts) -> None:
    adapter, stub, _, _ = adapter_parts
    with pytest.raises(InvalidSchedule):
        adapter.schedule_list(1, "not a cron")
    with pytest.raises(InvalidSchedule):
        adapter.schedule_global("0 * * * *", "Mars/Olympus")
    assert stub.jobs == {}


def test_reload_installs_and_removes_global_timer(adapter_parts, temp_config_repository) -> None:
    adapter, stub, _, _ = adapter_parts
    temp_config_repository.save_global_config(
        GlobalConfig(
            timezone="America/New_York",
            automatic_processing=AutomaticProcessing(enabled=True, schedule="0 */6 * * *"),
        )
    )
    adapter.reload()
    assert GLOBAL_JOB_ID in stub.jobs
    assert str(stub.jobs[GLOBAL_JOB_ID].trigger.timezone) == "America/New_York"

    temp_config_repository.save_global_config(GlobalConfig())
    adapter.reload()
    assert GLOBAL_JOB_ID not in stub.jobs


def test_reload_skips_bad_list_files_and_keeps_siblings(adapter_parts, add_list, temp_config_repository) -> None:
    adapter, stub, _, _ = adapter_parts
    add_list(id=1, schedule="*/5 * * * *")
    add_list(id=2, schedule="not a cron")
    (temp_config_repository.locator.lists_dir / "9.yaml").write_text(
        "id: 9\nprovider: trakt\nurl: https://trakt.tv/users/a/lists/b\nmax_items: 100\n", encoding="utf-8"
    )
    temp_config_repository.save_global_config(
        GlobalConfig(automatic_processing=AutomaticProcessing(enabled=True, schedule="0 * * * *"))
    )

    adapter.reload()

    assert set(stub.jobs) == {list_job_id(1), GLOBAL_JOB_ID}


def test_fired_jobs_run_on_pool_and_swallow_errors(temp_config_repository) -> None:
    received: list[object] = []

    def explode(list_id: int) -> None:
        received.append(list_id)
        raise RuntimeError("boom")

    stub = StubScheduler()
    pool = InlinePool()
    adapter = APSchedulerAdapter(
        temp_config_repository,
        pool,  # type: ignore[arg-type]
        process_list_callback=explode,
        process_batch_callback=received.append,
        scheduler=stub,  # type: ignore[arg-type]
    )
    adapter.schedule_list(9, "*/10 * * * *")
    adapter.schedule_global("0 1 * * *")

    job = stub.jobs[list_job_id(9)]
    job.func(*job.args)
    stub.jobs[GLOBAL_JOB_ID].func()

    assert received == [9, TriggerKind.SCHEDULED]
    assert pool.submitted == 2


def test_lifecycle_and_job_listing(adapter_parts, add_list) -> None:
    adapter, stub, _, _ = adapter_parts
    add_list(id=1, schedule="*/5 * * * *")
    adapter.start()
    adapter.start()
    jobs = adapter.list_jobs()
    assert [job["id"] for job in jobs] == [list_job_id(1)]
    assert "cron" in jobs[0]["trigger"]
    adapter.shutdown()
    assert stub.events == ["started", "shutdown"]
