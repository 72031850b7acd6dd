from .apsched_adapter import GLOBAL_JOB_ID, APSchedulerAdapter, list_job_id

__all__ = ["APSchedulerAdapter", "GLOBAL_JOB_ID", "list_job_id"]
