"""Configuration loading helpers backed by YAML files on disk."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import structlog
import yaml
from pydantic import ValidationError

from .models import (
    DownstreamConfig,
    GlobalConfig,
    MediaListConfig,
    OwnerSettings,
    ProviderConfig,
    ProviderKind,
)

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
GLOBAL_CONFIG_FILENAME = "global_config.yaml"
CONFIG_SUFFIX = ".yaml"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    lists_dir: Path | None = None
    owners_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("LISTSYNC_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path(__file__).resolve().parents[2]).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.lists_dir = (self.data_dir / "lists").resolve()
        self.owners_dir = (self.data_dir / "owners").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.lists_dir, self.owners_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def global_config_path(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation.

    Lists and owner settings are owned by an outer management layer; the
    pipeline only reads them through the lookup helpers below.
    """

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._global_cache: GlobalConfig | None = None
        self.logger = structlog.get_logger("listsync").bind(component="config")

    # ------------------------------------------------------------------
    # Global configuration helpers
    # ------------------------------------------------------------------
    def load_global_config(self, refresh: bool = False) -> GlobalConfig:
        if self._global_cache is not None and not refresh:
            return self._global_cache
        path = self.locator.global_config_path()
        if path.exists():
            global_cfg = GlobalConfig.model_validate(_read_file(path))
        else:
            global_cfg = GlobalConfig()
            self.save_global_config(global_cfg)
        self._global_cache = global_cfg
        return global_cfg

    def save_global_config(self, config: GlobalConfig) -> None:
        _write_file(self.locator.global_config_path(), config.model_dump(mode="json"))
        self._global_cache = config

    def database_path(self) -> Path:
        return self.load_global_config().resolved_database_path(self.locator.project_root)

    # ------------------------------------------------------------------
    # Media lists
    # ------------------------------------------------------------------
    def list_path(self, list_id: int) -> Path:
        return self.locator.lists_dir / f"{list_id}{CONFIG_SUFFIX}"

    def _config_files(self, directory: Path) -> Iterable[Path]:
        for path in sorted(directory.glob("*")):
            if path.is_file() and path.suffix in CONFIG_EXTENSIONS:
                yield path

    def list_lists(self, owner_id: int | None = None) -> list[MediaListConfig]:
        """Every valid list file; an unreadable or invalid file is logged and skipped."""

        lists: list[MediaListConfig] = []
        for path in self._config_files(self.locator.lists_dir):
            try:
                lists.append(MediaListConfig.model_validate(_read_file(path)))
            except (ValidationError, ValueError, yaml.YAMLError) as exc:
                self.logger.error("list_config_invalid", path=str(path), error=str(exc))
        if owner_id is not None:
            lists = [item for item in lists if item.owner_id == owner_id]
        return sorted(lists, key=lambda item: item.id)

    def get_list(self, list_id: int, owner_id: int | None = None) -> MediaListConfig | None:
        path = self.list_path(list_id)
        if not path.exists():
            return None
        media_list = MediaListConfig.model_validate(_read_file(path))
        if owner_id is not None and media_list.owner_id != owner_id:
            return None
        return media_list

    def list_owner_ids(self) -> list[int]:
        return sorted({item.owner_id for item in self.list_lists()})

    def save_list(self, config: MediaListConfig) -> Path:
        path = self.list_path(config.id)
        _write_file(path, config.model_dump(mode="json"))
        return path

    def delete_list(self, list_id: int) -> None:
        path = self.list_path(list_id)
        if path.exists():
            path.unlink()

    # ------------------------------------------------------------------
    # Owner settings (downstream service + provider credentials)
    # ------------------------------------------------------------------
    def owner_path(self, owner_id: int) -> Path:
        return self.locator.owners_dir / f"{owner_id}{CONFIG_SUFFIX}"

    def load_owner_settings(self, owner_id: int) -> OwnerSettings:
        path = self.owner_path(owner_id)
        if not path.exists():
            return OwnerSettings()
        return OwnerSettings.model_validate(_read_file(path))

    def save_owner_settings(self, owner_id: int, settings: OwnerSettings) -> Path:
        path = self.owner_path(owner_id)
        _write_file(path, settings.model_dump(mode="json"))
        return path

    def get_downstream_config(self, owner_id: int) -> DownstreamConfig | None:
        return self.load_owner_settings(owner_id).downstream

    def get_provider_config(self, owner_id: int, provider: ProviderKind) -> ProviderConfig | None:
        providers = self.load_owner_settings(owner_id).providers
        return providers.get(provider.credential_kind)


__all__ = ["ConfigLocator", "ConfigRepository", "CONFIG_EXTENSIONS"]
