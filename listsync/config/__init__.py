"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    AutomaticProcessing,
    DownstreamConfig,
    GlobalConfig,
    MediaListConfig,
    OwnerSettings,
    ProviderConfig,
    ProviderKind,
    TriggerKind,
    build_cron_trigger,
)

__all__ = [
    "AutomaticProcessing",
    "ConfigLocator",
    "ConfigRepository",
    "DownstreamConfig",
    "GlobalConfig",
    "MediaListConfig",
    "OwnerSettings",
    "ProviderConfig",
    "ProviderKind",
    "TriggerKind",
    "build_cron_trigger",
]
