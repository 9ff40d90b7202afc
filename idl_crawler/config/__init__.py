"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    BrowserCapabilities,
    GlobalConfig,
    HttpConfig,
    PassConfig,
    ReconcileConfig,
)

__all__ = [
    "BrowserCapabilities",
    "ConfigLocator",
    "ConfigRepository",
    "GlobalConfig",
    "HttpConfig",
    "PassConfig",
    "ReconcileConfig",
]
