"""Configuration loading helpers for idl_crawler."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .models import GlobalConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
GLOBAL_CONFIG_FILENAME = "global_config.yaml"
HOME_ENV_VAR = "IDL_CRAWLER_HOME"


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
    """Resolve cache, data and log directories from the project home."""

    project_root: Path | None = None
    data_dir: Path | None = None
    url_cache_dir: Path | None = None
    idl_cache_dir: Path | None = None
    memo_cache_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get(HOME_ENV_VAR)
        if self.project_root is not None:
            root = Path(self.project_root).expanduser().resolve()
        elif env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = Path(__file__).resolve().parents[2]
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.url_cache_dir = self.data_dir / ".urlcache"
        self.idl_cache_dir = self.data_dir / ".idlcache"
        self.memo_cache_dir = self.data_dir / ".memocache"
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (
            self.data_dir,
            self.url_cache_dir,
            self.idl_cache_dir,
            self.memo_cache_dir,
            self.logs_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)

    def global_config_path(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME

    def memo_cache_path(self, name: str) -> Path:
        return self.memo_cache_dir / name


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._global_cache: GlobalConfig | None = None

    def load_global_config(self) -> GlobalConfig:
        if self._global_cache is not None:
            return self._global_cache
        path = self._existing_config_path()
        if path is not None:
            global_cfg = GlobalConfig.model_validate(_read_file(path))
        else:
            global_cfg = GlobalConfig()
            self.save_global_config(global_cfg)
        self._global_cache = global_cfg
        return global_cfg

    def save_global_config(self, config: GlobalConfig) -> Path:
        path = self.locator.global_config_path()
        _write_file(path, config.model_dump(mode="json"))
        self._global_cache = config
        return path

    def _existing_config_path(self) -> Path | None:
        default = self.locator.global_config_path()
        if default.exists():
            return default
        for suffix in CONFIG_EXTENSIONS:
            candidate = default.with_suffix(suffix)
            if candidate.exists():
                return candidate
        return None


__all__ = ["ConfigLocator", "ConfigRepository", "CONFIG_EXTENSIONS", "HOME_ENV_VAR"]
