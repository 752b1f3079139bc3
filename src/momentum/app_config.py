from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_API_URL = "https://agreeable-chameleon-83.convex.site"


@dataclass
class RuntimeEnv:
    db_path_override: str | None
    api_key: str | None
    api_url: str


@dataclass
class AppConfig:
    db_path: str
    default_max_tokens: int
    injection_max_tokens: int
    cleanup_keep_recent: int
    lock_timeout_seconds: float
    search_max_results: int
    log_level: str
    log_consumers: list | None
    cloud_sync_enabled: bool
    cloud_batch_size: int


def default_db_path() -> str:
    if os.name == "nt":
        base = Path(os.environ.get("APPDATA") or Path.home() / "AppData" / "Roaming")
    else:
        base = Path(os.environ.get("XDG_DATA_HOME") or Path.home() / ".local" / "share")
    return str(base / "momentum" / "momentum.db")


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        db_path=str(config.get("DbPath") or default_db_path()),
        default_max_tokens=int(config.get("DefaultMaxTokens", 15_000)),
        injection_max_tokens=int(config.get("InjectionMaxTokens", 5_000)),
        cleanup_keep_recent=int(config.get("CleanupKeepRecent", 5)),
        lock_timeout_seconds=float(config.get("LockTimeoutSeconds", 5.0)),
        search_max_results=int(config.get("SearchMaxResults", 5)),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
        cloud_sync_enabled=_to_bool(config.get("CloudSyncEnabled", False), default=False),
        cloud_batch_size=int(config.get("CloudBatchSize", 100)),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        db_path_override=os.environ.get("MOMENTUM_DB_PATH", "").strip() or None,
        api_key=os.environ.get("SUBSTRATIA_API_KEY", "").strip() or None,
        api_url=(os.environ.get("SUBSTRATIA_API_URL", "").strip() or DEFAULT_API_URL).rstrip("/"),
    )


def effective_db_path(app: AppConfig, env: RuntimeEnv) -> str:
    return env.db_path_override or app.db_path
