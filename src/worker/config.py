"""Configuration loader for the caching worker."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

DEFAULT_STATIC_FILES = (
    "/",
    "/index.html",
    "/style.css",
    "/script.js",
    "/manifest.json",
    "/icon-192x192.png",
    "/icon-512x512.png",
)

DEFAULT_DYNAMIC_FILES = (
    "https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700;800;900&display=swap",
    "https://fonts.googleapis.com/css2?family=JetBrains+Mono:wght@400;500;600&display=swap",
)

DEFAULT_STATIC_EXTENSIONS = (".css", ".js", ".png", ".jpg", ".jpeg", ".svg", ".ico", ".woff", ".woff2")


@dataclass(frozen=True)
class LookupConfig:
    base_url: str
    token: str
    timeout_sec: float


@dataclass(frozen=True)
class WorkerConfig:
    version: str
    cache_prefix: str
    origin: str
    static_files: Tuple[str, ...]
    dynamic_files: Tuple[str, ...]
    network_only: Tuple[str, ...]
    api_hosts: Tuple[str, ...]
    api_path_segments: Tuple[str, ...]
    static_extensions: Tuple[str, ...]
    font_hosts: Tuple[str, ...]
    offline_page: str
    fetch_timeout_sec: float
    ip_data_max_age_sec: int
    reconcile_interval_sec: int
    install_best_effort: bool
    skip_waiting_on_install: bool
    cache_db_path: Path
    history_db_path: Path
    history_max_entries: int
    lookup: LookupConfig

    @property
    def static_cache_name(self) -> str:
        return f"{self.cache_prefix}static-v{self.version}"

    @property
    def dynamic_cache_name(self) -> str:
        return f"{self.cache_prefix}dynamic-v{self.version}"

    @property
    def versioned_name(self) -> str:
        return f"{self.cache_prefix}v{self.version}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkerConfig":
        lookup_data = data.get("lookup", {})
        return cls(
            version=str(data.get("version", "1.0.0")),
            cache_prefix=data.get("cache_prefix", "ipwatch-"),
            origin=data.get("origin", "http://localhost:8000"),
            static_files=tuple(data.get("static_files", DEFAULT_STATIC_FILES)),
            dynamic_files=tuple(data.get("dynamic_files", DEFAULT_DYNAMIC_FILES)),
            network_only=tuple(data.get("network_only", ("https://ipinfo.io",))),
            api_hosts=tuple(data.get("api_hosts", ("ipinfo.io",))),
            api_path_segments=tuple(data.get("api_path_segments", ("api",))),
            static_extensions=tuple(data.get("static_extensions", DEFAULT_STATIC_EXTENSIONS)),
            font_hosts=tuple(data.get("font_hosts", ("fonts.googleapis.com", "fonts.gstatic.com"))),
            offline_page=data.get("offline_page", "/offline.html"),
            fetch_timeout_sec=float(data.get("fetch_timeout_sec", 10.0)),
            ip_data_max_age_sec=int(data.get("ip_data_max_age_sec", 300)),
            reconcile_interval_sec=int(data.get("reconcile_interval_sec", 300)),
            install_best_effort=bool(data.get("install_best_effort", False)),
            skip_waiting_on_install=bool(data.get("skip_waiting_on_install", True)),
            cache_db_path=Path(data.get("cache_db_path", "~/.ipwatch/cache/partitions.db")).expanduser(),
            history_db_path=Path(data.get("history_db_path", "~/.ipwatch/history.db")).expanduser(),
            history_max_entries=int(data.get("history_max_entries", 50)),
            lookup=LookupConfig(
                base_url=lookup_data.get("base_url", "https://ipinfo.io"),
                token=lookup_data.get("token", ""),
                timeout_sec=float(lookup_data.get("timeout_sec", 10.0)),
            ),
        )


ENV_MAP = {
    "version": "WORKER_VERSION",
    "cache_prefix": "CACHE_PREFIX",
    "origin": "APP_ORIGIN",
    "fetch_timeout_sec": "FETCH_TIMEOUT_SEC",
    "cache_db_path": "CACHE_DB_PATH",
    "history_db_path": "HISTORY_DB_PATH",
    "reconcile_interval_sec": "RECONCILE_INTERVAL_SEC",
    "install_best_effort": "INSTALL_BEST_EFFORT",
    "lookup.base_url": "IPINFO_BASE_URL",
    "lookup.token": "IPINFO_TOKEN",
    "lookup.timeout_sec": "IPINFO_TIMEOUT_SEC",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for dotted_key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        target = merged
        parts = dotted_key.split(".")
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        last = parts[-1]
        if last == "reconcile_interval_sec":
            value = int(value)
        elif last in {"fetch_timeout_sec", "timeout_sec"}:
            value = float(value)
        elif last == "install_best_effort":
            value = value.strip().lower() in {"1", "true", "yes", "on"}
        target[last] = value

    return merged


def load_config(config_path: str | Path = "config/worker.defaults.yml") -> WorkerConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = load_yaml(path)
    data = merge_env_overrides(data)
    return WorkerConfig.from_dict(data)
