"""Application configuration utilities for gmailstats."""
from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict


DEFAULT_CONFIG_LOCATIONS = (
    Path("gmailstats.ini"),
    Path("config/gmailstats.ini"),
)

DEFAULT_CACHE_TARGET = "data/gmail_cache.db"


@dataclass
class AppConfig:
    cache_target: str
    token_target: str
    log_level: str = "INFO"
    structured_logging: bool = False
    page_size: int = 500
    max_workers: int = 8
    idle_interval: float = 0.1
    num_retries: int = 0
    top: int = 30
    config_source: Path | None = None


_FETCH_OPTIONS: Dict[str, Callable[[str], Any]] = {
    "page_size": int,
    "max_workers": int,
    "idle_interval": float,
    "num_retries": int,
}


def _load_config_file(config_path: Path | None) -> Dict[str, Any]:
    if config_path is None:
        for candidate in DEFAULT_CONFIG_LOCATIONS:
            if candidate.exists():
                config_path = candidate
                break
    if config_path is None or not config_path.exists():
        return {}

    parser = configparser.ConfigParser()
    parser.read(config_path)
    data: Dict[str, Any] = {"__path__": config_path}
    if parser.has_section("cache"):
        data["cache_target"] = parser.get("cache", "target", fallback=None)
    if parser.has_section("auth"):
        data["token_target"] = parser.get("auth", "token_store", fallback=None)
    if parser.has_section("logging"):
        data["log_level"] = parser.get("logging", "level", fallback=None)
        structured = parser.get("logging", "structured", fallback=None)
        if structured is not None:
            data["structured_logging"] = parser.getboolean("logging", "structured", fallback=False)
    if parser.has_section("fetch"):
        for option, cast in _FETCH_OPTIONS.items():
            raw = parser.get("fetch", option, fallback=None)
            if raw is not None:
                data[option] = cast(raw)
    if parser.has_section("report"):
        top = parser.get("report", "top", fallback=None)
        if top is not None:
            data["top"] = int(top)
    return data


def _normalize_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return None


def _env_number(name: str, cast: Callable[[str], Any]) -> Any:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def load_settings(cache: str | None = None) -> AppConfig:
    """Resolve application configuration from config files, env vars, and overrides."""
    config_file_env = os.getenv("GMAILSTATS_CONFIG_FILE")
    config_data = _load_config_file(Path(config_file_env)) if config_file_env else _load_config_file(None)

    cache_target = (
        cache
        or os.getenv("GMAILSTATS_CACHE")
        or config_data.get("cache_target")
        or DEFAULT_CACHE_TARGET
    )
    token_target = (
        os.getenv("GMAILSTATS_TOKEN_STORE")
        or config_data.get("token_target")
        or cache_target
    )
    log_level = (
        os.getenv("GMAILSTATS_LOG_LEVEL")
        or config_data.get("log_level")
        or "INFO"
    )
    structured_logging_env = _normalize_bool(os.getenv("GMAILSTATS_STRUCTURED_LOGGING"))
    if structured_logging_env is None:
        structured_logging = bool(config_data.get("structured_logging", False))
    else:
        structured_logging = structured_logging_env

    numbers: Dict[str, Any] = {}
    for option, cast in {**_FETCH_OPTIONS, "top": int}.items():
        value = _env_number(f"GMAILSTATS_{option.upper()}", cast)
        if value is None:
            value = config_data.get(option)
        if value is not None:
            numbers[option] = value

    return AppConfig(
        cache_target=str(cache_target),
        token_target=str(token_target),
        log_level=log_level.upper(),
        structured_logging=structured_logging,
        config_source=config_data.get("__path__") if config_data else None,
        **numbers,
    )
