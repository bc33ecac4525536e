"""Runtime helpers shared by CLI entrypoints."""
from __future__ import annotations

import dataclasses
from typing import Any

from gmailstats.config import AppConfig, load_settings
from gmailstats.logging import configure_logging


def configure_runtime(
    cache: str | None = None,
    log_level: str | None = None,
    *,
    structured: bool | None = None,
    **overrides: Any,
) -> AppConfig:
    """Load settings, apply non-empty CLI overrides and set up logging."""
    config = load_settings(cache)
    applied = {key: value for key, value in overrides.items() if value is not None}
    if applied:
        config = dataclasses.replace(config, **applied)
    if structured is not None:
        config = dataclasses.replace(config, structured_logging=structured)
    if log_level:
        config = dataclasses.replace(config, log_level=log_level.upper())
    configure_logging(config.log_level, structured=config.structured_logging)
    return config
