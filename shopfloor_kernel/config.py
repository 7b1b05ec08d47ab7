"""
Configuration Loader (``shopfloor_kernel.config``).

Responsibility
--------------
Loads the deployment YAML file (database URL, log level, per-module policy
sections) into a frozen ``ShopfloorSettings``.  Module sections stay plain
dicts here; each module turns its own section into its config dataclass via
``from_dict`` (``ProductionConfig``, ``DispatchConfig``, ``InventoryConfig``).

Environment variables override the file for the two infrastructure values:
``SHOPFLOOR_DATABASE_URL`` and ``SHOPFLOOR_LOG_LEVEL``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Top level not a mapping, or unknown log level  -> ``ValueError``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from shopfloor_kernel.logging_config import get_logger

logger = get_logger("config")

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def load_yaml_file(path: Path | str) -> dict[str, Any]:
    """Load one YAML file; an empty file is an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


@dataclass(frozen=True)
class ShopfloorSettings:
    database_url: str | None = None
    log_level: str = "INFO"
    production: Mapping[str, Any] = field(default_factory=dict)
    dispatch: Mapping[str, Any] = field(default_factory=dict)
    inventory: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got '{self.log_level}'")

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level.upper())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], environ: Mapping[str, str] | None = None) -> ShopfloorSettings:
        env = os.environ if environ is None else environ
        database = data.get("database") or {}
        settings = cls(
            database_url=env.get("SHOPFLOOR_DATABASE_URL") or database.get("url"),
            log_level=env.get("SHOPFLOOR_LOG_LEVEL") or data.get("log_level", "INFO"),
            production=dict(data.get("production") or {}),
            dispatch=dict(data.get("dispatch") or {}),
            inventory=dict(data.get("inventory") or {}),
        )
        logger.info(
            "settings_loaded",
            extra={
                "has_database_url": settings.database_url is not None,
                "log_level": settings.log_level,
                "sections": sorted(k for k in data.keys() if k not in ("database", "log_level")),
            },
        )
        return settings


def load_settings(path: Path | str, environ: Mapping[str, str] | None = None) -> ShopfloorSettings:
    return ShopfloorSettings.from_dict(load_yaml_file(path), environ=environ)
