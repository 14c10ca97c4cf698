"""
Configuration Loader (``payorder_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``payorder_config.schema`` dataclasses.  Runtime callers go through
``payorder_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Every parsed object is a frozen dataclass from ``schema.py``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``database.url``  -> ``KeyError``.
* Wrong value types or ranges  -> ``ValueError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from payorder_config.schema import (
    DatabaseSettings,
    LoggingSettings,
    PaymentOrderConfig,
    RetrySettings,
    WorkflowSettings,
)

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML must be a mapping, got {type(data).__name__}")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' must be a mapping, got {type(value).__name__}")
    return value


def _positive_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{section}.{key} must be a positive integer, got {value!r}")
    return value


def _non_negative_float(section: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValueError(f"{section}.{key} must be a non-negative number, got {value!r}")
    return float(value)


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    url = data["url"]
    if not isinstance(url, str) or not url.strip():
        raise ValueError("database.url must be a non-empty string")
    return DatabaseSettings(
        url=url,
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int("database", "pool_size", data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=_positive_int("database", "pool_timeout", data.get("pool_timeout", 30)),
        pool_recycle=_positive_int("database", "pool_recycle", data.get("pool_recycle", 1800)),
    )


def parse_workflow(data: dict[str, Any]) -> WorkflowSettings:
    prefix = str(data.get("order_number_prefix", "OP")).strip()
    group = str(data.get("workflow_group", "payment_order")).strip()
    if not prefix:
        raise ValueError("workflow.order_number_prefix must not be empty")
    if not group:
        raise ValueError("workflow.workflow_group must not be empty")
    return WorkflowSettings(order_number_prefix=prefix, workflow_group=group)


def parse_retry(data: dict[str, Any]) -> RetrySettings:
    settings = RetrySettings(
        max_attempts=_positive_int("retry", "max_attempts", data.get("max_attempts", 3)),
        min_wait_seconds=_non_negative_float(
            "retry", "min_wait_seconds", data.get("min_wait_seconds", 0.1)
        ),
        max_wait_seconds=_non_negative_float(
            "retry", "max_wait_seconds", data.get("max_wait_seconds", 2.0)
        ),
    )
    if settings.max_wait_seconds < settings.min_wait_seconds:
        raise ValueError("retry.max_wait_seconds must be >= retry.min_wait_seconds")
    return settings


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {level!r}")
    return LoggingSettings(level=level)


def parse_config(
    data: dict[str, Any],
    source: str | None = None,
    database_url: str | None = None,
) -> PaymentOrderConfig:
    """
    Build a PaymentOrderConfig from a parsed YAML mapping.

    Args:
        data: Top-level mapping.
        source: Where the mapping came from, kept for traceability.
        database_url: Overrides ``database.url`` when given.
    """
    database = dict(_section(data, "database"))
    if database_url:
        database["url"] = database_url
    return PaymentOrderConfig(
        database=parse_database(database),
        workflow=parse_workflow(_section(data, "workflow")),
        retry=parse_retry(_section(data, "retry")),
        logging=parse_logging(_section(data, "logging")),
        source=source,
    )


def load_config_file(path: Path, database_url: str | None = None) -> PaymentOrderConfig:
    return parse_config(load_yaml_file(path), source=str(path), database_url=database_url)
