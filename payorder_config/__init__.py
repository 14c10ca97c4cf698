"""
payorder_config -- single public entrypoint for payment order configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration -- sits above ``payorder_kernel``.  The kernel MUST NEVER
    import from ``payorder_config``; ``payorder_config.bridges`` turns a
    loaded config into kernel objects.

Resolution order:
    1. ``path`` argument, if given.
    2. ``PAYORDER_CONFIG`` environment variable.
    3. The packaged ``defaults.yaml``.
    ``DATABASE_URL``, when set, overrides ``database.url`` in every case.

Failure modes:
    - ``FileNotFoundError`` -- the selected file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.

Audit relevance:
    Every successful call logs ``config_loaded`` with the source path,
    database dialect and workflow group.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from payorder_config.loader import load_config_file
from payorder_config.schema import (
    DatabaseSettings,
    LoggingSettings,
    PaymentOrderConfig,
    RetrySettings,
    WorkflowSettings,
)

_logger = logging.getLogger("payorder_kernel.config")

CONFIG_ENV_VAR = "PAYORDER_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> PaymentOrderConfig:
    """The ONLY public configuration entrypoint."""
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    path = Path(path)

    config = load_config_file(path, database_url=os.environ.get(DATABASE_URL_ENV_VAR))

    _logger.info(
        "config_loaded",
        extra={
            "config_source": str(path),
            "database_dialect": config.database.url.split(":", 1)[0],
            "workflow_group": config.workflow.workflow_group,
        },
    )
    return config


__all__ = [
    "get_active_config",
    "PaymentOrderConfig",
    "DatabaseSettings",
    "WorkflowSettings",
    "RetrySettings",
    "LoggingSettings",
    "CONFIG_ENV_VAR",
    "DATABASE_URL_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
]
