"""
Payment order configuration schema.

Frozen dataclasses that the loader fills from YAML.  Nothing here reads
files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class WorkflowSettings:
    """Order numbering and approval chain selection."""

    order_number_prefix: str = "OP"
    workflow_group: str = "payment_order"


@dataclass(frozen=True)
class RetrySettings:
    """Backoff for transient store failures."""

    max_attempts: int = 3
    min_wait_seconds: float = 0.1
    max_wait_seconds: float = 2.0


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class PaymentOrderConfig:
    """Complete runtime configuration."""

    database: DatabaseSettings
    workflow: WorkflowSettings = field(default_factory=WorkflowSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: str | None = None
