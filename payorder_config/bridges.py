"""
Config -> Kernel bridges.

Functions that turn a PaymentOrderConfig into configured kernel objects.
They live here because the kernel must NEVER import payorder_config.

Usage:
    from payorder_config import get_active_config
    from payorder_config.bridges import build_payment_order_service

    service = build_payment_order_service(get_active_config())
"""

from __future__ import annotations

from payorder_config.schema import PaymentOrderConfig
from payorder_kernel.db.engine import get_session_factory, init_engine_from_url
from payorder_kernel.domain.clock import Clock
from payorder_kernel.logging_config import configure_logging
from payorder_kernel.services.payment_order_service import PaymentOrderService


def init_database(config: PaymentOrderConfig) -> None:
    db = config.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )


def build_payment_order_service(
    config: PaymentOrderConfig,
    clock: Clock | None = None,
    init_engine: bool = True,
) -> PaymentOrderService:
    """
    Configure logging and the engine, then build the facade.

    Args:
        config: Loaded configuration.
        clock: Optional clock override (tests).
        init_engine: Set False when the engine is already initialized.
    """
    configure_logging(level=config.logging.level)
    if init_engine:
        init_database(config)

    return PaymentOrderService(
        get_session_factory(),
        clock=clock,
        order_number_prefix=config.workflow.order_number_prefix,
        workflow_group=config.workflow.workflow_group,
        max_attempts=config.retry.max_attempts,
        min_wait=config.retry.min_wait_seconds,
        max_wait=config.retry.max_wait_seconds,
    )
