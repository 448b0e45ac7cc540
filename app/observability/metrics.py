"""
============================================================================
Paper Sandbox v1.0.0
Prometheus Metrics - Simulation Observability
============================================================================

Reliability Level: L6 Critical
Input Constraints: All currency values must be Decimal
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- sim_positions_opened_total: Positions opened, by platform and source
- sim_positions_closed_total: Positions closed, by platform
- sim_orders_rejected_total: Failed opens/closes, by error kind
- sim_strategy_trades_total: Strategy trades, by action
- sim_copy_trades_total: Copy trades, by status
- sim_available_balance_usd: Current available paper balance

Recording a metric never raises; failures are logged with an OBS code.

ZERO-FLOAT MANDATE
------------------
All financial values are converted from Decimal to float ONLY at the
Prometheus boundary. Internal calculations remain Decimal.

============================================================================
"""

import logging
from decimal import Decimal
from typing import Optional

from prometheus_client import Counter, Gauge

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

POSITIONS_OPENED = Counter(
    "sim_positions_opened_total",
    "Total number of simulated positions opened",
    ["platform", "source"]
)

POSITIONS_CLOSED = Counter(
    "sim_positions_closed_total",
    "Total number of simulated positions closed",
    ["platform"]
)

ORDERS_REJECTED = Counter(
    "sim_orders_rejected_total",
    "Total number of simulated orders rejected",
    ["error_kind"]
)

STRATEGY_TRADES = Counter(
    "sim_strategy_trades_total",
    "Total number of trades executed on behalf of strategies",
    ["action"]
)

COPY_TRADES = Counter(
    "sim_copy_trades_total",
    "Total number of copy trades processed",
    ["status"]
)

AVAILABLE_BALANCE_GAUGE = Gauge(
    "sim_available_balance_usd",
    "Current available paper balance in USD"
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_position_opened(
    platform: str,
    source: str,
    correlation_id: Optional[str] = None
) -> None:
    """Increment the opened-positions counter."""
    try:
        POSITIONS_OPENED.labels(platform=platform, source=source).inc()
        logger.debug(
            "Metric: position_opened | platform=%s | source=%s | correlation_id=%s",
            platform, source, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record position_opened metric | error=%s",
            str(e)
        )


def record_position_closed(
    platform: str,
    correlation_id: Optional[str] = None
) -> None:
    """Increment the closed-positions counter."""
    try:
        POSITIONS_CLOSED.labels(platform=platform).inc()
        logger.debug(
            "Metric: position_closed | platform=%s | correlation_id=%s",
            platform, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-002] Failed to record position_closed metric | error=%s",
            str(e)
        )


def record_order_rejected(
    error_kind: str,
    correlation_id: Optional[str] = None
) -> None:
    """Increment the rejected-orders counter."""
    try:
        ORDERS_REJECTED.labels(error_kind=error_kind).inc()
        logger.debug(
            "Metric: order_rejected | error_kind=%s | correlation_id=%s",
            error_kind, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-003] Failed to record order_rejected metric | error=%s",
            str(e)
        )


def record_strategy_trade(
    action: str,
    correlation_id: Optional[str] = None
) -> None:
    try:
        STRATEGY_TRADES.labels(action=action).inc()
        logger.debug(
            "Metric: strategy_trade | action=%s | correlation_id=%s",
            action, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-004] Failed to record strategy_trade metric | error=%s",
            str(e)
        )


def record_copy_trade(
    status: str,
    correlation_id: Optional[str] = None
) -> None:
    try:
        COPY_TRADES.labels(status=status).inc()
        logger.debug(
            "Metric: copy_trade | status=%s | correlation_id=%s",
            status, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-005] Failed to record copy_trade metric | error=%s",
            str(e)
        )


def update_available_balance(
    available: Decimal,
    correlation_id: Optional[str] = None
) -> None:
    """
    Update the available-balance gauge.

    ZERO-FLOAT MANDATE: Decimal converted to float at Prometheus boundary.
    """
    try:
        if not isinstance(available, Decimal):
            logger.error(
                "[OBS-000] available must be Decimal, got %s",
                type(available).__name__
            )
            return

        AVAILABLE_BALANCE_GAUGE.set(float(available))
        logger.debug(
            "Metric: available_balance updated | value=%s | correlation_id=%s",
            str(available), correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-006] Failed to update available_balance metric | error=%s",
            str(e)
        )
