"""
============================================================================
Paper Sandbox v1.0.0
Observability Module - Prometheus Metrics
============================================================================
"""

from app.observability.metrics import (
    POSITIONS_OPENED,
    POSITIONS_CLOSED,
    ORDERS_REJECTED,
    STRATEGY_TRADES,
    COPY_TRADES,
    AVAILABLE_BALANCE_GAUGE,
    record_position_opened,
    record_position_closed,
    record_order_rejected,
    record_strategy_trade,
    record_copy_trade,
    update_available_balance,
)

__all__ = [
    "POSITIONS_OPENED",
    "POSITIONS_CLOSED",
    "ORDERS_REJECTED",
    "STRATEGY_TRADES",
    "COPY_TRADES",
    "AVAILABLE_BALANCE_GAUGE",
    "record_position_opened",
    "record_position_closed",
    "record_order_rejected",
    "record_strategy_trade",
    "record_copy_trade",
    "update_available_balance",
]
