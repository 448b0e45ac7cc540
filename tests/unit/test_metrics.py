"""
Unit Tests for Simulation Metrics

Reliability Level: L6 Critical

Tests that the recording helpers move the Prometheus series and never raise.
"""

import os
import sys
from decimal import Decimal

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from prometheus_client import REGISTRY

from app.observability.metrics import (
    record_copy_trade,
    record_order_rejected,
    record_position_closed,
    record_position_opened,
    record_strategy_trade,
    update_available_balance,
)


def _sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


class TestCounters:

    def test_position_counters(self) -> None:
        opened = _sample("sim_positions_opened_total", platform="crypto", source="manual")
        closed = _sample("sim_positions_closed_total", platform="crypto")

        record_position_opened("crypto", "manual", "corr-1")
        record_position_closed("crypto", "corr-1")

        assert _sample("sim_positions_opened_total", platform="crypto", source="manual") == opened + 1
        assert _sample("sim_positions_closed_total", platform="crypto") == closed + 1

    def test_rejections_by_kind(self) -> None:
        before = _sample("sim_orders_rejected_total", error_kind="NotFound")

        record_order_rejected("NotFound")

        assert _sample("sim_orders_rejected_total", error_kind="NotFound") == before + 1

    def test_strategy_and_copy_trades(self) -> None:
        buys = _sample("sim_strategy_trades_total", action="buy")
        skipped = _sample("sim_copy_trades_total", status="skipped")

        record_strategy_trade("buy")
        record_copy_trade("skipped")

        assert _sample("sim_strategy_trades_total", action="buy") == buys + 1
        assert _sample("sim_copy_trades_total", status="skipped") == skipped + 1


class TestBalanceGauge:

    def test_sets_value(self) -> None:
        update_available_balance(Decimal("9950.00"))

        assert _sample("sim_available_balance_usd") == 9950.0

    def test_float_rejected(self) -> None:
        update_available_balance(Decimal("1234.00"))

        update_available_balance(99.5)

        assert _sample("sim_available_balance_usd") == 1234.0
