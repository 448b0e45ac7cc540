"""
Unit Tests for Copy Trading Sizing and Records

Reliability Level: L6 Critical
Decimal Integrity: All sizes compared as exact Decimals

Tests:
- Fixed, proportional and percentage sizing
- max_position_size cap and min_trade_size skip
- Disabled configs and platform mismatches are skipped
- Request validation
"""

import os
import sys
from decimal import Decimal

import pytest
from pydantic import ValidationError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.copy_trading import (
    CopyConfig,
    CopyConfigRequest,
    CopyStats,
    SizingMode,
    SourceTrade,
    compute_copy_size,
    decide_copy,
)


def _config(**overrides) -> CopyConfig:
    request = {"platform": "polymarket", "target_wallet": "0xabc"}
    request.update(overrides)
    config = CopyConfig.from_request("copy_1", CopyConfigRequest(**request))
    config.enabled = True
    return config


POLY_TRADE = SourceTrade(
    platform="polymarket", market_id="m1", outcome="yes", size=Decimal("1000"), price=Decimal("0.5"),
)
CRYPTO_TRADE = SourceTrade(platform="crypto", symbol="BTC/USDT", size=Decimal("2000"), price=Decimal("95000"))


# =============================================================================
# Requests
# =============================================================================

class TestRequests:

    def test_defaults(self) -> None:
        request = CopyConfigRequest(platform="polymarket", target_wallet="0xabc")

        assert request.sizing_mode == SizingMode.FIXED
        assert request.fixed_size == Decimal("100")
        assert request.proportion_multiplier == Decimal("0.1")
        assert request.portfolio_percentage == Decimal("5")
        assert request.min_trade_size == Decimal("10")
        assert request.max_position_size is None

    def test_blank_wallet_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CopyConfigRequest(platform="crypto", target_wallet="   ")

    def test_percentage_over_hundred_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CopyConfigRequest(platform="crypto", target_wallet="0xabc", portfolio_percentage=150)

    def test_config_starts_disabled(self) -> None:
        config = CopyConfig.from_request(
            "copy_1", CopyConfigRequest(platform="crypto", target_wallet="0xabc"),
        )

        assert config.enabled is False
        assert config.to_dict()["enabled"] is False

    def test_source_trade_requires_market_fields(self) -> None:
        with pytest.raises(ValidationError):
            SourceTrade(platform="polymarket", market_id="m1", size=1, price="0.5")

    def test_source_trade_requires_symbol(self) -> None:
        with pytest.raises(ValidationError):
            SourceTrade(platform="crypto", size=1, price=1)

    def test_notional(self) -> None:
        assert POLY_TRADE.notional == Decimal("500.0")
        assert CRYPTO_TRADE.notional == Decimal("2000")


# =============================================================================
# Sizing
# =============================================================================

class TestSizing:

    def test_fixed(self) -> None:
        assert compute_copy_size(_config(fixed_size=75), POLY_TRADE, Decimal("10000")) == Decimal("75.00")

    def test_proportional_uses_notional(self) -> None:
        config = _config(sizing_mode="proportional", proportion_multiplier="0.2")

        assert compute_copy_size(config, POLY_TRADE, Decimal("10000")) == Decimal("100.00")

    def test_proportional_crypto(self) -> None:
        config = _config(platform="crypto", sizing_mode="proportional")

        assert compute_copy_size(config, CRYPTO_TRADE, Decimal("10000")) == Decimal("200.00")

    def test_percentage_of_available(self) -> None:
        config = _config(sizing_mode="percentage", portfolio_percentage="2.5")

        assert compute_copy_size(config, POLY_TRADE, Decimal("8000")) == Decimal("200.00")

    def test_max_position_cap(self) -> None:
        config = _config(fixed_size=500, max_position_size=250)

        assert compute_copy_size(config, POLY_TRADE, Decimal("10000")) == Decimal("250.00")


# =============================================================================
# Decisions
# =============================================================================

class TestDecideCopy:

    def test_executes(self) -> None:
        size, reason = decide_copy(_config(), POLY_TRADE, Decimal("10000"))

        assert size == Decimal("100.00")
        assert reason is None

    def test_below_minimum_skipped(self) -> None:
        config = _config(fixed_size=5)

        size, reason = decide_copy(config, POLY_TRADE, Decimal("10000"))

        assert size == Decimal("5.00")
        assert reason == "Below minimum size: $5.00 < $10"

    def test_disabled_skipped(self) -> None:
        config = _config()
        config.enabled = False

        size, reason = decide_copy(config, POLY_TRADE, Decimal("10000"))

        assert size == Decimal("0.00")
        assert reason == "Copy config is disabled"

    def test_platform_mismatch_skipped(self) -> None:
        _, reason = decide_copy(_config(), CRYPTO_TRADE, Decimal("10000"))

        assert reason.startswith("Platform mismatch")


class TestCopyStats:

    def test_record_close(self) -> None:
        stats = CopyStats()

        stats.record_close(Decimal("10.00"))
        stats.record_close(Decimal("-4.00"))

        assert stats.closed_trades == 2
        assert stats.winning_trades == 1
        assert stats.total_pnl == Decimal("6.00")
        assert stats.win_rate == Decimal("50.00")
