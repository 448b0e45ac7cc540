"""
Unit Tests for the Paper Ledger

Reliability Level: L6 Critical
Decimal Integrity: All assertions compare exact Decimal values

Tests:
- Crypto open debits margin = amount / leverage
- Polymarket open debits the amount and buys amount / price shares
- Close credits committed capital plus realized P&L
- Close resolution by id, (symbol, direction) and (market_id, outcome)
- Validation failures map to MissingField / InvalidValue
- Accounting invariants hold through open/close/reset
"""

import os
import sys
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.paper_ledger import (
    CryptoOrder,
    CryptoPosition,
    Direction,
    OrderSide,
    Outcome,
    PaperLedger,
    PolymarketPosition,
    PositionSource,
    PositionStatus,
    parse_order,
)
from services.price_source import MockPriceSource
from services.sim_errors import SimErrorKind, SimulationError
from services.strategy_schema import Platform


@pytest.fixture
def prices() -> MockPriceSource:
    return MockPriceSource()


@pytest.fixture
def ledger(prices: MockPriceSource) -> PaperLedger:
    return PaperLedger(price_source=prices)


# =============================================================================
# Order Parsing
# =============================================================================

class TestParseOrder:

    def test_defaults_to_crypto_btc_long(self) -> None:
        order = parse_order({"amount": 100})

        assert isinstance(order, CryptoOrder)
        assert order.symbol == "BTC/USDT"
        assert order.side == OrderSide.BUY
        assert order.direction == Direction.LONG

    def test_direction_maps_to_side(self) -> None:
        order = parse_order({"platform": "crypto", "amount": 100, "direction": "short"})

        assert order.side == OrderSide.SELL

    def test_missing_amount(self) -> None:
        with pytest.raises(SimulationError) as exc_info:
            parse_order({"platform": "crypto"})

        assert exc_info.value.kind == SimErrorKind.MISSING_FIELD
        assert exc_info.value.message == "amount is required"

    def test_polymarket_requires_market_id(self) -> None:
        with pytest.raises(SimulationError) as exc_info:
            parse_order({"platform": "polymarket", "amount": 10, "outcome": "yes"})

        assert exc_info.value.kind == SimErrorKind.MISSING_FIELD
        assert exc_info.value.message == "market_id is required"

    def test_polymarket_requires_outcome(self) -> None:
        with pytest.raises(SimulationError) as exc_info:
            parse_order({"platform": "polymarket", "amount": 10, "market_id": "m1"})

        assert exc_info.value.message == "outcome is required"

    def test_invalid_outcome(self) -> None:
        with pytest.raises(SimulationError) as exc_info:
            parse_order({
                "platform": "polymarket", "amount": 10, "market_id": "m1", "outcome": "maybe",
            })

        assert exc_info.value.kind == SimErrorKind.INVALID_VALUE

    def test_invalid_side(self) -> None:
        with pytest.raises(SimulationError) as exc_info:
            parse_order({"amount": 10, "side": "sideways"})

        assert exc_info.value.kind == SimErrorKind.INVALID_VALUE
        assert "side" in exc_info.value.message

    def test_unknown_platform(self) -> None:
        with pytest.raises(SimulationError) as exc_info:
            parse_order({"platform": "forex", "amount": 10})

        assert exc_info.value.kind == SimErrorKind.INVALID_VALUE

    def test_platform_enum_accepted(self) -> None:
        order = parse_order({
            "platform": Platform.POLYMARKET, "amount": 10, "market_id": "m1", "outcome": "YES",
        })

        assert order.outcome == Outcome.YES


# =============================================================================
# Crypto
# =============================================================================

class TestCryptoPositions:

    def test_open_debits_margin(self, ledger: PaperLedger) -> None:
        result = ledger.open_position({
            "platform": "crypto", "symbol": "BTC/USDT", "side": "buy",
            "amount": 500, "leverage": 10,
        })

        assert result["order_id"] == "crypto_1"
        assert result["margin"] == Decimal("50.00")
        assert result["price"] == Decimal("95000")
        assert ledger.available == Decimal("9950.00")

        balance = ledger.get_balance()
        assert balance.in_positions == Decimal("50.00")
        assert balance.total == Decimal("10000.00")

    def test_default_leverage_applies(self, prices: MockPriceSource) -> None:
        ledger = PaperLedger(price_source=prices, default_leverage=Decimal("2"))

        result = ledger.open_position({"amount": 100})

        assert result["leverage"] == Decimal("2")
        assert result["margin"] == Decimal("50.00")

    def test_long_pnl(self, ledger: PaperLedger, prices: MockPriceSource) -> None:
        ledger.open_position({"symbol": "BTC/USDT", "amount": 1000, "leverage": 10})
        prices.set_price(Platform.CRYPTO, "BTC/USDT", Decimal("104500"))

        position = ledger.get_positions()[0]

        # +10% move on 1000 notional
        assert position.pnl == Decimal("100.00")
        assert position.pnl_percent == Decimal("100.00")

    def test_short_pnl(self, ledger: PaperLedger, prices: MockPriceSource) -> None:
        ledger.open_position({"symbol": "ETH/USDT", "side": "sell", "amount": 320})
        prices.set_price(Platform.CRYPTO, "ETH/USDT", Decimal("3040"))

        position = ledger.get_positions()[0]

        assert position.direction == Direction.SHORT
        assert position.pnl == Decimal("16.00")

    def test_close_by_symbol_and_direction(self, ledger: PaperLedger) -> None:
        ledger.open_position({"symbol": "BTC/USDT", "amount": 500, "leverage": 10})

        result = ledger.close_position({"symbol": "btc/usdt", "direction": "long"})

        assert result["order_id"] == "crypto_1"
        assert result["pnl"] == Decimal("0.00")
        assert ledger.available == Decimal("10000.00")
        assert ledger.get_positions() == []

        closed = ledger.get_closed_trades()
        assert len(closed) == 1
        assert closed[0].status == PositionStatus.CLOSED
        assert closed[0].realized_pnl == Decimal("0.00")

    def test_close_picks_most_recent(self, ledger: PaperLedger) -> None:
        ledger.open_position({"symbol": "BTC/USDT", "amount": 100})
        ledger.open_position({"symbol": "BTC/USDT", "amount": 200})

        result = ledger.close_position({"symbol": "BTC/USDT", "direction": "long"})

        assert result["order_id"] == "crypto_2"

    def test_close_with_explicit_price(self, ledger: PaperLedger) -> None:
        ledger.open_position({"symbol": "BTC/USDT", "amount": 950, "price": 95000})

        result = ledger.close_position({"position_id": "crypto_1", "price": 96900})

        assert result["pnl"] == Decimal("19.00")
        assert ledger.available == Decimal("10019.00")

    def test_loss_beyond_margin_floors_at_zero(self, ledger: PaperLedger) -> None:
        ledger.open_position({"symbol": "BTC/USDT", "amount": 1000, "leverage": 10})

        # -20% on 10x wipes out more than the 100 margin
        result = ledger.close_position({"position_id": "crypto_1", "price": 76000})

        assert result["proceeds"] == Decimal("0.00")
        assert ledger.available == Decimal("9900.00")
        assert ledger.verify_invariants() == []

    def test_insufficient_balance(self, ledger: PaperLedger) -> None:
        with pytest.raises(SimulationError) as exc_info:
            ledger.open_position({"amount": 20000})

        assert exc_info.value.kind == SimErrorKind.INSUFFICIENT_BALANCE
        assert exc_info.value.message.startswith("Insufficient balance")
        assert ledger.available == Decimal("10000.00")

    @pytest.mark.parametrize("amount", [0, -10])
    def test_non_positive_amount(self, ledger: PaperLedger, amount: int) -> None:
        with pytest.raises(SimulationError) as exc_info:
            ledger.open_position({"amount": amount})

        assert exc_info.value.kind == SimErrorKind.INVALID_VALUE
        assert exc_info.value.message == "amount must be greater than 0"

    def test_leverage_below_one(self, ledger: PaperLedger) -> None:
        with pytest.raises(SimulationError) as exc_info:
            ledger.open_position({"amount": 100, "leverage": "0.5"})

        assert exc_info.value.kind == SimErrorKind.INVALID_VALUE


# =============================================================================
# Polymarket
# =============================================================================

class TestPolymarketPositions:

    def test_open_buys_shares(self, ledger: PaperLedger) -> None:
        result = ledger.open_position({
            "platform": "polymarket", "market_id": "m1", "outcome": "yes", "amount": 52,
        })

        assert result["order_id"] == "poly_1"
        assert result["price"] == Decimal("0.52")
        assert result["shares"] == Decimal("100")
        assert ledger.available == Decimal("9948.00")

    def test_pnl(self, ledger: PaperLedger, prices: MockPriceSource) -> None:
        ledger.open_position({
            "platform": "polymarket", "market_id": "m1", "outcome": "yes", "amount": 52,
        })
        prices.set_price(Platform.POLYMARKET, "m1", Decimal("0.65"), "yes")

        position = ledger.get_positions(Platform.POLYMARKET)[0]

        assert isinstance(position, PolymarketPosition)
        assert position.pnl == Decimal("13.00")
        assert position.pnl_percent == Decimal("25.00")

    def test_close_by_market_and_outcome(self, ledger: PaperLedger, prices: MockPriceSource) -> None:
        ledger.open_position({
            "platform": "polymarket", "market_id": "m1", "outcome": "no", "amount": 48,
        })
        prices.set_price(Platform.POLYMARKET, "m1", Decimal("0.36"), "no")

        result = ledger.close_position({"market_id": "m1", "outcome": "no"})

        assert result["pnl"] == Decimal("-12.00")
        assert result["shares"] == Decimal("100")
        assert ledger.available == Decimal("9988.00")

    def test_outcome_mismatch_not_found(self, ledger: PaperLedger) -> None:
        ledger.open_position({
            "platform": "polymarket", "market_id": "m1", "outcome": "yes", "amount": 10,
        })

        with pytest.raises(SimulationError) as exc_info:
            ledger.close_position({"market_id": "m1", "outcome": "no"})

        assert exc_info.value.kind == SimErrorKind.NOT_FOUND
        assert exc_info.value.message == "Position not found"

    def test_amount_above_available(self, ledger: PaperLedger) -> None:
        with pytest.raises(SimulationError) as exc_info:
            ledger.open_position({
                "platform": "polymarket", "market_id": "m1", "outcome": "yes",
                "amount": "10000.01",
            })

        assert exc_info.value.kind == SimErrorKind.INSUFFICIENT_BALANCE


# =============================================================================
# Queries & Invariants
# =============================================================================

class TestQueriesAndInvariants:

    def test_platform_filter(self, ledger: PaperLedger) -> None:
        ledger.open_position({"amount": 100})
        ledger.open_position({
            "platform": "polymarket", "market_id": "m1", "outcome": "yes", "amount": 10,
        })

        assert len(ledger.get_positions()) == 2
        assert [p.id for p in ledger.get_positions(Platform.CRYPTO)] == ["crypto_1"]
        assert [p.id for p in ledger.get_positions("polymarket")] == ["poly_1"]

    def test_source_tags_are_kept(self, ledger: PaperLedger) -> None:
        ledger.open_position({
            "amount": 100, "source": "strategy", "strategy_id": "strategy_1",
        })

        position = ledger.get_position("crypto_1")

        assert isinstance(position, CryptoPosition)
        assert position.source == PositionSource.STRATEGY
        assert position.strategy_id == "strategy_1"

    def test_position_to_dict(self, ledger: PaperLedger) -> None:
        ledger.open_position({"amount": 100})

        data = ledger.get_positions()[0].to_dict()

        assert data["platform"] == "crypto"
        assert data["direction"] == "long"
        assert data["amount"] == "100.00"
        assert data["status"] == "open"

    def test_invariants_hold_after_activity(self, ledger: PaperLedger, prices: MockPriceSource) -> None:
        ledger.open_position({"amount": 1000, "leverage": 5})
        ledger.open_position({
            "platform": "polymarket", "market_id": "m1", "outcome": "yes", "amount": 100,
        })
        prices.set_price(Platform.CRYPTO, "BTC/USDT", Decimal("99000"))
        ledger.close_position({"position_id": "crypto_1"})

        assert ledger.verify_invariants() == []

    def test_reset(self, ledger: PaperLedger) -> None:
        ledger.open_position({"amount": 100})

        ledger.reset()

        balance = ledger.get_balance()
        assert balance.available == Decimal("10000.00")
        assert balance.in_positions == Decimal("0")
        assert ledger.get_positions() == []
        assert ledger.get_closed_trades() == []
        # counters restart
        assert ledger.open_position({"amount": 1})["order_id"] == "crypto_1"
