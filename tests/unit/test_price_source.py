"""
Unit Tests for the Mock Price Source

Reliability Level: L6 Critical
"""

import os
import sys
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.price_source import MockPriceSource
from services.strategy_schema import Platform


class TestMockPriceSource:

    def test_default_crypto_quotes(self) -> None:
        prices = MockPriceSource()

        assert prices.current_price(Platform.CRYPTO, "BTC/USDT") == Decimal("95000")
        assert prices.current_price(Platform.CRYPTO, "eth/usdt") == Decimal("3200")

    def test_unknown_symbol_quotes_100(self) -> None:
        assert MockPriceSource().current_price(Platform.CRYPTO, "PEPE/USDT") == Decimal("100")

    def test_default_outcome_quotes(self) -> None:
        prices = MockPriceSource()

        assert prices.current_price(Platform.POLYMARKET, "m1", "yes") == Decimal("0.52")
        assert prices.current_price(Platform.POLYMARKET, "m1", "NO") == Decimal("0.48")

    def test_set_price(self) -> None:
        prices = MockPriceSource()

        prices.set_price(Platform.CRYPTO, "btc/usdt", Decimal("100000"))
        prices.set_price(Platform.POLYMARKET, "m1", Decimal("0.61"), "yes")

        assert prices.current_price(Platform.CRYPTO, "BTC/USDT") == Decimal("100000")
        assert prices.current_price(Platform.POLYMARKET, "m1", "yes") == Decimal("0.61")
        # other markets keep the default
        assert prices.current_price(Platform.POLYMARKET, "m2", "yes") == Decimal("0.52")

    def test_set_price_accepts_platform_string(self) -> None:
        prices = MockPriceSource()

        prices.set_price("crypto", "SOL/USDT", 150)

        assert prices.current_price("crypto", "SOL/USDT") == Decimal("150")

    @pytest.mark.parametrize("price", [Decimal("0"), Decimal("-1")])
    def test_non_positive_price_rejected(self, price: Decimal) -> None:
        with pytest.raises(ValueError):
            MockPriceSource().set_price(Platform.CRYPTO, "BTC/USDT", price)

    def test_outcome_price_above_one_rejected(self) -> None:
        with pytest.raises(ValueError):
            MockPriceSource().set_price(Platform.POLYMARKET, "m1", Decimal("1.2"), "yes")

    def test_constructor_overrides(self) -> None:
        prices = MockPriceSource({"btc/usdt": Decimal("50000")})

        assert prices.current_price(Platform.CRYPTO, "BTC/USDT") == Decimal("50000")

    def test_reset(self) -> None:
        prices = MockPriceSource()
        prices.set_price(Platform.CRYPTO, "BTC/USDT", Decimal("1"))
        prices.set_price(Platform.POLYMARKET, "m1", Decimal("0.9"), "yes")

        prices.reset()

        assert prices.current_price(Platform.CRYPTO, "BTC/USDT") == Decimal("95000")
        assert prices.current_price(Platform.POLYMARKET, "m1", "yes") == Decimal("0.52")
