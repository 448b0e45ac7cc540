"""
============================================================================
Paper Sandbox v1.0.0
Price Source - Deterministic Mock Feed and Collaborator Interfaces
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Prices quantized to 8 places with ROUND_HALF_EVEN
Side Effects: None

The simulation never reaches a live feed. Prices come from a PriceSource;
MockPriceSource is a deterministic in-memory implementation whose prices
can be moved by tests and by the HTTP layer.

Crypto prices are keyed by symbol ("BTC/USDT"). Prediction-market prices
are keyed by (market_id, outcome) and live in [0, 1].

============================================================================
"""

from decimal import Decimal, ROUND_HALF_EVEN
from typing import Optional, Dict, Any, List, Tuple, Protocol
import logging
import threading

from services.strategy_schema import Platform

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

PRECISION_PRICE = Decimal("0.00000001")

DEFAULT_CRYPTO_PRICES: Dict[str, Decimal] = {
    "BTC/USDT": Decimal("95000"),
    "ETH/USDT": Decimal("3200"),
    "SOL/USDT": Decimal("180"),
    "BNB/USDT": Decimal("680"),
    "XRP/USDT": Decimal("2.4"),
    "DOGE/USDT": Decimal("0.32"),
}
DEFAULT_UNKNOWN_CRYPTO_PRICE = Decimal("100")

DEFAULT_OUTCOME_PRICES: Dict[str, Decimal] = {
    "yes": Decimal("0.52"),
    "no": Decimal("0.48"),
}
DEFAULT_UNKNOWN_OUTCOME_PRICE = Decimal("0.50")


# =============================================================================
# Collaborator Interfaces
# =============================================================================

class PriceSource(Protocol):
    """Anything that can quote a current price."""

    def current_price(
        self,
        platform: Platform,
        identifier: str,
        outcome: Optional[str] = None,
    ) -> Decimal:
        ...


class PredictionMarketService(Protocol):
    """Market metadata lookups consumed at the boundary (not simulated here)."""

    def get_markets(self, limit: int = 20) -> List[Dict[str, Any]]:
        ...

    def search_markets(self, query: str, limit: int = 20) -> List[Dict[str, Any]]:
        ...

    def get_market(self, market_id: str) -> Optional[Dict[str, Any]]:
        ...

    def get_user_trades(self, wallet: str, limit: int = 50) -> List[Dict[str, Any]]:
        ...


# =============================================================================
# Mock Implementation
# =============================================================================

class MockPriceSource:
    """
    Deterministic in-memory price feed.

    Unset crypto symbols quote 100; unset market outcomes quote 0.52 (yes)
    or 0.48 (no).
    """

    def __init__(
        self,
        crypto_prices: Optional[Dict[str, Decimal]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._crypto: Dict[str, Decimal] = dict(DEFAULT_CRYPTO_PRICES)
        if crypto_prices:
            for symbol, price in crypto_prices.items():
                self._crypto[symbol.upper()] = _quantize(price)
        self._outcomes: Dict[Tuple[str, str], Decimal] = {}

    def current_price(
        self,
        platform: Platform,
        identifier: str,
        outcome: Optional[str] = None,
    ) -> Decimal:
        with self._lock:
            if Platform(platform) == Platform.CRYPTO:
                return self._crypto.get(identifier.upper(), DEFAULT_UNKNOWN_CRYPTO_PRICE)

            key = (identifier, (outcome or "yes").lower())
            if key in self._outcomes:
                return self._outcomes[key]
            return DEFAULT_OUTCOME_PRICES.get(key[1], DEFAULT_UNKNOWN_OUTCOME_PRICE)

    def set_price(
        self,
        platform: Platform,
        identifier: str,
        price: Decimal,
        outcome: Optional[str] = None,
    ) -> None:
        """Move a quote. Outcome prices must lie in (0, 1]."""
        price = _quantize(price)
        if price <= Decimal("0"):
            raise ValueError(f"price must be greater than 0, got {price}")

        with self._lock:
            if Platform(platform) == Platform.CRYPTO:
                self._crypto[identifier.upper()] = price
            else:
                if price > Decimal("1"):
                    raise ValueError(f"outcome price must be <= 1, got {price}")
                self._outcomes[(identifier, (outcome or "yes").lower())] = price

        logger.debug(
            f"[PRICE-SET] platform={Platform(platform).value} | "
            f"identifier={identifier} | outcome={outcome} | price={price}"
        )

    def reset(self) -> None:
        """Restore default quotes."""
        with self._lock:
            self._crypto = dict(DEFAULT_CRYPTO_PRICES)
            self._outcomes = {}


def _quantize(price: Any) -> Decimal:
    if not isinstance(price, Decimal):
        price = Decimal(str(price))
    return price.quantize(PRECISION_PRICE, rounding=ROUND_HALF_EVEN)
