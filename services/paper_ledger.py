"""
============================================================================
Paper Sandbox v1.0.0
Paper Ledger - Simulated Balance and Position Bookkeeping
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: All financial calculations use decimal.Decimal with ROUND_HALF_EVEN
Traceability: All operations include correlation_id for audit

PAPER LEDGER:
    One simulated account holding two kinds of position:
    - Crypto: leveraged long/short on a symbol; margin = amount / leverage
    - Polymarket: binary outcome shares; shares = amount / outcome price

ACCOUNTING INVARIANTS:
    - available >= 0
    - in_positions == sum of committed capital of open positions
    - available + in_positions == starting_balance + realized_pnl

The ledger is not thread-safe on its own; SimulationEngine serializes
every call under its lock.

ERROR CODES:
    - SIM-001: Insufficient balance
    - SIM-002: Missing field (market_id, outcome)
    - SIM-003: Invalid value (amount, leverage, side, outcome)
    - SIM-004: Position not found

============================================================================
"""

from decimal import Decimal, ROUND_HALF_EVEN
from typing import Optional, Dict, Any, List, Union, Literal
from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime, timezone
import logging
import uuid

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from services.price_source import PriceSource
from services.sim_errors import SimErrorKind, SimulationError, serialize_value
from services.strategy_schema import DEFAULT_CRYPTO_SYMBOL, Platform

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

PRECISION_USD = Decimal("0.01")          # 2 decimal places for USD
PRECISION_PRICE = Decimal("0.00000001")  # 8 decimal places for prices
PRECISION_SHARES = Decimal("0.000001")   # 6 decimal places for shares
PRECISION_PERCENT = Decimal("0.01")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


# =============================================================================
# Enums
# =============================================================================

class OrderSide(str, Enum):
    """Crypto order side."""
    BUY = "buy"
    SELL = "sell"


class Direction(str, Enum):
    """Crypto position direction."""
    LONG = "long"
    SHORT = "short"


class Outcome(str, Enum):
    """Prediction-market outcome."""
    YES = "yes"
    NO = "no"


class PositionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class PositionSource(str, Enum):
    """Who opened the position."""
    MANUAL = "manual"
    STRATEGY = "strategy"
    COPY = "copy"


def _usd(value: Decimal) -> Decimal:
    return value.quantize(PRECISION_USD, rounding=ROUND_HALF_EVEN)


def _price(value: Decimal) -> Decimal:
    return value.quantize(PRECISION_PRICE, rounding=ROUND_HALF_EVEN)


def _float_to_decimal(v: Any) -> Any:
    if isinstance(v, float):
        return Decimal(str(v))
    return v


# =============================================================================
# Order Requests (tagged by platform)
# =============================================================================

class _OrderBase(BaseModel):
    amount: Decimal
    price: Optional[Decimal] = Field(default=None, description="Fill price override")
    source: PositionSource = PositionSource.MANUAL
    strategy_id: Optional[str] = None
    copy_config_id: Optional[str] = None

    @field_validator('amount', 'price', mode='before')
    @classmethod
    def coerce_decimal(cls, v: Any) -> Any:
        return _float_to_decimal(v)

    @field_validator('price')
    @classmethod
    def validate_price(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and v <= ZERO:
            raise ValueError("price must be greater than 0")
        return v


class CryptoOrder(_OrderBase):
    """Open a leveraged position on a symbol. side buy = long, sell = short."""
    platform: Literal["crypto"] = "crypto"
    symbol: str = DEFAULT_CRYPTO_SYMBOL
    side: OrderSide = OrderSide.BUY
    leverage: Decimal = Decimal("1")

    @model_validator(mode='before')
    @classmethod
    def side_from_direction(cls, data: Any) -> Any:
        if isinstance(data, dict) and "side" not in data and data.get("direction"):
            direction = str(data["direction"]).lower()
            side = {"long": "buy", "short": "sell"}.get(direction, direction)
            data = dict(data, side=side)
        return data

    @field_validator('leverage', mode='before')
    @classmethod
    def coerce_leverage(cls, v: Any) -> Any:
        return _float_to_decimal(v)

    @property
    def direction(self) -> Direction:
        return Direction.LONG if self.side == OrderSide.BUY else Direction.SHORT


class PolymarketOrder(_OrderBase):
    """Buy outcome shares on a prediction market."""
    platform: Literal["polymarket"] = "polymarket"
    market_id: str
    outcome: Outcome


OrderRequest = Union[CryptoOrder, PolymarketOrder]


class CloseRequest(BaseModel):
    """
    Close by position_id, by crypto (symbol, direction) or by polymarket
    (market_id, outcome). The most recent matching open position wins.
    """
    position_id: Optional[str] = None
    platform: Optional[Platform] = None
    symbol: Optional[str] = None
    direction: Optional[Direction] = None
    market_id: Optional[str] = None
    outcome: Optional[Outcome] = None
    price: Optional[Decimal] = None

    @field_validator('price', mode='before')
    @classmethod
    def coerce_price(cls, v: Any) -> Any:
        return _float_to_decimal(v)


def validation_error_to_sim(error: ValidationError) -> SimulationError:
    """Map the first pydantic error onto MissingField or InvalidValue."""
    first = error.errors()[0]
    field_name = ".".join(str(loc) for loc in first.get("loc", ())) or "request"
    if first.get("type") == "missing":
        return SimulationError(SimErrorKind.MISSING_FIELD, f"{field_name} is required")
    message = first.get("msg", "invalid value")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
        if message.endswith(" is required"):
            return SimulationError(SimErrorKind.MISSING_FIELD, message)
        return SimulationError(SimErrorKind.INVALID_VALUE, message)
    return SimulationError(SimErrorKind.INVALID_VALUE, f"{field_name}: {message}")


def parse_order(data: Union[OrderRequest, Dict[str, Any]]) -> OrderRequest:
    """
    Build a tagged order request from a plain mapping.

    Raises:
        SimulationError: MissingField / InvalidValue
    """
    if isinstance(data, (CryptoOrder, PolymarketOrder)):
        return data

    raw = {k: v for k, v in dict(data).items() if v is not None}
    platform = raw.get("platform", Platform.CRYPTO.value)
    if isinstance(platform, Platform):
        platform = platform.value

    try:
        raw["platform"] = platform
        if platform == Platform.CRYPTO.value:
            return CryptoOrder(**raw)
        if platform == Platform.POLYMARKET.value:
            if not str(raw.get("market_id") or "").strip():
                raise SimulationError(SimErrorKind.MISSING_FIELD, "market_id is required")
            if not raw.get("outcome"):
                raise SimulationError(SimErrorKind.MISSING_FIELD, "outcome is required")
            if str(raw["outcome"]).lower() not in (Outcome.YES.value, Outcome.NO.value):
                raise SimulationError(
                    SimErrorKind.INVALID_VALUE,
                    f"outcome must be 'yes' or 'no', got {raw['outcome']!r}",
                )
            raw["outcome"] = str(raw["outcome"]).lower()
            return PolymarketOrder(**raw)
    except ValidationError as e:
        raise validation_error_to_sim(e)

    raise SimulationError(
        SimErrorKind.INVALID_VALUE,
        f"platform must be 'crypto' or 'polymarket', got {platform!r}",
    )


def parse_close_request(data: Union[CloseRequest, Dict[str, Any]]) -> CloseRequest:
    if isinstance(data, CloseRequest):
        return data
    try:
        return CloseRequest(**{k: v for k, v in dict(data).items() if v is not None})
    except ValidationError as e:
        raise validation_error_to_sim(e)


# =============================================================================
# Positions
# =============================================================================

@dataclass
class CryptoPosition:
    """
    Leveraged crypto position.

    pnl = (current - entry) / entry * amount * direction
    pnl_percent = pnl / margin * 100
    """
    id: str
    symbol: str
    side: OrderSide
    direction: Direction
    amount: Decimal
    leverage: Decimal
    margin: Decimal
    entry_price: Decimal
    current_price: Decimal
    opened_at: datetime
    correlation_id: str
    source: PositionSource = PositionSource.MANUAL
    strategy_id: Optional[str] = None
    copy_config_id: Optional[str] = None
    status: PositionStatus = PositionStatus.OPEN
    exit_price: Optional[Decimal] = None
    realized_pnl: Optional[Decimal] = None
    closed_at: Optional[datetime] = None
    platform: Platform = field(default=Platform.CRYPTO, init=False)

    @property
    def committed(self) -> Decimal:
        """Capital locked by this position."""
        return self.margin

    @property
    def identifier(self) -> str:
        return self.symbol

    @property
    def pnl(self) -> Decimal:
        sign = Decimal("1") if self.direction == Direction.LONG else Decimal("-1")
        raw = (self.current_price - self.entry_price) / self.entry_price * self.amount * sign
        return _usd(raw)

    @property
    def pnl_percent(self) -> Decimal:
        if self.margin == ZERO:
            return ZERO
        return (self.pnl / self.margin * HUNDRED).quantize(
            PRECISION_PERCENT, rounding=ROUND_HALF_EVEN
        )

    def to_dict(self) -> Dict[str, Any]:
        return serialize_value({
            "id": self.id,
            "platform": self.platform,
            "symbol": self.symbol,
            "side": self.side,
            "direction": self.direction,
            "amount": self.amount,
            "leverage": self.leverage,
            "margin": self.margin,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "pnl": self.pnl,
            "pnl_percent": self.pnl_percent,
            "status": self.status,
            "source": self.source,
            "strategy_id": self.strategy_id,
            "copy_config_id": self.copy_config_id,
            "opened_at": self.opened_at,
            "exit_price": self.exit_price,
            "realized_pnl": self.realized_pnl,
            "closed_at": self.closed_at,
        })


@dataclass
class PolymarketPosition:
    """
    Binary-outcome position.

    pnl = (current - entry) * shares
    pnl_percent = (current - entry) / entry * 100
    """
    id: str
    market_id: str
    outcome: Outcome
    amount: Decimal
    shares: Decimal
    entry_price: Decimal
    current_price: Decimal
    opened_at: datetime
    correlation_id: str
    source: PositionSource = PositionSource.MANUAL
    strategy_id: Optional[str] = None
    copy_config_id: Optional[str] = None
    status: PositionStatus = PositionStatus.OPEN
    exit_price: Optional[Decimal] = None
    realized_pnl: Optional[Decimal] = None
    closed_at: Optional[datetime] = None
    platform: Platform = field(default=Platform.POLYMARKET, init=False)

    @property
    def committed(self) -> Decimal:
        return self.amount

    @property
    def identifier(self) -> str:
        return self.market_id

    @property
    def pnl(self) -> Decimal:
        return _usd((self.current_price - self.entry_price) * self.shares)

    @property
    def pnl_percent(self) -> Decimal:
        return ((self.current_price - self.entry_price) / self.entry_price * HUNDRED).quantize(
            PRECISION_PERCENT, rounding=ROUND_HALF_EVEN
        )

    def to_dict(self) -> Dict[str, Any]:
        return serialize_value({
            "id": self.id,
            "platform": self.platform,
            "market_id": self.market_id,
            "outcome": self.outcome,
            "amount": self.amount,
            "shares": self.shares,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "pnl": self.pnl,
            "pnl_percent": self.pnl_percent,
            "status": self.status,
            "source": self.source,
            "strategy_id": self.strategy_id,
            "copy_config_id": self.copy_config_id,
            "opened_at": self.opened_at,
            "exit_price": self.exit_price,
            "realized_pnl": self.realized_pnl,
            "closed_at": self.closed_at,
        })


Position = Union[CryptoPosition, PolymarketPosition]


@dataclass
class Balance:
    """Account snapshot. total = available + in_positions + unrealized pnl."""
    total: Decimal
    available: Decimal
    in_positions: Decimal
    pnl: Decimal
    pnl_percent: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": str(self.total),
            "available": str(self.available),
            "in_positions": str(self.in_positions),
            "pnl": str(self.pnl),
            "pnl_percent": str(self.pnl_percent),
        }


# =============================================================================
# Paper Ledger
# =============================================================================

class PaperLedger:
    """
    In-memory simulated account.

    ============================================================================
    LEDGER RESPONSIBILITIES:
    ============================================================================
    1. Debit committed capital on open, credit it plus P&L on close
    2. Mark open positions against the PriceSource
    3. Keep a closed-trade log
    4. Report accounting invariant violations
    ============================================================================
    """

    def __init__(
        self,
        price_source: PriceSource,
        starting_balance: Decimal = Decimal("10000.00"),
        default_leverage: Decimal = Decimal("1"),
    ) -> None:
        self._prices = price_source
        self._starting_balance = _usd(starting_balance)
        self._default_leverage = default_leverage
        self._reset_state()

        logger.info(
            f"[LEDGER] PaperLedger initialized | "
            f"balance=${self._available:,.2f}"
        )

    def _reset_state(self) -> None:
        self._available = self._starting_balance
        self._in_positions = ZERO.quantize(PRECISION_USD)
        self._realized_pnl = ZERO.quantize(PRECISION_USD)
        self._positions: Dict[str, Position] = {}
        self._closed: List[Position] = []
        self._counters: Dict[Platform, int] = {Platform.CRYPTO: 0, Platform.POLYMARKET: 0}

    @property
    def starting_balance(self) -> Decimal:
        return self._starting_balance

    @property
    def available(self) -> Decimal:
        return self._available

    def _next_id(self, platform: Platform) -> str:
        self._counters[platform] += 1
        prefix = "crypto" if platform == Platform.CRYPTO else "poly"
        return f"{prefix}_{self._counters[platform]}"

    # -------------------------------------------------------------------------
    # Open
    # -------------------------------------------------------------------------

    def open_position(
        self,
        request: Union[OrderRequest, Dict[str, Any]],
        correlation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Open a position and debit its committed capital.

        Raises:
            SimulationError: InsufficientBalance, MissingField, InvalidValue
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        order = parse_order(request)

        if order.amount <= ZERO:
            raise SimulationError(SimErrorKind.INVALID_VALUE, "amount must be greater than 0")

        if isinstance(order, CryptoOrder):
            return self._open_crypto(order, correlation_id)
        return self._open_polymarket(order, correlation_id)

    def _open_crypto(self, order: CryptoOrder, correlation_id: str) -> Dict[str, Any]:
        leverage = order.leverage if "leverage" in order.model_fields_set else self._default_leverage
        if leverage < Decimal("1"):
            raise SimulationError(SimErrorKind.INVALID_VALUE, "leverage must be at least 1")

        amount = _usd(order.amount)
        margin = _usd(amount / leverage)
        if margin <= ZERO:
            raise SimulationError(SimErrorKind.INVALID_VALUE, "amount must be greater than 0")
        if margin > self._available:
            raise SimulationError(
                SimErrorKind.INSUFFICIENT_BALANCE,
                f"Insufficient balance: margin {margin} exceeds available {self._available}",
            )

        symbol = order.symbol.upper()
        price = _price(order.price or self._prices.current_price(Platform.CRYPTO, symbol))
        now = datetime.now(timezone.utc)

        position = CryptoPosition(
            id=self._next_id(Platform.CRYPTO),
            symbol=symbol,
            side=order.side,
            direction=order.direction,
            amount=amount,
            leverage=leverage,
            margin=margin,
            entry_price=price,
            current_price=price,
            opened_at=now,
            correlation_id=correlation_id,
            source=order.source,
            strategy_id=order.strategy_id,
            copy_config_id=order.copy_config_id,
        )
        self._commit(position)

        logger.info(
            f"[SIM-OPEN] Position OPENED | "
            f"order_id={position.id} | "
            f"symbol={symbol} | "
            f"direction={position.direction.value} | "
            f"amount=${amount} | leverage={leverage}x | margin=${margin} | "
            f"price={price} | "
            f"correlation_id={correlation_id}"
        )

        return {
            "order_id": position.id,
            "platform": Platform.CRYPTO,
            "symbol": symbol,
            "side": order.side,
            "direction": position.direction,
            "amount": amount,
            "leverage": leverage,
            "margin": margin,
            "price": price,
            "timestamp": now,
        }

    def _open_polymarket(self, order: PolymarketOrder, correlation_id: str) -> Dict[str, Any]:
        amount = _usd(order.amount)
        if amount <= ZERO:
            raise SimulationError(SimErrorKind.INVALID_VALUE, "amount must be greater than 0")
        if amount > self._available:
            raise SimulationError(
                SimErrorKind.INSUFFICIENT_BALANCE,
                f"Insufficient balance: amount {amount} exceeds available {self._available}",
            )

        price = _price(
            order.price
            or self._prices.current_price(Platform.POLYMARKET, order.market_id, order.outcome.value)
        )
        shares = (amount / price).quantize(PRECISION_SHARES, rounding=ROUND_HALF_EVEN)
        now = datetime.now(timezone.utc)

        position = PolymarketPosition(
            id=self._next_id(Platform.POLYMARKET),
            market_id=order.market_id,
            outcome=order.outcome,
            amount=amount,
            shares=shares,
            entry_price=price,
            current_price=price,
            opened_at=now,
            correlation_id=correlation_id,
            source=order.source,
            strategy_id=order.strategy_id,
            copy_config_id=order.copy_config_id,
        )
        self._commit(position)

        logger.info(
            f"[SIM-OPEN] Position OPENED | "
            f"order_id={position.id} | "
            f"market_id={order.market_id} | "
            f"outcome={order.outcome.value} | "
            f"amount=${amount} | shares={shares} | price={price} | "
            f"correlation_id={correlation_id}"
        )

        return {
            "order_id": position.id,
            "platform": Platform.POLYMARKET,
            "market_id": order.market_id,
            "outcome": order.outcome,
            "shares": shares,
            "amount": amount,
            "price": price,
            "timestamp": now,
        }

    def _commit(self, position: Position) -> None:
        self._available -= position.committed
        self._in_positions += position.committed
        self._positions[position.id] = position

    # -------------------------------------------------------------------------
    # Close
    # -------------------------------------------------------------------------

    def find_position(self, request: CloseRequest) -> Optional[Position]:
        """Resolve a close request to an open position (most recent match)."""
        if request.position_id:
            return self._positions.get(request.position_id)

        candidates: List[Position] = []
        if request.market_id:
            for position in self._positions.values():
                if not isinstance(position, PolymarketPosition):
                    continue
                if position.market_id != request.market_id:
                    continue
                if request.outcome is not None and position.outcome != request.outcome:
                    continue
                candidates.append(position)
        elif request.symbol:
            symbol = request.symbol.upper()
            for position in self._positions.values():
                if not isinstance(position, CryptoPosition):
                    continue
                if position.symbol != symbol:
                    continue
                if request.direction is not None and position.direction != request.direction:
                    continue
                candidates.append(position)

        # dicts keep insertion order, so the last candidate is the newest
        return candidates[-1] if candidates else None

    def close_position(
        self,
        request: Union[CloseRequest, Dict[str, Any]],
        correlation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Close a position and credit committed capital plus realized P&L.

        Proceeds are floored at zero so a loss beyond the committed capital
        never drives available negative.

        Raises:
            SimulationError: NotFound
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        close = parse_close_request(request)

        position = self.find_position(close)
        if position is None:
            raise SimulationError(SimErrorKind.NOT_FOUND, "Position not found")

        if close.price is not None:
            position.current_price = _price(close.price)
        else:
            self._mark(position)

        pnl = position.pnl
        pnl_percent = position.pnl_percent
        proceeds = max(ZERO, position.committed + pnl)
        proceeds = _usd(proceeds)
        realized = proceeds - position.committed

        self._available += proceeds
        self._in_positions -= position.committed
        self._realized_pnl += realized

        now = datetime.now(timezone.utc)
        position.status = PositionStatus.CLOSED
        position.exit_price = position.current_price
        position.realized_pnl = realized
        position.closed_at = now
        del self._positions[position.id]
        self._closed.append(position)

        logger.info(
            f"[SIM-CLOSE] Position CLOSED | "
            f"order_id={position.id} | "
            f"platform={position.platform.value} | "
            f"exit_price={position.exit_price} | "
            f"pnl=${pnl} | proceeds=${proceeds} | "
            f"correlation_id={correlation_id}"
        )

        result: Dict[str, Any] = {
            "order_id": position.id,
            "platform": position.platform,
            "price": position.exit_price,
            "entry_price": position.entry_price,
            "amount": position.amount,
            "pnl": pnl,
            "pnl_percent": pnl_percent,
            "proceeds": proceeds,
            "source": position.source,
            "strategy_id": position.strategy_id,
            "copy_config_id": position.copy_config_id,
            "timestamp": now,
        }
        if isinstance(position, CryptoPosition):
            result.update(symbol=position.symbol, direction=position.direction)
        else:
            result.update(
                market_id=position.market_id,
                outcome=position.outcome,
                shares=position.shares,
            )
        return result

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _mark(self, position: Position) -> None:
        if isinstance(position, CryptoPosition):
            quote = self._prices.current_price(Platform.CRYPTO, position.symbol)
        else:
            quote = self._prices.current_price(
                Platform.POLYMARKET, position.market_id, position.outcome.value
            )
        position.current_price = _price(quote)

    def get_positions(self, platform: Optional[Platform] = None) -> List[Position]:
        """Open positions, marked to the current price."""
        positions = []
        for position in self._positions.values():
            if platform is not None and position.platform != Platform(platform):
                continue
            self._mark(position)
            positions.append(position)
        return positions

    def get_position(self, position_id: str) -> Optional[Position]:
        return self._positions.get(position_id)

    def get_closed_trades(self, platform: Optional[Platform] = None) -> List[Position]:
        if platform is None:
            return list(self._closed)
        return [p for p in self._closed if p.platform == Platform(platform)]

    def get_balance(self) -> Balance:
        pnl = sum((p.pnl for p in self.get_positions()), ZERO)
        pnl = _usd(pnl)
        total = _usd(self._available + self._in_positions + pnl)
        pnl_percent = ZERO
        if self._starting_balance > ZERO:
            pnl_percent = (pnl / self._starting_balance * HUNDRED).quantize(
                PRECISION_PERCENT, rounding=ROUND_HALF_EVEN
            )
        return Balance(
            total=total,
            available=self._available,
            in_positions=self._in_positions,
            pnl=pnl,
            pnl_percent=pnl_percent,
        )

    def open_position_count(self) -> int:
        return len(self._positions)

    def verify_invariants(self) -> List[str]:
        """Return violated accounting invariants (empty when healthy)."""
        violations: List[str] = []

        if self._available < ZERO:
            violations.append(f"available is negative: {self._available}")

        committed = sum((p.committed for p in self._positions.values()), ZERO)
        if committed != self._in_positions:
            violations.append(
                f"in_positions {self._in_positions} != committed capital {committed}"
            )

        expected = self._starting_balance + self._realized_pnl
        if self._available + self._in_positions != expected:
            violations.append(
                f"available + in_positions {self._available + self._in_positions} "
                f"!= starting balance + realized pnl {expected}"
            )

        return violations

    def reset(self) -> None:
        """Restore the starting balance and drop all positions and history."""
        self._reset_state()
        logger.info(
            f"[LEDGER] Ledger reset | balance=${self._available:,.2f}"
        )
