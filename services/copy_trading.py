"""
============================================================================
Paper Sandbox v1.0.0
Copy Trading - Configurations, Records and Position Sizing
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: All sizing uses decimal.Decimal with ROUND_HALF_EVEN
Side Effects: None (the engine opens the mirrored positions)

SIZING MODES:
    - fixed:        fixed_size
    - proportional: source notional * proportion_multiplier
                    (notional = size * price on polymarket, size on crypto)
    - percentage:   available balance * portfolio_percentage / 100

    The result is capped at max_position_size (when set). A size below
    min_trade_size is recorded as a skipped copy trade with the reason.

============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_EVEN
from enum import Enum
from typing import Optional, Dict, Any, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

from services.sim_errors import serialize_value
from services.strategy_schema import Platform

PRECISION_USD = Decimal("0.01")

DEFAULT_FIXED_SIZE = Decimal("100")
DEFAULT_PROPORTION_MULTIPLIER = Decimal("0.1")
DEFAULT_PORTFOLIO_PERCENTAGE = Decimal("5")
DEFAULT_MIN_TRADE_SIZE = Decimal("10")


class SizingMode(str, Enum):
    FIXED = "fixed"
    PROPORTIONAL = "proportional"
    PERCENTAGE = "percentage"


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class CopyTradeStatus(str, Enum):
    EXECUTED = "executed"
    SKIPPED = "skipped"


def _coerce(v: Any) -> Any:
    if isinstance(v, float):
        return Decimal(str(v))
    return v


# =============================================================================
# Requests
# =============================================================================

class CopyConfigRequest(BaseModel):
    """Validated input for create_copy_config."""
    platform: Platform
    target_wallet: str = Field(min_length=1)
    target_label: Optional[str] = None
    sizing_mode: SizingMode = SizingMode.FIXED
    fixed_size: Decimal = Field(default=DEFAULT_FIXED_SIZE, gt=0)
    proportion_multiplier: Decimal = Field(default=DEFAULT_PROPORTION_MULTIPLIER, gt=0)
    portfolio_percentage: Decimal = Field(default=DEFAULT_PORTFOLIO_PERCENTAGE, gt=0, le=100)
    max_position_size: Optional[Decimal] = Field(default=None, gt=0)
    min_trade_size: Decimal = Field(default=DEFAULT_MIN_TRADE_SIZE, ge=0)
    stop_loss_percent: Optional[Decimal] = Field(default=None, gt=0)
    take_profit_percent: Optional[Decimal] = Field(default=None, gt=0)

    @field_validator(
        'fixed_size', 'proportion_multiplier', 'portfolio_percentage',
        'max_position_size', 'min_trade_size', 'stop_loss_percent',
        'take_profit_percent', mode='before'
    )
    @classmethod
    def coerce_decimal(cls, v: Any) -> Any:
        return _coerce(v)

    @field_validator('target_wallet')
    @classmethod
    def strip_wallet(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("target_wallet is required")
        return v


class SourceTrade(BaseModel):
    """A trade made by the copied wallet."""
    platform: Platform
    symbol: Optional[str] = None
    market_id: Optional[str] = None
    outcome: Optional[str] = None
    side: TradeSide = TradeSide.BUY
    size: Decimal = Field(gt=0)
    price: Decimal = Field(gt=0)

    @field_validator('size', 'price', mode='before')
    @classmethod
    def coerce_decimal(cls, v: Any) -> Any:
        return _coerce(v)

    @field_validator('outcome')
    @classmethod
    def normalize_outcome(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if v not in ("yes", "no"):
            raise ValueError(f"outcome must be 'yes' or 'no', got {v!r}")
        return v

    @model_validator(mode='after')
    def require_instrument(self) -> "SourceTrade":
        if self.platform == Platform.POLYMARKET:
            if not self.market_id:
                raise ValueError("market_id is required")
            if not self.outcome:
                raise ValueError("outcome is required")
        elif not self.symbol:
            raise ValueError("symbol is required")
        return self

    @property
    def notional(self) -> Decimal:
        """Dollar size of the source trade."""
        if self.platform == Platform.POLYMARKET:
            return self.size * self.price
        return self.size


# =============================================================================
# Records
# =============================================================================

@dataclass
class CopyStats:
    total_copied: int = 0
    total_skipped: int = 0
    total_pnl: Decimal = field(default_factory=lambda: Decimal("0.00"))
    win_rate: Decimal = field(default_factory=lambda: Decimal("0"))
    closed_trades: int = 0
    winning_trades: int = 0

    def record_close(self, pnl: Decimal) -> None:
        """Fold a closed mirrored position into the running P&L and win rate."""
        self.closed_trades += 1
        if pnl > 0:
            self.winning_trades += 1
        self.total_pnl += pnl
        self.win_rate = (
            Decimal(self.winning_trades) / Decimal(self.closed_trades) * Decimal("100")
        ).quantize(PRECISION_USD, rounding=ROUND_HALF_EVEN)


@dataclass
class CopyConfig:
    id: str
    platform: Platform
    target_wallet: str
    sizing_mode: SizingMode
    fixed_size: Decimal
    proportion_multiplier: Decimal
    portfolio_percentage: Decimal
    min_trade_size: Decimal
    created_at: datetime
    target_label: Optional[str] = None
    max_position_size: Optional[Decimal] = None
    stop_loss_percent: Optional[Decimal] = None
    take_profit_percent: Optional[Decimal] = None
    enabled: bool = False
    stats: CopyStats = field(default_factory=CopyStats)

    @classmethod
    def from_request(cls, config_id: str, request: CopyConfigRequest) -> "CopyConfig":
        return cls(
            id=config_id,
            platform=request.platform,
            target_wallet=request.target_wallet,
            target_label=request.target_label,
            sizing_mode=request.sizing_mode,
            fixed_size=request.fixed_size,
            proportion_multiplier=request.proportion_multiplier,
            portfolio_percentage=request.portfolio_percentage,
            max_position_size=request.max_position_size,
            min_trade_size=request.min_trade_size,
            stop_loss_percent=request.stop_loss_percent,
            take_profit_percent=request.take_profit_percent,
            created_at=datetime.now(timezone.utc),
        )

    def to_dict(self) -> Dict[str, Any]:
        return serialize_value({
            "id": self.id,
            "platform": self.platform,
            "target_wallet": self.target_wallet,
            "target_label": self.target_label,
            "sizing_mode": self.sizing_mode,
            "fixed_size": self.fixed_size,
            "proportion_multiplier": self.proportion_multiplier,
            "portfolio_percentage": self.portfolio_percentage,
            "max_position_size": self.max_position_size,
            "min_trade_size": self.min_trade_size,
            "stop_loss_percent": self.stop_loss_percent,
            "take_profit_percent": self.take_profit_percent,
            "enabled": self.enabled,
            "created_at": self.created_at,
            "stats": {
                "total_copied": self.stats.total_copied,
                "total_skipped": self.stats.total_skipped,
                "total_pnl": self.stats.total_pnl,
                "win_rate": self.stats.win_rate,
            },
        })


@dataclass
class CopyTrade:
    id: str
    config_id: str
    platform: Platform
    target_wallet: str
    side: TradeSide
    original_size: Decimal
    copied_size: Decimal
    price: Decimal
    status: CopyTradeStatus
    timestamp: datetime
    symbol: Optional[str] = None
    market_id: Optional[str] = None
    outcome: Optional[str] = None
    reason: Optional[str] = None
    position_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return serialize_value({
            "id": self.id,
            "config_id": self.config_id,
            "platform": self.platform,
            "target_wallet": self.target_wallet,
            "symbol": self.symbol,
            "market_id": self.market_id,
            "outcome": self.outcome,
            "side": self.side,
            "original_size": self.original_size,
            "copied_size": self.copied_size,
            "price": self.price,
            "status": self.status,
            "reason": self.reason,
            "position_id": self.position_id,
            "timestamp": self.timestamp,
        })


# =============================================================================
# Sizing
# =============================================================================

def compute_copy_size(
    config: CopyConfig,
    trade: SourceTrade,
    available: Decimal,
) -> Decimal:
    """Size of the mirrored trade before the minimum check, capped at max_position_size."""
    if config.sizing_mode == SizingMode.FIXED:
        size = config.fixed_size
    elif config.sizing_mode == SizingMode.PROPORTIONAL:
        size = trade.notional * config.proportion_multiplier
    elif config.sizing_mode == SizingMode.PERCENTAGE:
        size = available * config.portfolio_percentage / Decimal("100")
    else:
        raise NotImplementedError(f"No sizing rule for {config.sizing_mode!r}")

    if config.max_position_size is not None:
        size = min(size, config.max_position_size)

    return size.quantize(PRECISION_USD, rounding=ROUND_HALF_EVEN)


def decide_copy(
    config: CopyConfig,
    trade: SourceTrade,
    available: Decimal,
) -> Tuple[Decimal, Optional[str]]:
    """
    Returns (size, skip_reason). skip_reason is None when the trade
    should be mirrored.
    """
    if not config.enabled:
        return Decimal("0.00"), "Copy config is disabled"
    if trade.platform != config.platform:
        return Decimal("0.00"), (
            f"Platform mismatch: trade is {trade.platform.value}, "
            f"config is {config.platform.value}"
        )

    size = compute_copy_size(config, trade, available)
    if size < config.min_trade_size:
        return size, f"Below minimum size: ${size} < ${config.min_trade_size}"
    return size, None
