"""
============================================================================
Paper Sandbox v1.0.0
Strategy Rule Schema - Compiled Strategy Contract
============================================================================

Reliability Level: L6 Critical
Input Constraints: All numeric fields are decimal.Decimal
Side Effects: None (pure data validation)

CONTRACT:
This module defines the contract for compiled trading strategies.
A strategy is an ordered list of rules; each rule pairs an action with a
trigger condition. Rule order is evaluation priority (first match wins).

Design Goals:
- Closed variant sets: every condition kind is an enum member
- Deterministic: canonical JSON with sorted keys for replay
- Platform-correct sides: yes/no for prediction markets, long/short for crypto

DECIMAL INTEGRITY:
Condition values and amounts are decimal.Decimal; canonical JSON renders
them as strings.

============================================================================
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any, Union
import json

from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict


# =============================================================================
# Constants
# =============================================================================

MS_PER_MINUTE = 60_000
MS_PER_HOUR = 3_600_000
MS_PER_DAY = 86_400_000

DEFAULT_CRYPTO_SYMBOL = "BTC/USDT"


# =============================================================================
# Enums
# =============================================================================

class Platform(str, Enum):
    """Simulated market kinds."""
    CRYPTO = "crypto"
    POLYMARKET = "polymarket"


class StrategyAction(str, Enum):
    """Rule actions."""
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class RuleSide(str, Enum):
    """Rule side: yes/no on prediction markets, long/short on crypto."""
    YES = "yes"
    NO = "no"
    LONG = "long"
    SHORT = "short"


class ConditionType(str, Enum):
    """Trigger condition kinds."""
    PRICE_BELOW = "price_below"
    PRICE_ABOVE = "price_above"
    PROFIT_PERCENT = "profit_percent"
    LOSS_PERCENT = "loss_percent"
    TIME_INTERVAL = "time_interval"


class AmountKeyword(str, Enum):
    """Symbolic rule amounts resolved against the open position."""
    ALL = "all"
    HALF = "half"


PERCENT_CONDITIONS = frozenset([ConditionType.PROFIT_PERCENT, ConditionType.LOSS_PERCENT])

POLYMARKET_SIDES = frozenset([RuleSide.YES, RuleSide.NO])
CRYPTO_SIDES = frozenset([RuleSide.LONG, RuleSide.SHORT])

# long <-> yes, short <-> no
_SIDE_CORRECTIONS: Dict[Platform, Dict[RuleSide, RuleSide]] = {
    Platform.POLYMARKET: {RuleSide.LONG: RuleSide.YES, RuleSide.SHORT: RuleSide.NO},
    Platform.CRYPTO: {RuleSide.YES: RuleSide.LONG, RuleSide.NO: RuleSide.SHORT},
}


def correct_side(side: Optional[RuleSide], platform: Platform) -> Optional[RuleSide]:
    """Map a side into the platform's domain (never drops it)."""
    if side is None:
        return None
    return _SIDE_CORRECTIONS[platform].get(side, side)


# =============================================================================
# Base Model
# =============================================================================

class SchemaBaseModel(BaseModel):
    """Base model for strategy schema types."""

    model_config = ConfigDict(
        validate_assignment=True,
    )


# =============================================================================
# Sub-Models
# =============================================================================

class Condition(SchemaBaseModel):
    """
    Rule trigger condition.

    `value` is an absolute price for price conditions, a fraction in [0, 1]
    for percent conditions, and milliseconds for time intervals.
    """
    type: ConditionType = Field(description="Condition kind")
    value: Decimal = Field(ge=0, description="Threshold, fraction or interval in ms")

    @field_validator('value', mode='before')
    @classmethod
    def coerce_value(cls, v: Any) -> Decimal:
        if isinstance(v, bool):
            raise ValueError("value must be numeric")
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @model_validator(mode='after')
    def check_range(self) -> "Condition":
        if self.type in PERCENT_CONDITIONS and self.value > Decimal("1"):
            raise ValueError(
                f"{self.type.value} value must be a fraction in [0, 1], got {self.value}"
            )
        if self.type == ConditionType.TIME_INTERVAL and self.value <= Decimal("0"):
            raise ValueError("time_interval value must be a positive number of ms")
        return self

    def describe(self) -> str:
        """Short label used when recording which rule fired."""
        return f"{self.type.value}:{self.value}"


class Rule(SchemaBaseModel):
    """
    One trigger-condition/action pair.

    A hold rule may omit its condition and amount; buy and sell rules
    require a condition and a positive (or symbolic) amount.
    """
    action: StrategyAction = Field(description="buy, sell or hold")
    side: Optional[RuleSide] = Field(default=None, description="Outcome or direction")
    amount: Union[AmountKeyword, Decimal] = Field(
        default=Decimal("0"),
        description="USD amount, or 'all'/'half' of the open position"
    )
    condition: Optional[Condition] = Field(default=None, description="Trigger")

    @field_validator('amount', mode='before')
    @classmethod
    def validate_amount(cls, v: Any) -> Union[AmountKeyword, Decimal]:
        if isinstance(v, AmountKeyword):
            return v
        if isinstance(v, str) and v.strip().lower() in ("all", "half"):
            return AmountKeyword(v.strip().lower())
        if isinstance(v, bool):
            raise ValueError("amount must be a number, 'all' or 'half'")
        if isinstance(v, (int, float, str, Decimal)):
            try:
                amount = Decimal(str(v))
            except Exception:
                raise ValueError(f"amount must be a number, 'all' or 'half', got {v!r}")
            if not amount.is_finite() or amount < Decimal("0"):
                raise ValueError(f"amount must not be negative, got {v!r}")
            return amount
        raise ValueError(f"amount must be a number, 'all' or 'half', got {type(v)}")

    @model_validator(mode='after')
    def require_trigger(self) -> "Rule":
        if self.action == StrategyAction.HOLD:
            return self
        if self.condition is None:
            raise ValueError(f"{self.action.value} rule requires a condition")
        if isinstance(self.amount, Decimal) and self.amount <= Decimal("0"):
            raise ValueError(f"{self.action.value} rule amount must be greater than 0")
        return self


# =============================================================================
# Main Strategy Model
# =============================================================================

class ParsedStrategy(SchemaBaseModel):
    """
    Compiled strategy produced by a StrategyParser.

    Out-of-domain rule sides are corrected for the platform on construction.
    """
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="")
    platform: Platform
    symbol: Optional[str] = None
    market_id: Optional[str] = None
    capital: Decimal = Field(ge=0)
    rules: List[Rule] = Field(min_length=1)
    active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode='before')
    @classmethod
    def correct_rule_sides(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        try:
            platform = Platform(data.get("platform"))
        except ValueError:
            return data

        corrected = []
        for rule in data.get("rules") or []:
            if isinstance(rule, Rule):
                rule = rule.model_copy(update={"side": correct_side(rule.side, platform)})
            elif isinstance(rule, dict) and rule.get("side"):
                try:
                    side = RuleSide(str(rule["side"]).lower())
                except ValueError:
                    side = (
                        RuleSide.YES if platform == Platform.POLYMARKET else RuleSide.LONG
                    )
                rule = dict(rule, side=correct_side(side, platform))
            corrected.append(rule)
        return dict(data, rules=corrected)

    def to_canonical_dict(self) -> Dict[str, Any]:
        """Dictionary with sorted keys, Decimals as strings, no timestamp."""
        data = self.model_dump(mode="json", exclude={"created_at"})
        return _sort_dict_recursive(data)

    def to_canonical_json(self) -> str:
        """Canonical JSON used to replay or compare compiled strategies."""
        return json.dumps(self.to_canonical_dict(), sort_keys=True, separators=(',', ':'))


def _sort_dict_recursive(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _sort_dict_recursive(v) for k, v in sorted(obj.items())}
    if isinstance(obj, list):
        return [_sort_dict_recursive(item) for item in obj]
    return obj


def validate_strategy_schema(data: Dict[str, Any]) -> ParsedStrategy:
    """
    Validate a dictionary against the strategy schema.

    Raises:
        pydantic.ValidationError: If validation fails
    """
    return ParsedStrategy(**data)
