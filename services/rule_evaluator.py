"""
============================================================================
Paper Sandbox v1.0.0
Rule Evaluator - Pure Condition Matching
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Returns computed with decimal.Decimal
Side Effects: None

Evaluates strategy rules against a market snapshot. Every ConditionType
member has a handler; a member without one raises at evaluation time.

MATCHING SEMANTICS:
    - price_below:    price <  value
    - price_above:    price >  value
    - profit_percent: open position return >=  value
    - loss_percent:   open position return <= -value
    - time_interval:  never fired, or now - last_fired >= value ms

    Hold rules never fire. Sell rules need an open position.
    Price-triggered buys only fire while the strategy is flat; interval
    buys (DCA) fire regardless and accumulate.

============================================================================
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from services.strategy_schema import ConditionType, Rule, StrategyAction


@dataclass(frozen=True)
class RuleSnapshot:
    """Market and position state a rule is evaluated against."""
    price: Decimal
    now_ms: int
    entry_price: Optional[Decimal] = None
    is_short: bool = False
    last_fired_ms: Optional[int] = None

    @property
    def has_position(self) -> bool:
        return self.entry_price is not None

    @property
    def position_return(self) -> Optional[Decimal]:
        """Fractional return of the open position (signed for direction)."""
        if self.entry_price is None or self.entry_price == 0:
            return None
        change = (self.price - self.entry_price) / self.entry_price
        return -change if self.is_short else change


def _price_below(rule: Rule, snap: RuleSnapshot) -> bool:
    return snap.price < rule.condition.value


def _price_above(rule: Rule, snap: RuleSnapshot) -> bool:
    return snap.price > rule.condition.value


def _profit_percent(rule: Rule, snap: RuleSnapshot) -> bool:
    ret = snap.position_return
    return ret is not None and ret >= rule.condition.value


def _loss_percent(rule: Rule, snap: RuleSnapshot) -> bool:
    ret = snap.position_return
    return ret is not None and ret <= -rule.condition.value


def _time_interval(rule: Rule, snap: RuleSnapshot) -> bool:
    if snap.last_fired_ms is None:
        return True
    return snap.now_ms - snap.last_fired_ms >= rule.condition.value


CONDITION_HANDLERS: Dict[ConditionType, Callable[[Rule, RuleSnapshot], bool]] = {
    ConditionType.PRICE_BELOW: _price_below,
    ConditionType.PRICE_ABOVE: _price_above,
    ConditionType.PROFIT_PERCENT: _profit_percent,
    ConditionType.LOSS_PERCENT: _loss_percent,
    ConditionType.TIME_INTERVAL: _time_interval,
}


def evaluate_rule(rule: Rule, snap: RuleSnapshot) -> bool:
    """
    True when the rule should fire.

    Raises:
        NotImplementedError: If the condition type has no handler
    """
    if rule.action == StrategyAction.HOLD or rule.condition is None:
        return False

    if rule.action == StrategyAction.SELL and not snap.has_position:
        return False

    condition_type = rule.condition.type
    if (
        rule.action == StrategyAction.BUY
        and snap.has_position
        and condition_type != ConditionType.TIME_INTERVAL
    ):
        return False

    handler = CONDITION_HANDLERS.get(condition_type)
    if handler is None:
        raise NotImplementedError(f"No evaluator for condition type {condition_type!r}")
    return handler(rule, snap)


def first_matching_rule(rules: List[Rule], snap: RuleSnapshot) -> Optional[int]:
    """Index of the first rule that fires, or None."""
    for index, rule in enumerate(rules):
        if evaluate_rule(rule, snap):
            return index
    return None
