"""
============================================================================
Paper Sandbox v1.0.0
Simulation Engine - Orchestration Facade
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: All financial calculations use decimal.Decimal with ROUND_HALF_EVEN
Traceability: Every mutating operation carries a correlation_id

SIMULATION ENGINE:
    One engine instance is one simulated account. It owns:
    - the PaperLedger (balance and positions)
    - the strategy registry and strategy trade log
    - the copy-config registry and copy trade log

    Every operation, read or write, runs under a single re-entrant lock,
    so no caller observes half-applied state. Strategy parsing (which may
    perform HTTP I/O in LLM mode) runs outside the lock.

RESULT CONTRACT:
    Mutating operations return an OperationResult. Expected failures carry
    a SimErrorKind; unexpected exceptions are caught here, logged with
    SIM-099 and returned as InternalError. Query operations return plain
    snapshots (deep copies) of engine state.

ERROR CODES:
    - SIM-001..005: Domain failures (see services.sim_errors)
    - SIM-099: Unexpected failure caught at the engine boundary

============================================================================
"""

from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Optional, Dict, Any, List, Union, Callable
import logging
import threading
import uuid

from pydantic import ValidationError

from app.observability.metrics import (
    record_copy_trade,
    record_order_rejected,
    record_position_closed,
    record_position_opened,
    record_strategy_trade,
    update_available_balance,
)
from services.copy_trading import (
    CopyConfig,
    CopyConfigRequest,
    CopyTrade,
    CopyTradeStatus,
    SourceTrade,
    decide_copy,
)
from services.paper_ledger import (
    Balance,
    CryptoPosition,
    PaperLedger,
    Position,
    PositionSource,
    validation_error_to_sim,
)
from services.price_source import MockPriceSource, PriceSource
from services.rule_evaluator import RuleSnapshot, evaluate_rule
from services.sim_config import SimConfig, get_sim_config
from services.sim_errors import OperationResult, SimErrorKind, SimErrorCode, SimulationError
from services.strategy_lifecycle import StrategyStatus, can_start, stop_target, validate_transition
from services.strategy_parser import (
    StrategyParser,
    create_strategy_parser,
    get_examples as parser_examples,
)
from services.strategy_schema import (
    AmountKeyword,
    Platform,
    Rule,
    RuleSide,
    StrategyAction,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

PRECISION_USD = Decimal("0.01")
DEFAULT_RULE_CAPITAL_FRACTION = Decimal("0.10")


def _usd(value: Decimal) -> Decimal:
    return value.quantize(PRECISION_USD, rounding=ROUND_HALF_EVEN)


def _now_ms(now: datetime) -> int:
    return int(now.timestamp() * 1000)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class StrategyStats:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_pnl: Decimal = field(default_factory=lambda: Decimal("0.00"))
    win_rate: Decimal = field(default_factory=lambda: Decimal("0"))
    rules_triggered: int = 0

    def record_close(self, pnl: Decimal) -> None:
        if pnl > 0:
            self.winning_trades += 1
        elif pnl < 0:
            self.losing_trades += 1
        self.total_pnl += pnl
        decided = self.winning_trades + self.losing_trades
        if decided:
            self.win_rate = _usd(
                Decimal(self.winning_trades) / Decimal(decided) * Decimal("100")
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "total_pnl": str(self.total_pnl),
            "win_rate": str(self.win_rate),
            "rules_triggered": self.rules_triggered,
        }


@dataclass
class Strategy:
    """A compiled strategy registered with the engine."""
    id: str
    name: str
    description: str
    platform: Platform
    capital: Decimal
    rules: List[Rule]
    created_at: datetime
    symbol: Optional[str] = None
    market_id: Optional[str] = None
    status: StrategyStatus = StrategyStatus.PAUSED
    active: bool = True
    last_evaluated_at: Optional[datetime] = None
    stats: StrategyStats = field(default_factory=StrategyStats)
    last_fired_ms: Dict[int, int] = field(default_factory=dict)

    @property
    def identifier(self) -> Optional[str]:
        return self.symbol if self.platform == Platform.CRYPTO else self.market_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "platform": self.platform.value,
            "symbol": self.symbol,
            "market_id": self.market_id,
            "capital": str(self.capital),
            "rules": [rule.model_dump(mode="json") for rule in self.rules],
            "status": self.status.value,
            "active": self.active,
            "created_at": self.created_at.isoformat(),
            "last_evaluated_at": (
                self.last_evaluated_at.isoformat() if self.last_evaluated_at else None
            ),
            "stats": self.stats.to_dict(),
        }


@dataclass
class StrategyTrade:
    id: str
    strategy_id: str
    platform: Platform
    action: StrategyAction
    amount: Decimal
    price: Decimal
    rule_triggered: str
    timestamp: datetime
    symbol: Optional[str] = None
    market_id: Optional[str] = None
    side: Optional[RuleSide] = None
    pnl: Optional[Decimal] = None
    position_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "strategy_id": self.strategy_id,
            "platform": self.platform.value,
            "symbol": self.symbol,
            "market_id": self.market_id,
            "action": self.action.value,
            "side": self.side.value if self.side else None,
            "amount": str(self.amount),
            "price": str(self.price),
            "pnl": str(self.pnl) if self.pnl is not None else None,
            "rule_triggered": self.rule_triggered,
            "position_id": self.position_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class EngineState:
    """All mutable engine state. Injected so tests can build isolated engines."""
    ledger: PaperLedger
    simulation_mode: bool = True
    strategies: Dict[str, Strategy] = field(default_factory=dict)
    strategy_trades: List[StrategyTrade] = field(default_factory=list)
    copy_configs: Dict[str, CopyConfig] = field(default_factory=dict)
    copy_trades: List[CopyTrade] = field(default_factory=list)
    counters: Dict[str, int] = field(default_factory=dict)

    def next_id(self, prefix: str) -> str:
        self.counters[prefix] = self.counters.get(prefix, 0) + 1
        return f"{prefix}_{self.counters[prefix]}"


# =============================================================================
# Simulation Engine
# =============================================================================

class SimulationEngine:
    """
    Paper-trading engine with strategy compiler and copy trading.

    ============================================================================
    ENGINE RESPONSIBILITIES:
    ============================================================================
    1. Delegate position bookkeeping to the PaperLedger
    2. Compile and register strategies; drive their lifecycle
    3. Execute strategy rules on behalf of an external scheduler
    4. Mirror a target wallet's trades through copy configs
    5. Report health from ledger invariants
    ============================================================================

    USAGE:
        engine = SimulationEngine()
        result = engine.open_position({"platform": "crypto", "symbol": "BTC/USDT",
                                       "side": "buy", "amount": 500, "leverage": 10})
        if result.success:
            engine.close_position({"symbol": "BTC/USDT", "direction": "long"})
    """

    def __init__(
        self,
        config: Optional[SimConfig] = None,
        price_source: Optional[PriceSource] = None,
        parser: Optional[StrategyParser] = None,
        state: Optional[EngineState] = None,
    ) -> None:
        self._config = config or SimConfig()
        self._prices = price_source or MockPriceSource()
        self._parser = parser or create_strategy_parser(self._config, price_source=self._prices)
        self._state = state or EngineState(
            ledger=PaperLedger(
                price_source=self._prices,
                starting_balance=self._config.starting_balance,
                default_leverage=self._config.default_leverage,
            ),
            simulation_mode=self._config.simulation_mode,
        )
        self._lock = threading.RLock()

        logger.info(
            f"[SIM-ENGINE] SimulationEngine initialized | "
            f"starting_balance=${self._config.starting_balance} | "
            f"parser={type(self._parser).__name__} | "
            f"simulation_mode={self._state.simulation_mode}"
        )

    @property
    def price_source(self) -> PriceSource:
        return self._prices

    # -------------------------------------------------------------------------
    # Boundary
    # -------------------------------------------------------------------------

    def _guarded(
        self,
        operation: str,
        correlation_id: str,
        body: Callable[[], OperationResult],
    ) -> OperationResult:
        """Run body under the lock and convert failures to results."""
        try:
            with self._lock:
                return body()
        except SimulationError as e:
            logger.warning(
                f"[{e.error_code}] {operation} failed | "
                f"error={e.message} | "
                f"correlation_id={correlation_id}"
            )
            return e.to_result()
        except Exception as e:
            logger.error(
                f"[{SimErrorCode.INTERNAL_ERROR}] {operation} raised unexpectedly | "
                f"error_type={type(e).__name__} | error={str(e)[:200]} | "
                f"correlation_id={correlation_id}",
                exc_info=True,
            )
            return OperationResult.fail(
                SimErrorKind.INTERNAL_ERROR, f"{operation} failed: {type(e).__name__}"
            )

    # -------------------------------------------------------------------------
    # Positions
    # -------------------------------------------------------------------------

    def open_position(
        self,
        request: Union[Dict[str, Any], Any],
        correlation_id: Optional[str] = None,
    ) -> OperationResult:
        """Open a crypto or polymarket position (request tagged by platform)."""
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            return OperationResult.ok(**self._open_locked(request, correlation_id))

        result = self._guarded("open_position", correlation_id, body)
        if not result.success and result.error_kind is not None:
            record_order_rejected(result.error_kind.value, correlation_id)
        return result

    def _open_locked(self, request: Any, correlation_id: str) -> Dict[str, Any]:
        data = self._state.ledger.open_position(request, correlation_id=correlation_id)
        platform = data["platform"]
        source = request.get("source", PositionSource.MANUAL) if isinstance(request, dict) else getattr(
            request, "source", PositionSource.MANUAL
        )
        record_position_opened(Platform(platform).value, PositionSource(source).value, correlation_id)
        update_available_balance(self._state.ledger.available, correlation_id)
        return data

    def close_position(
        self,
        request: Union[Dict[str, Any], Any],
        correlation_id: Optional[str] = None,
    ) -> OperationResult:
        """Close by position_id, crypto (symbol, direction) or polymarket (market_id, outcome)."""
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            return OperationResult.ok(**self._close_locked(request, correlation_id))

        result = self._guarded("close_position", correlation_id, body)
        if not result.success and result.error_kind is not None:
            record_order_rejected(result.error_kind.value, correlation_id)
        return result

    def _close_locked(self, request: Any, correlation_id: str) -> Dict[str, Any]:
        data = self._state.ledger.close_position(request, correlation_id=correlation_id)

        strategy = self._state.strategies.get(data.get("strategy_id") or "")
        if strategy is not None:
            strategy.stats.record_close(data["pnl"])
        config = self._state.copy_configs.get(data.get("copy_config_id") or "")
        if config is not None:
            config.stats.record_close(data["pnl"])

        record_position_closed(Platform(data["platform"]).value, correlation_id)
        update_available_balance(self._state.ledger.available, correlation_id)
        return data

    def get_positions(self, platform: Optional[Union[Platform, str]] = None) -> List[Position]:
        """Open positions marked to current prices."""
        with self._lock:
            return deepcopy(self._state.ledger.get_positions(
                Platform(platform) if platform is not None else None
            ))

    def get_closed_trades(self, platform: Optional[Union[Platform, str]] = None) -> List[Position]:
        with self._lock:
            return deepcopy(self._state.ledger.get_closed_trades(
                Platform(platform) if platform is not None else None
            ))

    def get_balance(self) -> Balance:
        with self._lock:
            return self._state.ledger.get_balance()

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def create_strategy(
        self,
        platform: Union[Platform, str],
        description: str,
        symbol: Optional[str] = None,
        market_id: Optional[str] = None,
        capital: Optional[Union[Decimal, int, str]] = None,
        correlation_id: Optional[str] = None,
    ) -> OperationResult:
        """Compile a description and register it paused."""
        correlation_id = correlation_id or str(uuid.uuid4())

        try:
            platform = Platform(platform)
        except ValueError:
            return OperationResult.fail(
                SimErrorKind.INVALID_VALUE,
                f"platform must be 'crypto' or 'polymarket', got {platform!r}",
            )
        if not description or not description.strip():
            return OperationResult.fail(SimErrorKind.MISSING_FIELD, "description is required")
        if platform == Platform.POLYMARKET and not market_id:
            return OperationResult.fail(SimErrorKind.MISSING_FIELD, "market_id is required")

        capital_value = None
        if capital is not None:
            try:
                capital_value = Decimal(str(capital))
            except ArithmeticError:
                capital_value = None
            if capital_value is None or not capital_value.is_finite() or capital_value <= 0:
                return OperationResult.fail(
                    SimErrorKind.INVALID_VALUE, "capital must be greater than 0"
                )

        context = {
            "platform": platform,
            "symbol": symbol,
            "market_id": market_id,
            "capital": capital_value,
        }

        # Parse outside the lock; the LLM parser may block on HTTP
        try:
            parsed = self._parser.parse(description, context, correlation_id)
        except Exception as e:
            logger.error(
                f"[{SimErrorCode.INTERNAL_ERROR}] create_strategy parse raised | "
                f"error={str(e)[:200]} | correlation_id={correlation_id}",
                exc_info=True,
            )
            return OperationResult.fail(
                SimErrorKind.INTERNAL_ERROR, f"create_strategy failed: {type(e).__name__}"
            )

        def body() -> OperationResult:
            strategy = Strategy(
                id=self._state.next_id("strategy"),
                name=parsed.name,
                description=parsed.description,
                platform=parsed.platform,
                symbol=parsed.symbol,
                market_id=parsed.market_id,
                capital=parsed.capital,
                rules=list(parsed.rules),
                active=parsed.active,
                created_at=datetime.now(timezone.utc),
            )
            self._state.strategies[strategy.id] = strategy

            logger.info(
                f"[SIM-STRATEGY] Strategy CREATED | "
                f"strategy_id={strategy.id} | name={strategy.name} | "
                f"platform={strategy.platform.value} | rules={len(strategy.rules)} | "
                f"correlation_id={correlation_id}"
            )
            return OperationResult.ok(strategy_id=strategy.id, strategy=strategy.to_dict())

        return self._guarded("create_strategy", correlation_id, body)

    def start_strategy(self, strategy_id: str, correlation_id: Optional[str] = None) -> OperationResult:
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            strategy = self._require_strategy(strategy_id)
            if strategy.status == StrategyStatus.RUNNING:
                raise SimulationError(SimErrorKind.ALREADY_RUNNING, "Strategy is already running")
            if not can_start(strategy.status):
                raise SimulationError(
                    SimErrorKind.INVALID_VALUE,
                    f"Strategy cannot start from status {strategy.status.value}",
                )
            validate_transition(strategy.status, StrategyStatus.RUNNING, correlation_id)
            strategy.status = StrategyStatus.RUNNING

            logger.info(
                f"[SIM-STRATEGY] Strategy STARTED | strategy_id={strategy_id} | "
                f"correlation_id={correlation_id}"
            )
            return OperationResult.ok(strategy_id=strategy_id, status=strategy.status)

        return self._guarded("start_strategy", correlation_id, body)

    def stop_strategy(self, strategy_id: str, correlation_id: Optional[str] = None) -> OperationResult:
        """Stop a running strategy. Unknown or already stopped ids also succeed."""
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            strategy = self._state.strategies.get(strategy_id)
            if strategy is None:
                return OperationResult.ok(strategy_id=strategy_id, status=None)
            self._stop_locked(strategy, correlation_id)
            return OperationResult.ok(strategy_id=strategy_id, status=strategy.status)

        return self._guarded("stop_strategy", correlation_id, body)

    def _stop_locked(self, strategy: Strategy, correlation_id: str) -> None:
        target = stop_target(strategy.status)
        if target is None:
            return
        validate_transition(strategy.status, target, correlation_id)
        strategy.status = target
        logger.info(
            f"[SIM-STRATEGY] Strategy STOPPED | strategy_id={strategy.id} | "
            f"correlation_id={correlation_id}"
        )

    def delete_strategy(self, strategy_id: str, correlation_id: Optional[str] = None) -> OperationResult:
        """Stop then remove. Unknown ids succeed."""
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            strategy = self._state.strategies.get(strategy_id)
            if strategy is not None:
                self._stop_locked(strategy, correlation_id)
                del self._state.strategies[strategy_id]
                logger.info(
                    f"[SIM-STRATEGY] Strategy DELETED | strategy_id={strategy_id} | "
                    f"correlation_id={correlation_id}"
                )
            return OperationResult.ok(strategy_id=strategy_id, deleted=strategy is not None)

        return self._guarded("delete_strategy", correlation_id, body)

    def get_strategies(self) -> List[Strategy]:
        with self._lock:
            return deepcopy(list(self._state.strategies.values()))

    def get_strategy(self, strategy_id: str) -> Optional[Strategy]:
        with self._lock:
            strategy = self._state.strategies.get(strategy_id)
            return deepcopy(strategy) if strategy is not None else None

    def get_strategy_trades(self, strategy_id: Optional[str] = None) -> List[StrategyTrade]:
        with self._lock:
            trades = self._state.strategy_trades
            if strategy_id is not None:
                trades = [t for t in trades if t.strategy_id == strategy_id]
            return deepcopy(list(trades))

    def _require_strategy(self, strategy_id: str) -> Strategy:
        strategy = self._state.strategies.get(strategy_id)
        if strategy is None:
            raise SimulationError(SimErrorKind.NOT_FOUND, "Strategy not found")
        return strategy

    def _strategy_position(self, strategy: Strategy) -> Optional[Position]:
        """Most recent open position opened by this strategy on its instrument."""
        match = None
        wanted = (strategy.identifier or "").upper()
        for position in self._state.ledger.get_positions(strategy.platform):
            if position.strategy_id != strategy.id:
                continue
            if position.identifier.upper() != wanted:
                continue
            match = position
        return match

    def _rule_outcome(self, strategy: Strategy, rule: Rule) -> str:
        if rule.side in (RuleSide.YES, RuleSide.NO):
            return rule.side.value
        return RuleSide.YES.value

    def _resolve_amount(self, strategy: Strategy, rule: Rule) -> Decimal:
        """Numbers as-is; 'all'/'half' of the open position or 10% of capital."""
        if isinstance(rule.amount, Decimal):
            return rule.amount

        position = self._strategy_position(strategy)
        if position is not None:
            base = position.amount
        else:
            base = strategy.capital * DEFAULT_RULE_CAPITAL_FRACTION

        if rule.amount == AmountKeyword.HALF:
            base = base / Decimal("2")
        return _usd(base)

    def execute_strategy_rule(
        self,
        strategy_id: str,
        rule_index: int,
        price: Optional[Union[Decimal, int, str]] = None,
        correlation_id: Optional[str] = None,
    ) -> OperationResult:
        """
        Scheduler hook: act on one rule of a running strategy.

        Buy rules open a position on the strategy's instrument; sell rules
        close the strategy's most recent open position.

        Sell amounts are not applied: 'half', 'all' and dollar amounts all
        close the whole position, and the trade records the position's full
        amount. Buy amounts are sized by _resolve_amount.
        """
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            strategy = self._require_strategy(strategy_id)
            return self._execute_rule_locked(
                strategy, rule_index, _to_price(price), datetime.now(timezone.utc), correlation_id
            )

        return self._guarded("execute_strategy_rule", correlation_id, body)

    def _execute_rule_locked(
        self,
        strategy: Strategy,
        rule_index: int,
        price: Optional[Decimal],
        now: datetime,
        correlation_id: str,
    ) -> OperationResult:
        if strategy.status != StrategyStatus.RUNNING:
            raise SimulationError(SimErrorKind.INVALID_VALUE, "Strategy is not running")
        if not 0 <= rule_index < len(strategy.rules):
            raise SimulationError(
                SimErrorKind.INVALID_VALUE,
                f"rule_index {rule_index} out of range for {len(strategy.rules)} rules",
            )

        rule = strategy.rules[rule_index]
        rule_label = rule.condition.describe() if rule.condition else rule.action.value

        if rule.action == StrategyAction.BUY:
            amount = self._resolve_amount(strategy, rule)
            order: Dict[str, Any] = {
                "platform": strategy.platform,
                "amount": amount,
                "price": price,
                "source": PositionSource.STRATEGY,
                "strategy_id": strategy.id,
            }
            if strategy.platform == Platform.CRYPTO:
                order["symbol"] = strategy.symbol
                order["side"] = "sell" if rule.side == RuleSide.SHORT else "buy"
            else:
                order["market_id"] = strategy.market_id
                order["outcome"] = self._rule_outcome(strategy, rule)
            data = self._open_locked(order, correlation_id)
            trade_pnl = None
        elif rule.action == StrategyAction.SELL:
            position = self._strategy_position(strategy)
            if position is None:
                raise SimulationError(SimErrorKind.NOT_FOUND, "Position not found")
            data = self._close_locked(
                {"position_id": position.id, "price": price}, correlation_id
            )
            amount = data["amount"]
            trade_pnl = data["pnl"]
        else:
            raise SimulationError(SimErrorKind.INVALID_VALUE, "hold rules do not trade")

        trade = StrategyTrade(
            id=self._state.next_id("st"),
            strategy_id=strategy.id,
            platform=strategy.platform,
            symbol=strategy.symbol,
            market_id=strategy.market_id,
            action=rule.action,
            side=rule.side,
            amount=amount,
            price=data["price"],
            pnl=trade_pnl,
            rule_triggered=rule_label,
            position_id=data["order_id"],
            timestamp=now,
        )
        self._state.strategy_trades.append(trade)
        strategy.stats.total_trades += 1
        strategy.last_fired_ms[rule_index] = _now_ms(now)
        record_strategy_trade(rule.action.value, correlation_id)

        logger.info(
            f"[SIM-STRATEGY] Rule EXECUTED | strategy_id={strategy.id} | "
            f"rule_index={rule_index} | action={rule.action.value} | "
            f"amount=${amount} | price={trade.price} | "
            f"correlation_id={correlation_id}"
        )
        return OperationResult.ok(trade_id=trade.id, trade=trade.to_dict(), order=data)

    def evaluate_strategy(
        self,
        strategy_id: str,
        price: Optional[Union[Decimal, int, str]] = None,
        now: Optional[datetime] = None,
        correlation_id: Optional[str] = None,
    ) -> OperationResult:
        """
        Evaluate rules in order against a price and fire the first match.

        Without a price the strategy's instrument is quoted from the price
        source.
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        now = now or datetime.now(timezone.utc)

        def body() -> OperationResult:
            quote = _to_price(price)
            strategy = self._require_strategy(strategy_id)
            strategy.last_evaluated_at = now
            if strategy.status != StrategyStatus.RUNNING:
                return OperationResult.ok(strategy_id=strategy_id, fired=False, rule_index=None)

            position = self._strategy_position(strategy)
            for index, rule in enumerate(strategy.rules):
                current = quote
                if current is None:
                    current = self._quote(strategy, rule)
                snapshot = RuleSnapshot(
                    price=current,
                    now_ms=_now_ms(now),
                    entry_price=position.entry_price if position is not None else None,
                    is_short=(
                        isinstance(position, CryptoPosition)
                        and position.direction.value == "short"
                    ),
                    last_fired_ms=strategy.last_fired_ms.get(index),
                )
                if not evaluate_rule(rule, snapshot):
                    continue

                strategy.stats.rules_triggered += 1
                logger.info(
                    f"[SIM-STRATEGY] Rule TRIGGERED | strategy_id={strategy_id} | "
                    f"rule_index={index} | price={current} | "
                    f"correlation_id={correlation_id}"
                )
                executed = self._execute_rule_locked(strategy, index, current, now, correlation_id)
                executed.data.update(fired=True, rule_index=index)
                return executed

            return OperationResult.ok(strategy_id=strategy_id, fired=False, rule_index=None)

        return self._guarded("evaluate_strategy", correlation_id, body)

    def _quote(self, strategy: Strategy, rule: Rule) -> Decimal:
        if strategy.platform == Platform.CRYPTO:
            return self._prices.current_price(Platform.CRYPTO, strategy.symbol or "")
        return self._prices.current_price(
            Platform.POLYMARKET, strategy.market_id or "", self._rule_outcome(strategy, rule)
        )

    # -------------------------------------------------------------------------
    # Copy Trading
    # -------------------------------------------------------------------------

    def create_copy_config(
        self,
        request: Union[CopyConfigRequest, Dict[str, Any]],
        correlation_id: Optional[str] = None,
    ) -> OperationResult:
        """Register a copy config. Configs start disabled."""
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            try:
                validated = request if isinstance(request, CopyConfigRequest) else CopyConfigRequest(
                    **{k: v for k, v in dict(request).items() if v is not None}
                )
            except ValidationError as e:
                raise validation_error_to_sim(e)

            config = CopyConfig.from_request(self._state.next_id("copy"), validated)
            self._state.copy_configs[config.id] = config

            logger.info(
                f"[SIM-COPY] Copy config CREATED | config_id={config.id} | "
                f"platform={config.platform.value} | target_wallet={config.target_wallet} | "
                f"sizing_mode={config.sizing_mode.value} | "
                f"correlation_id={correlation_id}"
            )
            return OperationResult.ok(config_id=config.id, config=config.to_dict())

        return self._guarded("create_copy_config", correlation_id, body)

    def toggle_copy_config(
        self,
        config_id: str,
        enabled: bool,
        correlation_id: Optional[str] = None,
    ) -> OperationResult:
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            config = self._state.copy_configs.get(config_id)
            if config is None:
                raise SimulationError(SimErrorKind.NOT_FOUND, "Copy config not found")
            config.enabled = bool(enabled)
            logger.info(
                f"[SIM-COPY] Copy config TOGGLED | config_id={config_id} | "
                f"enabled={config.enabled} | correlation_id={correlation_id}"
            )
            return OperationResult.ok(config_id=config_id, enabled=config.enabled)

        return self._guarded("toggle_copy_config", correlation_id, body)

    def delete_copy_config(self, config_id: str, correlation_id: Optional[str] = None) -> OperationResult:
        """Disable then remove. Unknown ids succeed."""
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            config = self._state.copy_configs.pop(config_id, None)
            if config is not None:
                config.enabled = False
                logger.info(
                    f"[SIM-COPY] Copy config DELETED | config_id={config_id} | "
                    f"correlation_id={correlation_id}"
                )
            return OperationResult.ok(config_id=config_id, deleted=config is not None)

        return self._guarded("delete_copy_config", correlation_id, body)

    def get_copy_configs(self, platform: Optional[Union[Platform, str]] = None) -> List[CopyConfig]:
        with self._lock:
            configs = list(self._state.copy_configs.values())
            if platform is not None:
                configs = [c for c in configs if c.platform == Platform(platform)]
            return deepcopy(configs)

    def get_copy_config(self, config_id: str) -> Optional[CopyConfig]:
        with self._lock:
            config = self._state.copy_configs.get(config_id)
            return deepcopy(config) if config is not None else None

    def get_copy_trades(
        self,
        config_id: Optional[str] = None,
        platform: Optional[Union[Platform, str]] = None,
    ) -> List[CopyTrade]:
        with self._lock:
            trades = list(self._state.copy_trades)
            if config_id is not None:
                trades = [t for t in trades if t.config_id == config_id]
            if platform is not None:
                trades = [t for t in trades if t.platform == Platform(platform)]
            return deepcopy(trades)

    def process_copy_trade(
        self,
        config_id: str,
        source_trade: Union[SourceTrade, Dict[str, Any]],
        correlation_id: Optional[str] = None,
    ) -> OperationResult:
        """
        Mirror one trade of the target wallet.

        The result succeeds whether the copy executed or was skipped; the
        recorded CopyTrade carries the status and reason.
        """
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            config = self._state.copy_configs.get(config_id)
            if config is None:
                raise SimulationError(SimErrorKind.NOT_FOUND, "Copy config not found")
            try:
                trade = source_trade if isinstance(source_trade, SourceTrade) else SourceTrade(
                    **{k: v for k, v in dict(source_trade).items() if v is not None}
                )
            except ValidationError as e:
                raise validation_error_to_sim(e)

            size, reason = decide_copy(config, trade, self._state.ledger.available)
            position_id = None

            if reason is None:
                order: Dict[str, Any] = {
                    "platform": trade.platform,
                    "amount": size,
                    "source": PositionSource.COPY,
                    "copy_config_id": config.id,
                }
                if trade.platform == Platform.CRYPTO:
                    order.update(
                        symbol=trade.symbol,
                        side=trade.side.value,
                        leverage=self._config.copy_leverage,
                    )
                else:
                    order.update(market_id=trade.market_id, outcome=trade.outcome)
                try:
                    opened = self._open_locked(order, correlation_id)
                    position_id = opened["order_id"]
                except SimulationError as e:
                    reason = e.message

            status = CopyTradeStatus.EXECUTED if reason is None else CopyTradeStatus.SKIPPED
            copy_trade = CopyTrade(
                id=self._state.next_id("ct"),
                config_id=config.id,
                platform=trade.platform,
                target_wallet=config.target_wallet,
                symbol=trade.symbol,
                market_id=trade.market_id,
                outcome=trade.outcome,
                side=trade.side,
                original_size=trade.notional,
                copied_size=size if status == CopyTradeStatus.EXECUTED else Decimal("0.00"),
                price=trade.price,
                status=status,
                reason=reason,
                position_id=position_id,
                timestamp=datetime.now(timezone.utc),
            )
            self._state.copy_trades.append(copy_trade)
            if status == CopyTradeStatus.EXECUTED:
                config.stats.total_copied += 1
            else:
                config.stats.total_skipped += 1
            record_copy_trade(status.value, correlation_id)

            logger.info(
                f"[SIM-COPY] Copy trade {status.value.upper()} | config_id={config.id} | "
                f"copy_trade_id={copy_trade.id} | size=${size} | reason={reason} | "
                f"correlation_id={correlation_id}"
            )
            return OperationResult.ok(
                copy_trade_id=copy_trade.id,
                status=status,
                reason=reason,
                copy_trade=copy_trade.to_dict(),
            )

        return self._guarded("process_copy_trade", correlation_id, body)

    # -------------------------------------------------------------------------
    # Account
    # -------------------------------------------------------------------------

    def set_simulation_mode(self, enabled: bool, correlation_id: Optional[str] = None) -> OperationResult:
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            self._state.simulation_mode = bool(enabled)
            logger.info(
                f"[SIM-MODE] Simulation mode set | enabled={self._state.simulation_mode} | "
                f"correlation_id={correlation_id}"
            )
            return OperationResult.ok(simulation_mode=self._state.simulation_mode)

        return self._guarded("set_simulation_mode", correlation_id, body)

    def get_simulation_status(self) -> Dict[str, Any]:
        with self._lock:
            return {"simulation_mode": self._state.simulation_mode}

    def reset_account(self, correlation_id: Optional[str] = None) -> OperationResult:
        """
        Restore the starting balance and clear every registry.

        Strategies are stopped and copy configs disabled before they are
        dropped; id counters restart.
        """
        correlation_id = correlation_id or str(uuid.uuid4())

        def body() -> OperationResult:
            for strategy in self._state.strategies.values():
                self._stop_locked(strategy, correlation_id)
            for config in self._state.copy_configs.values():
                config.enabled = False

            self._state.strategies.clear()
            self._state.strategy_trades.clear()
            self._state.copy_configs.clear()
            self._state.copy_trades.clear()
            self._state.counters.clear()
            self._state.ledger.reset()
            update_available_balance(self._state.ledger.available, correlation_id)

            logger.info(
                f"[SIM-RESET] Account RESET | "
                f"balance=${self._state.ledger.available} | "
                f"correlation_id={correlation_id}"
            )
            return OperationResult.ok(balance=self._state.ledger.get_balance().to_dict())

        return self._guarded("reset_account", correlation_id, body)

    def check_health(self) -> Dict[str, Any]:
        """Health snapshot from ledger invariants. Never raises."""
        checked_at = datetime.now(timezone.utc).isoformat()
        try:
            with self._lock:
                violations = self._state.ledger.verify_invariants()
                metadata = {
                    "simulation_mode": self._state.simulation_mode,
                    "open_positions": self._state.ledger.open_position_count(),
                    "active_strategies": sum(
                        1 for s in self._state.strategies.values()
                        if s.status == StrategyStatus.RUNNING
                    ),
                    "active_copy_configs": sum(
                        1 for c in self._state.copy_configs.values() if c.enabled
                    ),
                }
            health: Dict[str, Any] = {
                "healthy": not violations,
                "last_checked": checked_at,
                "metadata": metadata,
            }
            if violations:
                health["error"] = "; ".join(violations)
                logger.error(
                    f"[{SimErrorCode.INTERNAL_ERROR}] Ledger invariants violated | "
                    f"violations={health['error']}"
                )
            return health
        except Exception as e:
            logger.error(
                f"[{SimErrorCode.INTERNAL_ERROR}] Health check raised | error={str(e)[:200]}"
            )
            return {
                "healthy": False,
                "last_checked": checked_at,
                "metadata": {},
                "error": str(e),
            }

    def is_healthy(self) -> bool:
        return bool(self.check_health()["healthy"])

    def get_examples(self, platform: Union[Platform, str]) -> List[Dict[str, str]]:
        return parser_examples(platform)


def _to_price(price: Optional[Union[Decimal, int, str, float]]) -> Optional[Decimal]:
    if price is None:
        return None
    if isinstance(price, float):
        price = str(price)
    try:
        value = Decimal(price) if not isinstance(price, Decimal) else price
    except ArithmeticError:
        raise SimulationError(SimErrorKind.INVALID_VALUE, f"price must be a number, got {price!r}")
    if not value.is_finite() or value <= 0:
        raise SimulationError(SimErrorKind.INVALID_VALUE, "price must be greater than 0")
    return value


# =============================================================================
# Module-Level Engine (HTTP layer only)
# =============================================================================

_engine_instance: Optional[SimulationEngine] = None
_engine_lock = threading.Lock()


def get_simulation_engine() -> SimulationEngine:
    """Process-wide engine used by the HTTP router."""
    global _engine_instance
    with _engine_lock:
        if _engine_instance is None:
            _engine_instance = SimulationEngine(config=get_sim_config())
        return _engine_instance


def reset_simulation_engine() -> None:
    """Drop the process-wide engine (used by tests)."""
    global _engine_instance
    with _engine_lock:
        _engine_instance = None
