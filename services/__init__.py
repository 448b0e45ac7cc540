"""
============================================================================
Paper Sandbox - Services Layer
============================================================================

Paper-trading ledger, strategy compiler and copy-trading services behind
the SimulationEngine facade.

Reliability Level: L6 Critical
============================================================================
"""

from services.sim_errors import (
    SimErrorKind,
    SimErrorCode,
    SimulationError,
    OperationResult,
)

from services.sim_config import (
    SimConfig,
    SimConfigurationError,
    load_sim_config,
    get_sim_config,
    reset_sim_config,
)

from services.strategy_schema import (
    Platform,
    StrategyAction,
    RuleSide,
    ConditionType,
    AmountKeyword,
    Condition,
    Rule,
    ParsedStrategy,
    validate_strategy_schema,
)

from services.strategy_parser import (
    StrategyParser,
    RuleBasedStrategyParser,
    LLMStrategyParser,
    StrategyContext,
    parse_strategy,
    create_strategy_parser,
    get_examples,
)

from services.price_source import (
    PriceSource,
    PredictionMarketService,
    MockPriceSource,
)

from services.paper_ledger import (
    PaperLedger,
    CryptoOrder,
    PolymarketOrder,
    CloseRequest,
    CryptoPosition,
    PolymarketPosition,
    Balance,
    PositionSource,
)

from services.copy_trading import (
    CopyConfigRequest,
    CopyConfig,
    CopyTrade,
    SourceTrade,
    SizingMode,
    CopyTradeStatus,
)

from services.strategy_lifecycle import (
    StrategyStatus,
    validate_transition,
)

from services.simulation_engine import (
    SimulationEngine,
    EngineState,
    Strategy,
    StrategyTrade,
    StrategyStats,
    get_simulation_engine,
    reset_simulation_engine,
)

__all__ = [
    # Errors
    "SimErrorKind",
    "SimErrorCode",
    "SimulationError",
    "OperationResult",
    # Config
    "SimConfig",
    "SimConfigurationError",
    "load_sim_config",
    "get_sim_config",
    "reset_sim_config",
    # Strategy Schema
    "Platform",
    "StrategyAction",
    "RuleSide",
    "ConditionType",
    "AmountKeyword",
    "Condition",
    "Rule",
    "ParsedStrategy",
    "validate_strategy_schema",
    # Strategy Parser
    "StrategyParser",
    "RuleBasedStrategyParser",
    "LLMStrategyParser",
    "StrategyContext",
    "parse_strategy",
    "create_strategy_parser",
    "get_examples",
    # Prices
    "PriceSource",
    "PredictionMarketService",
    "MockPriceSource",
    # Ledger
    "PaperLedger",
    "CryptoOrder",
    "PolymarketOrder",
    "CloseRequest",
    "CryptoPosition",
    "PolymarketPosition",
    "Balance",
    "PositionSource",
    # Copy Trading
    "CopyConfigRequest",
    "CopyConfig",
    "CopyTrade",
    "SourceTrade",
    "SizingMode",
    "CopyTradeStatus",
    # Lifecycle
    "StrategyStatus",
    "validate_transition",
    # Engine
    "SimulationEngine",
    "EngineState",
    "Strategy",
    "StrategyTrade",
    "StrategyStats",
    "get_simulation_engine",
    "reset_simulation_engine",
]
