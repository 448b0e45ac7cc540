# ============================================================================
# Paper Sandbox v1.0.0
# Sandbox API Endpoints - Paper Trading, Strategies, Copy Trading
# ============================================================================
#
# Reliability Level: L6 Critical
# Purpose: Thin HTTP surface over the SimulationEngine
#
# Endpoints (prefix /api/v1/sandbox):
#   POST   /trade                         - Open a position
#   POST   /close                         - Close a position
#   GET    /positions                     - Open positions (marked)
#   GET    /closed-trades                 - Closed position log
#   GET    /balance                       - Account balance
#   GET    /simulation                    - Simulation mode flag
#   POST   /simulation                    - Set simulation mode flag
#   POST   /reset                         - Reset the account
#   GET    /health                        - Engine health
#   GET    /strategies/examples           - Example descriptions
#   POST   /strategies                    - Compile and register a strategy
#   GET    /strategies                    - List strategies
#   GET    /strategies/{id}               - Strategy detail
#   POST   /strategies/{id}/start         - Start
#   POST   /strategies/{id}/stop          - Stop (idempotent)
#   DELETE /strategies/{id}               - Delete (idempotent)
#   GET    /strategies/{id}/trades        - Strategy trade log
#   POST   /strategies/{id}/execute       - Execute one rule
#   POST   /strategies/{id}/evaluate      - Evaluate rules against a price
#   POST   /copy-configs                  - Create copy config (disabled)
#   GET    /copy-configs                  - List copy configs
#   POST   /copy-configs/{id}/toggle      - Enable/disable
#   DELETE /copy-configs/{id}             - Delete (idempotent)
#   POST   /copy-configs/{id}/trades      - Mirror one source trade
#   GET    /copy-trades                   - Copy trade log
#
# Error Mapping:
#   NotFound       -> 404
#   AlreadyRunning -> 409
#   InternalError  -> 500
#   other kinds    -> 400
#   Body: {"success": false, "error": ..., "error_kind": ..., "error_code": ...}
#
# ============================================================================

import logging
import uuid
from decimal import Decimal
from typing import Optional, Dict, Any, List

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from services.simulation_engine import SimulationEngine, get_simulation_engine
from services.sim_errors import OperationResult, SimErrorKind
from services.strategy_schema import Platform

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# Router
# ============================================================================

router = APIRouter()


STATUS_BY_KIND: Dict[SimErrorKind, int] = {
    SimErrorKind.NOT_FOUND: 404,
    SimErrorKind.ALREADY_RUNNING: 409,
    SimErrorKind.INTERNAL_ERROR: 500,
    SimErrorKind.INSUFFICIENT_BALANCE: 400,
    SimErrorKind.MISSING_FIELD: 400,
    SimErrorKind.INVALID_VALUE: 400,
}


def get_sandbox_engine() -> SimulationEngine:
    """Engine dependency; tests override it with an isolated engine."""
    return get_simulation_engine()


def _respond(result: OperationResult, correlation_id: str) -> Any:
    if result.success:
        return result.to_dict()

    status_code = STATUS_BY_KIND.get(result.error_kind, 400)
    logger.info(
        f"[SANDBOX-API] Request rejected | "
        f"status={status_code} | "
        f"error_code={result.error_code} | "
        f"error={result.error} | "
        f"correlation_id={correlation_id}"
    )
    return JSONResponse(status_code=status_code, content=result.to_dict())


def _not_found(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content=OperationResult.fail(SimErrorKind.NOT_FOUND, message).to_dict(),
    )


def _correlation(header_value: Optional[str]) -> str:
    return header_value or str(uuid.uuid4())


def _invalid_platform(platform: Optional[str]) -> Optional[JSONResponse]:
    if platform is None:
        return None
    try:
        Platform(platform)
    except ValueError:
        return JSONResponse(
            status_code=400,
            content=OperationResult.fail(
                SimErrorKind.INVALID_VALUE,
                f"platform must be 'crypto' or 'polymarket', got {platform!r}",
            ).to_dict(),
        )
    return None


# ============================================================================
# Request Models
# ============================================================================
#
# Fields are optional at the HTTP layer so that missing or malformed
# domain fields come back as MissingField/InvalidValue from the engine
# instead of a generic 422.

class TradeRequest(BaseModel):
    """Open a crypto or polymarket position."""
    platform: Optional[str] = Field(default="crypto", description="crypto | polymarket")
    amount: Optional[Decimal] = Field(default=None, description="USD amount")
    symbol: Optional[str] = None
    side: Optional[str] = Field(default=None, description="buy (long) | sell (short)")
    direction: Optional[str] = Field(default=None, description="long | short")
    leverage: Optional[Decimal] = None
    market_id: Optional[str] = None
    outcome: Optional[str] = Field(default=None, description="yes | no")
    price: Optional[Decimal] = Field(default=None, description="Fill price override")


class CloseBody(BaseModel):
    """Close by position_id, (symbol, direction) or (market_id, outcome)."""
    position_id: Optional[str] = None
    platform: Optional[str] = None
    symbol: Optional[str] = None
    direction: Optional[str] = None
    market_id: Optional[str] = None
    outcome: Optional[str] = None
    price: Optional[Decimal] = None


class SimulationModeRequest(BaseModel):
    enabled: bool


class CreateStrategyRequest(BaseModel):
    platform: str = Field(..., description="crypto | polymarket")
    description: str = Field(..., description="Plain-English strategy")
    symbol: Optional[str] = None
    market_id: Optional[str] = None
    capital: Optional[Decimal] = None


class ExecuteRuleRequest(BaseModel):
    rule_index: int = Field(..., ge=0)
    price: Optional[Decimal] = None


class EvaluateRequest(BaseModel):
    price: Optional[Decimal] = None


class CreateCopyConfigRequest(BaseModel):
    platform: Optional[str] = None
    target_wallet: Optional[str] = None
    target_label: Optional[str] = None
    sizing_mode: Optional[str] = None
    fixed_size: Optional[Decimal] = None
    proportion_multiplier: Optional[Decimal] = None
    portfolio_percentage: Optional[Decimal] = None
    max_position_size: Optional[Decimal] = None
    min_trade_size: Optional[Decimal] = None
    stop_loss_percent: Optional[Decimal] = None
    take_profit_percent: Optional[Decimal] = None


class ToggleRequest(BaseModel):
    enabled: bool


class SourceTradeRequest(BaseModel):
    """A trade made by the copied wallet."""
    platform: Optional[str] = None
    symbol: Optional[str] = None
    market_id: Optional[str] = None
    outcome: Optional[str] = None
    side: Optional[str] = None
    size: Optional[Decimal] = None
    price: Optional[Decimal] = None


# ============================================================================
# Positions & Account
# ============================================================================

@router.post("/trade", summary="Open Position", tags=["Sandbox"])
def open_trade(
    body: TradeRequest,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    result = engine.open_position(body.model_dump(exclude_none=True), correlation_id)
    return _respond(result, correlation_id)


@router.post("/close", summary="Close Position", tags=["Sandbox"])
def close_trade(
    body: CloseBody,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    result = engine.close_position(body.model_dump(exclude_none=True), correlation_id)
    return _respond(result, correlation_id)


@router.get("/positions", summary="Open Positions", tags=["Sandbox"])
def list_positions(
    platform: Optional[str] = Query(None),
    engine: SimulationEngine = Depends(get_sandbox_engine),
):
    invalid = _invalid_platform(platform)
    if invalid is not None:
        return invalid
    positions = engine.get_positions(platform)
    return {"success": True, "positions": [p.to_dict() for p in positions]}


@router.get("/closed-trades", summary="Closed Trades", tags=["Sandbox"])
def list_closed_trades(
    platform: Optional[str] = Query(None),
    engine: SimulationEngine = Depends(get_sandbox_engine),
):
    invalid = _invalid_platform(platform)
    if invalid is not None:
        return invalid
    trades = engine.get_closed_trades(platform)
    return {"success": True, "trades": [p.to_dict() for p in trades]}


@router.get("/balance", summary="Account Balance", tags=["Sandbox"])
def get_balance(engine: SimulationEngine = Depends(get_sandbox_engine)) -> Dict[str, Any]:
    return {"success": True, "balance": engine.get_balance().to_dict()}


@router.get("/simulation", summary="Simulation Mode", tags=["Sandbox"])
def get_simulation(engine: SimulationEngine = Depends(get_sandbox_engine)) -> Dict[str, Any]:
    return {"success": True, **engine.get_simulation_status()}


@router.post("/simulation", summary="Set Simulation Mode", tags=["Sandbox"])
def set_simulation(
    body: SimulationModeRequest,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    return _respond(engine.set_simulation_mode(body.enabled, correlation_id), correlation_id)


@router.post("/reset", summary="Reset Account", tags=["Sandbox"])
def reset_account(
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    return _respond(engine.reset_account(correlation_id), correlation_id)


@router.get("/health", summary="Sandbox Health", tags=["Sandbox"])
def sandbox_health(engine: SimulationEngine = Depends(get_sandbox_engine)):
    health = engine.check_health()
    if not health["healthy"]:
        return JSONResponse(status_code=503, content=health)
    return health


# ============================================================================
# Strategies
# ============================================================================

@router.get("/strategies/examples", summary="Strategy Examples", tags=["Strategies"])
def strategy_examples(
    platform: str = Query("polymarket"),
    engine: SimulationEngine = Depends(get_sandbox_engine),
):
    invalid = _invalid_platform(platform)
    if invalid is not None:
        return invalid
    return {"success": True, "examples": engine.get_examples(platform)}


@router.post("/strategies", summary="Create Strategy", tags=["Strategies"])
def create_strategy(
    body: CreateStrategyRequest,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    result = engine.create_strategy(
        platform=body.platform,
        description=body.description,
        symbol=body.symbol,
        market_id=body.market_id,
        capital=body.capital,
        correlation_id=correlation_id,
    )
    return _respond(result, correlation_id)


@router.get("/strategies", summary="List Strategies", tags=["Strategies"])
def list_strategies(engine: SimulationEngine = Depends(get_sandbox_engine)) -> Dict[str, Any]:
    return {"success": True, "strategies": [s.to_dict() for s in engine.get_strategies()]}


@router.get("/strategies/{strategy_id}", summary="Strategy Detail", tags=["Strategies"])
def get_strategy(
    strategy_id: str,
    engine: SimulationEngine = Depends(get_sandbox_engine),
):
    strategy = engine.get_strategy(strategy_id)
    if strategy is None:
        return _not_found("Strategy not found")
    return {"success": True, "strategy": strategy.to_dict()}


@router.post("/strategies/{strategy_id}/start", summary="Start Strategy", tags=["Strategies"])
def start_strategy(
    strategy_id: str,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    return _respond(engine.start_strategy(strategy_id, correlation_id), correlation_id)


@router.post("/strategies/{strategy_id}/stop", summary="Stop Strategy", tags=["Strategies"])
def stop_strategy(
    strategy_id: str,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    return _respond(engine.stop_strategy(strategy_id, correlation_id), correlation_id)


@router.delete("/strategies/{strategy_id}", summary="Delete Strategy", tags=["Strategies"])
def delete_strategy(
    strategy_id: str,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    return _respond(engine.delete_strategy(strategy_id, correlation_id), correlation_id)


@router.get("/strategies/{strategy_id}/trades", summary="Strategy Trades", tags=["Strategies"])
def strategy_trades(
    strategy_id: str,
    engine: SimulationEngine = Depends(get_sandbox_engine),
) -> Dict[str, Any]:
    trades: List[Dict[str, Any]] = [t.to_dict() for t in engine.get_strategy_trades(strategy_id)]
    return {"success": True, "trades": trades}


@router.post("/strategies/{strategy_id}/execute", summary="Execute Rule", tags=["Strategies"])
def execute_rule(
    strategy_id: str,
    body: ExecuteRuleRequest,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    result = engine.execute_strategy_rule(
        strategy_id, body.rule_index, price=body.price, correlation_id=correlation_id
    )
    return _respond(result, correlation_id)


@router.post("/strategies/{strategy_id}/evaluate", summary="Evaluate Strategy", tags=["Strategies"])
def evaluate_strategy(
    strategy_id: str,
    body: EvaluateRequest,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    result = engine.evaluate_strategy(strategy_id, price=body.price, correlation_id=correlation_id)
    return _respond(result, correlation_id)


# ============================================================================
# Copy Trading
# ============================================================================

@router.post("/copy-configs", summary="Create Copy Config", tags=["Copy Trading"])
def create_copy_config(
    body: CreateCopyConfigRequest,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    result = engine.create_copy_config(body.model_dump(exclude_none=True), correlation_id)
    return _respond(result, correlation_id)


@router.get("/copy-configs", summary="List Copy Configs", tags=["Copy Trading"])
def list_copy_configs(
    platform: Optional[str] = Query(None),
    engine: SimulationEngine = Depends(get_sandbox_engine),
):
    invalid = _invalid_platform(platform)
    if invalid is not None:
        return invalid
    configs = engine.get_copy_configs(platform)
    return {"success": True, "configs": [c.to_dict() for c in configs]}


@router.post("/copy-configs/{config_id}/toggle", summary="Toggle Copy Config", tags=["Copy Trading"])
def toggle_copy_config(
    config_id: str,
    body: ToggleRequest,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    result = engine.toggle_copy_config(config_id, body.enabled, correlation_id)
    return _respond(result, correlation_id)


@router.delete("/copy-configs/{config_id}", summary="Delete Copy Config", tags=["Copy Trading"])
def delete_copy_config(
    config_id: str,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    return _respond(engine.delete_copy_config(config_id, correlation_id), correlation_id)


@router.post("/copy-configs/{config_id}/trades", summary="Process Source Trade", tags=["Copy Trading"])
def process_copy_trade(
    config_id: str,
    body: SourceTradeRequest,
    engine: SimulationEngine = Depends(get_sandbox_engine),
    x_correlation_id: Optional[str] = Header(None),
):
    correlation_id = _correlation(x_correlation_id)
    result = engine.process_copy_trade(
        config_id, body.model_dump(exclude_none=True), correlation_id
    )
    return _respond(result, correlation_id)


@router.get("/copy-trades", summary="Copy Trades", tags=["Copy Trading"])
def list_copy_trades(
    config_id: Optional[str] = Query(None),
    platform: Optional[str] = Query(None),
    engine: SimulationEngine = Depends(get_sandbox_engine),
):
    invalid = _invalid_platform(platform)
    if invalid is not None:
        return invalid
    trades = engine.get_copy_trades(config_id=config_id, platform=platform)
    return {"success": True, "trades": [t.to_dict() for t in trades]}
