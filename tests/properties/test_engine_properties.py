"""
============================================================================
Property-Based Tests for the Simulation Engine and Strategy Parser
============================================================================

Reliability Level: L6 Critical

Tests engine-level guarantees using Hypothesis.
Minimum 100 iterations per property.

Properties tested:
- Reset always returns the account to its initial state
- The rule parser is deterministic and never returns an empty rule list
- Stop and delete are idempotent for any id and any repetition count
- Failed operations never change the balance
============================================================================
"""

import os
import sys
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.sim_config import SimConfig
from services.simulation_engine import SimulationEngine
from services.strategy_parser import parse_strategy


# =============================================================================
# HYPOTHESIS STRATEGIES
# =============================================================================

POLYMARKET_FRAGMENTS = [
    "buy yes below 40 cents",
    "buy no under 30¢",
    "sell half at 20% profit",
    "sell all at 35%",
    "stop loss at 15%",
    "dca $20 every hour into yes",
    "take profit at 25%",
    "hold steady",
]
CRYPTO_FRAGMENTS = [
    "buy btc below $90,000",
    "sell above $100,000",
    "short sol if it rises 15%",
    "cover at -8%",
    "dca $50 into eth every 4 hours",
    "stop loss at -10%",
    "take profit at 20%",
    "wait patiently",
]
SEPARATORS = [", ", "; ", " and ", " then "]


@st.composite
def descriptions(draw):
    fragments = draw(st.sampled_from([POLYMARKET_FRAGMENTS, CRYPTO_FRAGMENTS]))
    parts = draw(st.lists(st.sampled_from(fragments), min_size=1, max_size=4))
    separator = draw(st.sampled_from(SEPARATORS))
    return separator.join(parts), len(parts)


open_requests = st.one_of(
    st.fixed_dictionaries({
        "platform": st.just("crypto"),
        "symbol": st.sampled_from(["BTC/USDT", "ETH/USDT"]),
        "side": st.sampled_from(["buy", "sell"]),
        "amount": st.integers(min_value=1, max_value=2000),
        "leverage": st.integers(min_value=1, max_value=10),
    }),
    st.fixed_dictionaries({
        "platform": st.just("polymarket"),
        "market_id": st.just("m1"),
        "outcome": st.sampled_from(["yes", "no"]),
        "amount": st.integers(min_value=1, max_value=2000),
    }),
)


def _engine() -> SimulationEngine:
    return SimulationEngine(config=SimConfig())


# =============================================================================
# PROPERTY: Reset Determinism
# =============================================================================

@settings(max_examples=100, deadline=None)
@given(requests=st.lists(open_requests, min_size=0, max_size=8), strategies=st.integers(0, 3))
def test_reset_restores_initial_state(requests, strategies) -> None:
    """After any activity, reset yields the starting balance and empty registries."""
    engine = _engine()
    for request in requests:
        engine.open_position(request)
    for _ in range(strategies):
        strategy_id = engine.create_strategy("crypto", "buy btc below $90,000")["strategy_id"]
        engine.start_strategy(strategy_id)
    engine.create_copy_config({"platform": "crypto", "target_wallet": "0xabc"})

    assert engine.reset_account().success

    balance = engine.get_balance()
    assert (balance.total, balance.available, balance.in_positions, balance.pnl) == (
        Decimal("10000.00"), Decimal("10000.00"), Decimal("0.00"), Decimal("0.00"),
    )
    assert engine.get_positions() == []
    assert engine.get_closed_trades() == []
    assert engine.get_strategies() == []
    assert engine.get_copy_configs() == []
    assert engine.get_copy_trades() == []
    assert engine.is_healthy()


# =============================================================================
# PROPERTY: Parser Determinism
# =============================================================================

@settings(max_examples=100)
@given(drawn=descriptions())
def test_parser_is_deterministic(drawn) -> None:
    """Parsing the same text twice yields the same canonical strategy."""
    text, clause_count = drawn

    first = parse_strategy(text)
    second = parse_strategy(text)

    assert first.to_canonical_json() == second.to_canonical_json()
    assert 1 <= len(first.rules) <= clause_count


@settings(max_examples=100)
@given(text=st.text(max_size=80))
def test_parser_never_raises(text) -> None:
    """Arbitrary text always compiles to at least one rule."""
    strategy = parse_strategy(text)

    assert len(strategy.rules) >= 1


# =============================================================================
# PROPERTY: Idempotent Teardown
# =============================================================================

@settings(max_examples=100)
@given(repeats=st.integers(min_value=1, max_value=5), known=st.booleans())
def test_stop_and_delete_are_idempotent(repeats, known) -> None:
    """Stop and delete succeed for any id, any number of times."""
    engine = _engine()
    strategy_id = "strategy_404"
    if known:
        strategy_id = engine.create_strategy("crypto", "buy btc below $90,000")["strategy_id"]
        engine.start_strategy(strategy_id)

    for _ in range(repeats):
        assert engine.stop_strategy(strategy_id).success
    for _ in range(repeats):
        assert engine.delete_strategy(strategy_id).success
        assert engine.delete_copy_config("copy_404").success

    assert engine.get_strategy(strategy_id) is None


# =============================================================================
# PROPERTY: Failures Leave The Balance
# =============================================================================

@settings(max_examples=100)
@given(
    amount=st.integers(min_value=10001, max_value=10 ** 7),
    platform=st.sampled_from(["crypto", "polymarket"]),
)
def test_rejected_open_leaves_balance(amount, platform) -> None:
    """An over-sized order fails with InsufficientBalance and no side effects."""
    engine = _engine()
    request = {"platform": platform, "amount": amount}
    if platform == "crypto":
        request.update(symbol="BTC/USDT", side="buy", leverage=1)
    else:
        request.update(market_id="m1", outcome="yes")

    result = engine.open_position(request)

    assert result.error_code == "SIM-001"
    assert engine.get_balance().available == Decimal("10000.00")
    assert engine.check_health()["metadata"]["open_positions"] == 0
