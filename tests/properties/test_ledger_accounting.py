"""
============================================================================
Property-Based Tests for Paper Ledger Accounting
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: All generated values are 2dp Decimals

Tests the ledger's accounting identities using Hypothesis.
Minimum 100 iterations per property.

Properties tested:
- available + in_positions == starting balance + realized P&L, always
- Margin equals amount / leverage at USD precision
- A rejected order leaves the balance untouched
- Closing at the entry price returns exactly the committed capital
============================================================================
"""

import os
import sys
from decimal import Decimal, ROUND_HALF_EVEN

from hypothesis import given, settings
from hypothesis import strategies as st

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.paper_ledger import PaperLedger
from services.price_source import MockPriceSource
from services.sim_errors import SimErrorKind, SimulationError


# =============================================================================
# HYPOTHESIS STRATEGIES
# =============================================================================

amount_strategy = st.decimals(
    min_value=Decimal("1.00"), max_value=Decimal("3000.00"),
    places=2, allow_nan=False, allow_infinity=False,
)
leverage_strategy = st.integers(min_value=1, max_value=20).map(Decimal)
crypto_price_strategy = st.decimals(
    min_value=Decimal("1.00"), max_value=Decimal("200000.00"),
    places=2, allow_nan=False, allow_infinity=False,
)
outcome_price_strategy = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("0.99"),
    places=2, allow_nan=False, allow_infinity=False,
)

crypto_open = st.fixed_dictionaries({
    "platform": st.just("crypto"),
    "symbol": st.sampled_from(["BTC/USDT", "ETH/USDT", "SOL/USDT"]),
    "side": st.sampled_from(["buy", "sell"]),
    "amount": amount_strategy,
    "leverage": leverage_strategy,
    "price": crypto_price_strategy,
})
poly_open = st.fixed_dictionaries({
    "platform": st.just("polymarket"),
    "market_id": st.sampled_from(["m1", "m2"]),
    "outcome": st.sampled_from(["yes", "no"]),
    "amount": amount_strategy,
    "price": outcome_price_strategy,
})

# (open request, exit price) pairs; exit prices are drawn per platform
crypto_cycle = st.tuples(crypto_open, crypto_price_strategy)
poly_cycle = st.tuples(poly_open, outcome_price_strategy)


def _ledger() -> PaperLedger:
    return PaperLedger(price_source=MockPriceSource(), starting_balance=Decimal("10000.00"))


def _accounting_holds(ledger: PaperLedger) -> bool:
    return ledger.verify_invariants() == []


# =============================================================================
# PROPERTY: Balance Conservation
# =============================================================================

@settings(max_examples=100)
@given(
    cycles=st.lists(st.one_of(crypto_cycle, poly_cycle), min_size=1, max_size=12),
    close_mask=st.lists(st.booleans(), min_size=12, max_size=12),
)
def test_balance_conservation(cycles, close_mask) -> None:
    """Every open and close preserves the ledger's accounting identities."""
    ledger = _ledger()
    opened = []

    for request, exit_price in cycles:
        try:
            data = ledger.open_position(request)
        except SimulationError as e:
            assert e.kind == SimErrorKind.INSUFFICIENT_BALANCE
            continue
        opened.append((data["order_id"], exit_price))
        assert _accounting_holds(ledger)

    for (order_id, exit_price), close in zip(opened, close_mask):
        if not close:
            continue
        ledger.close_position({"position_id": order_id, "price": exit_price})
        assert _accounting_holds(ledger)
        assert ledger.available >= Decimal("0")

    balance = ledger.get_balance()
    assert balance.available + balance.in_positions == (
        ledger.starting_balance + sum(
            (p.realized_pnl for p in ledger.get_closed_trades()), Decimal("0")
        )
    )


# =============================================================================
# PROPERTY: Margin
# =============================================================================

@settings(max_examples=100)
@given(request=crypto_open)
def test_margin_is_amount_over_leverage(request) -> None:
    """Crypto margin is amount / leverage at cent precision."""
    ledger = _ledger()

    data = ledger.open_position(request)

    expected = (request["amount"] / request["leverage"]).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_EVEN
    )
    assert data["margin"] == expected
    assert ledger.available == Decimal("10000.00") - expected


# =============================================================================
# PROPERTY: Insufficient Balance Guard
# =============================================================================

@settings(max_examples=100)
@given(
    excess=st.decimals(
        min_value=Decimal("0.01"), max_value=Decimal("100000.00"),
        places=2, allow_nan=False, allow_infinity=False,
    ),
    platform=st.sampled_from(["crypto", "polymarket"]),
)
def test_insufficient_balance_leaves_state(excess, platform) -> None:
    """An order whose committed capital exceeds available changes nothing."""
    ledger = _ledger()
    request = {"platform": platform, "amount": Decimal("10000.00") + excess}
    if platform == "crypto":
        request.update(symbol="BTC/USDT", side="buy")
    else:
        request.update(market_id="m1", outcome="yes")

    try:
        ledger.open_position(request)
        raised = None
    except SimulationError as e:
        raised = e.kind

    assert raised == SimErrorKind.INSUFFICIENT_BALANCE
    assert ledger.available == Decimal("10000.00")
    assert ledger.open_position_count() == 0
    assert _accounting_holds(ledger)


# =============================================================================
# PROPERTY: Flat Round Trip
# =============================================================================

@settings(max_examples=100)
@given(request=st.one_of(crypto_open, poly_open))
def test_close_at_entry_is_flat(request) -> None:
    """Closing at the fill price realizes zero P&L."""
    ledger = _ledger()

    data = ledger.open_position(request)
    closed = ledger.close_position({"position_id": data["order_id"], "price": data["price"]})

    assert closed["pnl"] == Decimal("0")
    assert ledger.available == Decimal("10000.00")
    assert ledger.get_balance().in_positions == Decimal("0")
