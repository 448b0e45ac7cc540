"""
============================================================================
Paper Sandbox v1.0.0
Strategy Lifecycle State Machine
============================================================================

Reliability Level: L6 Critical
Traceability: All transitions logged with correlation_id

STRATEGY LIFECYCLE:
    PAUSED  → RUNNING (start)
    RUNNING → STOPPED (stop)
    STOPPED → RUNNING (restart)

    Deletion is allowed from any state and implicitly stops first.
    Stopping an already stopped strategy is a no-op.

ERROR CODES:
    - SIM-030: Invalid state transition attempted

============================================================================
"""

from typing import Optional, Dict, List, Tuple
from enum import Enum
import logging

# Configure module logger
logger = logging.getLogger(__name__)


class StrategyStateErrorCode:
    """Lifecycle-specific error codes for audit logging."""
    INVALID_TRANSITION = "SIM-030"


class StrategyStatus(str, Enum):
    """Strategy lifecycle states."""
    PAUSED = "paused"
    RUNNING = "running"
    STOPPED = "stopped"


VALID_TRANSITIONS: Dict[StrategyStatus, List[StrategyStatus]] = {
    StrategyStatus.PAUSED: [StrategyStatus.RUNNING],
    StrategyStatus.RUNNING: [StrategyStatus.STOPPED],
    StrategyStatus.STOPPED: [StrategyStatus.RUNNING],
}


def validate_transition(
    current: StrategyStatus,
    target: StrategyStatus,
    correlation_id: Optional[str] = None
) -> Tuple[bool, Optional[str]]:
    """
    Check a lifecycle transition against VALID_TRANSITIONS.

    Returns:
        (True, None) if allowed, (False, "SIM-030") otherwise
    """
    valid_targets = VALID_TRANSITIONS.get(current, [])

    if target not in valid_targets:
        valid_str = "/".join(t.value for t in valid_targets) or "NONE"
        logger.warning(
            f"[{StrategyStateErrorCode.INVALID_TRANSITION}] "
            f"Invalid strategy transition: {current.value} → {target.value} | "
            f"valid={valid_str} | "
            f"correlation_id={correlation_id}"
        )
        return (False, StrategyStateErrorCode.INVALID_TRANSITION)

    logger.debug(
        f"[STRATEGY-STATE] Transition validated: {current.value} → {target.value} | "
        f"correlation_id={correlation_id}"
    )
    return (True, None)


def can_start(current: StrategyStatus) -> bool:
    return StrategyStatus.RUNNING in VALID_TRANSITIONS.get(current, [])


def stop_target(current: StrategyStatus) -> Optional[StrategyStatus]:
    """Target for a stop request, or None when stopping is a no-op."""
    if StrategyStatus.STOPPED in VALID_TRANSITIONS.get(current, []):
        return StrategyStatus.STOPPED
    return None
