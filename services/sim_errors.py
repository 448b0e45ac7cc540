"""
============================================================================
Paper Sandbox v1.0.0
Simulation Errors - Stable Error Taxonomy
============================================================================

Reliability Level: L6 Critical
Side Effects: None (pure data)

Every expected domain failure in the sandbox is reported as an
OperationResult carrying a stable error kind, a SIM-xxx code and a
human-readable message naming the offending field or constraint.

ERROR CODES:
    - SIM-001: InsufficientBalance
    - SIM-002: MissingField
    - SIM-003: InvalidValue
    - SIM-004: NotFound
    - SIM-005: AlreadyRunning
    - SIM-099: InternalError (unexpected failure caught at engine boundary)

============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any


def serialize_value(value: Any) -> Any:
    """Render Decimals as strings, enums as values and datetimes as ISO text."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


# =============================================================================
# Enums
# =============================================================================

class SimErrorKind(str, Enum):
    """Stable error kinds surfaced to callers."""
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    MISSING_FIELD = "MissingField"
    INVALID_VALUE = "InvalidValue"
    NOT_FOUND = "NotFound"
    ALREADY_RUNNING = "AlreadyRunning"
    INTERNAL_ERROR = "InternalError"


class SimErrorCode:
    """Simulation-specific error codes for audit logging."""
    INSUFFICIENT_BALANCE = "SIM-001"
    MISSING_FIELD = "SIM-002"
    INVALID_VALUE = "SIM-003"
    NOT_FOUND = "SIM-004"
    ALREADY_RUNNING = "SIM-005"
    INTERNAL_ERROR = "SIM-099"


ERROR_CODE_BY_KIND: Dict[SimErrorKind, str] = {
    SimErrorKind.INSUFFICIENT_BALANCE: SimErrorCode.INSUFFICIENT_BALANCE,
    SimErrorKind.MISSING_FIELD: SimErrorCode.MISSING_FIELD,
    SimErrorKind.INVALID_VALUE: SimErrorCode.INVALID_VALUE,
    SimErrorKind.NOT_FOUND: SimErrorCode.NOT_FOUND,
    SimErrorKind.ALREADY_RUNNING: SimErrorCode.ALREADY_RUNNING,
    SimErrorKind.INTERNAL_ERROR: SimErrorCode.INTERNAL_ERROR,
}


# =============================================================================
# Exception
# =============================================================================

class SimulationError(Exception):
    """
    Domain failure raised inside the ledger and converted to an
    OperationResult at the engine boundary.
    """

    def __init__(self, kind: SimErrorKind, message: str):
        self.kind = kind
        self.error_code = ERROR_CODE_BY_KIND[kind]
        self.message = message
        super().__init__(f"[{self.error_code}] {message}")

    def to_result(self) -> "OperationResult":
        """Convert to a failed OperationResult."""
        return OperationResult.fail(self.kind, self.message)


# =============================================================================
# Result Wrapper
# =============================================================================

@dataclass
class OperationResult:
    """
    Structured result returned by every engine operation.

    On success, `data` holds the operation payload. On failure, `error`
    holds the message and `error_kind`/`error_code` identify it.
    """
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_kind: Optional[SimErrorKind] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, **data: Any) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: SimErrorKind, message: str) -> "OperationResult":
        return cls(
            success=False,
            error=message,
            error_kind=kind,
            error_code=ERROR_CODE_BY_KIND[kind],
        )

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses and logging."""
        if self.success:
            payload = {"success": True}
            payload.update({k: serialize_value(v) for k, v in self.data.items()})
            return payload
        return {
            "success": False,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_code": self.error_code,
        }
