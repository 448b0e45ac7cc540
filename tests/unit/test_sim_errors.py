"""
Unit Tests for the Simulation Error Taxonomy

Reliability Level: L6 Critical

Tests:
- Every error kind maps to a stable SIM-xxx code
- SimulationError converts to a failed OperationResult
- OperationResult serializes Decimals, enums and datetimes
"""

import os
import sys
from datetime import datetime, timezone
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.sim_errors import (
    ERROR_CODE_BY_KIND,
    OperationResult,
    SimErrorCode,
    SimErrorKind,
    SimulationError,
    serialize_value,
)
from services.strategy_schema import Platform


class TestErrorCodes:

    def test_every_kind_has_a_code(self) -> None:
        for kind in SimErrorKind:
            assert kind in ERROR_CODE_BY_KIND

    def test_kind_values_are_stable(self) -> None:
        assert SimErrorKind.INSUFFICIENT_BALANCE.value == "InsufficientBalance"
        assert SimErrorKind.MISSING_FIELD.value == "MissingField"
        assert SimErrorKind.INVALID_VALUE.value == "InvalidValue"
        assert SimErrorKind.NOT_FOUND.value == "NotFound"
        assert SimErrorKind.ALREADY_RUNNING.value == "AlreadyRunning"
        assert SimErrorKind.INTERNAL_ERROR.value == "InternalError"

    def test_codes(self) -> None:
        assert ERROR_CODE_BY_KIND[SimErrorKind.INSUFFICIENT_BALANCE] == "SIM-001"
        assert ERROR_CODE_BY_KIND[SimErrorKind.NOT_FOUND] == "SIM-004"
        assert ERROR_CODE_BY_KIND[SimErrorKind.INTERNAL_ERROR] == SimErrorCode.INTERNAL_ERROR


class TestSimulationError:

    def test_message_carries_code(self) -> None:
        error = SimulationError(SimErrorKind.NOT_FOUND, "Position not found")

        assert error.kind == SimErrorKind.NOT_FOUND
        assert error.error_code == "SIM-004"
        assert str(error) == "[SIM-004] Position not found"

    def test_to_result(self) -> None:
        result = SimulationError(SimErrorKind.MISSING_FIELD, "market_id is required").to_result()

        assert result.success is False
        assert result.error == "market_id is required"
        assert result.error_kind == SimErrorKind.MISSING_FIELD
        assert result.error_code == "SIM-002"


class TestOperationResult:

    def test_ok_exposes_data_by_key(self) -> None:
        result = OperationResult.ok(order_id="crypto_1", price=Decimal("95000"))

        assert result.success is True
        assert result["order_id"] == "crypto_1"
        assert result.get("missing", "default") == "default"

    def test_success_to_dict_serializes_values(self) -> None:
        ts = datetime(2026, 1, 1, tzinfo=timezone.utc)
        result = OperationResult.ok(
            price=Decimal("0.52"),
            platform=Platform.POLYMARKET,
            timestamp=ts,
        )

        payload = result.to_dict()

        assert payload == {
            "success": True,
            "price": "0.52",
            "platform": "polymarket",
            "timestamp": ts.isoformat(),
        }

    def test_failure_to_dict(self) -> None:
        payload = OperationResult.fail(SimErrorKind.ALREADY_RUNNING, "Strategy is already running").to_dict()

        assert payload == {
            "success": False,
            "error": "Strategy is already running",
            "error_kind": "AlreadyRunning",
            "error_code": "SIM-005",
        }

    def test_missing_key_raises(self) -> None:
        with pytest.raises(KeyError):
            OperationResult.ok()["nope"]


def test_serialize_nested_structures() -> None:
    value = {"a": [Decimal("1.50"), {"b": Platform.CRYPTO}], "c": None}

    assert serialize_value(value) == {"a": ["1.50", {"b": "crypto"}], "c": None}
