"""
Unit Tests for the LLM Parse Client

Reliability Level: L6 Critical
Input Constraints: httpx.MockTransport, no network
Side Effects: None

Tests:
- Successful JSON reply
- 5xx, timeout and connection failures are retried then reported
- 4xx and non-JSON bodies fail without retry
- Circuit breaker opens after repeated failures
"""

import os
import sys
from typing import List

import httpx

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.infra.llm_client import (
    CircuitState,
    LLMClient,
    LLMErrorCode,
    get_llm_client,
    reset_llm_client,
)


def _client(handler, **kwargs) -> LLMClient:
    client = LLMClient(
        base_url="http://llm.test/",
        base_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )
    client._sleep = lambda seconds: None
    return client


class TestCall:

    def test_success(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"name": "Dip Buy"})

        response = _client(handler).parse_strategy(
            "buy yes below 40 cents", {"platform": "polymarket"}, correlation_id="corr-1",
        )

        assert response.success
        assert response.data == {"name": "Dip Buy"}
        assert response.retries == 0
        assert response.correlation_id == "corr-1"
        assert str(seen[0].url) == "http://llm.test/parse_strategy"
        assert seen[0].headers["X-Correlation-ID"] == "corr-1"

    def test_server_error_retried_then_succeeds(self) -> None:
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request.headers["X-Attempt"])
            if len(attempts) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"ok": True})

        response = _client(handler).call("parse_strategy", {})

        assert response.success
        assert response.retries == 2
        assert attempts == ["1", "2", "3"]

    def test_server_error_exhausts_retries(self) -> None:
        response = _client(lambda request: httpx.Response(500), max_retries=2).call("parse_strategy", {})

        assert not response.success
        assert response.error_code == LLMErrorCode.LLM_004_MAX_RETRIES.value
        assert response.retries == 2
        assert "Server error: 500" in response.error_message

    def test_client_error_not_retried(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(422)

        response = _client(handler).call("parse_strategy", {})

        assert response.error_code == LLMErrorCode.LLM_005_INVALID_RESPONSE.value
        assert len(calls) == 1

    def test_non_json_body(self) -> None:
        response = _client(lambda request: httpx.Response(200, text="not json")).call("parse_strategy", {})

        assert not response.success
        assert response.error_code == LLMErrorCode.LLM_005_INVALID_RESPONSE.value

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        response = _client(handler).call("parse_strategy", {})

        assert response.error_code == LLMErrorCode.LLM_002_TIMEOUT.value

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        response = _client(handler).call("parse_strategy", {})

        assert response.error_code == LLMErrorCode.LLM_001_CONNECTION_FAILED.value
        assert response.error_message.startswith("Max retries exceeded")


class TestCircuitBreaker:

    def test_opens_after_threshold(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400)

        client = _client(handler, failure_threshold=2)

        client.call("parse_strategy", {})
        client.call("parse_strategy", {})
        assert client.circuit.state == CircuitState.OPEN

        response = client.call("parse_strategy", {})

        assert response.error_code == LLMErrorCode.LLM_003_CIRCUIT_OPEN.value
        assert len(calls) == 2

    def test_half_open_after_recovery_timeout(self) -> None:
        client = _client(lambda request: httpx.Response(400), failure_threshold=1, recovery_timeout=0)

        client.call("parse_strategy", {})

        assert client.circuit.state == CircuitState.HALF_OPEN
        assert client.circuit.allow_request()

    def test_success_resets_failures(self) -> None:
        replies = iter([400, 200, 400])

        def handler(request: httpx.Request) -> httpx.Response:
            status = next(replies)
            return httpx.Response(status, json={})

        client = _client(handler, failure_threshold=2)
        for _ in range(3):
            client.call("parse_strategy", {})

        assert client.circuit.state == CircuitState.CLOSED


class TestSingleton:

    def test_get_and_reset(self) -> None:
        reset_llm_client()
        first = get_llm_client("http://llm.test")

        assert get_llm_client("http://other.test") is first

        reset_llm_client()
        assert get_llm_client("http://other.test") is not first
        reset_llm_client()
