"""
============================================================================
Paper Sandbox v1.0.0
LLM Parse Client
============================================================================

Reliability Level: L6 Critical
Input Constraints: Base URL of the strategy parse service
Side Effects: Outbound HTTP POST requests

Talks to the external service that turns a plain-English description into
a raw strategy document. The strategy parser validates whatever comes back
and falls back to the rule-based compiler when this client fails, so
call() never raises: every failure is an LLMResponse with success=False
and an LLM-xxx code.

Failure handling:
    5xx, timeouts, transport errors   retried with exponential backoff
    4xx, non-JSON body                reported after a single attempt
    repeated failures                 circuit opens, calls short-circuit

The client is synchronous so both parser implementations share one
contract.

ENDPOINT:
POST {STRATEGY_LLM_URL}/parse_strategy

============================================================================
"""

import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


PARSE_STRATEGY_ENDPOINT = "parse_strategy"

MAX_ATTEMPTS = 3
FIRST_BACKOFF_SECONDS = 1.0
BACKOFF_FACTOR = 2.0
BACKOFF_CEILING_SECONDS = 30.0
JITTER_FRACTION = 0.25

BREAKER_FAILURE_LIMIT = 5
BREAKER_COOLDOWN_SECONDS = 60.0

REQUEST_TIMEOUT_SECONDS = 30.0


class LLMErrorCode(str, Enum):
    """Error codes reported by the LLM parse client."""
    LLM_001_CONNECTION_FAILED = "LLM-001-CONNECTION_FAILED"
    LLM_002_TIMEOUT = "LLM-002-TIMEOUT"
    LLM_003_CIRCUIT_OPEN = "LLM-003-CIRCUIT_OPEN"
    LLM_004_MAX_RETRIES = "LLM-004-MAX_RETRIES"
    LLM_005_INVALID_RESPONSE = "LLM-005-INVALID_RESPONSE"


class _RetryableFailure(Exception):
    def __init__(self, code: LLMErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class _TerminalFailure(_RetryableFailure):
    pass


# ============================================================================
# RETRY POLICY
# ============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts to make and how long to wait between them."""
    attempts: int = MAX_ATTEMPTS
    first_backoff: float = FIRST_BACKOFF_SECONDS
    factor: float = BACKOFF_FACTOR
    ceiling: float = BACKOFF_CEILING_SECONDS

    def backoff(self, attempt: int) -> float:
        base = min(self.first_backoff * (self.factor ** attempt), self.ceiling)
        return base + base * random.uniform(0, JITTER_FRACTION)


# ============================================================================
# CIRCUIT BREAKER
# ============================================================================

class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """
    Consecutive-failure breaker.

    Opens once failure_limit calls in a row have failed. After cooldown
    seconds it lets one trial call through (HALF_OPEN); its outcome either
    closes the circuit or re-opens it for another cooldown.
    """

    def __init__(
        self,
        failure_limit: int = BREAKER_FAILURE_LIMIT,
        cooldown: float = BREAKER_COOLDOWN_SECONDS,
    ) -> None:
        self.failure_limit = failure_limit
        self.cooldown = cooldown
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._trial = False

    @property
    def state(self) -> CircuitState:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if self._trial or time.monotonic() - self._opened_at >= self.cooldown:
            if not self._trial:
                self._trial = True
                logger.info("[LLM-CIRCUIT] Cooldown elapsed, allowing trial call")
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def allow_request(self) -> bool:
        return self.state != CircuitState.OPEN

    def record_success(self) -> None:
        if self._opened_at is not None:
            logger.info("[LLM-CIRCUIT] Trial call succeeded, circuit closed")
        self._consecutive_failures = 0
        self._opened_at = None
        self._trial = False

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._trial or self._consecutive_failures >= self.failure_limit:
            self._opened_at = time.monotonic()
            self._trial = False
            logger.warning(
                f"[LLM-CIRCUIT] Circuit open | "
                f"consecutive_failures={self._consecutive_failures} | "
                f"cooldown={self.cooldown}s"
            )


# ============================================================================
# RESPONSE
# ============================================================================

@dataclass
class LLMResponse:
    success: bool
    data: Optional[Dict[str, Any]] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    latency_ms: float = 0.0
    retries: int = 0
    correlation_id: Optional[str] = None


# ============================================================================
# CLIENT
# ============================================================================

class LLMClient:
    """
    HTTP client for the strategy parse service.

        client = LLMClient(base_url="http://llm:8090")
        response = client.parse_strategy("Buy YES below 40 cents", {"platform": "polymarket"})
    """

    def __init__(
        self,
        base_url: str,
        max_retries: int = MAX_ATTEMPTS,
        base_delay: float = FIRST_BACKOFF_SECONDS,
        backoff_multiplier: float = BACKOFF_FACTOR,
        max_delay: float = BACKOFF_CEILING_SECONDS,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        failure_threshold: int = BREAKER_FAILURE_LIMIT,
        recovery_timeout: float = BREAKER_COOLDOWN_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._policy = RetryPolicy(
            attempts=max_retries,
            first_backoff=base_delay,
            factor=backoff_multiplier,
            ceiling=max_delay,
        )
        self._circuit = CircuitBreaker(failure_limit=failure_threshold, cooldown=recovery_timeout)

        logger.info(
            f"[LLM-CLIENT-INIT] base_url={self._base_url} | "
            f"attempts={max_retries} | timeout={timeout}s | "
            f"failure_limit={failure_threshold}"
        )

    @property
    def circuit(self) -> CircuitBreaker:
        return self._circuit

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def _sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def _post_once(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        """Single POST. Raises _RetryableFailure or _TerminalFailure."""
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as http:
                response = http.post(url, json=payload, headers=headers)
        except httpx.TimeoutException:
            raise _RetryableFailure(LLMErrorCode.LLM_002_TIMEOUT, "Request timeout")
        except httpx.TransportError as e:
            raise _RetryableFailure(
                LLMErrorCode.LLM_001_CONNECTION_FAILED, f"Connection failed: {str(e)[:100]}"
            )

        if response.status_code >= 500:
            raise _RetryableFailure(
                LLMErrorCode.LLM_004_MAX_RETRIES, f"Server error: {response.status_code}"
            )
        if response.status_code != 200:
            raise _TerminalFailure(
                LLMErrorCode.LLM_005_INVALID_RESPONSE, f"Client error: {response.status_code}"
            )
        try:
            return response.json()
        except ValueError:
            raise _TerminalFailure(
                LLMErrorCode.LLM_005_INVALID_RESPONSE, "Response body is not valid JSON"
            )

    def call(
        self,
        endpoint: str,
        payload: Dict[str, Any],
        correlation_id: Optional[str] = None,
    ) -> LLMResponse:
        """POST payload to endpoint under the retry policy and circuit breaker."""
        if not self._circuit.allow_request():
            logger.warning(
                f"[{LLMErrorCode.LLM_003_CIRCUIT_OPEN.value}] Rejected {endpoint} | "
                f"correlation_id={correlation_id}"
            )
            return LLMResponse(
                success=False,
                error_code=LLMErrorCode.LLM_003_CIRCUIT_OPEN.value,
                error_message="Parse service unavailable (circuit open)",
                correlation_id=correlation_id,
            )

        url = f"{self._base_url}/{endpoint}"
        started = time.monotonic()
        attempts = self._policy.attempts
        last_failure = _RetryableFailure(LLMErrorCode.LLM_004_MAX_RETRIES, "no attempt made")

        for attempt in range(attempts):
            headers = {"X-Correlation-ID": correlation_id or "", "X-Attempt": str(attempt + 1)}
            try:
                data = self._post_once(url, payload, headers)
            except _TerminalFailure as failure:
                self._circuit.record_failure()
                logger.warning(
                    f"[{failure.code.value}] {endpoint} | {failure.message} | "
                    f"correlation_id={correlation_id}"
                )
                return LLMResponse(
                    success=False,
                    error_code=failure.code.value,
                    error_message=failure.message,
                    latency_ms=_elapsed_ms(started),
                    retries=attempt,
                    correlation_id=correlation_id,
                )
            except _RetryableFailure as failure:
                last_failure = failure
                logger.warning(
                    f"[LLM-RETRY] {endpoint} | {failure.message} | "
                    f"attempt={attempt + 1}/{attempts}"
                )
                if attempt + 1 < attempts:
                    self._sleep(self._policy.backoff(attempt))
                continue

            self._circuit.record_success()
            latency_ms = _elapsed_ms(started)
            logger.info(
                f"[LLM-OK] {endpoint} | latency={latency_ms:.1f}ms | "
                f"retries={attempt} | correlation_id={correlation_id}"
            )
            return LLMResponse(
                success=True,
                data=data,
                latency_ms=latency_ms,
                retries=attempt,
                correlation_id=correlation_id,
            )

        self._circuit.record_failure()
        latency_ms = _elapsed_ms(started)
        logger.error(
            f"[{LLMErrorCode.LLM_004_MAX_RETRIES.value}] {endpoint} | "
            f"last_error={last_failure.message} | latency={latency_ms:.1f}ms | "
            f"correlation_id={correlation_id}"
        )
        return LLMResponse(
            success=False,
            error_code=last_failure.code.value,
            error_message=f"Max retries exceeded: {last_failure.message}",
            latency_ms=latency_ms,
            retries=attempts,
            correlation_id=correlation_id,
        )

    def parse_strategy(
        self,
        description: str,
        context: Dict[str, Any],
        correlation_id: Optional[str] = None,
    ) -> LLMResponse:
        return self.call(
            PARSE_STRATEGY_ENDPOINT,
            {"description": description, "context": context},
            correlation_id=correlation_id,
        )


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000


# ============================================================================
# SINGLETON
# ============================================================================

_client_instance: Optional[LLMClient] = None


def get_llm_client(base_url: str, timeout: float = REQUEST_TIMEOUT_SECONDS) -> LLMClient:
    """Process-wide client; the first caller's settings win."""
    global _client_instance
    if _client_instance is None:
        _client_instance = LLMClient(base_url=base_url, timeout=timeout)
    return _client_instance


def reset_llm_client() -> None:
    global _client_instance
    _client_instance = None
