"""
Circuit Breaker -- Reliability primitives for external provider calls
=====================================================================

Every call the pipeline makes to a text-generation or lookup service goes
through a RetryPolicy (timeout + bounded exponential backoff with jitter).
The humanizer additionally keeps one CircuitBreaker per rewrite provider in
a BreakerRegistry that lives for a single article run: once a provider's
breaker opens it stays open until the run ends, and the next run starts
with a fresh registry.

Usage:
    from article_pipeline.circuit_breaker import RetryPolicy, BreakerRegistry

    policy = RetryPolicy(max_retries=2, timeout=60.0, module_name="anthropic")
    draft = await policy.execute(provider.generate_draft, idea, context)

    registry = BreakerRegistry()
    breaker = registry.get_breaker("rewrite:stealthgpt", failure_threshold=1)
    if breaker.can_execute():
        ...
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

logger = logging.getLogger("circuit_breaker")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_FAILURE_THRESHOLD = 1

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 60.0
DEFAULT_EXPONENTIAL_BASE = 2.0
DEFAULT_CALL_TIMEOUT = 120.0


# ===================================================================
# ENUMS
# ===================================================================

class ErrorCode(str, Enum):
    """Structured error codes for provider calls.

    Ranges:
        E1xxx -- Network errors
        E2xxx -- Authentication errors
        E3xxx -- Provider (generation / rewrite service) errors
        E9xxx -- Internal errors
    """

    # Network errors E1xxx
    E1001 = "NETWORK_TIMEOUT"
    E1002 = "NETWORK_UNREACHABLE"
    E1003 = "DNS_RESOLUTION_FAILED"
    E1004 = "CONNECTION_REFUSED"
    E1005 = "SSL_ERROR"

    # Auth errors E2xxx
    E2001 = "AUTH_EXPIRED"
    E2002 = "AUTH_INVALID"
    E2003 = "AUTH_INSUFFICIENT_SCOPE"

    # Provider errors E3xxx
    E3001 = "PROVIDER_RATE_LIMITED"
    E3002 = "PROVIDER_OVERLOADED"
    E3003 = "PROVIDER_CONTEXT_TOO_LONG"
    E3004 = "PROVIDER_INVALID_REQUEST"
    E3005 = "PROVIDER_EMPTY_RESULT"
    E3006 = "PROVIDER_MALFORMED_RESPONSE"
    E3007 = "PROVIDER_NOT_CONFIGURED"
    E3008 = "PROVIDER_SERVER_ERROR"

    # Internal errors E9xxx
    E9001 = "INTERNAL_ERROR"
    E9002 = "CONFIG_MISSING"
    E9003 = "DATA_CORRUPTION"
    E9004 = "DEPENDENCY_UNAVAILABLE"


class CircuitState(str, Enum):
    """A run-scoped breaker only ever moves CLOSED -> OPEN."""
    CLOSED = "closed"
    OPEN = "open"


# ---------------------------------------------------------------------------
# Retry classification
# ---------------------------------------------------------------------------

DEFAULT_RETRYABLE_CODES: Set[ErrorCode] = {
    # network
    ErrorCode.E1001,
    ErrorCode.E1002,
    ErrorCode.E1003,
    ErrorCode.E1004,
    # rate limiting / overload
    ErrorCode.E3001,
    ErrorCode.E3002,
    # empty or garbled output usually succeeds on a second call
    ErrorCode.E3005,
    ErrorCode.E3006,
    ErrorCode.E3008,
    ErrorCode.E9004,
}

# Terminal failures
NON_RETRYABLE_CODES: Set[ErrorCode] = {
    ErrorCode.E2002,
    ErrorCode.E2003,
    ErrorCode.E3003,
    ErrorCode.E3004,
    ErrorCode.E3007,
    ErrorCode.E9002,
    ErrorCode.E9003,
}


# ===================================================================
# ERROR CONTEXT
# ===================================================================

@dataclass
class ErrorContext:
    """A classified provider failure."""

    code: ErrorCode
    message: str
    module: str
    operation: str
    retryable: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.code in NON_RETRYABLE_CODES:
            self.retryable = False

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.code.value}: {self.message} (module={self.module}, op={self.operation})"


# ===================================================================
# ERROR CLASSIFIER
# ===================================================================

def classify_error(
    exception: BaseException,
    module: str = "unknown",
    operation: str = "unknown",
    metadata: Optional[Dict[str, Any]] = None,
) -> ErrorContext:
    """Map a raw exception to a structured ErrorContext.

    Exceptions that already carry an ``ErrorCode`` in a ``code`` attribute
    (ProviderError) keep it.  Otherwise the exception type, HTTP status and
    message decide, falling back to E9001 (INTERNAL_ERROR).
    """
    exc_type = type(exception).__name__
    exc_msg = str(exception).lower()
    meta = dict(metadata or {})
    meta["exception_type"] = exc_type

    explicit = getattr(exception, "code", None)
    status = getattr(exception, "status_code", None) or getattr(exception, "status", None)

    if isinstance(explicit, ErrorCode):
        code = explicit

    # --- Network errors ---
    elif exc_type in ("TimeoutError", "ConnectTimeoutError", "ReadTimeoutError",
                      "ServerTimeoutError", "APITimeoutError"):
        code = ErrorCode.E1001
    elif "timeout" in exc_msg or "timed out" in exc_msg:
        code = ErrorCode.E1001
    elif exc_type == "ConnectionRefusedError" or "connection refused" in exc_msg:
        code = ErrorCode.E1004
    elif "name or service not known" in exc_msg or "getaddrinfo" in exc_msg:
        code = ErrorCode.E1003
    elif "ssl" in exc_msg or "certificate" in exc_msg or exc_type in ("SSLError", "ClientSSLError"):
        code = ErrorCode.E1005
    elif exc_type in ("ConnectionError", "ConnectionResetError", "BrokenPipeError",
                      "ClientConnectionError", "ClientConnectorError",
                      "ServerDisconnectedError", "APIConnectionError"):
        code = ErrorCode.E1002

    # --- Auth errors ---
    elif status == 401 or exc_type == "AuthenticationError" or "unauthorized" in exc_msg:
        code = ErrorCode.E2002
    elif status == 403 or exc_type == "PermissionDeniedError" or "forbidden" in exc_msg:
        code = ErrorCode.E2003

    # --- Provider errors ---
    elif status == 429 or exc_type == "RateLimitError" or "rate limit" in exc_msg or "rate_limit" in exc_msg:
        code = ErrorCode.E3001
    elif status == 529 or "overloaded" in exc_msg:
        code = ErrorCode.E3002
    elif "context" in exc_msg and "too long" in exc_msg:
        code = ErrorCode.E3003
    elif status == 400 or exc_type == "BadRequestError" or "invalid_request" in exc_msg:
        code = ErrorCode.E3004
    elif isinstance(status, int) and status >= 500:
        code = ErrorCode.E3008
    elif exc_type == "InternalServerError":
        code = ErrorCode.E3008

    # --- Internal fallback ---
    elif exc_type == "FileNotFoundError":
        code = ErrorCode.E9002
    elif exc_type == "JSONDecodeError" or "corrupt" in exc_msg:
        code = ErrorCode.E9003
    else:
        code = ErrorCode.E9001

    ctx = ErrorContext(
        code=code,
        message=str(exception),
        module=module,
        operation=operation,
        metadata=meta,
    )
    if getattr(exception, "retryable", True) is False:
        ctx.retryable = False
    return ctx


# ===================================================================
# CIRCUIT BREAKER
# ===================================================================

@dataclass
class CircuitBreaker:
    """Run-scoped breaker for one provider.

    Consecutive failures reaching ``failure_threshold`` open the breaker and
    it rejects every later call; there is no recovery inside a run.
    """

    name: str
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_error: Optional[ErrorContext] = None

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def can_execute(self) -> bool:
        return not self.is_open

    def record_success(self) -> None:
        """A success clears the consecutive-failure count of a closed breaker."""
        if not self.is_open:
            self.failure_count = 0

    def record_failure(self, error: Optional[ErrorContext] = None) -> None:
        if error is not None:
            self.last_error = error
        if self.is_open:
            return
        self.failure_count += 1
        if self.failure_count >= self.failure_threshold:
            self.state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker '%s' OPENED after %d failure(s): %s",
                self.name, self.failure_count, error or "unknown",
            )


# ===================================================================
# RETRY POLICY
# ===================================================================

@dataclass
class RetryPolicy:
    """Timeout + bounded retry with exponential backoff.

    Each attempt is wrapped in ``asyncio.wait_for(..., timeout)``; a timeout
    is classified E1001 and retried like any network error.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    exponential_base: float = DEFAULT_EXPONENTIAL_BASE
    jitter: bool = True
    timeout: Optional[float] = DEFAULT_CALL_TIMEOUT
    retryable_codes: Set[ErrorCode] = field(default_factory=lambda: set(DEFAULT_RETRYABLE_CODES))
    module_name: str = "unknown"

    async def execute(self, func: Callable, *args: Any, **kwargs: Any) -> Any:
        """Await *func* with a per-attempt timeout, retrying transient failures.

        Raises:
            Exception: The last exception if retries are exhausted or the
                error is not retryable.
        """
        for attempt in range(self.max_retries + 1):
            try:
                if self.timeout:
                    result = await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout)
                else:
                    result = await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error_ctx = classify_error(exc, module=self.module_name, operation="retry_execute")
                if not self._should_retry(error_ctx, attempt):
                    logger.warning(
                        "Not retrying %s after attempt %d: %s (code=%s, retryable=%s)",
                        self.module_name, attempt + 1, exc, error_ctx.code.value, error_ctx.retryable,
                    )
                    raise

                delay = self._calculate_delay(attempt)
                logger.info(
                    "Retry %d/%d for %s in %.1fs: %s [%s]",
                    attempt + 1, self.max_retries, self.module_name,
                    delay, exc, error_ctx.code.value,
                )
                await asyncio.sleep(delay)
                continue

            if attempt > 0:
                logger.info(
                    "Succeeded on attempt %d/%d for %s",
                    attempt + 1, self.max_retries + 1, self.module_name,
                )
            return result

    def _calculate_delay(self, attempt: int) -> float:
        """delay = min(base_delay * exponential_base^attempt, max_delay), jittered x0.5-1.5."""
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random()
        return round(delay, 3)

    def _should_retry(self, error: ErrorContext, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        if not error.retryable:
            return False
        return error.code in self.retryable_codes


# ===================================================================
# BREAKER REGISTRY
# ===================================================================

class BreakerRegistry:
    """Named breakers for a single article run; nothing is shared across runs."""

    def __init__(self) -> None:
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get_breaker(self, name: str, failure_threshold: int = DEFAULT_FAILURE_THRESHOLD) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name=name, failure_threshold=failure_threshold)
            self._breakers[name] = breaker
        return breaker
