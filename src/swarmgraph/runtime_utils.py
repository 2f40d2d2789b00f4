"""Retry/backoff around unreliable external calls and runtime event logging."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .config import get_call_backoff_base_seconds, get_call_max_retries, runtime_event_logs_enabled
from .llm import Backend, CompletionFn, CompletionOptions, complete

_logger = logging.getLogger(__name__)

T = TypeVar("T")
SleepFn = Callable[[float], Awaitable[Any]]

_NON_RETRYABLE_STATUS_CODES = frozenset({400, 401, 403, 404, 422})
_NON_RETRYABLE_ERROR_NAMES = frozenset(
    {
        "AuthenticationError",
        "PermissionDeniedError",
        "BadRequestError",
        "NotFoundError",
        "UnprocessableEntityError",
    }
)


def log_runtime_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Emit one low-noise structured runtime event when enabled."""
    if not runtime_event_logs_enabled():
        return
    rendered = " ".join(f"{key}={fields[key]!r}" for key in sorted(fields))
    logger.info("runtime_event=%s %s", event, rendered)


def _status_code(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def is_non_retryable_error(exc: BaseException) -> bool:
    """Best-effort check for auth/validation failures that will never succeed on retry."""
    if _status_code(exc) in _NON_RETRYABLE_STATUS_CODES:
        return True
    return any(cls.__name__ in _NON_RETRYABLE_ERROR_NAMES for cls in type(exc).__mro__)


def backoff_delay(attempt: int, base_seconds: float | None = None) -> float:
    """Seconds to wait after failed attempt ``attempt`` (0-indexed)."""
    base = get_call_backoff_base_seconds() if base_seconds is None else base_seconds
    return base * (2**attempt)


async def call_with_retries(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int | None = None,
    backoff_base_seconds: float | None = None,
    sleep: SleepFn | None = None,
    retry_on: Callable[[BaseException], bool] | None = None,
    description: str = "call",
) -> T:
    """Await ``fn()`` up to ``max_retries`` times with exponential backoff.

    The last error is re-raised once attempts are exhausted. Errors rejected by
    ``retry_on`` (non-retryable auth/validation errors by default) are raised
    immediately.
    """
    attempts = get_call_max_retries() if max_retries is None else max_retries
    if attempts < 1:
        raise ValueError(f"max_retries must be at least 1, got {attempts}")
    sleep_fn = sleep or asyncio.sleep
    should_retry = retry_on or (lambda exc: not is_non_retryable_error(exc))

    last_error: Exception | None = None
    for attempt in range(attempts):
        try:
            return await fn()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            last_error = exc
            if not should_retry(exc):
                log_runtime_event(
                    _logger,
                    "call_not_retryable",
                    description=description,
                    attempt=attempt + 1,
                    error=type(exc).__name__,
                )
                raise
            if attempt + 1 >= attempts:
                break
            delay = backoff_delay(attempt, backoff_base_seconds)
            _logger.warning(
                "%s failed (attempt %s/%s), retrying in %.1fs: %s",
                description,
                attempt + 1,
                attempts,
                delay,
                exc,
            )
            log_runtime_event(_logger, "call_retry", description=description, attempt=attempt + 1, delay=delay)
            await sleep_fn(delay)

    log_runtime_event(_logger, "call_retries_exhausted", description=description, attempts=attempts)
    if last_error is None:
        raise RuntimeError(f"{description} made no attempts")
    raise last_error


async def complete_with_retries(
    backend: Backend,
    system_prompt: str,
    user_message: str,
    options: CompletionOptions | None = None,
    *,
    max_retries: int | None = None,
    sleep: SleepFn | None = None,
    complete_fn: CompletionFn | None = None,
) -> str:
    """Retryable completion call scoped to one external request."""
    completion = complete_fn or complete

    async def _attempt() -> str:
        return await completion(backend, system_prompt, user_message, options)

    return await call_with_retries(
        _attempt,
        max_retries=max_retries,
        sleep=sleep,
        description=f"completion[{backend.label}]",
    )
