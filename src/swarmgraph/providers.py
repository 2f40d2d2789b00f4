"""Provider failover: pick the first backend that answers a liveness probe."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from .config import get_provider_api_key, get_provider_order
from .llm import Backend, CompletionFn, CompletionOptions, complete
from .runtime_utils import log_runtime_event

_logger = logging.getLogger(__name__)

PROBE_SYSTEM_PROMPT = "Reply with OK"
PROBE_USER_MESSAGE = "test"
PROBE_OPTIONS = CompletionOptions(temperature=0.0, max_tokens=5)


class NoBackendAvailableError(RuntimeError):
    """Raised when every candidate backend fails its liveness probe."""


def default_candidates() -> list[Backend]:
    """Credentialed backends in configured priority order."""
    return [Backend.from_env(provider) for provider in get_provider_order() if get_provider_api_key(provider)]


async def probe_backend(backend: Backend, *, complete_fn: CompletionFn | None = None) -> None:
    """Issue the smallest possible completion; raises when the backend is unusable."""
    completion = complete_fn or complete
    await completion(backend, PROBE_SYSTEM_PROMPT, PROBE_USER_MESSAGE, PROBE_OPTIONS)


async def resolve_backend(
    candidates: Sequence[Backend] | None = None,
    *,
    complete_fn: CompletionFn | None = None,
) -> Backend:
    """Return the first candidate that passes the liveness probe.

    Candidates are tried strictly in order. The chosen backend is meant to be
    fixed for a whole workflow run.
    """
    ordered = list(default_candidates() if candidates is None else candidates)
    if not ordered:
        raise NoBackendAvailableError("No credentialed backend configured. Add a provider API key.")

    failures: list[str] = []
    for backend in ordered:
        try:
            await probe_backend(backend, complete_fn=complete_fn)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            failures.append(f"{backend.label}: {type(exc).__name__}")
            log_runtime_event(_logger, "provider_probe", backend=backend.label, status="failed", error=str(exc))
            continue
        log_runtime_event(_logger, "provider_selected", backend=backend.label, skipped=len(failures))
        return backend

    raise NoBackendAvailableError("No working backend found (" + "; ".join(failures) + ").")
