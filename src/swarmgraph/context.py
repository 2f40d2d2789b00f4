"""Memory/context injection seam for node system prompts."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

_logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_TOP_K = 3


class ContextInjector(Protocol):
    async def __call__(self, base_prompt: str, query_text: str, top_k: int = DEFAULT_CONTEXT_TOP_K) -> str: ...


async def passthrough_context(base_prompt: str, query_text: str, top_k: int = DEFAULT_CONTEXT_TOP_K) -> str:
    """Injector used when no memory store is wired in."""
    del query_text, top_k
    return base_prompt


async def safe_inject_context(
    injector: ContextInjector | None,
    base_prompt: str,
    query_text: str,
    top_k: int = DEFAULT_CONTEXT_TOP_K,
) -> str:
    """Apply ``injector``; memory is optional, so failures keep the base prompt."""
    if injector is None:
        return base_prompt
    try:
        return await injector(base_prompt, query_text, top_k)
    except asyncio.CancelledError:
        raise
    except Exception:
        _logger.warning("context injection failed; continuing with the base prompt", exc_info=True)
        return base_prompt
