"""Hosted completion backends and the single-call completion capability."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage

from .config import (
    DEFAULT_COMPLETION_MAX_TOKENS,
    DEFAULT_COMPLETION_TEMPERATURE,
    get_chat_model,
    get_provider_api_key,
    get_provider_base_url,
    get_provider_model,
)


class EmptyCompletionError(RuntimeError):
    """Raised when a backend response carries no content field at all."""


@dataclass(frozen=True)
class Backend:
    """One credentialed hosted completion service."""

    provider: str
    model: str
    api_key: str | None = field(default=None, repr=False)
    base_url: str | None = None

    @property
    def label(self) -> str:
        return f"{self.provider}:{self.model}"

    @classmethod
    def from_env(cls, provider: str) -> "Backend":
        return cls(
            provider=provider,
            model=get_provider_model(provider),
            api_key=get_provider_api_key(provider),
            base_url=get_provider_base_url(provider),
        )


@dataclass(frozen=True)
class CompletionOptions:
    temperature: float = DEFAULT_COMPLETION_TEMPERATURE
    max_tokens: int = DEFAULT_COMPLETION_MAX_TOKENS


CompletionFn = Callable[[Backend, str, str, "CompletionOptions | None"], Awaitable[str]]


def extract_text_content(content: Any) -> str:
    """Extract plain text from LangChain/OpenAI/Anthropic-style content payloads."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        chunks: list[str] = []
        for item in content:
            if isinstance(item, str):
                chunks.append(item)
                continue
            if not isinstance(item, dict):
                continue
            item_type = str(item.get("type") or "").strip().lower()
            if item_type and item_type != "text":
                continue
            text = item.get("text")
            if text is not None:
                chunks.append(str(text))
        return "".join(chunks)
    return str(content)


async def complete(
    backend: Backend,
    system_prompt: str,
    user_message: str,
    options: CompletionOptions | None = None,
) -> str:
    """Run one system+user completion against ``backend`` and return its text.

    Transport, auth and quota errors propagate from the provider SDK. Empty
    content is a valid result; a response without any content field raises.
    """
    resolved = options or CompletionOptions()
    model = get_chat_model(
        backend.provider,
        backend.model,
        api_key=backend.api_key,
        base_url=backend.base_url,
        temperature=resolved.temperature,
        max_tokens=resolved.max_tokens,
    )
    response = await model.ainvoke(
        [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_message),
        ]
    )
    content = getattr(response, "content", None)
    if content is None:
        raise EmptyCompletionError(f"{backend.label} returned a response without content")
    return extract_text_content(content)
