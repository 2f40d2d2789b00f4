"""
Runtime configuration for completion backends and run limits.
"""

from __future__ import annotations

import os
from typing import Any, Literal, cast

from langchain.chat_models import init_chat_model


ProviderName = Literal["anthropic", "openrouter", "openai", "groq", "ollama"]
SUPPORTED_PROVIDERS: tuple[ProviderName, ...] = ("anthropic", "openrouter", "openai", "groq", "ollama")
DEFAULT_PROVIDER_ORDER: tuple[ProviderName, ...] = ("anthropic", "openrouter", "openai", "groq")
DEFAULT_PROVIDER_MODELS: dict[str, str] = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
    "openrouter": "anthropic/claude-sonnet-4",
    "groq": "llama-3.3-70b-versatile",
    "ollama": "llama3.3",
}
PROVIDER_BASE_URLS: dict[str, str] = {
    "openrouter": "https://openrouter.ai/api/v1",
    "ollama": "http://localhost:11434/v1",
}
# init_chat_model provider prefix per backend; OpenAI-compatible gateways go through langchain-openai.
_CHAT_MODEL_PROVIDERS: dict[str, str] = {
    "anthropic": "anthropic",
    "openai": "openai",
    "openrouter": "openai",
    "groq": "groq",
    "ollama": "openai",
}
DEFAULT_CALL_MAX_RETRIES = 3
DEFAULT_CALL_BACKOFF_BASE_SECONDS = 1.0
DEFAULT_WORKFLOW_MAX_ITERATIONS = 2
DEFAULT_WORKFLOW_MAX_SUPERSTEPS = 100
DEFAULT_WORKFLOW_RUN_TIMEOUT_SECONDS = 0.0
DEFAULT_COMPLETION_TEMPERATURE = 0.7
DEFAULT_COMPLETION_MAX_TOKENS = 4096
DEFAULT_ENABLE_RUNTIME_EVENT_LOGS = False


class ProviderConfigError(RuntimeError):
    """Raised when provider configuration is invalid."""


def _resolve_int_env(var_name: str, default: int, minimum: int = 1) -> int:
    """Resolve an integer config value from env with a safe fallback."""
    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default

    try:
        value = int(str(raw_value).strip())
    except (TypeError, ValueError):
        return default

    if value < minimum:
        return default
    return value


def _resolve_float_env(var_name: str, default: float, minimum: float = 0.0) -> float:
    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default

    try:
        value = float(str(raw_value).strip())
    except (TypeError, ValueError):
        return default

    if value < minimum:
        return default
    return value


def _resolve_bool_env(var_name: str, default: bool = False) -> bool:
    raw_value = os.environ.get(var_name)
    if raw_value is None:
        return default
    return str(raw_value).strip().lower() in {"1", "true", "yes", "on"}


def get_call_max_retries() -> int:
    """Attempts per external completion call (minimum 1)."""
    return _resolve_int_env("CALL_MAX_RETRIES", DEFAULT_CALL_MAX_RETRIES, minimum=1)


def get_call_backoff_base_seconds() -> float:
    """Backoff unit; attempt ``n`` waits ``base * 2**n`` seconds before the next try."""
    return _resolve_float_env("CALL_BACKOFF_BASE_SECONDS", DEFAULT_CALL_BACKOFF_BASE_SECONDS)


def get_workflow_max_iterations() -> int:
    """Default iteration-guard maximum for cyclic workflows."""
    return _resolve_int_env("WORKFLOW_MAX_ITERATIONS", DEFAULT_WORKFLOW_MAX_ITERATIONS, minimum=1)


def get_workflow_max_supersteps() -> int:
    """Hard cap on scheduler supersteps in one run."""
    return _resolve_int_env("WORKFLOW_MAX_SUPERSTEPS", DEFAULT_WORKFLOW_MAX_SUPERSTEPS, minimum=1)


def get_workflow_run_timeout_seconds() -> float | None:
    """Overall wall-clock budget per run; ``None`` when disabled."""
    timeout = _resolve_float_env("WORKFLOW_RUN_TIMEOUT_SECONDS", DEFAULT_WORKFLOW_RUN_TIMEOUT_SECONDS)
    return timeout or None


def runtime_event_logs_enabled() -> bool:
    """Return whether low-noise runtime event logs are enabled."""
    return _resolve_bool_env("ENABLE_RUNTIME_EVENT_LOGS", DEFAULT_ENABLE_RUNTIME_EVENT_LOGS)


def _normalize_provider(raw: str) -> ProviderName:
    provider = str(raw or "").strip().lower()
    if provider in SUPPORTED_PROVIDERS:
        return cast(ProviderName, provider)
    supported = ", ".join(SUPPORTED_PROVIDERS)
    raise ProviderConfigError(f"Unsupported provider {provider!r}. Supported values: {supported}.")


def get_provider_order() -> list[ProviderName]:
    """Resolver priority order from ``PROVIDER_ORDER`` (comma separated)."""
    raw_order = str(os.environ.get("PROVIDER_ORDER", "")).strip()
    if not raw_order:
        return list(DEFAULT_PROVIDER_ORDER)

    order: list[ProviderName] = []
    for item in raw_order.split(","):
        if not item.strip():
            continue
        provider = _normalize_provider(item)
        if provider not in order:
            order.append(provider)
    return order or list(DEFAULT_PROVIDER_ORDER)


def get_provider_model(provider: str) -> str:
    """Model id for a provider, overridable with ``<PROVIDER>_MODEL``."""
    name = _normalize_provider(provider)
    configured = str(os.environ.get(f"{name.upper()}_MODEL", "")).strip()
    return configured or DEFAULT_PROVIDER_MODELS[name]


def get_provider_api_key(provider: str) -> str | None:
    """Credential for a provider from ``<PROVIDER>_API_KEY``; ollama needs none."""
    name = _normalize_provider(provider)
    if name == "ollama":
        return "ollama"
    api_key = str(os.environ.get(f"{name.upper()}_API_KEY", "")).strip()
    return api_key or None


def get_provider_base_url(provider: str) -> str | None:
    name = _normalize_provider(provider)
    configured = str(os.environ.get(f"{name.upper()}_BASE_URL", "")).strip()
    return configured or PROVIDER_BASE_URLS.get(name)


def get_chat_model(
    provider: str,
    model: str,
    *,
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float = DEFAULT_COMPLETION_TEMPERATURE,
    max_tokens: int = DEFAULT_COMPLETION_MAX_TOKENS,
):
    """Return a ChatModel for one backend.

    Uses init_chat_model for provider detection; OpenAI-compatible gateways
    (OpenRouter, Ollama) are routed through the OpenAI integration with a base URL.
    """
    name = _normalize_provider(provider)
    init_kwargs: dict[str, Any] = {
        "model": model,
        "model_provider": _CHAT_MODEL_PROVIDERS[name],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if api_key:
        init_kwargs["api_key"] = api_key
    if base_url:
        init_kwargs["base_url"] = base_url
    return init_chat_model(**init_kwargs)
