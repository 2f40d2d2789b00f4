"""Local `.env` loading and first-run preflight checks."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .config import (
    ProviderConfigError,
    get_provider_api_key,
    get_provider_model,
    get_provider_order,
)

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_PROJECT_DOTENV = _PROJECT_ROOT / ".env"
_DEFAULT_PROJECT_DOTENV = _PROJECT_DOTENV
_ENV_FILE_OVERRIDE_VAR = "SWARMGRAPH_ENV_FILE"
_ENV_BOOTSTRAPPED = False
_BOOTSTRAPPED_DOTENV: Path | None = None


@dataclass(frozen=True)
class PreflightCheckResult:
    """Outcome of a single preflight check."""

    name: str
    ok: bool
    message: str


def _dotenv_from_override() -> Path | None:
    raw = os.environ.get(_ENV_FILE_OVERRIDE_VAR, "").strip()
    if not raw:
        return None
    path = Path(raw).expanduser()
    return path if path.is_absolute() else (Path.cwd() / path).resolve()


def _discover_dotenv_path_from_cwd() -> Path | None:
    try:
        start = Path.cwd().resolve()
    except OSError:
        return None
    return next((folder / ".env" for folder in (start, *start.parents) if (folder / ".env").exists()), None)


def project_dotenv_path() -> Path:
    """Path of the `.env` file to load: override var, pinned path, nearest cwd ancestor, package root."""
    override = _dotenv_from_override()
    if override is not None:
        return override
    if _PROJECT_DOTENV != _DEFAULT_PROJECT_DOTENV:
        return _PROJECT_DOTENV
    return _discover_dotenv_path_from_cwd() or _PROJECT_DOTENV


def bootstrap_env(*, override: bool = False) -> Path:
    """Load the `.env` file once per process (again if its path changed)."""
    global _ENV_BOOTSTRAPPED, _BOOTSTRAPPED_DOTENV
    dotenv_path = project_dotenv_path()
    if override or not _ENV_BOOTSTRAPPED or dotenv_path != _BOOTSTRAPPED_DOTENV:
        load_dotenv(dotenv_path=dotenv_path, override=override)
        _ENV_BOOTSTRAPPED, _BOOTSTRAPPED_DOTENV = True, dotenv_path
    return dotenv_path


def credentialed_providers() -> list[str]:
    """Providers from the configured order that have a credential set."""
    return [provider for provider in get_provider_order() if get_provider_api_key(provider)]


def _key_names(order: list[str]) -> str:
    return ", ".join(f"{provider.upper()}_API_KEY" for provider in order)


def ensure_runtime_env_ready() -> None:
    """Raise a clear error when no configured provider has a credential."""
    dotenv_path = bootstrap_env(override=False)
    try:
        if credentialed_providers():
            return
        order = get_provider_order()
    except ProviderConfigError as exc:
        raise RuntimeError(str(exc)) from exc
    raise RuntimeError(
        f"No provider credentials found. Set at least one of: {_key_names(order)} "
        f"in your shell or in `{dotenv_path}`."
    )


def _dotenv_check(dotenv_path: Path) -> PreflightCheckResult:
    if dotenv_path.exists():
        return PreflightCheckResult("dotenv_file", True, f"Found `{dotenv_path}`.")
    return PreflightCheckResult(
        "dotenv_file",
        True,
        f"No `.env` at `{dotenv_path}`; reading provider settings from the process environment.",
    )


def _provider_keys_check(order: list[str]) -> PreflightCheckResult:
    ready = [provider for provider in order if get_provider_api_key(provider)]
    if not ready:
        return PreflightCheckResult("provider_keys", False, f"Missing provider key(s): {_key_names(order)}")
    described = ", ".join(f"{provider} ({get_provider_model(provider)})" for provider in ready)
    return PreflightCheckResult("provider_keys", True, f"Credentialed provider(s): {described}.")


def runtime_preflight() -> tuple[bool, list[PreflightCheckResult]]:
    """Checks worth running before the first workflow: dotenv, provider order, credentials."""
    checks = [_dotenv_check(bootstrap_env(override=False))]
    try:
        order = get_provider_order()
    except ProviderConfigError as exc:
        checks.append(PreflightCheckResult("provider_order", False, str(exc)))
        return False, checks
    checks.append(PreflightCheckResult("provider_order", True, "Provider order: " + ", ".join(order) + "."))
    checks.append(_provider_keys_check(order))
    return all(check.ok for check in checks), checks
