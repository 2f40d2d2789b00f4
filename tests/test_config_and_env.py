import os

import pytest

from swarmgraph import config, env

_PROVIDER_KEYS = ("ANTHROPIC_API_KEY", "OPENROUTER_API_KEY", "OPENAI_API_KEY", "GROQ_API_KEY")


def _isolated_dotenv(monkeypatch, tmp_path, content=""):
    dotenv_path = tmp_path / ".env"
    dotenv_path.write_text(content, encoding="utf-8")
    monkeypatch.setattr(env, "_PROJECT_DOTENV", dotenv_path)
    monkeypatch.setattr(env, "_ENV_BOOTSTRAPPED", False)
    monkeypatch.delenv("SWARMGRAPH_ENV_FILE", raising=False)
    for var_name in _PROVIDER_KEYS:
        # setenv first so values loaded from the dotenv are restored after the test.
        monkeypatch.setenv(var_name, "")
        monkeypatch.delenv(var_name)
    return dotenv_path


def test_limits_default_and_fall_back_on_invalid_values(monkeypatch):
    assert config.get_call_max_retries() == 3
    assert config.get_call_backoff_base_seconds() == 1.0
    assert config.get_workflow_max_iterations() == 2
    assert config.get_workflow_max_supersteps() == 100
    assert config.get_workflow_run_timeout_seconds() is None

    monkeypatch.setenv("CALL_MAX_RETRIES", "0")
    monkeypatch.setenv("WORKFLOW_MAX_SUPERSTEPS", "not-a-number")
    monkeypatch.setenv("WORKFLOW_RUN_TIMEOUT_SECONDS", "90")
    monkeypatch.setenv("CALL_BACKOFF_BASE_SECONDS", "-1")

    assert config.get_call_max_retries() == 3
    assert config.get_workflow_max_supersteps() == 100
    assert config.get_workflow_run_timeout_seconds() == 90.0
    assert config.get_call_backoff_base_seconds() == 1.0


def test_provider_order_is_validated_and_deduplicated(monkeypatch):
    assert config.get_provider_order() == ["anthropic", "openrouter", "openai", "groq"]

    monkeypatch.setenv("PROVIDER_ORDER", " Groq, openai ,groq,, ")
    assert config.get_provider_order() == ["groq", "openai"]

    monkeypatch.setenv("PROVIDER_ORDER", "anthropic,bedrock")
    with pytest.raises(config.ProviderConfigError, match="bedrock"):
        config.get_provider_order()


def test_provider_models_keys_and_base_urls(monkeypatch):
    monkeypatch.delenv("OPENROUTER_MODEL", raising=False)
    monkeypatch.delenv("OPENROUTER_BASE_URL", raising=False)
    monkeypatch.setenv("OPENAI_MODEL", "gpt-test")
    monkeypatch.setenv("OPENAI_API_KEY", "  sk-test  ")

    assert config.get_provider_model("openai") == "gpt-test"
    assert config.get_provider_model("openrouter") == "anthropic/claude-sonnet-4"
    assert config.get_provider_api_key("openai") == "sk-test"
    assert config.get_provider_api_key("ollama") == "ollama"
    assert config.get_provider_base_url("openrouter") == "https://openrouter.ai/api/v1"
    assert config.get_provider_base_url("anthropic") is None


def test_get_chat_model_routes_gateways_through_openai_integration(monkeypatch):
    captured = {}

    def fake_init_chat_model(**kwargs):
        captured["kwargs"] = kwargs
        return "chat-model"

    monkeypatch.setattr(config, "init_chat_model", fake_init_chat_model)

    model = config.get_chat_model(
        "openrouter",
        "anthropic/claude-sonnet-4",
        api_key="or-key",
        base_url="https://openrouter.ai/api/v1",
        temperature=0.2,
        max_tokens=128,
    )

    assert model == "chat-model"
    assert captured["kwargs"] == {
        "model": "anthropic/claude-sonnet-4",
        "model_provider": "openai",
        "temperature": 0.2,
        "max_tokens": 128,
        "api_key": "or-key",
        "base_url": "https://openrouter.ai/api/v1",
    }


def test_get_chat_model_omits_missing_credentials(monkeypatch):
    captured = {}
    monkeypatch.setattr(config, "init_chat_model", lambda **kwargs: captured.update(kwargs))

    config.get_chat_model("anthropic", "claude-test")

    assert captured["model_provider"] == "anthropic"
    assert "api_key" not in captured
    assert "base_url" not in captured


def test_bootstrap_env_loads_dotenv_without_overriding_existing_values(monkeypatch, tmp_path):
    _isolated_dotenv(monkeypatch, tmp_path, "GROQ_API_KEY=from-dotenv\nANTHROPIC_API_KEY=from-dotenv\n")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "from-process")

    env.bootstrap_env(override=False)

    assert os.environ["ANTHROPIC_API_KEY"] == "from-process"
    assert os.environ["GROQ_API_KEY"] == "from-dotenv"


def test_ensure_runtime_env_ready_names_every_provider_key(monkeypatch, tmp_path):
    _isolated_dotenv(monkeypatch, tmp_path)

    with pytest.raises(RuntimeError) as exc_info:
        env.ensure_runtime_env_ready()

    for var_name in _PROVIDER_KEYS:
        assert var_name in str(exc_info.value)


def test_ensure_runtime_env_ready_accepts_any_credentialed_provider(monkeypatch, tmp_path):
    _isolated_dotenv(monkeypatch, tmp_path)
    monkeypatch.setenv("GROQ_API_KEY", "g-key")

    env.ensure_runtime_env_ready()

    assert env.credentialed_providers() == ["groq"]


def test_runtime_preflight_reports_missing_keys(monkeypatch, tmp_path):
    _isolated_dotenv(monkeypatch, tmp_path)

    ok, checks = env.runtime_preflight()

    assert ok is False
    by_name = {check.name: check for check in checks}
    assert by_name["dotenv_file"].ok is True
    assert by_name["provider_order"].ok is True
    assert by_name["provider_keys"].ok is False
    assert "ANTHROPIC_API_KEY" in by_name["provider_keys"].message


def test_runtime_preflight_reports_invalid_provider_order(monkeypatch, tmp_path):
    _isolated_dotenv(monkeypatch, tmp_path)
    monkeypatch.setenv("PROVIDER_ORDER", "not-a-provider")

    ok, checks = env.runtime_preflight()

    assert ok is False
    assert checks[-1].name == "provider_order"
    assert "not-a-provider" in checks[-1].message


def test_runtime_preflight_passes_with_credentials(monkeypatch, tmp_path):
    _isolated_dotenv(monkeypatch, tmp_path)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-test")

    ok, checks = env.runtime_preflight()

    assert ok is True
    assert "openai (gpt-test)" in checks[-1].message


def test_project_dotenv_path_uses_explicit_override(monkeypatch, tmp_path):
    override_path = tmp_path / "custom.env"
    monkeypatch.setenv("SWARMGRAPH_ENV_FILE", str(override_path))

    assert env.project_dotenv_path() == override_path


def test_project_dotenv_path_discovers_cwd_dotenv(monkeypatch, tmp_path):
    project_root = tmp_path / "service"
    nested = project_root / "src" / "pkg"
    nested.mkdir(parents=True)
    (project_root / ".env").write_text("GROQ_API_KEY=\n", encoding="utf-8")

    monkeypatch.delenv("SWARMGRAPH_ENV_FILE", raising=False)
    monkeypatch.setattr(env, "_PROJECT_DOTENV", env._DEFAULT_PROJECT_DOTENV)
    monkeypatch.chdir(nested)

    assert env.project_dotenv_path() == (project_root / ".env").resolve()
