import pytest


@pytest.fixture(autouse=True)
def _disable_langsmith_tracing_by_default(monkeypatch):
    monkeypatch.setenv("LANGCHAIN_TRACING_V2", "false")
    monkeypatch.setenv("LANGSMITH_TRACING", "false")


@pytest.fixture(autouse=True)
def _isolate_runtime_limits(monkeypatch):
    for var_name in (
        "CALL_MAX_RETRIES",
        "CALL_BACKOFF_BASE_SECONDS",
        "WORKFLOW_MAX_ITERATIONS",
        "WORKFLOW_MAX_SUPERSTEPS",
        "WORKFLOW_RUN_TIMEOUT_SECONDS",
        "ENABLE_RUNTIME_EVENT_LOGS",
        "PROVIDER_ORDER",
    ):
        monkeypatch.delenv(var_name, raising=False)
