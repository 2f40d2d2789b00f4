import io
import json
import sys

import pytest
from langchain_core.messages import AIMessage

from swarmgraph import cli
from swarmgraph.providers import NoBackendAvailableError
from swarmgraph.runner import WorkflowResult
from swarmgraph.scheduler import NodeExecutionError
from swarmgraph.workflows.critique import assemble_critique_report


def _critique_result():
    final_state = {"code": "x = 1", "iteration": 1, "agent_messages": [AIMessage(content="ok", name="security")]}
    final_state.update(assemble_critique_report(final_state))
    return WorkflowResult(
        workflow="critique",
        final_state=final_state,
        all_agent_messages=final_state["agent_messages"],
        iteration_count=1,
        backend_used="groq:llama-test",
    )


def _patch_run(monkeypatch, outcome):
    calls = []

    async def fake_run_workflow(name, initial_state=None, **kwargs):
        calls.append((name, initial_state, kwargs))
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    monkeypatch.setattr(cli, "run_workflow", fake_run_workflow)
    monkeypatch.setattr(cli, "ensure_runtime_env_ready", lambda: None)
    return calls


def test_cli_main_help_uses_argparse():
    with pytest.raises(SystemExit) as exc:
        cli.main(["--help"])
    assert exc.value.code == 0


def test_cli_main_preflight_flag(monkeypatch):
    called = {"count": 0}

    def fake_print_preflight():
        called["count"] += 1
        return 1

    monkeypatch.setattr(cli, "print_preflight", fake_print_preflight)
    with pytest.raises(SystemExit) as exc:
        cli.main(["--preflight"])

    assert exc.value.code == 1
    assert called["count"] == 1


def test_cli_main_rejects_preflight_with_command():
    with pytest.raises(SystemExit) as exc:
        cli.main(["--preflight", "run", "critique"])
    assert exc.value.code == 2


def test_cli_list_prints_registered_workflows(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["--list"])

    assert exc.value.code == 0
    assert capsys.readouterr().out.startswith("critique (input: code)")


def test_cli_run_passes_input_and_limits(monkeypatch, capsys):
    calls = _patch_run(monkeypatch, _critique_result())

    with pytest.raises(SystemExit) as exc:
        cli.main(["run", "critique", "--input", "x = 1", "--max-iterations", "3", "--timeout", "30"])

    assert exc.value.code == 0
    name, initial_state, kwargs = calls[0]
    assert name == "critique"
    assert initial_state == {"code": "x = 1"}
    assert kwargs == {"max_iterations": 3, "timeout": 30.0}
    output = capsys.readouterr().out
    assert "critique | groq:llama-test | iterations: 1" in output
    assert "Overall score: 50/100" in output


def test_cli_run_reads_file_and_prints_json(monkeypatch, capsys, tmp_path):
    source = tmp_path / "handler.py"
    source.write_text("def handler():\n    pass\n", encoding="utf-8")
    calls = _patch_run(monkeypatch, _critique_result())

    with pytest.raises(SystemExit) as exc:
        cli.main(["run", "critique", "--file", str(source), "--json"])

    assert exc.value.code == 0
    assert calls[0][1] == {"code": "def handler():\n    pass\n"}
    payload = json.loads(capsys.readouterr().out)
    assert payload["backend_used"] == "groq:llama-test"
    assert payload["agent_messages"] == [{"name": "security", "type": "ai", "content": "ok"}]
    assert payload["final_state"]["report"]["overall_score"] == 50


def test_cli_run_reads_stdin(monkeypatch):
    calls = _patch_run(monkeypatch, _critique_result())
    monkeypatch.setattr(sys, "stdin", io.StringIO("print('piped')"))

    with pytest.raises(SystemExit) as exc:
        cli.main(["run", "critique"])

    assert exc.value.code == 0
    assert calls[0][1] == {"code": "print('piped')"}


def test_cli_run_rejects_empty_input(monkeypatch, capsys):
    calls = _patch_run(monkeypatch, _critique_result())
    monkeypatch.setattr(sys, "stdin", io.StringIO("   "))

    with pytest.raises(SystemExit) as exc:
        cli.main(["run", "critique"])

    assert exc.value.code == 2
    assert calls == []
    assert "No input" in capsys.readouterr().err


def test_cli_run_unknown_workflow(monkeypatch, capsys):
    _patch_run(monkeypatch, _critique_result())

    with pytest.raises(SystemExit) as exc:
        cli.main(["run", "haiku", "--input", "x"])

    assert exc.value.code == 2
    assert "Unknown workflow 'haiku'" in capsys.readouterr().err


def test_cli_run_distinguishes_configuration_from_run_failure(monkeypatch, capsys):
    _patch_run(monkeypatch, NoBackendAvailableError("No working backend found"))
    with pytest.raises(SystemExit) as exc:
        cli.main(["run", "critique", "--input", "x"])
    assert exc.value.code == 2
    assert "No working backend found" in capsys.readouterr().err

    _patch_run(monkeypatch, NodeExecutionError("security", RuntimeError("quota")))
    with pytest.raises(SystemExit) as exc:
        cli.main(["run", "critique", "--input", "x"])
    assert exc.value.code == 1
    assert "Workflow 'critique' failed" in capsys.readouterr().err


def test_cli_rejects_non_positive_limits():
    with pytest.raises(SystemExit) as exc:
        cli.main(["run", "critique", "--input", "x", "--max-iterations", "0"])
    assert exc.value.code == 2
