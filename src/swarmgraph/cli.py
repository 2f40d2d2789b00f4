"""swarmgraph CLI entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import time
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from langchain_core.messages import BaseMessage

from .env import ensure_runtime_env_ready, project_dotenv_path, runtime_preflight
from .llm import extract_text_content
from .providers import NoBackendAvailableError
from .registry import UnknownWorkflowError, get_workflow, list_workflows
from .runner import WorkflowResult, run_workflow
from .scheduler import WorkflowRunError


def _format_duration(elapsed: float) -> str:
    if elapsed < 60:
        return f"{elapsed:.1f}s"
    minutes, seconds = divmod(int(elapsed), 60)
    return f"{minutes}m {seconds:02d}s"


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseMessage):
        return {"name": value.name, "type": value.type, "content": extract_text_content(value.content)}
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _result_payload(result: WorkflowResult) -> dict[str, Any]:
    return {
        "workflow": result.workflow,
        "backend_used": result.backend_used,
        "iteration_count": result.iteration_count,
        "agent_messages": _jsonable(result.all_agent_messages),
        "final_state": _jsonable(result.final_state),
    }


def print_results(result: WorkflowResult, elapsed_seconds: float | None = None, *, as_json: bool = False) -> None:
    """Print the final state of a run, rendered or as JSON."""
    if as_json:
        print(json.dumps(_result_payload(result), indent=2))
        return

    definition = get_workflow(result.workflow)
    title = f"{result.workflow} | {result.backend_used} | iterations: {result.iteration_count}"
    if elapsed_seconds is not None:
        title += f" | {_format_duration(elapsed_seconds)}"
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)
    if definition.render is not None:
        print(definition.render(result.final_state))
        return
    for message in result.all_agent_messages:
        name = getattr(message, "name", None) or "agent"
        print(f"[{name}] {extract_text_content(getattr(message, 'content', message))}")


def print_preflight() -> int:
    """Run setup preflight checks and print status lines."""
    ok, checks = runtime_preflight()
    print("swarmgraph Preflight")
    print("-" * 40)
    for check in checks:
        status = "PASS" if check.ok else "FAIL"
        print(f"[{status}] {check.name}: {check.message}")
    if not ok:
        dotenv_path = project_dotenv_path()
        print("\nQuick setup")
        print("-" * 40)
        if not dotenv_path.exists():
            print(f"touch {dotenv_path}")
        print(f"echo 'ANTHROPIC_API_KEY=YOUR_ANTHROPIC_API_KEY' >> {dotenv_path}")
    return 0 if ok else 1


def print_workflows() -> int:
    for definition in list_workflows():
        description = f"  {definition.description}" if definition.description else ""
        print(f"{definition.name} (input: {definition.input_field}){description}")
    return 0


def _read_input(parsed: argparse.Namespace) -> str:
    if parsed.file:
        return Path(parsed.file).read_text(encoding="utf-8")
    if parsed.input is not None:
        return str(parsed.input)
    if not sys.stdin.isatty():
        return sys.stdin.read()
    return ""


def run_command(parsed: argparse.Namespace) -> int:
    try:
        definition = get_workflow(parsed.workflow)
    except UnknownWorkflowError as exc:
        print(exc.args[0], file=sys.stderr)
        return 2

    text = _read_input(parsed)
    if not text.strip():
        print(f"No input for {definition.name!r}; pass --input, --file or pipe it on stdin.", file=sys.stderr)
        return 2

    try:
        ensure_runtime_env_ready()
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    started = time.monotonic()
    try:
        result = asyncio.run(
            run_workflow(
                definition.name,
                {definition.input_field: text},
                max_iterations=parsed.max_iterations,
                timeout=parsed.timeout,
            )
        )
    except NoBackendAvailableError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except WorkflowRunError as exc:
        print(f"Workflow {definition.name!r} failed: {exc}", file=sys.stderr)
        return 1
    print_results(result, elapsed_seconds=time.monotonic() - started, as_json=bool(parsed.json))
    return 0


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return value


def _positive_float(raw: str) -> float:
    value = float(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")
    return value


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="swarmgraph",
        description="Multi-agent workflow orchestrator",
    )
    parser.add_argument(
        "--preflight",
        action="store_true",
        help="Run runtime preflight checks and exit.",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List registered workflows and exit.",
    )
    subcommands = parser.add_subparsers(dest="command")
    run_parser = subcommands.add_parser("run", help="Run a registered workflow to completion.")
    run_parser.add_argument("workflow", help="Registered workflow name, e.g. critique.")
    source = run_parser.add_mutually_exclusive_group()
    source.add_argument("--input", help="Workflow input text.")
    source.add_argument("--file", help="Read workflow input from a file.")
    run_parser.add_argument(
        "--max-iterations",
        type=_positive_int,
        default=None,
        help="Iteration guard maximum for cyclic workflows.",
    )
    run_parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        help="Overall wall-clock budget in seconds.",
    )
    run_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the final state as JSON.",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = _build_arg_parser()
    parsed = parser.parse_args(sys.argv[1:] if argv is None else list(argv))

    if parsed.preflight and parsed.list:
        parser.error("--preflight cannot be combined with --list.")
    if (parsed.preflight or parsed.list) and parsed.command:
        parser.error("--preflight and --list do not take a command.")

    if parsed.preflight:
        raise SystemExit(print_preflight())
    if parsed.list:
        raise SystemExit(print_workflows())
    if parsed.command == "run":
        raise SystemExit(run_command(parsed))

    parser.print_help()
    raise SystemExit(2)


if __name__ == "__main__":
    main()
