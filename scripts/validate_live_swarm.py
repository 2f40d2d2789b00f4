"""Run the critique swarm against a real backend and check the run's shape."""

from __future__ import annotations

import asyncio
import time

from swarmgraph.env import bootstrap_env, ensure_runtime_env_ready
from swarmgraph.runner import run_workflow
from swarmgraph.workflows.critique import SPECIALISTS, CritiqueReport

SAMPLE_CODE = '''
import sqlite3

def find_user(name):
    conn = sqlite3.connect("app.db")
    rows = conn.execute(f"SELECT * FROM users WHERE name = '{name}'").fetchall()
    return [row for row in rows for _ in range(len(rows))]
'''


async def _run_validation() -> int:
    bootstrap_env()
    ensure_runtime_env_ready()

    started = time.monotonic()
    result = await run_workflow("critique", {"code": SAMPLE_CODE}, max_iterations=2)
    elapsed = time.monotonic() - started

    names = [getattr(message, "name", "") for message in result.all_agent_messages]
    report = result.final_state.get("report")

    print("=== Live Critique Swarm Validation ===")
    print(f"backend_used={result.backend_used}")
    print(f"elapsed_seconds={elapsed:.1f}")
    print(f"iteration_count={result.iteration_count}")
    print(f"agent_messages={len(names)}")
    if isinstance(report, CritiqueReport):
        print(f"report.overall_score={report.overall_score}")
        print(f"report.findings={len(report.findings)}")
        print(f"report.parse_failures={','.join(report.parse_failures) or 'none'}")

    validation_errors: list[str] = []
    if not isinstance(report, CritiqueReport):
        validation_errors.append("Final state has no CritiqueReport.")
    if result.iteration_count < 1:
        validation_errors.append(f"Expected at least one supervisor pass, got {result.iteration_count}.")
    missing = [agent for agent in SPECIALISTS if agent not in names]
    if missing:
        validation_errors.append(f"Specialists without a message: {', '.join(missing)}.")
    if isinstance(report, CritiqueReport) and len(report.parse_failures) == len(SPECIALISTS) + 1:
        validation_errors.append("No agent produced parseable JSON.")

    if validation_errors:
        print("validation_result=FAIL")
        for error in validation_errors:
            print(f"validation_error={error}")
        return 1

    print("validation_result=PASS")
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(_run_validation()))


if __name__ == "__main__":
    main()
