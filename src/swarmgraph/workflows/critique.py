"""Critique swarm: four specialists fan out and a supervisor merges, with an optional reflection loop.

    dispatch -> [architect, security, ux, perf] -> supervisor
    supervisor -> reflect: dispatch | finalize: assemble_report -> END
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Annotated, Any, Literal, TypedDict, cast

from langchain_core.messages import AIMessage
from pydantic import BaseModel, Field, field_validator

from ..context import ContextInjector, safe_inject_context
from ..graph import END, START, CompiledGraph, StateGraph
from ..llm import Backend, CompletionFn, CompletionOptions
from ..parsing import StructuredOutputParser
from ..prompts import REFLECTION_PROMPT, SPECIALIST_PROMPTS, SUPERVISOR_MERGE_PROMPT
from ..registry import WorkflowDefinition, register_workflow
from ..report import assemble_report
from ..runtime_utils import SleepFn, complete_with_retries, log_runtime_event
from ..state import append, iteration_limit_reached, merge_object

_logger = logging.getLogger(__name__)

SPECIALISTS = ("architect", "security", "ux", "perf")
SCORE_WEIGHTS = {"security": 0.30, "architect": 0.25, "perf": 0.25, "ux": 0.20}
FALLBACK_SCORE = 50
SPECIALIST_OPTIONS = CompletionOptions(temperature=0.3, max_tokens=4096)
SUPERVISOR_OPTIONS = CompletionOptions(temperature=0.2, max_tokens=4096)
_SEVERITY_RANK = {"error": 0, "warning": 1, "info": 2}
_CODE_EXCERPT_CHARS = 2000


def _clamp_score(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and not math.isfinite(value):
        return value
    if isinstance(value, (int, float)):
        return max(0, min(100, int(round(value))))
    return value


class Finding(BaseModel):
    severity: Literal["error", "warning", "info"] = "info"
    agent: str = ""
    title: str = ""
    detail: str = ""
    suggestion: str = ""

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, value: Any) -> Any:
        return str(value).strip().lower() if value is not None else "info"


class AgentCritique(BaseModel):
    """One specialist's parsed critique."""

    agent: str = ""
    score: int = FALLBACK_SCORE
    findings: list[Finding] = Field(default_factory=list)
    summary: str = ""
    parse_failed: bool = False

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value: Any) -> Any:
        return _clamp_score(value)


class MergedCritique(BaseModel):
    """Supervisor merge output."""

    overall_score: int | None = None
    summary: str = ""
    agent_scores: dict[str, int] = Field(default_factory=dict)
    findings: list[Finding] = Field(default_factory=list)
    needs_reflection: bool = False
    parse_failed: bool = False

    @field_validator("overall_score", mode="before")
    @classmethod
    def clamp_overall_score(cls, value: Any) -> Any:
        return _clamp_score(value)


class CritiqueReport(BaseModel):
    """Final typed report returned to callers."""

    overall_score: int
    summary: str
    agent_scores: dict[str, int]
    findings: list[Finding]
    specialists: dict[str, AgentCritique]
    needs_reflection: bool = False
    iterations: int = 0
    parse_failures: list[str] = Field(default_factory=list)


class CritiqueSwarmState(TypedDict, total=False):
    code: str
    agent_messages: Annotated[list[AIMessage], append]
    specialist_results: Annotated[dict[str, str], merge_object]
    merged_result: str
    merged_report: MergedCritique
    iteration: int
    max_iterations: int
    report: CritiqueReport


def _specialist_fallback(agent: str):
    def fallback(raw: str) -> AgentCritique:
        return AgentCritique(
            agent=agent,
            score=FALLBACK_SCORE,
            findings=[Finding(severity="info", agent=agent, title=f"{agent} analysis", detail=raw[:500])],
            summary=raw[:200],
            parse_failed=True,
        )

    return fallback


def _merged_fallback(raw: str) -> MergedCritique:
    return MergedCritique(overall_score=FALLBACK_SCORE, summary=raw[:300], parse_failed=True)


SPECIALIST_PARSERS = {agent: StructuredOutputParser(AgentCritique, _specialist_fallback(agent)) for agent in SPECIALISTS}
MERGED_PARSER = StructuredOutputParser(MergedCritique, _merged_fallback)


def weighted_score(agent_scores: Mapping[str, int]) -> int:
    """Weighted overall score over the agents present; 0 when none are."""
    total_weight = sum(SCORE_WEIGHTS[agent] for agent in SCORE_WEIGHTS if agent in agent_scores)
    if not total_weight:
        return 0
    weighted = sum(SCORE_WEIGHTS[agent] * agent_scores[agent] for agent in SCORE_WEIGHTS if agent in agent_scores)
    return int(round(weighted / total_weight))


def dispatch(state: Mapping[str, Any]) -> dict[str, Any]:
    """Fan-out point for each specialist pass."""
    log_runtime_event(_logger, "critique_dispatch", iteration=int(state.get("iteration") or 0))
    return {}


def make_specialist_node(
    agent: str,
    backend: Backend,
    *,
    complete_fn: CompletionFn | None = None,
    sleep: SleepFn | None = None,
    inject_context: ContextInjector | None = None,
):
    system_prompt_template = SPECIALIST_PROMPTS[agent]

    async def specialist(state: Mapping[str, Any]) -> dict[str, Any]:
        code = str(state.get("code") or "")
        system_prompt = await safe_inject_context(inject_context, system_prompt_template, code)
        result = await complete_with_retries(
            backend,
            system_prompt,
            code,
            SPECIALIST_OPTIONS,
            sleep=sleep,
            complete_fn=complete_fn,
        )
        return {
            "agent_messages": [AIMessage(content=result, name=agent)],
            "specialist_results": {agent: result},
        }

    specialist.__name__ = agent
    return specialist


def _render_specialist_outputs(results: Mapping[str, Any]) -> str:
    ordered = [agent for agent in SPECIALISTS if agent in results]
    ordered += sorted(agent for agent in results if agent not in SPECIALISTS)
    return "\n\n".join(f"=== {agent.upper()} ===\n{results[agent]}" for agent in ordered)


def make_supervisor_node(
    backend: Backend,
    *,
    complete_fn: CompletionFn | None = None,
    sleep: SleepFn | None = None,
):
    async def supervisor(state: Mapping[str, Any]) -> dict[str, Any]:
        iteration = int(state.get("iteration") or 0)
        is_reflection = iteration > 0
        code = str(state.get("code") or "")
        payload = (
            f"Code being critiqued:\n{code[:_CODE_EXCERPT_CHARS]}\n\n"
            f"Specialist critiques:\n{_render_specialist_outputs(state.get('specialist_results') or {})}"
        )
        result = await complete_with_retries(
            backend,
            REFLECTION_PROMPT if is_reflection else SUPERVISOR_MERGE_PROMPT,
            payload,
            SUPERVISOR_OPTIONS,
            sleep=sleep,
            complete_fn=complete_fn,
        )
        merged, _ = MERGED_PARSER.parse(result)
        return {
            "merged_result": result,
            "merged_report": merged,
            "iteration": iteration + 1,
            "agent_messages": [
                AIMessage(
                    content="Reflection pass complete." if is_reflection else "Merged specialist critiques.",
                    name="supervisor",
                )
            ],
        }

    return supervisor


def should_reflect(state: Mapping[str, Any]) -> Literal["reflect", "finalize"]:
    if iteration_limit_reached(state):
        return "finalize"
    merged = state.get("merged_report")
    if isinstance(merged, MergedCritique) and merged.needs_reflection:
        return "reflect"
    return "finalize"


def _rank_findings(findings: list[Finding]) -> list[Finding]:
    return sorted(findings, key=lambda finding: _SEVERITY_RANK.get(finding.severity, len(_SEVERITY_RANK)))


def assemble_critique_report(state: Mapping[str, Any]) -> dict[str, Any]:
    """Terminal node: typed CritiqueReport from accumulated raw outputs."""
    sections = assemble_report(state.get("specialist_results"), SPECIALIST_PARSERS)
    specialists: dict[str, AgentCritique] = {}
    for agent, record in sections.records.items():
        critique = cast(AgentCritique, record)
        findings = [finding.model_copy(update={"agent": finding.agent or agent}) for finding in critique.findings]
        specialists[agent] = critique.model_copy(update={"agent": agent, "findings": findings})

    merged = state.get("merged_report")
    if not isinstance(merged, MergedCritique):
        merged_text = state.get("merged_result")
        if isinstance(merged_text, str):
            merged, _ = MERGED_PARSER.parse(merged_text)
        else:
            merged = _merged_fallback("")

    parse_failures = list(sections.parse_failures)
    if merged.parse_failed:
        parse_failures.append("supervisor")

    specialist_scores = {agent: record.score for agent, record in specialists.items() if not record.parse_failed}
    agent_scores = {**specialist_scores, **merged.agent_scores} if not merged.parse_failed else specialist_scores
    if not agent_scores:
        agent_scores = {agent: record.score for agent, record in specialists.items()}

    if merged.overall_score is not None and not merged.parse_failed:
        overall_score = merged.overall_score
    else:
        overall_score = weighted_score(agent_scores)

    findings = list(merged.findings) if merged.findings else [
        finding for agent in SPECIALISTS for finding in specialists[agent].findings
    ]
    summary = merged.summary.strip() if not merged.parse_failed else ""
    if not summary:
        summary = " ".join(specialists[agent].summary.strip() for agent in SPECIALISTS if specialists[agent].summary)
    if not summary:
        summary = "Critique swarm produced no summary."

    report = CritiqueReport(
        overall_score=overall_score,
        summary=summary,
        agent_scores=agent_scores,
        findings=_rank_findings(findings),
        specialists=specialists,
        needs_reflection=merged.needs_reflection,
        iterations=int(state.get("iteration") or 0),
        parse_failures=parse_failures,
    )
    return {"report": report}


def build_critique_graph(
    backend: Backend,
    *,
    complete_fn: CompletionFn | None = None,
    sleep: SleepFn | None = None,
    inject_context: ContextInjector | None = None,
) -> CompiledGraph:
    """Build the critique swarm with ``backend`` fixed for every node."""
    builder = StateGraph(CritiqueSwarmState)
    builder.add_node("dispatch", dispatch)
    for agent in SPECIALISTS:
        builder.add_node(
            agent,
            make_specialist_node(
                agent,
                backend,
                complete_fn=complete_fn,
                sleep=sleep,
                inject_context=inject_context,
            ),
        )
    builder.add_node("supervisor", make_supervisor_node(backend, complete_fn=complete_fn, sleep=sleep))
    builder.add_node("assemble_report", assemble_critique_report)

    builder.add_edge(START, "dispatch")
    for agent in SPECIALISTS:
        builder.add_edge("dispatch", agent)
        builder.add_edge(agent, "supervisor")
    builder.add_conditional_edges(
        "supervisor",
        should_reflect,
        {
            "reflect": "dispatch",
            "finalize": "assemble_report",
        },
    )
    builder.add_edge("assemble_report", END)
    return builder.compile()


def render_critique(state: Mapping[str, Any]) -> str:
    report = state.get("report")
    if not isinstance(report, CritiqueReport):
        return "Critique swarm failed to produce a report."
    lines = [f"Overall score: {report.overall_score}/100", "", report.summary, ""]
    if report.agent_scores:
        lines.append("Agent scores: " + ", ".join(f"{agent}={score}" for agent, score in report.agent_scores.items()))
    for finding in report.findings:
        source = f" ({finding.agent})" if finding.agent else ""
        lines.append(f"- [{finding.severity}] {finding.title}{source}: {finding.detail}")
        if finding.suggestion:
            lines.append(f"    fix: {finding.suggestion}")
    if report.parse_failures:
        lines.append("")
        lines.append("Unparsed agent output: " + ", ".join(report.parse_failures))
    return "\n".join(lines).strip()


register_workflow(
    WorkflowDefinition(
        name="critique",
        build=build_critique_graph,
        input_field="code",
        description="Architecture, security, UX and performance critique with a reflection loop.",
        render=render_critique,
    ),
    replace=True,
)
