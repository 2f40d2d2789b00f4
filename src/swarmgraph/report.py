"""Report assembly: per-agent raw text into typed records, isolated per field."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from .parsing import StructuredOutputParser
from .runtime_utils import log_runtime_event

_logger = logging.getLogger(__name__)


@dataclass
class AssembledSections:
    """Typed record per agent plus the agents whose output fell back to defaults."""

    records: dict[str, BaseModel] = field(default_factory=dict)
    parse_failures: list[str] = field(default_factory=list)


def assemble_report(
    raw_results: Mapping[str, Any] | None,
    parsers: Mapping[str, StructuredOutputParser[Any]],
) -> AssembledSections:
    """Parse each agent's raw result with its parser.

    A missing, non-text, or malformed result yields that parser's fallback
    record; one bad agent never aborts assembly of the others.
    """
    results = raw_results if isinstance(raw_results, Mapping) else {}
    assembled = AssembledSections()
    for agent, parser in parsers.items():
        raw = results.get(agent)
        if isinstance(raw, str):
            record, ok = parser.parse(raw)
        else:
            record, ok = parser.fallback(""), False
        assembled.records[agent] = record
        if not ok:
            assembled.parse_failures.append(agent)
            log_runtime_event(
                _logger,
                "report_parse_fallback",
                agent=agent,
                schema=parser.name,
                had_output=isinstance(raw, str),
            )
    return assembled
