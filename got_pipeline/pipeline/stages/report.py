"""Stage 9: Final synthesis."""

from typing import Optional

import structlog

from got_pipeline.config.prompts import FINAL_REPORT_PROMPT
from got_pipeline.models.enums import NodeType, TaskPriority
from got_pipeline.pipeline.runtime import StageOutcome, StageRuntime

logger = structlog.get_logger(__name__)


def run_final_report(runtime: StageRuntime, query: Optional[str]) -> StageOutcome:
    graph = runtime.graph
    research = runtime.research

    synthesis = "\n\n".join(
        f"{node.label}\n{node.metadata.value}"
        for node in graph.nodes_of_type(NodeType.SYNTHESIS)
    ) or "No synthesis available."
    audits = graph.nodes_of_type(NodeType.REFLECTION)
    if audits and audits[-1].metadata.audit is not None:
        latest = audits[-1].metadata.audit
        audit = f"passed={latest.passed}; issues: {'; '.join(latest.issues) or 'none'}"
    else:
        audit = "No audit performed."

    draft = runtime.ask(
        FINAL_REPORT_PROMPT.format(
            query=research.topic or query or "",
            field=research.field,
            objectives="; ".join(research.objectives),
            synthesis=synthesis,
            audit=audit,
        ),
        priority=TaskPriority.HIGH,
    )
    report = runtime.report_exporter.build_report(graph, research, draft)
    graph.metadata.completed = True

    logger.info("final_report_built", characters=len(report), nodes=len(graph.nodes))

    return StageOutcome(
        content=report,
        counters={"report_characters": len(report)},
        report=report,
        nodes=[],
        edges=[],
        hyperedges=[],
    )
