"""Stage 8: Reflection & audit.

The model audits a summary of the graph. A JSON verdict is used as given;
when the answer is not JSON the four checks are computed from the graph
itself. Each run appends one reflection node carrying the audit record.
"""

import re
from typing import Any, Optional

import structlog

from got_pipeline.config.prompts import AUDIT_PROMPT
from got_pipeline.errors import MalformedResponseError
from got_pipeline.llm.chains import parse_json_response
from got_pipeline.models.enums import NodeType, TaskPriority
from got_pipeline.models.graph import AuditRecord, GraphDocument, Node, NodeMetadata
from got_pipeline.pipeline.runtime import StageOutcome, StageRuntime

logger = structlog.get_logger(__name__)

AUDIT_CHECKS = ("bias", "statistical_rigor", "falsifiability", "causality")
MIN_MEAN_POWER = 0.5
_CAUSAL_OVERREACH = re.compile(r"\bproves?\b|\bdefinitively\b|\bcertainly causes\b", re.IGNORECASE)


def summarize_graph(graph: GraphDocument) -> str:
    lines = [
        f"Nodes: {len(graph.nodes)}, edges: {len(graph.edges)}, hyperedges: {len(graph.hyperedges)}",
    ]
    for node_type in (NodeType.HYPOTHESIS, NodeType.EVIDENCE, NodeType.SYNTHESIS):
        for node in graph.nodes_of_type(node_type):
            detail = f"- [{node_type.value}] {node.label} (confidence {node.mean_confidence:.2f})"
            if node.metadata.falsification_criteria:
                detail += f"; falsified if: {node.metadata.falsification_criteria}"
            if node.metadata.statistical_power is not None:
                detail += f"; power {node.metadata.statistical_power:.2f}"
            lines.append(detail)
    return "\n".join(lines)


def heuristic_checks(graph: GraphDocument, bias_flags: list[str]) -> dict[str, bool]:
    """Audit checks computed from the graph when the model gives no verdict."""
    evidence = graph.nodes_of_type(NodeType.EVIDENCE)
    powers = [
        node.metadata.statistical_power for node in evidence
        if node.metadata.statistical_power is not None
    ]
    hypotheses = graph.nodes_of_type(NodeType.HYPOTHESIS)
    narrative = " ".join(
        f"{node.metadata.value} {node.metadata.notes}"
        for node in graph.nodes.values()
        if node.type in (NodeType.EVIDENCE, NodeType.SYNTHESIS)
    )
    return {
        "bias": not bias_flags,
        "statistical_rigor": bool(powers) and sum(powers) / len(powers) >= MIN_MEAN_POWER,
        "falsifiability": all(node.metadata.falsification_criteria for node in hypotheses),
        "causality": not _CAUSAL_OVERREACH.search(narrative),
    }


def parse_audit(response: str, graph: GraphDocument, extractor) -> AuditRecord:
    data: dict[str, Any] = {}
    try:
        data = parse_json_response(response)
    except MalformedResponseError as e:
        logger.info("audit_json_fallback", error=str(e))

    bias_flags = data.get("bias_flags")
    if not isinstance(bias_flags, list):
        bias_flags = extractor.extract_bias_flags(response)
    bias_flags = [str(flag) for flag in bias_flags]

    checks = heuristic_checks(graph, bias_flags)
    reported = data.get("checks")
    if isinstance(reported, dict):
        for name in AUDIT_CHECKS:
            if isinstance(reported.get(name), bool):
                checks[name] = reported[name]

    issues = data.get("issues")
    if not isinstance(issues, list):
        issues = [f"{name.replace('_', ' ')} check failed" for name, ok in checks.items() if not ok]

    passed = data.get("passed")
    if not isinstance(passed, bool):
        passed = all(checks.values())

    return AuditRecord(
        passed=passed,
        issues=[str(issue) for issue in issues],
        checks=checks,
        bias_flags=bias_flags,
    )


def run_audit(runtime: StageRuntime, query: Optional[str]) -> StageOutcome:
    graph = runtime.graph
    response = runtime.ask(
        AUDIT_PROMPT.format(field=runtime.research.field, summary=summarize_graph(graph)),
        priority=TaskPriority.HIGH,
    )
    audit = parse_audit(response, graph, runtime.extractor)

    sequence = len(graph.nodes_of_type(NodeType.REFLECTION)) + 1
    node = runtime.add_node(Node(
        id=f"r8_audit_{sequence}",
        label="Audit passed" if audit.passed else "Audit found issues",
        type=NodeType.REFLECTION,
        confidence=runtime.extractor.parse_confidence_vector(response),
        metadata=NodeMetadata(
            stage=8,
            impact_score=0.8,
            notes="; ".join(audit.issues),
            value=response.strip(),
            audit=audit,
        ),
    ))

    logger.info(
        "audit_complete",
        node_id=node.id,
        passed=audit.passed,
        issues=len(audit.issues),
        bias_flags=audit.bias_flags,
    )

    content = "\n".join([
        f"Audit {'passed' if audit.passed else 'failed'}",
        *(f"{name}: {'ok' if ok else 'failed'}" for name, ok in audit.checks.items()),
        *(f"Issue: {issue}" for issue in audit.issues),
    ])
    return StageOutcome(
        content=content,
        counters={"passed": audit.passed, "issues": len(audit.issues), "bias_flags": len(audit.bias_flags)},
    )
