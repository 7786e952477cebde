"""Stage 7: Composition.

Synthesizes the extracted subgraph (or the whole graph when stage 6 has not
run) into synthesis nodes. Evidence is offered to the model as a numbered
catalogue; `[n]` citations in each section are resolved back to evidence
nodes, which are edged to the synthesis node and grouped with it in a
synthesis hyperedge.
"""

import math
from typing import Any, Optional

import structlog

from got_pipeline.config.prompts import COMPOSITION_PROMPT
from got_pipeline.errors import MalformedResponseError
from got_pipeline.llm.chains import parse_json_response
from got_pipeline.models.enums import EdgeType, HyperEdgeType, NodeType, TaskPriority
from got_pipeline.models.graph import Edge, GraphDocument, HyperEdge, Node, NodeMetadata
from got_pipeline.pipeline.runtime import StageOutcome, StageRuntime
from got_pipeline.processing.confidence import average_vectors
from got_pipeline.processing.information import node_information_metrics

logger = structlog.get_logger(__name__)


def _source_graph(runtime: StageRuntime) -> GraphDocument:
    if runtime.subgraph is not None and runtime.subgraph.nodes:
        return runtime.subgraph
    return runtime.graph


def _citation_numbers(citations: list) -> list[int]:
    """Integral citation numbers; NaN, infinities and fractions are dropped."""
    numbers = []
    for n in citations:
        if isinstance(n, bool):
            continue
        if isinstance(n, float) and math.isfinite(n) and n.is_integer():
            n = int(n)
        if isinstance(n, int):
            numbers.append(n)
        elif isinstance(n, str) and n.strip().isdecimal():
            numbers.append(int(n.strip()))
    return numbers


def parse_sections(response: str, extractor) -> list[dict[str, Any]]:
    try:
        data = parse_json_response(response)
    except MalformedResponseError as e:
        logger.info("composition_json_fallback", error=str(e))
        data = {}

    sections = []
    raw_sections = data.get("sections")
    for raw in raw_sections if isinstance(raw_sections, list) else []:
        if not isinstance(raw, dict):
            continue
        content = str(raw.get("content") or "").strip()
        if not content:
            continue
        citations = raw.get("citations")
        numbers = _citation_numbers(citations) if isinstance(citations, list) else []
        sections.append({
            "title": str(raw.get("title") or "Synthesis").strip(),
            "content": content,
            "citations": numbers or extractor.extract_citation_numbers(content),
        })

    if not sections:
        sections.append({
            "title": "Research Synthesis",
            "content": response.strip(),
            "citations": extractor.extract_citation_numbers(response),
        })
    return sections


def run_composition(runtime: StageRuntime, query: Optional[str]) -> StageOutcome:
    research = runtime.research
    source = _source_graph(runtime)
    evidence = [
        node for node in source.nodes.values()
        if node.type == NodeType.EVIDENCE and node.id in runtime.graph.nodes
    ]
    hypotheses = [node for node in source.nodes.values() if node.type == NodeType.HYPOTHESIS]

    catalogue = "\n".join(
        f"[{number}] {node.label}: {node.metadata.value[:500]}"
        for number, node in enumerate(evidence, start=1)
    ) or "No evidence collected."
    response = runtime.ask(
        COMPOSITION_PROMPT.format(
            field=research.field,
            query=research.topic or query or "",
            hypotheses="\n".join(f"- {node.label}" for node in hypotheses) or "- none",
            evidence=catalogue,
        ),
        priority=TaskPriority.HIGH,
    )

    sections = parse_sections(response, runtime.extractor)
    for k, section in enumerate(sections, start=1):
        cited = [
            evidence[number - 1] for number in section["citations"]
            if 1 <= number <= len(evidence)
        ]
        supporting = cited or evidence

        node = runtime.add_node(Node(
            id=f"s7_{k}",
            label=section["title"],
            type=NodeType.SYNTHESIS,
            confidence=average_vectors([item.confidence for item in supporting]),
            metadata=NodeMetadata(
                stage=7,
                impact_score=max((item.metadata.impact_score for item in supporting), default=0.8),
                evidence_count=len(supporting),
                disciplinary_tags=[research.field],
                value=section["content"],
                citations=[f"[{number}] {evidence[number - 1].label}" for number in section["citations"]
                           if 1 <= number <= len(evidence)],
            ),
        ))
        node.metadata.info_metrics = node_information_metrics(
            node, connections=len(supporting), graph_size=len(runtime.graph.nodes)
        )

        for item in supporting:
            runtime.add_edge(Edge(
                id=f"edge_{item.id}_{node.id}",
                source=item.id,
                target=node.id,
                type=EdgeType.SUPPORTIVE,
                confidence=item.mean_confidence,
            ))
        if supporting:
            runtime.add_hyperedge(HyperEdge(
                id=f"hyper_synthesis_{node.id}",
                nodes=[node.id, *(item.id for item in supporting)],
                type=HyperEdgeType.SYNTHESIS,
                label=section["title"],
                confidence=node.mean_confidence,
            ))

    logger.info("composition_complete", sections=len(sections), evidence=len(evidence))

    content = "\n\n".join(f"{section['title']}\n{section['content']}" for section in sections)
    return StageOutcome(
        content=content,
        counters={"sections": len(sections), "evidence_cited": len(evidence)},
    )
