"""Stage 4: Evidence integration.

For every hypothesis a search-grounded evidence query runs first, then a
reasoning-only analysis of what it found. Both fan out through the
scheduler. The combined text is scored with the statistical-power and
keyword heuristics to create one evidence node per hypothesis; the
hypothesis confidence is blended with the evidence confidence and the
connecting edge is typed from causal-language markers. Hyperedges link
evidence that shares a discipline, hypotheses backed by several evidence
nodes, and clusters of high-confidence evidence.
"""

from collections import defaultdict
from typing import Optional

import structlog

from got_pipeline.config.prompts import EVIDENCE_ANALYSIS_PROMPT, EVIDENCE_SEARCH_PROMPT
from got_pipeline.models.enums import Capability, HyperEdgeType, NodeType, TaskPriority
from got_pipeline.models.graph import Edge, HyperEdge, Node, NodeMetadata
from got_pipeline.pipeline.runtime import StageOutcome, StageRuntime
from got_pipeline.processing.confidence import blend_vectors, mean_confidence, normalize_vector
from got_pipeline.processing.graph_algorithms import slugify
from got_pipeline.processing.information import (
    evidence_information_metrics,
    hypothesis_information_metrics,
    kl_divergence,
)

logger = structlog.get_logger(__name__)

POWER_WEIGHT = 0.6
EMPIRICAL_WEIGHT = 0.4
HIGH_CONFIDENCE_CLUSTER = 0.8
MIN_CLUSTER_SIZE = 3


def evidence_node_id(hypothesis_id: str) -> str:
    return f"e_{hypothesis_id}"


def run_evidence(runtime: StageRuntime, query: Optional[str]) -> StageOutcome:
    research = runtime.research
    extractor = runtime.extractor
    hypotheses = runtime.graph.nodes_of_type(NodeType.HYPOTHESIS)

    if not hypotheses:
        logger.warning("evidence_no_hypotheses")
        return StageOutcome(content="No hypotheses available for evidence integration", counters={"evidence": 0})

    searches = runtime.ask_many(
        [
            EVIDENCE_SEARCH_PROMPT.format(
                field=research.field,
                hypothesis=hypothesis.metadata.value or hypothesis.label,
                falsification=hypothesis.metadata.falsification_criteria or "not stated",
            )
            for hypothesis in hypotheses
        ],
        capability=Capability.SEARCH_GROUNDING,
        priority=TaskPriority.HIGH,
    )
    analyses = runtime.ask_many(
        [
            EVIDENCE_ANALYSIS_PROMPT.format(
                hypothesis=hypothesis.metadata.value or hypothesis.label,
                evidence=search,
            )
            for hypothesis, search in zip(hypotheses, searches)
        ],
        priority=TaskPriority.MEDIUM,
    )

    quality_counts: dict[str, int] = defaultdict(int)
    belief_shifts: list[float] = []
    for hypothesis, search, analysis in zip(hypotheses, searches, analyses):
        evidence_text = f"{search}\n\n{analysis}"

        power = extractor.extract_statistical_power(evidence_text)
        confidence = normalize_vector(extractor.evidence_confidence(evidence_text))
        quality = extractor.assess_evidence_quality(power)
        review_status = extractor.peer_review_status(evidence_text)
        quality_counts[quality.value] += 1

        tags = dict.fromkeys(hypothesis.metadata.disciplinary_tags)
        tags.update(dict.fromkeys(extractor.extract_disciplinary_tags(evidence_text)))

        evidence = runtime.add_node(Node(
            id=evidence_node_id(hypothesis.id),
            label=f"Evidence for {hypothesis.label}",
            type=NodeType.EVIDENCE,
            confidence=confidence,
            metadata=NodeMetadata(
                stage=4,
                impact_score=min(1.0, POWER_WEIGHT * power + EMPIRICAL_WEIGHT * confidence[0]),
                evidence_count=1,
                disciplinary_tags=list(tags),
                value=search.strip(),
                notes=analysis.strip(),
                statistical_power=power,
                evidence_quality=quality,
                peer_review_status=review_status,
                info_metrics=evidence_information_metrics(quality, power, review_status),
            ),
        ))

        runtime.add_edge(Edge(
            id=f"edge_{hypothesis.id}_{evidence.id}",
            source=hypothesis.id,
            target=evidence.id,
            type=extractor.classify_relationship(analysis),
            confidence=confidence[0],
        ))

        prior = hypothesis.confidence
        hypothesis.confidence = blend_vectors(
            prior, confidence, runtime.settings.confidence_blend_weight
        )
        # bits between the updated and the prior confidence profile
        belief_shifts.append(kl_divergence(hypothesis.confidence, prior))
        hypothesis.metadata.evidence_count += 1
        runtime.record_node(hypothesis.id)

    _attach_hypothesis_metrics(runtime, hypotheses)
    hyperedge_count = _create_hyperedges(runtime, hypotheses)

    logger.info(
        "evidence_integrated",
        hypotheses=len(hypotheses),
        quality=dict(quality_counts),
        hyperedges=hyperedge_count,
    )

    content = "\n".join(
        f"{node.id}: {node.metadata.evidence_quality.value} quality, "
        f"power {node.metadata.statistical_power:.2f}"
        for node in runtime.recorded_nodes()
        if node.type == NodeType.EVIDENCE
    )
    return StageOutcome(
        content=content,
        counters={
            "evidence": len(hypotheses),
            "hyperedges": hyperedge_count,
            "quality": dict(quality_counts),
            "mean_belief_shift": round(sum(belief_shifts) / len(belief_shifts), 6),
        },
    )


def _evidence_for(runtime: StageRuntime, hypothesis: Node) -> list[Node]:
    graph = runtime.graph
    return [
        graph.nodes[edge.target]
        for edge in graph.edges_from(hypothesis.id)
        if edge.target in graph.nodes and graph.nodes[edge.target].type == NodeType.EVIDENCE
    ]


def _attach_hypothesis_metrics(runtime: StageRuntime, hypotheses: list[Node]) -> None:
    for hypothesis in hypotheses:
        support = [mean_confidence(node.confidence) for node in _evidence_for(runtime, hypothesis)]
        if support:
            hypothesis.metadata.info_metrics = hypothesis_information_metrics(support)


def _hyperedge_confidence(nodes: list[Node]) -> float:
    return sum(node.mean_confidence for node in nodes) / len(nodes)


def _create_hyperedges(runtime: StageRuntime, hypotheses: list[Node]) -> int:
    graph = runtime.graph
    evidence_nodes = graph.nodes_of_type(NodeType.EVIDENCE)
    created = 0

    by_tag: dict[str, list[Node]] = defaultdict(list)
    for node in evidence_nodes:
        for tag in node.metadata.disciplinary_tags:
            # Sharing the primary field is not interdisciplinary
            if tag != runtime.research.field:
                by_tag[tag].append(node)
    for tag, members in by_tag.items():
        if len(members) < 2:
            continue
        created += runtime.add_hyperedge(HyperEdge(
            id=f"hyper_interdisciplinary_{slugify(tag)}",
            nodes=[node.id for node in members],
            type=HyperEdgeType.INTERDISCIPLINARY,
            label=f"Shared discipline: {tag}",
            confidence=_hyperedge_confidence(members),
        ))

    for hypothesis in hypotheses:
        supporting = _evidence_for(runtime, hypothesis)
        if len(supporting) < 2:
            continue
        created += runtime.add_hyperedge(HyperEdge(
            id=f"hyper_multi_causal_{hypothesis.id}",
            nodes=[hypothesis.id, *(node.id for node in supporting)],
            type=HyperEdgeType.MULTI_CAUSAL,
            label=f"Combined evidence for {hypothesis.label}",
            confidence=_hyperedge_confidence(supporting),
        ))

    strong = [node for node in evidence_nodes if node.mean_confidence > HIGH_CONFIDENCE_CLUSTER]
    if len(strong) >= MIN_CLUSTER_SIZE:
        created += runtime.add_hyperedge(HyperEdge(
            id="hyper_complex_high_confidence",
            nodes=[node.id for node in strong],
            type=HyperEdgeType.COMPLEX_RELATIONSHIP,
            label="High-confidence evidence cluster",
            confidence=_hyperedge_confidence(strong),
        ))

    return created
