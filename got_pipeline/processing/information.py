"""Information-theoretic scoring of nodes, evidence and whole graphs."""

import math
from typing import Sequence

from got_pipeline.models.enums import EvidenceQuality
from got_pipeline.models.graph import GraphDocument, InformationMetrics, Node

# P(high), P(medium), P(low) outcome distribution implied by each quality grade
QUALITY_DISTRIBUTIONS = {
    EvidenceQuality.HIGH: (0.8, 0.15, 0.05),
    EvidenceQuality.MEDIUM: (0.3, 0.6, 0.1),
    EvidenceQuality.LOW: (0.1, 0.3, 0.6),
}

PEER_REVIEW_COMPLEXITY = {
    "peer-reviewed": 0.5,
    "preprint": 0.7,
}


def entropy(probabilities: Sequence[float]) -> float:
    """Shannon entropy (bits) of a distribution, normalized to sum to one first."""
    total = sum(probabilities)
    if total <= 0:
        return 0.0
    result = 0.0
    for p in probabilities:
        q = p / total
        if q > 0:
            result -= q * math.log2(q)
    return result


def kl_divergence(p: Sequence[float], q: Sequence[float]) -> float:
    """KL(P||Q) in bits over normalized distributions of equal length."""
    if len(p) != len(q):
        raise ValueError("Probability distributions must have same length")
    p_total, q_total = sum(p), sum(q)
    if p_total <= 0 or q_total <= 0:
        return 0.0
    result = 0.0
    for pi, qi in zip(p, q):
        pn, qn = pi / p_total, qi / q_total
        if pn > 0 and qn > 0:
            result += pn * math.log2(pn / qn)
    return result


def information_gain(
    parent_entropy: float, child_sizes: Sequence[int], child_entropies: Sequence[float]
) -> float:
    total = sum(child_sizes)
    if total <= 0:
        return parent_entropy
    weighted = sum(
        (size / total) * child for size, child in zip(child_sizes, child_entropies)
    )
    return parent_entropy - weighted


def graph_complexity(node_count: int, edge_count: int, hyperedge_count: int = 0) -> float:
    complexity = math.log2(node_count + 1) + math.log2(edge_count + 1)
    if hyperedge_count > 0:
        complexity += math.log2(hyperedge_count + 1)
    return complexity


def node_information_metrics(
    node: Node, connections: int | None = None, graph_size: int = 10
) -> InformationMetrics:
    """Metrics from a node's confidence vector and connectivity.

    `connections` defaults to the node's evidence count, with a floor of one.
    """
    if connections is None:
        connections = node.metadata.evidence_count or 1
    return InformationMetrics(
        entropy=entropy(node.confidence),
        information_gain=math.log2(max(graph_size, 1) / (connections + 1)),
        complexity=math.log2(len(node.confidence)) + math.log2(connections + 1),
    )


def evidence_information_metrics(
    quality: EvidenceQuality, statistical_power: float, peer_review_status: str
) -> InformationMetrics:
    return InformationMetrics(
        entropy=entropy(QUALITY_DISTRIBUTIONS[quality]),
        information_gain=-math.log2(1.0 - statistical_power + 0.01),
        complexity=PEER_REVIEW_COMPLEXITY.get(peer_review_status, 1.0),
    )


def hypothesis_information_metrics(support_values: Sequence[float]) -> InformationMetrics:
    """Metrics over the evidence support values of a set of hypotheses."""
    if not support_values:
        return InformationMetrics()
    mean = sum(support_values) / len(support_values)
    variance = sum((v - mean) ** 2 for v in support_values) / len(support_values)
    return InformationMetrics(
        entropy=entropy(support_values),
        information_gain=1.0 - variance,
        complexity=math.log2(len(support_values)),
    )


def graph_metrics(graph: GraphDocument) -> dict[str, float]:
    """Aggregate metrics stored on the graph metadata after each stage."""
    node_count = len(graph.nodes)
    edge_count = len(graph.edges)
    possible = node_count * (node_count - 1)
    average = (
        sum(node.mean_confidence for node in graph.nodes.values()) / node_count
        if node_count else 0.0
    )
    return {
        "complexity": graph_complexity(node_count, edge_count, len(graph.hyperedges)),
        "density": edge_count / possible if possible else 0.0,
        "average_confidence": average,
    }
