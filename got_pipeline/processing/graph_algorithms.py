"""Graph algorithms: similarity merging, pruning, rewiring and subgraphs."""

import re
from typing import Iterable, Optional

import structlog
from rapidfuzz import fuzz

from got_pipeline.models.enums import NodeType
from got_pipeline.models.graph import Edge, GraphDocument, HyperEdge, Node
from got_pipeline.processing.confidence import average_vectors

logger = structlog.get_logger(__name__)

# Default threshold for fuzzy label matching (rapidfuzz ratio, 0-100)
LABEL_MATCH_THRESHOLD = 90.0

DEFAULT_PRUNE_FLOOR = 0.2

# Never merged or pruned
PROTECTED_TYPES = frozenset({NodeType.ROOT, NodeType.KNOWLEDGE})


def slugify(text: str) -> str:
    """Lowercase id fragment built from the alphanumeric words of `text`."""
    normalized = "".join(c if c.isalnum() or c.isspace() else " " for c in text.lower())
    return "_".join(normalized.split()) or "item"


def normalize_label(label: str) -> str:
    return " ".join(re.sub(r"[^a-z0-9]+", " ", label.lower()).split())


def _numeric_tokens(label: str) -> set[str]:
    return set(re.findall(r"\d+", label))


def labels_match(a: Node, b: Node, threshold: float = LABEL_MATCH_THRESHOLD) -> bool:
    """Same type, same numbers, and fuzzy label ratio at or above threshold."""
    if a.type != b.type:
        return False
    label_a, label_b = normalize_label(a.label), normalize_label(b.label)
    if not label_a or not label_b:
        return False
    # "Hypothesis 1" and "Hypothesis 2" differ only by a digit but are distinct
    if _numeric_tokens(label_a) != _numeric_tokens(label_b):
        return False
    return fuzz.ratio(label_a, label_b) >= threshold


def identify_similar_nodes(
    nodes: Iterable[Node],
    threshold: float = LABEL_MATCH_THRESHOLD,
    protected_types: frozenset[NodeType] = PROTECTED_TYPES,
) -> list[list[Node]]:
    """Group nodes whose type and label pass the similarity test.

    Groups are seeded greedily in input order, so the first member of each
    group is the earliest node. Protected nodes always form singleton groups.

    Args:
        nodes: Candidate nodes.
        threshold: Minimum rapidfuzz ratio (0-100) for two labels to match.
        protected_types: Node types that are never grouped with others.

    Returns:
        List of groups, singletons included. Empty for empty input.
    """
    candidates = list(nodes)
    groups: list[list[Node]] = []
    processed: set[str] = set()

    for i, node in enumerate(candidates):
        if node.id in processed:
            continue

        group = [node]
        processed.add(node.id)

        if node.type not in protected_types:
            for other in candidates[i + 1:]:
                if other.id in processed or other.type in protected_types:
                    continue
                if labels_match(node, other, threshold):
                    group.append(other)
                    processed.add(other.id)

        groups.append(group)

    return groups


def merge_nodes(group: list[Node]) -> Node:
    """Merge a similarity group into its first member.

    Identity (id, label, type) comes from the first node. Confidence is the
    element-wise mean, tags are unioned in order, evidence counts are summed
    and the highest impact score is kept.

    Raises:
        ValueError: If the group is empty.
    """
    if not group:
        raise ValueError("Cannot merge an empty node group")

    first = group[0]
    if len(group) == 1:
        return first.model_copy(deep=True)

    tags: dict[str, None] = {}
    for node in group:
        for tag in node.metadata.disciplinary_tags:
            tags.setdefault(tag, None)

    extra = dict(first.metadata.extra)
    extra["merged_from"] = [node.id for node in group[1:]]

    metadata = first.metadata.model_copy(
        deep=True,
        update={
            "disciplinary_tags": list(tags),
            "evidence_count": sum(node.metadata.evidence_count for node in group),
            "impact_score": max(node.metadata.impact_score for node in group),
            "extra": extra,
        },
    )

    return Node(
        id=first.id,
        label=first.label,
        type=first.type,
        confidence=average_vectors([node.confidence for node in group]),
        metadata=metadata,
    )


def get_valid_edges(graph: GraphDocument) -> list[Edge]:
    """Edges whose endpoints both exist, with `weight` defaulted to confidence."""
    valid = []
    for edge in graph.edges:
        if edge.source in graph.nodes and edge.target in graph.nodes:
            weight = edge.weight if edge.weight is not None else edge.confidence
            valid.append(edge.model_copy(update={"weight": weight}))
    return valid


def get_valid_hyperedges(graph: GraphDocument) -> list[HyperEdge]:
    return [
        hyperedge.model_copy()
        for hyperedge in graph.hyperedges
        if all(node_id in graph.nodes for node_id in hyperedge.nodes)
    ]


def induced_subgraph(graph: GraphDocument, node_ids: Iterable[str]) -> GraphDocument:
    """Copy of the nodes in `node_ids` with the edges and hyperedges among them."""
    keep = {node_id for node_id in node_ids if node_id in graph.nodes}
    sub = GraphDocument(
        nodes={
            node_id: node.model_copy(deep=True)
            for node_id, node in graph.nodes.items()
            if node_id in keep
        },
        metadata=graph.metadata.model_copy(deep=True),
    )
    sub.edges = [edge for edge in get_valid_edges(graph) if edge.source in keep and edge.target in keep]
    sub.hyperedges = [
        hyperedge for hyperedge in get_valid_hyperedges(graph)
        if all(node_id in keep for node_id in hyperedge.nodes)
    ]
    sub.metadata.total_nodes = len(sub.nodes)
    sub.metadata.total_edges = len(sub.edges)
    sub.metadata.total_hyperedges = len(sub.hyperedges)
    return sub


def extract_high_impact_subgraph(graph: GraphDocument, threshold: float) -> GraphDocument:
    """Node-induced subgraph over nodes with impact_score strictly above threshold."""
    selected = [
        node_id for node_id, node in graph.nodes.items()
        if node.metadata.impact_score > threshold
    ]
    return induced_subgraph(graph, selected)


def neighborhood(graph: GraphDocument, node_ids: Iterable[str]) -> set[str]:
    """The given ids plus every node one valid edge away in either direction."""
    seeds = {node_id for node_id in node_ids if node_id in graph.nodes}
    result = set(seeds)
    for edge in get_valid_edges(graph):
        if edge.source in seeds:
            result.add(edge.target)
        if edge.target in seeds:
            result.add(edge.source)
    return result


def prune_low_confidence(
    graph: GraphDocument,
    floor: float = DEFAULT_PRUNE_FLOOR,
    protected_types: frozenset[NodeType] = PROTECTED_TYPES,
) -> list[str]:
    """Remove nodes whose mean confidence is below `floor`. Returns removed ids."""
    removed = [
        node_id for node_id, node in graph.nodes.items()
        if node.type not in protected_types and node.mean_confidence < floor
    ]
    for node_id in removed:
        graph.remove_node(node_id)

    if removed:
        logger.info("nodes_pruned", count=len(removed), floor=floor)
    return removed


def merge_similar_nodes(
    graph: GraphDocument,
    threshold: float = LABEL_MATCH_THRESHOLD,
) -> tuple[dict[str, str], list[Node]]:
    """Merge every similarity group of size > 1 in place.

    Returns:
        Tuple of (absorbed_id_to_survivor_id mapping, merged survivor nodes).
    """
    mapping: dict[str, str] = {}
    survivors: list[Node] = []

    for group in identify_similar_nodes(list(graph.nodes.values()), threshold):
        if len(group) < 2:
            continue
        merged = merge_nodes(group)
        for absorbed in group[1:]:
            graph.remove_node(absorbed.id)
            mapping[absorbed.id] = merged.id
        graph.nodes[merged.id] = merged
        survivors.append(merged)

    if mapping:
        logger.info("nodes_merged", groups=len(survivors), absorbed=len(mapping))
    return mapping, survivors


def rewire_edges(graph: GraphDocument, mapping: Optional[dict[str, str]] = None) -> dict[str, int]:
    """Point edges and hyperedges at surviving ids and drop what no longer fits.

    Self-loops created by a merge, duplicate (source, target, type) edges and
    edges or hyperedges touching removed nodes are dropped.

    Returns:
        Counts of rewired and dropped items.
    """
    mapping = mapping or {}
    stats = {"rewired": 0, "self_loops": 0, "duplicates": 0, "dangling": 0, "hyperedges_dropped": 0}

    seen: set[tuple[str, str, str]] = set()
    edges: list[Edge] = []
    for edge in graph.edges:
        source = mapping.get(edge.source, edge.source)
        target = mapping.get(edge.target, edge.target)
        if source not in graph.nodes or target not in graph.nodes:
            stats["dangling"] += 1
            continue
        if source == target:
            stats["self_loops"] += 1
            continue
        key = (source, target, edge.type.value)
        if key in seen:
            stats["duplicates"] += 1
            continue
        seen.add(key)
        if (source, target) != (edge.source, edge.target):
            stats["rewired"] += 1
            edge = edge.model_copy(update={"source": source, "target": target})
        edges.append(edge)
    graph.edges = edges

    hyperedges: list[HyperEdge] = []
    for hyperedge in graph.hyperedges:
        members: dict[str, None] = {}
        for node_id in hyperedge.nodes:
            members.setdefault(mapping.get(node_id, node_id), None)
        if len(members) < 2 or any(node_id not in graph.nodes for node_id in members):
            stats["hyperedges_dropped"] += 1
            continue
        hyperedges.append(hyperedge.model_copy(update={"nodes": list(members)}))
    graph.hyperedges = hyperedges

    return stats
