"""Stages 5 and 6: Pruning & merging, subgraph extraction.

Neither stage calls the model; both operate on the graph alone.
"""

from typing import Optional

import structlog

from got_pipeline.pipeline.runtime import StageOutcome, StageRuntime
from got_pipeline.processing.graph_algorithms import (
    extract_high_impact_subgraph,
    get_valid_edges,
    induced_subgraph,
    merge_similar_nodes,
    neighborhood,
    prune_low_confidence,
    rewire_edges,
)

logger = structlog.get_logger(__name__)


def run_pruning(runtime: StageRuntime, query: Optional[str]) -> StageOutcome:
    """Stage 5: drop low-confidence nodes, merge look-alikes, rewire edges."""
    graph = runtime.graph
    settings = runtime.settings

    removed = prune_low_confidence(graph, settings.prune_confidence_floor)
    mapping, survivors = merge_similar_nodes(graph, settings.merge_similarity_threshold)
    stats = rewire_edges(graph, mapping)

    logger.info(
        "pruning_complete",
        removed=len(removed),
        merged=len(mapping),
        **stats,
    )

    survivor_ids = {node.id for node in survivors}
    content = (
        f"Pruned {len(removed)} nodes below mean confidence {settings.prune_confidence_floor}. "
        f"Merged {len(mapping)} nodes into {len(survivors)} representatives. "
        f"Dropped {stats['dangling'] + stats['self_loops'] + stats['duplicates']} edges."
    )
    return StageOutcome(
        content=content,
        counters={"pruned": len(removed), "merged": len(mapping), **stats},
        nodes=[node.model_copy(deep=True) for node in survivors],
        edges=[
            edge for edge in get_valid_edges(graph)
            if edge.source in survivor_ids or edge.target in survivor_ids
        ],
        hyperedges=[],
    )


def run_subgraph_extraction(runtime: StageRuntime, query: Optional[str]) -> StageOutcome:
    """Stage 6: high-impact nodes plus their one-hop neighbourhood."""
    graph = runtime.graph
    threshold = runtime.settings.high_impact_threshold

    core = extract_high_impact_subgraph(graph, threshold)
    subgraph = induced_subgraph(graph, neighborhood(graph, core.nodes))

    logger.info(
        "subgraph_extracted",
        threshold=threshold,
        core_nodes=len(core.nodes),
        nodes=len(subgraph.nodes),
        edges=len(subgraph.edges),
    )

    content = (
        f"Extracted {len(core.nodes)} nodes with impact above {threshold} "
        f"and {len(subgraph.nodes) - len(core.nodes)} neighbours "
        f"({len(subgraph.edges)} edges)."
    )
    return StageOutcome(
        content=content,
        counters={"core_nodes": len(core.nodes), "subgraph_nodes": len(subgraph.nodes)},
        subgraph=subgraph,
        nodes=list(subgraph.nodes.values()),
        edges=list(subgraph.edges),
        hyperedges=list(subgraph.hyperedges),
    )
