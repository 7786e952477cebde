"""Confidence, information and graph processing utilities."""

from .confidence import blend_vectors, calculate_confidence, mean_confidence, normalize_vector
from .graph_algorithms import (
    extract_high_impact_subgraph,
    get_valid_edges,
    get_valid_hyperedges,
    identify_similar_nodes,
    merge_nodes,
)

__all__ = [
    "blend_vectors",
    "calculate_confidence",
    "mean_confidence",
    "normalize_vector",
    "extract_high_impact_subgraph",
    "get_valid_edges",
    "get_valid_hyperedges",
    "identify_similar_nodes",
    "merge_nodes",
]
