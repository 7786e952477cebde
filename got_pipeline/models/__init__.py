"""Pydantic data models for the graph and pipeline."""

from .enums import (
    Capability,
    EdgeType,
    EvidenceQuality,
    HyperEdgeType,
    KnowledgeType,
    NodeType,
    StageStatus,
    TaskPriority,
    TaskStatus,
)
from .graph import (
    GRAPH_SCHEMA_VERSION,
    AuditRecord,
    Edge,
    GraphDocument,
    GraphDocumentExport,
    GraphMetadata,
    HyperEdge,
    InformationMetrics,
    Node,
    NodeMetadata,
    graph_document_schema,
)
from .context import (
    STAGE_NAMES,
    Credentials,
    ResearchContext,
    StageContext,
    StageResult,
    StageResultMetadata,
    TokenUsage,
)

__all__ = [
    # Enums
    "Capability",
    "EdgeType",
    "EvidenceQuality",
    "HyperEdgeType",
    "KnowledgeType",
    "NodeType",
    "StageStatus",
    "TaskPriority",
    "TaskStatus",
    # Graph
    "GRAPH_SCHEMA_VERSION",
    "AuditRecord",
    "Edge",
    "GraphDocument",
    "GraphDocumentExport",
    "GraphMetadata",
    "HyperEdge",
    "InformationMetrics",
    "Node",
    "NodeMetadata",
    "graph_document_schema",
    # Context
    "STAGE_NAMES",
    "Credentials",
    "ResearchContext",
    "StageContext",
    "StageResult",
    "StageResultMetadata",
    "TokenUsage",
]
