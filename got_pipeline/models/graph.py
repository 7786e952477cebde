"""Graph document models.

The GraphDocument is the single mutable reasoning state owned by a StageEngine.
Nodes are keyed by id; edges and hyperedges are ordered lists whose ids are
unique. Edges that point at missing nodes are kept but excluded from the
"valid" views returned by the graph algorithms.
"""

from datetime import datetime
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from got_pipeline.models.enums import (
    EdgeType,
    EvidenceQuality,
    HyperEdgeType,
    KnowledgeType,
    NodeType,
)

GRAPH_SCHEMA_VERSION = "1.0.0"

UnitFloat = Annotated[float, Field(ge=0.0, le=1.0)]

# empirical support, theoretical basis, methodological rigor, consensus alignment
ConfidenceVector = Annotated[list[UnitFloat], Field(min_length=4, max_length=4)]


class InformationMetrics(BaseModel):
    """Information-theoretic scores attached to a node."""

    entropy: float = Field(0.0, ge=0.0)
    complexity: float = Field(0.0, ge=0.0)
    information_gain: float = 0.0


class AuditRecord(BaseModel):
    """Outcome of the reflection/audit stage."""

    passed: bool
    issues: list[str] = Field(default_factory=list)
    checks: dict[str, bool] = Field(default_factory=dict)
    bias_flags: list[str] = Field(default_factory=list)


class NodeMetadata(BaseModel):
    """Node metadata.

    Type-specific fields are optional and only populated for the node type
    that owns them. `extra` holds genuinely free-form values.
    """

    stage: int = Field(0, ge=0, le=9, description="Stage that created the node")
    impact_score: UnitFloat = Field(0.5, description="Salience used for subgraph extraction")
    evidence_count: int = Field(0, ge=0)
    disciplinary_tags: list[str] = Field(default_factory=list)
    notes: str = ""
    value: str = Field("", description="Extracted text content")
    timestamp: datetime = Field(default_factory=datetime.now)
    info_metrics: Optional[InformationMetrics] = None

    # hypothesis
    falsification_criteria: Optional[str] = None

    # evidence
    statistical_power: Optional[UnitFloat] = None
    evidence_quality: Optional[EvidenceQuality] = None
    peer_review_status: Optional[str] = None

    # synthesis
    citations: list[str] = Field(default_factory=list)

    # reflection
    audit: Optional[AuditRecord] = None

    # knowledge
    knowledge_type: Optional[KnowledgeType] = None
    knowledge_data: dict[str, Any] = Field(default_factory=dict)

    extra: dict[str, Any] = Field(default_factory=dict)


class Node(BaseModel):
    """A research concept in the graph."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., frozen=True, min_length=1)
    label: str
    type: NodeType = Field(..., frozen=True)
    confidence: ConfidenceVector
    metadata: NodeMetadata = Field(default_factory=NodeMetadata)

    @property
    def mean_confidence(self) -> float:
        return sum(self.confidence) / len(self.confidence)


class Edge(BaseModel):
    """Directed relation between two nodes."""

    id: str = Field(..., min_length=1)
    source: str
    target: str
    type: EdgeType = EdgeType.SUPPORTIVE
    confidence: UnitFloat = 0.5
    weight: Optional[float] = Field(None, description="Defaults to confidence in valid views")
    metadata: dict[str, Any] = Field(default_factory=dict)


class HyperEdge(BaseModel):
    """Relation grouping two or more nodes."""

    id: str = Field(..., min_length=1)
    nodes: list[str] = Field(..., min_length=2)
    type: HyperEdgeType = HyperEdgeType.SYNTHESIS
    label: str = ""
    confidence: UnitFloat = 0.5
    metadata: dict[str, Any] = Field(default_factory=dict)


class GraphMetadata(BaseModel):
    """Versioning and aggregate information for a graph document."""

    version: str = GRAPH_SCHEMA_VERSION
    created: datetime = Field(default_factory=datetime.now)
    last_updated: datetime = Field(default_factory=datetime.now)
    stage: int = Field(0, ge=0, le=9)
    total_nodes: int = 0
    total_edges: int = 0
    total_hyperedges: int = 0
    graph_metrics: dict[str, float] = Field(default_factory=dict)
    completed: bool = False


class GraphDocumentExport(BaseModel):
    """Canonical plain shape handed to rendering, export and persistence."""

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    hyperedges: list[HyperEdge] = Field(default_factory=list)
    metadata: GraphMetadata = Field(default_factory=GraphMetadata)


class GraphDocument(BaseModel):
    """Versioned node/edge/hyperedge container."""

    nodes: dict[str, Node] = Field(default_factory=dict)
    edges: list[Edge] = Field(default_factory=list)
    hyperedges: list[HyperEdge] = Field(default_factory=list)
    metadata: GraphMetadata = Field(default_factory=GraphMetadata)

    def add_node(self, node: Node) -> Node:
        """Insert a node, replacing an earlier derivation with the same id.

        Raises:
            ValueError: If the id is already held by a node of another type.
        """
        existing = self.nodes.get(node.id)
        if existing is not None and existing.type != node.type:
            raise ValueError(
                f"Node id {node.id!r} already used by a {existing.type.value} node"
            )
        self.nodes[node.id] = node
        return node

    def remove_node(self, node_id: str) -> Optional[Node]:
        return self.nodes.pop(node_id, None)

    def has_edge(self, edge_id: str) -> bool:
        return any(edge.id == edge_id for edge in self.edges)

    def add_edge(self, edge: Edge) -> bool:
        """Append an edge. Returns False when an edge with that id exists."""
        if self.has_edge(edge.id):
            return False
        self.edges.append(edge)
        return True

    def add_hyperedge(self, hyperedge: HyperEdge) -> bool:
        """Append a hyperedge. Returns False when one with that id exists."""
        if any(existing.id == hyperedge.id for existing in self.hyperedges):
            return False
        self.hyperedges.append(hyperedge)
        return True

    def nodes_of_type(self, node_type: NodeType) -> list[Node]:
        return [node for node in self.nodes.values() if node.type == node_type]

    def edges_from(self, node_id: str) -> list[Edge]:
        return [edge for edge in self.edges if edge.source == node_id]

    def edges_to(self, node_id: str) -> list[Edge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def touch(self, stage: int) -> None:
        """Refresh counts, timestamp and current stage after a mutation."""
        self.metadata.stage = stage
        self.metadata.total_nodes = len(self.nodes)
        self.metadata.total_edges = len(self.edges)
        self.metadata.total_hyperedges = len(self.hyperedges)
        self.metadata.last_updated = datetime.now()

    def to_document(self) -> dict[str, Any]:
        """Serialize to the canonical `{nodes, edges, hyperedges, metadata}` shape."""
        export = GraphDocumentExport(
            nodes=list(self.nodes.values()),
            edges=self.edges,
            hyperedges=self.hyperedges,
            metadata=self.metadata,
        )
        return export.model_dump(mode="json")

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "GraphDocument":
        export = GraphDocumentExport.model_validate(document)
        return cls(
            nodes={node.id: node for node in export.nodes},
            edges=export.edges,
            hyperedges=export.hyperedges,
            metadata=export.metadata,
        )


def graph_document_schema() -> dict[str, Any]:
    """JSON schema of the canonical graph document."""
    return GraphDocumentExport.model_json_schema()
