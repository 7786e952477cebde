"""Enumeration types for the graph and pipeline models."""

from enum import Enum


class NodeType(str, Enum):
    """Kinds of research concept held in the graph."""

    ROOT = "root"
    DIMENSION = "dimension"
    HYPOTHESIS = "hypothesis"
    EVIDENCE = "evidence"
    SYNTHESIS = "synthesis"
    REFLECTION = "reflection"
    BRIDGE = "bridge"
    GAP = "gap"
    KNOWLEDGE = "knowledge"


class EdgeType(str, Enum):
    """Relations between two nodes."""

    SUPPORTIVE = "supportive"
    CONTRADICTORY = "contradictory"
    CORRELATIVE = "correlative"
    CAUSAL = "causal"
    TEMPORAL = "temporal"
    PREREQUISITE = "prerequisite"


class HyperEdgeType(str, Enum):
    """Relations spanning more than two nodes."""

    INTERDISCIPLINARY = "interdisciplinary"
    MULTI_CAUSAL = "multi_causal"
    COMPLEX_RELATIONSHIP = "complex_relationship"
    SYNTHESIS = "synthesis"


class StageStatus(str, Enum):
    """Execution status of a single stage run."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class Capability(str, Enum):
    """Model capabilities a scheduled task may request."""

    THINKING = "thinking"
    SEARCH_GROUNDING = "search_grounding"
    STRUCTURED_OUTPUT = "structured_output"
    CODE_EXECUTION = "code_execution"
    FUNCTION_CALLING = "function_calling"
    CACHING = "caching"


class TaskPriority(str, Enum):
    """Scheduling priority of a model task."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class TaskStatus(str, Enum):
    """Lifecycle of a scheduled task."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class EvidenceQuality(str, Enum):
    """Coarse quality grade of an evidence node."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class KnowledgeType(str, Enum):
    """Session knowledge seeded at initialization."""

    COMMUNICATION = "communication"
    CONTENT = "content"
    PROFILE = "profile"
