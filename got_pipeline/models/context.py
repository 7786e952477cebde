"""Per-stage and per-session bookkeeping models."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from got_pipeline.models.enums import StageStatus
from got_pipeline.models.graph import Edge, HyperEdge, Node

STAGE_NAMES = {
    1: "Initialization",
    2: "Decomposition",
    3: "Hypothesis Generation",
    4: "Evidence Integration",
    5: "Pruning & Merging",
    6: "Subgraph Extraction",
    7: "Composition",
    8: "Reflection & Audit",
    9: "Final Synthesis",
}


class Credentials(BaseModel):
    """Model provider keys. At least one must be non-empty to run a stage."""

    gemini: Optional[str] = None
    perplexity: Optional[str] = None
    openai: Optional[str] = None

    def has_any(self) -> bool:
        return any(
            value and value.strip()
            for value in (self.gemini, self.perplexity, self.openai)
        )


class TokenUsage(BaseModel):
    """Token accounting for one stage."""

    input: int = Field(0, ge=0)
    output: int = Field(0, ge=0)
    total: int = Field(0, ge=0)

    def add(self, input_tokens: int, output_tokens: int) -> None:
        self.input += input_tokens
        self.output += output_tokens
        self.total = self.input + self.output


class StageContext(BaseModel):
    """Record of one stage execution.

    Created in RUNNING state and finalized exactly once, either by
    `complete` or by `fail`.
    """

    stage_id: int = Field(..., ge=1, le=9)
    stage_name: str
    status: StageStatus = StageStatus.RUNNING
    error_message: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    duration: float = Field(0.0, ge=0.0, description="Seconds")
    api_calls_made: int = 0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)

    def _finalize(self, status: StageStatus) -> None:
        if self.status != StageStatus.RUNNING:
            raise RuntimeError(
                f"Stage {self.stage_id} context already finalized as {self.status.value}"
            )
        self.status = status
        self.completed_at = datetime.now()
        self.duration = (self.completed_at - self.started_at).total_seconds()

    def complete(self, token_usage: TokenUsage, api_calls: int) -> None:
        self.token_usage = token_usage.model_copy()
        self.api_calls_made = api_calls
        self._finalize(StageStatus.COMPLETED)

    def fail(self, message: str, token_usage: TokenUsage | None = None, api_calls: int = 0) -> None:
        self.error_message = message or "Unknown error"
        if token_usage is not None:
            self.token_usage = token_usage.model_copy()
        self.api_calls_made = api_calls
        self._finalize(StageStatus.ERROR)


class ResearchContext(BaseModel):
    """Session-wide facts derived by stage 1 and read by every later stage."""

    model_config = ConfigDict(frozen=True)

    field: str = "General Science"
    topic: str = ""
    objectives: list[str] = Field(default_factory=lambda: ["Comprehensive analysis"])
    constraints: list[str] = Field(default_factory=list)
    secondary_fields: list[str] = Field(default_factory=list)
    auto_generated: bool = False


class StageResultMetadata(BaseModel):
    """Metrics reported with each stage result."""

    duration: float = 0.0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    confidence_score: float = Field(0.0, ge=0.0, le=1.0)
    api_calls: int = 0
    counters: dict[str, Any] = Field(default_factory=dict)


class StageResult(BaseModel):
    """Output of a single stage execution."""

    stage: int = Field(..., ge=1, le=9)
    status: StageStatus
    content: str
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    hyperedges: list[HyperEdge] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)
    metadata: StageResultMetadata = Field(default_factory=StageResultMetadata)
