"""
Response schemas for the API.

Stage results, contexts and graph documents are returned in the pipeline's
own model shapes; only session bookkeeping has API-specific schemas.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from got_pipeline.models.context import ResearchContext, StageContext, StageResult


class SessionResponse(BaseModel):
    """A research session and its progress."""
    session_id: str = Field(..., description="Unique identifier for the session")
    created_at: datetime
    stages_completed: list[int] = Field(default_factory=list)
    last_stage: int = Field(0, description="Stage recorded on the graph metadata")
    completed: bool = False


class SessionListResponse(BaseModel):
    """All open sessions."""
    sessions: list[SessionResponse]
    total_count: int


class StageContextsResponse(BaseModel):
    """Append-only stage execution history."""
    contexts: list[StageContext]
    total_count: int


class StageResultsResponse(BaseModel):
    """Stage results in execution order."""
    results: list[StageResult]
    total_count: int


class ResearchContextResponse(BaseModel):
    """Research framing established by stage 1."""
    research_context: ResearchContext
    final_report: Optional[str] = None


class GraphResponse(BaseModel):
    """Graph document in its canonical export shape."""
    graph: dict[str, Any]
