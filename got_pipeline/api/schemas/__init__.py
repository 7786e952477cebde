"""API schemas package."""

from .requests import CreateSessionRequest, ExecuteStageRequest
from .responses import (
    GraphResponse,
    ResearchContextResponse,
    SessionListResponse,
    SessionResponse,
    StageContextsResponse,
    StageResultsResponse,
)

__all__ = [
    # Requests
    "CreateSessionRequest",
    "ExecuteStageRequest",
    # Responses
    "GraphResponse",
    "ResearchContextResponse",
    "SessionListResponse",
    "SessionResponse",
    "StageContextsResponse",
    "StageResultsResponse",
]
