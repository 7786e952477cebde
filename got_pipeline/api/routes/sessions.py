"""
Session Routes

Open a research session, execute stages against it and read back the
graph, stage history and research context.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from got_pipeline.api.registry import Session, SessionNotFoundError, SessionRegistry
from got_pipeline.api.schemas import (
    CreateSessionRequest,
    ExecuteStageRequest,
    GraphResponse,
    ResearchContextResponse,
    SessionListResponse,
    SessionResponse,
    StageContextsResponse,
    StageResultsResponse,
)
from got_pipeline.errors import (
    EmptyQueryError,
    InvalidStageNumberError,
    MissingCredentialsError,
    ModelCallError,
    PipelineError,
    SchedulerTimeoutError,
    StagePrerequisiteNotMetError,
    TaskFailedError,
)
from got_pipeline.models.context import Credentials, StageResult
from got_pipeline.models.enums import StageStatus

router = APIRouter()

# Checked in order; first match wins
ERROR_STATUS = (
    (InvalidStageNumberError, 400),
    (EmptyQueryError, 400),
    (MissingCredentialsError, 400),
    (StagePrerequisiteNotMetError, 409),
    (SchedulerTimeoutError, 504),
    (ModelCallError, 502),
    (TaskFailedError, 502),
)


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def _get_session(registry: SessionRegistry, session_id: str) -> Session:
    try:
        return registry.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")


def _session_response(session: Session) -> SessionResponse:
    engine = session.engine
    graph = engine.get_graph_data()
    completed = sorted({
        context.stage_id
        for context in engine.get_stage_contexts()
        if context.status == StageStatus.COMPLETED
    })
    return SessionResponse(
        session_id=session.session_id,
        created_at=session.created_at,
        stages_completed=completed,
        last_stage=graph.metadata.stage,
        completed=graph.metadata.completed,
    )


# =============================================================================
# Sessions
# =============================================================================

@router.post("/sessions", response_model=SessionResponse, status_code=201)
def create_session(
    request: CreateSessionRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionResponse:
    """Open a new session holding its own graph."""
    session = registry.create(Credentials(**request.model_dump()))
    return _session_response(session)


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(registry: SessionRegistry = Depends(get_registry)) -> SessionListResponse:
    sessions = [_session_response(session) for session in registry.list()]
    return SessionListResponse(sessions=sessions, total_count=len(sessions))


@router.get("/sessions/{session_id}", response_model=SessionResponse)
def get_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> SessionResponse:
    return _session_response(_get_session(registry, session_id))


@router.delete("/sessions/{session_id}", status_code=204)
def delete_session(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> Response:
    try:
        registry.close(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return Response(status_code=204)


# =============================================================================
# Stage Execution
# =============================================================================

@router.post("/sessions/{session_id}/stages/{stage_number}", response_model=StageResult)
def execute_stage(
    session_id: str,
    stage_number: int,
    request: ExecuteStageRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> StageResult:
    """
    Execute one stage synchronously.

    Stages within a session run one at a time; a concurrent request for
    the same session waits for the running stage to finish.
    """
    session = _get_session(registry, session_id)
    with session.lock:
        try:
            return session.engine.execute_stage(stage_number, request.query)
        except PipelineError as e:
            for error_type, status_code in ERROR_STATUS:
                if isinstance(e, error_type):
                    raise HTTPException(status_code=status_code, detail=str(e) or "Unknown error")
            raise HTTPException(status_code=500, detail=str(e) or "Unknown error")


# =============================================================================
# Read Access
# =============================================================================

@router.get("/sessions/{session_id}/graph", response_model=GraphResponse)
def get_graph(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> GraphResponse:
    session = _get_session(registry, session_id)
    return GraphResponse(graph=session.engine.get_graph_data().to_document())


@router.get("/sessions/{session_id}/subgraph", response_model=GraphResponse)
def get_subgraph(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> GraphResponse:
    session = _get_session(registry, session_id)
    subgraph = session.engine.get_subgraph()
    if subgraph is None:
        raise HTTPException(status_code=404, detail="Subgraph not extracted yet (run stage 6)")
    return GraphResponse(graph=subgraph.to_document())


@router.get("/sessions/{session_id}/results", response_model=StageResultsResponse)
def get_results(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> StageResultsResponse:
    results = _get_session(registry, session_id).engine.get_stage_results()
    return StageResultsResponse(results=results, total_count=len(results))


@router.get("/sessions/{session_id}/contexts", response_model=StageContextsResponse)
def get_contexts(session_id: str, registry: SessionRegistry = Depends(get_registry)) -> StageContextsResponse:
    contexts = _get_session(registry, session_id).engine.get_stage_contexts()
    return StageContextsResponse(contexts=contexts, total_count=len(contexts))


@router.get("/sessions/{session_id}/context", response_model=ResearchContextResponse)
def get_research_context(
    session_id: str, registry: SessionRegistry = Depends(get_registry)
) -> ResearchContextResponse:
    engine = _get_session(registry, session_id).engine
    return ResearchContextResponse(
        research_context=engine.get_research_context(),
        final_report=engine.get_final_report(),
    )
