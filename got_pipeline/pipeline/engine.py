"""Stage engine - runs the nine research stages against one graph.

One engine instance owns one session: its GraphDocument, the research
context established by stage 1, and the append-only history of stage
contexts and results. Model work goes through the injected TaskScheduler;
text parsing goes through the injected TextSignalExtractor.

Stages are executed by number. Ordering is tolerated by default (a later
stage runs on whatever the graph holds); `strict_stage_order` turns the
previous stage into a hard prerequisite.

Every public method holds the engine lock, so reads from other threads see
the graph between stages rather than mid-stage.
"""

import threading
from datetime import datetime
from typing import Any, Optional, Union

import structlog

from got_pipeline.config.settings import Settings, get_settings
from got_pipeline.errors import (
    EmptyQueryError,
    InvalidStageNumberError,
    MissingCredentialsError,
    StagePrerequisiteNotMetError,
)
from got_pipeline.extraction.chunker import ChunkingConfig
from got_pipeline.extraction.signals import TextSignalExtractor
from got_pipeline.llm.chains import LangChainModelService, ModelCallService
from got_pipeline.models.context import (
    STAGE_NAMES,
    Credentials,
    ResearchContext,
    StageContext,
    StageResult,
    StageResultMetadata,
)
from got_pipeline.models.enums import StageStatus
from got_pipeline.models.graph import GraphDocument
from got_pipeline.pipeline.runtime import ReportExporter, StageOutcome, StageRuntime
from got_pipeline.pipeline.scheduler import TaskScheduler
from got_pipeline.pipeline.stages import STAGE_HANDLERS
from got_pipeline.processing.confidence import calculate_confidence
from got_pipeline.processing.graph_algorithms import get_valid_edges, get_valid_hyperedges
from got_pipeline.processing.information import graph_metrics

logger = structlog.get_logger(__name__)

FIRST_STAGE = 1
LAST_STAGE = 9


class StageEngine:
    """Executes pipeline stages for a single research session.

    Args:
        credentials: Model provider keys; at least one must be set.
        scheduler: Scheduler that runs every model call.
        extractor: Text signal strategy. Defaults to the keyword/regex extractor.
        report_exporter: Builds the stage 9 report artifact.
        settings: Runtime settings. Defaults to `get_settings()`.
    """

    def __init__(
        self,
        credentials: Credentials,
        scheduler: TaskScheduler,
        extractor: Optional[TextSignalExtractor] = None,
        report_exporter: Optional[ReportExporter] = None,
        settings: Optional[Settings] = None,
    ):
        self.credentials = credentials
        self.scheduler = scheduler
        self.extractor = extractor or TextSignalExtractor()
        self.report_exporter = report_exporter
        self.settings = settings or get_settings()

        self._graph = GraphDocument()
        self._research = ResearchContext()
        self._subgraph: Optional[GraphDocument] = None
        self._final_report: Optional[str] = None
        self._contexts: list[StageContext] = []
        self._results: list[StageResult] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute_stage(self, stage_number: int, query: Optional[str] = None) -> StageResult:
        """Run one stage and return its result.

        Raises:
            InvalidStageNumberError: If `stage_number` is not an integer in [1, 9].
            EmptyQueryError: If stage 1 is called without a non-blank query.
            MissingCredentialsError: If no credential is set.
            StagePrerequisiteNotMetError: If strict ordering is on and the
                previous stage has not completed.
            Exception: Whatever the stage handler raised; the stage context
                is marked as error first.
        """
        with self._lock:
            return self._execute_stage(stage_number, query)

    def _execute_stage(self, stage_number: int, query: Optional[str]) -> StageResult:
        self._check_preconditions(stage_number, query)

        context = StageContext(stage_id=stage_number, stage_name=STAGE_NAMES[stage_number])
        self._contexts.append(context)

        runtime = StageRuntime(
            stage=stage_number,
            graph=self._graph,
            research=self._research,
            extractor=self.extractor,
            scheduler=self.scheduler,
            credentials=self.credentials,
            settings=self.settings,
            subgraph=self._subgraph,
            report_exporter=self.report_exporter,
        )

        stage_start = datetime.now()
        logger.info(f"stage_{stage_number}_start", stage_name=context.stage_name)

        try:
            outcome = STAGE_HANDLERS[stage_number](runtime, query)
        except Exception as e:
            context.fail(str(e), runtime.token_usage, runtime.api_calls)
            logger.error(
                f"stage_{stage_number}_failed",
                stage_name=context.stage_name,
                error=context.error_message,
                error_type=type(e).__name__,
            )
            raise

        self._absorb(stage_number, outcome)
        self._graph.touch(stage_number)
        self._graph.metadata.graph_metrics = graph_metrics(self._graph)

        context.complete(runtime.token_usage, runtime.api_calls)
        result = self._build_result(stage_number, outcome, runtime, context)
        self._results.append(result)

        duration = (datetime.now() - stage_start).total_seconds()
        logger.info(
            f"stage_{stage_number}_complete",
            stage_name=context.stage_name,
            duration_seconds=round(duration, 2),
            nodes=len(result.nodes),
            edges=len(result.edges),
            api_calls=runtime.api_calls,
        )
        return result

    def _check_preconditions(self, stage_number: Any, query: Optional[str]) -> None:
        # bool is an int subclass
        if (
            isinstance(stage_number, bool)
            or not isinstance(stage_number, int)
            or not FIRST_STAGE <= stage_number <= LAST_STAGE
        ):
            raise InvalidStageNumberError(f"Invalid stage number: {stage_number!r}")
        if stage_number == FIRST_STAGE and (not isinstance(query, str) or not query.strip()):
            raise EmptyQueryError("Query cannot be empty")
        if not self.credentials.has_any():
            raise MissingCredentialsError("API credentials required")
        if self.settings.strict_stage_order and stage_number > FIRST_STAGE:
            previous = stage_number - 1
            if not any(
                c.stage_id == previous and c.status == StageStatus.COMPLETED
                for c in self._contexts
            ):
                raise StagePrerequisiteNotMetError(
                    f"Stage {stage_number} requires stage {previous} ({STAGE_NAMES[previous]}) to complete first"
                )

    def _absorb(self, stage_number: int, outcome: StageOutcome) -> None:
        if outcome.research is not None:
            self._research = outcome.research
        if outcome.subgraph is not None:
            self._subgraph = outcome.subgraph
        if outcome.report is not None:
            self._final_report = outcome.report

    def _build_result(
        self,
        stage_number: int,
        outcome: StageOutcome,
        runtime: StageRuntime,
        context: StageContext,
    ) -> StageResult:
        nodes = outcome.nodes if outcome.nodes is not None else runtime.recorded_nodes()
        if outcome.edges is not None:
            edges = outcome.edges
        else:
            recorded = runtime.recorded_edge_ids()
            edges = [edge for edge in get_valid_edges(self._graph) if edge.id in recorded]
        if outcome.hyperedges is not None:
            hyperedges = outcome.hyperedges
        else:
            recorded = runtime.recorded_hyperedge_ids()
            hyperedges = [h for h in get_valid_hyperedges(self._graph) if h.id in recorded]

        confidence_score = (
            sum(node.mean_confidence for node in nodes) / len(nodes) if nodes else 0.0
        )
        return StageResult(
            stage=stage_number,
            status=StageStatus.COMPLETED,
            content=outcome.content or f"{STAGE_NAMES[stage_number]} completed",
            nodes=[node.model_copy(deep=True) for node in nodes],
            edges=[edge.model_copy(deep=True) for edge in edges],
            hyperedges=[h.model_copy(deep=True) for h in hyperedges],
            metadata=StageResultMetadata(
                duration=context.duration,
                token_usage=context.token_usage.model_copy(),
                confidence_score=min(1.0, max(0.0, confidence_score)),
                api_calls=context.api_calls_made,
                counters=outcome.counters,
            ),
        )

    # ------------------------------------------------------------------
    # Read access (defensive copies)
    # ------------------------------------------------------------------

    def get_graph_data(self) -> GraphDocument:
        with self._lock:
            return self._graph.model_copy(deep=True)

    def get_stage_results(self) -> list[StageResult]:
        with self._lock:
            return [result.model_copy(deep=True) for result in self._results]

    def get_stage_contexts(self) -> list[StageContext]:
        with self._lock:
            return [context.model_copy(deep=True) for context in self._contexts]

    def get_research_context(self) -> ResearchContext:
        with self._lock:
            return self._research.model_copy(deep=True)

    def get_subgraph(self) -> Optional[GraphDocument]:
        with self._lock:
            return self._subgraph.model_copy(deep=True) if self._subgraph is not None else None

    def get_final_report(self) -> Optional[str]:
        with self._lock:
            return self._final_report

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def validate_stage_result(candidate: Union[StageResult, dict[str, Any], Any]) -> bool:
        """Structural check of a stage result or its plain-dict form."""
        if isinstance(candidate, StageResult):
            candidate = candidate.model_dump()
        if not isinstance(candidate, dict):
            return False
        stage = candidate.get("stage")
        return (
            isinstance(stage, int)
            and not isinstance(stage, bool)
            and isinstance(candidate.get("status"), str)
            and bool(candidate.get("content"))
            and bool(candidate.get("timestamp"))
        )

    @staticmethod
    def calculate_confidence(evidence: Optional[list[Optional[str]]]) -> float:
        return calculate_confidence(evidence)


def create_engine(
    credentials: Credentials,
    model_service: Optional[ModelCallService] = None,
    settings: Optional[Settings] = None,
    report_exporter: Optional[ReportExporter] = None,
) -> StageEngine:
    """Build an engine with its own scheduler.

    Uses the LangChain/Ollama model service when none is given. The caller
    owns the scheduler lifecycle (`engine.scheduler.shutdown()`).
    """
    settings = settings or get_settings()
    if model_service is None:
        model_service = LangChainModelService(
            chunking=ChunkingConfig(
                threshold_tokens=settings.chunk_threshold_tokens,
                chunk_tokens=settings.chunk_size_tokens,
                encoding_name=settings.encoding_name,
            )
        )
    scheduler = TaskScheduler.from_settings(model_service, settings)
    return StageEngine(
        credentials=credentials,
        scheduler=scheduler,
        report_exporter=report_exporter,
        settings=settings,
    )
