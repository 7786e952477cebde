"""Per-stage runtime handed to every stage handler."""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import structlog

from got_pipeline.config.settings import Settings
from got_pipeline.extraction.chunker import estimate_tokens
from got_pipeline.extraction.signals import TextSignalExtractor
from got_pipeline.models.context import Credentials, ResearchContext, TokenUsage
from got_pipeline.models.enums import Capability, TaskPriority
from got_pipeline.models.graph import Edge, GraphDocument, HyperEdge, Node
from got_pipeline.pipeline.scheduler import ModelTask, TaskScheduler

logger = structlog.get_logger(__name__)


class ReportExporter(Protocol):
    """Turns the final graph and the model's draft into a report artifact."""

    def build_report(self, graph: GraphDocument, research: ResearchContext, draft: str) -> str:
        ...


class PassthroughReportExporter:
    """Default exporter: the model draft is the report."""

    def build_report(self, graph: GraphDocument, research: ResearchContext, draft: str) -> str:
        return draft.strip()


@dataclass
class StageOutcome:
    """What a handler reports back to the engine.

    `nodes`/`edges`/`hyperedges` override the items recorded through the
    runtime when a stage reports something other than what it created.
    """

    content: str
    counters: dict[str, Any] = field(default_factory=dict)
    research: Optional[ResearchContext] = None
    subgraph: Optional[GraphDocument] = None
    report: Optional[str] = None
    nodes: Optional[list[Node]] = None
    edges: Optional[list[Edge]] = None
    hyperedges: Optional[list[HyperEdge]] = None


class StageRuntime:
    """Graph access, model calls and accounting for one stage execution."""

    def __init__(
        self,
        stage: int,
        graph: GraphDocument,
        research: ResearchContext,
        extractor: TextSignalExtractor,
        scheduler: TaskScheduler,
        credentials: Credentials,
        settings: Settings,
        subgraph: Optional[GraphDocument] = None,
        report_exporter: Optional[ReportExporter] = None,
    ):
        self.stage = stage
        self.graph = graph
        self.research = research
        self.extractor = extractor
        self.scheduler = scheduler
        self.credentials = credentials
        self.settings = settings
        self.subgraph = subgraph
        self.report_exporter = report_exporter or PassthroughReportExporter()

        self.token_usage = TokenUsage()
        self.api_calls = 0
        self._node_ids: dict[str, None] = {}
        self._edge_ids: dict[str, None] = {}
        self._hyperedge_ids: dict[str, None] = {}

    # ------------------------------------------------------------------
    # Model calls
    # ------------------------------------------------------------------

    def ask(
        self,
        prompt: str,
        capability: Optional[Capability] = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        schema: Optional[dict[str, Any]] = None,
    ) -> str:
        return self.ask_many([prompt], capability, priority, schema)[0]

    def ask_many(
        self,
        prompts: list[str],
        capability: Optional[Capability] = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        schema: Optional[dict[str, Any]] = None,
    ) -> list[str]:
        """Fan prompts out through the scheduler and wait for every result."""
        if not prompts:
            return []
        capabilities = {Capability.THINKING}
        if capability is not None:
            capabilities.add(capability)

        tasks = [
            ModelTask(
                prompt=prompt,
                credentials=self.credentials,
                capabilities=frozenset(capabilities),
                priority=priority,
                schema=schema,
                options={"stage": self.stage},
            )
            for prompt in prompts
        ]
        self.api_calls += len(tasks)
        responses = self.scheduler.run_many(tasks, timeout=self.settings.task_timeout_seconds)

        for prompt, response in zip(prompts, responses):
            self.token_usage.add(estimate_tokens(prompt), estimate_tokens(response))

        logger.debug(
            "stage_model_calls",
            stage=self.stage,
            calls=len(tasks),
            capability=capability.value if capability else None,
        )
        return responses

    # ------------------------------------------------------------------
    # Recorded graph mutations
    # ------------------------------------------------------------------

    def add_node(self, node: Node) -> Node:
        self.graph.add_node(node)
        self._node_ids.setdefault(node.id, None)
        return node

    def record_node(self, node_id: str) -> None:
        """Report an existing node that this stage updated."""
        self._node_ids.setdefault(node_id, None)

    def add_edge(self, edge: Edge) -> bool:
        added = self.graph.add_edge(edge)
        if added:
            self._edge_ids.setdefault(edge.id, None)
        return added

    def add_hyperedge(self, hyperedge: HyperEdge) -> bool:
        added = self.graph.add_hyperedge(hyperedge)
        if added:
            self._hyperedge_ids.setdefault(hyperedge.id, None)
        return added

    def recorded_nodes(self) -> list[Node]:
        return [
            self.graph.nodes[node_id]
            for node_id in self._node_ids
            if node_id in self.graph.nodes
        ]

    def recorded_edge_ids(self) -> set[str]:
        return set(self._edge_ids)

    def recorded_hyperedge_ids(self) -> set[str]:
        return set(self._hyperedge_ids)
