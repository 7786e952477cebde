"""Pytest configuration and fixtures."""

import re
import threading
from typing import Any, Optional

import pytest

from got_pipeline.config.settings import Settings
from got_pipeline.errors import ModelCallError
from got_pipeline.models import Capability, Credentials, Edge, GraphDocument, Node, NodeMetadata, NodeType
from got_pipeline.pipeline.engine import StageEngine
from got_pipeline.pipeline.scheduler import TaskScheduler

INITIALIZATION_RESPONSE = """```json
{
  "field": "Immunology",
  "secondary_fields": ["Dermatology"],
  "objectives": ["Identify barrier dysfunction mechanisms", "Assess biologic therapies"],
  "constraints": ["Human studies only"]
}
```"""

DECOMPOSITION_RESPONSE = """Scope: Skin barrier immune signalling in atopic dermatitis
Objectives: Map the cytokine pathways that drive flares
Constraints: Human cohort data published after 2010
"""

EVIDENCE_SEARCH_RESPONSE = """A peer-reviewed meta-analysis of twelve trials was published in 2021.
Sample size: 1,200 patients
Effect size: 0.85
p < 0.01
Immunology and dermatology groups report consistent results."""

EVIDENCE_ANALYSIS_RESPONSE = """The evidence is correlated with the hypothesis across cohorts and
was adjusted for age and disease severity with standardized measures."""

COMPOSITION_RESPONSE = """{
  "sections": [
    {"title": "Barrier Mechanisms", "content": "Cytokine signalling disrupts the barrier [1] [2].", "citations": [1, 2]},
    {"title": "Therapeutic Outlook", "content": "Biologics targeting the pathway show benefit [1].", "citations": [1]}
  ]
}"""

AUDIT_RESPONSE = """{
  "passed": true,
  "issues": [],
  "checks": {"bias": true, "statistical_rigor": true, "falsifiability": true, "causality": true},
  "bias_flags": []
}"""

FINAL_REPORT_RESPONSE = """Executive Summary
Cytokine-driven barrier dysfunction is well supported [1].

Limitations
Most cohorts are of European ancestry."""


def hypothesis_response(dimension: str) -> str:
    lines = []
    for index, (subject, vector) in enumerate([
        ("IL-13 overexpression drives barrier dysfunction", "[0.7, 0.6, 0.8, 0.5]"),
        ("filaggrin loss precedes sensitisation", "[0.6, 0.7, 0.6, 0.6]"),
        ("microbiome shifts amplify inflammation", "[0.5, 0.5, 0.7, 0.4]"),
        ("early emollient use lowers flare frequency", "[0.8, 0.6, 0.7, 0.7]"),
    ], start=1):
        lines.append(f"Hypothesis {index}: In {dimension.lower()}, {subject}")
        lines.append(f"Falsification {index}: No measurable change in {dimension.lower()} cohorts")
        lines.append(f"Confidence {index}: {vector}")
        lines.append("")
    return "\n".join(lines)


class ScriptedModelService:
    """Model service returning canned answers keyed by the prompt's opening words."""

    def __init__(self, overrides: Optional[dict[str, Any]] = None):
        self.responses: dict[str, Any] = {
            "Analyze the following research question": INITIALIZATION_RESPONSE,
            "Decompose the research task": DECOMPOSITION_RESPONSE,
            "Generate between 3 and 5 testable hypotheses": self._hypotheses,
            "Find published evidence": EVIDENCE_SEARCH_RESPONSE,
            "Assess how the evidence below": EVIDENCE_ANALYSIS_RESPONSE,
            "Compose a structured synthesis": COMPOSITION_RESPONSE,
            "Audit the research graph": AUDIT_RESPONSE,
            "Write the final research report": FINAL_REPORT_RESPONSE,
        }
        self.responses.update(overrides or {})
        self.calls: list[tuple[str, Optional[Capability]]] = []
        self._lock = threading.Lock()

    @staticmethod
    def _hypotheses(prompt: str) -> str:
        match = re.search(r"DIMENSION: (.+)", prompt)
        return hypothesis_response(match.group(1).strip() if match else "general")

    def call(self, prompt, credentials, capability=None, schema=None, options=None) -> str:
        with self._lock:
            self.calls.append((prompt, capability))
        for marker, response in self.responses.items():
            if prompt.startswith(marker):
                if isinstance(response, Exception):
                    raise response
                return response(prompt) if callable(response) else response
        raise ModelCallError(f"No scripted response for prompt: {prompt[:40]}")

    def calls_for(self, marker: str) -> list[tuple[str, Optional[Capability]]]:
        return [call for call in self.calls if call[0].startswith(marker)]


@pytest.fixture
def settings() -> Settings:
    """Settings tuned for fast tests."""
    return Settings(
        _env_file=None,
        scheduler_poll_interval=0.01,
        task_timeout_seconds=5.0,
        retry_delay_seconds=0.0,
        max_retries=2,
    )


@pytest.fixture
def model_service() -> ScriptedModelService:
    return ScriptedModelService()


@pytest.fixture
def scripted_service():
    """Builds scripted services with per-test response overrides."""
    return ScriptedModelService


@pytest.fixture
def scheduler(model_service, settings):
    scheduler = TaskScheduler.from_settings(model_service, settings)
    yield scheduler
    scheduler.shutdown()


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(gemini="test-gemini-key")


@pytest.fixture
def engine(credentials, scheduler, settings) -> StageEngine:
    return StageEngine(credentials=credentials, scheduler=scheduler, settings=settings)


@pytest.fixture
def make_engine(settings):
    """Factory for engines backed by a custom model service."""
    schedulers: list[TaskScheduler] = []

    def _make(service, credentials: Optional[Credentials] = None, **setting_overrides) -> StageEngine:
        engine_settings = settings.model_copy(update=setting_overrides)
        scheduler = TaskScheduler.from_settings(service, engine_settings)
        schedulers.append(scheduler)
        return StageEngine(
            credentials=credentials or Credentials(gemini="test-gemini-key"),
            scheduler=scheduler,
            settings=engine_settings,
        )

    yield _make
    for scheduler in schedulers:
        scheduler.shutdown()


def make_node(
    node_id: str,
    label: str,
    node_type: NodeType = NodeType.HYPOTHESIS,
    confidence: Optional[list[float]] = None,
    **metadata: Any,
) -> Node:
    return Node(
        id=node_id,
        label=label,
        type=node_type,
        confidence=confidence or [0.6, 0.6, 0.6, 0.6],
        metadata=NodeMetadata(**metadata),
    )


@pytest.fixture
def node_factory():
    """Builds nodes with a default confidence vector."""
    return make_node


@pytest.fixture
def sample_graph() -> GraphDocument:
    """Small graph: root, two dimensions, three hypotheses, one evidence node."""
    graph = GraphDocument()
    for node in [
        make_node("n0_root", "Task Understanding", NodeType.ROOT, impact_score=1.0),
        make_node("n1_scope", "Scope", NodeType.DIMENSION, impact_score=0.9),
        make_node("n2_objectives", "Objectives", NodeType.DIMENSION, impact_score=0.9),
        make_node("h_n1_scope_1", "Barrier loss drives inflammation", impact_score=0.6),
        make_node("h_n2_objectives_1", "Barrier loss drives inflammations", impact_score=0.8,
                  disciplinary_tags=["Dermatology"]),
        make_node("h_n1_scope_2", "Weak hypothesis", confidence=[0.1, 0.1, 0.1, 0.1], impact_score=0.3),
        make_node("e_h_n1_scope_1", "Evidence for barrier loss", NodeType.EVIDENCE, impact_score=0.75),
    ]:
        graph.add_node(node)
    for edge_id, source, target in [
        ("edge_root_n1_scope", "n0_root", "n1_scope"),
        ("edge_root_n2_objectives", "n0_root", "n2_objectives"),
        ("edge_n1_scope_h_n1_scope_1", "n1_scope", "h_n1_scope_1"),
        ("edge_n2_objectives_h_n2_objectives_1", "n2_objectives", "h_n2_objectives_1"),
        ("edge_n1_scope_h_n1_scope_2", "n1_scope", "h_n1_scope_2"),
        ("edge_h_n1_scope_1_e_h_n1_scope_1", "h_n1_scope_1", "e_h_n1_scope_1"),
    ]:
        graph.add_edge(Edge(id=edge_id, source=source, target=target, confidence=0.7))
    return graph
