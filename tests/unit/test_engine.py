"""Unit tests for the stage engine."""

import math
import threading

import pytest

from got_pipeline.errors import (
    EmptyQueryError,
    InvalidStageNumberError,
    MissingCredentialsError,
    ModelCallError,
    StagePrerequisiteNotMetError,
    TaskFailedError,
)
from got_pipeline.models import (
    Capability,
    Credentials,
    EdgeType,
    EvidenceQuality,
    HyperEdgeType,
    NodeType,
    StageResult,
    StageStatus,
)
from got_pipeline.pipeline.stages import STAGE_HANDLERS

QUERY = "What drives skin barrier dysfunction in atopic dermatitis?"


def run_stages(engine, last: int):
    results = []
    for stage in range(1, last + 1):
        results.append(engine.execute_stage(stage, QUERY if stage == 1 else None))
    return results


class TestPreconditions:
    """Tests for validation before a stage runs."""

    @pytest.mark.parametrize("stage", [0, 10, -1, True, "1", 1.0, None])
    def test_invalid_stage_number(self, engine, stage):
        with pytest.raises(InvalidStageNumberError, match="Invalid stage number"):
            engine.execute_stage(stage, QUERY)

        assert engine.get_graph_data().nodes == {}
        assert engine.get_stage_contexts() == []

    @pytest.mark.parametrize("query", [None, "", "   \n"])
    def test_empty_query(self, engine, query):
        with pytest.raises(EmptyQueryError, match="Query cannot be empty"):
            engine.execute_stage(1, query)
        assert engine.get_stage_contexts() == []

    def test_missing_credentials(self, make_engine, model_service):
        engine = make_engine(model_service, credentials=Credentials(gemini="  "))

        with pytest.raises(MissingCredentialsError, match="API credentials required"):
            engine.execute_stage(1, QUERY)
        assert model_service.calls == []

    def test_strict_order(self, make_engine, model_service):
        engine = make_engine(model_service, strict_stage_order=True)

        with pytest.raises(StagePrerequisiteNotMetError):
            engine.execute_stage(2)

        engine.execute_stage(1, QUERY)
        assert engine.execute_stage(2).status == StageStatus.COMPLETED

    def test_tolerant_order_by_default(self, engine):
        result = engine.execute_stage(3)

        assert result.status == StageStatus.COMPLETED
        assert result.nodes == []
        assert "No dimensions" in result.content


class TestEarlyStages:
    """Stages 1 to 4 against the scripted model service."""

    def test_initialization(self, engine, model_service):
        result = engine.execute_stage(1, QUERY)
        research = engine.get_research_context()
        graph = engine.get_graph_data()

        assert research.field == "Immunology"
        assert research.topic == QUERY
        assert research.secondary_fields == ["Dermatology"]
        assert research.auto_generated is True
        assert graph.nodes["n0_root"].type == NodeType.ROOT
        assert {"K1", "K2", "K3"} <= set(graph.nodes)
        assert graph.nodes["K3"].metadata.knowledge_data["field"] == "Immunology"
        assert result.metadata.api_calls == 1
        assert result.metadata.token_usage.total > 0
        assert model_service.calls[0][1] == Capability.STRUCTURED_OUTPUT

    def test_knowledge_seeded_once(self, engine):
        engine.execute_stage(1, QUERY)
        second = engine.execute_stage(1, "A follow-up question")

        assert second.metadata.counters["knowledge_nodes_seeded"] == 0
        assert len(engine.get_graph_data().nodes_of_type(NodeType.KNOWLEDGE)) == 3

    def test_decomposition(self, engine):
        run_stages(engine, 1)
        result = engine.execute_stage(2)
        graph = engine.get_graph_data()

        assert [node.id for node in result.nodes] == ["n1_scope", "n2_objectives", "n3_constraints"]
        assert all(edge.source == "n0_root" for edge in result.edges)
        assert graph.nodes["n1_scope"].metadata.value.startswith("Skin barrier")

    def test_decomposition_falls_back_to_all_dimensions(self, make_engine, scripted_service):
        engine = make_engine(scripted_service({"Decompose the research task": "unstructured prose"}))
        run_stages(engine, 2)

        assert len(engine.get_graph_data().nodes_of_type(NodeType.DIMENSION)) == 7

    def test_hypotheses(self, engine):
        run_stages(engine, 2)
        result = engine.execute_stage(3)

        assert result.metadata.counters["hypotheses"] == 12
        assert len(result.nodes) == 12
        assert len(result.edges) == 12
        node = next(node for node in result.nodes if node.id == "h_n1_scope_1")
        assert node.confidence == [0.7, 0.6, 0.8, 0.5]
        assert node.metadata.falsification_criteria.startswith("No measurable change")
        assert result.metadata.api_calls == 3

    def test_evidence(self, engine, model_service):
        run_stages(engine, 3)
        result = engine.execute_stage(4)
        graph = engine.get_graph_data()

        evidence = graph.nodes_of_type(NodeType.EVIDENCE)
        assert len(evidence) == 12
        assert all(node.metadata.evidence_quality == EvidenceQuality.HIGH for node in evidence)
        assert all(node.metadata.peer_review_status == "peer-reviewed" for node in evidence)
        assert all(edge.type == EdgeType.CORRELATIVE for edge in result.edges)

        searches = model_service.calls_for("Find published evidence")
        analyses = model_service.calls_for("Assess how the evidence below")
        assert len(searches) == 12
        assert {capability for _, capability in searches} == {Capability.SEARCH_GROUNDING}
        assert {capability for _, capability in analyses} == {None}

        hypothesis = graph.nodes["h_n1_scope_1"]
        assert hypothesis.metadata.evidence_count == 1
        assert hypothesis.metadata.info_metrics is not None

        interdisciplinary = [h for h in graph.hyperedges if h.type == HyperEdgeType.INTERDISCIPLINARY]
        assert [h.id for h in interdisciplinary] == ["hyper_interdisciplinary_dermatology"]


class TestLateStages:
    """Stages 5 to 9."""

    def test_pruning_keeps_graph_consistent(self, engine):
        run_stages(engine, 5)
        graph = engine.get_graph_data()

        assert "n0_root" in graph.nodes
        assert {"K1", "K2", "K3"} <= set(graph.nodes)
        for edge in graph.edges:
            assert edge.source in graph.nodes and edge.target in graph.nodes
            assert edge.source != edge.target
        for hyperedge in graph.hyperedges:
            assert all(node_id in graph.nodes for node_id in hyperedge.nodes)

    def test_subgraph_extraction(self, engine):
        run_stages(engine, 6)
        graph = engine.get_graph_data()
        subgraph = engine.get_subgraph()

        assert subgraph is not None
        assert set(subgraph.nodes) <= set(graph.nodes)
        assert "n0_root" in subgraph.nodes
        assert engine.get_stage_results()[-1].metadata.counters["subgraph_nodes"] == len(subgraph.nodes)

    def test_composition_and_audit(self, engine):
        run_stages(engine, 8)
        graph = engine.get_graph_data()

        synthesis = graph.nodes_of_type(NodeType.SYNTHESIS)
        assert [node.id for node in synthesis] == ["s7_1", "s7_2"]
        assert synthesis[0].label == "Barrier Mechanisms"

        audit = graph.nodes["r8_audit_1"]
        assert audit.label == "Audit passed"
        assert audit.metadata.audit.passed is True
        assert audit.confidence == [0.8, 0.7, 0.9, 0.6]

    def test_audit_appends_reflection_nodes(self, engine):
        run_stages(engine, 8)
        engine.execute_stage(8)
        assert {"r8_audit_1", "r8_audit_2"} <= set(engine.get_graph_data().nodes)

    def test_full_run(self, engine):
        results = run_stages(engine, 9)
        graph = engine.get_graph_data()

        assert [result.stage for result in results] == list(range(1, 10))
        assert engine.get_final_report().startswith("Executive Summary")
        assert results[-1].content == engine.get_final_report()
        assert results[-1].nodes == []
        assert graph.metadata.completed is True
        assert graph.metadata.stage == 9
        assert graph.metadata.total_nodes == len(graph.nodes)
        assert set(graph.metadata.graph_metrics) == {"complexity", "density", "average_confidence"}
        assert all(c.status == StageStatus.COMPLETED for c in engine.get_stage_contexts())


class TestFailures:
    """Tests for failing stages."""

    def test_model_failure_marks_context(self, make_engine, scripted_service):
        service = scripted_service({"Decompose the research task": ModelCallError("quota exceeded")})
        engine = make_engine(service)
        engine.execute_stage(1, QUERY)

        with pytest.raises(TaskFailedError, match="quota exceeded"):
            engine.execute_stage(2)

        context = engine.get_stage_contexts()[-1]
        assert context.stage_id == 2
        assert context.status == StageStatus.ERROR
        assert context.error_message == "quota exceeded"
        assert context.api_calls_made == 1
        assert len(engine.get_stage_results()) == 1

    def test_empty_error_message(self, engine, monkeypatch):
        def boom(runtime, query):
            raise RuntimeError()

        monkeypatch.setitem(STAGE_HANDLERS, 2, boom)

        with pytest.raises(RuntimeError):
            engine.execute_stage(2)
        assert engine.get_stage_contexts()[-1].error_message == "Unknown error"


class TestReadAccess:
    """Tests for defensive copies and helpers."""

    def test_graph_copy(self, engine):
        engine.execute_stage(1, QUERY)
        copy = engine.get_graph_data()
        copy.nodes.clear()

        assert "n0_root" in engine.get_graph_data().nodes

    def test_results_copy(self, engine):
        engine.execute_stage(1, QUERY)
        engine.get_stage_results()[0].nodes.clear()
        engine.get_stage_contexts()[0].stage_name = "Changed"

        assert engine.get_stage_results()[0].nodes
        assert engine.get_stage_contexts()[0].stage_name == "Initialization"

    def test_validate_stage_result(self, engine):
        result = engine.execute_stage(1, QUERY)

        assert engine.validate_stage_result(result)
        assert engine.validate_stage_result(result.model_dump())
        assert not engine.validate_stage_result({"stage": "1", "status": "completed", "content": "x", "timestamp": "t"})
        assert not engine.validate_stage_result({"stage": 1, "status": "completed", "content": ""})
        assert not engine.validate_stage_result(None)

    def test_stage_result_confidence_in_range(self, engine):
        result = engine.execute_stage(1, QUERY)
        assert isinstance(result, StageResult)
        assert 0.0 <= result.metadata.confidence_score <= 1.0

    def test_calculate_confidence(self, engine):
        assert engine.calculate_confidence(["a", "b"]) == pytest.approx(0.3)
        assert engine.calculate_confidence([]) == 0.0


class TestModelOutputFallbacks:
    """Stages keep running when the model ignores the requested format."""

    def test_initialization_from_labelled_prose(self, make_engine, scripted_service):
        response = "Field: Molecular Biology\nObjectives: map pathways, test inhibitors"
        engine = make_engine(scripted_service({"Analyze the following research question": response}))
        engine.execute_stage(1, QUERY)
        research = engine.get_research_context()

        assert research.field == "Molecular Biology"
        assert research.objectives == ["map pathways", "test inhibitors"]
        assert engine.get_graph_data().nodes["K3"].metadata.knowledge_data["field"] == "Molecular Biology"

    @pytest.mark.parametrize("response", ["", "Sorry, no answer."])
    def test_initialization_defaults(self, make_engine, scripted_service, response):
        engine = make_engine(scripted_service({"Analyze the following research question": response}))
        result = engine.execute_stage(1, QUERY)
        research = engine.get_research_context()

        assert result.status == StageStatus.COMPLETED
        assert research.field == "General Science"
        assert research.objectives == ["Comprehensive analysis"]

    def test_hypotheses_follow_marker_numbers(self, make_engine, scripted_service):
        response = "\n".join([
            "Hypothesis 2: Lipid loss precedes inflammation",
            "Hypothesis 3: Staphylococcal colonisation sustains flares",
            "Hypothesis 4: Itch signalling amplifies barrier damage",
        ])
        engine = make_engine(scripted_service({"Generate between 3 and 5 testable hypotheses": response}))
        run_stages(engine, 3)
        graph = engine.get_graph_data()

        values = [graph.nodes[f"h_n1_scope_{i}"].metadata.value for i in (1, 2, 3)]
        assert values == [
            "Lipid loss precedes inflammation",
            "Staphylococcal colonisation sustains flares",
            "Itch signalling amplifies barrier damage",
        ]
        assert "h_n1_scope_4" not in graph.nodes

    def test_composition_from_prose(self, make_engine, scripted_service):
        response = "Barrier failure is the common thread across cohorts."
        engine = make_engine(scripted_service({"Compose a structured synthesis": response}))
        run_stages(engine, 7)
        synthesis = engine.get_graph_data().nodes_of_type(NodeType.SYNTHESIS)

        assert [node.label for node in synthesis] == ["Research Synthesis"]
        assert synthesis[0].metadata.value == response

    def test_composition_with_non_finite_citations(self, make_engine, scripted_service):
        response = '{"sections": [{"title": "Mechanisms", "content": "Barrier loss.", "citations": [NaN, Infinity]}]}'
        engine = make_engine(scripted_service({"Compose a structured synthesis": response}))
        results = run_stages(engine, 7)

        assert results[-1].status == StageStatus.COMPLETED
        assert engine.get_graph_data().nodes["s7_1"].label == "Mechanisms"

    def test_audit_from_prose(self, make_engine, scripted_service):
        engine = make_engine(scripted_service({"Audit the research graph": "Possible selection bias in recruitment."}))
        run_stages(engine, 8)
        audit = engine.get_graph_data().nodes["r8_audit_1"]

        assert audit.label == "Audit found issues"
        assert audit.metadata.audit.passed is False
        assert audit.metadata.audit.bias_flags == ["selection bias"]
        assert "bias check failed" in audit.metadata.audit.issues

    def test_audit_from_empty_text(self, make_engine, scripted_service):
        engine = make_engine(scripted_service({"Audit the research graph": ""}))
        run_stages(engine, 8)
        audit = engine.get_graph_data().nodes["r8_audit_1"].metadata.audit

        assert audit.bias_flags == []
        assert audit.checks["bias"] is True


class TestInformationMetrics:
    """Information metrics attached while the pipeline runs."""

    def test_dimension_metrics(self, engine):
        run_stages(engine, 3)
        metrics = engine.get_graph_data().nodes["n1_scope"].metadata.info_metrics

        assert metrics is not None
        # four confidence components, four hypotheses
        assert metrics.complexity == pytest.approx(2 + math.log2(5))

    def test_belief_shift_reported(self, engine):
        results = run_stages(engine, 4)
        assert results[-1].metadata.counters["mean_belief_shift"] >= 0.0

    def test_synthesis_metrics(self, engine):
        run_stages(engine, 7)
        synthesis = engine.get_graph_data().nodes["s7_1"]
        assert synthesis.metadata.info_metrics is not None


class TestConcurrentReads:
    """Reads from other threads never see a stage half applied."""

    def test_research_context_copy(self, engine):
        engine.execute_stage(1, QUERY)
        engine.get_research_context().objectives.append("injected")

        assert "injected" not in engine.get_research_context().objectives

    def test_reads_wait_for_running_stage(self, make_engine, scripted_service):
        started, release = threading.Event(), threading.Event()

        def slow_decomposition(prompt):
            started.set()
            release.wait(5)
            return "Scope: Barrier proteins\nObjectives: Map cytokine pathways"

        engine = make_engine(scripted_service({"Decompose the research task": slow_decomposition}))
        engine.execute_stage(1, QUERY)

        stage = threading.Thread(target=engine.execute_stage, args=(2,))
        stage.start()
        assert started.wait(5)

        snapshots = []
        reader = threading.Thread(target=lambda: snapshots.append(engine.get_graph_data()))
        reader.start()
        reader.join(0.2)
        assert reader.is_alive()

        release.set()
        stage.join(5)
        reader.join(5)

        assert not reader.is_alive()
        assert {"n1_scope", "n2_objectives"} <= set(snapshots[0].nodes)
