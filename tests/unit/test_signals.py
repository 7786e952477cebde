"""Unit tests for heuristic text signal extraction."""

import pytest

from got_pipeline.extraction.signals import (
    DEFAULT_CONFIDENCE_VECTOR,
    DIMENSION_CATEGORIES,
    TextSignalExtractor,
)
from got_pipeline.models import EdgeType, EvidenceQuality


@pytest.fixture
def extractor() -> TextSignalExtractor:
    return TextSignalExtractor()


class TestDefaults:
    """Every extractor falls back to a fixed value on missing input."""

    @pytest.mark.parametrize("text", [None, "", "   ", 42])
    def test_field_default(self, extractor, text):
        assert extractor.extract_field(text) == "General Science"

    @pytest.mark.parametrize("text", [None, ""])
    def test_objectives_default(self, extractor, text):
        assert extractor.extract_objectives(text) == ["Comprehensive analysis"]

    @pytest.mark.parametrize("text", [None, ""])
    def test_confidence_vector_default(self, extractor, text):
        vector = extractor.parse_confidence_vector(text)
        assert vector == [0.8, 0.7, 0.9, 0.6]
        assert len(vector) == 4

    def test_score_defaults(self, extractor):
        assert extractor.extract_statistical_power(None) == 0.85
        assert extractor.evidence_confidence("") == list(DEFAULT_CONFIDENCE_VECTOR)

    def test_hypothesis_fallbacks(self, extractor):
        assert extractor.extract_hypothesis_content(None, 2, "Physics") == (
            "Hypothesis 2 for Physics research context"
        )
        assert "Hypothesis 3" in extractor.extract_falsification_criteria("", 3, "Physics")

    def test_dimension_content_fallback(self, extractor):
        assert extractor.extract_dimension_content("nothing here", "Scope", "Biology") == (
            "Scope analysis for Biology research context"
        )


class TestResearchFraming:
    """Tests for field, objective and constraint extraction."""

    def test_extract_field(self, extractor):
        assert extractor.extract_field("Field: Neuroscience, with overlap") == "Neuroscience"

    def test_extract_field_tolerates_bold(self, extractor):
        assert extractor.extract_field("**Field:** Molecular Biology\nMore text") == "Molecular Biology"

    def test_objectives_inline_list(self, extractor):
        text = "Objectives: map pathways, rank therapies, identify gaps"
        assert extractor.extract_objectives(text) == ["map pathways", "rank therapies", "identify gaps"]

    def test_objectives_bullets(self, extractor):
        text = "Objectives:\n- Map pathways\n- Rank therapies\nUnrelated line"
        assert extractor.extract_objectives(text) == ["Map pathways", "Rank therapies"]

    def test_constraints_semicolons(self, extractor):
        text = "Constraints: human data only; English language"
        assert extractor.extract_constraints(text) == ["human data only", "English language"]


class TestDecomposition:
    """Tests for dimension detection."""

    def test_detects_labelled_dimensions_in_canonical_order(self, extractor):
        text = "Knowledge Gaps: few trials\nScope: adults\nData_Needs: registry access"
        assert extractor.detect_dimensions(text) == ["Scope", "Data Needs", "Knowledge Gaps"]

    def test_no_dimensions(self, extractor):
        assert extractor.detect_dimensions("free text without labels") == []

    def test_dimension_content(self, extractor):
        text = "Scope: adult patients\nObjectives: reduce flares"
        assert extractor.extract_dimension_content(text, "Objectives") == "reduce flares"

    def test_seven_categories(self):
        assert len(DIMENSION_CATEGORIES) == 7


class TestHypotheses:
    """Tests for hypothesis parsing."""

    TEXT = (
        "Hypothesis 1: Barrier loss drives inflammation\n"
        "Falsification 1: No barrier change in lesional skin\n"
        "Confidence 1: [0.7, 0.6, 0.8, 0.5]\n"
        "Hypothesis 2: Microbiome shifts amplify flares\n"
        "Falsification 2: Stable microbiome during flares\n"
    )

    def test_count_clamped_to_minimum(self, extractor):
        assert extractor.count_hypotheses(self.TEXT) == 3

    def test_count_default_when_unmarked(self, extractor):
        assert extractor.count_hypotheses("no markers") == 4

    def test_count_clamped_to_maximum(self, extractor):
        text = "\n".join(f"Hypothesis {i}: statement" for i in range(1, 8))
        assert extractor.count_hypotheses(text) == 5

    def test_numbers_follow_markers(self, extractor):
        text = "\n".join([
            "Hypothesis 2: Lipid loss precedes inflammation",
            "Hypothesis 3: Staphylococcal colonisation sustains flares",
            "Hypothesis 4: Itch signalling amplifies barrier damage",
        ])
        assert extractor.hypothesis_numbers(text) == [2, 3, 4]
        assert extractor.count_hypotheses(text) == 3
        assert extractor.extract_hypothesis_content(text, 4) == "Itch signalling amplifies barrier damage"

    def test_numbers_padded_to_minimum(self, extractor):
        assert extractor.hypothesis_numbers("Hypothesis 5: a lone idea") == [5, 1, 2]

    def test_numbers_default_when_unmarked(self, extractor):
        assert extractor.hypothesis_numbers("no markers") == [1, 2, 3, 4]

    def test_content_and_falsification(self, extractor):
        assert extractor.extract_hypothesis_content(self.TEXT, 2) == "Microbiome shifts amplify flares"
        assert extractor.extract_falsification_criteria(self.TEXT, 1) == "No barrier change in lesional skin"

    def test_section_confidence(self, extractor):
        first = extractor.parse_confidence_vector(extractor.hypothesis_section(self.TEXT, 1))
        second = extractor.parse_confidence_vector(extractor.hypothesis_section(self.TEXT, 2))

        assert first == [0.7, 0.6, 0.8, 0.5]
        assert second == list(DEFAULT_CONFIDENCE_VECTOR)

    def test_labelled_confidence_components(self, extractor):
        text = "Empirical support: 90%\nMethodological rigor: 0.4"
        assert extractor.parse_confidence_vector(text) == [0.9, 0.7, 0.4, 0.6]


class TestEvidenceScoring:
    """Tests for keyword and statistical-power heuristics."""

    def test_meta_analysis_raises_empirical_support(self, extractor):
        assert extractor.extract_empirical_support("A meta-analysis, p < 0.01") == pytest.approx(0.9)

    def test_case_study_lowers_empirical_support(self, extractor):
        assert extractor.extract_empirical_support("A single case study") == pytest.approx(0.3)

    def test_scores_clamped(self, extractor):
        text = "A case study with a small sample; not significant"
        assert extractor.extract_empirical_support(text) == 0.0

    def test_stated_power(self, extractor):
        assert extractor.extract_statistical_power("Statistical power: 0.92") == pytest.approx(0.92)

    def test_stated_power_percentage(self, extractor):
        assert extractor.extract_statistical_power("Statistical power: 45%") == pytest.approx(0.45)

    def test_non_significant_p_value_lowers_power(self, extractor):
        assert extractor.extract_statistical_power("Result: p > 0.05") == pytest.approx(0.4)

    def test_exact_p_value(self, extractor):
        assert extractor.extract_statistical_power("Result: p = 0.03") == pytest.approx(0.6)

    def test_power_from_study_indicators(self, extractor):
        text = "Randomized controlled trial. Sample size: 450. Effect size: 0.6. p < 0.03"
        # 0.5 + 0.15 (n > 300) + 0.1 (d > 0.5) + 0.1 (p < 0.05) + 0.15 (RCT)
        assert extractor.extract_statistical_power(text) == pytest.approx(1.0)

    def test_anecdotal_lowers_power(self, extractor):
        assert extractor.extract_statistical_power("anecdotal reports only") == pytest.approx(0.3)

    def test_deterministic(self, extractor):
        text = "Peer-reviewed cohort study, sample size: 200, p < 0.05"
        assert extractor.evidence_confidence(text) == extractor.evidence_confidence(text)
        assert extractor.extract_statistical_power(text) == extractor.extract_statistical_power(text)

    @pytest.mark.parametrize("power,quality", [
        (0.9, EvidenceQuality.HIGH),
        (0.7, EvidenceQuality.HIGH),
        (0.5, EvidenceQuality.MEDIUM),
        (0.1, EvidenceQuality.LOW),
    ])
    def test_evidence_quality(self, extractor, power, quality):
        assert extractor.assess_evidence_quality(power) == quality

    def test_peer_review_status(self, extractor):
        assert extractor.peer_review_status("Published in Nature") == "peer-reviewed"
        assert extractor.peer_review_status("bioRxiv preprint") == "preprint"
        assert extractor.peer_review_status("blog post") == "unknown"


class TestRelationshipsAndAudit:
    """Tests for edge typing, tags, citations and bias flags."""

    @pytest.mark.parametrize("text,edge_type", [
        ("IL-13 causes barrier loss", EdgeType.CAUSAL),
        ("Exposure precedes onset in longitudinal data", EdgeType.TEMPORAL),
        ("These results contradict earlier work", EdgeType.CONTRADICTORY),
        ("Severity is associated with IgE", EdgeType.CORRELATIVE),
        ("Barrier repair is a prerequisite", EdgeType.PREREQUISITE),
        ("Findings support the idea", EdgeType.SUPPORTIVE),
    ])
    def test_classify_relationship(self, extractor, text, edge_type):
        assert extractor.classify_relationship(text) == edge_type

    def test_disciplinary_tags(self, extractor):
        tags = extractor.extract_disciplinary_tags("Work spanning immunology and public health")
        assert tags == ["Immunology", "Public Health"]

    def test_citation_numbers_deduplicated(self, extractor):
        assert extractor.extract_citation_numbers("See [2], [1] and [2].") == [2, 1]

    def test_bias_flags(self, extractor):
        flags = extractor.extract_bias_flags("Possible selection bias and confounding.")
        assert flags == ["selection bias", "confounding"]
