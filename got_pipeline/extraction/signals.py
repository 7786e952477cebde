"""Heuristic extraction of structured signals from free-text model output.

Every extractor is deterministic and has a fixed fallback, so a stage can
always make progress even when the model ignores the requested format.
Scores start from a base of 0.5, are shifted by weighted keyword evidence and
are clamped to [0, 1].
"""

import re
from typing import Any, Optional

from got_pipeline.models.enums import EdgeType, EvidenceQuality

DEFAULT_FIELD = "General Science"
DEFAULT_OBJECTIVES = ("Comprehensive analysis",)

DEFAULT_EMPIRICAL_SUPPORT = 0.8
DEFAULT_THEORETICAL_BASIS = 0.7
DEFAULT_METHODOLOGICAL_RIGOR = 0.9
DEFAULT_CONSENSUS_ALIGNMENT = 0.6
DEFAULT_CONFIDENCE_VECTOR = (
    DEFAULT_EMPIRICAL_SUPPORT,
    DEFAULT_THEORETICAL_BASIS,
    DEFAULT_METHODOLOGICAL_RIGOR,
    DEFAULT_CONSENSUS_ALIGNMENT,
)
DEFAULT_STATISTICAL_POWER = 0.85

DIMENSION_CATEGORIES = (
    "Scope",
    "Objectives",
    "Constraints",
    "Data Needs",
    "Use Cases",
    "Potential Biases",
    "Knowledge Gaps",
)

CONFIDENCE_COMPONENTS = (
    "empirical support",
    "theoretical basis",
    "methodological rigor",
    "consensus alignment",
)

BIAS_VOCABULARY = (
    "selection bias",
    "confirmation bias",
    "publication bias",
    "sampling bias",
    "measurement bias",
    "recall bias",
    "reporting bias",
    "attrition bias",
    "survivorship bias",
    "confounding",
)

DISCIPLINE_VOCABULARY = (
    "biology",
    "chemistry",
    "physics",
    "medicine",
    "psychology",
    "neuroscience",
    "genetics",
    "immunology",
    "epidemiology",
    "oncology",
    "pharmacology",
    "dermatology",
    "ecology",
    "economics",
    "sociology",
    "statistics",
    "mathematics",
    "engineering",
    "computer science",
    "machine learning",
    "bioinformatics",
    "public health",
    "environmental science",
    "materials science",
)

_BULLET = re.compile(r"^[-•*]\s*")
_NUMBER = r"(\d*\.?\d+)"
_VECTOR = re.compile(
    r"\[\s*" + r"\s*,\s*".join([_NUMBER] * 4) + r"\s*\]"
)
_CITATION = re.compile(r"\[(\d+)\]")
_HYPOTHESIS_MARKER = re.compile(r"\bhypothesis[\s_]*(\d+)\b", re.IGNORECASE)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


def _has_text(text: Any) -> bool:
    return isinstance(text, str) and bool(text.strip())


def _label_pattern(label: str) -> str:
    """Case-insensitive label that tolerates `_`/`-` for spaces and markdown bold."""
    words = [re.escape(word) for word in label.split()]
    return r"\**\b" + r"[\s_\-]*".join(words) + r"\b\**"


def _clean_value(value: str) -> str:
    return value.strip().strip("\"'*").strip()


class TextSignalExtractor:
    """Strategy object turning loosely structured model output into fields.

    Substitute a subclass to change parsing without touching stage logic.
    """

    # ------------------------------------------------------------------
    # Research framing
    # ------------------------------------------------------------------

    def extract_field(self, text: Optional[str]) -> str:
        if not _has_text(text):
            return DEFAULT_FIELD
        match = re.search(r"\bfields?\s*[:\-]\s*([^\n\r,.]+)", text, re.IGNORECASE)
        if match:
            value = _clean_value(match.group(1))
            if value:
                return value
        return DEFAULT_FIELD

    def extract_objectives(self, text: Optional[str]) -> list[str]:
        if not _has_text(text):
            return list(DEFAULT_OBJECTIVES)
        objectives = self._labelled_list(text, r"\b(?:objectives?|obj|goals?)")
        return objectives or list(DEFAULT_OBJECTIVES)

    def extract_constraints(self, text: Optional[str]) -> list[str]:
        if not _has_text(text):
            return []
        return self._labelled_list(text, r"\bconstraints?")

    def _labelled_list(self, text: str, label: str) -> list[str]:
        """Collect items after every `label:` marker.

        The inline remainder and any following bullet lines form one block,
        which is split on commas, then semicolons, then newlines.
        """
        items: list[str] = []
        lines = text.splitlines()
        marker = re.compile(label + r"\s*[:\-]\s*(.*)$", re.IGNORECASE)

        for i, line in enumerate(lines):
            match = marker.search(line)
            if not match:
                continue
            block = [match.group(1).strip()]
            for follow in lines[i + 1:]:
                if not _BULLET.match(follow.strip()):
                    break
                block.append(follow.strip())
            joined = "\n".join(part for part in block if part)

            if "," in joined:
                parts = joined.split(",")
            elif ";" in joined:
                parts = joined.split(";")
            else:
                parts = joined.split("\n")

            for part in parts:
                cleaned = _clean_value(_BULLET.sub("", part.strip()))
                if cleaned:
                    items.append(cleaned)
        return items

    # ------------------------------------------------------------------
    # Decomposition
    # ------------------------------------------------------------------

    def detect_dimensions(self, text: Optional[str]) -> list[str]:
        """Dimension categories that appear as labels in the text, in canonical order."""
        if not _has_text(text):
            return []
        found = []
        for category in DIMENSION_CATEGORIES:
            if re.search(_label_pattern(category) + r"\s*[:\-]", text, re.IGNORECASE):
                found.append(category)
        return found

    def extract_dimension_content(
        self, text: Optional[str], dimension: str, field: str = ""
    ) -> str:
        fallback = f"{dimension} analysis for {field} research context"
        if not _has_text(text):
            return fallback
        match = re.search(
            _label_pattern(dimension) + r"\s*[:\-]\s*([^\n\r]+)", text, re.IGNORECASE
        )
        if match:
            value = _clean_value(match.group(1))
            if value:
                return value
        return fallback

    # ------------------------------------------------------------------
    # Hypotheses
    # ------------------------------------------------------------------

    def hypothesis_numbers(
        self, text: Optional[str], default: int = 4, minimum: int = 3, maximum: int = 5
    ) -> list[int]:
        """Distinct `Hypothesis N` marker numbers in order of appearance.

        At most `maximum` are kept. Unmarked text yields `1..default`; fewer
        than `minimum` markers are padded with the next unused numbers.
        """
        found: dict[int, None] = {}
        if _has_text(text):
            for number in _HYPOTHESIS_MARKER.findall(text):
                found.setdefault(int(number), None)
        numbers = list(found)[:maximum]
        target = max(minimum, min(default, maximum)) if not numbers else minimum
        candidate = 1
        while len(numbers) < target:
            if candidate not in numbers:
                numbers.append(candidate)
            candidate += 1
        return numbers

    def count_hypotheses(
        self, text: Optional[str], default: int = 4, minimum: int = 3, maximum: int = 5
    ) -> int:
        """Number of distinct `Hypothesis N` markers, clamped to [minimum, maximum]."""
        return len(self.hypothesis_numbers(text, default, minimum, maximum))

    def _first_indexed(self, text: str, patterns: list[str]) -> Optional[str]:
        for pattern in patterns:
            match = re.search(pattern + r"[\s:.)\-]*([^\n\r]+)", text, re.IGNORECASE)
            if match:
                value = _clean_value(match.group(1))
                if value:
                    return value
        return None

    def extract_hypothesis_content(
        self, text: Optional[str], index: int, field: str = ""
    ) -> str:
        fallback = f"Hypothesis {index} for {field} research context"
        if not _has_text(text):
            return fallback
        value = self._first_indexed(text, [
            rf"\bhypothesis_{index}\b",
            rf"\bh{index}\b",
            rf"\bhypothesis\s*{index}\b",
        ])
        return value or fallback

    def extract_falsification_criteria(
        self, text: Optional[str], index: int, field: str = ""
    ) -> str:
        fallback = (
            f"Specific testable criteria for Hypothesis {index} in {field} research context"
        )
        if not _has_text(text):
            return fallback
        value = self._first_indexed(text, [
            rf"\bfalsification_{index}\b",
            rf"\bf{index}\b",
            rf"\bfalsification(?:\s+criteria)?\s*{index}\b",
        ])
        return value or fallback

    def hypothesis_section(self, text: Optional[str], index: int) -> Optional[str]:
        """Text from the `Hypothesis N` marker up to the next hypothesis marker."""
        if not _has_text(text):
            return None
        markers = list(_HYPOTHESIS_MARKER.finditer(text))
        for position, match in enumerate(markers):
            if int(match.group(1)) != index:
                continue
            end = len(text)
            for later in markers[position + 1:]:
                if int(later.group(1)) != index:
                    end = later.start()
                    break
            return text[match.start():end]
        return None

    # ------------------------------------------------------------------
    # Confidence
    # ------------------------------------------------------------------

    def parse_confidence_vector(self, text: Optional[str]) -> list[float]:
        """Explicit `[a, b, c, d]` vector, else labelled components, else the default."""
        vector = list(DEFAULT_CONFIDENCE_VECTOR)
        if not _has_text(text):
            return vector

        match = _VECTOR.search(text)
        if match:
            return [self._unit(value) for value in match.groups()]

        for position, component in enumerate(CONFIDENCE_COMPONENTS):
            labelled = re.search(
                _label_pattern(component) + r"[^:\n]*:\s*" + _NUMBER, text, re.IGNORECASE
            )
            if labelled:
                vector[position] = self._unit(labelled.group(1))
        return vector

    @staticmethod
    def _unit(raw: str) -> float:
        value = float(raw)
        # percentages
        if 1.0 < value <= 100.0:
            value /= 100.0
        return _clamp(value)

    def evidence_confidence(self, text: Optional[str]) -> list[float]:
        return [
            self.extract_empirical_support(text),
            self.extract_theoretical_basis(text),
            self.extract_methodological_rigor(text),
            self.extract_consensus_alignment(text),
        ]

    def extract_empirical_support(self, text: Optional[str]) -> float:
        if not _has_text(text):
            return DEFAULT_EMPIRICAL_SUPPORT
        lower = text.lower()
        score = 0.5

        if "meta-analysis" in lower:
            score += 0.3
        elif "randomized controlled trial" in lower or re.search(r"\brct\b", lower):
            score += 0.25
        elif "cohort study" in lower:
            score += 0.2
        elif "case study" in lower:
            score -= 0.2

        if "large sample" in lower or "n > 1000" in lower:
            score += 0.15
        elif "small sample" in lower or "n < 30" in lower:
            score -= 0.15

        if "p < 0.001" in lower:
            score += 0.15
        elif "p < 0.01" in lower:
            score += 0.1
        elif "p < 0.05" in lower:
            score += 0.05
        elif "not significant" in lower:
            score -= 0.2

        return _clamp(score)

    def extract_theoretical_basis(self, text: Optional[str]) -> float:
        if not _has_text(text):
            return DEFAULT_THEORETICAL_BASIS
        lower = text.lower()
        score = 0.5

        if "well-established theory" in lower or "theoretical framework" in lower:
            score += 0.2
        if "novel approach" in lower or "innovative" in lower:
            score += 0.15
        if "established principles" in lower:
            score += 0.1
        if "theoretical gap" in lower or "lacks theory" in lower:
            score -= 0.2
        if "extensively cited" in lower or "foundational work" in lower:
            score += 0.15
        if "limited citations" in lower or "few references" in lower:
            score -= 0.1

        return _clamp(score)

    def extract_methodological_rigor(self, text: Optional[str]) -> float:
        if not _has_text(text):
            return DEFAULT_METHODOLOGICAL_RIGOR
        lower = text.lower()
        score = 0.5

        if "rigorous methodology" in lower or "well-designed" in lower:
            score += 0.2
        if "controlled for confounders" in lower or "adjusted for" in lower:
            score += 0.15
        if "blinded" in lower or "double-blind" in lower:
            score += 0.15
        if "validated measures" in lower or "standardized" in lower:
            score += 0.1
        if "methodological limitations" in lower or "potential bias" in lower:
            score -= 0.15
        if "selection bias" in lower or "confounding" in lower:
            score -= 0.1
        if "poor methodology" in lower or "flawed design" in lower:
            score -= 0.25

        return _clamp(score)

    def extract_consensus_alignment(self, text: Optional[str]) -> float:
        if not _has_text(text):
            return DEFAULT_CONSENSUS_ALIGNMENT
        lower = text.lower()
        score = 0.5

        if "scientific consensus" in lower or "widely accepted" in lower:
            score += 0.25
        if "expert agreement" in lower or "professional consensus" in lower:
            score += 0.2
        if "replicated findings" in lower or "consistent results" in lower:
            score += 0.15
        if "multiple studies confirm" in lower:
            score += 0.1
        if "controversial" in lower or "disputed" in lower:
            score -= 0.2
        if "conflicting evidence" in lower or "mixed results" in lower:
            score -= 0.15
        if "preliminary findings" in lower or "needs replication" in lower:
            score -= 0.1

        return _clamp(score)

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------

    def extract_statistical_power(self, text: Optional[str]) -> float:
        """Stated statistical power, or an estimate from study indicators."""
        if not _has_text(text):
            return DEFAULT_STATISTICAL_POWER

        stated = re.search(r"statistical power[^:\n]*:\s*" + _NUMBER, text, re.IGNORECASE)
        if stated:
            return self._unit(stated.group(1))

        lower = text.lower()
        power = 0.5

        sample = re.search(r"sample size[^:\n]*:\s*([0-9][0-9,]*)", text, re.IGNORECASE)
        if sample:
            size = int(sample.group(1).replace(",", ""))
            if size > 1000:
                power += 0.2
            elif size > 300:
                power += 0.15
            elif size > 100:
                power += 0.1
            elif size < 30:
                power -= 0.2

        effect = re.search(r"effect size[^:\n]*:\s*" + _NUMBER, text, re.IGNORECASE)
        if effect:
            size = float(effect.group(1))
            if size > 0.8:
                power += 0.15
            elif size > 0.5:
                power += 0.1
            elif size > 0.2:
                power += 0.05
            else:
                power -= 0.1

        p_value = (
            re.search(r"p[- ]value[^:\n]*:\s*()" + _NUMBER, text, re.IGNORECASE)
            or re.search(r"\bp\s*([<>=])\s*" + _NUMBER, text, re.IGNORECASE)
        )
        if p_value:
            bound, value = p_value.group(1), float(p_value.group(2))
            # "p > x" only bounds the value from below
            if bound == ">":
                if value >= 0.05:
                    power -= 0.1
            elif value < 0.01:
                power += 0.15
            elif value < 0.05:
                power += 0.1
            elif value < 0.1:
                power += 0.05
            else:
                power -= 0.1

        if "randomized controlled trial" in lower or re.search(r"\brct\b", lower):
            power += 0.15
        elif "meta-analysis" in lower:
            power += 0.2
        elif "case study" in lower or "anecdotal" in lower:
            power -= 0.2

        if "peer-reviewed" in lower or "published" in lower:
            power += 0.1

        return _clamp(power)

    def assess_evidence_quality(self, statistical_power: float) -> EvidenceQuality:
        if statistical_power >= 0.7:
            return EvidenceQuality.HIGH
        if statistical_power >= 0.4:
            return EvidenceQuality.MEDIUM
        return EvidenceQuality.LOW

    def peer_review_status(self, text: Optional[str]) -> str:
        if not _has_text(text):
            return "unknown"
        lower = text.lower()
        if "peer-reviewed" in lower or "peer reviewed" in lower or "published in" in lower:
            return "peer-reviewed"
        if any(marker in lower for marker in ("preprint", "arxiv", "biorxiv", "medrxiv")):
            return "preprint"
        return "unknown"

    def classify_relationship(self, text: Optional[str]) -> EdgeType:
        """Edge type implied by causal-language markers."""
        if not _has_text(text):
            return EdgeType.SUPPORTIVE
        lower = text.lower()

        if re.search(r"\bcaus(?:al|es|ed|ation)\b|leads to|results in|counterfactual", lower):
            return EdgeType.CAUSAL
        if re.search(r"\btemporal\b|\bprecedes\b|\blongitudinal\b|over time", lower):
            return EdgeType.TEMPORAL
        if re.search(r"contradict|\brefutes?\b|inconsistent with", lower):
            return EdgeType.CONTRADICTORY
        if re.search(r"correlat|associated with", lower):
            return EdgeType.CORRELATIVE
        if "prerequisite" in lower:
            return EdgeType.PREREQUISITE
        return EdgeType.SUPPORTIVE

    def extract_disciplinary_tags(self, text: Optional[str]) -> list[str]:
        if not _has_text(text):
            return []
        lower = text.lower()
        return [
            discipline.title()
            for discipline in DISCIPLINE_VOCABULARY
            if re.search(rf"\b{re.escape(discipline)}\b", lower)
        ]

    # ------------------------------------------------------------------
    # Composition and audit
    # ------------------------------------------------------------------

    def extract_citation_numbers(self, text: Optional[str]) -> list[int]:
        if not _has_text(text):
            return []
        seen: dict[int, None] = {}
        for number in _CITATION.findall(text):
            seen.setdefault(int(number), None)
        return list(seen)

    def extract_bias_flags(self, text: Optional[str]) -> list[str]:
        if not _has_text(text):
            return []
        lower = text.lower()
        return [flag for flag in BIAS_VOCABULARY if flag in lower]
