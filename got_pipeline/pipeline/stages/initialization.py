"""Stage 1: Initialization.

Frames the research question: one model call returns the field, objectives
and constraints. JSON is parsed first; heuristic extraction covers
non-JSON answers; fixed defaults cover everything else. Creates the root
node and seeds the three session knowledge nodes once.
"""

from typing import Any, Optional

import structlog

from got_pipeline.config.prompts import INITIALIZATION_PROMPT
from got_pipeline.errors import MalformedResponseError
from got_pipeline.extraction.signals import DEFAULT_FIELD, DEFAULT_OBJECTIVES, TextSignalExtractor
from got_pipeline.llm.chains import parse_json_response
from got_pipeline.models.context import ResearchContext
from got_pipeline.models.enums import Capability, KnowledgeType, NodeType, TaskPriority
from got_pipeline.models.graph import Node, NodeMetadata
from got_pipeline.pipeline.runtime import StageOutcome, StageRuntime

logger = structlog.get_logger(__name__)

ROOT_NODE_ID = "n0_root"
ROOT_CONFIDENCE = [0.8, 0.7, 0.6, 0.8]

KNOWLEDGE_NODES = (
    ("K1", "Communication Preferences", KnowledgeType.COMMUNICATION, {
        "citation_style": "Vancouver",
        "tone": "formal scientific",
        "format": "structured report with numbered citations",
    }),
    ("K2", "Content Requirements", KnowledgeType.CONTENT, {
        "accuracy": "high",
        "statistical_rigor": "required",
        "falsifiability": "required",
    }),
    ("K3", "User Profile", KnowledgeType.PROFILE, {
        "expertise_level": "expert",
    }),
)


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def parse_research_context(
    response: str, query: str, extractor: TextSignalExtractor
) -> ResearchContext:
    """Build the research context from the model answer.

    JSON keys win; any missing key falls back to heuristic extraction over
    the raw text, which itself falls back to the documented defaults.
    """
    data: dict[str, Any] = {}
    try:
        data = parse_json_response(response)
    except MalformedResponseError as e:
        logger.info("initialization_json_fallback", error=str(e))

    field = data.get("field")
    if not isinstance(field, str) or not field.strip():
        field = extractor.extract_field(response)

    objectives = _string_list(data.get("objectives")) or extractor.extract_objectives(response)
    constraints = _string_list(data.get("constraints")) or extractor.extract_constraints(response)
    secondary = _string_list(data.get("secondary_fields"))

    return ResearchContext(
        field=field.strip() or DEFAULT_FIELD,
        topic=query.strip(),
        objectives=objectives or list(DEFAULT_OBJECTIVES),
        constraints=constraints,
        secondary_fields=secondary,
        auto_generated=True,
    )


def run_initialization(runtime: StageRuntime, query: Optional[str]) -> StageOutcome:
    """Run stage 1 for a validated, non-empty query."""
    query = (query or "").strip()
    response = runtime.ask(
        INITIALIZATION_PROMPT.format(query=query),
        capability=Capability.STRUCTURED_OUTPUT,
        priority=TaskPriority.HIGH,
    )
    research = parse_research_context(response, query, runtime.extractor)

    runtime.add_node(Node(
        id=ROOT_NODE_ID,
        label="Task Understanding",
        type=NodeType.ROOT,
        confidence=ROOT_CONFIDENCE,
        metadata=NodeMetadata(
            stage=1,
            impact_score=1.0,
            disciplinary_tags=[research.field, *research.secondary_fields],
            notes=f"Research field: {research.field}",
            value=query,
        ),
    ))

    seeded = 0
    for node_id, label, knowledge_type, data in KNOWLEDGE_NODES:
        if node_id in runtime.graph.nodes:
            continue
        knowledge_data = dict(data)
        if knowledge_type == KnowledgeType.PROFILE:
            knowledge_data["field"] = research.field
        runtime.add_node(Node(
            id=node_id,
            label=label,
            type=NodeType.KNOWLEDGE,
            confidence=[1.0, 1.0, 1.0, 1.0],
            metadata=NodeMetadata(
                stage=1,
                impact_score=0.5,
                knowledge_type=knowledge_type,
                knowledge_data=knowledge_data,
                notes="Session knowledge",
            ),
        ))
        seeded += 1

    logger.info(
        "research_context_established",
        field=research.field,
        objectives=len(research.objectives),
        knowledge_seeded=seeded,
    )

    content = "\n".join([
        f"Research field: {research.field}",
        f"Objectives: {'; '.join(research.objectives)}",
        f"Constraints: {'; '.join(research.constraints) or 'none stated'}",
    ])
    return StageOutcome(
        content=content,
        research=research,
        counters={"knowledge_nodes_seeded": seeded, "objectives": len(research.objectives)},
    )
