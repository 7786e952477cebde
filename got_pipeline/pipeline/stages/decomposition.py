"""Stage 2: Decomposition.

Breaks the task into the seven analysis dimensions. A dimension node is
created for each category the model labelled; when none are recognised all
seven are created with extracted or fallback content. Every dimension is
edged from the root.
"""

from typing import Optional

import structlog

from got_pipeline.config.prompts import DECOMPOSITION_PROMPT
from got_pipeline.extraction.signals import DIMENSION_CATEGORIES
from got_pipeline.models.enums import EdgeType, NodeType, TaskPriority
from got_pipeline.models.graph import Edge, Node, NodeMetadata
from got_pipeline.pipeline.runtime import StageOutcome, StageRuntime
from got_pipeline.pipeline.stages.initialization import ROOT_NODE_ID
from got_pipeline.processing.graph_algorithms import slugify

logger = structlog.get_logger(__name__)

DIMENSION_CONFIDENCE = [0.7, 0.8, 0.7, 0.7]
PRIMARY_DIMENSIONS = 3  # Scope, Objectives, Constraints
PRIMARY_IMPACT = 0.9
SECONDARY_IMPACT = 0.7


def dimension_node_id(category: str) -> str:
    position = DIMENSION_CATEGORIES.index(category) + 1
    return f"n{position}_{slugify(category)}"


def run_decomposition(runtime: StageRuntime, query: Optional[str]) -> StageOutcome:
    research = runtime.research
    response = runtime.ask(
        DECOMPOSITION_PROMPT.format(
            query=research.topic or query or "",
            field=research.field,
            objectives="; ".join(research.objectives),
        ),
        priority=TaskPriority.HIGH,
    )

    recognised = runtime.extractor.detect_dimensions(response)
    categories = recognised or list(DIMENSION_CATEGORIES)
    if not recognised:
        logger.info("decomposition_no_dimensions_recognised")

    for category in categories:
        node_id = dimension_node_id(category)
        position = DIMENSION_CATEGORIES.index(category)
        runtime.add_node(Node(
            id=node_id,
            label=category,
            type=NodeType.DIMENSION,
            confidence=DIMENSION_CONFIDENCE,
            metadata=NodeMetadata(
                stage=2,
                impact_score=PRIMARY_IMPACT if position < PRIMARY_DIMENSIONS else SECONDARY_IMPACT,
                disciplinary_tags=[research.field],
                value=runtime.extractor.extract_dimension_content(response, category, research.field),
            ),
        ))
        runtime.add_edge(Edge(
            id=f"edge_root_{node_id}",
            source=ROOT_NODE_ID,
            target=node_id,
            type=EdgeType.SUPPORTIVE,
            confidence=0.8,
        ))

    content = "\n".join(
        f"{node.label}: {node.metadata.value}" for node in runtime.recorded_nodes()
    )
    return StageOutcome(
        content=content,
        counters={"dimensions": len(categories), "recognised": len(recognised)},
    )
