"""Stage 3: Hypothesis generation.

One request per dimension, fanned out through the scheduler. Each answer
yields 3 to 5 hypotheses with falsification criteria and an initial
confidence vector (parsed, or the default vector).
"""

from typing import Optional

import structlog

from got_pipeline.config.prompts import HYPOTHESIS_PROMPT
from got_pipeline.models.enums import EdgeType, NodeType, TaskPriority
from got_pipeline.models.graph import Edge, Node, NodeMetadata
from got_pipeline.pipeline.runtime import StageOutcome, StageRuntime
from got_pipeline.processing.information import node_information_metrics

logger = structlog.get_logger(__name__)

MIN_HYPOTHESES = 3
MAX_HYPOTHESES = 5
LABEL_LENGTH = 120


def hypothesis_node_id(dimension_id: str, index: int) -> str:
    return f"h_{dimension_id}_{index}"


def _label(statement: str) -> str:
    if len(statement) <= LABEL_LENGTH:
        return statement
    return statement[:LABEL_LENGTH - 3].rstrip() + "..."


def run_hypotheses(runtime: StageRuntime, query: Optional[str]) -> StageOutcome:
    research = runtime.research
    extractor = runtime.extractor
    dimensions = runtime.graph.nodes_of_type(NodeType.DIMENSION)

    if not dimensions:
        logger.warning("hypotheses_no_dimensions")
        return StageOutcome(content="No dimensions available for hypothesis generation", counters={"hypotheses": 0})

    responses = runtime.ask_many(
        [
            HYPOTHESIS_PROMPT.format(
                field=research.field,
                dimension=dimension.label,
                dimension_content=dimension.metadata.value,
            )
            for dimension in dimensions
        ],
        priority=TaskPriority.MEDIUM,
    )

    per_dimension: dict[str, int] = {}
    for dimension, response in zip(dimensions, responses):
        numbers = extractor.hypothesis_numbers(
            response,
            default=runtime.settings.default_hypotheses_per_dimension,
            minimum=MIN_HYPOTHESES,
            maximum=MAX_HYPOTHESES,
        )
        per_dimension[dimension.id] = len(numbers)

        for index, number in enumerate(numbers, start=1):
            statement = extractor.extract_hypothesis_content(response, number, research.field)
            node = runtime.add_node(Node(
                id=hypothesis_node_id(dimension.id, index),
                label=_label(statement),
                type=NodeType.HYPOTHESIS,
                confidence=extractor.parse_confidence_vector(
                    extractor.hypothesis_section(response, number)
                ),
                metadata=NodeMetadata(
                    stage=3,
                    impact_score=min(1.0, 0.6 + 0.1 * (index - 1)),
                    disciplinary_tags=list(dimension.metadata.disciplinary_tags) or [research.field],
                    notes=f"Generated for dimension {dimension.label}",
                    value=statement,
                    falsification_criteria=extractor.extract_falsification_criteria(
                        response, number, research.field
                    ),
                ),
            ))
            runtime.add_edge(Edge(
                id=f"edge_{dimension.id}_{node.id}",
                source=dimension.id,
                target=node.id,
                type=EdgeType.SUPPORTIVE,
                confidence=0.7,
            ))

        dimension.metadata.info_metrics = node_information_metrics(
            dimension, connections=len(numbers), graph_size=len(runtime.graph.nodes)
        )

    total = sum(per_dimension.values())
    logger.info("hypotheses_generated", dimensions=len(dimensions), hypotheses=total)

    content = "\n".join(
        f"{node.id}: {node.metadata.value} (falsified if: {node.metadata.falsification_criteria})"
        for node in runtime.recorded_nodes()
    )
    return StageOutcome(
        content=content,
        counters={"hypotheses": total, "per_dimension": per_dimension},
    )
