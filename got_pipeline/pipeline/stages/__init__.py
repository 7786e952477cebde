"""Stage handlers, one per pipeline stage."""

from got_pipeline.pipeline.stages.audit import run_audit
from got_pipeline.pipeline.stages.composition import run_composition
from got_pipeline.pipeline.stages.decomposition import run_decomposition
from got_pipeline.pipeline.stages.evidence import run_evidence
from got_pipeline.pipeline.stages.hypotheses import run_hypotheses
from got_pipeline.pipeline.stages.initialization import run_initialization
from got_pipeline.pipeline.stages.refinement import run_pruning, run_subgraph_extraction
from got_pipeline.pipeline.stages.report import run_final_report

STAGE_HANDLERS = {
    1: run_initialization,
    2: run_decomposition,
    3: run_hypotheses,
    4: run_evidence,
    5: run_pruning,
    6: run_subgraph_extraction,
    7: run_composition,
    8: run_audit,
    9: run_final_report,
}

__all__ = [
    "STAGE_HANDLERS",
    "run_initialization",
    "run_decomposition",
    "run_hypotheses",
    "run_evidence",
    "run_pruning",
    "run_subgraph_extraction",
    "run_composition",
    "run_audit",
    "run_final_report",
]
