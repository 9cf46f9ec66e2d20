"""Rule scheduling, finding aggregation and end-to-end runs."""

from engine.analyze import AnalysisEngine, AnalysisResult
from engine.dedup import deduplicate
from engine.run import RunOptions, collect_inputs, run_analysis

__all__ = [
    "AnalysisEngine",
    "AnalysisResult",
    "RunOptions",
    "collect_inputs",
    "deduplicate",
    "run_analysis",
]
