"""
app/domain package marker.
"""

from app.domain.drug_records import (
    CompactSummaryRecord,
    Confidence,
    CountMode,
    EnrichmentRecord,
    GenericItemRecord,
    OriginalFlag,
    RegistryProduct,
    ResultRecord,
    SourceRecord,
    SummaryMetrics,
    build_summary_metrics,
)
from app.domain.pipeline_run import PipelineRun, RunStatus, stage_progress

__all__ = [
    "CompactSummaryRecord",
    "Confidence",
    "CountMode",
    "EnrichmentRecord",
    "GenericItemRecord",
    "OriginalFlag",
    "PipelineRun",
    "RegistryProduct",
    "ResultRecord",
    "RunStatus",
    "SourceRecord",
    "SummaryMetrics",
    "build_summary_metrics",
    "stage_progress",
]
