"""
app/services package marker.
"""

from app.services.manual_mapping import apply_manual_mappings, review_records, unmapped_records
from app.services.pipeline_orchestrator import (
    PipelineInputError,
    PipelineOrchestrator,
    get_pipeline_orchestrator,
)
from app.services.result_calculator import CalculationOutput, ResultCalculator

__all__ = [
    "CalculationOutput",
    "PipelineInputError",
    "PipelineOrchestrator",
    "ResultCalculator",
    "apply_manual_mappings",
    "get_pipeline_orchestrator",
    "review_records",
    "unmapped_records",
]
