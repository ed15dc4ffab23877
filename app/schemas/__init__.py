"""
app/schemas package marker.
"""

from app.schemas.pipeline import (
    CompactSummaryListResponse,
    CompactSummaryResponse,
    EnrichmentRowResponse,
    GenericItemListResponse,
    GenericItemResponse,
    ManualMappingRequest,
    PipelineCancelResponse,
    PipelineRunAcceptedResponse,
    PipelineRunStatusResponse,
    ResultListResponse,
    ResultRowResponse,
    ReviewQueueResponse,
    SummaryMetricsResponse,
)

__all__ = [
    "CompactSummaryListResponse",
    "CompactSummaryResponse",
    "EnrichmentRowResponse",
    "GenericItemListResponse",
    "GenericItemResponse",
    "ManualMappingRequest",
    "PipelineCancelResponse",
    "PipelineRunAcceptedResponse",
    "PipelineRunStatusResponse",
    "ResultListResponse",
    "ResultRowResponse",
    "ReviewQueueResponse",
    "SummaryMetricsResponse",
]
