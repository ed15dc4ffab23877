"""
app/schemas/pipeline.py

Request and response schemas for pipeline run endpoints.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class _FromRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class SummaryMetricsResponse(_FromRecord):
    total_rows: int = Field(default=0, ge=0)
    review_count: int = Field(default=0, ge=0)
    not_found_count: int = Field(default=0, ge=0)
    confidence_high: int = Field(default=0, ge=0)
    confidence_medium: int = Field(default=0, ge=0)
    confidence_review: int = Field(default=0, ge=0)
    unmapped_count: int = Field(default=0, ge=0)
    manual_review_count: int = Field(default=0, ge=0)
    total_generic_item_rows: int = Field(default=0, ge=0)
    average_generic_per_source: float = Field(default=0.0, ge=0)
    validation_errors: list[str] = Field(default_factory=list)


class PipelineRunAcceptedResponse(BaseModel):
    run_id: str
    status: str
    rows: int = Field(..., ge=0)
    count_mode: str
    include_revoked: bool
    started_at: datetime | None = None


class PipelineRunStatusResponse(BaseModel):
    run_id: str
    status: str
    progress: int = Field(..., ge=0, le=100)
    message: str = ""
    count_mode: str
    include_revoked: bool
    errors: list[str] = Field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    summary: SummaryMetricsResponse = Field(default_factory=SummaryMetricsResponse)


class EnrichmentRowResponse(_FromRecord):
    sequence: str | int
    product_name: str
    normalized_name: str
    primary_brand_name: str
    primary_generic_name: str
    raw_active_ingredients: str
    ingredient_base: str
    confidence: str
    local_ingredient_name: str
    local_search_term: str
    local_name_mapped: bool
    manual_search_term: str = ""
    application_number: str = ""


class ResultRowResponse(_FromRecord):
    sequence: str | int
    product_name: str
    normalized_name: str
    ingredient_base: str
    local_ingredient_name: str
    local_search_term: str
    local_name_mapped: bool
    confidence: str
    has_original: str
    generic_count: int = Field(..., ge=0)
    total_count: int = Field(..., ge=0)
    not_found: bool
    needs_manual_review: bool = False


class GenericItemResponse(_FromRecord):
    source_sequence: str | int
    source_product_name: str
    ingredient_base: str
    item_code: str
    product_name: str
    manufacturer: str
    dosage_form: str
    classification: str
    is_revoked: bool


class CompactSummaryResponse(_FromRecord):
    sequence: str | int
    product_name: str
    ingredient_base: str
    generic_count: int = Field(..., ge=0)
    joined_product_names: str


class ResultListResponse(BaseModel):
    run_id: str
    rows: list[ResultRowResponse] = Field(default_factory=list)


class GenericItemListResponse(BaseModel):
    run_id: str
    rows: list[GenericItemResponse] = Field(default_factory=list)


class CompactSummaryListResponse(BaseModel):
    run_id: str
    rows: list[CompactSummaryResponse] = Field(default_factory=list)


class ReviewQueueResponse(BaseModel):
    """
    Rows that need a human: low-confidence enrichment, missing local names,
    and not-found results without a dictionary mapping.
    """

    run_id: str
    review: list[EnrichmentRowResponse] = Field(default_factory=list)
    unmapped: list[EnrichmentRowResponse] = Field(default_factory=list)
    manual_review: list[ResultRowResponse] = Field(default_factory=list)


class ManualMappingRequest(BaseModel):
    mappings: dict[str, str] = Field(..., min_length=1, description="Source sequence -> local ingredient name")
    force: bool = Field(default=False, description="Replace local names that are already set")


class PipelineCancelResponse(BaseModel):
    run_id: str
    cancelled: bool
    status: str
