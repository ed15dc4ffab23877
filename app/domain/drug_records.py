"""
app/domain/drug_records.py

Row-level records exchanged between pipeline stages and collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field


class Confidence:
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    REVIEW = "REVIEW"

    ALL = (HIGH, MEDIUM, REVIEW)


class CountMode:
    INGREDIENT = "ingredient"
    INGREDIENT_FORM = "ingredient+form"

    ALL = (INGREDIENT, INGREDIENT_FORM)


class OriginalFlag:
    YES = "Y"
    NO = "N"
    NOT_FOUND = "-"


@dataclass(frozen=True)
class SourceRecord:
    """
    One uploaded data row.
    """

    sequence: str | int
    product_name: str


@dataclass(frozen=True)
class EnrichmentRecord:
    """
    Source row enriched against the primary registry and translated to a local name.
    """

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


@dataclass(frozen=True)
class RegistryProduct:
    """
    One product returned by the secondary registry.
    """

    item_code: str
    product_name: str
    manufacturer: str
    dosage_form: str
    classification: str
    is_original: bool
    is_revoked: bool
    ingredient_text: str


@dataclass(frozen=True)
class ResultRecord:
    """
    Per-row count of original and generic products.
    """

    sequence: str | int
    product_name: str
    normalized_name: str
    ingredient_base: str
    local_ingredient_name: str
    local_search_term: str
    local_name_mapped: bool
    confidence: str
    has_original: str
    generic_count: int
    total_count: int
    not_found: bool

    @property
    def needs_manual_review(self) -> bool:
        return self.not_found and not self.local_name_mapped


@dataclass(frozen=True)
class GenericItemRecord:
    """
    One non-original registry product attributed to a source row.
    """

    source_sequence: str | int
    source_product_name: str
    ingredient_base: str
    item_code: str
    product_name: str
    manufacturer: str
    dosage_form: str
    classification: str
    is_revoked: bool


@dataclass(frozen=True)
class CompactSummaryRecord:
    """
    One source row with its generic products joined into a single cell.
    """

    sequence: str | int
    product_name: str
    ingredient_base: str
    generic_count: int
    joined_product_names: str


@dataclass(frozen=True)
class SummaryMetrics:
    """
    Aggregate counts over one finished run.
    """

    total_rows: int = 0
    review_count: int = 0
    not_found_count: int = 0
    confidence_high: int = 0
    confidence_medium: int = 0
    confidence_review: int = 0
    unmapped_count: int = 0
    manual_review_count: int = 0
    total_generic_item_rows: int = 0
    average_generic_per_source: float = 0.0
    validation_errors: list[str] = field(default_factory=list)


def build_summary_metrics(
    *,
    enrichments: list[EnrichmentRecord],
    results: list[ResultRecord],
    generic_items: list[GenericItemRecord],
    validation_errors: list[str],
) -> SummaryMetrics:
    """
    Recompute aggregate metrics from scratch for one run.
    """

    total_rows = len(enrichments)
    confidences = [record.confidence for record in enrichments]
    average = round(len(generic_items) / total_rows, 2) if total_rows else 0.0
    return SummaryMetrics(
        total_rows=total_rows,
        review_count=confidences.count(Confidence.REVIEW),
        not_found_count=sum(1 for result in results if result.not_found),
        confidence_high=confidences.count(Confidence.HIGH),
        confidence_medium=confidences.count(Confidence.MEDIUM),
        confidence_review=confidences.count(Confidence.REVIEW),
        unmapped_count=sum(1 for record in enrichments if not record.local_ingredient_name.strip()),
        manual_review_count=sum(1 for result in results if result.needs_manual_review),
        total_generic_item_rows=len(generic_items),
        average_generic_per_source=average,
        validation_errors=list(validation_errors),
    )
