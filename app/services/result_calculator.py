"""
app/services/result_calculator.py

Per-row original/generic counting against the secondary registry.

Rows are processed sequentially, in enrichment order, with a pacing delay
after each row. Every row produces exactly one ``ResultRecord`` and zero or
more ``GenericItemRecord`` rows; compact summaries and the cross-table
validation run only after all rows are done.

Search term resolution
----------------------
1. ``manual_search_term``      -> explicit override, no component fallback
2. mapped ``local_search_term`` -> dictionary hit on the canonical key
3. raw fallback                -> unmapped local name, else the primary
                                  component of ``ingredient_base``

Counting modes
--------------
``ingredient``       generic = non-original products, total = all products
``ingredient+form``  both counts are distinct ``(ingredient_base, dosage_form)``
                     keys; generic items are deduplicated by the same key
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Sequence

from app.cancellation import CancellationToken, checkpoint, pace
from app.connectors.secondary_registry import RegistryLookupResult, SecondaryRegistryClient
from app.domain.drug_records import (
    CompactSummaryRecord,
    CountMode,
    EnrichmentRecord,
    GenericItemRecord,
    OriginalFlag,
    RegistryProduct,
    ResultRecord,
)
from app.normalization import split_ingredient_base
from app.translation import LocalNameTranslator
from app.validators import CrossTableValidator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]

COMPACT_NAME_SEPARATOR = " | "


@dataclass(frozen=True)
class SearchTerm:
    term: str
    is_override: bool
    was_mapped: bool


@dataclass(frozen=True)
class CalculationOutput:
    """
    Everything the matching stage publishes for one run.
    """

    results: list[ResultRecord] = field(default_factory=list)
    generic_items: list[GenericItemRecord] = field(default_factory=list)
    compact_summaries: list[CompactSummaryRecord] = field(default_factory=list)
    validation_errors: list[str] = field(default_factory=list)


def resolve_search_term(record: EnrichmentRecord) -> SearchTerm:
    manual = record.manual_search_term.strip()
    if manual:
        return SearchTerm(term=manual, is_override=True, was_mapped=True)

    local_term = record.local_search_term.strip()
    if record.local_name_mapped and local_term:
        return SearchTerm(term=local_term, is_override=False, was_mapped=True)

    raw = local_term or record.local_ingredient_name.strip()
    if not raw:
        components = split_ingredient_base(record.ingredient_base)
        raw = components[0] if components else record.normalized_name
    return SearchTerm(term=raw, is_override=False, was_mapped=False)


def count_products(
    record: EnrichmentRecord,
    products: Sequence[RegistryProduct],
    count_mode: str,
) -> tuple[list[RegistryProduct], int, int]:
    """
    Partition products and count them under the given mode.

    Returns:
        The generic products to emit as items, the generic count and the total count.
    """

    generics = [product for product in products if not product.is_original]
    if count_mode != CountMode.INGREDIENT_FORM:
        return generics, len(generics), len(products)

    def key(product: RegistryProduct) -> tuple[str, str]:
        return record.ingredient_base, product.dosage_form

    distinct_generics: dict[tuple[str, str], RegistryProduct] = {}
    for product in generics:
        distinct_generics.setdefault(key(product), product)
    total_keys = {key(product) for product in products}
    return list(distinct_generics.values()), len(distinct_generics), len(total_keys)


def build_row_result(
    record: EnrichmentRecord,
    lookup: RegistryLookupResult,
    count_mode: str,
) -> tuple[ResultRecord, list[GenericItemRecord]]:
    products = lookup.products
    not_found = not products

    if not_found:
        item_products: list[RegistryProduct] = []
        generic_count = total_count = 0
        has_original = OriginalFlag.NOT_FOUND
    else:
        item_products, generic_count, total_count = count_products(record, products, count_mode)
        has_original = OriginalFlag.YES if any(product.is_original for product in products) else OriginalFlag.NO

    result = ResultRecord(
        sequence=record.sequence,
        product_name=record.product_name,
        normalized_name=record.normalized_name,
        ingredient_base=record.ingredient_base,
        local_ingredient_name=record.local_ingredient_name,
        local_search_term=lookup.search_term_used or record.local_search_term,
        local_name_mapped=lookup.was_mapped,
        confidence=record.confidence,
        has_original=has_original,
        generic_count=generic_count,
        total_count=total_count,
        not_found=not_found,
    )
    items = [
        GenericItemRecord(
            source_sequence=record.sequence,
            source_product_name=record.product_name,
            ingredient_base=record.ingredient_base,
            item_code=product.item_code,
            product_name=product.product_name,
            manufacturer=product.manufacturer,
            dosage_form=product.dosage_form,
            classification=product.classification,
            is_revoked=product.is_revoked,
        )
        for product in item_products
    ]
    return result, items


def build_compact_summaries(
    results: Sequence[ResultRecord],
    generic_items: Sequence[GenericItemRecord],
) -> list[CompactSummaryRecord]:
    names_by_sequence: dict[str | int, list[str]] = defaultdict(list)
    for item in generic_items:
        names_by_sequence[item.source_sequence].append(item.product_name)

    return [
        CompactSummaryRecord(
            sequence=result.sequence,
            product_name=result.product_name,
            ingredient_base=result.ingredient_base,
            generic_count=result.generic_count,
            joined_product_names=COMPACT_NAME_SEPARATOR.join(names_by_sequence.get(result.sequence, [])),
        )
        for result in results
    ]


class ResultCalculator:
    """
    Runs the matching and calculation stage over enrichment records.
    """

    def __init__(
        self,
        *,
        registry: SecondaryRegistryClient,
        translator: LocalNameTranslator,
        row_delay_seconds: float = 0.0,
        validator: CrossTableValidator | None = None,
    ) -> None:
        self._registry = registry
        self._translator = translator
        self._row_delay_seconds = row_delay_seconds
        self._validator = validator or CrossTableValidator()

    async def compute(
        self,
        enrichments: Sequence[EnrichmentRecord],
        count_mode: str,
        include_revoked: bool,
        *,
        cancel_token: CancellationToken | None = None,
        progress: ProgressCallback | None = None,
    ) -> CalculationOutput:
        """
        Match every record and derive results, generic items and compact summaries.

        Raises
        ------
        ValueError
            If ``count_mode`` is not a known mode.
        PipelineCancelledError
            If the token is cancelled; nothing computed so far is returned.
        """
        if count_mode not in CountMode.ALL:
            raise ValueError(f"Unknown count_mode {count_mode!r}. Valid modes: {list(CountMode.ALL)}")

        total = len(enrichments)
        results: list[ResultRecord] = []
        generic_items: list[GenericItemRecord] = []

        for index, record in enumerate(enrichments):
            checkpoint(cancel_token)
            if progress is not None:
                progress(index, total, f"Matching {record.normalized_name or record.product_name}")

            search = resolve_search_term(record)
            fallback_terms = (
                []
                if search.is_override
                else self._translator.translate_components(record.ingredient_base, searched=search.term)
            )
            lookup = await self._registry.lookup(
                search.term,
                include_revoked,
                was_mapped=search.was_mapped,
                is_override=search.is_override,
                fallback_terms=fallback_terms,
                cancel_token=cancel_token,
            )

            result, items = build_row_result(record, lookup, count_mode)
            results.append(result)
            generic_items.extend(items)
            logger.debug(
                "Row matched sequence=%s term=%s products=%s generic=%s not_found=%s",
                record.sequence,
                lookup.search_term_used,
                len(lookup.products),
                result.generic_count,
                result.not_found,
            )
            await pace(cancel_token, self._row_delay_seconds)

        if progress is not None:
            progress(total, total, "Matching complete")

        compact_summaries = build_compact_summaries(results, generic_items)
        validation_errors = self._validator.validate(results=results, generic_items=generic_items)
        if validation_errors:
            logger.warning("Cross-table validation failed error_count=%s", len(validation_errors))

        return CalculationOutput(
            results=results,
            generic_items=generic_items,
            compact_summaries=compact_summaries,
            validation_errors=validation_errors,
        )
