"""
tests/test_result_calculator.py

ResultCalculator with a stub registry; no network involved.
"""

from __future__ import annotations

import asyncio
import unittest

import pytest

from app.cancellation import CancellationToken, PipelineCancelledError
from app.connectors import RegistryLookupResult
from app.domain.drug_records import (
    Confidence,
    CountMode,
    EnrichmentRecord,
    GenericItemRecord,
    OriginalFlag,
    RegistryProduct,
    ResultRecord,
)
from app.services.result_calculator import ResultCalculator, build_compact_summaries, resolve_search_term
from app.translation import LocalNameDictionary, LocalNameTranslator
from app.validators import CrossTableValidator


def _product(
    item_code: str,
    *,
    original: bool = False,
    form: str = "정제",
    revoked: bool = False,
) -> RegistryProduct:
    return RegistryProduct(
        item_code=item_code,
        product_name=f"제품{item_code}",
        manufacturer="한국제약",
        dosage_form=form,
        classification="신약" if original else "",
        is_original=original,
        is_revoked=revoked,
        ingredient_text="",
    )


def _enrichment(
    sequence: str,
    ingredient_base: str = "ATORVASTATIN",
    *,
    local_name: str = "아토르바스타틴",
    mapped: bool = True,
    manual: str = "",
) -> EnrichmentRecord:
    return EnrichmentRecord(
        sequence=sequence,
        product_name=f"Product {sequence}",
        normalized_name=f"PRODUCT {sequence}",
        primary_brand_name="",
        primary_generic_name="",
        raw_active_ingredients=ingredient_base,
        ingredient_base=ingredient_base,
        confidence=Confidence.HIGH,
        local_ingredient_name=local_name,
        local_search_term=local_name,
        local_name_mapped=mapped,
        manual_search_term=manual,
    )


class StubRegistry:
    """
    Answers `lookup` from a fixed term -> products table and records each call.
    """

    def __init__(self, products_by_term: dict[str, list[RegistryProduct]] | None = None) -> None:
        self._products_by_term = products_by_term or {}
        self.calls: list[dict] = []
        self.searched: list[str] = []

    async def lookup(
        self,
        search_term,
        include_revoked,
        *,
        was_mapped=False,
        is_override=False,
        fallback_terms=(),
        cancel_token=None,
    ) -> RegistryLookupResult:
        self.calls.append(
            {
                "term": search_term,
                "include_revoked": include_revoked,
                "was_mapped": was_mapped,
                "is_override": is_override,
                "fallback_terms": list(fallback_terms),
            }
        )
        products = self._search(search_term, include_revoked)
        if products or is_override:
            return RegistryLookupResult(products=products, search_term_used=search_term, was_mapped=was_mapped)
        for candidate in fallback_terms:
            products = self._search(candidate, include_revoked)
            if products:
                return RegistryLookupResult(products=products, search_term_used=candidate, was_mapped=True)
        return RegistryLookupResult(products=[], search_term_used=search_term, was_mapped=was_mapped)

    def _search(self, term: str, include_revoked: bool) -> list[RegistryProduct]:
        self.searched.append(term)
        products = self._products_by_term.get(term, [])
        if not include_revoked:
            products = [product for product in products if not product.is_revoked]
        return products


def _compute(
    registry: StubRegistry,
    translator,
    enrichments: list[EnrichmentRecord],
    count_mode: str = CountMode.INGREDIENT,
    include_revoked: bool = False,
    **kwargs,
):
    calculator = ResultCalculator(registry=registry, translator=translator)  # type: ignore[arg-type]
    return asyncio.run(calculator.compute(enrichments, count_mode, include_revoked, **kwargs))


# ---------------------------------------------------------------------------
# Counting
# ---------------------------------------------------------------------------


class TestCounting:
    def test_no_products_is_not_found(self, translator) -> None:
        output = _compute(StubRegistry(), translator, [_enrichment("1")])

        [result] = output.results
        assert result.not_found is True
        assert result.has_original == OriginalFlag.NOT_FOUND
        assert result.generic_count == 0
        assert result.total_count == 0
        assert output.generic_items == []
        assert output.validation_errors == []

    def test_one_original_among_three(self, translator) -> None:
        registry = StubRegistry({"아토르바스타틴": [_product("1", original=True), _product("2"), _product("3")]})

        output = _compute(registry, translator, [_enrichment("1")])

        [result] = output.results
        assert result.has_original == OriginalFlag.YES
        assert result.generic_count == 2
        assert result.total_count == 3
        assert [item.item_code for item in output.generic_items] == ["2", "3"]
        assert all(item.source_sequence == "1" for item in output.generic_items)

    def test_revoked_generic_excluded_from_both_counts(self, translator) -> None:
        registry = StubRegistry(
            {"아토르바스타틴": [_product("1", original=True), _product("2"), _product("3", revoked=True)]}
        )

        output = _compute(registry, translator, [_enrichment("1")])

        [result] = output.results
        assert result.generic_count == 1
        assert result.total_count == 2

    def test_only_generics_reports_no_original(self, translator) -> None:
        registry = StubRegistry({"아토르바스타틴": [_product("1"), _product("2")]})

        [result] = _compute(registry, translator, [_enrichment("1")]).results

        assert result.has_original == OriginalFlag.NO

    def test_form_mode_counts_distinct_forms(self, translator) -> None:
        registry = StubRegistry(
            {
                "아토르바스타틴": [
                    _product("1", original=True, form="정제"),
                    _product("2", form="정제"),
                    _product("3", form="정제"),
                    _product("4", form="캡슐"),
                ]
            }
        )

        output = _compute(registry, translator, [_enrichment("1")], CountMode.INGREDIENT_FORM)

        [result] = output.results
        assert result.generic_count == 2
        assert result.total_count == 2
        assert [item.item_code for item in output.generic_items] == ["2", "4"]
        assert output.validation_errors == []

    def test_unknown_mode_is_rejected(self, translator) -> None:
        with pytest.raises(ValueError):
            _compute(StubRegistry(), translator, [_enrichment("1")], "by-company")

    def test_compact_summary_joins_generic_names(self, translator) -> None:
        registry = StubRegistry({"아토르바스타틴": [_product("1", original=True), _product("2"), _product("3")]})

        output = _compute(registry, translator, [_enrichment("1"), _enrichment("2", local_name="", mapped=False)])

        first, second = output.compact_summaries
        assert first.joined_product_names == "제품2 | 제품3"
        assert first.generic_count == 2
        assert second.joined_product_names == ""


# ---------------------------------------------------------------------------
# Search terms and fallbacks
# ---------------------------------------------------------------------------


class TestSearchTerms:
    def test_manual_term_is_an_override(self) -> None:
        term = resolve_search_term(_enrichment("1", manual="수동명"))
        assert (term.term, term.is_override, term.was_mapped) == ("수동명", True, True)

    def test_mapped_local_term(self) -> None:
        term = resolve_search_term(_enrichment("1"))
        assert (term.term, term.is_override, term.was_mapped) == ("아토르바스타틴", False, True)

    def test_unmapped_local_name_is_used_raw(self) -> None:
        term = resolve_search_term(_enrichment("1", local_name="아토르", mapped=False))
        assert (term.term, term.was_mapped) == ("아토르", False)

    def test_primary_component_when_no_local_name(self) -> None:
        term = resolve_search_term(_enrichment("1", "ASPIRIN; CAFFEINE", local_name="", mapped=False))
        assert term.term == "ASPIRIN"

    def test_component_fallback_terms_are_passed(self, translator) -> None:
        registry = StubRegistry()

        _compute(registry, translator, [_enrichment("1", "ASPIRIN; CAFFEINE", local_name="아스피린")])

        assert registry.calls[0]["fallback_terms"] == ["카페인"]
        assert registry.calls[0]["include_revoked"] is False

    def test_combination_key_hit_falls_back_to_every_component(self) -> None:
        translator = LocalNameTranslator(
            LocalNameDictionary.from_mapping(
                {
                    "ingredients": {"ASPIRIN; CAFFEINE": "아스피린카페인", "ASPIRIN": "아스피린", "CAFFEINE": "카페인"},
                    "brands": {},
                }
            )
        )
        registry = StubRegistry({"아스피린": [_product("1")]})

        record = _enrichment("1", "ASPIRIN; CAFFEINE", local_name="아스피린카페인")

        [result] = _compute(registry, translator, [record]).results

        assert registry.calls[0]["fallback_terms"] == ["아스피린", "카페인"]
        assert registry.searched == ["아스피린카페인", "아스피린"]
        assert result.not_found is False
        assert result.local_search_term == "아스피린"

    def test_override_gets_no_fallback_terms(self, translator) -> None:
        registry = StubRegistry()

        _compute(registry, translator, [_enrichment("1", "ASPIRIN; CAFFEINE", manual="수동명")])

        assert registry.calls[0]["fallback_terms"] == []
        assert registry.calls[0]["is_override"] is True

    def test_result_reports_the_term_that_was_used(self, translator) -> None:
        registry = StubRegistry({"아스피린": [_product("1")]})

        [result] = _compute(registry, translator, [_enrichment("1", "ASPIRIN", local_name="아스피린")]).results

        assert result.local_search_term == "아스피린"
        assert result.local_name_mapped is True


# ---------------------------------------------------------------------------
# Progress and cancellation
# ---------------------------------------------------------------------------


class TestProgressAndCancellation:
    def test_progress_is_reported_per_row_and_at_completion(self, translator) -> None:
        calls: list[tuple[int, int]] = []

        _compute(
            StubRegistry(),
            translator,
            [_enrichment("1"), _enrichment("2")],
            progress=lambda current, total, message: calls.append((current, total)),
        )

        assert calls == [(0, 2), (1, 2), (2, 2)]

    def test_cancellation_between_rows(self, translator) -> None:
        token = CancellationToken()
        registry = StubRegistry()

        def progress(current: int, total: int, message: str) -> None:
            if current == 1:
                token.cancel()

        with pytest.raises(PipelineCancelledError):
            _compute(
                registry,
                translator,
                [_enrichment("1"), _enrichment("2"), _enrichment("3")],
                cancel_token=token,
                progress=progress,
            )

        # The row already being matched finishes; the third row is never looked up.
        assert [call["term"] for call in registry.calls] == ["아토르바스타틴", "아토르바스타틴"]


# ---------------------------------------------------------------------------
# Cross-table validation
# ---------------------------------------------------------------------------


def _result(sequence: str, generic_count: int, *, not_found: bool = False, has_original: str = "N") -> ResultRecord:
    return ResultRecord(
        sequence=sequence,
        product_name="",
        normalized_name="",
        ingredient_base="",
        local_ingredient_name="",
        local_search_term="",
        local_name_mapped=True,
        confidence=Confidence.HIGH,
        has_original=has_original,
        generic_count=generic_count,
        total_count=generic_count,
        not_found=not_found,
    )


def _item(sequence: str, item_code: str) -> GenericItemRecord:
    return GenericItemRecord(
        source_sequence=sequence,
        source_product_name="",
        ingredient_base="",
        item_code=item_code,
        product_name=f"제품{item_code}",
        manufacturer="",
        dosage_form="",
        classification="",
        is_revoked=False,
    )


class TestCrossTableValidator(unittest.TestCase):
    def setUp(self) -> None:
        self.validator = CrossTableValidator()

    def test_consistent_tables_pass(self) -> None:
        errors = self.validator.validate(
            results=[_result("1", 2), _result("2", 0)],
            generic_items=[_item("1", "a"), _item("1", "b")],
        )
        self.assertEqual(errors, [])

    def test_count_mismatch_is_reported(self) -> None:
        errors = self.validator.validate(results=[_result("1", 3)], generic_items=[_item("1", "a")])

        self.assertEqual(errors, ["Row sequence=1: generic_items count (1) != result generic_count (3)"])

    def test_not_found_row_with_counts_is_reported(self) -> None:
        details = self.validator.inspect(
            results=[_result("1", 0, not_found=True, has_original=OriginalFlag.YES)],
            generic_items=[],
        )

        self.assertEqual([detail.code for detail in details], ["not_found_with_counts"])

    def test_duplicate_sequences_report_once(self) -> None:
        errors = self.validator.validate(
            results=[_result("1", 1), _result("1", 1)],
            generic_items=[],
        )

        self.assertEqual(len(errors), 1)

    def test_compact_summaries_follow_result_order(self) -> None:
        summaries = build_compact_summaries([_result("2", 1), _result("1", 0)], [_item("2", "x")])

        self.assertEqual([summary.sequence for summary in summaries], ["2", "1"])
        self.assertEqual(summaries[0].joined_product_names, "제품x")
