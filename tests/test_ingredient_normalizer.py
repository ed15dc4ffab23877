"""
tests/test_ingredient_normalizer.py

Pytest unit tests for the ingredient normalizer.

Pure functions only: no I/O, deterministic assertions.
"""

from __future__ import annotations

import pytest

from app.normalization import (
    build_ingredient_base,
    clean_ingredient_token,
    extract_primary_token,
    normalize_product_name,
    parse_ingredient_list,
    split_ingredient_base,
)

RAW_INGREDIENT_SAMPLES = [
    "ATORVASTATIN CALCIUM 20MG",
    "ASPIRIN; CAFFEINE",
    "CAFFEINE; ASPIRIN; aspirin 81 mg",
    "Amlodipine Besylate and Benazepril Hydrochloride",
    "METFORMIN HYDROCHLORIDE 500MG; SITAGLIPTIN PHOSPHATE MONOHYDRATE",
    "Ibuprofen 200 mg, Famotidine 26.6 mg",
    "SODIUM CHLORIDE 0.9%",
    "Lidocaine (as hydrochloride) 2% injection",
]


# ---------------------------------------------------------------------------
# normalize_product_name / extract_primary_token
# ---------------------------------------------------------------------------


class TestNormalizeProductName:
    def test_uppercases_and_collapses_whitespace(self) -> None:
        assert normalize_product_name("  lipitor   20mg\ttablet ") == "LIPITOR 20MG TABLET"

    def test_drops_suffix_marker_segment(self) -> None:
        assert normalize_product_name("Lipitor 20mg >> old stock") == "LIPITOR 20MG"

    def test_replaces_punctuation_but_keeps_hyphens(self) -> None:
        assert normalize_product_name("Tylenol® (Extra-Strength)!") == "TYLENOL EXTRA-STRENGTH"

    @pytest.mark.parametrize("raw", ["Lipitor", " co-diovan 80/12.5 ", "Zo Cream,  Plus >> x", ""])
    def test_is_idempotent(self, raw: str) -> None:
        once = normalize_product_name(raw)
        assert normalize_product_name(once) == once
        assert once == once.upper()
        assert "  " not in once


class TestExtractPrimaryToken:
    def test_skips_short_words_and_stop_words(self) -> None:
        assert extract_primary_token("THE ZO DRUG") == "DRUG"

    def test_falls_back_to_first_word(self) -> None:
        assert extract_primary_token("A B") == "A"

    def test_empty_input(self) -> None:
        assert extract_primary_token("") == ""


# ---------------------------------------------------------------------------
# parse / clean
# ---------------------------------------------------------------------------


class TestParseIngredientList:
    def test_splits_on_semicolons_and_conjunction(self) -> None:
        assert parse_ingredient_list("Amlodipine and Benazepril; Aspirin") == ["Amlodipine", "Benazepril", "Aspirin"]

    def test_splits_on_comma_before_capitalized_word(self) -> None:
        assert parse_ingredient_list("Ibuprofen, Famotidine") == ["Ibuprofen", "Famotidine"]

    def test_keeps_comma_inside_a_name(self) -> None:
        assert parse_ingredient_list("4-aminophenol, acetyl derivative") == ["4-aminophenol, acetyl derivative"]

    def test_drops_empty_parts(self) -> None:
        assert parse_ingredient_list(";; ASPIRIN ;") == ["ASPIRIN"]
        assert parse_ingredient_list("") == []


class TestCleanIngredientToken:
    def test_strips_salt_and_strength(self) -> None:
        assert clean_ingredient_token("Atorvastatin Calcium 20 mg") == "ATORVASTATIN"

    def test_strips_hydrate_and_parenthetical(self) -> None:
        assert clean_ingredient_token("Sitagliptin (as phosphate) monohydrate") == "SITAGLIPTIN"

    def test_strips_dosage_form_words(self) -> None:
        assert clean_ingredient_token("METFORMIN EXTENDED RELEASE TABLETS") == "METFORMIN"

    def test_keeps_salt_words_when_they_are_the_molecule(self) -> None:
        assert clean_ingredient_token("SODIUM CHLORIDE 0.9%") == "SODIUM CHLORIDE"

    def test_does_not_strip_partial_words(self) -> None:
        assert clean_ingredient_token("CARBOHYDRATE COMPLEX") == "CARBOHYDRATE COMPLEX"


# ---------------------------------------------------------------------------
# build_ingredient_base
# ---------------------------------------------------------------------------


class TestBuildIngredientBase:
    def test_salt_and_strength_stripped(self) -> None:
        assert build_ingredient_base("ATORVASTATIN CALCIUM 20MG") == "ATORVASTATIN"

    def test_sorted_semicolon_join(self) -> None:
        assert build_ingredient_base("ASPIRIN; CAFFEINE") == "ASPIRIN; CAFFEINE"

    def test_independent_of_input_order(self) -> None:
        assert build_ingredient_base("CAFFEINE; ASPIRIN") == build_ingredient_base("ASPIRIN; CAFFEINE")

    def test_deduplicates_case_insensitively(self) -> None:
        assert build_ingredient_base("Aspirin 81 mg; ASPIRIN") == "ASPIRIN"

    def test_multi_ingredient_with_conjunction(self) -> None:
        assert (
            build_ingredient_base("Amlodipine Besylate and Benazepril Hydrochloride")
            == "AMLODIPINE; BENAZEPRIL"
        )

    def test_empty_input(self) -> None:
        assert build_ingredient_base("") == ""

    @pytest.mark.parametrize("raw", RAW_INGREDIENT_SAMPLES)
    def test_is_idempotent(self, raw: str) -> None:
        once = build_ingredient_base(raw)
        assert build_ingredient_base(once) == once

    @pytest.mark.parametrize("raw", RAW_INGREDIENT_SAMPLES)
    def test_output_is_sorted_without_duplicates(self, raw: str) -> None:
        components = split_ingredient_base(build_ingredient_base(raw))
        assert components == sorted(components)
        assert len({component.upper() for component in components}) == len(components)
