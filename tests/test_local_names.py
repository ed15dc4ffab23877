from __future__ import annotations

import json
from pathlib import Path

import pytest

from app.config import PipelineSettings
from app.translation import (
    LocalNameDictionary,
    LocalNameDictionaryError,
    LocalNameTranslator,
    TranslationResult,
    load_local_name_dictionary,
)


class TestTranslate:
    def test_canonical_hit_is_mapped(self, translator: LocalNameTranslator) -> None:
        assert translator.translate("ATORVASTATIN", "LIPITOR") == TranslationResult("아토르바스타틴", True)

    def test_canonical_lookup_ignores_case(self, translator: LocalNameTranslator) -> None:
        assert translator.translate("atorvastatin", "") == TranslationResult("아토르바스타틴", True)

    def test_multi_ingredient_key_uses_primary_component(self, translator: LocalNameTranslator) -> None:
        assert translator.translate("ASPIRIN; CAFFEINE", "EXCEDRIN") == TranslationResult("아스피린", True)

    def test_brand_token_fills_name_but_is_not_mapped(self, translator: LocalNameTranslator) -> None:
        result = translator.translate("UNKNOWNOL", "LIPITOR", "LIPITOR 20MG")
        assert result == TranslationResult("아토르바스타틴", False)

    def test_normalized_name_is_last_fallback(self, translator: LocalNameTranslator) -> None:
        result = translator.translate("XYZ PLUS", "XYZ", "CAFFEINE")
        assert result == TranslationResult("카페인", False)

    def test_miss_returns_empty_unmapped(self, translator: LocalNameTranslator) -> None:
        assert translator.translate("UNKNOWNOL", "UNKNOWNOL", "UNKNOWNOL") == TranslationResult("", False)

    def test_translate_components_skips_searched_and_unmapped(self, translator: LocalNameTranslator) -> None:
        assert translator.translate_components("ASPIRIN; CAFFEINE; ZZZ", searched="아스피린") == ["카페인"]
        assert translator.translate_components("ASPIRIN", searched="아스피린") == []

    def test_translate_components_keeps_every_component_after_combination_hit(self) -> None:
        translator = LocalNameTranslator(
            LocalNameDictionary.from_mapping(
                {
                    "ingredients": {"ASPIRIN; CAFFEINE": "아스피린카페인", "ASPIRIN": "아스피린", "CAFFEINE": "카페인"},
                    "brands": {},
                }
            )
        )

        assert translator.translate("ASPIRIN; CAFFEINE", "EXCEDRIN") == TranslationResult("아스피린카페인", True)
        assert translator.translate_components("ASPIRIN; CAFFEINE", searched="아스피린카페인") == ["아스피린", "카페인"]


class TestDictionaryLoading:
    def test_bundled_dictionary_loads(self) -> None:
        dictionary = load_local_name_dictionary(PipelineSettings().local_names_path)
        assert dictionary.ingredient("ATORVASTATIN") == "아토르바스타틴"
        assert dictionary.brand_or_ingredient("LIPITOR") == "아토르바스타틴"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(LocalNameDictionaryError):
            load_local_name_dictionary(tmp_path / "missing.json")

    def test_invalid_json_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(LocalNameDictionaryError):
            load_local_name_dictionary(path)

    def test_unexpected_shape_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "shape.json"
        path.write_text(json.dumps({"ingredients": ["ASPIRIN"]}), encoding="utf-8")
        with pytest.raises(LocalNameDictionaryError):
            load_local_name_dictionary(path)

    def test_dictionary_is_read_only(self) -> None:
        dictionary = LocalNameDictionary.from_mapping({"ingredients": {"aspirin": "아스피린"}, "brands": {}})
        with pytest.raises(TypeError):
            dictionary.ingredients["ASPIRIN"] = "changed"  # type: ignore[index]
