"""
app/translation/local_names.py

Static canonical-ingredient -> local-market name dictionary and translator.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from app.normalization import split_ingredient_base

logger = logging.getLogger(__name__)

_WHITESPACE_RX = re.compile(r"\s+")


class LocalNameDictionaryError(ValueError):
    """
    Raised when the dictionary file is missing or has an unexpected shape.
    """


def _dictionary_key(value: str) -> str:
    return _WHITESPACE_RX.sub(" ", (value or "").strip().upper())


@dataclass(frozen=True)
class LocalNameDictionary:
    """
    Read-only lookup tables keyed by uppercase canonical text.
    """

    ingredients: Mapping[str, str] = field(default_factory=dict)
    brands: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "LocalNameDictionary":
        ingredients = payload.get("ingredients", {})
        brands = payload.get("brands", {})
        if not isinstance(ingredients, dict) or not isinstance(brands, dict):
            raise LocalNameDictionaryError("Dictionary must contain 'ingredients' and 'brands' objects.")

        return cls(
            ingredients=MappingProxyType(
                {_dictionary_key(key): str(value).strip() for key, value in ingredients.items() if str(value).strip()}
            ),
            brands=MappingProxyType(
                {_dictionary_key(key): str(value).strip() for key, value in brands.items() if str(value).strip()}
            ),
        )

    def ingredient(self, key: str) -> str | None:
        return self.ingredients.get(_dictionary_key(key))

    def brand_or_ingredient(self, key: str) -> str | None:
        normalized = _dictionary_key(key)
        if not normalized:
            return None
        return self.brands.get(normalized) or self.ingredients.get(normalized)


@lru_cache(maxsize=4)
def load_local_name_dictionary(path: Path) -> LocalNameDictionary:
    """
    Load the dictionary file once per process and path.
    """

    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise LocalNameDictionaryError(f"Local name dictionary not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise LocalNameDictionaryError(f"Local name dictionary is not valid JSON: {path}") from exc

    if not isinstance(payload, dict):
        raise LocalNameDictionaryError("Local name dictionary root must be an object.")

    dictionary = LocalNameDictionary.from_mapping(payload)
    logger.info(
        "Loaded local name dictionary path=%s ingredients=%s brands=%s",
        path,
        len(dictionary.ingredients),
        len(dictionary.brands),
    )
    return dictionary


@dataclass(frozen=True)
class TranslationResult:
    """
    Local name chosen for one row and whether it came from the canonical key.
    """

    local_name: str
    mapped: bool


class LocalNameTranslator:
    """
    Referentially transparent translation over a preloaded dictionary.
    """

    def __init__(self, dictionary: LocalNameDictionary) -> None:
        self._dictionary = dictionary

    def translate(
        self,
        ingredient_base: str,
        fallback_token: str,
        normalized_name: str = "",
    ) -> TranslationResult:
        """
        Resolve the local name for a canonical key.

        Only a hit on the canonical key (the whole key, or its primary
        component for multi-ingredient keys) counts as mapped. The brand
        token and the full normalized name are consulted afterwards and only
        fill in the name.
        """

        canonical = self.translate_canonical(ingredient_base)
        if canonical:
            return TranslationResult(local_name=canonical, mapped=True)

        for candidate in (fallback_token, normalized_name):
            local_name = self._dictionary.brand_or_ingredient(candidate)
            if local_name:
                return TranslationResult(local_name=local_name, mapped=False)

        return TranslationResult(local_name="", mapped=False)

    def translate_canonical(self, ingredient_base: str) -> str | None:
        whole = self._dictionary.ingredient(ingredient_base)
        if whole:
            return whole
        components = split_ingredient_base(ingredient_base)
        if len(components) > 1:
            return self._dictionary.ingredient(components[0])
        return None

    def translate_components(self, ingredient_base: str, *, searched: str = "") -> list[str]:
        """
        Local names of the key's components, in key order, minus the term already searched.

        A first-component hit excludes only that component; a hit on the whole
        combination key leaves every component as a candidate. Components
        without a dictionary entry are skipped.
        """

        searched = searched.strip()
        names: list[str] = []
        for component in split_ingredient_base(ingredient_base):
            local_name = self._dictionary.ingredient(component)
            if local_name and local_name != searched and local_name not in names:
                names.append(local_name)
        return names
