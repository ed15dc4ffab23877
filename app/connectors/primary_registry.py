"""
app/connectors/primary_registry.py

Client for the foreign drug registry (label search + product listing).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

import httpx

from app.cancellation import CancellationToken, pace
from app.config import ExternalHTTPSettings, PrimaryRegistrySettings
from app.connectors.base import BaseRegistryClient
from app.connectors.response_schemas import PrimaryMatch, adapt_label_result, adapt_product_listing_result
from app.domain.drug_records import Confidence, EnrichmentRecord, SourceRecord
from app.lookup_cache import LookupCache
from app.normalization import build_ingredient_base, extract_primary_token, normalize_product_name
from app.translation import LocalNameTranslator

logger = logging.getLogger(__name__)


class PrimaryRegistryClient(BaseRegistryClient):
    """
    Enrich source rows with brand, generic and ingredient data.

    Results are cached by normalized product name, so rows that normalize to
    the same name share one set of network calls.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        settings: PrimaryRegistrySettings,
        http_settings: ExternalHTTPSettings,
        translator: LocalNameTranslator,
        cache: LookupCache[str, EnrichmentRecord],
    ) -> None:
        super().__init__(source="primary_registry", http_client=http_client, http_settings=http_settings)
        self._settings = settings
        self._translator = translator
        self._cache = cache

    async def enrich(
        self,
        record: SourceRecord,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> EnrichmentRecord:
        normalized = normalize_product_name(record.product_name)

        async with self._lock_for(normalized):
            cached = self._cache.get(normalized)
            if cached is not None:
                logger.debug("Primary registry cache hit normalized_name=%s", normalized)
                return replace(cached, sequence=record.sequence, product_name=record.product_name)

            enriched = await self._enrich_uncached(record, normalized, cancel_token)
            self._cache.set(normalized, enriched)
            return enriched

    async def _enrich_uncached(
        self,
        record: SourceRecord,
        normalized: str,
        cancel_token: CancellationToken | None,
    ) -> EnrichmentRecord:
        token = extract_primary_token(normalized)
        match = await self._find_match(normalized, token, cancel_token)

        ingredient_base = ""
        if match is not None and match.ingredients:
            ingredient_base = build_ingredient_base(match.ingredients)
        if not ingredient_base:
            ingredient_base = normalized

        translation = self._translator.translate(ingredient_base, token, normalized)
        confidence = match.confidence if match is not None else Confidence.REVIEW
        if match is None:
            logger.info("Primary registry no match normalized_name=%s token=%s", normalized, token)

        return EnrichmentRecord(
            sequence=record.sequence,
            product_name=record.product_name,
            normalized_name=normalized,
            primary_brand_name=match.brand_name if match else "",
            primary_generic_name=match.generic_name if match else "",
            raw_active_ingredients=match.ingredients if match else "",
            ingredient_base=ingredient_base,
            confidence=confidence,
            local_ingredient_name=translation.local_name,
            local_search_term=translation.local_name,
            local_name_mapped=translation.mapped,
            application_number=match.application_number if match else "",
        )

    async def _find_match(
        self,
        normalized: str,
        token: str,
        cancel_token: CancellationToken | None,
    ) -> PrimaryMatch | None:
        if not token:
            return None

        match = await self.search_label(token, cancel_token=cancel_token)
        if match is not None:
            return match

        await pace(cancel_token, self._settings.fallback_delay_seconds)
        match = await self.search_product_listing(token, cancel_token=cancel_token)
        if match is not None:
            return match

        first_word = normalized.split(" ")[0] if normalized else ""
        if first_word and first_word != token:
            await pace(cancel_token, self._settings.fallback_delay_seconds)
            return await self.search_label(first_word, cancel_token=cancel_token)
        return None

    async def search_label(
        self,
        token: str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> PrimaryMatch | None:
        payload = await self._request_json_or_none(
            url=self._settings.base_url.rstrip("/") + self._settings.label_path,
            params=self._search_params("openfda.brand_name", token),
            cancel_token=cancel_token,
        )
        return adapt_label_result(payload) if payload is not None else None

    async def search_product_listing(
        self,
        token: str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> PrimaryMatch | None:
        payload = await self._request_json_or_none(
            url=self._settings.base_url.rstrip("/") + self._settings.product_listing_path,
            params=self._search_params("brand_name", token),
            cancel_token=cancel_token,
        )
        return adapt_product_listing_result(payload) if payload is not None else None

    def _search_params(self, field: str, token: str) -> dict[str, Any]:
        params: dict[str, Any] = {
            "search": f'{field}:"{token}"',
            "limit": 1,
        }
        if self._settings.api_key:
            params["api_key"] = self._settings.api_key
        return params
