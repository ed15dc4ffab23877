"""
app/connectors/secondary_registry.py

Client for the domestic drug registry (detailed permit search + simplified list).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterable

import httpx
from pydantic import ValidationError

from app.cancellation import CancellationToken, checkpoint, gather_or_cancel, pace
from app.config import ExternalHTTPSettings, SecondaryRegistrySettings
from app.connectors.base import BaseRegistryClient, MalformedResponseError
from app.connectors.response_schemas import (
    DetailedPermitItem,
    SimplifiedListItem,
    adapt_detailed_permit_item,
    adapt_simplified_list_item,
    parse_envelope,
)
from app.domain.drug_records import RegistryProduct
from app.lookup_cache import LookupCache

logger = logging.getLogger(__name__)

DETAIL_SEARCH_PARAM = "item_ingr_name"
SIMPLE_LIST_SEARCH_PARAM = "itemName"


@dataclass(frozen=True)
class TermLookup:
    """
    Filtered products for one `(term, include_revoked)` pair; the cached unit.
    """

    products: tuple[RegistryProduct, ...] = ()
    revoked_excluded: int = 0


@dataclass(frozen=True)
class RegistryLookupResult:
    """
    Outcome of one row lookup, including which term finally produced it.
    """

    products: list[RegistryProduct] = field(default_factory=list)
    search_term_used: str = ""
    was_mapped: bool = False
    revoked_excluded: int = 0


class SecondaryRegistryClient(BaseRegistryClient):
    """
    Look up registered domestic products by local ingredient name.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        settings: SecondaryRegistrySettings,
        http_settings: ExternalHTTPSettings,
        cache: LookupCache[tuple[str, bool], TermLookup],
    ) -> None:
        super().__init__(source="secondary_registry", http_client=http_client, http_settings=http_settings)
        self._settings = settings
        self._cache = cache

    async def lookup(
        self,
        search_term: str,
        include_revoked: bool,
        *,
        was_mapped: bool = False,
        is_override: bool = False,
        fallback_terms: Iterable[str] = (),
        cancel_token: CancellationToken | None = None,
    ) -> RegistryLookupResult:
        """
        Look up products for a search term, falling back to other ingredient components.

        Fallback terms are tried in order only when the primary term found
        nothing and the term is not an explicit override. The first non-empty
        result wins.
        """

        primary_term = (search_term or "").strip()
        outcome = await self._lookup_term(primary_term, include_revoked, cancel_token)
        if outcome.products or is_override:
            return RegistryLookupResult(
                products=list(outcome.products),
                search_term_used=primary_term,
                was_mapped=was_mapped,
                revoked_excluded=outcome.revoked_excluded,
            )

        for candidate in fallback_terms:
            candidate = candidate.strip()
            if not candidate or candidate == primary_term:
                continue
            await pace(cancel_token, self._settings.fallback_delay_seconds)
            fallback = await self._lookup_term(candidate, include_revoked, cancel_token)
            if fallback.products:
                logger.info(
                    "Secondary registry component fallback matched term=%s fallback_term=%s products=%s",
                    primary_term,
                    candidate,
                    len(fallback.products),
                )
                return RegistryLookupResult(
                    products=list(fallback.products),
                    search_term_used=candidate,
                    was_mapped=True,
                    revoked_excluded=fallback.revoked_excluded,
                )

        return RegistryLookupResult(
            products=[],
            search_term_used=primary_term,
            was_mapped=was_mapped,
            revoked_excluded=outcome.revoked_excluded,
        )

    async def _lookup_term(
        self,
        term: str,
        include_revoked: bool,
        cancel_token: CancellationToken | None,
    ) -> TermLookup:
        if not term:
            return TermLookup()

        key = (term, include_revoked)
        async with self._lock_for(key):
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Secondary registry cache hit term=%s include_revoked=%s", term, include_revoked)
                return cached

            products = await self.search_detailed(term, cancel_token=cancel_token)
            if not products:
                products = await self.search_simplified(term, cancel_token=cancel_token)

            kept = products if include_revoked else [product for product in products if not product.is_revoked]
            outcome = TermLookup(products=tuple(kept), revoked_excluded=len(products) - len(kept))
            if outcome.revoked_excluded:
                logger.debug(
                    "Secondary registry revoked products excluded term=%s count=%s",
                    term,
                    outcome.revoked_excluded,
                )
            self._cache.set(key, outcome)
            return outcome

    async def search_detailed(
        self,
        term: str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> list[RegistryProduct]:
        """
        Page 1 reports the total count; pages 2..N are fetched concurrently up to the page cap.
        """

        first_page = await self._fetch_detail_page(term, 1, cancel_token)
        if first_page is None:
            return []

        products, total_count = first_page
        page_count = min(math.ceil(total_count / self._settings.page_size), self._settings.max_pages)
        if page_count > 1:
            checkpoint(cancel_token)
            pages = await gather_or_cancel(
                self._fetch_detail_page(term, page_no, cancel_token) for page_no in range(2, page_count + 1)
            )
            for page in pages:
                if page is not None:
                    products.extend(page[0])
        return products

    async def search_simplified(
        self,
        term: str,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> list[RegistryProduct]:
        payload = await self._request_json_or_none(
            url=self._settings.simple_list_url,
            params=self._page_params(SIMPLE_LIST_SEARCH_PARAM, term, 1),
            cancel_token=cancel_token,
        )
        items = self._envelope_items(payload, self._settings.simple_list_url)
        if items is None:
            return []
        return self._adapt_items(items[0], SimplifiedListItem, adapt_simplified_list_item)

    async def _fetch_detail_page(
        self,
        term: str,
        page_no: int,
        cancel_token: CancellationToken | None,
    ) -> tuple[list[RegistryProduct], int] | None:
        payload = await self._request_json_or_none(
            url=self._settings.detail_url,
            params=self._page_params(DETAIL_SEARCH_PARAM, term, page_no),
            cancel_token=cancel_token,
        )
        items = self._envelope_items(payload, self._settings.detail_url)
        if items is None:
            return None
        rows, total_count = items
        return self._adapt_items(rows, DetailedPermitItem, adapt_detailed_permit_item), total_count

    def _envelope_items(self, payload: Any, url: str) -> tuple[list[dict[str, Any]], int] | None:
        if payload is None:
            return None
        try:
            envelope = parse_envelope(payload, self._settings.success_result_codes)
        except MalformedResponseError as exc:
            logger.warning("Secondary registry malformed response url=%s error=%s", url, exc)
            return None
        return envelope.body.items, envelope.body.total_count

    def _adapt_items(self, rows: list[dict[str, Any]], schema: Any, adapter: Any) -> list[RegistryProduct]:
        products: list[RegistryProduct] = []
        failed = 0
        for row in rows:
            try:
                item = schema.model_validate(row)
            except ValidationError:
                failed += 1
                continue
            products.append(adapter(item, self._settings.original_drug_marker))
        if failed:
            logger.warning("Secondary registry skipped malformed items schema=%s count=%s", schema.__name__, failed)
        return products

    def _page_params(self, search_param: str, term: str, page_no: int) -> dict[str, Any]:
        params: dict[str, Any] = {
            search_param: term,
            "type": "json",
            "numOfRows": self._settings.page_size,
            "pageNo": page_no,
        }
        if self._settings.service_key:
            params["serviceKey"] = self._settings.service_key
        return params
