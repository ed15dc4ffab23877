"""
app/connectors/base.py

Base registry client abstraction and shared async HTTP mechanics.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Hashable
from typing import Any

import httpx

from app.cancellation import CancellationToken, checkpoint, pace
from app.config import ExternalHTTPSettings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 503}


class RegistryRequestError(RuntimeError):
    """
    Raised when a registry endpoint cannot produce a JSON payload.
    """


class MalformedResponseError(RegistryRequestError):
    """
    Raised when a payload parsed but its envelope is not a success.
    """


def build_http_client(http_settings: ExternalHTTPSettings) -> httpx.AsyncClient:
    """
    Create the shared async HTTP client for one pipeline run.
    """

    return httpx.AsyncClient(
        timeout=http_settings.timeout_seconds,
        headers={
            "User-Agent": http_settings.user_agent,
            "Accept": "application/json",
        },
    )


class BaseRegistryClient:
    """
    Shared retry, backoff and per-key serialization for registry clients.
    """

    source: str

    def __init__(
        self,
        *,
        source: str,
        http_client: httpx.AsyncClient,
        http_settings: ExternalHTTPSettings,
    ) -> None:
        self.source = source
        self._client = http_client
        self._max_attempts = max(1, http_settings.max_attempts)
        self._backoff_seconds = http_settings.backoff_seconds
        self._key_locks: dict[Hashable, asyncio.Lock] = {}

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        """
        Return the lock that serializes cache misses for one key.
        """

        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        return lock

    async def _request_json(
        self,
        *,
        url: str,
        params: dict[str, Any] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Any:
        """
        Execute a GET request and return parsed JSON with retry support.

        429/503 responses, transport errors and undecodable bodies are retried
        after `backoff * attempt` seconds. Other non-2xx responses fail at once.
        """

        last_error: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            checkpoint(cancel_token)
            try:
                response = await self._client.get(url, params=params)
            except httpx.TransportError as exc:
                last_error = exc
            else:
                if response.status_code in RETRYABLE_STATUS_CODES:
                    last_error = RegistryRequestError(
                        f"{self.source}: retryable HTTP status {response.status_code}."
                    )
                elif not response.is_success:
                    logger.warning(
                        "Registry request failed source=%s status=%s url=%s",
                        self.source,
                        response.status_code,
                        url,
                    )
                    raise RegistryRequestError(
                        f"{self.source}: non-retryable HTTP status {response.status_code}."
                    )
                else:
                    try:
                        return response.json()
                    except ValueError as exc:
                        last_error = exc

            if attempt >= self._max_attempts:
                break

            backoff_seconds = self._backoff_seconds * attempt
            logger.warning(
                "Registry request retry source=%s attempt=%s/%s wait_seconds=%.2f url=%s error=%s",
                self.source,
                attempt,
                self._max_attempts,
                backoff_seconds,
                url,
                last_error,
            )
            await pace(cancel_token, backoff_seconds)

        logger.error(
            "Registry request exhausted retries source=%s url=%s error=%s",
            self.source,
            url,
            last_error,
        )
        raise RegistryRequestError(f"{self.source}: request failed after retries.") from last_error

    async def _request_json_or_none(
        self,
        *,
        url: str,
        params: dict[str, Any] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Any | None:
        """
        Like `_request_json`, but a failed endpoint counts as "no result".
        """

        try:
            return await self._request_json(url=url, params=params, cancel_token=cancel_token)
        except RegistryRequestError:
            return None
