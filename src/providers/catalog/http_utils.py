"""Shared HTTP helper for catalog adapters.

Every adapter fetches JSON the same way: pace, send, then map failures onto
the provider error family so the resolution engine can swallow and count
them per provider:

- transport errors and 5xx raise :class:`~src.utils.errors.ProviderUnavailableError`;
- 429 raises :class:`~src.utils.errors.RateLimitError`;
- other 4xx (except 404) raise :class:`~src.utils.errors.ProviderResponseError`.

A 404 or an undecodable body is "nothing here" and returns ``None``.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.utils.concurrency import RequestPacer
from src.utils.errors import ProviderResponseError, ProviderUnavailableError, RateLimitError


async def fetch_json(
    http: httpx.AsyncClient,
    url: str,
    *,
    provider: str,
    pacer: RequestPacer,
    logger: structlog.BoundLogger,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> Any | None:
    """GET *url* and decode the JSON body, or ``None`` when there is nothing there."""
    await pacer.wait()
    try:
        response = await http.get(url, params=params, headers=headers)
    except httpx.HTTPError as exc:
        logger.debug("catalog_request_failed", provider=provider, url=url, error=str(exc))
        raise ProviderUnavailableError(
            message=f"{provider} request failed: {exc}", provider_name=provider
        ) from exc

    status = response.status_code
    if status == 429:
        retry_after = response.headers.get("retry-after")
        raise RateLimitError(
            message=f"{provider} rate limited",
            provider_name=provider,
            retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
        )
    if status == 404:
        logger.debug("catalog_not_found", provider=provider, url=url)
        return None
    if status >= 500:
        raise ProviderUnavailableError(message=f"{provider} returned HTTP {status}", provider_name=provider)
    if status >= 400:
        raise ProviderResponseError(
            message=f"{provider} returned HTTP {status}", provider_name=provider, status_code=status
        )

    try:
        return response.json()
    except ValueError as exc:
        logger.debug("catalog_invalid_json", provider=provider, url=url, error=str(exc))
        return None
