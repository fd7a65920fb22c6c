"""
HTTP fetchers for the SWR cache.

Wraps blocking `requests` calls so they can be awaited by the cache,
mapping transport failures and HTTP responses onto the fetch envelope.
"""
import asyncio
import logging
import threading
from typing import Any, Dict, Optional

import requests

from swr_cache.cache import FetchResponse, Fetcher, TransportError
from config.settings import settings

logger = logging.getLogger("http_fetcher")

# Global semaphore to limit concurrent upstream requests across all fetchers
_api_semaphore = threading.Semaphore(settings.max_concurrent_requests)


def cache_key(endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Generate cache key from endpoint and params."""
    sorted_params = sorted((k, v) for k, v in (params or {}).items() if v is not None)
    if not sorted_params:
        return endpoint
    return f"{endpoint}?" + "|".join(f"{k}:{v}" for k, v in sorted_params)


def _get_headers() -> dict:
    """Get API authentication headers."""
    headers = {"Accept": "application/json"}
    if settings.api_token:
        headers["Authorization"] = f"Bearer {settings.api_token}"
    return headers


def _to_response(response: requests.Response) -> FetchResponse:
    """
    Build the fetch envelope from an HTTP response.

    Bodies that already carry a statusCode envelope are taken as-is;
    anything else is wrapped with the HTTP status.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and "statusCode" in body:
        return FetchResponse.model_validate(body)

    return FetchResponse(
        status_code=response.status_code,
        message=None if response.ok else (response.reason or None),
        payload=body,
    )


def make_http_fetcher(
    endpoint: str,
    params: Optional[Dict[str, Any]] = None,
    session: Optional[requests.Session] = None,
    base_url: Optional[str] = None,
    timeout: float = 30,
) -> Fetcher:
    """
    Create a fetcher that GETs an endpoint of the upstream API.

    Args:
        endpoint: API endpoint path
        params: Query parameters
        session: requests session, module-level requests.get if omitted
        base_url: Overrides settings.api_base_url
        timeout: Socket timeout passed to requests, in seconds

    Returns:
        Coroutine function resolving to a FetchResponse
    """
    http = session if session is not None else requests
    url = f"{(base_url or settings.api_base_url).rstrip('/')}/{endpoint.lstrip('/')}"

    def fetch() -> FetchResponse:
        # Use semaphore to limit concurrent API requests globally
        with _api_semaphore:
            try:
                response = http.get(
                    url,
                    headers=_get_headers(),
                    params=params,
                    timeout=timeout,
                )
            except requests.RequestException as e:
                logger.debug(f"Request failed for {url}: {e}")
                raise TransportError(f"GET {url} failed: {e}") from e
        return _to_response(response)

    async def fetcher() -> FetchResponse:
        return await asyncio.to_thread(fetch)

    return fetcher
