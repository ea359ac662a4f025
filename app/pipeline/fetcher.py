"""
Blob payload fetcher.
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from app.pipeline.errors import PayloadFetchError

logger = logging.getLogger(__name__)


def fetch_payload(
    url: str,
    client: Optional[httpx.Client] = None,
    max_bytes: Optional[int] = None,
    timeout: float = 30.0,
) -> bytes:
    """Download the raw receipt bytes behind ``url``.

    Any transport error or non-2xx response is a failure for this item only.
    """
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise PayloadFetchError(
            f"Blob fetch failed: {e.response.status_code} {e.response.reason_phrase}"
        ) from e
    except httpx.RequestError as e:
        raise PayloadFetchError(f"Blob fetch failed: {e}") from e
    finally:
        if owns_client:
            client.close()

    data = response.content
    if max_bytes is not None and len(data) > max_bytes:
        raise PayloadFetchError(f"Payload too large: {len(data)} bytes (max {max_bytes})")
    logger.debug("Fetched %d bytes from %s", len(data), url)
    return data
