"""
HTTP JSON fetcher.

Retrieves a provider payload from a JSON endpoint with httpx.
"""

from typing import Dict, Optional

import httpx
from loguru import logger

from .base import FetchResult, classify_exception


class HttpJsonFetcher:
    """Fetcher that GETs ``url_template`` with ``{provider_id}`` substituted.

    The endpoint must already return a payload in record shape; provider
    specific scraping belongs in its own adapter.
    """

    def __init__(
        self,
        url_template: str,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not url_template or not url_template.strip():
            raise ValueError("url_template is required and cannot be empty")
        self.url_template = url_template
        self.headers = dict(headers or {})
        self._transport = transport

    def url_for(self, provider_id: str) -> str:
        return self.url_template.format(provider_id=provider_id)

    def fetch(self, provider_id: str, timeout: float) -> FetchResult:
        url = self.url_for(provider_id)
        logger.debug(f"GET {url} for {provider_id} (timeout {timeout:.1f}s)")
        try:
            with httpx.Client(timeout=timeout, headers=self.headers, transport=self._transport) as client:
                response = client.get(url)
                response.raise_for_status()
                payload = response.json()
        except Exception as e:
            return classify_exception(e)

        if not isinstance(payload, dict):
            return FetchResult.permanent(f"{url} did not return a JSON object")
        return FetchResult.success(payload)
