"""
Fetcher dispatch by provider identity.

Keeps provider quirks inside their adapters; the orchestrator only ever
sees one fetcher.
"""

from typing import Dict, Optional

from .base import Fetcher, FetchResult


class FetcherRegistry:
    """Routes each provider id to its adapter, falling back to a default."""

    def __init__(self, fetchers: Optional[Dict[str, Fetcher]] = None, default: Optional[Fetcher] = None):
        self.fetchers: Dict[str, Fetcher] = dict(fetchers or {})
        self.default = default

    def register(self, provider_id: str, fetcher: Fetcher) -> None:
        self.fetchers[provider_id] = fetcher

    def resolve(self, provider_id: str) -> Optional[Fetcher]:
        return self.fetchers.get(provider_id, self.default)

    def fetch(self, provider_id: str, timeout: float) -> FetchResult:
        fetcher = self.resolve(provider_id)
        if fetcher is None:
            return FetchResult.permanent(f"no fetcher configured for provider {provider_id}")
        return fetcher.fetch(provider_id, timeout)
