"""
OpenAI-compatible model listing fetcher.

Reads model metadata from a ``/models`` endpoint that follows the OpenAI
API shape with pricing extensions (e.g. OpenRouter) and maps one entry into
the raw record shape.
"""

import threading
from decimal import Decimal
from typing import Any, Dict, List, Optional

from loguru import logger
from openai import OpenAI

from .base import FetchResult, classify_exception


PER_TOKEN_TO_PER_1K = Decimal("1000")

# listing pricing key -> record usage class
USAGE_CLASS_KEYS = {
    "prompt": "input",
    "completion": "output",
}


class OpenAIModelsFetcher:
    """Fetcher backed by an OpenAI-compatible model listing.

    The listing is requested once per fetcher instance and reused for every
    provider mapped to it.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model_ids: Optional[Dict[str, str]] = None,
        docs_url_template: str = "https://openrouter.ai/{model}",
        client: Optional[OpenAI] = None,
    ):
        """Initialize the fetcher.

        Args:
            base_url: API base URL (defaults to the SDK default)
            api_key: API key (defaults to OPENAI_API_KEY via the SDK)
            model_ids: Provider id -> listing model id; unmapped providers
                are looked up by their own id
            docs_url_template: Docs URL with ``{model}`` substituted
            client: Pre-built client, mainly for tests
        """
        self.model_ids = dict(model_ids or {})
        self.docs_url_template = docs_url_template
        self.client = client or OpenAI(base_url=base_url, api_key=api_key, max_retries=0)
        self._listing: Optional[Dict[str, Dict[str, Any]]] = None
        self._lock = threading.Lock()

    def fetch(self, provider_id: str, timeout: float) -> FetchResult:
        try:
            listing = self._load_listing(timeout)
        except Exception as e:
            return classify_exception(e)

        listing_id = self.model_ids.get(provider_id, provider_id)
        entry = listing.get(listing_id)
        if entry is None:
            return FetchResult.permanent(f"model {listing_id} not present in listing")
        return FetchResult.success(self.to_payload(provider_id, entry))

    def to_payload(self, provider_id: str, entry: Dict[str, Any]) -> Dict[str, Any]:
        """Map a listing entry into the raw record shape.

        Fields absent from the entry are left out so the validator reports
        them.
        """
        payload: Dict[str, Any] = {
            "modelId": provider_id,
            "docsUrl": self.docs_url_template.format(model=entry.get("id", provider_id)),
        }
        if entry.get("name"):
            payload["displayName"] = entry["name"]

        version = entry.get("version") or entry.get("canonical_slug") or entry.get("created")
        if version is not None:
            payload["version"] = str(version)

        if entry.get("context_length") is not None:
            payload["contextWindowTokens"] = entry["context_length"]

        raw_pricing = entry.get("pricing")
        if isinstance(raw_pricing, dict):
            pricing = {}
            for listing_key, usage_class in USAGE_CLASS_KEYS.items():
                if listing_key in raw_pricing:
                    pricing[usage_class] = _per_1k(raw_pricing[listing_key])
            payload["pricing"] = pricing
        return payload

    def _load_listing(self, timeout: float) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            if self._listing is None:
                logger.debug(f"Listing models from {self.client.base_url}")
                page = self.client.with_options(timeout=timeout).models.list()
                entries: List[Dict[str, Any]] = [model.model_dump() for model in page]
                self._listing = {entry["id"]: entry for entry in entries if entry.get("id")}
            return self._listing


def _per_1k(per_token: Any) -> Any:
    """Convert a per-token price to per 1000 tokens, passing junk through.

    Unparseable values are returned unchanged for the validator to reject.
    """
    try:
        return str(Decimal(str(per_token)) * PER_TOKEN_TO_PER_1K)
    except ArithmeticError:
        return per_token
