"""
Data models for storage layer.

Defines the published model record and its persisted document form.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Mapping


# Observable fields compared by the change detector, in document order.
OBSERVABLE_FIELDS = (
    "display_name",
    "version",
    "context_window_tokens",
    "pricing",
    "docs_url",
)


@dataclass(frozen=True)
class ModelRecord:
    """Published metadata for one AI model.

    Records are only ever built by the validator, so every stored record is
    fully valid. Prices are per 1000 tokens.
    """
    model_id: str
    display_name: str
    version: str
    context_window_tokens: int
    pricing: Dict[str, Decimal] = field(hash=False)
    docs_url: str
    last_verified_at: datetime
    source_hash: str

    def to_document(self) -> Dict[str, Any]:
        """Serialize to the self-describing document persisted per model.

        Prices are written as decimal strings to keep them exact.
        """
        return {
            "modelId": self.model_id,
            "displayName": self.display_name,
            "version": self.version,
            "contextWindowTokens": self.context_window_tokens,
            "pricing": {usage_class: str(price) for usage_class, price in sorted(self.pricing.items())},
            "docsUrl": self.docs_url,
            "lastVerifiedAt": self.last_verified_at.isoformat(),
            "sourceHash": self.source_hash,
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "ModelRecord":
        """Rebuild a record from a persisted document.

        Raises:
            KeyError: If a field is missing from the document
        """
        return cls(
            model_id=document["modelId"],
            display_name=document["displayName"],
            version=document["version"],
            context_window_tokens=int(document["contextWindowTokens"]),
            pricing={usage_class: Decimal(str(price)) for usage_class, price in document["pricing"].items()},
            docs_url=document["docsUrl"],
            last_verified_at=datetime.fromisoformat(document["lastVerifiedAt"]),
            source_hash=document["sourceHash"],
        )
