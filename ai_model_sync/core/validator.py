"""
Schema validation for raw provider payloads.

Turns a raw payload into a ModelRecord or rejects it with a field-level
reason. Validation is pure: no clock, network or filesystem access.
"""

import hashlib
import json
import math
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

from ai_model_sync.storage.models import ModelRecord


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ValidationReason(Enum):
    """Machine-readable reason codes for rejected payloads."""
    MISSING_FIELD = "missing_field"
    TYPE_MISMATCH = "type_mismatch"
    OUT_OF_RANGE = "out_of_range"
    MALFORMED_URL = "malformed_url"


class ValidationError(ValueError):
    """Raised when a raw payload does not describe a valid model record."""
    def __init__(self, field: str, reason: ValidationReason, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.reason = reason
        self.message = message

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValidationError):
            return NotImplemented
        return (self.field, self.reason, self.message) == (other.field, other.reason, other.message)

    def __hash__(self) -> int:
        return hash((self.field, self.reason, self.message))


def compute_source_hash(raw: Mapping[str, Any]) -> str:
    """Hash the canonical JSON form of a raw payload.

    Key order and whitespace do not affect the hash.
    """
    canonical = json.dumps(raw, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def validate(
    raw: Any,
    *,
    model_id: Optional[str] = None,
    verified_at: Optional[datetime] = None,
) -> ModelRecord:
    """Validate a raw provider payload and normalize it into a ModelRecord.

    Args:
        raw: Decoded provider payload (must be a mapping)
        model_id: Model id to use when the payload carries no ``modelId``
        verified_at: Verification time; defaults to the payload's
            ``lastVerifiedAt`` or the Unix epoch, keeping the call pure

    Returns:
        Fully validated ModelRecord

    Raises:
        ValidationError: On the first field that fails validation
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("$", ValidationReason.TYPE_MISMATCH, "payload must be an object")
    _require_string_keys(raw, "")

    resolved_id = _require_string(raw, "modelId", default=model_id)
    display_name = _require_string(raw, "displayName", default=resolved_id)
    version = _require_string(raw, "version")
    context_window = _require_context_window(raw)
    pricing = _require_pricing(raw)
    docs_url = _require_url(raw, "docsUrl")

    if verified_at is None:
        verified_at = _optional_timestamp(raw, "lastVerifiedAt")

    return ModelRecord(
        model_id=resolved_id,
        display_name=display_name,
        version=version,
        context_window_tokens=context_window,
        pricing=pricing,
        docs_url=docs_url,
        last_verified_at=verified_at,
        source_hash=compute_source_hash(raw),
    )


def _require_string_keys(value: Any, path: str) -> None:
    """Reject objects keyed by anything but strings, at any depth."""
    if isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationError(path or "$", ValidationReason.TYPE_MISMATCH, f"object keys must be strings, got {type(key).__name__}")
            _require_string_keys(item, f"{path}.{key}" if path else key)
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _require_string_keys(item, f"{path}[{index}]")


def _require_string(raw: Mapping[str, Any], name: str, default: Optional[str] = None) -> str:
    value = raw.get(name, default)
    if value is None:
        raise ValidationError(name, ValidationReason.MISSING_FIELD, "required field is missing")
    if not isinstance(value, str):
        raise ValidationError(name, ValidationReason.TYPE_MISMATCH, f"expected string, got {type(value).__name__}")
    if not value.strip():
        raise ValidationError(name, ValidationReason.MISSING_FIELD, "required field is empty")
    return value.strip()


def _require_context_window(raw: Mapping[str, Any]) -> int:
    name = "contextWindowTokens"
    if name not in raw or raw[name] is None:
        raise ValidationError(name, ValidationReason.MISSING_FIELD, "required field is missing")
    value = raw[name]
    # bool is an int subclass but never a token count
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(name, ValidationReason.TYPE_MISMATCH, f"expected integer, got {type(value).__name__}")
    if value <= 0:
        raise ValidationError(name, ValidationReason.OUT_OF_RANGE, f"must be positive, got {value}")
    return value


def _require_pricing(raw: Mapping[str, Any]) -> Dict[str, Decimal]:
    name = "pricing"
    if name not in raw or raw[name] is None:
        raise ValidationError(name, ValidationReason.MISSING_FIELD, "required field is missing")
    table = raw[name]
    if not isinstance(table, Mapping):
        raise ValidationError(name, ValidationReason.TYPE_MISMATCH, f"expected object, got {type(table).__name__}")
    if not table:
        raise ValidationError(name, ValidationReason.OUT_OF_RANGE, "at least one usage class is required")

    pricing = {}
    for usage_class in sorted(table, key=str):
        path = f"{name}.{usage_class}"
        if not isinstance(usage_class, str) or not usage_class.strip():
            raise ValidationError(path, ValidationReason.TYPE_MISMATCH, "usage class must be a non-empty string")
        pricing[usage_class] = _parse_price(path, table[usage_class])
    return pricing


def _parse_price(path: str, value: Any) -> Decimal:
    if value is None:
        raise ValidationError(path, ValidationReason.MISSING_FIELD, "price is missing")
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal, str)):
        raise ValidationError(path, ValidationReason.TYPE_MISMATCH, f"expected number, got {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(path, ValidationReason.OUT_OF_RANGE, "price must be finite")
    try:
        # str() first so 0.8 becomes Decimal("0.8"), not its binary expansion
        price = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(path, ValidationReason.TYPE_MISMATCH, f"not a number: {value!r}")
    if not price.is_finite():
        raise ValidationError(path, ValidationReason.OUT_OF_RANGE, "price must be finite")
    if price < 0:
        raise ValidationError(path, ValidationReason.OUT_OF_RANGE, f"price cannot be negative, got {price}")
    return price


def _require_url(raw: Mapping[str, Any], name: str) -> str:
    value = _require_string(raw, name)
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc or " " in value:
        raise ValidationError(name, ValidationReason.MALFORMED_URL, f"not an http(s) URL: {value!r}")
    return value


def _optional_timestamp(raw: Mapping[str, Any], name: str) -> datetime:
    value = raw.get(name)
    if value is None:
        return EPOCH
    if not isinstance(value, str):
        raise ValidationError(name, ValidationReason.TYPE_MISMATCH, f"expected ISO-8601 string, got {type(value).__name__}")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(name, ValidationReason.TYPE_MISMATCH, f"not an ISO-8601 timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
