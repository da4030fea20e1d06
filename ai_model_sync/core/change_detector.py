"""
Material change detection between published and candidate records.

Compares parsed records, not serialized text, so formatting-only changes
in a provider payload never trigger a publish.
"""

from typing import List, Optional

from ai_model_sync.storage.models import OBSERVABLE_FIELDS, ModelRecord


def diff_fields(existing: Optional[ModelRecord], candidate: ModelRecord) -> List[str]:
    """Return the observable fields that differ between two records.

    Every observable field is reported when there is no existing record.
    """
    if existing is None:
        return list(OBSERVABLE_FIELDS)
    return [
        name for name in OBSERVABLE_FIELDS
        if getattr(existing, name) != getattr(candidate, name)
    ]


def has_material_change(existing: Optional[ModelRecord], candidate: ModelRecord) -> bool:
    """Decide whether a candidate record should replace the published one.

    Args:
        existing: Currently published record, or None on first publish
        candidate: Freshly fetched and validated record

    Returns:
        True if the candidate must be published
    """
    if existing is None:
        return True
    if existing.source_hash == candidate.source_hash:
        return False
    # A differing hash with identical fields is a formatting-only change
    return bool(diff_fields(existing, candidate))
