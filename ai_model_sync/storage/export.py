"""
Dataset export for the static-site build.

Writes every published record into one combined document.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .base import DatasetStore
from .json_store import write_json_atomic


def build_export(store: DatasetStore, generated_at: Optional[datetime] = None) -> Dict[str, Any]:
    """Build the combined dataset document, models ordered by model id."""
    generated_at = generated_at or datetime.now(timezone.utc)
    return {
        "generatedAt": generated_at.isoformat(),
        "models": [record.to_document() for record in store.list_all()],
    }


def export_dataset(store: DatasetStore, path: str, generated_at: Optional[datetime] = None) -> int:
    """Write the combined dataset document atomically.

    Args:
        store: Store to read published records from
        path: Output file path; parent directories are created
        generated_at: Timestamp recorded in the document (defaults to now)

    Returns:
        Number of exported records
    """
    document = build_export(store, generated_at)
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    write_json_atomic(output, document)
    return len(document["models"])
