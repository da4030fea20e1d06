"""
Local JSON file fetcher.

Reads hand-curated provider payloads from ``<directory>/<provider_id>.json``.
"""

import json
from pathlib import Path

from .base import FetchResult


class FileFetcher:
    """Fetcher backed by a directory of per-provider JSON documents."""

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def path_for(self, provider_id: str) -> Path:
        return self.directory / f"{provider_id}.json"

    def fetch(self, provider_id: str, timeout: float) -> FetchResult:
        path = self.path_for(provider_id)
        if not path.is_file():
            return FetchResult.permanent(f"no payload file at {path}")
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            return FetchResult.transient(f"cannot read {path}: {e}")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            return FetchResult.permanent(f"malformed JSON in {path}: {e}")
        if not isinstance(payload, dict):
            return FetchResult.permanent(f"{path} does not contain a JSON object")
        return FetchResult.success(payload)
