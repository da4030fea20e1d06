"""
JSON directory dataset store.

One ``<model_id>.json`` document per model, the layout a static-site build
reads directly from its data folder.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from .base import InvalidModelIdError, KeyedLocks, StoreUnavailableError, check_upsert, decode_document
from .models import ModelRecord


SUFFIX = ".json"


def write_json_atomic(path: Path, document) -> None:
    """Write JSON to a temp file in the same directory, then rename over path.

    Readers see either the previous file or the complete new one.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, sort_keys=True)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class JsonDirectoryStore:
    """Dataset store keeping one JSON document per model in a directory."""

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self._locks = KeyedLocks()

    def lock(self, model_id: str):
        """Serialize writers for one model id."""
        return self._locks.hold(model_id)

    def path_for(self, model_id: str) -> Path:
        if not model_id or "/" in model_id or "\\" in model_id or model_id.startswith("."):
            raise InvalidModelIdError(f"Model id cannot be used as a file name: {model_id!r}")
        return self.directory / f"{model_id}{SUFFIX}"

    def initialize(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot create dataset directory {self.directory}: {e}") from e

    def get(self, model_id: str) -> Optional[ModelRecord]:
        self._require_directory()
        path = self.path_for(model_id)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreUnavailableError(f"Cannot read {path}: {e}") from e
        return decode_document(text, str(path))

    def upsert(self, record: ModelRecord) -> None:
        """Publish a record by atomically replacing its document.

        Raises:
            StoreWriteConflict: If the record would regress last_verified_at
            StoreUnavailableError: If the document cannot be written
        """
        check_upsert(self.get(record.model_id), record)
        path = self.path_for(record.model_id)
        try:
            write_json_atomic(path, record.to_document())
        except OSError as e:
            raise StoreUnavailableError(f"Cannot write {path}: {e}") from e

    def list_all(self) -> List[ModelRecord]:
        """List every published record ordered by model id."""
        self._require_directory()
        try:
            paths = sorted(p for p in self.directory.glob(f"*{SUFFIX}") if not p.name.startswith("."))
        except OSError as e:
            raise StoreUnavailableError(f"Cannot list {self.directory}: {e}") from e

        records = []
        for path in paths:
            record = self.get(path.name[:-len(SUFFIX)])
            # removed between glob and read
            if record is not None:
                records.append(record)
        return sorted(records, key=lambda r: r.model_id)

    def _require_directory(self) -> None:
        if not self.directory.is_dir():
            raise StoreUnavailableError(f"Dataset directory does not exist: {self.directory}")
