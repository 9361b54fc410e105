"""
JSON file-based storage implementation.

Stores verification records as JSON files under the data directory:
- <base_dir>/codes/<user>.json     (code history of a user)
- <base_dir>/jobs/<user>.json      (the user's current job)
- <base_dir>/users/<user>.json     (student id, self-reported grades, verified flag)
- <base_dir>/evidence/<job_id>/    (uploaded screenshots / video)

Writes go to a temp file first and are moved into place, so a reader
never sees a half-written record.
"""

from __future__ import annotations

import json
import os
import re
import shutil
import threading
from pathlib import Path
from typing import Any, Iterator, Optional

from ..exceptions import DataPersistenceError
from ..logger import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.@-]")


def safe_name(value: str) -> str:
    """File-system safe record name."""
    cleaned = _UNSAFE_CHARS.sub("_", str(value)).strip(".")
    if not cleaned:
        raise DataPersistenceError(f"Invalid record name: {value!r}", operation="save")
    return cleaned


class JSONStore:
    """
    Thread-safe JSON and blob storage in one directory tree.

    Args:
        base_dir: Root directory (created if missing)
    """

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """Held by callers that read-modify-write a record."""
        return self._lock

    def path(self, collection: str, name: str, suffix: str = ".json") -> Path:
        return self.base_dir / collection / f"{safe_name(name)}{suffix}"

    def _atomic_write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.{threading.get_ident()}.tmp")
        try:
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError as e:
            raise DataPersistenceError(f"Failed to write {path.name}: {e}", file_path=str(path), operation="save")
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def write(self, collection: str, name: str, data: Any) -> Path:
        path = self.path(collection, name)
        payload = json.dumps(data, ensure_ascii=False, indent=2).encode("utf-8")
        with self._lock:
            self._atomic_write(path, payload)
        return path

    def read(self, collection: str, name: str) -> Optional[Any]:
        path = self.path(collection, name)
        with self._lock:
            if not path.exists():
                return None
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                raise DataPersistenceError(f"Failed to read {path.name}: {e}", file_path=str(path), operation="load")

    def iter_collection(self, collection: str) -> Iterator[Any]:
        directory = self.base_dir / collection
        if not directory.exists():
            return
        for path in sorted(directory.glob("*.json")):
            data = self.read(collection, path.stem)
            if data is not None:
                yield data

    # Blobs

    def blob_path(self, group: str, name: str) -> Path:
        return self.base_dir / "evidence" / safe_name(group) / safe_name(name)

    def write_blob(self, group: str, name: str, data: bytes) -> str:
        path = self.blob_path(group, name)
        with self._lock:
            self._atomic_write(path, data)
        return f"{safe_name(group)}/{safe_name(name)}"

    def read_blob(self, key: str) -> Optional[bytes]:
        group, _, name = key.partition("/")
        path = self.blob_path(group, name)
        with self._lock:
            if not path.exists():
                return None
            return path.read_bytes()

    def delete_group(self, group: str) -> None:
        directory = self.base_dir / "evidence" / safe_name(group)
        with self._lock:
            if directory.exists():
                shutil.rmtree(directory, ignore_errors=True)
                logger.debug(f"Deleted evidence {directory.name}")
