"""
Key-value persistence for tracker records.

A store is anything with get/set/delete over string keys and JSON text
values.  Records are read and written through read_record / write_record,
which degrade to None / False instead of raising when the store is
unavailable or holds something unreadable.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DATA_DIR = Path(os.getenv("QUIZTRACK_DATA_DIR", str(Path.home() / ".quiztrack")))

NAMESPACE = "quiztrack_"

STORAGE_KEYS = {
    "profile": NAMESPACE + "profile",
    "progress": NAMESPACE + "progress",
    "test_history": NAMESPACE + "testHistory",
    "study_plan": NAMESPACE + "studyPlan",
}

ModelT = TypeVar("ModelT", bound=BaseModel)


class StoreUnavailable(Exception):
    """The backing store cannot be read or written."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store, used by tests and throwaway sessions."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class FileStore:
    """One JSON file per key inside a directory."""

    def __init__(self, directory: Path = DATA_DIR):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            if not path.exists():
                return None
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StoreUnavailable(f"cannot read {path}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_text(value, encoding="utf-8")
        except OSError as e:
            raise StoreUnavailable(f"cannot write {path}: {e}") from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreUnavailable(f"cannot delete {path}: {e}") from e


# ---------------------------------------------------------------------------
# Record helpers
# ---------------------------------------------------------------------------

def read_record(store: KeyValueStore, key: str, model: type[ModelT]) -> Optional[ModelT]:
    """Load and validate one record.  Missing or unreadable records are None."""
    try:
        raw = store.get(key)
    except StoreUnavailable as e:
        logger.warning(f"Error reading {key}: {e}")
        return None
    if not raw:
        return None
    try:
        return model.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Discarding unreadable record {key}: {e}")
        return None


def write_record(store: KeyValueStore, key: str, record: BaseModel) -> bool:
    try:
        store.set(key, record.model_dump_json(indent=2))
    except StoreUnavailable as e:
        logger.warning(f"Error saving {key}: {e}")
        return False
    return True


def delete_record(store: KeyValueStore, key: str) -> bool:
    try:
        store.delete(key)
    except StoreUnavailable as e:
        logger.warning(f"Error deleting {key}: {e}")
        return False
    return True
