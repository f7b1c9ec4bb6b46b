"""Durable store for the copier's named JSON documents.

All backends share the same contract: `load(name, default)` never raises and
`save(name, doc)` reports success as a bool. A failed save is logged and
counted, and the caller keeps its in-memory state.
"""

from __future__ import annotations

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StorageFailure
from app.database.repo import Repo
from app.database.session import session_scope

log = logging.getLogger(__name__)


class DocumentStore:
    def __init__(self) -> None:
        self.failures = 0

    def load(self, name: str, default: Any) -> Any:
        try:
            doc = self._read(name)
        except StorageFailure:
            log.warning("store: load %s failed, using default", name, exc_info=True)
            return default
        return default if doc is None else doc

    def save(self, name: str, doc: Any) -> bool:
        try:
            self._write(name, doc)
            return True
        except StorageFailure:
            self.failures += 1
            log.warning("store: save %s failed (in-memory state kept, failures=%d)", name, self.failures, exc_info=True)
            return False

    def _read(self, name: str) -> Any | None:
        raise NotImplementedError

    def _write(self, name: str, doc: Any) -> None:
        raise NotImplementedError


class MemoryStore(DocumentStore):
    """Process-local store; documents are deep-copied in and out."""

    def __init__(self) -> None:
        super().__init__()
        self.docs: dict[str, Any] = {}

    def _read(self, name: str) -> Any | None:
        doc = self.docs.get(name)
        return None if doc is None else copy.deepcopy(doc)

    def _write(self, name: str, doc: Any) -> None:
        self.docs[name] = copy.deepcopy(doc)


class JsonFileStore(DocumentStore):
    """`<data_dir>/<name>.json`, committed by writing a temp file and renaming it over."""

    def __init__(self, data_dir: str | Path = ".") -> None:
        super().__init__()
        self.data_dir = Path(data_dir)

    def path_for(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def _read(self, name: str) -> Any | None:
        path = self.path_for(name)
        if not path.exists():
            return None
        try:
            txt = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            log.warning("store: %s is not valid UTF-8, ignoring", path)
            return None
        except OSError as e:
            raise StorageFailure(f"read {path}: {e}") from e
        if not txt.strip():
            return None
        try:
            return json.loads(txt)
        except ValueError:
            log.warning("store: %s is not valid JSON, ignoring", path)
            return None

    def _write(self, name: str, doc: Any) -> None:
        path = self.path_for(name)
        tmp = path.with_name(path.name + ".tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(doc, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            # only a complete temp file is ever renamed; drop the partial one
            try:
                tmp.unlink(missing_ok=True)
            except OSError:
                log.warning("store: could not remove %s", tmp)
            raise StorageFailure(f"write {path}: {e}") from e


class SqlDocumentStore(DocumentStore):
    """One row per document in `copier_documents`; one transaction per save."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        super().__init__()
        self.session_factory = session_factory

    def _read(self, name: str) -> Any | None:
        try:
            with session_scope(self.session_factory) as s:
                return Repo(s).documents.get(name)
        except SQLAlchemyError as e:
            raise StorageFailure(f"load {name}: {e}") from e

    def _write(self, name: str, doc: Any) -> None:
        try:
            with session_scope(self.session_factory) as s:
                Repo(s).documents.put(name, doc)
        except (SQLAlchemyError, TypeError, ValueError) as e:
            raise StorageFailure(f"save {name}: {e}") from e
