from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.database import models


class DocumentRepo:
    def __init__(self, s: Session):
        self.s = s

    def get(self, name: str) -> Any | None:
        row = self.s.get(models.StoredDocument, name)
        return None if row is None else row.body

    def put(self, name: str, body: Any) -> None:
        now = datetime.now(tz=timezone.utc)
        row = self.s.get(models.StoredDocument, name)
        if row is None:
            self.s.add(models.StoredDocument(name=name, body=body, updated_at=now))
        else:
            row.body = body
            row.updated_at = now

    def names(self) -> list[str]:
        return list(self.s.execute(select(models.StoredDocument.name).order_by(models.StoredDocument.name)).scalars())


class Repo:
    """Thin facade over per-table repositories bound to one session."""

    def __init__(self, s: Session):
        self.s = s
        self.documents = DocumentRepo(s)
