from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


# ---------------------------
# Durable documents (clients / copier_events / slaves)
# ---------------------------

class StoredDocument(Base):
    """One named JSON document, replaced whole on every save."""

    __tablename__ = "copier_documents"

    name = Column(String(64), primary_key=True)
    body = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
