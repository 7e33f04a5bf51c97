"""SQLAlchemy database models.

Documents of every collection share one table; the JSON payload keeps the
field names of the original document store.
"""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class DocumentTable(Base):
    """Document entity table."""

    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    id = Column(String(64), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    unique_key = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        # NULL keys never collide, so released keys can repeat
        UniqueConstraint("collection", "unique_key", name="uq_documents_collection_unique_key"),
        Index("ix_documents_collection_created", "collection", "created_at"),
    )
