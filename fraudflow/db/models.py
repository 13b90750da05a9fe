"""
FraudFlow SQLAlchemy Models.

Workflow records are stored as versioned JSON documents, one table for all
collections. The (collection, id) pair is the key; ``version`` backs the
optimistic compare-and-set used by every writer.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from fraudflow.db.compat import JSONType
from fraudflow.db.engine import Base


class RecordModel(Base):
    __tablename__ = "ff_records"
    __table_args__ = (Index("ix_ff_records_collection", "collection"),)

    collection: Mapped[str] = mapped_column(String(32), primary_key=True)
    id: Mapped[str] = mapped_column(String(96), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    payload: Mapped[dict] = mapped_column(JSONType(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
