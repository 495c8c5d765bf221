from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from mockquiz.app.db.base import Base


class Document(Base):
    """A schemaless document addressed by collection and id.

    ``version`` starts at 1 and is bumped by every committed write; it backs
    the optimistic concurrency checks of the document store.
    """

    __tablename__ = "documents"
    __table_args__ = (Index("idx_documents_collection", "collection"),)

    collection: Mapped[str] = mapped_column(String(255), primary_key=True)
    doc_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<Document({self.collection}/{self.doc_id}, v{self.version})>"
