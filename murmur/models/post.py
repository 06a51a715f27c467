from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, ForeignKey, LargeBinary, Text
from sqlalchemy.orm import Mapped, mapped_column
from murmur.db.base import Base

class Post(Base):
    __tablename__ = "posts"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # NULL for top-level posts; comments point at their thread.
    parent_thread_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("posts.id", ondelete="CASCADE"), nullable=True, index=True)
    author_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    author_label: Mapped[str] = mapped_column(String(128), nullable=False)

    body_ciphertext: Mapped[bytes] = mapped_column(LargeBinary(), nullable=False)
    body_nonce: Mapped[bytes] = mapped_column(LargeBinary(), nullable=False)
    attachment_uri: Mapped[str | None] = mapped_column(Text(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
