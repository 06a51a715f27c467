from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import String, DateTime, LargeBinary, Text
from sqlalchemy.orm import Mapped, mapped_column
from murmur.db.base import Base

class QuarantinedItem(Base):
    __tablename__ = "quarantined_items"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    parent_thread_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    author_id: Mapped[str] = mapped_column(String(128), nullable=False)
    author_label: Mapped[str] = mapped_column(String(128), nullable=False)
    body_ciphertext: Mapped[bytes] = mapped_column(LargeBinary(), nullable=False)
    body_nonce: Mapped[bytes] = mapped_column(LargeBinary(), nullable=False)
    attachment_uri: Mapped[str | None] = mapped_column(Text(), nullable=True)
    reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    flagged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

class ModerationReport(Base):
    __tablename__ = "moderation_reports"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    reporter_id: Mapped[str] = mapped_column(String(128), nullable=False)
    target_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    parent_thread_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    reason: Mapped[str] = mapped_column(String(64), nullable=False)  # hate_speech|harassment|spam|misinformation|other
    details: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
