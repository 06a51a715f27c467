from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, Literal

from murmur.services.entities import ReportReason


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubmissionIn(CamelModel):
    # Length and attachment rules are enforced by SubmissionValidator.
    content: str
    attachment_uri: Optional[str] = None
    parent_thread_id: Optional[str] = None


class SubmissionOut(CamelModel):
    status: Literal["published", "quarantined"]
    id: Optional[str] = None
    reason: Optional[str] = None


class AckOut(CamelModel):
    success: bool = True
    id: str


class PostOut(CamelModel):
    id: str
    content: str
    attachment_uri: Optional[str] = None
    author_id: str
    author_label: str
    created_at: str
    parent_thread_id: Optional[str] = None


class QuarantinedOut(CamelModel):
    id: str
    content: str
    attachment_uri: Optional[str] = None
    author_id: str
    author_label: str
    flagged_at: str
    reason: str
    parent_thread_id: Optional[str] = None


class ReportIn(CamelModel):
    reason: ReportReason
    details: Optional[str] = Field(default=None, max_length=500)
    parent_thread_id: Optional[str] = None

    @model_validator(mode="after")
    def _details_for_other(self) -> "ReportIn":
        if self.reason is ReportReason.OTHER and not (self.details or "").strip():
            raise ValueError("Please specify a reason.")
        return self


class ReportOut(CamelModel):
    id: str
    target_id: str
    parent_thread_id: Optional[str] = None
    reason: str
    details: Optional[str] = None
    reporter_id: str
    created_at: str


class ScreenIn(CamelModel):
    content: str
    preferences: Optional[str] = Field(default=None, max_length=500)


class ScreenOut(CamelModel):
    is_safe: bool
    reason: str = ""
