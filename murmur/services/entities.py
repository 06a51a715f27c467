from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

ANONYMOUS_LABEL = "Anonymous"


@dataclass(frozen=True)
class Submission:
    content: str
    attachment_uri: Optional[str] = None
    parent_thread_id: Optional[str] = None


@dataclass(frozen=True)
class ValidSubmission:
    content: str
    attachment_uri: Optional[str] = None
    attachment_type: Optional[str] = None  # png|jpeg|gif|webp
    parent_thread_id: Optional[str] = None


@dataclass(frozen=True)
class Identity:
    subject_id: str
    display_label: Optional[str] = None
    anonymous: bool = False

    @property
    def label(self) -> str:
        return self.display_label or ANONYMOUS_LABEL

    @classmethod
    def anonymous_subject(cls) -> "Identity":
        # Fresh per request so that nobody can ever authenticate as the author.
        return cls(subject_id=f"anon-{uuid.uuid4()}", anonymous=True)


@dataclass(frozen=True)
class ClassificationVerdict:
    is_violating: bool
    reason: str = ""


@dataclass(frozen=True)
class Published:
    post_id: str
    status: str = "published"


@dataclass(frozen=True)
class Quarantined:
    reason: str
    status: str = "quarantined"


SubmissionOutcome = Union[Published, Quarantined]


class ReportReason(str, Enum):
    HATE_SPEECH = "hate_speech"
    HARASSMENT = "harassment"
    SPAM = "spam"
    MISINFORMATION = "misinformation"
    OTHER = "other"
