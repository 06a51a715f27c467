from fastapi import APIRouter, Depends, Query, Request
from typing import Optional

from murmur.api.deps import get_current_identity, get_engine, get_submitter
from murmur.api.schemas import AckOut, PostOut, ReportIn, ScreenIn, ScreenOut, SubmissionIn, SubmissionOut
from murmur.core.ratelimit import limiter
from murmur.core.settings import settings
from murmur.services.entities import Identity, Published, Submission
from murmur.services.moderation import ModerationEngine

router = APIRouter(tags=["submissions"])


@router.post("/submissions", response_model=SubmissionOut, response_model_exclude_none=True)
@limiter.limit(settings.submission_rate_limit)
async def create_submission(
    request: Request,
    data: SubmissionIn,
    identity: Identity = Depends(get_submitter),
    engine: ModerationEngine = Depends(get_engine),
):
    submission = Submission(
        content=data.content,
        attachment_uri=data.attachment_uri,
        parent_thread_id=data.parent_thread_id,
    )
    outcome = await engine.submit(submission, identity)
    if isinstance(outcome, Published):
        return SubmissionOut(status="published", id=outcome.post_id)
    return SubmissionOut(status="quarantined", reason=outcome.reason)


@router.get("/submissions/{post_id}", response_model=PostOut)
async def get_submission(
    post_id: str,
    parent_thread_id: Optional[str] = Query(default=None, alias="parentThreadId"),
    engine: ModerationEngine = Depends(get_engine),
):
    return await engine.get_post(post_id, parent_thread_id)


@router.delete("/submissions/{post_id}", response_model=AckOut)
async def delete_submission(
    post_id: str,
    parent_thread_id: Optional[str] = Query(default=None, alias="parentThreadId"),
    identity: Identity = Depends(get_current_identity),
    engine: ModerationEngine = Depends(get_engine),
):
    deleted = await engine.delete(post_id, identity, parent_thread_id)
    return AckOut(id=deleted)


@router.post("/submissions/{post_id}/report", response_model=AckOut)
@limiter.limit(settings.submission_rate_limit)
async def report_submission(
    request: Request,
    post_id: str,
    data: ReportIn,
    identity: Identity = Depends(get_submitter),
    engine: ModerationEngine = Depends(get_engine),
):
    report_id = await engine.report(post_id, data.reason, identity, data.details, data.parent_thread_id)
    return AckOut(id=report_id)


@router.post("/screen", response_model=ScreenOut)
@limiter.limit(settings.submission_rate_limit)
async def screen_content(request: Request, data: ScreenIn, engine: ModerationEngine = Depends(get_engine)):
    # Reader-side filter: judges text against the reader's avoid-list, stores nothing.
    verdict = await engine.screen(data.content, data.preferences)
    return ScreenOut(is_safe=not verdict.is_violating, reason=verdict.reason)
