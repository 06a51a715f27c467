from __future__ import annotations
import json
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from typing import Optional

from murmur.api.deps import get_engine
from murmur.api.schemas import PostOut
from murmur.core.settings import settings
from murmur.services.moderation import ModerationEngine

router = APIRouter(tags=["feed"])


@router.get("/feed", response_model=list[PostOut])
async def get_feed(
    limit: int = Query(default=settings.feed_limit, ge=1, le=500),
    engine: ModerationEngine = Depends(get_engine),
):
    # Newest first; append/delete-only, so creation time is the whole ordering.
    return await engine.feed(limit)


@router.get("/threads/{thread_id}/comments", response_model=list[PostOut])
async def get_comments(
    thread_id: str,
    limit: int = Query(default=200, ge=1, le=500),
    engine: ModerationEngine = Depends(get_engine),
):
    return await engine.comments(thread_id, limit)


@router.get("/feed/stream")
async def stream_feed(
    request: Request,
    thread_id: Optional[str] = Query(default=None, alias="threadId"),
    engine: ModerationEngine = Depends(get_engine),
):
    """Server-sent events: the current listing as `added` events, then live changes."""
    sub = await engine.watch(thread_id)

    async def events():
        try:
            async for event in sub:
                if await request.is_disconnected():
                    break
                payload = PostOut.model_validate(event.document).model_dump(by_alias=True)
                yield f"event: {event.kind}\ndata: {json.dumps(payload)}\n\n"
        finally:
            await sub.close()

    return StreamingResponse(events(), media_type="text/event-stream", headers={"Cache-Control": "no-cache"})
