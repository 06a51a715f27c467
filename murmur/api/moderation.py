from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from murmur.api.deps import get_engine, require_admin
from murmur.api.schemas import QuarantinedOut, ReportOut
from murmur.services.moderation import ModerationEngine

# Read-only operator views. Review decisions happen outside this service.
router = APIRouter(prefix="/moderation", tags=["moderation"], dependencies=[Depends(require_admin)])


@router.get("/quarantine", response_model=list[QuarantinedOut])
async def quarantine(limit: int = Query(default=200, ge=1, le=500), engine: ModerationEngine = Depends(get_engine)):
    return await engine.quarantine(limit)


@router.get("/reports", response_model=list[ReportOut])
async def reports(limit: int = Query(default=200, ge=1, le=500), engine: ModerationEngine = Depends(get_engine)):
    return await engine.reports(limit)
