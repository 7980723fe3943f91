"""Ingestion API router: manual trigger, retry, status and history."""

from fastapi import APIRouter, Depends, HTTPException, Query

from xenofy_engine.common.exceptions import XenofyError
from xenofy_engine.common.security import SessionContext, require_session
from xenofy_engine.ingestion.lease import lease_is_held
from xenofy_engine.ingestion.schemas import (
    IngestionStatusResponse,
    RetryResponse,
    RunListResponse,
    RunOut,
    TriggerResponse,
)
from xenofy_engine.tenants.schemas import TenantSummary

router = APIRouter(prefix="/api/ingestion", tags=["ingestion"])

_COMPLETION_MESSAGES = {
    "succeeded": "Data ingestion completed successfully",
    "partial": "Data ingestion completed with errors",
    "failed": "Data ingestion failed",
}


def _get_service():
    from xenofy_engine.deps import get_ingestion_service
    return get_ingestion_service()


def _get_db():
    from xenofy_engine.deps import get_db
    return get_db()


@router.post("/trigger", response_model=TriggerResponse)
async def trigger_ingestion(ctx: SessionContext = Depends(require_session)):
    svc = _get_service()
    db = _get_db()
    try:
        run = await svc.run_for_tenant(db, ctx.tenant_id, trigger="manual")
    except XenofyError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return TriggerResponse(
        message=_COMPLETION_MESSAGES[run.status],
        status=run.status,
        tenant=TenantSummary(id=ctx.tenant_id, name=ctx.tenant_name, domain=ctx.tenant_domain),
        run=RunOut.from_run(run),
    )


@router.post("/retry", response_model=RetryResponse)
async def retry_failed(ctx: SessionContext = Depends(require_session)):
    svc = _get_service()
    db = _get_db()
    try:
        run = await svc.retry_failed(db, ctx.tenant_id)
    except XenofyError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if run is None:
        return RetryResponse(message="No failed steps to retry")
    return RetryResponse(message=_COMPLETION_MESSAGES[run.status], run=RunOut.from_run(run))


@router.get("/status", response_model=IngestionStatusResponse)
async def ingestion_status(ctx: SessionContext = Depends(require_session)):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        latest = await svc.latest_run(session, ctx.tenant_id)
        in_progress = await lease_is_held(session, ctx.tenant_id)
    last_run = RunOut.from_run(latest) if latest else None
    return IngestionStatusResponse(
        message="Ingestion service is ready",
        last_sync=last_run.finished_at if last_run else None,
        in_progress=in_progress,
        last_run=last_run,
    )


@router.get("/runs", response_model=RunListResponse)
async def list_runs(
    limit: int = Query(20, ge=1, le=100),
    ctx: SessionContext = Depends(require_session),
):
    svc = _get_service()
    db = _get_db()
    async with db.get_session() as session:
        runs = await svc.list_runs(session, ctx.tenant_id, limit=limit)
    return RunListResponse(runs=[RunOut.from_run(r) for r in runs])
