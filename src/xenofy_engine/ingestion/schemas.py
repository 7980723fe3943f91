"""Pydantic schemas for ingestion endpoints."""

from datetime import datetime
from typing import Optional

from xenofy_engine.common.models import as_utc
from xenofy_engine.common.schemas import CamelModel
from xenofy_engine.tenants.schemas import TenantSummary


class StepOut(CamelModel):
    name: str
    status: str
    records: int = 0
    error: Optional[str] = None
    started_at: datetime
    finished_at: datetime


class RunOut(CamelModel):
    id: str
    trigger: str
    status: str
    error: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    steps: list[StepOut] = []

    @classmethod
    def from_run(cls, run) -> "RunOut":
        return cls(
            id=run.id,
            trigger=run.trigger,
            status=run.status,
            error=run.error,
            started_at=as_utc(run.started_at),
            finished_at=as_utc(run.finished_at),
            steps=[
                StepOut(
                    name=s.name,
                    status=s.status,
                    records=s.records,
                    error=s.error,
                    started_at=as_utc(s.started_at),
                    finished_at=as_utc(s.finished_at),
                )
                for s in run.steps
            ],
        )


class TriggerResponse(CamelModel):
    message: str
    status: str
    tenant: TenantSummary
    run: RunOut


class RetryResponse(CamelModel):
    message: str
    run: Optional[RunOut] = None


class IngestionStatusResponse(CamelModel):
    message: str
    last_sync: Optional[datetime] = None
    in_progress: bool = False
    last_run: Optional[RunOut] = None


class RunListResponse(CamelModel):
    runs: list[RunOut]
