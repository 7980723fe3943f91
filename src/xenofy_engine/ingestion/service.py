"""Ingestion pipeline: pull each Shopify resource and upsert it for a tenant."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from xenofy_engine.common.config import XenofySettings
from xenofy_engine.common.exceptions import (
    IngestionInProgressError,
    NotFoundError,
    UnsupportedResourceError,
    ValidationError,
    XenofyError,
)
from xenofy_engine.common.models import generate_uuid, utcnow
from xenofy_engine.ingestion import upserts
from xenofy_engine.ingestion.lease import acquire_lease, release_lease, renew_lease
from xenofy_engine.ingestion.models import IngestionRunModel, IngestionStepModel
from xenofy_engine.tenants.models import TenantModel

logger = logging.getLogger(__name__)

STEP_ORDER: tuple[str, ...] = (
    "store_info",
    "customers",
    "products",
    "inventory",
    "orders",
    "abandoned_checkouts",
    "events",
    "analytics",
)

VALID_TRIGGERS: frozenset[str] = frozenset({"manual", "scheduled", "registration", "retry"})

ClientFactory = Callable[[str, Optional[str]], Any]
StepHandler = Callable[[AsyncSession, Any, str], Awaitable[int]]


async def _store_info(session: AsyncSession, client, tenant_id: str) -> int:
    return await upserts.upsert_store_info(session, tenant_id, await client.get_shop())


async def _customers(session: AsyncSession, client, tenant_id: str) -> int:
    return await upserts.upsert_customers(session, tenant_id, await client.list_customers())


async def _products(session: AsyncSession, client, tenant_id: str) -> int:
    return await upserts.upsert_products(session, tenant_id, await client.list_products())


async def _inventory(session: AsyncSession, client, tenant_id: str) -> int:
    levels = await client.list_inventory_levels()
    return await upserts.apply_inventory_levels(session, tenant_id, levels)


async def _orders(session: AsyncSession, client, tenant_id: str) -> int:
    return await upserts.upsert_orders(session, tenant_id, await client.list_orders())


async def _abandoned_checkouts(session: AsyncSession, client, tenant_id: str) -> int:
    checkouts = await client.list_abandoned_checkouts()
    return await upserts.upsert_abandoned_checkouts(session, tenant_id, checkouts)


async def _events(session: AsyncSession, client, tenant_id: str) -> int:
    return await upserts.upsert_events(session, tenant_id, await client.list_events())


async def _analytics(session: AsyncSession, client, tenant_id: str) -> int:
    # Reports are not persisted; fetching them only confirms availability.
    reports = await client.list_reports()
    logger.info("Fetched %d analytics reports", len(reports), extra={"tenant_id": tenant_id})
    return len(reports)


STEP_HANDLERS: dict[str, StepHandler] = {
    "store_info": _store_info,
    "customers": _customers,
    "products": _products,
    "inventory": _inventory,
    "orders": _orders,
    "abandoned_checkouts": _abandoned_checkouts,
    "events": _events,
    "analytics": _analytics,
}


@dataclass
class StepOutcome:
    name: str
    status: str
    records: int = 0
    error: Optional[str] = None
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime = field(default_factory=utcnow)


def overall_status(outcomes: list[StepOutcome]) -> str:
    """``succeeded`` unless a step failed; ``failed`` when nothing succeeded."""
    statuses = {o.status for o in outcomes}
    if "failed" not in statuses:
        return "succeeded"
    if "succeeded" not in statuses:
        return "failed"
    return "partial"


def normalize_steps(steps: Optional[list[str]]) -> list[str]:
    if not steps:
        return list(STEP_ORDER)
    unknown = sorted(set(steps) - set(STEP_ORDER))
    if unknown:
        raise ValidationError(f"Unknown ingestion steps: {', '.join(unknown)}")
    return [name for name in STEP_ORDER if name in steps]


class IngestionService:
    """Runs and records ingestion for one tenant at a time."""

    def __init__(self, settings: XenofySettings, client_factory: ClientFactory):
        self.settings = settings
        self.client_factory = client_factory
        self._background: set[asyncio.Task] = set()

    # ── Runs ──

    async def run_for_tenant(
        self,
        db,
        tenant_id: str,
        steps: Optional[list[str]] = None,
        trigger: str = "manual",
    ) -> IngestionRunModel:
        """Run the selected steps in order and return the recorded run.

        Each step commits on its own; a failing step is recorded and the run
        moves on. Raises IngestionInProgressError if another run holds the
        tenant's lease.
        """
        if trigger not in VALID_TRIGGERS:
            raise ValidationError(f"Unknown trigger: {trigger}")
        selected = normalize_steps(steps)

        async with db.get_session() as session:
            tenant = await session.get(TenantModel, tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found")
            domain, credential = tenant.domain, tenant.api_credential
        if not credential:
            raise ValidationError("No API key configured for this tenant")

        holder = generate_uuid()
        async with db.get_session() as session:
            acquired = await acquire_lease(
                session, tenant_id, holder, self.settings.ingestion_lease_seconds
            )
        if not acquired:
            raise IngestionInProgressError()

        try:
            client = self.client_factory(domain, credential)
            try:
                return await self._execute(db, tenant_id, client, selected, trigger, holder)
            finally:
                await client.close()
        finally:
            async with db.get_session() as session:
                await release_lease(session, tenant_id, holder)

    async def _execute(
        self, db, tenant_id: str, client, selected: list[str], trigger: str, holder: str
    ) -> IngestionRunModel:
        async with db.get_session() as session:
            run = IngestionRunModel(tenant_id=tenant_id, trigger=trigger, status="running")
            session.add(run)
            await session.flush()
            run_id = run.id

        log_extra = {"tenant_id": tenant_id, "run_id": run_id}
        logger.info("Ingestion started (%s): %s", trigger, ", ".join(selected), extra=log_extra)

        outcomes: list[StepOutcome] = []
        lost_before: Optional[str] = None
        for name in selected:
            async with db.get_session() as session:
                renewed = await renew_lease(
                    session, tenant_id, holder, self.settings.ingestion_lease_seconds
                )
            if not renewed:
                logger.warning("Ingestion lease lost before step %s", name, extra=log_extra)
                lost_before = name
                break
            outcome = await self._run_step(db, tenant_id, client, name)
            outcomes.append(outcome)
            async with db.get_session() as session:
                session.add(
                    IngestionStepModel(
                        run_id=run_id,
                        name=outcome.name,
                        position=STEP_ORDER.index(outcome.name),
                        status=outcome.status,
                        records=outcome.records,
                        error=outcome.error,
                        started_at=outcome.started_at,
                        finished_at=outcome.finished_at,
                    )
                )

        status = overall_status(outcomes) if lost_before is None else "failed"
        failed = [o.name for o in outcomes if o.status == "failed"]
        async with db.get_session() as session:
            run = await session.get(IngestionRunModel, run_id)
            run.status = status
            run.finished_at = utcnow()
            if lost_before is not None:
                run.error = f"Ingestion lease lost before step {lost_before}"
            else:
                run.error = f"Failed steps: {', '.join(failed)}" if failed else None

        logger.info("Ingestion finished with status %s", status, extra=log_extra)
        return await self.get_run(db, run_id)

    async def _run_step(self, db, tenant_id: str, client, name: str) -> StepOutcome:
        handler = STEP_HANDLERS[name]
        started = utcnow()
        extra = {"tenant_id": tenant_id, "step": name}
        try:
            async with db.get_session() as session:
                records = await handler(session, client, tenant_id)
        except UnsupportedResourceError as e:
            logger.info("Step %s skipped: %s", name, e.message, extra=extra)
            return StepOutcome(name, "skipped", error=e.message, started_at=started)
        except Exception as e:
            logger.exception("Step %s failed", name, extra=extra)
            message = e.message if isinstance(e, XenofyError) else str(e) or type(e).__name__
            return StepOutcome(name, "failed", error=message, started_at=started)
        logger.info("Step %s stored %d records", name, records, extra=extra)
        return StepOutcome(name, "succeeded", records=records, started_at=started)

    async def retry_failed(self, db, tenant_id: str) -> Optional[IngestionRunModel]:
        """Re-run the failed steps of the tenant's latest run, if any."""
        async with db.get_session() as session:
            latest = await self.latest_run(session, tenant_id)
        if latest is None:
            return None
        failed = [step.name for step in latest.steps if step.status == "failed"]
        if not failed:
            return None
        return await self.run_for_tenant(db, tenant_id, steps=failed, trigger="retry")

    def schedule_background(self, db, tenant_id: str, trigger: str = "registration") -> asyncio.Task:
        """Start a run without waiting for it; failures are logged."""

        async def _runner() -> None:
            try:
                run = await self.run_for_tenant(db, tenant_id, trigger=trigger)
                logger.info(
                    "Background ingestion finished with status %s", run.status,
                    extra={"tenant_id": tenant_id, "run_id": run.id},
                )
            except IngestionInProgressError:
                logger.info("Background ingestion skipped, lease held", extra={"tenant_id": tenant_id})
            except Exception:
                logger.exception("Background ingestion failed", extra={"tenant_id": tenant_id})

        task = asyncio.create_task(_runner())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_for_background(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ── History ──

    async def get_run(self, db, run_id: str) -> IngestionRunModel:
        async with db.get_session() as session:
            result = await session.execute(
                select(IngestionRunModel)
                .where(IngestionRunModel.id == run_id)
                .options(selectinload(IngestionRunModel.steps))
            )
            return result.scalar_one()

    async def latest_run(
        self, session: AsyncSession, tenant_id: str
    ) -> Optional[IngestionRunModel]:
        runs = await self.list_runs(session, tenant_id, limit=1)
        return runs[0] if runs else None

    async def list_runs(
        self, session: AsyncSession, tenant_id: str, limit: int = 20
    ) -> list[IngestionRunModel]:
        result = await session.execute(
            select(IngestionRunModel)
            .where(IngestionRunModel.tenant_id == tenant_id)
            .options(selectinload(IngestionRunModel.steps))
            .order_by(IngestionRunModel.started_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
