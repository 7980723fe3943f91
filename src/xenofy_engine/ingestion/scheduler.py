"""Periodic ingestion for every tenant with a Shopify credential."""

import logging
from dataclasses import dataclass, field

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from xenofy_engine.common.exceptions import IngestionInProgressError
from xenofy_engine.tenants.service import TenantService

logger = logging.getLogger(__name__)

JOB_ID = "ingest_all_tenants"


@dataclass
class TickSummary:
    succeeded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class IngestionScheduler:
    """Wraps an AsyncIOScheduler with one cron job over all tenants."""

    def __init__(self, settings, ingestion_service, db, tenant_service: TenantService | None = None):
        self.settings = settings
        self.ingestion = ingestion_service
        self.db = db
        self.tenants = tenant_service or TenantService()
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.add_job(
            self.run_once,
            trigger=CronTrigger.from_crontab(self.settings.ingestion_cron, timezone="UTC"),
            id=JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info("Ingestion scheduler started (%s)", self.settings.ingestion_cron)

    def shutdown(self) -> None:
        if self._scheduler is not None:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Ingestion scheduler stopped")

    async def run_once(self) -> TickSummary:
        """Ingest each eligible tenant in turn; one failure does not stop the rest."""
        async with self.db.get_session() as session:
            tenants = await self.tenants.list_with_credentials(session)
            tenant_ids = [t.id for t in tenants]

        logger.info("Scheduled ingestion for %d tenants", len(tenant_ids))
        summary = TickSummary()
        for tenant_id in tenant_ids:
            try:
                run = await self.ingestion.run_for_tenant(self.db, tenant_id, trigger="scheduled")
            except IngestionInProgressError:
                logger.info("Skipping tenant, ingestion in progress", extra={"tenant_id": tenant_id})
                summary.skipped.append(tenant_id)
                continue
            except Exception:
                logger.exception("Scheduled ingestion failed", extra={"tenant_id": tenant_id})
                summary.failed.append(tenant_id)
                continue
            if run.status == "failed":
                summary.failed.append(tenant_id)
            else:
                summary.succeeded.append(tenant_id)
        return summary
