"""Per-tenant ingestion lease.

A run may proceed only while it holds the tenant's lease row. Acquisition is
a conditional write: take over an expired row, or insert a fresh one and let
the primary key reject a concurrent insert.
"""

from datetime import datetime, timedelta

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from xenofy_engine.common.models import as_utc, utcnow
from xenofy_engine.ingestion.models import IngestionLeaseModel


async def acquire_lease(
    session: AsyncSession,
    tenant_id: str,
    holder: str,
    ttl_seconds: int,
    now: datetime | None = None,
) -> bool:
    """Try to take the tenant's lease. Returns False if another holder has it."""
    now = now or utcnow()
    expires_at = now + timedelta(seconds=ttl_seconds)

    result = await session.execute(
        update(IngestionLeaseModel)
        .where(
            IngestionLeaseModel.tenant_id == tenant_id,
            IngestionLeaseModel.expires_at <= now,
        )
        .values(holder=holder, acquired_at=now, expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return True

    if await session.get(IngestionLeaseModel, tenant_id) is not None:
        return False

    session.add(
        IngestionLeaseModel(
            tenant_id=tenant_id, holder=holder, acquired_at=now, expires_at=expires_at
        )
    )
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        return False
    return True


async def renew_lease(
    session: AsyncSession,
    tenant_id: str,
    holder: str,
    ttl_seconds: int,
    now: datetime | None = None,
) -> bool:
    """Push the lease expiry forward. Returns False if ``holder`` no longer owns it."""
    now = now or utcnow()
    result = await session.execute(
        update(IngestionLeaseModel)
        .where(
            IngestionLeaseModel.tenant_id == tenant_id,
            IngestionLeaseModel.holder == holder,
        )
        .values(expires_at=now + timedelta(seconds=ttl_seconds))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_lease(session: AsyncSession, tenant_id: str, holder: str) -> bool:
    """Drop the lease if ``holder`` still owns it."""
    result = await session.execute(
        delete(IngestionLeaseModel)
        .where(
            IngestionLeaseModel.tenant_id == tenant_id,
            IngestionLeaseModel.holder == holder,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def lease_is_held(
    session: AsyncSession, tenant_id: str, now: datetime | None = None
) -> bool:
    lease = await session.get(IngestionLeaseModel, tenant_id)
    if lease is None:
        return False
    return as_utc(lease.expires_at) > (now or utcnow())
