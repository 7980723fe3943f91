"""Tests for the per-tenant ingestion lease."""

from datetime import datetime, timedelta, timezone

from xenofy_engine.common.models import as_utc
from xenofy_engine.ingestion.lease import (
    acquire_lease,
    lease_is_held,
    release_lease,
    renew_lease,
)
from xenofy_engine.ingestion.models import IngestionLeaseModel


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestAcquire:
    async def test_first_acquire_succeeds(self, db, tenant_id):
        async with db.get_session() as session:
            assert await acquire_lease(session, tenant_id, "run-a", 600, now=NOW)
        async with db.get_session() as session:
            lease = await session.get(IngestionLeaseModel, tenant_id)
            assert lease.holder == "run-a"

    async def test_second_holder_refused_while_live(self, db, tenant_id):
        async with db.get_session() as session:
            assert await acquire_lease(session, tenant_id, "run-a", 600, now=NOW)
        async with db.get_session() as session:
            assert not await acquire_lease(
                session, tenant_id, "run-b", 600, now=NOW + timedelta(seconds=30)
            )

    async def test_expired_lease_taken_over(self, db, tenant_id):
        async with db.get_session() as session:
            assert await acquire_lease(session, tenant_id, "run-a", 600, now=NOW)
        later = NOW + timedelta(seconds=601)
        async with db.get_session() as session:
            assert await acquire_lease(session, tenant_id, "run-b", 600, now=later)
        async with db.get_session() as session:
            lease = await session.get(IngestionLeaseModel, tenant_id)
            assert lease.holder == "run-b"


class TestRelease:
    async def test_release_by_holder(self, db, tenant_id):
        async with db.get_session() as session:
            await acquire_lease(session, tenant_id, "run-a", 600, now=NOW)
        async with db.get_session() as session:
            assert await release_lease(session, tenant_id, "run-a")
        async with db.get_session() as session:
            assert await session.get(IngestionLeaseModel, tenant_id) is None

    async def test_release_by_other_holder_is_noop(self, db, tenant_id):
        async with db.get_session() as session:
            await acquire_lease(session, tenant_id, "run-a", 600, now=NOW)
        async with db.get_session() as session:
            assert not await release_lease(session, tenant_id, "run-b")
        async with db.get_session() as session:
            assert await session.get(IngestionLeaseModel, tenant_id) is not None

    async def test_reacquire_after_release(self, db, tenant_id):
        async with db.get_session() as session:
            await acquire_lease(session, tenant_id, "run-a", 600, now=NOW)
        async with db.get_session() as session:
            await release_lease(session, tenant_id, "run-a")
        async with db.get_session() as session:
            assert await acquire_lease(session, tenant_id, "run-b", 600, now=NOW)


class TestHeld:
    async def test_no_lease(self, db, tenant_id):
        async with db.get_session() as session:
            assert not await lease_is_held(session, tenant_id, now=NOW)

    async def test_live_and_expired(self, db, tenant_id):
        async with db.get_session() as session:
            await acquire_lease(session, tenant_id, "run-a", 600, now=NOW)
        async with db.get_session() as session:
            assert await lease_is_held(session, tenant_id, now=NOW + timedelta(seconds=10))
            assert not await lease_is_held(session, tenant_id, now=NOW + timedelta(seconds=700))


class TestRenew:
    async def test_holder_pushes_expiry_forward(self, db, tenant_id):
        async with db.get_session() as session:
            await acquire_lease(session, tenant_id, "run-a", 600, now=NOW)
        later = NOW + timedelta(seconds=300)
        async with db.get_session() as session:
            assert await renew_lease(session, tenant_id, "run-a", 600, now=later)
        async with db.get_session() as session:
            lease = await session.get(IngestionLeaseModel, tenant_id)
            assert as_utc(lease.expires_at) == later + timedelta(seconds=600)
            assert await lease_is_held(session, tenant_id, now=NOW + timedelta(seconds=700))

    async def test_other_holder_cannot_renew(self, db, tenant_id):
        async with db.get_session() as session:
            await acquire_lease(session, tenant_id, "run-a", 600, now=NOW)
        async with db.get_session() as session:
            assert not await renew_lease(session, tenant_id, "run-b", 600, now=NOW)
        async with db.get_session() as session:
            lease = await session.get(IngestionLeaseModel, tenant_id)
            assert as_utc(lease.expires_at) == NOW + timedelta(seconds=600)

    async def test_released_lease_not_renewed(self, db, tenant_id):
        async with db.get_session() as session:
            assert not await renew_lease(session, tenant_id, "run-a", 600, now=NOW)
