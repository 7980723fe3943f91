"""Tenant and user lookups."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from xenofy_engine.tenants.models import TenantModel, UserModel


class TenantService:
    """Tenant and user persistence operations."""

    async def create_tenant(
        self,
        session: AsyncSession,
        name: str,
        domain: str,
        api_credential: str | None,
    ) -> TenantModel:
        tenant = TenantModel(name=name, domain=domain, api_credential=api_credential)
        session.add(tenant)
        await session.flush()
        return tenant

    async def create_user(
        self,
        session: AsyncSession,
        tenant_id: str,
        email: str,
        password_hash: str,
    ) -> UserModel:
        user = UserModel(tenant_id=tenant_id, email=email, password_hash=password_hash)
        session.add(user)
        await session.flush()
        return user

    async def get_by_id(
        self, session: AsyncSession, tenant_id: str
    ) -> TenantModel | None:
        return await session.get(TenantModel, tenant_id)

    async def get_by_domain(
        self, session: AsyncSession, domain: str
    ) -> TenantModel | None:
        result = await session.execute(
            select(TenantModel).where(TenantModel.domain == domain)
        )
        return result.scalar_one_or_none()

    async def get_by_credential(
        self, session: AsyncSession, api_credential: str
    ) -> TenantModel | None:
        result = await session.execute(
            select(TenantModel).where(TenantModel.api_credential == api_credential)
        )
        return result.scalar_one_or_none()

    async def get_user(self, session: AsyncSession, user_id: str) -> UserModel | None:
        return await session.get(UserModel, user_id)

    async def get_user_by_email(
        self, session: AsyncSession, email: str
    ) -> UserModel | None:
        result = await session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        return result.scalar_one_or_none()

    async def list_with_credentials(self, session: AsyncSession) -> list[TenantModel]:
        """Tenants eligible for scheduled ingestion."""
        result = await session.execute(
            select(TenantModel)
            .where(TenantModel.api_credential.is_not(None))
            .where(TenantModel.api_credential != "")
            .order_by(TenantModel.created_at)
        )
        return list(result.scalars().all())
