"""Demo account provisioning."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from xenofy_engine.auth.passwords import hash_password
from xenofy_engine.common.config import XenofySettings
from xenofy_engine.tenants.models import TenantModel, UserModel
from xenofy_engine.tenants.service import TenantService

logger = logging.getLogger(__name__)


async def provision_demo_account(
    session: AsyncSession,
    settings: XenofySettings,
    tenant_service: TenantService | None = None,
) -> tuple[TenantModel, UserModel, bool]:
    """Ensure the configured demo tenant and user exist.

    Safe to call repeatedly. Returns ``(tenant, user, created)``.
    """
    tenants = tenant_service or TenantService()

    user = await tenants.get_user_by_email(session, settings.demo_email)
    if user is not None:
        tenant = await tenants.get_by_id(session, user.tenant_id)
        return tenant, user, False

    tenant = await tenants.get_by_domain(session, settings.demo_domain)
    if tenant is None:
        tenant = await tenants.create_tenant(
            session,
            name=settings.demo_tenant_name,
            domain=settings.demo_domain,
            api_credential=settings.demo_api_key,
        )
    user = await tenants.create_user(
        session,
        tenant_id=tenant.id,
        email=settings.demo_email,
        password_hash=hash_password(settings.demo_password, rounds=settings.bcrypt_rounds),
    )
    logger.info("Provisioned demo account %s", settings.demo_email, extra={"tenant_id": tenant.id})
    return tenant, user, True
