"""Registration, login and session resolution."""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from xenofy_engine.auth.passwords import hash_password, verify_password
from xenofy_engine.auth.tokens import TokenService
from xenofy_engine.common.config import XenofySettings
from xenofy_engine.common.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from xenofy_engine.common.security import SessionContext
from xenofy_engine.shopify.client import shop_name_from_domain
from xenofy_engine.tenants.models import TenantModel, UserModel
from xenofy_engine.tenants.service import TenantService

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = (
    "Invalid Shopify Admin API access token. Please check your API key and "
    "ensure it has the required permissions."
)
SHOP_NOT_FOUND_MESSAGE = (
    "Shop not found. Please verify your Shopify domain is correct "
    "(e.g., mystore.myshopify.com)."
)


@dataclass
class AuthResult:
    tenant: TenantModel
    user: UserModel
    token: str


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_domain(domain: str) -> str:
    value = domain.strip().lower()
    for prefix in ("https://", "http://"):
        if value.startswith(prefix):
            value = value[len(prefix):]
    return value.rstrip("/")


class AuthService:
    """Credential checks and session issuance for tenant users."""

    def __init__(
        self,
        settings: XenofySettings,
        tenant_service: TenantService,
        tokens: TokenService,
        client_factory,
    ):
        self.settings = settings
        self.tenants = tenant_service
        self.tokens = tokens
        self.client_factory = client_factory

    def is_demo_registration(self, name: str, domain: str, api_key: str) -> bool:
        demo_shop = shop_name_from_domain(self.settings.demo_domain)
        return (
            "demo" in name.lower()
            or demo_shop in domain.lower()
            or self.settings.demo_key_marker in api_key
        )

    async def validate_credential(self, domain: str, api_key: str) -> dict:
        """Confirm the credential can read the shop profile.

        Raises ValidationError with an actionable message when it cannot.
        """
        client = self.client_factory(domain, api_key)
        try:
            return await client.get_shop()
        except UpstreamError as e:
            logger.info("Shopify credential check failed for %s: %s", domain, e.message)
            if e.http_status == 401:
                raise ValidationError(INVALID_TOKEN_MESSAGE) from e
            if e.http_status == 404:
                raise ValidationError(SHOP_NOT_FOUND_MESSAGE) from e
            raise ValidationError(
                f"Failed to connect to Shopify: {e.message}. "
                "Please ensure your API key has read access to your store."
            ) from e
        finally:
            await client.close()

    async def register(
        self,
        session: AsyncSession,
        email: str,
        password: str,
        name: str,
        domain: str,
        api_key: str,
    ) -> AuthResult:
        email = normalize_email(email)
        domain = normalize_domain(domain)
        name = name.strip()
        api_key = api_key.strip()
        if not (email and password and name and domain and api_key):
            raise ValidationError("Email, password, name, domain, and API key are required")

        if await self.tenants.get_user_by_email(session, email) is not None:
            raise ConflictError("Email already registered")
        if await self.tenants.get_by_domain(session, domain) is not None:
            raise ConflictError("Domain already registered")
        if await self.tenants.get_by_credential(session, api_key) is not None:
            raise ConflictError("API key already in use")

        if self.is_demo_registration(name, domain, api_key):
            logger.info("Skipping Shopify credential check for demo registration %s", domain)
        else:
            await self.validate_credential(domain, api_key)

        password_hash = hash_password(password, rounds=self.settings.bcrypt_rounds)
        try:
            tenant = await self.tenants.create_tenant(
                session, name=name, domain=domain, api_credential=api_key
            )
            user = await self.tenants.create_user(
                session, tenant_id=tenant.id, email=email, password_hash=password_hash
            )
        except IntegrityError as e:
            # Lost a race with a concurrent registration.
            raise ConflictError("Account already registered") from e
        logger.info("Registered tenant %s", tenant.id, extra={"tenant_id": tenant.id})
        return AuthResult(tenant, user, self.tokens.issue(tenant.id, user.id, user.email))

    async def login(self, session: AsyncSession, email: str, password: str) -> AuthResult:
        user = await self.tenants.get_user_by_email(session, normalize_email(email))
        if user is None or not verify_password(password, user.password_hash):
            raise AuthenticationError("Invalid email or password")
        tenant = await self.tenants.get_by_id(session, user.tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        return AuthResult(tenant, user, self.tokens.issue(tenant.id, user.id, user.email))

    async def resolve_session(self, session: AsyncSession, token: str) -> SessionContext:
        claims = self.tokens.verify(token)
        tenant = await self.tenants.get_by_id(session, claims.tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        return SessionContext(
            tenant_id=tenant.id,
            user_id=claims.user_id,
            email=claims.email,
            tenant_name=tenant.name,
            tenant_domain=tenant.domain,
        )

    async def me(
        self, session: AsyncSession, ctx: SessionContext
    ) -> tuple[UserModel, TenantModel]:
        user = await self.tenants.get_user(session, ctx.user_id)
        if user is None or user.tenant_id != ctx.tenant_id:
            raise NotFoundError("User not found")
        tenant = await self.tenants.get_by_id(session, ctx.tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        return user, tenant
