"""Dependency injection singletons for Xenofy-Engine."""

from xenofy_engine.analytics.service import AnalyticsService
from xenofy_engine.auth.service import AuthService
from xenofy_engine.auth.tokens import TokenService
from xenofy_engine.common.config import get_settings
from xenofy_engine.common.database import DatabaseManager
from xenofy_engine.ingestion.scheduler import IngestionScheduler
from xenofy_engine.ingestion.service import IngestionService
from xenofy_engine.shopify.client import make_client_factory
from xenofy_engine.tenants.service import TenantService

_db: DatabaseManager | None = None
_tenants: TenantService | None = None
_tokens: TokenService | None = None
_auth: AuthService | None = None
_ingestion: IngestionService | None = None
_analytics: AnalyticsService | None = None
_scheduler: IngestionScheduler | None = None
_client_factory = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_client_factory():
    """Callable building a Shopify client from ``(domain, credential)``."""
    global _client_factory
    if _client_factory is None:
        _client_factory = make_client_factory(get_settings())
    return _client_factory


def set_client_factory(factory) -> None:
    """Swap the Shopify client factory (tests, offline runs)."""
    global _client_factory, _auth, _ingestion, _scheduler
    _client_factory = factory
    _auth = None
    _ingestion = None
    _scheduler = None


def get_tenant_service() -> TenantService:
    global _tenants
    if _tenants is None:
        _tenants = TenantService()
    return _tenants


def get_token_service() -> TokenService:
    global _tokens
    if _tokens is None:
        settings = get_settings()
        _tokens = TokenService(settings.secret_key, max_age=settings.session_ttl_seconds)
    return _tokens


def get_auth_service() -> AuthService:
    global _auth
    if _auth is None:
        _auth = AuthService(
            get_settings(),
            get_tenant_service(),
            get_token_service(),
            client_factory=get_client_factory(),
        )
    return _auth


def get_ingestion_service() -> IngestionService:
    global _ingestion
    if _ingestion is None:
        _ingestion = IngestionService(get_settings(), client_factory=get_client_factory())
    return _ingestion


def get_analytics_service() -> AnalyticsService:
    global _analytics
    if _analytics is None:
        _analytics = AnalyticsService()
    return _analytics


def get_scheduler() -> IngestionScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = IngestionScheduler(
            get_settings(),
            get_ingestion_service(),
            get_db(),
            tenant_service=get_tenant_service(),
        )
    return _scheduler


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _tenants, _tokens, _auth, _ingestion, _analytics, _scheduler, _client_factory
    if _scheduler is not None:
        _scheduler.shutdown()
    _db = None
    _tenants = None
    _tokens = None
    _auth = None
    _ingestion = None
    _analytics = None
    _scheduler = None
    _client_factory = None
