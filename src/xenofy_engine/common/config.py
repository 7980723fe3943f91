"""Xenofy-Engine configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "secret_key": "insecure-dev-key-change-me",
}


class XenofySettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="XENOFY_")

    environment: str = "development"
    secret_key: str = "insecure-dev-key-change-me"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/xenofy.db"

    # API
    api_title: str = "Xenofy-Engine"
    api_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    log_level: str = "INFO"

    # Sessions
    session_ttl_seconds: int = 86400  # 24 hours
    bcrypt_rounds: int = 12

    # Shopify Admin API
    shopify_api_version: str = "2023-10"
    shopify_timeout: float = 30.0
    shopify_page_size: int = 250
    min_credential_length: int = 20

    # Ingestion
    ingestion_lease_seconds: int = 3600
    scheduler_enabled: bool = True
    ingestion_cron: str = "0 * * * *"
    auto_ingest_on_register: bool = True

    # Demo account
    seed_demo: bool = False
    demo_email: str = "demo@xenofy.com"
    demo_password: str = "demo123"
    demo_tenant_name: str = "Xenofy Demo Store"
    demo_domain: str = "xenofy-store-1.myshopify.com"
    demo_api_key: str = (
        "shpat_example_demo_key_format_not_real_api_1234567890abcdefghijklmnopqrstuvwx"
    )
    demo_key_marker: str = "shpat_example_demo_key"

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"XENOFY_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if self.environment != "development" and self.seed_demo:
            raise RuntimeError(
                f"XENOFY_SEED_DEMO must be disabled in '{self.environment}' environment"
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default secret key, set XENOFY_SECRET_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> XenofySettings:
    settings = XenofySettings()
    settings.validate_for_production()
    return settings
