"""Xenofy-Engine: multi-tenant Shopify ingestion and analytics backend."""

from xenofy_engine.shopify.client import ShopifyClient
from xenofy_engine.ingestion.service import IngestionService, STEP_ORDER
from xenofy_engine.analytics.service import AnalyticsService

__all__ = [
    "ShopifyClient",
    "IngestionService",
    "STEP_ORDER",
    "AnalyticsService",
]
__version__ = "0.1.0"
