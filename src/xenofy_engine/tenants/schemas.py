"""Pydantic schemas for tenant and user payloads."""

from xenofy_engine.common.schemas import CamelModel


class TenantSummary(CamelModel):
    id: str
    name: str
    domain: str


class UserSummary(CamelModel):
    id: str
    email: str
