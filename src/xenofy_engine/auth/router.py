"""Auth API router: register, login, me, logout."""

from fastapi import APIRouter, Depends, HTTPException

from xenofy_engine.auth.schemas import (
    AuthResponse,
    LoginRequest,
    MeResponse,
    RegisterRequest,
)
from xenofy_engine.common.config import get_settings
from xenofy_engine.common.exceptions import XenofyError
from xenofy_engine.common.schemas import MessageResponse
from xenofy_engine.common.security import SessionContext, require_session
from xenofy_engine.tenants.schemas import TenantSummary, UserSummary

router = APIRouter(prefix="/auth", tags=["auth"])


def _get_service():
    from xenofy_engine.deps import get_auth_service
    return get_auth_service()


def _get_db():
    from xenofy_engine.deps import get_db
    return get_db()


def _auth_response(message: str, result) -> AuthResponse:
    return AuthResponse(
        message=message,
        token=result.token,
        tenant=TenantSummary.model_validate(result.tenant),
        user=UserSummary.model_validate(result.user),
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(body: RegisterRequest):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            result = await svc.register(
                session,
                email=body.email,
                password=body.password,
                name=body.name,
                domain=body.domain,
                api_key=body.api_key,
            )
    except XenofyError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    from xenofy_engine.deps import get_ingestion_service
    if get_settings().auto_ingest_on_register:
        get_ingestion_service().schedule_background(db, result.tenant.id, trigger="registration")

    return _auth_response("User registered successfully", result)


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            result = await svc.login(session, email=body.email, password=body.password)
    except XenofyError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _auth_response("Login successful", result)


@router.get("/me", response_model=MeResponse)
async def me(ctx: SessionContext = Depends(require_session)):
    svc = _get_service()
    db = _get_db()
    try:
        async with db.get_session() as session:
            user, tenant = await svc.me(session, ctx)
    except XenofyError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MeResponse(
        user=UserSummary.model_validate(user),
        tenant=TenantSummary.model_validate(tenant),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout():
    # Tokens are stateless; the client discards its copy.
    return MessageResponse(message="Logged out successfully")
