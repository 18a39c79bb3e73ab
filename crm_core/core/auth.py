from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError
from starlette.requests import Request

from crm_core.context import set_tenant_id
from crm_core.core.config import get_settings
from crm_core.core.errors import CoreError, ForbiddenError, UnauthenticatedError
from crm_core.otel import bind_span_identity
from crm_core.platform.security.identity import Identity, IdentityClaims, Role, parse_capabilities


def create_access_token(
    user_id: str,
    role: Role | str,
    tenant_id: str | None,
    permissions: dict[str, Any] | None = None,
    *,
    expires_minutes: int | None = None,
) -> str:
    settings = get_settings()
    lifetime = expires_minutes if expires_minutes is not None else settings.jwt_expires_minutes
    claims: dict[str, Any] = {
        "sub": user_id,
        "role": str(role),
        "tenant_id": tenant_id,
        "permissions": permissions,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=lifetime),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def resolve_identity(token: str) -> Identity:
    """Validate a bearer token and turn its claims into an Identity.

    A non super admin token that carries no tenant is refused here, before any
    route code runs.
    """

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise UnauthenticatedError("Invalid or expired token") from exc

    try:
        claims = IdentityClaims.model_validate(payload)
    except PydanticValidationError as exc:
        raise UnauthenticatedError("Token claims are malformed") from exc

    if claims.role != Role.SUPER_ADMIN and not claims.tenant_id:
        raise ForbiddenError("No tenant associated with this identity")

    try:
        capabilities = parse_capabilities(claims.permissions)
    except CoreError as exc:
        raise UnauthenticatedError("Token permissions are malformed") from exc

    return Identity(
        user_id=claims.sub,
        role=claims.role,
        tenant_id=claims.tenant_id or None,
        capabilities=None if claims.role != Role.USER else capabilities,
    )


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    return auth_header[len("Bearer ") :].strip() if auth_header.startswith("Bearer ") else ""


async def get_identity(request: Request) -> Identity:
    token = _bearer_token(request)
    if not token:
        raise UnauthenticatedError("Missing bearer token")

    identity = resolve_identity(token)
    context = getattr(request.state, "context", None)
    if context is not None:
        context.bind_identity(identity)
    set_tenant_id(identity.tenant_id)
    bind_span_identity(identity)
    return identity
