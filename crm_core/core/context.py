import uuid
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from crm_core.platform.security.identity import Identity


@dataclass
class RequestContext:
    request_id: str
    correlation_id: str
    user_id: str | None = None
    tenant_id: str | None = None
    role: str | None = None

    def bind_identity(self, identity: Identity) -> None:
        self.user_id = identity.user_id
        self.tenant_id = identity.tenant_id
        self.role = str(identity.role)

    def log_fields(self) -> dict[str, str | None]:
        return {"user_id": self.user_id, "tenant_id": self.tenant_id}


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = getattr(request.state, "correlation_id", None) or ""
        request.state.context = RequestContext(request_id=uuid.uuid4().hex, correlation_id=correlation_id)
        response = await call_next(request)
        response.headers["x-request-id"] = request.state.context.request_id
        return response
