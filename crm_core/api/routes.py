from fastapi import APIRouter, Depends
from fastapi.responses import Response

from crm_core.core.auth import get_identity
from crm_core.core.config import get_settings
from crm_core.core.errors import NotFoundError
from crm_core.finance.api import cashflow_router, invoices_router
from crm_core.metrics import generate_metrics_payload, metrics_content_type
from crm_core.platform.security import Action, Identity, ResourceKind, require
from crm_core.reporting.api import exports_router, invoice_documents_router, reports_router
from crm_core.tenancy.api import auth_router, tenants_router, users_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(exports_router)
router.include_router(cashflow_router)
router.include_router(invoice_documents_router)
router.include_router(invoices_router)
router.include_router(reports_router)
router.include_router(tenants_router)
router.include_router(users_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(identity: Identity = Depends(get_identity)) -> dict[str, str | None]:
    return {
        "user_id": identity.user_id,
        "role": str(identity.role),
        "tenant_id": identity.tenant_id,
    }


@router.get("/metrics", tags=["system"])
def metrics(identity: Identity = Depends(get_identity)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise NotFoundError("Metrics endpoint")
    require(identity, Action.READ, ResourceKind.SYSTEM)
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
