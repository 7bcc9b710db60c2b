"""Liveness and readiness endpoints."""
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from slideai.api.deps import get_provider
from slideai.features.entitlements.store import EntitlementStoreError

router = APIRouter(tags=["health"])

READINESS_CHECK_USER = "__readiness_check__"


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request):
    """Readiness: the entitlement store answers a read."""
    try:
        await get_provider(request).store.select_by_user(READINESS_CHECK_USER)
    except EntitlementStoreError as e:
        return JSONResponse(status_code=503, content={"status": "degraded", "store": str(e)})
    return {"status": "ok"}
