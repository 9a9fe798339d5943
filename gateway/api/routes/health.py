"""Liveness and health endpoints, served at the root (no API prefix)."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from gateway.api.dependencies import get_container
from gateway.core.container import GatewayContainer

router = APIRouter()


@router.get("/up")
async def up() -> dict[str, str]:
    """Process liveness; touches no dependency."""
    return {"status": "ok"}


@router.get("/health")
async def health(container: GatewayContainer = Depends(get_container)) -> JSONResponse:  # noqa: B008
    payload, status_code = await container.health_service.gateway_health()
    return JSONResponse(status_code=status_code, content=payload)


@router.get("/health/services")
async def services_health(container: GatewayContainer = Depends(get_container)) -> JSONResponse:  # noqa: B008
    """Probe every downstream service; 503 only when none is healthy."""
    payload, status_code = await container.health_service.services_health()
    return JSONResponse(status_code=status_code, content=payload)
