"""ESI queue, status and health endpoints."""

from typing import Any

from fastapi import APIRouter

from fineauth import __version__
from fineauth.api.dependencies import ServiceDep
from fineauth.esi.models import EsiStatus


router = APIRouter(tags=["esi"])


@router.get("/esi/status", response_model=EsiStatus)
async def esi_status(service: ServiceDep) -> EsiStatus:
    return service.status


@router.get("/esi/queue")
async def esi_queue(service: ServiceDep) -> dict[str, Any]:
    return service.queue.payload()


@router.get("/health")
async def health(service: ServiceDep) -> dict[str, Any]:
    return {
        "status": "ok",
        "version": __version__,
        "esi_configured": service.settings.esi.is_configured,
        "esi_status": service.status.status,
        "queue_length": len(service.queue),
    }
