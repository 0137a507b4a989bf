"""
Bridge status endpoint

- GET /api/v1/bridge/status - Session, HomeKit and poller status
"""
import logging

from fastapi import APIRouter, Depends

from nestcam.schemas.bridge import BridgeStatusResponse, PollerJobResponse
from nestcam.services.bridge_service import BridgeService, get_bridge_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/bridge",
    tags=["bridge"]
)


@router.get("/status", response_model=BridgeStatusResponse)
async def get_bridge_status(service: BridgeService = Depends(get_bridge_service)):
    """
    Current bridge status.

    The setup code is hidden once a Home app is paired.
    """
    host_status = service.host.get_status()
    session = service.session
    token = session.token if session is not None else None
    poller_status = service.poller.get_status() if service.poller is not None else None
    removed = service.reconciler.removed_uuids if service.reconciler is not None else set()

    return BridgeStatusResponse(
        running=service.is_running,
        authenticated=session.authenticated if session is not None else False,
        field_test=session.field_test if session is not None else False,
        token_expires_at=token.expires_at if token is not None else None,
        accessory_count=len(service.list_cameras()),
        removed_count=len(removed),
        bridge_name=host_status.bridge_name,
        port=host_status.port,
        setup_code=None if host_status.paired else host_status.setup_code,
        setup_uri=None if host_status.paired else host_status.setup_uri,
        scheduler_running=poller_status.running if poller_status is not None else False,
        jobs=[PollerJobResponse(**job) for job in poller_status.jobs] if poller_status else [],
        error=service.error or host_status.error,
    )
