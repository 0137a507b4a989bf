"""
Camera accessory endpoints

- GET /api/v1/cameras - List camera accessories on the bridge
- GET /api/v1/cameras/{camera_uuid} - One camera accessory
- PUT /api/v1/cameras/{camera_uuid}/streaming - Switch a camera on or off
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from nestcam.config.nest import model_name
from nestcam.schemas.bridge import (
    CameraAccessoryResponse,
    CameraListResponse,
    FeatureSetResponse,
    StreamingToggleRequest,
    StreamingToggleResponse,
)
from nestcam.services.accessory_record import AccessoryRecord
from nestcam.services.bridge_service import BridgeService, get_bridge_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/cameras",
    tags=["cameras"]
)


def _to_response(record: AccessoryRecord) -> CameraAccessoryResponse:
    snapshot = record.snapshot
    state = record.state
    return CameraAccessoryResponse(
        accessory_uuid=record.accessory_uuid,
        camera_uuid=record.camera_uuid,
        name=snapshot.name if snapshot else record.display_name,
        model=model_name(snapshot.type) if snapshot else "",
        serial_number=snapshot.serial_number if snapshot else "",
        software_version=snapshot.software_version if snapshot else "",
        enabled=state.enabled if state else False,
        motion_detected=state.motion_detected if state else False,
        features=FeatureSetResponse(**record.features.to_dict()),
        services=record.accessory.service_names,
    )


def _get_record_or_404(service: BridgeService, camera_uuid: str) -> AccessoryRecord:
    record = service.get_camera(camera_uuid)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Camera {camera_uuid} not found"
        )
    return record


@router.get("", response_model=CameraListResponse)
async def list_cameras(service: BridgeService = Depends(get_bridge_service)):
    cameras = [_to_response(record) for record in service.list_cameras()]
    return CameraListResponse(cameras=cameras, total=len(cameras))


@router.get("/{camera_uuid}", response_model=CameraAccessoryResponse)
async def get_camera(camera_uuid: str, service: BridgeService = Depends(get_bridge_service)):
    return _to_response(_get_record_or_404(service, camera_uuid))


@router.put("/{camera_uuid}/streaming", response_model=StreamingToggleResponse)
async def set_streaming(
    camera_uuid: str,
    body: StreamingToggleRequest,
    service: BridgeService = Depends(get_bridge_service),
):
    """
    Switch a camera on or off.

    Only cameras exposing a Streaming switch accept the request. A failed
    remote call is not an HTTP error: the response carries the unchanged
    confirmed value and confirmed=false.
    """
    record = _get_record_or_404(service, camera_uuid)
    if not record.features.streaming:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Streaming switch is disabled for this camera (set STREAMING_SWITCH=true)"
        )

    confirmed, succeeded = await service.toggle_streaming(camera_uuid, body.enabled)
    enabled = confirmed if confirmed is not None else (record.state.enabled if record.state else False)
    return StreamingToggleResponse(
        camera_uuid=camera_uuid,
        requested=body.enabled,
        enabled=enabled,
        confirmed=succeeded,
    )
