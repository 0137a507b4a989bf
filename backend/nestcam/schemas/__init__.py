"""Pydantic schemas for wire payloads and API responses"""
from nestcam.schemas.camera import CameraSnapshot, CuepointEvent
from nestcam.schemas.bridge import (
    FeatureSetResponse,
    CameraAccessoryResponse,
    CameraListResponse,
    StreamingToggleRequest,
    StreamingToggleResponse,
    PollerJobResponse,
    BridgeStatusResponse,
)

__all__ = [
    "CameraSnapshot",
    "CuepointEvent",
    "FeatureSetResponse",
    "CameraAccessoryResponse",
    "CameraListResponse",
    "StreamingToggleRequest",
    "StreamingToggleResponse",
    "PollerJobResponse",
    "BridgeStatusResponse",
]
