"""Pydantic schemas for the bridge status and camera control API"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FeatureSetResponse(BaseModel):
    """Optional services present on a camera accessory"""

    motion: bool = Field(default=False, description="Motion sensor service present")
    doorbell: bool = Field(default=False, description="Doorbell service present")
    doorbell_switch: bool = Field(default=False, description="Doorbell programmable switch present")
    streaming: bool = Field(default=False, description="Streaming on/off switch present")


class CameraAccessoryResponse(BaseModel):
    """One camera accessory registered on the bridge"""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "accessory_uuid": "0f4d5c1e-6a2b-5f0e-9a3c-7b1d2e4f6a8b",
                "camera_uuid": "a1b2c3d4e5f6",
                "name": "Front Door",
                "model": "Nest Hello",
                "serial_number": "18B43000AABBCCDD",
                "software_version": "4.0-17",
                "enabled": True,
                "motion_detected": False,
                "features": {
                    "motion": True,
                    "doorbell": True,
                    "doorbell_switch": True,
                    "streaming": False,
                },
                "services": ["Motion", "Doorbell", "DoorbellSwitch"],
            }
        }
    )

    accessory_uuid: str
    camera_uuid: str
    name: str
    model: str
    serial_number: str
    software_version: str
    enabled: bool = Field(..., description="Last confirmed streaming state")
    motion_detected: bool = Field(..., description="Current motion latch value")
    features: FeatureSetResponse
    services: List[str] = Field(default_factory=list, description="Service names present on the accessory")


class CameraListResponse(BaseModel):
    cameras: List[CameraAccessoryResponse]
    total: int


class StreamingToggleRequest(BaseModel):
    """Request body for switching a camera on or off"""

    enabled: bool = Field(..., description="Desired streaming state")


class StreamingToggleResponse(BaseModel):
    camera_uuid: str
    requested: bool
    enabled: bool = Field(..., description="Value confirmed by the Nest API (unchanged on failure)")
    confirmed: bool = Field(..., description="Whether the remote call succeeded")


class PollerJobResponse(BaseModel):
    id: str
    next_run_time: Optional[datetime] = None


class BridgeStatusResponse(BaseModel):
    """Overall bridge status"""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "running": True,
                "authenticated": True,
                "field_test": False,
                "token_expires_at": "2026-10-19T11:30:00Z",
                "accessory_count": 2,
                "removed_count": 0,
                "bridge_name": "Nest Cam Bridge",
                "port": 51826,
                "setup_code": "031-45-154",
                "setup_uri": "X-HM://0023B6WQLAB1C",
                "scheduler_running": True,
                "jobs": [{"id": "session_renewal", "next_run_time": "2026-10-19T11:30:00Z"}],
                "error": None,
            }
        }
    )

    running: bool
    authenticated: bool
    field_test: bool
    token_expires_at: Optional[datetime] = None
    accessory_count: int
    removed_count: int
    bridge_name: str
    port: int
    setup_code: Optional[str] = None
    setup_uri: Optional[str] = None
    scheduler_running: bool
    jobs: List[PollerJobResponse] = Field(default_factory=list)
    error: Optional[str] = None
