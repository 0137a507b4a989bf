"""Accessory identity and the in-memory record the bridge keeps per camera"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from nestcam.schemas.camera import CameraSnapshot
from nestcam.services.camera_state import CameraState
from nestcam.services.feature_set import FeatureSet

# Fixed namespace so a camera maps to the same accessory on every run
ACCESSORY_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "https://home.nest.com/camera")

# HAP aids are positive; 1 belongs to the bridge
MIN_AID = 2
AID_RANGE = 2 ** 31 - MIN_AID


def accessory_uuid_for(camera_uuid: str) -> str:
    """Deterministic accessory identity for a Nest camera uuid."""
    return str(uuid.uuid5(ACCESSORY_NAMESPACE, camera_uuid))


def aid_for(accessory_uuid: str) -> int:
    """HAP accessory id derived from the accessory identity."""
    return MIN_AID + uuid.UUID(accessory_uuid).int % AID_RANGE


@dataclass
class AccessoryContext:
    """Data stashed with the accessory across restarts."""
    snapshot: Optional[CameraSnapshot] = None
    removed: bool = False


@dataclass
class AccessoryRecord:
    """
    One camera accessory known to the bridge.

    Attributes:
        camera_uuid: Nest camera uuid, the join key with the live list
        accessory_uuid: Deterministic hash of camera_uuid
        aid: HAP accessory id
        display_name: Name the accessory was created with
        accessory: CameraAccessory collaborator
        context: Persisted snapshot and removal flag
        features: FeatureSet from the last reconciliation pass
        state: CameraState, None until a valid snapshot is known
    """
    camera_uuid: str
    accessory_uuid: str
    aid: int
    display_name: str
    accessory: Any
    context: AccessoryContext = field(default_factory=AccessoryContext)
    features: FeatureSet = field(default_factory=FeatureSet)
    state: Optional[CameraState] = None

    @property
    def removed(self) -> bool:
        return self.context.removed

    @property
    def snapshot(self) -> Optional[CameraSnapshot]:
        return self.context.snapshot
