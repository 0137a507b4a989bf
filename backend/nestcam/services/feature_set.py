"""
Optional accessory feature derivation.

A feature exists only when both the configuration flag and the camera's
capability or detector allow it:

    motion           MOTION_DETECTION and "motion" detector
    doorbell         DOORBELL_ALERTS  and "indoor_chime" capability
    doorbell_switch  DOORBELL_ALERTS  and "indoor_chime" capability
    streaming        STREAMING_SWITCH

Recomputed from the current snapshot on every reconciliation pass.
"""
from dataclasses import dataclass
from typing import Iterable, List

from nestcam.config.nest import CAPABILITY_INDOOR_CHIME, DETECTOR_MOTION
from nestcam.core.config import FeatureOptions

# Service names on the accessory, one per optional feature
SERVICE_MOTION = "Motion"
SERVICE_DOORBELL = "Doorbell"
SERVICE_DOORBELL_SWITCH = "DoorbellSwitch"
SERVICE_STREAMING = "Streaming"


@dataclass(frozen=True)
class FeatureSet:
    motion: bool = False
    doorbell: bool = False
    doorbell_switch: bool = False
    streaming: bool = False

    @property
    def needs_alert_check(self) -> bool:
        return self.motion or self.doorbell

    @property
    def needs_refresh(self) -> bool:
        return self.streaming

    def service_names(self) -> List[str]:
        """Names of the services this feature set implies, in a stable order."""
        names = []
        if self.motion:
            names.append(SERVICE_MOTION)
        if self.doorbell:
            names.append(SERVICE_DOORBELL)
        if self.doorbell_switch:
            names.append(SERVICE_DOORBELL_SWITCH)
        if self.streaming:
            names.append(SERVICE_STREAMING)
        return names

    def to_dict(self) -> dict:
        return {
            "motion": self.motion,
            "doorbell": self.doorbell,
            "doorbell_switch": self.doorbell_switch,
            "streaming": self.streaming,
        }


def derive_features(
    capabilities: Iterable[str],
    detectors: Iterable[str],
    options: FeatureOptions,
) -> FeatureSet:
    capabilities = set(capabilities)
    detectors = set(detectors)
    has_chime = CAPABILITY_INDOOR_CHIME in capabilities

    return FeatureSet(
        motion=options.motion_detection and DETECTOR_MOTION in detectors,
        doorbell=options.doorbell_alerts and has_chime,
        doorbell_switch=options.doorbell_alerts and has_chime,
        streaming=options.streaming_switch,
    )
