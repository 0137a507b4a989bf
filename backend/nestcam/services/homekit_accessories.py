"""
HomeKit camera accessory for one Nest camera.

Wraps a HAP-python Camera and exposes the optional services by name:

    "Motion"          MotionSensor
    "Doorbell"        Doorbell
    "DoorbellSwitch"  StatelessProgrammableSwitch (single press only)
    "Streaming"       Switch turning the camera on or off

Live video is handed to a StreamingDelegate. The default delegate declines
every stream; the bridge core only manages accessories and their state.
"""
import logging
from typing import Callable, Dict, List, Optional

from pyhap.camera import Camera
from pyhap.const import CATEGORY_CAMERA

from nestcam.services.feature_set import (
    SERVICE_DOORBELL,
    SERVICE_DOORBELL_SWITCH,
    SERVICE_MOTION,
    SERVICE_STREAMING,
)

logger = logging.getLogger(__name__)

MAX_CONCURRENT_STREAMS = 2

# ProgrammableSwitchEvent value for a single press
SINGLE_PRESS = 0

# HAP service type for each optional service name
SERVICE_TYPES: Dict[str, str] = {
    SERVICE_MOTION: "MotionSensor",
    SERVICE_DOORBELL: "Doorbell",
    SERVICE_DOORBELL_SWITCH: "StatelessProgrammableSwitch",
    SERVICE_STREAMING: "Switch",
}


class StreamingDelegate:
    """
    Receives live stream requests for a camera accessory.

    This base implementation declines streams and has no snapshot; a media
    backend subclasses it.
    """

    async def start_stream(self, session_info: dict, stream_config: dict) -> bool:
        logger.debug(
            "Declining stream request",
            extra={"session_id": session_info.get("session_id")}
        )
        return False

    async def stop_stream(self, session_info: dict) -> None:
        return None

    async def get_snapshot(self, image_size: dict) -> Optional[bytes]:
        return None


def get_camera_options(disable_audio: bool = False) -> dict:
    """
    HAP-python camera options.

    Advertises H.264 baseline/main/high up to 1080p30, and AAC-ELD 16 kHz
    audio unless audio is disabled.
    """
    audio_codecs: List[dict] = []
    if not disable_audio:
        audio_codecs.append({"type": "AAC-eld", "samplerate": 16})

    return {
        "video": {
            "codec": {
                "profiles": [0, 1, 2],  # baseline, main, high
                "levels": [0, 1, 2],    # 3.1, 3.2, 4.0
            },
            "resolutions": [
                [1920, 1080, 30],
                [1280, 720, 30],
                [640, 480, 30],
                [640, 360, 30],
                [480, 270, 30],
                [320, 240, 15],
                [320, 180, 15],
            ],
        },
        "audio": {
            "codecs": audio_codecs,
        },
        "srtp": True,
        "address": "0.0.0.0",
        "stream_count": MAX_CONCURRENT_STREAMS,
    }


class CameraAccessory:
    """
    HomeKit accessory for one Nest camera.

    Attributes:
        accessory_uuid: Deterministic accessory identity
        name: Display name in the Home app
    """

    def __init__(
        self,
        driver,
        accessory_uuid: str,
        name: str,
        aid: int,
        delegate: Optional[StreamingDelegate] = None,
        disable_audio: bool = False,
    ):
        self.accessory_uuid = accessory_uuid
        self.name = name
        self._delegate = delegate or StreamingDelegate()
        self._services: Dict[str, object] = {}
        self._streaming_callback: Optional[Callable[[bool], None]] = None

        self._camera = Camera(get_camera_options(disable_audio), driver, name, aid=aid)
        self._camera.category = CATEGORY_CAMERA

        # Route stream handling to the delegate
        self._camera.start_stream = self._delegate.start_stream
        self._camera.stop_stream = self._delegate.stop_stream
        self._camera.async_get_snapshot = self._delegate.get_snapshot

        info = self._camera.get_service("AccessoryInformation")
        info.configure_char("Identify", setter_callback=self._on_identify)

    @property
    def accessory(self) -> Camera:
        """The underlying HAP-python Camera accessory."""
        return self._camera

    @property
    def aid(self) -> int:
        return self._camera.aid

    @property
    def service_names(self) -> List[str]:
        return list(self._services)

    def has_service(self, name: str) -> bool:
        return name in self._services

    def set_information(self, manufacturer: str, model: str, serial_number: str, firmware: str) -> None:
        info = self._camera.get_service("AccessoryInformation")
        info.configure_char("Manufacturer", value=manufacturer)
        info.configure_char("Model", value=model or "Camera")
        info.configure_char("SerialNumber", value=serial_number or self.accessory_uuid[:20])
        info.configure_char("FirmwareRevision", value=firmware or "0.0.0")

    def add_service(self, name: str) -> None:
        """Add an optional service; a service already present is left untouched."""
        if name in self._services:
            return

        service = self._camera.add_preload_service(SERVICE_TYPES[name], unique_id=name)
        service.display_name = name

        if name in (SERVICE_DOORBELL, SERVICE_DOORBELL_SWITCH):
            service.configure_char(
                "ProgrammableSwitchEvent", valid_values={"SinglePress": SINGLE_PRESS}
            )
        elif name == SERVICE_STREAMING:
            service.configure_char("On", setter_callback=self._on_streaming_set)

        self._services[name] = service
        logger.debug(f"Added {name} service to {self.name}", extra={"accessory_uuid": self.accessory_uuid})

    def remove_service(self, name: str) -> None:
        service = self._services.pop(name, None)
        if service is None:
            return

        self._camera.services.remove(service)
        for char in service.characteristics:
            self._camera.iid_manager.remove_obj(char)
        self._camera.iid_manager.remove_obj(service)
        logger.debug(f"Removed {name} service from {self.name}", extra={"accessory_uuid": self.accessory_uuid})

    def _char(self, service_name: str, char_name: str):
        service = self._services.get(service_name)
        if service is None:
            return None
        return service.get_characteristic(char_name)

    def set_motion(self, detected: bool) -> bool:
        char = self._char(SERVICE_MOTION, "MotionDetected")
        if char is None:
            return False
        char.set_value(detected)
        return True

    def ring_doorbell(self) -> bool:
        """Fire one single-press event on the doorbell and its switch."""
        rang = False
        for service_name in (SERVICE_DOORBELL, SERVICE_DOORBELL_SWITCH):
            char = self._char(service_name, "ProgrammableSwitchEvent")
            if char is not None:
                char.set_value(SINGLE_PRESS)
                rang = True
        return rang

    def get_streaming(self) -> Optional[bool]:
        char = self._char(SERVICE_STREAMING, "On")
        if char is None:
            return None
        return bool(char.value)

    def set_streaming(self, enabled: bool) -> bool:
        char = self._char(SERVICE_STREAMING, "On")
        if char is None:
            return False
        char.set_value(enabled)
        return True

    def sync_streaming(self, enabled: bool) -> None:
        """Re-publish a confirmed value only when the switch shows something else."""
        if self.get_streaming() not in (None, enabled):
            self.set_streaming(enabled)

    def on_streaming_set(self, callback: Optional[Callable[[bool], None]]) -> None:
        """Subscribe to user-initiated writes on the Streaming switch."""
        self._streaming_callback = callback

    def _on_streaming_set(self, value) -> None:
        if self._streaming_callback is None:
            logger.warning(
                f"Streaming switch on {self.name} written with no handler",
                extra={"accessory_uuid": self.accessory_uuid}
            )
            return
        self._streaming_callback(bool(value))

    def _on_identify(self, value) -> None:
        logger.info(
            f"Identify requested for {self.name}",
            extra={"event_type": "accessory_identify", "accessory_uuid": self.accessory_uuid}
        )

    def __repr__(self) -> str:
        return f"<CameraAccessory(name='{self.name}', aid={self.aid}, services={self.service_names})>"
