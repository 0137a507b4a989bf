"""Per-camera projection of the latest remote snapshot plus the motion latch"""
import logging
from typing import Optional

from nestcam.schemas.camera import CameraSnapshot

logger = logging.getLogger(__name__)


class CameraState:
    """
    Mutable state for one active accessory.

    The snapshot is replaced wholesale on refresh. motion_detected is a
    one-bit latch that only changes through observe_trigger, so a repeated
    observation of the same window never fires twice.
    """

    def __init__(self, snapshot: CameraSnapshot):
        self._snapshot = snapshot
        self.motion_detected = False

    @property
    def snapshot(self) -> CameraSnapshot:
        return self._snapshot

    @property
    def uuid(self) -> str:
        return self._snapshot.uuid

    @property
    def name(self) -> str:
        return self._snapshot.name

    @property
    def enabled(self) -> bool:
        return self._snapshot.is_streaming_enabled

    @property
    def api_host(self) -> Optional[str]:
        return self._snapshot.api_host

    def replace_snapshot(self, snapshot: CameraSnapshot) -> None:
        if snapshot.uuid != self._snapshot.uuid:
            raise ValueError(
                f"Snapshot for {snapshot.uuid} cannot replace state of {self._snapshot.uuid}"
            )
        self._snapshot = snapshot

    def confirm_enabled(self, enabled: bool) -> None:
        """Record a streaming flag the Nest API has confirmed."""
        self._snapshot = self._snapshot.with_enabled(enabled)

    def observe_trigger(self, important: bool) -> Optional[bool]:
        """
        Feed one trigger window into the latch.

        Args:
            important: True to set the latch, False to clear it

        Returns:
            The new latch value on a transition, None when nothing changed
        """
        if important and not self.motion_detected:
            self.motion_detected = True
            return True
        if not important and self.motion_detected:
            self.motion_detected = False
            return False
        return None

    def __repr__(self) -> str:
        return (
            f"<CameraState(uuid='{self.uuid}', enabled={self.enabled}, "
            f"motion_detected={self.motion_detected})>"
        )
