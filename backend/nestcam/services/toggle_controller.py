"""
User-initiated streaming on/off requests.

A request comes from the Home app (the Streaming switch) or from the HTTP
API. The Nest API is called first; local state and the switch only change
once it has confirmed the new value. A failed request leaves both at the
last confirmed value and is reported through logging only.

Concurrent requests for one camera are not ordered: the last remote call
to complete wins.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Set, Tuple

from nestcam.core.errors import AuthError, NetworkError
from nestcam.core.metrics import record_toggle_request
from nestcam.services.accessory_record import AccessoryRecord

logger = logging.getLogger(__name__)


@dataclass
class ToggleRequest:
    """
    One enable/disable request with a one-shot acknowledgment.

    Attributes:
        camera_uuid: Target camera
        desired: Requested streaming state
        on_acknowledge: Called with the confirmed value (None when unknown)
    """
    camera_uuid: str
    desired: bool
    on_acknowledge: Callable[[Optional[bool]], None] = field(repr=False)
    acknowledged: bool = False
    succeeded: bool = False

    def acknowledge(self, confirmed: Optional[bool]) -> None:
        if self.acknowledged:
            raise RuntimeError(f"Toggle request for {self.camera_uuid} already acknowledged")
        self.acknowledged = True
        self.on_acknowledge(confirmed)


class ToggleController:
    """
    Handles toggle requests against the Nest API.

    Args:
        session: NestSession providing the current token
        source: NestCameraSource issuing set_streaming_enabled
    """

    def __init__(self, session, source):
        self._session = session
        self._source = source
        self._records: Dict[str, AccessoryRecord] = {}
        self._tasks: Set[asyncio.Task] = set()

    def register(self, record: AccessoryRecord) -> None:
        """Route writes on the record's Streaming switch to this controller."""
        self._records[record.camera_uuid] = record
        camera_uuid = record.camera_uuid
        record.accessory.on_streaming_set(lambda value: self.submit(camera_uuid, value))

    def unregister(self, record: AccessoryRecord) -> None:
        if self._records.pop(record.camera_uuid, None) is not None:
            record.accessory.on_streaming_set(None)

    def is_registered(self, camera_uuid: str) -> bool:
        return camera_uuid in self._records

    def create_request(self, camera_uuid: str, desired: bool) -> ToggleRequest:
        """
        Request whose acknowledgment re-publishes the confirmed value.

        HAP-python shows the written value before the setter runs, so the
        switch must be put back when the remote call fails.
        """
        def acknowledge(confirmed: Optional[bool]) -> None:
            record = self._records.get(camera_uuid)
            if record is not None and confirmed is not None:
                record.accessory.sync_streaming(confirmed)

        return ToggleRequest(camera_uuid=camera_uuid, desired=desired, on_acknowledge=acknowledge)

    def submit(self, camera_uuid: str, desired: bool) -> ToggleRequest:
        """Schedule handling of a switch write on the running loop."""
        request = self.create_request(camera_uuid, desired)
        task = asyncio.ensure_future(self.handle(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return request

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for submitted switch writes to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def handle(self, request: ToggleRequest) -> Optional[bool]:
        """
        Process one request and acknowledge it exactly once.

        Returns:
            The confirmed streaming state, None for an unknown camera
        """
        confirmed: Optional[bool] = None
        record = self._records.get(request.camera_uuid)
        try:
            if record is None:
                logger.warning(
                    f"Toggle request for unknown camera {request.camera_uuid}",
                    extra={"camera_uuid": request.camera_uuid}
                )
                return None
            confirmed, request.succeeded = await self._apply(record, request.desired)
            return confirmed
        except Exception as e:
            logger.error(
                f"Unexpected error toggling {record.display_name}: {e}",
                exc_info=True,
                extra={"camera_uuid": request.camera_uuid}
            )
            if record.state is not None:
                confirmed = record.state.enabled
            return confirmed
        finally:
            request.acknowledge(confirmed)

    async def set_enabled(self, record: AccessoryRecord, desired: bool) -> bool:
        """
        Switch a camera on or off.

        Returns:
            The confirmed value: desired on success, the previous value on failure
        """
        confirmed, _ = await self._apply(record, desired)
        return confirmed

    async def _apply(self, record: AccessoryRecord, desired: bool) -> Tuple[bool, bool]:
        state = record.state
        if state is None:
            raise RuntimeError(f"No camera state for {record.display_name}")

        previous = state.enabled
        if record.removed:
            logger.info(
                f"Ignoring toggle for removed camera {record.display_name}",
                extra={"camera_uuid": record.camera_uuid}
            )
            return previous, False

        extra = {
            "event_type": "toggle_request",
            "camera_uuid": record.camera_uuid,
            "desired": desired,
        }
        try:
            token = self._session.token
            if token is None:
                raise AuthError("No access token yet")
            await self._source.set_streaming_enabled(token, record.camera_uuid, desired)
        except AuthError as e:
            record_toggle_request("failed")
            logger.error(f"Toggling {record.display_name} not authorized: {e}", extra=extra)
            return previous, False
        except NetworkError as e:
            record_toggle_request("failed")
            logger.error(
                f"Error toggling {record.display_name}: {e}",
                extra={**extra, "status_code": e.status_code}
            )
            return previous, False

        state.confirm_enabled(desired)
        record.context.snapshot = state.snapshot
        record.accessory.set_streaming(desired)
        record_toggle_request("confirmed")

        logger.info(
            f"{record.display_name} streaming {'enabled' if desired else 'disabled'}",
            extra=extra
        )
        return desired, True
