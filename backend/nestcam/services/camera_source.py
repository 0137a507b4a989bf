"""
Nest camera API client.

Every call takes the token explicitly so a poll tick uses exactly the token
reference it read at the start of the tick. An expired token is rejected
locally with AuthError before anything goes on the wire.
"""
import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from nestcam.config.nest import USER_AGENT, NestEndpoints
from nestcam.core.errors import AuthError, NetworkError
from nestcam.schemas.camera import CameraSnapshot, CuepointEvent
from nestcam.services.nest_http import request_json
from nestcam.services.nest_session import AccessToken

logger = logging.getLogger(__name__)

# Status recorded on NetworkError when a 2xx body fails validation
INVALID_PAYLOAD_STATUS = 200


class NestCameraSource:
    """
    Fetches camera snapshots and events, and switches cameras on or off.

    Args:
        endpoints: Host set for the environment the session was issued for
        http_client: Shared httpx client (created lazily if not provided)
        timeout: Request timeout in seconds when creating the client
    """

    def __init__(
        self,
        endpoints: NestEndpoints,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self._endpoints = endpoints
        self._client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout

    @property
    def endpoints(self) -> NestEndpoints:
        return self._endpoints

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def _headers(self, token: AccessToken) -> dict:
        if token.expired:
            raise AuthError("Access token expired; waiting for session renewal")
        return {
            "Authorization": f"Basic {token.value}",
            "Referer": self._endpoints.nest_api_host,
            "User-Agent": USER_AGENT,
        }

    async def list_owned_cameras(self, token: AccessToken) -> List[CameraSnapshot]:
        """All cameras the account owns or is a member of."""
        headers = self._headers(token)
        data = await request_json(
            self.client,
            "GET",
            f"{self._endpoints.camera_api_host}/api/cameras.get_owned_and_member_of_with_properties",
            headers=headers,
        )
        return self._parse_items(data)

    async def fetch_camera(self, token: AccessToken, uuid: str) -> CameraSnapshot:
        """
        Fresh snapshot for one camera.

        Raises:
            NetworkError: The response held no item for this uuid
        """
        headers = self._headers(token)
        data = await request_json(
            self.client,
            "GET",
            f"{self._endpoints.camera_api_host}/api/cameras.get_with_properties",
            headers=headers,
            params={"uuid": uuid},
        )
        items = self._parse_items(data)
        if not items:
            raise NetworkError(
                f"No camera returned for uuid {uuid}",
                status_code=INVALID_PAYLOAD_STATUS,
            )
        return items[0]

    async def fetch_recent_events(
        self,
        token: AccessToken,
        api_host: str,
        uuid: str,
        since_epoch: int,
    ) -> List[CuepointEvent]:
        """
        Cuepoint events since the given epoch, most recent first.

        Args:
            api_host: The camera's nexus_api_http_server host
            since_epoch: Lower bound in epoch seconds
        """
        headers = self._headers(token)
        base = api_host if api_host.startswith("http") else f"https://{api_host}"
        data = await request_json(
            self.client,
            "GET",
            f"{base}/cuepoint/{uuid}/2",
            headers=headers,
            params={"start_time": since_epoch},
        )
        if not isinstance(data, list):
            raise NetworkError(
                f"Unexpected cuepoint payload for {uuid}",
                status_code=INVALID_PAYLOAD_STATUS,
            )
        try:
            return [CuepointEvent.model_validate(item) for item in data]
        except ValidationError as e:
            raise NetworkError(
                f"Invalid cuepoint payload for {uuid}: {e.error_count()} errors",
                status_code=INVALID_PAYLOAD_STATUS,
            ) from e

    async def set_streaming_enabled(self, token: AccessToken, uuid: str, enabled: bool) -> None:
        """Switch the camera on or off. Raises on any failure."""
        headers = self._headers(token)
        await request_json(
            self.client,
            "POST",
            f"{self._endpoints.camera_api_host}/api/dropcams.set_properties",
            headers=headers,
            data={
                "streaming.enabled": "true" if enabled else "false",
                "uuid": uuid,
            },
        )
        logger.debug(
            f"Set streaming.enabled={enabled} on camera {uuid}",
            extra={"camera_uuid": uuid, "enabled": enabled}
        )

    @staticmethod
    def _parse_items(data) -> List[CameraSnapshot]:
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise NetworkError(
                "Camera response did not contain an items list",
                status_code=INVALID_PAYLOAD_STATUS,
            )
        try:
            return [CameraSnapshot.model_validate(item) for item in data["items"]]
        except ValidationError as e:
            raise NetworkError(
                f"Invalid camera payload: {e.error_count()} errors",
                status_code=INVALID_PAYLOAD_STATUS,
            ) from e

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
