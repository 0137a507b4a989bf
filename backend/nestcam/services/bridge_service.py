"""
Bridge orchestration.

Startup flow:
    validate credentials  (ConfigurationError -> logged once, core not started)
    host.setup()          HAP driver + bridge on the running loop
    restore cold cache    persisted accessories handed to the reconciler
    authenticate          Google -> Nest token
    reconcile             live camera list vs known accessories (once per run)
    start poller          refresh/alert jobs + session renewal
    host.start()          serve the bridge

If authentication or the camera list fails at startup, the cached
accessories are still served and the renewal job keeps retrying the token.
"""
import logging
from typing import List, Optional, Tuple

import httpx

from nestcam.config.homekit import HomekitConfig
from nestcam.core.config import Settings, settings as default_settings
from nestcam.core.errors import AuthError, ConfigurationError, NetworkError
from nestcam.core.metrics import init_metrics
from nestcam.services.accessory_reconciler import AccessoryReconciler, ReconcileResult
from nestcam.services.accessory_record import AccessoryRecord
from nestcam.services.camera_source import NestCameraSource
from nestcam.services.event_poller import EventPoller
from nestcam.services.homekit_service import AccessoryHost
from nestcam.services.nest_session import NestSession, validate_credentials
from nestcam.services.toggle_controller import ToggleController

logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"


class BridgeService:
    """
    Wires the session, camera source, reconciler, poller, toggle controller
    and HomeKit host together.

    Args:
        settings: Application settings
        homekit_config: HomeKit server settings (from env when None)
        host: AccessoryHost to use (built from homekit_config when None)
        http_client: Shared httpx client (created when None)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        homekit_config: Optional[HomekitConfig] = None,
        host: Optional[AccessoryHost] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or default_settings
        options = self.settings.feature_options
        self.host = host or AccessoryHost(config=homekit_config, disable_audio=options.disable_audio)
        self._http_client = http_client
        self._owns_client = http_client is None
        self.session: Optional[NestSession] = None
        self.source: Optional[NestCameraSource] = None
        self.poller: Optional[EventPoller] = None
        self.toggles: Optional[ToggleController] = None
        self.reconciler: Optional[AccessoryReconciler] = None
        self.last_reconcile: Optional[ReconcileResult] = None
        self._running = False
        self._error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def error(self) -> Optional[str]:
        return self._error

    async def start(self) -> bool:
        """
        Run the startup flow.

        Returns:
            False when credentials are missing or malformed, True otherwise
        """
        if self._running:
            return True

        try:
            auth = validate_credentials(self.settings)
        except ConfigurationError as e:
            self._error = str(e)
            logger.error(
                f"Bridge not started: {e}",
                extra={"event_type": "configuration_error"}
            )
            return False

        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.settings.HTTP_TIMEOUT_SECONDS)

        options = self.settings.feature_options
        self.session = NestSession(auth, http_client=self._http_client)
        self.source = NestCameraSource(self.session.endpoints, http_client=self._http_client)
        self.poller = EventPoller(
            self.session,
            self.source,
            alert_types=options.alert_types,
            interval_seconds=self.settings.POLL_INTERVAL_SECONDS,
        )
        self.toggles = ToggleController(self.session, self.source)
        self.reconciler = AccessoryReconciler(self.host, self.poller, self.toggles, options)

        init_metrics(APP_VERSION, field_test=self.session.field_test)

        self.host.setup()
        self.reconciler.restore(self.host.load_cached())

        await self._initial_sync()

        self.session.schedule_renewal(self.poller.scheduler, self.settings.SESSION_RENEWAL_SECONDS)
        self.poller.start()
        await self.host.start()

        self._running = True
        logger.info(
            "Nest camera bridge started",
            extra={
                "event_type": "bridge_started",
                "field_test": self.session.field_test,
                "accessory_count": len(self.reconciler.records),
            }
        )
        return True

    async def _initial_sync(self) -> None:
        try:
            token = await self.session.authenticate()
            live = await self.source.list_owned_cameras(token)
            self.last_reconcile = self.reconciler.reconcile(live)
            self._error = None
        except AuthError as e:
            self._error = str(e)
            logger.error(
                f"Initial Nest authentication failed: {e}",
                extra={"event_type": "initial_sync_failed", "status_code": e.status_code}
            )
        except NetworkError as e:
            self._error = str(e)
            logger.error(
                f"Could not fetch cameras from Nest: {e}",
                extra={"event_type": "initial_sync_failed", "status_code": e.status_code}
            )

    async def stop(self) -> None:
        if self.poller is not None:
            self.poller.stop()
        if self.toggles is not None:
            await self.toggles.drain()
        await self.host.stop()
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
        self._running = False
        logger.info("Nest camera bridge stopped", extra={"event_type": "bridge_stopped"})

    def list_cameras(self) -> List[AccessoryRecord]:
        if self.reconciler is None:
            return []
        return self.reconciler.records

    def get_camera(self, camera_uuid: str) -> Optional[AccessoryRecord]:
        if self.reconciler is None:
            return None
        return self.reconciler.get_record(camera_uuid)

    async def toggle_streaming(self, camera_uuid: str, desired: bool) -> Tuple[Optional[bool], bool]:
        """
        Toggle request from the HTTP API.

        Returns:
            (confirmed value, whether the remote call succeeded)
        """
        if self.toggles is None or not self.toggles.is_registered(camera_uuid):
            return None, False
        request = self.toggles.create_request(camera_uuid, desired)
        confirmed = await self.toggles.handle(request)
        return confirmed, request.succeeded


# Global service instance
_bridge_service: Optional[BridgeService] = None


def get_bridge_service() -> BridgeService:
    """
    Get the global bridge service instance.

    Creates the instance on first call.
    """
    global _bridge_service
    if _bridge_service is None:
        _bridge_service = BridgeService()
    return _bridge_service


async def initialize_bridge_service() -> bool:
    service = get_bridge_service()
    return await service.start()


async def shutdown_bridge_service() -> None:
    global _bridge_service
    if _bridge_service:
        await _bridge_service.stop()
        _bridge_service = None
