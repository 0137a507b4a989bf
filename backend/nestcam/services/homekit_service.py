"""
HomeKit accessory host.

Owns the HAP-python AccessoryDriver and the Bridge that carries one camera
accessory per Nest camera, and persists each registered accessory through
the AccessoryStore so it can be restored before the Nest API answers on the
next start.

The driver runs on the application's event loop (async_start), alongside
the scheduler and the HTTP API.

Lifecycle:
    1. setup()        create driver and bridge
    2. load_cached()  cold cache rows for the reconciler
    3. register/unregister/update while reconciling
    4. start()        serve the bridge
    5. stop()
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from pyhap.accessory import Bridge
from pyhap.accessory_driver import AccessoryDriver

from nestcam.config.homekit import (
    HomekitConfig,
    get_homekit_config,
    generate_pincode,
    generate_setup_id,
    generate_setup_uri,
)
from nestcam.config.nest import MANUFACTURER
from nestcam.core.metrics import update_accessory_count
from nestcam.models.accessory import CachedAccessory
from nestcam.services.accessory_record import AccessoryRecord
from nestcam.services.accessory_store import AccessoryStore
from nestcam.services.homekit_accessories import CameraAccessory, StreamingDelegate

logger = logging.getLogger(__name__)


@dataclass
class HomekitStatus:
    """Status information for the HomeKit bridge."""
    running: bool = False
    paired: bool = False
    accessory_count: int = 0
    bridge_name: str = "Nest Cam Bridge"
    port: int = 51826
    setup_code: Optional[str] = None
    setup_uri: Optional[str] = None
    error: Optional[str] = None


class AccessoryHost:
    """
    HAP-python bridge hosting the camera accessories.

    Example:
        >>> host = AccessoryHost()
        >>> host.setup()
        >>> rows = host.load_cached()
        >>> await host.start()
    """

    def __init__(
        self,
        config: Optional[HomekitConfig] = None,
        store: Optional[AccessoryStore] = None,
        disable_audio: bool = False,
        delegate: Optional[StreamingDelegate] = None,
    ):
        self.config = config or get_homekit_config()
        self._store = store or AccessoryStore()
        self._disable_audio = disable_audio
        self._delegate = delegate
        self._driver: Optional[AccessoryDriver] = None
        self._bridge: Optional[Bridge] = None
        self._accessories: Dict[str, CameraAccessory] = {}
        self._running = False
        self._pincode: Optional[str] = None
        self._setup_id: Optional[str] = None
        self._error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._running and self._driver is not None

    @property
    def is_paired(self) -> bool:
        if not self._driver:
            return False
        return bool(self._driver.state.paired)

    @property
    def accessory_count(self) -> int:
        return len(self._accessories)

    @property
    def pincode(self) -> str:
        """Configured pairing code, or one generated for this process."""
        if self._pincode is None:
            self._pincode = self.config.pincode or generate_pincode()
        return self._pincode

    @property
    def setup_id(self) -> str:
        if self._setup_id is None:
            self._setup_id = self.config.setup_id or generate_setup_id()
        return self._setup_id

    @property
    def setup_uri(self) -> Optional[str]:
        try:
            return generate_setup_uri(self.pincode, self.setup_id)
        except ValueError as e:
            logger.warning(f"Cannot build setup URI: {e}")
            return None

    @property
    def bridge(self) -> Optional[Bridge]:
        return self._bridge

    def setup(self) -> None:
        """Create the driver and bridge on the running event loop."""
        if self._driver is not None:
            return

        self.config.ensure_persist_dir()

        driver_kwargs = {
            "port": self.config.port,
            "persist_file": self.config.persist_file,
            "pincode": self.pincode.encode('utf-8'),
            "loop": asyncio.get_running_loop(),
        }
        if self.config.bind_address and self.config.bind_address != "0.0.0.0":
            driver_kwargs["address"] = self.config.bind_address

        self._driver = AccessoryDriver(**driver_kwargs)
        self._bridge = Bridge(self._driver, self.config.bridge_name)
        self._bridge.set_info_service(manufacturer=MANUFACTURER, model="Bridge")
        self._driver.add_accessory(self._bridge)

        logger.info(
            f"HomeKit bridge '{self.config.bridge_name}' created on port {self.config.port}",
            extra={"event_type": "homekit_setup", "port": self.config.port}
        )

    def load_cached(self) -> List[CachedAccessory]:
        """Accessory rows persisted by a prior run."""
        rows = self._store.load_all()
        logger.info(
            f"Loaded {len(rows)} cached accessories",
            extra={"event_type": "cache_loaded", "count": len(rows)}
        )
        return rows

    def create_accessory(self, accessory_uuid: str, name: str, aid: int) -> CameraAccessory:
        """New camera accessory bound to this host's driver (not yet registered)."""
        if self._driver is None:
            raise RuntimeError("AccessoryHost.setup() must run before accessories are created")
        return CameraAccessory(
            self._driver,
            accessory_uuid=accessory_uuid,
            name=name,
            aid=aid,
            delegate=self._delegate,
            disable_audio=self._disable_audio,
        )

    def register(self, record: AccessoryRecord, persist: bool = True) -> None:
        """
        Add a record's accessory to the bridge.

        Args:
            record: Record whose accessory to expose
            persist: False when adopting an accessory restored from the cache
        """
        self._bridge.add_accessory(record.accessory.accessory)
        self._accessories[record.accessory_uuid] = record.accessory
        if persist:
            self._store.save(record)
        self._config_changed()
        update_accessory_count(len(self._accessories))

        logger.info(
            f"Registered accessory {record.display_name}",
            extra={
                "event_type": "accessory_registered",
                "accessory_uuid": record.accessory_uuid,
                "aid": record.aid,
                "services": record.accessory.service_names,
            }
        )

    def unregister(self, record: AccessoryRecord) -> None:
        """Remove a record's accessory from the bridge and delete its cache row."""
        accessory = self._accessories.pop(record.accessory_uuid, None)
        if accessory is not None and self._bridge is not None:
            self._bridge.accessories.pop(record.aid, None)
        self._store.delete(record.accessory_uuid)
        self._config_changed()
        update_accessory_count(len(self._accessories))

        logger.info(
            f"Unregistered accessory {record.display_name}",
            extra={"event_type": "accessory_unregistered", "accessory_uuid": record.accessory_uuid}
        )

    def update(self, record: AccessoryRecord, services_changed: bool = False) -> None:
        """Persist a record's context; republish the bridge when services changed."""
        self._store.save(record)
        if services_changed:
            self._config_changed()

    def _config_changed(self) -> None:
        # Accessories added before start are published by the first advertisement
        if self._running and self._driver is not None:
            self._driver.config_changed()

    async def start(self) -> bool:
        """Start serving the bridge."""
        if self._running:
            return True
        if self._driver is None:
            self.setup()

        try:
            await self._driver.async_start()
            self._running = True
            self._error = None
            logger.info(
                f"HomeKit bridge started on port {self.config.port} with {len(self._accessories)} cameras",
                extra={
                    "event_type": "homekit_started",
                    "port": self.config.port,
                    "camera_count": len(self._accessories),
                    "paired": self.is_paired,
                }
            )
            return True
        except Exception as e:
            self._error = str(e)
            logger.error(
                f"Failed to start HomeKit bridge: {e}",
                exc_info=True,
                extra={"event_type": "homekit_start_failed"}
            )
            return False

    async def stop(self) -> None:
        if not self._running:
            return
        try:
            await self._driver.async_stop()
            logger.info("HomeKit bridge stopped", extra={"event_type": "homekit_stopped"})
        except Exception as e:
            logger.error(f"Error stopping HomeKit bridge: {e}", exc_info=True)
        finally:
            self._running = False

    def get_status(self) -> HomekitStatus:
        return HomekitStatus(
            running=self.is_running,
            paired=self.is_paired,
            accessory_count=self.accessory_count,
            bridge_name=self.config.bridge_name,
            port=self.config.port,
            setup_code=self.pincode,
            setup_uri=self.setup_uri,
            error=self._error,
        )
