"""
Accessory reconciliation.

Diffs the live Nest camera list against the accessories the bridge already
knows (restored from the cache or created earlier in this run):

    live, unknown       -> create record, services, register, attach poller
    known, not live     -> mark removed, unregister, detach poller
    known and live      -> replace snapshot, reconcile services toward the
                           FeatureSet, persist, keep poller jobs aligned

A camera removed during a run is never registered again in the same run,
even if its uuid comes back in the live list.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from pydantic import ValidationError

from nestcam.config.nest import MANUFACTURER, model_name
from nestcam.core.config import FeatureOptions
from nestcam.models.accessory import CachedAccessory
from nestcam.schemas.camera import CameraSnapshot
from nestcam.services.accessory_record import (
    AccessoryContext,
    AccessoryRecord,
    accessory_uuid_for,
    aid_for,
)
from nestcam.services.camera_state import CameraState
from nestcam.services.feature_set import (
    SERVICE_DOORBELL,
    SERVICE_DOORBELL_SWITCH,
    SERVICE_MOTION,
    SERVICE_STREAMING,
    FeatureSet,
    derive_features,
)

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Camera uuids touched by one reconciliation pass."""
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def _snapshot_from_context(context) -> Optional[CameraSnapshot]:
    """Cached context is tolerated when stale or missing."""
    if not context:
        return None
    try:
        return CameraSnapshot.model_validate(context)
    except ValidationError:
        return None


def _features_from_services(names: Iterable[str]) -> FeatureSet:
    names = set(names or [])
    return FeatureSet(
        motion=SERVICE_MOTION in names,
        doorbell=SERVICE_DOORBELL in names,
        doorbell_switch=SERVICE_DOORBELL_SWITCH in names,
        streaming=SERVICE_STREAMING in names,
    )


class AccessoryReconciler:
    """
    Keeps the bridge's accessories in line with the Nest account.

    Args:
        host: AccessoryHost (create_accessory, register, unregister, update)
        poller: EventPoller (attach, detach)
        toggles: ToggleController (register, unregister)
        options: Feature options from settings
    """

    def __init__(self, host, poller, toggles, options: FeatureOptions):
        self._host = host
        self._poller = poller
        self._toggles = toggles
        self._options = options
        self._records: Dict[str, AccessoryRecord] = {}
        self._removed: Set[str] = set()

    @property
    def records(self) -> List[AccessoryRecord]:
        return list(self._records.values())

    @property
    def removed_uuids(self) -> Set[str]:
        return set(self._removed)

    def get_record(self, camera_uuid: str) -> Optional[AccessoryRecord]:
        return self._records.get(camera_uuid)

    def restore(self, rows: Iterable[CachedAccessory]) -> int:
        """
        Take over accessories persisted by a prior run.

        Rows flagged removed are skipped. A missing or invalid snapshot is
        tolerated; state and poll jobs are set up when the live snapshot
        arrives. Rows with a cached snapshot get their poll jobs right away.

        Returns:
            Number of accessories restored
        """
        restored = 0
        for row in rows:
            if row.removed:
                logger.debug(
                    f"Skipping cached accessory {row.display_name} flagged removed",
                    extra={"accessory_uuid": row.accessory_uuid}
                )
                continue
            if row.camera_uuid in self._records:
                continue

            snapshot = _snapshot_from_context(row.context)
            accessory = self._host.create_accessory(row.accessory_uuid, row.display_name, row.aid)
            for name in row.services or []:
                accessory.add_service(name)

            record = AccessoryRecord(
                camera_uuid=row.camera_uuid,
                accessory_uuid=row.accessory_uuid,
                aid=row.aid,
                display_name=row.display_name,
                accessory=accessory,
                context=AccessoryContext(snapshot=snapshot),
                features=_features_from_services(row.services),
                state=CameraState(snapshot) if snapshot is not None else None,
            )
            if snapshot is not None:
                self._apply_information(record, snapshot)
            if record.features.streaming:
                self._toggles.register(record)

            self._host.register(record, persist=False)
            self._records[record.camera_uuid] = record
            # Cached accessories poll even if the first sync never succeeds
            if record.state is not None:
                self._poller.attach(record)
            restored += 1

        logger.info(
            f"Restored {restored} accessories from cache",
            extra={"event_type": "accessories_restored", "count": restored}
        )
        return restored

    def reconcile(self, live: Iterable[CameraSnapshot]) -> ReconcileResult:
        """Run one reconciliation pass against the live camera list."""
        live_by_uuid: Dict[str, CameraSnapshot] = {}
        for snapshot in live:
            live_by_uuid[snapshot.uuid] = snapshot

        result = ReconcileResult()

        for camera_uuid, record in list(self._records.items()):
            if camera_uuid not in live_by_uuid:
                self._remove(record)
                result.removed.append(camera_uuid)

        for camera_uuid, snapshot in live_by_uuid.items():
            if camera_uuid in self._removed:
                result.skipped.append(camera_uuid)
                continue
            record = self._records.get(camera_uuid)
            if record is None:
                self._create(snapshot)
                result.created.append(camera_uuid)
            else:
                self._update(record, snapshot)
                result.updated.append(camera_uuid)

        logger.info(
            f"Reconciled {len(live_by_uuid)} cameras: {len(result.created)} created, "
            f"{len(result.updated)} updated, {len(result.removed)} removed",
            extra={
                "event_type": "reconcile_complete",
                "created": len(result.created),
                "updated": len(result.updated),
                "removed": len(result.removed),
                "skipped": len(result.skipped),
            }
        )
        return result

    def _create(self, snapshot: CameraSnapshot) -> AccessoryRecord:
        accessory_uuid = accessory_uuid_for(snapshot.uuid)
        aid = aid_for(accessory_uuid)
        accessory = self._host.create_accessory(accessory_uuid, snapshot.name, aid)

        record = AccessoryRecord(
            camera_uuid=snapshot.uuid,
            accessory_uuid=accessory_uuid,
            aid=aid,
            display_name=snapshot.name,
            accessory=accessory,
            context=AccessoryContext(snapshot=snapshot),
            state=CameraState(snapshot),
        )
        self._apply_information(record, snapshot)
        self._apply_features(record, self._derive(snapshot))

        self._host.register(record)
        self._poller.attach(record)
        self._records[snapshot.uuid] = record
        return record

    def _remove(self, record: AccessoryRecord) -> None:
        record.context.removed = True
        self._records.pop(record.camera_uuid, None)
        self._removed.add(record.camera_uuid)

        self._toggles.unregister(record)
        self._host.unregister(record)
        self._poller.detach(record)

        logger.info(
            f"Camera {record.display_name} no longer on the account",
            extra={"event_type": "accessory_removed", "camera_uuid": record.camera_uuid}
        )

    def _update(self, record: AccessoryRecord, snapshot: CameraSnapshot) -> None:
        record.context.snapshot = snapshot
        if record.state is None:
            record.state = CameraState(snapshot)
        else:
            record.state.replace_snapshot(snapshot)

        self._apply_information(record, snapshot)
        changed = self._apply_features(record, self._derive(snapshot))

        self._host.update(record, services_changed=changed)
        self._poller.attach(record)

    def _derive(self, snapshot: CameraSnapshot) -> FeatureSet:
        return derive_features(snapshot.capabilities, snapshot.detectors, self._options)

    def _apply_features(self, record: AccessoryRecord, features: FeatureSet) -> bool:
        """
        Move the accessory's services toward a FeatureSet.

        Services that still qualify are left untouched.

        Returns:
            True if any service was added or removed
        """
        accessory = record.accessory
        wanted = features.service_names()
        changed = False

        for name in accessory.service_names:
            if name not in wanted:
                accessory.remove_service(name)
                changed = True
        for name in wanted:
            if not accessory.has_service(name):
                accessory.add_service(name)
                changed = True

        record.features = features

        if features.streaming:
            accessory.set_streaming(record.state.enabled)
            self._toggles.register(record)
        else:
            self._toggles.unregister(record)

        if changed:
            logger.debug(
                f"Services for {record.display_name}: {wanted}",
                extra={"accessory_uuid": record.accessory_uuid, "services": wanted}
            )
        return changed

    @staticmethod
    def _apply_information(record: AccessoryRecord, snapshot: CameraSnapshot) -> None:
        record.accessory.set_information(
            manufacturer=MANUFACTURER,
            model=model_name(snapshot.type),
            serial_number=snapshot.serial_number,
            firmware=snapshot.software_version,
        )
