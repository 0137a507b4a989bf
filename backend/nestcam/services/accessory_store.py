"""SQLAlchemy persistence for accessory records"""
import logging
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from nestcam.core.database import SessionLocal
from nestcam.models.accessory import CachedAccessory
from nestcam.services.accessory_record import AccessoryRecord

logger = logging.getLogger(__name__)


class AccessoryStore:
    """
    Reads and writes the cached_accessories table.

    Args:
        session_factory: SQLAlchemy sessionmaker (defaults to the app's SessionLocal)
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or SessionLocal

    def load_all(self) -> List[CachedAccessory]:
        """Every cached row, oldest first."""
        with self._session_factory() as db:
            rows = db.query(CachedAccessory).order_by(CachedAccessory.created_at).all()
            db.expunge_all()
        return rows

    def get(self, accessory_uuid: str) -> Optional[CachedAccessory]:
        with self._session_factory() as db:
            row = db.get(CachedAccessory, accessory_uuid)
            if row is not None:
                db.expunge(row)
        return row

    def save(self, record: AccessoryRecord) -> None:
        """Insert or update the row for a record."""
        snapshot = record.context.snapshot
        with self._session_factory() as db:
            row = db.get(CachedAccessory, record.accessory_uuid)
            if row is None:
                row = CachedAccessory(accessory_uuid=record.accessory_uuid)
                db.add(row)
            row.camera_uuid = record.camera_uuid
            row.aid = record.aid
            row.display_name = record.display_name
            row.context = snapshot.to_context() if snapshot is not None else None
            row.services = list(record.accessory.service_names)
            row.removed = record.context.removed
            db.commit()

        logger.debug(
            f"Cached accessory {record.display_name}",
            extra={"accessory_uuid": record.accessory_uuid, "camera_uuid": record.camera_uuid}
        )

    def delete(self, accessory_uuid: str) -> bool:
        with self._session_factory() as db:
            row = db.get(CachedAccessory, accessory_uuid)
            if row is None:
                return False
            db.delete(row)
            db.commit()
        return True
