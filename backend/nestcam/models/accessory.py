"""
Persisted accessory cache.

One row per camera accessory the bridge has registered. Rows are loaded on
startup (the cold cache) before the Nest API is contacted, and deleted when
the accessory is unregistered.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, Boolean, DateTime, JSON
from sqlalchemy.orm import validates
from nestcam.core.database import Base


class CachedAccessory(Base):
    """
    Camera accessory persisted across restarts.

    Attributes:
        accessory_uuid: Deterministic hash of the camera uuid (primary key)
        camera_uuid: Nest camera uuid
        aid: HAP accessory id derived from accessory_uuid
        display_name: Name shown in the Home app
        context: Last known camera snapshot in wire form, or null
        services: Names of the optional services present on the accessory
        removed: Set when the camera disappeared from the account
        created_at: Record creation timestamp
        updated_at: Last modification timestamp
    """

    __tablename__ = "cached_accessories"

    accessory_uuid = Column(String(36), primary_key=True)
    camera_uuid = Column(String(64), nullable=False, index=True)
    aid = Column(Integer, nullable=False)
    display_name = Column(String(128), nullable=False, default="")
    context = Column(JSON, nullable=True)
    services = Column(JSON, nullable=False, default=list)
    removed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @validates('aid')
    def validate_aid(self, key, aid):
        """aid 1 is reserved for the bridge itself."""
        if aid is not None and aid < 2:
            raise ValueError(f"aid must be >= 2, got {aid}")
        return aid

    def to_dict(self) -> dict:
        return {
            "accessory_uuid": self.accessory_uuid,
            "camera_uuid": self.camera_uuid,
            "aid": self.aid,
            "display_name": self.display_name,
            "context": self.context,
            "services": list(self.services or []),
            "removed": self.removed,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<CachedAccessory(accessory_uuid='{self.accessory_uuid}', "
            f"camera_uuid='{self.camera_uuid}', removed={self.removed})>"
        )
