"""Pytest fixtures and configuration for test suite

This module provides:
1. Factory functions for wire snapshots, tokens and accessory records
2. In-memory fakes for the HomeKit host and camera accessory, so the
   reconciliation and polling core can be tested without a HAP driver
3. An isolated in-memory database for the accessory store

Factory Functions:
    - make_snapshot(**overrides) -> CameraSnapshot
    - make_token(expired=False) -> AccessToken
    - make_options(**overrides) -> FeatureOptions
    - make_record(snapshot=None, features=None) -> AccessoryRecord
"""
import pytest
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from nestcam.core.config import FeatureOptions
from nestcam.core.database import Base
from nestcam.models.accessory import CachedAccessory  # noqa: F401  registers the table
from nestcam.schemas.camera import CameraSnapshot
from nestcam.services.accessory_record import (
    AccessoryContext,
    AccessoryRecord,
    accessory_uuid_for,
    aid_for,
)
from nestcam.services.camera_state import CameraState
from nestcam.services.feature_set import FeatureSet
from nestcam.services.nest_session import AccessToken


# =============================================================================
# Factory Functions for Test Objects
# =============================================================================

def make_snapshot(
    uuid: str = "cam-front-door",
    name: str = "Front Door",
    is_streaming_enabled: bool = True,
    detectors: Optional[List[str]] = None,
    capabilities: Optional[List[str]] = None,
    type: int = 12,
    **overrides
) -> CameraSnapshot:
    """
    Factory for CameraSnapshot, built from a wire-shaped payload.

    Example:
        snapshot = make_snapshot(capabilities=["indoor_chime"])
    """
    payload = {
        "uuid": uuid,
        "name": name,
        "is_streaming_enabled": is_streaming_enabled,
        "serial_number": "18B43000AABBCCDD",
        "combined_software_version": "4.0-17",
        "type": type,
        "detectors": ["motion"] if detectors is None else detectors,
        "capabilities": [] if capabilities is None else capabilities,
        "direct_nexustalk_host": "stream-uswest.dropcam.com",
        "nexus_api_http_server": "nexusapi-us1.camera.home.nest.com",
    }
    payload.update(overrides)
    return CameraSnapshot.model_validate(payload)


def make_token(value: str = "jwt-token", expired: bool = False) -> AccessToken:
    now = datetime.now(timezone.utc)
    if expired:
        return AccessToken(value=value, issued_at=now - timedelta(hours=2), expires_at=now - timedelta(hours=1))
    return AccessToken(value=value, issued_at=now, expires_at=now + timedelta(hours=1))


def make_options(**overrides) -> FeatureOptions:
    values = {
        "motion_detection": True,
        "doorbell_alerts": True,
        "streaming_switch": False,
        "disable_audio": False,
        "alert_types": ("motion",),
    }
    values.update(overrides)
    return FeatureOptions(**values)


# =============================================================================
# Fakes
# =============================================================================

class FakeAccessory:
    """In-memory stand-in for CameraAccessory that records every call."""

    def __init__(self, accessory_uuid: str, name: str, aid: int):
        self.accessory_uuid = accessory_uuid
        self.name = name
        self.aid = aid
        self.services: List[str] = []
        self.added: List[str] = []
        self.removed: List[str] = []
        self.motion_values: List[bool] = []
        self.ring_count = 0
        self.streaming_value: Optional[bool] = None
        self.streaming_writes: List[bool] = []
        self.information: Dict[str, str] = {}
        self.streaming_callback = None

    @property
    def service_names(self) -> List[str]:
        return list(self.services)

    def has_service(self, name: str) -> bool:
        return name in self.services

    def add_service(self, name: str) -> None:
        if name not in self.services:
            self.services.append(name)
            self.added.append(name)

    def remove_service(self, name: str) -> None:
        if name in self.services:
            self.services.remove(name)
            self.removed.append(name)

    def set_information(self, manufacturer, model, serial_number, firmware) -> None:
        self.information = {
            "manufacturer": manufacturer,
            "model": model,
            "serial_number": serial_number,
            "firmware": firmware,
        }

    def set_motion(self, detected: bool) -> bool:
        if "Motion" not in self.services:
            return False
        self.motion_values.append(detected)
        return True

    def ring_doorbell(self) -> bool:
        if "Doorbell" not in self.services and "DoorbellSwitch" not in self.services:
            return False
        self.ring_count += 1
        return True

    def get_streaming(self) -> Optional[bool]:
        if "Streaming" not in self.services:
            return None
        return self.streaming_value

    def set_streaming(self, enabled: bool) -> bool:
        if "Streaming" not in self.services:
            return False
        self.streaming_value = enabled
        self.streaming_writes.append(enabled)
        return True

    def sync_streaming(self, enabled: bool) -> None:
        if self.get_streaming() not in (None, enabled):
            self.set_streaming(enabled)

    def on_streaming_set(self, callback) -> None:
        self.streaming_callback = callback

    def user_writes_streaming(self, value: bool) -> None:
        """Simulate the Home app writing the switch (value shown optimistically)."""
        self.streaming_value = value
        if self.streaming_callback is not None:
            self.streaming_callback(value)


class FakeHost:
    """In-memory AccessoryHost."""

    def __init__(self, cached=None):
        self.cached = list(cached or [])
        self.accessories: Dict[str, FakeAccessory] = {}
        self.registered: List[str] = []
        self.unregistered: List[str] = []
        self.persisted: List[str] = []
        self.updates: List[str] = []

    def create_accessory(self, accessory_uuid: str, name: str, aid: int) -> FakeAccessory:
        return FakeAccessory(accessory_uuid, name, aid)

    def load_cached(self):
        return list(self.cached)

    def register(self, record, persist: bool = True) -> None:
        self.accessories[record.accessory_uuid] = record.accessory
        self.registered.append(record.camera_uuid)
        if persist:
            self.persisted.append(record.camera_uuid)

    def unregister(self, record) -> None:
        self.accessories.pop(record.accessory_uuid, None)
        self.unregistered.append(record.camera_uuid)

    def update(self, record, services_changed: bool = False) -> None:
        self.updates.append(record.camera_uuid)


def make_record(
    snapshot: Optional[CameraSnapshot] = None,
    features: Optional[FeatureSet] = None,
) -> AccessoryRecord:
    """AccessoryRecord wired to a FakeAccessory carrying the feature set's services."""
    snapshot = snapshot or make_snapshot()
    features = features or FeatureSet(motion=True)
    accessory_uuid = accessory_uuid_for(snapshot.uuid)
    accessory = FakeAccessory(accessory_uuid, snapshot.name, aid_for(accessory_uuid))
    for name in features.service_names():
        accessory.add_service(name)
    if features.streaming:
        accessory.streaming_value = snapshot.is_streaming_enabled
    return AccessoryRecord(
        camera_uuid=snapshot.uuid,
        accessory_uuid=accessory_uuid,
        aid=aid_for(accessory_uuid),
        display_name=snapshot.name,
        accessory=accessory,
        context=AccessoryContext(snapshot=snapshot),
        features=features,
        state=CameraState(snapshot),
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def snapshot():
    return make_snapshot()


@pytest.fixture
def token():
    return make_token()


@pytest.fixture
def fake_host():
    return FakeHost()


@pytest.fixture
def fake_session(token):
    session = MagicMock()
    session.token = token
    return session


@pytest.fixture
def db_session_factory():
    """Isolated in-memory database shared across sessions of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
