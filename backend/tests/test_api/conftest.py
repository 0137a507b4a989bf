"""
Shared pytest fixtures for API tests.

The application's bridge dependency is replaced with a BridgeService wired
to in-memory fakes. The lifespan is not run, so no HAP driver, scheduler or
Nest session is started.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from main import app
from nestcam.core.config import Settings
from nestcam.services.accessory_reconciler import AccessoryReconciler
from nestcam.services.bridge_service import BridgeService, get_bridge_service
from nestcam.services.homekit_service import HomekitStatus
from nestcam.services.toggle_controller import ToggleController

from tests.conftest import FakeHost, make_snapshot, make_token


def build_bridge_service(paired=False, streaming_switch=True, snapshots=None):
    settings = Settings(_env_file=None, STREAMING_SWITCH=streaming_switch)
    host = MagicMock()
    host.get_status.return_value = HomekitStatus(
        running=True,
        paired=paired,
        accessory_count=1,
        setup_code="031-45-154",
        setup_uri="X-HM://0023B6WQLAB1C",
    )
    service = BridgeService(settings=settings, host=host)

    session = MagicMock()
    session.token = make_token()
    session.authenticated = True
    session.field_test = False

    source = MagicMock()
    source.set_streaming_enabled = AsyncMock(return_value=None)

    service.session = session
    service.source = source
    service.toggles = ToggleController(session, source)
    service.reconciler = AccessoryReconciler(
        FakeHost(), MagicMock(), service.toggles, settings.feature_options
    )
    service.last_reconcile = service.reconciler.reconcile(
        snapshots if snapshots is not None else [make_snapshot(capabilities=["indoor_chime"])]
    )
    service._running = True
    return service


@pytest.fixture
def bridge_service():
    return build_bridge_service()


@pytest.fixture
def client(bridge_service):
    app.dependency_overrides[get_bridge_service] = lambda: bridge_service
    yield TestClient(app)
    app.dependency_overrides.clear()
