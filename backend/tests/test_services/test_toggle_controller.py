"""
Tests for ToggleController

Streaming on/off requests must only change local state after the Nest API
confirms them, and every request is acknowledged exactly once.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from nestcam.core.errors import AuthError, NetworkError
from nestcam.services.feature_set import FeatureSet
from nestcam.services.toggle_controller import ToggleController, ToggleRequest

from tests.conftest import make_record, make_snapshot


def make_controller(session, set_streaming=None):
    source = MagicMock()
    source.set_streaming_enabled = set_streaming or AsyncMock(return_value=None)
    return ToggleController(session, source), source


def streaming_record(enabled=True):
    return make_record(
        snapshot=make_snapshot(is_streaming_enabled=enabled),
        features=FeatureSet(motion=True, streaming=True),
    )


class TestSetEnabled:
    """Direct set_enabled calls"""

    @pytest.mark.asyncio
    async def test_success_updates_state_and_switch_once(self, fake_session, token):
        controller, source = make_controller(fake_session)
        record = streaming_record(enabled=False)
        controller.register(record)

        confirmed = await controller.set_enabled(record, True)

        assert confirmed is True
        assert record.state.enabled is True
        assert record.snapshot.is_streaming_enabled is True
        assert record.accessory.streaming_writes == [True]
        source.set_streaming_enabled.assert_awaited_once_with(token, record.camera_uuid, True)

    @pytest.mark.asyncio
    async def test_network_failure_leaves_state_unchanged(self, fake_session):
        controller, _ = make_controller(
            fake_session, AsyncMock(side_effect=NetworkError("Service unavailable", status_code=503))
        )
        record = streaming_record(enabled=True)
        controller.register(record)

        confirmed = await controller.set_enabled(record, False)

        assert confirmed is True
        assert record.state.enabled is True
        assert record.accessory.streaming_value is True
        assert record.accessory.streaming_writes == []

    @pytest.mark.asyncio
    async def test_auth_failure_leaves_state_unchanged(self, fake_session):
        controller, _ = make_controller(fake_session, AsyncMock(side_effect=AuthError("expired", status_code=401)))
        record = streaming_record(enabled=False)
        controller.register(record)

        confirmed = await controller.set_enabled(record, True)

        assert confirmed is False
        assert record.state.enabled is False

    @pytest.mark.asyncio
    async def test_missing_token_fails_without_remote_call(self):
        session = MagicMock()
        session.token = None
        controller, source = make_controller(session)
        record = streaming_record(enabled=True)
        controller.register(record)

        confirmed = await controller.set_enabled(record, False)

        assert confirmed is True
        source.set_streaming_enabled.assert_not_called()

    @pytest.mark.asyncio
    async def test_removed_camera_ignored(self, fake_session):
        controller, source = make_controller(fake_session)
        record = streaming_record(enabled=True)
        record.context.removed = True

        confirmed = await controller.set_enabled(record, False)

        assert confirmed is True
        source.set_streaming_enabled.assert_not_called()


class TestAcknowledgment:
    """One-shot acknowledgment"""

    def test_second_acknowledge_raises(self):
        acks = []
        request = ToggleRequest(camera_uuid="cam", desired=True, on_acknowledge=acks.append)

        request.acknowledge(True)
        with pytest.raises(RuntimeError):
            request.acknowledge(True)

        assert acks == [True]

    @pytest.mark.asyncio
    async def test_handle_acknowledges_once_on_success(self, fake_session):
        controller, _ = make_controller(fake_session)
        record = streaming_record(enabled=False)
        controller.register(record)
        acks = []
        request = ToggleRequest(camera_uuid=record.camera_uuid, desired=True, on_acknowledge=acks.append)

        result = await controller.handle(request)

        assert result is True
        assert acks == [True]
        assert request.succeeded is True

    @pytest.mark.asyncio
    async def test_handle_acknowledges_once_on_failure(self, fake_session):
        controller, _ = make_controller(fake_session, AsyncMock(side_effect=NetworkError("timeout")))
        record = streaming_record(enabled=False)
        controller.register(record)
        acks = []
        request = ToggleRequest(camera_uuid=record.camera_uuid, desired=True, on_acknowledge=acks.append)

        result = await controller.handle(request)

        assert result is False
        assert acks == [False]
        assert request.succeeded is False

    @pytest.mark.asyncio
    async def test_failure_already_in_desired_state_not_reported_as_success(self, fake_session):
        controller, _ = make_controller(fake_session, AsyncMock(side_effect=NetworkError("timeout")))
        record = streaming_record(enabled=True)
        controller.register(record)
        request = controller.create_request(record.camera_uuid, True)

        result = await controller.handle(request)

        assert result is True
        assert request.succeeded is False

    @pytest.mark.asyncio
    async def test_unexpected_error_acknowledged_with_last_known_value(self, fake_session):
        controller, _ = make_controller(fake_session, AsyncMock(side_effect=RuntimeError("boom")))
        record = streaming_record(enabled=True)
        controller.register(record)
        acks = []
        request = ToggleRequest(camera_uuid=record.camera_uuid, desired=False, on_acknowledge=acks.append)

        result = await controller.handle(request)

        assert result is True
        assert acks == [True]

    @pytest.mark.asyncio
    async def test_unknown_camera_acknowledged_with_none(self, fake_session):
        controller, source = make_controller(fake_session)
        acks = []
        request = ToggleRequest(camera_uuid="missing", desired=True, on_acknowledge=acks.append)

        result = await controller.handle(request)

        assert result is None
        assert acks == [None]
        source.set_streaming_enabled.assert_not_called()


class TestSwitchWrites:
    """Writes arriving from the Home app"""

    @pytest.mark.asyncio
    async def test_failed_write_reverts_switch(self, fake_session):
        controller, _ = make_controller(fake_session, AsyncMock(side_effect=NetworkError("timeout")))
        record = streaming_record(enabled=True)
        controller.register(record)

        record.accessory.user_writes_streaming(False)
        await controller.drain()

        assert record.state.enabled is True
        assert record.accessory.streaming_value is True
        assert record.accessory.streaming_writes == [True]

    @pytest.mark.asyncio
    async def test_confirmed_write_propagates_once(self, fake_session):
        controller, source = make_controller(fake_session)
        record = streaming_record(enabled=False)
        controller.register(record)

        record.accessory.user_writes_streaming(True)
        await controller.drain()

        assert record.state.enabled is True
        assert record.accessory.streaming_value is True
        assert record.accessory.streaming_writes == [True]
        source.set_streaming_enabled.assert_awaited_once()
        assert controller.pending_count == 0

    def test_unregister_detaches_callback(self, fake_session):
        controller, _ = make_controller(fake_session)
        record = streaming_record()
        controller.register(record)

        controller.unregister(record)

        assert not controller.is_registered(record.camera_uuid)
        assert record.accessory.streaming_callback is None
