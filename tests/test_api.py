from __future__ import annotations

import pytest

from fake_server import FakeTransport, settle
from plugctl import api
from plugctl.api import ClientDevice, ConnectionState, HandshakeError, SessionConfig, open_session
from plugctl.protocol.messages import DeviceInfo, Error


def test_public_surface_exports() -> None:
    for name in api.__all__:
        assert hasattr(api, name), name


@pytest.mark.asyncio
async def test_open_session_connects_and_disconnects() -> None:
    transport = FakeTransport()
    transport.devices = [DeviceInfo(device_name="Edge", device_index=1, device_messages=("VibrateCmd",))]

    async with open_session("ws://fake/", config=SessionConfig(client_name="api"), transport=transport) as session:
        assert session.state is ConnectionState.CONNECTED
        devices = await session.request_device_list()
        await settle()
        assert devices == [ClientDevice(index=1, name="Edge", allowed_messages=frozenset({"VibrateCmd"}))]

    assert session.state is ConnectionState.DISCONNECTED
    assert transport.sent[0].client_name == "api"
    assert transport.close_reasons == ["Client shutdown"]


@pytest.mark.asyncio
async def test_open_session_propagates_handshake_failure() -> None:
    transport = FakeTransport()
    transport.responders["RequestServerInfo"] = lambda m: [Error(id=m.id, error_message="nope")]

    with pytest.raises(HandshakeError):
        async with open_session("ws://fake/", transport=transport):
            pytest.fail("block should not run")

    assert transport.close_reasons == ["Client shutdown"]
