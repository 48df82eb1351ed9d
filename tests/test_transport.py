import asyncio

import pytest
from bleak.exc import BleakError

from bl702dfu.errors import ConnectionLost
from bl702dfu.transport import BLETransport


class StubClient:
    def __init__(self, connected=True, write_error=None, close_error=None):
        self.is_connected = connected
        self.write_error = write_error
        self.close_error = close_error
        self.writes = []

    async def write_gatt_char(self, uuid, data, response=False):
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((uuid, bytes(data), response))

    async def stop_notify(self, uuid):
        if self.close_error is not None:
            raise self.close_error

    async def disconnect(self):
        if self.close_error is not None:
            raise self.close_error
        self.is_connected = False


def make_transport(client):
    transport = BLETransport("AA:BB:CC:DD:EE:FF", loop=asyncio.get_running_loop())
    transport._client = client
    return transport


@pytest.mark.asyncio
async def test_write_waits_for_confirmation():
    client = StubClient()
    transport = make_transport(client)
    await transport.write_raw(b"\x00\x01")
    assert client.writes == [(transport.write_uuid, b"\x00\x01", True)]


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    OSError("[WinError -2147023673] The operation was canceled by the user"),
    BleakError("Not connected"),
    asyncio.TimeoutError(),
])
async def test_backend_write_errors_become_connection_lost(error):
    transport = make_transport(StubClient(write_error=error))
    with pytest.raises(ConnectionLost):
        await transport.write_raw(b"\x00")


@pytest.mark.asyncio
async def test_write_without_connection():
    transport = make_transport(StubClient(connected=False))
    with pytest.raises(ConnectionLost):
        await transport.write_raw(b"\x00")


@pytest.mark.asyncio
async def test_close_ignores_os_errors():
    transport = make_transport(StubClient(close_error=OSError("dbus socket closed")))
    await transport.disconnect()
    assert not transport.is_connected


@pytest.mark.asyncio
async def test_disconnect_of_dead_link_does_not_mark_next_drop_as_user_initiated():
    reported = []
    transport = make_transport(StubClient(connected=False))
    transport.bind(lambda data: None, reported.append)

    await transport.disconnect()
    transport._on_disconnect(None)
    await asyncio.sleep(0)

    assert reported == [False]


@pytest.mark.asyncio
async def test_user_disconnect_is_reported_as_such():
    reported = []
    transport = make_transport(StubClient())
    transport.bind(lambda data: None, reported.append)

    await transport.disconnect()
    transport._on_disconnect(None)
    await asyncio.sleep(0)

    assert reported == [True]
