"""Tests for the websocket transport."""

import json
from unittest.mock import MagicMock, patch

import pytest
from websockets.exceptions import ConnectionClosedOK

from canvas_workspace.core.live.transport import WebSocketTransport


@pytest.fixture
def ws() -> MagicMock:
    return MagicMock()


@pytest.fixture
def transport(ws: MagicMock) -> WebSocketTransport:
    with patch("canvas_workspace.core.live.transport.connect", return_value=ws) as connect:
        t = WebSocketTransport(open_timeout=3.0)
        t.connect("ws://h/ws", "tok")
    connect.assert_called_once_with(
        "ws://h/ws", additional_headers={"Authorization": "Bearer tok"}, open_timeout=3.0
    )
    return t


def test_connect_failure_becomes_connection_error() -> None:
    with patch("canvas_workspace.core.live.transport.connect", side_effect=OSError("refused")):
        with pytest.raises(ConnectionError, match="refused"):
            WebSocketTransport().connect("ws://h/ws", "tok")


def test_send_encodes_json(transport: WebSocketTransport, ws: MagicMock) -> None:
    transport.send({"event": "subscribe", "data": {"channel": "c"}})
    assert json.loads(ws.send.call_args.args[0]) == {"event": "subscribe", "data": {"channel": "c"}}


def test_receive_decodes_frames(transport: WebSocketTransport, ws: MagicMock) -> None:
    ws.recv.side_effect = ['{"event": "e", "data": 1}', "not json", "[1, 2]", TimeoutError()]

    assert transport.receive(0.1) == {"event": "e", "data": 1}
    assert transport.receive(0.1) is None
    assert transport.receive(0.1) is None
    assert transport.receive(0.1) is None


def test_receive_on_closed_connection_raises(transport: WebSocketTransport, ws: MagicMock) -> None:
    ws.recv.side_effect = ConnectionClosedOK(None, None)
    with pytest.raises(ConnectionError):
        transport.receive()


def test_close_is_idempotent(transport: WebSocketTransport, ws: MagicMock) -> None:
    transport.close()
    transport.close()
    ws.close.assert_called_once()
    with pytest.raises(ConnectionError):
        transport.send({"event": "x"})
