"""Tests for CanvasApi: REST client with status mapping."""

import json
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import requests

from canvas_workspace.api import CanvasApi, payload_of
from canvas_workspace.config import Session
from canvas_workspace.errors import ApiError, ConflictError, NetworkError, NotFoundError

SESSION = Session(api_url="http://canvas.test/rest/v2", token="test-token", ws_url="ws://canvas.test/ws")


@pytest.fixture
def api_with_mock_session() -> tuple[CanvasApi, MagicMock]:
    """Create a CanvasApi with a mocked requests.Session."""
    with patch("canvas_workspace.api.requests.Session") as mock_session_cls:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        api = CanvasApi(SESSION)

    return api, mock_session


def _make_response(data: dict[str, Any] | None, status_code: int = 200) -> MagicMock:
    """Create a mock HTTP response with given JSON data."""
    response = MagicMock()
    response.status_code = status_code
    if data is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = data
        response.text = json.dumps(data)
    return response


def test_request_sends_bearer_token_and_json_body(
    api_with_mock_session: tuple[CanvasApi, MagicMock],
) -> None:
    api, mock_session = api_with_mock_session
    mock_session.request.return_value = _make_response({"status": "success", "payload": {"ok": 1}})

    rv = api.request("POST", "/workspaces/universe/tree/paths", body={"path": "/a"})

    assert payload_of(rv) == {"ok": 1}
    args, kwargs = mock_session.request.call_args
    assert args == ("POST", "http://canvas.test/rest/v2/workspaces/universe/tree/paths")
    assert kwargs["headers"]["Authorization"] == "Bearer test-token"
    assert kwargs["headers"]["Content-Type"] == "application/json"
    assert json.loads(kwargs["data"]) == {"path": "/a"}
    assert kwargs["timeout"] == api.timeout


def test_request_without_body_sends_no_data(
    api_with_mock_session: tuple[CanvasApi, MagicMock],
) -> None:
    api, mock_session = api_with_mock_session
    mock_session.request.return_value = _make_response({"payload": []})

    api.request("GET", "/workspaces/universe/layers", params={"x": "1"})

    kwargs = mock_session.request.call_args.kwargs
    assert kwargs["data"] is None
    assert kwargs["params"] == {"x": "1"}
    assert "Content-Type" not in kwargs["headers"]


@pytest.mark.parametrize(
    ("status_code", "error_cls"),
    [(404, NotFoundError), (409, ConflictError), (500, ApiError), (403, ApiError)],
)
def test_request_maps_status_codes(
    api_with_mock_session: tuple[CanvasApi, MagicMock],
    status_code: int,
    error_cls: type[Exception],
) -> None:
    api, mock_session = api_with_mock_session
    mock_session.request.return_value = _make_response(
        {"status": "error", "message": "Layer not found"}, status_code
    )

    with pytest.raises(error_cls, match="Layer not found"):
        api.request("GET", "/workspaces/universe/tree")


def test_request_api_error_carries_status_and_default_message(
    api_with_mock_session: tuple[CanvasApi, MagicMock],
) -> None:
    api, mock_session = api_with_mock_session
    mock_session.request.return_value = _make_response(None, 502)

    with pytest.raises(ApiError, match="HTTP error! status: 502") as excinfo:
        api.request("GET", "/workspaces/universe/tree")

    assert excinfo.value.status_code == 502


@pytest.mark.parametrize("exc", [requests.ConnectionError("refused"), requests.Timeout("slow")])
def test_request_wraps_transport_failures(
    api_with_mock_session: tuple[CanvasApi, MagicMock], exc: Exception
) -> None:
    api, mock_session = api_with_mock_session
    mock_session.request.side_effect = exc

    with pytest.raises(NetworkError):
        api.request("GET", "/workspaces/universe/tree")


def test_set_session_switches_credential(
    api_with_mock_session: tuple[CanvasApi, MagicMock],
) -> None:
    api, mock_session = api_with_mock_session
    mock_session.request.return_value = _make_response({"payload": None})

    api.set_session(Session("http://other.test/rest/v2", "new-token", "ws://other.test/ws"))
    api.request("GET", "/workspaces/universe")

    args, kwargs = mock_session.request.call_args
    assert args[1] == "http://other.test/rest/v2/workspaces/universe"
    assert kwargs["headers"]["Authorization"] == "Bearer new-token"
