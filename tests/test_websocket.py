"""Tests for the WebSocket endpoint."""

import time

import pytest
from fastapi.testclient import TestClient

from openclaw_gateway.api import create_app

from tests.factories import FakeEngineStream, container_attrs


@pytest.fixture
def client(gateway_config, mock_docker_client):
    app = create_app(gateway_config, docker_client_factory=lambda base_url: mock_docker_client)
    with TestClient(app) as test_client:
        yield test_client


def test_connected_greeting(client):
    with client.websocket_connect("/ws") as websocket:
        message = websocket.receive_json()

    assert message["type"] == "connected"
    assert message["data"]["observer_id"]


def test_status_request_single_service(client, mock_docker_client):
    mock_docker_client.inspect_container.return_value = container_attrs(status="running")

    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.send_json({"type": "status-request", "data": {"service": "redis"}})
        message = websocket.receive_json()

    assert message["type"] == "status"
    assert message["data"]["service"] == "redis"
    assert message["data"]["status"]["state"] == "running"


@pytest.mark.parametrize("data", [None, {}, {"service": "all"}])
def test_status_request_all(client, data):
    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.send_json({"type": "status-request", "data": data})
        message = websocket.receive_json()

    assert message["type"] == "status-push"
    assert list(message["data"]["services"]) == ["redis", "gateway", "prometheus"]


def test_subscribe_all_status_pushes_immediately(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.send_json({"type": "subscribe-all-status"})
        message = websocket.receive_json()

    assert message["type"] == "status-push"
    assert message["data"]["services"]["redis"]["state"] == "not_found"


def test_unknown_service_error(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.send_json({"type": "status-request", "data": {"service": "mysql"}})
        message = websocket.receive_json()

    assert message == {
        "type": "error",
        "data": {
            "type": "status-request",
            "service": "mysql",
            "message": "Invalid service: mysql",
        },
    }


def test_unknown_event_type(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.send_json({"type": "chat-message", "data": {"text": "hi"}})
        message = websocket.receive_json()

    assert message["type"] == "error"
    assert message["data"]["type"] == "chat-message"


def test_malformed_message_keeps_connection(client):
    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.send_text("not json")
        error = websocket.receive_json()
        websocket.send_json({"type": "status-request"})
        reply = websocket.receive_json()

    assert error["type"] == "error"
    assert error["data"]["type"] == "invalid"
    assert reply["type"] == "status-push"


def test_logs_subscribe_and_unsubscribe(client, mock_docker_client):
    engine_stream = FakeEngineStream(b"2026-03-01T11:00:00Z Ready to accept connections\n")
    mock_docker_client.stream_container_logs.return_value = engine_stream

    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.send_json({"type": "logs-subscribe", "data": {"service": "redis", "tail": 20}})
        messages = [websocket.receive_json(), websocket.receive_json()]
        by_type = {message["type"]: message["data"] for message in messages}

        websocket.send_json({"type": "logs-unsubscribe"})
        unsubscribed = websocket.receive_json()

    assert by_type["logs-subscribed"]["service"] == "redis"
    assert by_type["log-line"]["text"] == "Ready to accept connections"
    assert unsubscribed["type"] == "logs-unsubscribed"
    assert engine_stream.close_calls == 1
    mock_docker_client.stream_container_logs.assert_called_once_with("openclaw-redis", tail=20)


def test_logs_subscribe_invalid_tail(client, mock_docker_client):
    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.send_json(
            {"type": "logs-subscribe", "data": {"service": "redis", "tail": "many"}}
        )
        message = websocket.receive_json()

    assert message["type"] == "error"
    assert message["data"]["type"] == "logs-subscribe"
    mock_docker_client.stream_container_logs.assert_not_called()


def test_service_updated_after_action(client, mock_docker_client):
    """Test a successful action is pushed to connected observers."""
    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        response = client.post("/api/services/redis/stop")
        message = websocket.receive_json()

    assert response.status_code == 200
    assert message["type"] == "service-updated"
    assert message["data"]["service"] == "redis"


def test_disconnect_unregisters_observer(client):
    broadcaster = client.app.state.broadcaster

    with client.websocket_connect("/ws") as websocket:
        websocket.receive_json()
        websocket.send_json({"type": "subscribe-all-status"})
        websocket.receive_json()
        assert broadcaster.observer_count == 1

    for _ in range(50):
        if broadcaster.observer_count == 0:
            break
        time.sleep(0.02)

    assert broadcaster.observer_count == 0
    assert broadcaster.subscriber_count == 0
