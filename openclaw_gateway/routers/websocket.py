"""WebSocket endpoint router.

One connection is one observer. Messages in both directions are JSON objects
of the form ``{"type": ..., "data": ...}``.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from openclaw_gateway.broadcaster import Observer, StatusBroadcaster, status_map_payload
from openclaw_gateway.errors import GatewayError
from openclaw_gateway.resolver import StatusResolver
from openclaw_gateway.state import (
    get_broadcaster_or_none,
    get_log_subscriptions_or_none,
    get_resolver_or_none,
)
from openclaw_gateway.subscriptions import LogSubscriptions
from openclaw_gateway.utils import iso_now

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


# ============================================================================
# WebSocket Helper Functions
# ============================================================================

async def _send_websocket_error(
    websocket: WebSocket,
    event_type: str,
    message: str,
    service: Optional[str] = None,
) -> bool:
    """Send error message via WebSocket.

    Returns:
        True if message was sent successfully, False otherwise.
    """
    data = {"type": event_type, "message": message}
    if service is not None:
        data["service"] = service
    try:
        await websocket.send_json({"type": "error", "data": data})
        return True
    except Exception:
        return False


async def _close_websocket_ignoring_error(websocket: WebSocket) -> None:
    """Close WebSocket connection, ignoring any errors.

    This is useful for cleanup in exception handlers where the connection
    may already be closed or in an invalid state.
    """
    try:
        await websocket.close()
    except Exception:
        pass


def _parse_message(raw: str) -> tuple[str, dict]:
    """Split an inbound message into its type and data.

    Raises:
        ValueError: If the message is not a JSON object with a string type.
    """
    message = json.loads(raw)
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        raise ValueError("Message must be a JSON object with a 'type' field")
    data = message.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("'data' must be a JSON object")
    return message["type"], data


def _parse_tail(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"Invalid tail: {value!r}")
    return int(value)


# ============================================================================
# Event Handlers
# ============================================================================

class _Connection:
    """State and handlers for one WebSocket client."""

    def __init__(
        self,
        websocket: WebSocket,
        broadcaster: StatusBroadcaster,
        resolver: StatusResolver,
        subscriptions: LogSubscriptions,
    ):
        self.websocket = websocket
        self.broadcaster = broadcaster
        self.resolver = resolver
        self.subscriptions = subscriptions
        self.observer = Observer(observer_id=uuid.uuid4().hex, send=self.send)
        # Pushes, log lines and replies are sent from different tasks
        self._send_lock = asyncio.Lock()

    async def send(self, event: str, data: Any) -> None:
        async with self._send_lock:
            await self.websocket.send_json({"type": event, "data": data})

    async def send_error(
        self, event_type: str, message: str, service: Optional[str] = None
    ) -> bool:
        async with self._send_lock:
            return await _send_websocket_error(self.websocket, event_type, message, service)

    async def handle(self, event_type: str, data: dict) -> None:
        if event_type == "subscribe-all-status":
            await self.broadcaster.subscribe(self.observer.observer_id)
        elif event_type == "unsubscribe-all-status":
            self.broadcaster.unsubscribe(self.observer.observer_id)
        elif event_type == "status-request":
            await self._status_request(data)
        elif event_type == "logs-subscribe":
            await self._logs_subscribe(data)
        elif event_type == "logs-unsubscribe":
            await self.subscriptions.unsubscribe(self.observer.observer_id)
            await self.send("logs-unsubscribed", {"timestamp": iso_now()})
        else:
            raise ValueError(f"Unknown event type: {event_type}")

    async def _status_request(self, data: dict) -> None:
        service = data.get("service")
        if not service or service == "all":
            statuses = await self.resolver.resolve_all()
            await self.send("status-push", status_map_payload(statuses))
            return

        service_status = await self.resolver.resolve(service)
        await self.send(
            "status",
            {
                "service": service,
                "status": service_status.model_dump(mode="json"),
                "timestamp": iso_now(),
            },
        )

    async def _logs_subscribe(self, data: dict) -> None:
        service = data.get("service")
        if not service:
            raise ValueError("Missing service")
        tail = _parse_tail(data.get("tail"))
        subscription = await self.subscriptions.subscribe(self.observer, service, tail)
        await self.send(
            "logs-subscribed",
            {"service": subscription.service, "tail": tail, "timestamp": iso_now()},
        )


@router.websocket("/ws")
async def gateway_websocket(websocket: WebSocket):
    """Status pushes, on-demand status and live log streaming.

    Inbound events: ``subscribe-all-status``, ``unsubscribe-all-status``,
    ``status-request``, ``logs-subscribe``, ``logs-unsubscribe``.
    Outbound events: ``connected``, ``status-push``, ``status``,
    ``service-updated``, ``logs-subscribed``, ``log-line``,
    ``logs-unsubscribed``, ``error``.
    """
    await websocket.accept()

    broadcaster = get_broadcaster_or_none(websocket)
    resolver = get_resolver_or_none(websocket)
    subscriptions = get_log_subscriptions_or_none(websocket)
    if broadcaster is None or resolver is None or subscriptions is None:
        await _send_websocket_error(websocket, "connect", "Gateway not initialized")
        await _close_websocket_ignoring_error(websocket)
        return

    connection = _Connection(websocket, broadcaster, resolver, subscriptions)
    observer_id = connection.observer.observer_id
    broadcaster.register(connection.observer)

    try:
        await connection.send("connected", {"observer_id": observer_id, "timestamp": iso_now()})

        while True:
            raw = await websocket.receive_text()
            try:
                event_type, data = _parse_message(raw)
            except ValueError as e:
                await connection.send_error("invalid", str(e))
                continue

            try:
                await connection.handle(event_type, data)
            except (GatewayError, ValueError) as e:
                await connection.send_error(event_type, str(e), data.get("service"))
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.error(f"Failed to handle '{event_type}' from observer {observer_id}: {e}")
                await connection.send_error(event_type, str(e), data.get("service"))

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected: {observer_id}")
    except Exception as e:
        logger.error(f"WebSocket error for observer {observer_id}: {e}", exc_info=True)
        await _close_websocket_ignoring_error(websocket)
    finally:
        broadcaster.unregister(observer_id)
        await subscriptions.unsubscribe(observer_id)
