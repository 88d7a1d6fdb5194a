"""Builders for engine documents used across tests."""

import queue
from datetime import datetime, timezone
from typing import Optional

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def container_attrs(
    status: str = "running",
    health: Optional[str] = None,
    exit_code: int = 0,
    started_at: str = "2026-03-01T11:00:00.123456789Z",
    restart_count: int = 0,
    image: str = "redis:7-alpine",
    ports: Optional[dict] = None,
) -> dict:
    """Build an engine inspect document."""
    state = {
        "Status": status,
        "Running": status == "running",
        "ExitCode": exit_code,
        "StartedAt": started_at,
    }
    if health is not None:
        state["Health"] = {"Status": health}
    return {
        "State": state,
        "RestartCount": restart_count,
        "Config": {"Image": image},
        "NetworkSettings": {"Ports": ports or {}},
    }


def frame(payload: bytes, stream: int = 1) -> bytes:
    """Wrap a payload in an engine stream frame header."""
    return bytes([stream, 0, 0, 0]) + len(payload).to_bytes(4, "big") + payload


class FakeEngineStream:
    """Blocking iterator like the SDK's follow-mode log stream."""

    def __init__(self, *chunks):
        self._chunks = queue.Queue()
        self.close_calls = 0
        for chunk in chunks:
            self.push(chunk)

    def push(self, chunk):
        self._chunks.put(chunk)

    def __iter__(self):
        return self

    def __next__(self):
        chunk = self._chunks.get()
        if chunk is None:
            raise StopIteration
        return chunk

    def close(self):
        self.close_calls += 1
        # Unblock a pending read the way closing the socket does
        self._chunks.put(None)
