"""Container log retrieval and follow-mode streaming."""

import asyncio
import logging
import re
import struct
from typing import Callable, Optional, Union

import requests
from docker.errors import NotFound

from openclaw_gateway.docker_client import DockerClient
from openclaw_gateway.errors import ContainerNotFound, EngineUnavailable
from openclaw_gateway.models import LogLine, LogSettings
from openclaw_gateway.registry import ServiceRegistry
from openclaw_gateway.utils import parse_docker_timestamp, strip_ansi_codes

logger = logging.getLogger(__name__)

# Stream frame header: stream type (0 stdin, 1 stdout, 2 stderr), three zero
# bytes, then the big-endian payload size.
FRAME_HEADER_SIZE = 8
_FRAME_HEADER = struct.Struct(">BxxxI")

# Control bytes other than tab, newline and carriage return
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def _is_frame_header(data: bytes, offset: int = 0) -> bool:
    if len(data) - offset < FRAME_HEADER_SIZE:
        return False
    return data[offset] in (0, 1, 2) and data[offset + 1 : offset + 4] == b"\x00\x00\x00"


def demultiplex(raw: bytes) -> bytes:
    """Strip stream frame headers from multiplexed log output.

    Output that does not start with a frame header (TTY containers, or logs
    already demultiplexed by the SDK) is returned unchanged. A truncated or
    malformed frame ends demultiplexing and the remainder is kept as-is.
    """
    if not _is_frame_header(raw):
        return raw

    chunks = []
    offset = 0
    while offset < len(raw):
        if not _is_frame_header(raw, offset):
            chunks.append(raw[offset:])
            break
        _, size = _FRAME_HEADER.unpack_from(raw, offset)
        start = offset + FRAME_HEADER_SIZE
        chunks.append(raw[start : start + size])
        offset = start + size
    return b"".join(chunks)


def clean_line(line: str) -> str:
    """Remove colour codes, control bytes and surrounding whitespace."""
    return CONTROL_CHARS.sub("", strip_ansi_codes(line)).strip()


def split_timestamp(line: str) -> tuple[Optional[str], str]:
    """Split the engine's RFC 3339 prefix from a log line, if present."""
    head, _, rest = line.partition(" ")
    if parse_docker_timestamp(head) is not None:
        return head, rest
    return None, line


def parse_log_lines(
    raw: Union[bytes, str], service: str, timestamps: bool = True
) -> list[LogLine]:
    """Turn raw engine log output into clean log lines.

    Args:
        raw: Log bytes as returned by the engine.
        service: Logical service name stamped on every line.
        timestamps: Whether lines carry the engine timestamp prefix.

    Returns:
        Non-empty log lines, oldest first.
    """
    if not raw:
        return []
    if isinstance(raw, bytes):
        raw = demultiplex(raw).decode("utf-8", errors="replace")

    lines = []
    for line in raw.splitlines():
        text = clean_line(line)
        if not text:
            continue
        timestamp = None
        if timestamps:
            timestamp, text = split_timestamp(text)
            text = text.strip()
            if not text:
                continue
        lines.append(LogLine(service=service, timestamp=timestamp, text=text))
    return lines


class LogStream:
    """Async iterator over a follow-mode engine log stream.

    Reads happen in a worker thread. ``close()`` closes the engine stream,
    which unblocks a pending read; iteration then stops.
    """

    def __init__(
        self,
        service: str,
        stream,
        on_close: Optional[Callable[["LogStream"], None]] = None,
    ):
        self.service = service
        self._stream = stream
        self._on_close = on_close
        self._pending = ""
        self._buffer: list[LogLine] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "LogStream":
        return self

    async def __anext__(self) -> LogLine:
        while not self._buffer:
            if self._closed:
                raise StopAsyncIteration
            try:
                chunk = await asyncio.to_thread(next, self._stream, None)
            except Exception as e:
                if self._closed:
                    raise StopAsyncIteration from None
                logger.warning(f"Log stream for '{self.service}' failed: {e}")
                self.close()
                raise
            if chunk is None:
                self._flush()
                self.close()
                if not self._buffer:
                    raise StopAsyncIteration
                break
            self._feed(chunk)
        return self._buffer.pop(0)

    def _feed(self, chunk: Union[bytes, str]) -> None:
        if isinstance(chunk, bytes):
            chunk = demultiplex(chunk).decode("utf-8", errors="replace")
        self._pending += chunk
        *complete, self._pending = self._pending.split("\n")
        if complete:
            self._buffer.extend(parse_log_lines("\n".join(complete), self.service))

    def _flush(self) -> None:
        if self._pending:
            self._buffer.extend(parse_log_lines(self._pending, self.service))
            self._pending = ""

    def close(self) -> None:
        """Close the engine stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            self._stream.close()
        except Exception as e:
            logger.debug(f"Error closing log stream for '{self.service}': {e}")
        if self._on_close is not None:
            self._on_close(self)
        logger.info(f"Closed log stream for '{self.service}'")


class LogRetriever:
    """Fetches recent container logs and opens follow-mode streams."""

    def __init__(
        self,
        registry: ServiceRegistry,
        docker_client: Optional[DockerClient],
        settings: Optional[LogSettings] = None,
    ):
        self.registry = registry
        self.docker_client = docker_client
        self.settings = settings or LogSettings()
        self._streams: set[LogStream] = set()

    @property
    def open_stream_count(self) -> int:
        """Number of streams opened and not yet closed."""
        return len(self._streams)

    def clamp_tail(self, tail: Optional[int]) -> int:
        """Clamp a requested line count to ``1..max_tail``."""
        if tail is None:
            tail = self.settings.default_tail
        return max(1, min(int(tail), self.settings.max_tail))

    def _require_client(self) -> DockerClient:
        if self.docker_client is None:
            raise EngineUnavailable("Docker client not available")
        return self.docker_client

    async def fetch_recent(
        self,
        service: str,
        tail: Optional[int] = None,
        since: Optional[int] = None,
        timestamps: bool = True,
    ) -> list[LogLine]:
        """Fetch the last lines a service has logged.

        Args:
            service: Logical service name.
            tail: Lines to return. Clamped, never rejected.
            since: Only lines newer than this Unix timestamp.
            timestamps: Split the engine timestamp into ``LogLine.timestamp``.

        Returns:
            At most ``tail`` cleaned log lines, oldest first.

        Raises:
            InvalidService: If the service is not registered.
            ContainerNotFound: If the service has no container.
            EngineUnavailable: If the engine cannot be reached.
        """
        definition = self.registry.lookup(service)
        client = self._require_client()
        tail = self.clamp_tail(tail)

        try:
            raw = await asyncio.to_thread(
                client.get_container_logs,
                definition.container,
                tail=tail,
                since=since,
                timestamps=timestamps,
            )
        except NotFound:
            raise ContainerNotFound(definition.name, definition.container) from None
        except requests.exceptions.ConnectionError as e:
            raise EngineUnavailable(str(e)) from e

        lines = parse_log_lines(raw, definition.name, timestamps)
        return lines[-tail:]

    async def open_stream(self, service: str, tail: Optional[int] = None) -> LogStream:
        """Open a follow-mode stream starting with the last ``tail`` lines.

        Raises:
            InvalidService: If the service is not registered.
            ContainerNotFound: If the service has no container.
            EngineUnavailable: If the engine cannot be reached.
        """
        definition = self.registry.lookup(service)
        client = self._require_client()
        tail = self.clamp_tail(tail)

        try:
            raw_stream = await asyncio.to_thread(
                client.stream_container_logs, definition.container, tail=tail
            )
        except NotFound:
            raise ContainerNotFound(definition.name, definition.container) from None
        except requests.exceptions.ConnectionError as e:
            raise EngineUnavailable(str(e)) from e

        stream = LogStream(definition.name, raw_stream, on_close=self._streams.discard)
        self._streams.add(stream)
        logger.info(f"Opened log stream for '{definition.name}' (tail={tail})")
        return stream

    def close_all(self) -> None:
        """Close every stream that is still open."""
        for stream in list(self._streams):
            stream.close()
