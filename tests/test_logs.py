"""Unit tests for log parsing, retrieval and streaming."""

import asyncio

import pytest
from docker.errors import NotFound

from openclaw_gateway.errors import ContainerNotFound, EngineUnavailable, InvalidService
from openclaw_gateway.logs import (
    LogRetriever,
    demultiplex,
    parse_log_lines,
    split_timestamp,
)
from openclaw_gateway.models import LogSettings

from tests.factories import FakeEngineStream, frame


@pytest.fixture
def retriever(registry, mock_docker_client):
    return LogRetriever(registry, mock_docker_client, LogSettings())


# Parsing


def test_demultiplex_strips_frame_headers():
    raw = frame(b"first line\n") + frame(b"error line\n", stream=2)

    assert demultiplex(raw) == b"first line\nerror line\n"


def test_demultiplex_leaves_plain_output():
    assert demultiplex(b"plain tty output\n") == b"plain tty output\n"


def test_demultiplex_keeps_truncated_tail():
    raw = frame(b"complete\n") + b"trailing"

    assert demultiplex(raw) == b"complete\ntrailing"


def test_parse_log_lines_cleans_text():
    """Test colour codes, control bytes and blank lines are removed."""
    raw = frame(
        b"2026-03-01T11:00:00.000000001Z \x1b[32mReady to accept connections\x1b[0m\n"
        b"2026-03-01T11:00:01.000000001Z   \n"
        b"2026-03-01T11:00:02.000000001Z bell\x07 rung\n"
    )

    lines = parse_log_lines(raw, "redis")

    assert [line.text for line in lines] == ["Ready to accept connections", "bell rung"]
    assert lines[0].timestamp == "2026-03-01T11:00:00.000000001Z"
    assert lines[0].service == "redis"


def test_parse_log_lines_without_timestamps():
    lines = parse_log_lines(b"GET / 200\n\nGET /health 200\n", "nginx", timestamps=False)

    assert [line.text for line in lines] == ["GET / 200", "GET /health 200"]
    assert all(line.timestamp is None for line in lines)


def test_split_timestamp_ignores_non_timestamp_prefix():
    assert split_timestamp("starting server") == (None, "starting server")


def test_parse_empty_output():
    assert parse_log_lines(b"", "redis") == []


# fetch_recent


@pytest.mark.asyncio
async def test_fetch_recent(retriever, mock_docker_client):
    mock_docker_client.get_container_logs.return_value = frame(
        b"2026-03-01T11:00:00Z one\n2026-03-01T11:00:01Z two\n"
    )

    lines = await retriever.fetch_recent("redis", tail=50)

    assert [line.text for line in lines] == ["one", "two"]
    mock_docker_client.get_container_logs.assert_called_once_with(
        "openclaw-redis", tail=50, since=None, timestamps=True
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("requested, expected", [(0, 1), (-5, 1), (50000, 10000), (None, 100)])
async def test_fetch_recent_clamps_tail(retriever, mock_docker_client, requested, expected):
    """Test out-of-range tails are clamped, not rejected."""
    mock_docker_client.get_container_logs.return_value = b""

    await retriever.fetch_recent("redis", tail=requested)

    assert mock_docker_client.get_container_logs.call_args.kwargs["tail"] == expected


@pytest.mark.asyncio
async def test_fetch_recent_caps_line_count(retriever, mock_docker_client):
    mock_docker_client.get_container_logs.return_value = b"a\nb\nc\nd\n"

    lines = await retriever.fetch_recent("redis", tail=2, timestamps=False)

    assert [line.text for line in lines] == ["c", "d"]


@pytest.mark.asyncio
async def test_fetch_recent_missing_container(retriever, mock_docker_client):
    mock_docker_client.get_container_logs.side_effect = NotFound("gone")

    with pytest.raises(ContainerNotFound) as exc_info:
        await retriever.fetch_recent("redis")

    assert exc_info.value.service == "redis"


@pytest.mark.asyncio
async def test_fetch_recent_unknown_service(retriever, mock_docker_client):
    with pytest.raises(InvalidService):
        await retriever.fetch_recent("mysql")

    mock_docker_client.get_container_logs.assert_not_called()


@pytest.mark.asyncio
async def test_fetch_recent_without_engine(registry):
    retriever = LogRetriever(registry, None)

    with pytest.raises(EngineUnavailable):
        await retriever.fetch_recent("redis")


# Streaming


@pytest.mark.asyncio
async def test_stream_yields_lines_across_chunks(retriever, mock_docker_client):
    """Test a line split over two chunks is delivered once, whole."""
    engine_stream = FakeEngineStream()
    mock_docker_client.stream_container_logs.return_value = engine_stream
    engine_stream.push(b"2026-03-01T11:00:00Z hello wo")
    engine_stream.push(b"rld\n2026-03-01T11:00:01Z second\n")

    stream = await retriever.open_stream("redis", tail=10)
    first = await stream.__anext__()
    second = await stream.__anext__()
    stream.close()

    assert first.text == "hello world"
    assert second.text == "second"
    mock_docker_client.stream_container_logs.assert_called_once_with("openclaw-redis", tail=10)


@pytest.mark.asyncio
async def test_close_unblocks_pending_read(retriever, mock_docker_client):
    engine_stream = FakeEngineStream()
    mock_docker_client.stream_container_logs.return_value = engine_stream
    stream = await retriever.open_stream("redis")

    pending = asyncio.create_task(stream.__anext__())
    await asyncio.sleep(0.05)
    stream.close()

    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(pending, timeout=2)


@pytest.mark.asyncio
async def test_close_returns_handle_count_to_baseline(retriever, mock_docker_client):
    """Test every opened stream is released once closed."""
    streams = [FakeEngineStream(), FakeEngineStream()]
    mock_docker_client.stream_container_logs.side_effect = streams
    baseline = retriever.open_stream_count

    first = await retriever.open_stream("redis")
    second = await retriever.open_stream("prometheus")
    assert retriever.open_stream_count == baseline + 2

    first.close()
    first.close()
    second.close()

    assert retriever.open_stream_count == baseline
    assert [s.close_calls for s in streams] == [1, 1]
    assert first.closed and second.closed


@pytest.mark.asyncio
async def test_stream_ends_when_engine_stream_ends(retriever, mock_docker_client):
    engine_stream = FakeEngineStream()
    mock_docker_client.stream_container_logs.return_value = engine_stream
    engine_stream.push(b"last words")
    engine_stream.push(None)

    stream = await retriever.open_stream("redis")
    lines = [line async for line in stream]

    assert [line.text for line in lines] == ["last words"]
    assert retriever.open_stream_count == 0


@pytest.mark.asyncio
async def test_open_stream_missing_container(retriever, mock_docker_client):
    mock_docker_client.stream_container_logs.side_effect = NotFound("gone")

    with pytest.raises(ContainerNotFound):
        await retriever.open_stream("redis")

    assert retriever.open_stream_count == 0
