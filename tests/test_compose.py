"""Unit tests for ComposeRunner."""

import asyncio
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from openclaw_gateway.compose import ComposeRunner
from openclaw_gateway.errors import (
    ActionTimeout,
    ExecutionFailed,
    InvalidAction,
    InvalidOption,
)
from openclaw_gateway.models import ControlSettings, ServiceAction


@pytest.fixture
def runner():
    return ComposeRunner(ControlSettings(compose_file="docker-compose.full.yml"))


def python_runner(script: str, **overrides) -> ComposeRunner:
    """A runner whose 'compose' command is a Python one-liner."""
    settings = ControlSettings(command=[sys.executable, "-c", script], **overrides)
    return ComposeRunner(settings)


def test_build_args(runner):
    """Test arguments form a vector with the service last."""
    args = runner.build_args(ServiceAction.UP, "redis", ["-d", "--no-deps"])

    assert args == [
        "docker",
        "compose",
        "-f",
        "docker-compose.full.yml",
        "up",
        "-d",
        "--no-deps",
        "redis",
    ]


def test_build_args_rejects_engine_only_actions(runner):
    with pytest.raises(InvalidAction):
        runner.build_args(ServiceAction.REMOVE, "redis")


def test_build_args_rejects_unlisted_flag(runner):
    with pytest.raises(InvalidOption):
        runner.build_args(ServiceAction.DOWN, "redis", ["--volumes"])


def test_timeouts(runner):
    assert runner.timeout_for(ServiceAction.START) == 60
    assert runner.timeout_for(ServiceAction.RESTART) == 60
    assert runner.timeout_for(ServiceAction.UP) == 120
    assert runner.timeout_for(ServiceAction.DOWN) == 120


@pytest.mark.asyncio
async def test_run_success():
    runner = python_runner("import sys; print(' '.join(sys.argv[1:]))")

    result = await runner.run(ServiceAction.STOP, "redis")

    assert result.exit_code == 0
    assert result.stdout.strip() == "-f docker-compose.full.yml stop redis"
    assert result.output == result.stdout


@pytest.mark.asyncio
async def test_run_nonzero_exit():
    runner = python_runner("import sys; sys.stderr.write('no such service'); sys.exit(3)")

    with pytest.raises(ExecutionFailed) as exc_info:
        await runner.run(ServiceAction.START, "redis")

    assert exc_info.value.exit_code == 3
    assert exc_info.value.stderr == "no such service"


@pytest.mark.asyncio
async def test_run_missing_binary():
    runner = ComposeRunner(ControlSettings(command=["/nonexistent/docker", "compose"]))

    with pytest.raises(ExecutionFailed):
        await runner.run(ServiceAction.START, "redis")


@pytest.mark.asyncio
async def test_run_timeout_kills_and_reaps():
    """Test a process that outlives its timeout is killed and waited for."""
    process = MagicMock()
    process.returncode = None

    async def hang():
        await asyncio.sleep(10)

    process.communicate = hang
    process.wait = AsyncMock(return_value=-9)

    runner = ComposeRunner(ControlSettings(lifecycle_timeout=0.05))
    with patch(
        "openclaw_gateway.compose.asyncio.create_subprocess_exec",
        AsyncMock(return_value=process),
    ):
        with pytest.raises(ActionTimeout) as exc_info:
            await runner.run(ServiceAction.RESTART, "redis")

    assert exc_info.value.timeout_s == 0.05
    process.kill.assert_called_once()
    process.wait.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_timeout_with_real_process():
    runner = python_runner("import time; time.sleep(30)", lifecycle_timeout=0.5)

    with pytest.raises(ActionTimeout):
        await runner.run(ServiceAction.START, "redis")
