"""docker compose invocation for the compose control backend."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable

from openclaw_gateway.errors import ActionTimeout, ExecutionFailed, InvalidAction, InvalidOption
from openclaw_gateway.models import ControlSettings, ServiceAction

logger = logging.getLogger(__name__)

# Closed sets. Anything outside them is rejected before a process is spawned.
COMPOSE_ACTIONS = frozenset(
    {
        ServiceAction.START,
        ServiceAction.STOP,
        ServiceAction.RESTART,
        ServiceAction.UP,
        ServiceAction.DOWN,
    }
)
COMPOSE_FLAGS = frozenset({"-d", "--detach", "--no-deps", "--force-recreate", "--remove-orphans"})

MULTI_STEP_ACTIONS = frozenset({ServiceAction.UP, ServiceAction.DOWN, ServiceAction.PULL})


@dataclass
class ComposeResult:
    """Completed compose invocation."""

    args: list[str]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        # compose reports progress on stderr
        return self.stdout or self.stderr


class ComposeRunner:
    """Runs allow-listed ``docker compose`` commands for a single service.

    Arguments are always passed as a vector, never through a shell. Each run
    has a hard timeout after which the process is killed and reaped.
    """

    def __init__(self, settings: ControlSettings):
        self.settings = settings

    def build_args(
        self, action: ServiceAction, service: str, flags: Iterable[str] = ()
    ) -> list[str]:
        """Build the argument vector for one compose command.

        Raises:
            InvalidAction: If the action is not a compose action.
            InvalidOption: If a flag is not allow-listed.
        """
        if action not in COMPOSE_ACTIONS:
            raise InvalidAction(getattr(action, "value", str(action)))

        flags = list(flags)
        for flag in flags:
            if flag not in COMPOSE_FLAGS:
                raise InvalidOption(flag, action.value)

        return [
            *self.settings.command,
            "-f",
            self.settings.compose_file,
            action.value,
            *flags,
            service,
        ]

    def timeout_for(self, action: ServiceAction) -> float:
        if action in MULTI_STEP_ACTIONS:
            return self.settings.multi_step_timeout
        return self.settings.lifecycle_timeout

    async def run(
        self, action: ServiceAction, service: str, flags: Iterable[str] = ()
    ) -> ComposeResult:
        """Run a compose command and wait for it.

        Returns:
            ComposeResult for a zero exit code.

        Raises:
            InvalidAction: If the action is not a compose action.
            InvalidOption: If a flag is not allow-listed.
            ExecutionFailed: If the process cannot start or exits nonzero.
            ActionTimeout: If the process outlives its timeout.
        """
        args = self.build_args(action, service, flags)
        timeout = self.timeout_for(action)
        logger.info(f"Running compose command: {args}")

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=self.settings.project_dir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start compose command {args}: {e}")
            raise ExecutionFailed(f"Failed to run {args[0]}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await _kill(process)
            logger.error(f"Compose command timed out after {timeout}s: {args}")
            raise ActionTimeout(
                f"{action.value} {service} timed out after {timeout:g}s", timeout
            ) from None
        except asyncio.CancelledError:
            await _kill(process)
            raise

        result = ComposeResult(
            args=args,
            exit_code=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if result.exit_code != 0:
            logger.error(f"Compose command exited with code {result.exit_code}: {result.stderr}")
            raise ExecutionFailed(
                f"Command exited with code {result.exit_code}",
                exit_code=result.exit_code,
                stderr=result.stderr,
            )
        return result


async def _kill(process: asyncio.subprocess.Process) -> None:
    """Kill a compose process and wait until it is reaped."""
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()
