"""Bridge between HTTP request/response streams and git service processes"""

import asyncio
import os
import time
from abc import ABC, abstractmethod
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

from starlette.requests import ClientDisconnect

from gitgate.core.exceptions import NotFoundError, ToolInvocationError
from gitgate.infrastructure.git_protocol import GitService
from gitgate.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Environment variables passed through to git; everything else is dropped
PASSTHROUGH_ENV_PREFIXES = ("PATH", "HOME", "USER", "LANG", "LC_", "TMPDIR")

DisconnectCheck = Callable[[], Awaitable[bool]]


class BridgeState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SPAWNED = "spawned"
    STREAMING = "streaming"
    DRAINING = "draining"
    EXITED = "exited"
    RESPONDED = "responded"


@dataclass
class ServiceResult:
    output: bytes
    return_code: Optional[int]
    stderr: str = ""
    state: BridgeState = BridgeState.EXITED
    input_truncated: bool = False

    @property
    def succeeded(self) -> bool:
        return self.return_code == 0


class GitBackend(ABC):
    """The two operations the HTTP layer needs from git"""

    @abstractmethod
    async def advertise(self, service: GitService, repository_path: Path) -> bytes:
        """Return the raw, already pkt-line framed ref advertisement"""

    @abstractmethod
    async def run(
        self,
        service: GitService,
        repository_path: Path,
        body: AsyncIterator[bytes],
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> ServiceResult:
        """
        Feed ``body`` to a stateless-rpc service and collect its output.

        Raises:
            ClientDisconnect: the client went away before the output was complete
        """


def create_git_environment(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    env = {
        k: v
        for k, v in os.environ.items()
        if k.startswith(PASSTHROUGH_ENV_PREFIXES)
    }
    if extra:
        env.update(extra)
    return env


class GitServiceProcess:
    """One ``git <service> --stateless-rpc`` child and its pipes"""

    def __init__(
        self,
        git_binary: str,
        repository_path: Path,
        service: GitService,
        terminate_grace: float = 5.0,
        chunk_size: int = 65536,
        hook_environment: Optional[Dict[str, str]] = None,
    ):
        self.git_binary = git_binary
        self.repository_path = repository_path
        self.service = service
        self.terminate_grace = terminate_grace
        self.chunk_size = chunk_size
        self.hook_environment = hook_environment or {}
        self.process: Optional[asyncio.subprocess.Process] = None
        self.start_time: Optional[float] = None
        self.stdout_buffer = bytearray()
        self.stderr_buffer = bytearray()
        self.state = BridgeState.IDLE

    def transition(self, state: BridgeState) -> None:
        logger.debug(
            "git_service_state",
            service=self.service.value,
            from_state=self.state.value,
            to_state=state.value,
        )
        self.state = state

    def _create_environment(self) -> Dict[str, str]:
        # Relative core.hooksPath resolves against the bare repository,
        # so receive-pack runs <repo>/hooks/pre-receive
        return create_git_environment(
            {
                **self.hook_environment,
                "GIT_CONFIG_COUNT": "1",
                "GIT_CONFIG_KEY_0": "core.hooksPath",
                "GIT_CONFIG_VALUE_0": "hooks",
            }
        )

    async def start(self) -> None:
        try:
            self.process = await asyncio.create_subprocess_exec(
                self.git_binary,
                self.service.subcommand,
                "--stateless-rpc",
                ".",
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.repository_path),
                env=self._create_environment(),
                start_new_session=True,
            )
        except OSError as e:
            logger.error(
                "git_service_spawn_failed",
                service=self.service.value,
                repository=str(self.repository_path),
                error=str(e),
            )
            raise ToolInvocationError(
                f"Failed to spawn {self.service.value}", details={"error": str(e)}
            )

        self.start_time = time.monotonic()
        self.transition(BridgeState.SPAWNED)
        logger.info(
            "git_service_started",
            service=self.service.value,
            repository=str(self.repository_path),
            pid=self.process.pid,
        )

    async def write_input(self, data: bytes) -> None:
        """
        Raises:
            BrokenPipeError, ConnectionResetError: the child closed its stdin
        """
        if not self.process or not self.process.stdin:
            raise ToolInvocationError("Process not started or stdin not available")

        self.process.stdin.write(data)
        await self.process.stdin.drain()

    async def close_input(self) -> None:
        """Close stdin to signal end of input"""
        if self.process and self.process.stdin and not self.process.stdin.is_closing():
            self.process.stdin.close()
            with suppress(BrokenPipeError, ConnectionResetError):
                await self.process.stdin.wait_closed()

    async def read_stdout(self) -> bytes:
        return await self._drain(self.process.stdout, self.stdout_buffer, "stdout")

    async def read_stderr(self) -> str:
        data = await self._drain(self.process.stderr, self.stderr_buffer, "stderr")
        return data.decode("utf-8", errors="replace")

    async def _drain(
        self, stream: Optional[asyncio.StreamReader], buffer: bytearray, name: str
    ) -> bytes:
        if stream is None:
            return bytes(buffer)
        try:
            while True:
                chunk = await stream.read(self.chunk_size)
                if not chunk:
                    break
                buffer.extend(chunk)
        except OSError as e:
            logger.error("git_service_read_error", stream=name, error=str(e))
        return bytes(buffer)

    async def wait(self) -> Optional[int]:
        if not self.process:
            return None

        return_code = await self.process.wait()
        self.transition(BridgeState.EXITED)
        duration = time.monotonic() - self.start_time if self.start_time else 0
        logger.info(
            "git_service_completed",
            service=self.service.value,
            return_code=return_code,
            duration=round(duration, 3),
        )
        return return_code

    async def terminate(self) -> None:
        """Terminate the child, escalating to SIGKILL after the grace period"""
        if not self.process or self.process.returncode is not None:
            return

        try:
            self.process.terminate()
            try:
                await asyncio.wait_for(self.process.wait(), timeout=self.terminate_grace)
            except asyncio.TimeoutError:
                self.process.kill()
                await self.process.wait()
        except ProcessLookupError:
            # Already exited
            pass

        logger.info("git_service_terminated", service=self.service.value, pid=self.process.pid)


class GitProcessBridge(GitBackend):
    """Runs the real git executable"""

    def __init__(
        self,
        git_binary: str = "git",
        terminate_grace: float = 5.0,
        hook_environment: Optional[Dict[str, str]] = None,
        disconnect_poll_interval: float = 1.0,
    ):
        """
        Args:
            hook_environment: extra variables for receive-pack, which hands
                them on to the pre-receive hook
            disconnect_poll_interval: seconds between client connection checks
                while the child is still producing output
        """
        self.git_binary = git_binary
        self.terminate_grace = terminate_grace
        self.disconnect_poll_interval = disconnect_poll_interval
        self.hook_environment = hook_environment or {}

    async def advertise(self, service: GitService, repository_path: Path) -> bytes:
        try:
            process = await asyncio.create_subprocess_exec(
                self.git_binary,
                service.subcommand,
                "--stateless-rpc",
                "--advertise-refs",
                str(repository_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=create_git_environment(),
            )
        except OSError as e:
            logger.error("git_advertise_spawn_failed", service=service.value, error=str(e))
            raise ToolInvocationError(
                f"Failed to execute {service.value}", details={"error": str(e)}
            )

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            stderr_text = stderr.decode("utf-8", errors="replace").strip()
            logger.error(
                "git_advertise_failed",
                service=service.value,
                repository=str(repository_path),
                return_code=process.returncode,
                stderr=stderr_text,
            )
            raise ToolInvocationError(
                f"{service.value} exited with status {process.returncode}",
                details={"stderr": stderr_text},
            )

        return stdout

    async def run(
        self,
        service: GitService,
        repository_path: Path,
        body: AsyncIterator[bytes],
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> ServiceResult:
        process = GitServiceProcess(
            self.git_binary,
            repository_path,
            service,
            terminate_grace=self.terminate_grace,
            hook_environment=self.hook_environment,
        )
        process.transition(BridgeState.VALIDATING)
        if not repository_path.is_dir():
            # Deleted between lookup and spawn
            raise NotFoundError("Repository", details={"path": str(repository_path)})
        await process.start()

        # Drain both pipes while stdin is fed so a chatty child cannot block on a full pipe
        stdout_task = asyncio.create_task(process.read_stdout())
        stderr_task = asyncio.create_task(process.read_stderr())
        finished = False

        try:
            truncated = await self._forward_body(process, body)
            process.transition(BridgeState.DRAINING)

            output = await self._await_output(process, stdout_task, is_disconnected)
            stderr = await stderr_task
            try:
                return_code = await process.wait()
            except OSError as e:
                logger.error("git_service_wait_failed", service=service.value, error=str(e))
                return_code = None
            finished = True
        finally:
            if not finished:
                logger.warning(
                    "git_service_aborted",
                    service=service.value,
                    repository=str(repository_path),
                )
                await process.terminate()
                stdout_task.cancel()
                stderr_task.cancel()

        if stderr:
            logger.warning("git_service_stderr", service=service.value, stderr=stderr)
        if return_code != 0:
            logger.error(
                "git_service_error",
                service=service.value,
                return_code=return_code,
                stderr=stderr,
            )

        return ServiceResult(
            output=output,
            return_code=return_code,
            stderr=stderr,
            state=process.state,
            input_truncated=truncated,
        )

    async def _forward_body(self, process: GitServiceProcess, body: AsyncIterator[bytes]) -> bool:
        """Copy body chunks to stdin as they arrive; returns True if the child stopped reading"""
        process.transition(BridgeState.STREAMING)
        truncated = False
        try:
            async for chunk in body:
                if not chunk:
                    continue
                try:
                    await process.write_input(chunk)
                except (BrokenPipeError, ConnectionResetError) as e:
                    logger.warning(
                        "git_service_stdin_closed",
                        service=process.service.value,
                        error=str(e),
                    )
                    truncated = True
                    break
        finally:
            await process.close_input()

        return truncated

    async def _await_output(
        self,
        process: GitServiceProcess,
        stdout_task: "asyncio.Task[bytes]",
        is_disconnected: Optional[DisconnectCheck],
    ) -> bytes:
        if is_disconnected is None:
            return await stdout_task

        while True:
            done, _ = await asyncio.wait({stdout_task}, timeout=self.disconnect_poll_interval)
            if done:
                return stdout_task.result()
            if await is_disconnected():
                logger.warning(
                    "git_client_gone_while_draining",
                    service=process.service.value,
                    buffered=len(process.stdout_buffer),
                )
                raise ClientDisconnect()
