"""
Command and file primitives executed inside an E2B sandbox.

CommandRunner and FileChannel borrow a SandboxHandle for a single call and never
keep it. Both run the synchronous E2B SDK in a worker thread.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from e2b import CommandExitException, TimeoutException

from .config import get_settings
from .sandbox_manager import (
    CommandTimeoutError,
    SandboxCommandError,
    SandboxFileOperationError,
    SandboxHandle,
)

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Captured output of one shell command."""
    stdout: str
    stderr: str
    exit_code: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        return f"{self.stdout or ''}{self.stderr or ''}"


class CommandRunner:
    """Runs bounded shell commands in a sandbox.

    A non-zero exit code is returned as a normal result. Only timeouts and
    transport failures raise.
    """

    def __init__(self, default_timeout: Optional[int] = None):
        self.default_timeout = default_timeout or get_settings().command_timeout

    async def run(
        self,
        handle: SandboxHandle,
        command: str,
        cwd: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        """Execute a shell command in the sandbox.

        Args:
            handle: Sandbox to run in
            command: Shell command to execute
            cwd: Working directory (absolute sandbox path)
            timeout: Command timeout in seconds (must be > 0)
        """
        timeout = timeout or self.default_timeout
        logger.info(
            f"[{handle.id}] Executing command: {command[:80]}{'...' if len(command) > 80 else ''} "
            f"(cwd={cwd}, timeout={timeout}s)"
        )

        try:
            exec_result = await asyncio.to_thread(
                handle.sandbox.commands.run,
                command,
                cwd=cwd,
                timeout=timeout,
            )
        except CommandExitException as e:
            exec_result = e
        except (TimeoutException, TimeoutError) as e:
            error_msg = f"[{handle.id}] Command timed out after {timeout}s: {command[:50]}"
            logger.warning(error_msg)
            raise CommandTimeoutError(error_msg) from e
        except Exception as e:
            error_msg = f"[{handle.id}] Failed to execute command '{command[:50]}': {str(e)}"
            logger.error(error_msg, exc_info=True)
            raise SandboxCommandError(error_msg) from e

        result = CommandResult(
            stdout=getattr(exec_result, "stdout", "") or "",
            stderr=getattr(exec_result, "stderr", "") or "",
            exit_code=getattr(exec_result, "exit_code", -1),
        )

        if result.success:
            logger.info(f"[{handle.id}] Command executed successfully: {command[:50]} (exit_code=0)")
        else:
            logger.warning(
                f"[{handle.id}] Command failed: {command[:50]} "
                f"(exit_code={result.exit_code}, stderr={result.stderr[:100]})"
            )
        return result


class FileChannel:
    """Reads, writes and lists files in a sandbox by absolute path.

    Each call is independent; there is no transaction across files.
    """

    async def write(self, handle: SandboxHandle, path: str, content: str) -> int:
        try:
            await asyncio.to_thread(handle.sandbox.files.write, path, content)
        except Exception as e:
            error_msg = f"[{handle.id}] Failed to write file to '{path}': {str(e)}"
            logger.error(error_msg, exc_info=True)
            raise SandboxFileOperationError(error_msg) from e

        size = len(content.encode("utf-8"))
        logger.info(f"[{handle.id}] Successfully wrote {size} bytes to {path}")
        return size

    async def read(self, handle: SandboxHandle, path: str) -> str:
        try:
            content = await asyncio.to_thread(handle.sandbox.files.read, path)
        except Exception as e:
            error_msg = f"[{handle.id}] Failed to read file from '{path}': {str(e)}"
            logger.error(error_msg, exc_info=True)
            raise SandboxFileOperationError(error_msg) from e

        logger.info(f"[{handle.id}] Successfully read {len(content)} bytes from {path}")
        return content

    async def list(self, handle: SandboxHandle, path: str) -> List[str]:
        try:
            entries = await asyncio.to_thread(handle.sandbox.files.list, path)
        except Exception as e:
            error_msg = f"[{handle.id}] Failed to list files in '{path}': {str(e)}"
            logger.error(error_msg, exc_info=True)
            raise SandboxFileOperationError(error_msg) from e

        names = [entry.name for entry in entries]
        logger.info(f"[{handle.id}] Found {len(names)} items in {path}")
        return names
