"""
E2B sandbox pool for the sketch-to-UI builder.

This module tracks live sandboxes (SandboxHandle), provisions new ones from the
nextjs-shadcn template, reconnects to existing ones by id, and keeps at most one
pre-warmed sandbox ready for the next generation request.

Note: E2B SDK is synchronous, so we use asyncio.to_thread() to run
blocking operations without blocking the event loop.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from e2b_code_interpreter import Sandbox

from .config import APP_DIR, DEV_SERVER_PORT, Settings, get_settings

logger = logging.getLogger(__name__)


class SandboxError(Exception):
    """Base exception for sandbox-related errors."""
    pass


class SandboxProvisionError(SandboxError):
    """Raised when a sandbox cannot be created or its dev server started."""
    pass


class SandboxNotFoundError(SandboxError):
    """Raised when connecting to a sandbox id fails."""
    pass


class SandboxFileOperationError(SandboxError):
    """Raised when file operations fail."""
    pass


class SandboxCommandError(SandboxError):
    """Raised when a command cannot be executed (transport failure)."""
    pass


class CommandTimeoutError(SandboxCommandError):
    """Raised when a bounded command exceeds its timeout."""
    pass


class SandboxState(Enum):
    """Lifecycle state of a sandbox handle."""
    PROVISIONING = "provisioning"
    READY = "ready"
    REUSED = "reused"
    TERMINATED = "terminated"


@dataclass
class SandboxHandle:
    """Reference to one remote E2B sandbox."""
    id: str
    endpoint: str
    state: SandboxState = SandboxState.PROVISIONING
    sandbox: Any = field(default=None, repr=False)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sandboxId": self.id,
            "url": self.endpoint,
            "state": self.state.value,
            "createdAt": self.created_at.isoformat(),
        }


LogCallback = Optional[Callable[[str], None]]


class SandboxPool:
    """
    Tracks live sandboxes and the single pre-warmed slot.

    The pool does not serialize access to one sandbox: concurrent requests that
    name the same sandbox id may race on file writes.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        sandbox_cls: Any = Sandbox,
        grace_period: Optional[float] = None,
    ):
        self._settings = settings or get_settings()
        self._sandbox_cls = sandbox_cls
        self._grace_period = (
            grace_period if grace_period is not None else self._settings.dev_server_grace_period
        )
        self._handles: Dict[str, SandboxHandle] = {}
        self._prewarmed_id: Optional[str] = None
        self._prewarm_lock = asyncio.Lock()

        logger.info(
            f"SandboxPool initialized with template='{self._settings.template}', "
            f"timeout={self._settings.sandbox_timeout}s"
        )

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def _create_sandbox_sync(self) -> Any:
        """Synchronous sandbox creation."""
        template = self._settings.template
        logger.info(f"Calling Sandbox.create(template='{template}', timeout={self._settings.sandbox_timeout})")
        sandbox = self._sandbox_cls.create(template=template, timeout=self._settings.sandbox_timeout)
        logger.info(f"Sandbox created: {sandbox.sandbox_id}")
        return sandbox

    def _endpoint_for(self, sandbox: Any) -> str:
        host = sandbox.get_host(DEV_SERVER_PORT)
        return f"https://{host}"

    async def _start_dev_server(self, sandbox: Any) -> None:
        """Start `npm run dev` in the background and wait the fixed grace period.

        The dev server must keep running after this request returns, so the
        command is started with background=True and no timeout and its handle is
        never awaited.
        """
        logger.info(f"[{sandbox.sandbox_id}] Starting dev server in {APP_DIR}")
        await asyncio.to_thread(
            sandbox.commands.run,
            "npm run dev",
            cwd=APP_DIR,
            background=True,
            timeout=0,
        )
        logger.info(f"[{sandbox.sandbox_id}] Waiting {self._grace_period}s for dev server to start...")
        await asyncio.sleep(self._grace_period)

    async def provision(self, on_log: LogCallback = None) -> SandboxHandle:
        """Create a brand-new sandbox and start its dev server."""
        _emit(on_log, "🚀 Creating new sandbox...")
        try:
            sandbox = await asyncio.to_thread(self._create_sandbox_sync)
        except Exception as e:
            error_msg = f"Failed to create sandbox with template '{self._settings.template}': {str(e)}"
            logger.error(error_msg, exc_info=True)
            raise SandboxProvisionError(error_msg) from e

        # Registered only once the dev server is up
        handle = SandboxHandle(id=sandbox.sandbox_id, endpoint="", sandbox=sandbox)

        try:
            _emit(on_log, "🚀 Starting dev server...")
            await self._start_dev_server(sandbox)
            handle.endpoint = self._endpoint_for(sandbox)
        except asyncio.CancelledError:
            logger.warning(f"[{handle.id}] Provisioning cancelled, killing sandbox")
            handle.state = SandboxState.TERMINATED
            asyncio.get_running_loop().run_in_executor(None, self._kill_sync, handle.id, sandbox)
            raise
        except Exception as e:
            error_msg = f"[{handle.id}] Failed to start dev server: {str(e)}"
            logger.error(error_msg, exc_info=True)
            handle.state = SandboxState.TERMINATED
            try:
                await asyncio.to_thread(self._kill_sync, handle.id, sandbox)
            except Exception as kill_error:
                logger.warning(f"[{handle.id}] Failed to kill sandbox (ignored): {kill_error}")
            raise SandboxProvisionError(error_msg) from e

        handle.state = SandboxState.READY
        self._handles[handle.id] = handle
        _emit(on_log, "✅ Dev server ready")
        logger.info(f"[{handle.id}] Sandbox ready at {handle.endpoint}")
        return handle

    async def connect(self, sandbox_id: str) -> SandboxHandle:
        """Connect to an existing sandbox by id (no fallback)."""
        try:
            sandbox = await asyncio.to_thread(self._sandbox_cls.connect, sandbox_id)
        except Exception as e:
            error_msg = f"Sandbox '{sandbox_id}' not found or expired: {str(e)}"
            logger.warning(error_msg)
            raise SandboxNotFoundError(error_msg) from e

        handle = self._handles.get(sandbox_id)
        if handle is None:
            handle = SandboxHandle(
                id=sandbox.sandbox_id,
                endpoint=self._endpoint_for(sandbox),
                sandbox=sandbox,
            )
            self._handles[handle.id] = handle
        else:
            handle.sandbox = sandbox
        handle.state = SandboxState.REUSED
        logger.info(f"[{handle.id}] Connected to existing sandbox")
        return handle

    async def _is_healthy(self, handle: SandboxHandle) -> bool:
        try:
            return bool(await asyncio.to_thread(handle.sandbox.is_running))
        except Exception as e:
            logger.warning(f"[{handle.id}] Health check failed: {e}")
            return False

    async def create_or_reuse(
        self,
        existing_id: Optional[str] = None,
        on_log: LogCallback = None,
    ) -> SandboxHandle:
        """
        Return a sandbox for one generation request.

        Args:
            existing_id: Sandbox to reconnect to. Falls back to a new sandbox
                when the provider rejects it.
            on_log: Optional callback receiving human-readable progress lines.

        Raises:
            SandboxProvisionError: If a new sandbox is needed and cannot be created.
        """
        if existing_id:
            _emit(on_log, "📝 Connecting to existing sandbox...")
            try:
                handle = await self.connect(existing_id)
                _emit(on_log, "✅ Connected to sandbox")
                return handle
            except SandboxNotFoundError:
                _emit(on_log, f"⚠️ Could not connect to sandbox {existing_id}, creating new sandbox...")
                return await self.provision(on_log)

        prewarmed = self.get_prewarmed()
        if prewarmed is not None:
            if await self._is_healthy(prewarmed):
                prewarmed.state = SandboxState.REUSED
                _emit(on_log, "⚡ Using pre-warmed sandbox")
                logger.info(f"[{prewarmed.id}] Reusing pre-warmed sandbox")
                return prewarmed
            logger.warning(f"[{prewarmed.id}] Pre-warmed sandbox is not running, discarding it")
            self.clear_prewarmed()
            self._forget(prewarmed.id)

        return await self.provision(on_log)

    async def prewarm(self, on_log: LogCallback = None) -> SandboxHandle:
        """Provision the pre-warmed sandbox, or return the existing one unchanged."""
        async with self._prewarm_lock:
            existing = self.get_prewarmed()
            if existing is not None:
                logger.debug(f"[{existing.id}] Pre-warmed sandbox already exists")
                return existing

            _emit(on_log, "🚀 Pre-warming sandbox...")
            handle = await self.provision(on_log)
            self._prewarmed_id = handle.id
            logger.info(f"[{handle.id}] Sandbox pre-warmed")
            return handle

    # ------------------------------------------------------------------
    # Pre-warm slot
    # ------------------------------------------------------------------

    def get_prewarmed(self) -> Optional[SandboxHandle]:
        """Return the pre-warmed handle, if any."""
        if not self._prewarmed_id:
            return None
        return self._handles.get(self._prewarmed_id)

    def clear_prewarmed(self) -> None:
        """Forget the pre-warmed slot without killing the sandbox."""
        self._prewarmed_id = None

    # ------------------------------------------------------------------
    # Teardown and bookkeeping
    # ------------------------------------------------------------------

    def _forget(self, sandbox_id: str) -> Optional[SandboxHandle]:
        if self._prewarmed_id == sandbox_id:
            self._prewarmed_id = None
        return self._handles.pop(sandbox_id, None)

    def _kill_sync(self, sandbox_id: str, sandbox: Any) -> None:
        if sandbox is None:
            sandbox = self._sandbox_cls.connect(sandbox_id)
        sandbox.kill()

    async def destroy(self, sandbox_id: str) -> bool:
        """Kill a sandbox. Errors are logged and swallowed (it may already be gone)."""
        handle = self._forget(sandbox_id)
        sandbox = handle.sandbox if handle else None
        try:
            logger.info(f"[{sandbox_id}] Destroying sandbox")
            await asyncio.to_thread(self._kill_sync, sandbox_id, sandbox)
            logger.info(f"[{sandbox_id}] Sandbox destroyed successfully")
            return True
        except Exception as e:
            logger.warning(f"[{sandbox_id}] Failed to destroy sandbox (ignored): {e}")
            return False
        finally:
            if handle is not None:
                handle.state = SandboxState.TERMINATED

    async def destroy_all(self) -> None:
        for sandbox_id in list(self._handles.keys()):
            await self.destroy(sandbox_id)

    def get(self, sandbox_id: str) -> Optional[SandboxHandle]:
        return self._handles.get(sandbox_id)

    def list_handles(self) -> List[SandboxHandle]:
        return list(self._handles.values())

    @property
    def prewarmed_id(self) -> Optional[str]:
        return self._prewarmed_id


def _emit(on_log: LogCallback, message: str) -> None:
    if on_log:
        on_log(message)
