"""Runs the Next.js production build and classifies the result."""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import APP_DIR, get_settings
from .sandbox_manager import CommandTimeoutError, SandboxHandle
from .sandbox_ops import CommandRunner

logger = logging.getLogger(__name__)

BUILD_COMMAND = "npm run build 2>&1"


@dataclass
class BuildOutcome:
    success: bool
    diagnostic_text: str = ""


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


class BuildChecker:
    """Build classification by exit code; diagnostics are bounded for prompting."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        timeout: Optional[int] = None,
        diagnostic_limit: Optional[int] = None,
    ):
        settings = get_settings()
        self.runner = runner or CommandRunner()
        self.timeout = timeout or settings.build_timeout
        self.diagnostic_limit = diagnostic_limit or settings.diagnostic_limit

    async def check(self, handle: SandboxHandle) -> BuildOutcome:
        try:
            result = await self.runner.run(handle, BUILD_COMMAND, cwd=APP_DIR, timeout=self.timeout)
        except CommandTimeoutError as e:
            logger.warning(f"[{handle.id}] Build timed out")
            return BuildOutcome(success=False, diagnostic_text=f"Build timed out: {e}")

        if result.success:
            logger.info(f"[{handle.id}] Build succeeded")
            return BuildOutcome(success=True)

        logger.info(f"[{handle.id}] Build failed with exit code {result.exit_code}")
        return BuildOutcome(
            success=False,
            diagnostic_text=truncate(result.output, self.diagnostic_limit),
        )
