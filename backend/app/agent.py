"""
RepairAgent - tool-calling loop that drives a failing build to a passing one.

The agent converses with the model turn by turn. Each turn the model may request
any number of tool calls (read_file, write_file, run_command, list_files,
task_complete); they are dispatched in order against the sandbox and their
results are sent back in the next turn. The loop ends when the model calls
task_complete or the iteration ceiling is reached.

Iteration counting:
- A repair session continues the generation request, so the generation call is
  iteration 1 and every repair model turn adds one.
- The ceiling is min(MAX_ITERATIONS, start + MAX_REPAIR_ITERATIONS).

Reaching the ceiling is not an error: the caller gets the latest code written
to the component file and success=False.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .config import get_settings
from .llm import ImagePayload, ModelClient, ModelError
from .logging_config import get_session_logger
from .prompts.sketch_prompts import (
    CONTINUE_MESSAGE,
    EDIT_START_MESSAGE,
    REPAIR_START_MESSAGE,
    create_edit_prompt,
    create_repair_prompt,
)
from .sandbox_manager import SandboxHandle
from .sandbox_ops import CommandRunner, FileChannel
from .tools.sandbox_tools import TOOLS, create_tool_context, dispatch_tool

logger = logging.getLogger(__name__)

REPAIR_TEMPERATURE = 0.3

EventCallback = Optional[Callable[[str, Dict[str, Any]], None]]


@dataclass
class RepairSession:
    """State of one repair (or edit) conversation."""
    current_code: str
    iteration: int = 1
    max_iterations: int = 21
    task_complete: bool = False
    success: Optional[bool] = None
    completion_message: str = ""

    @property
    def exhausted(self) -> bool:
        return self.iteration >= self.max_iterations

    @property
    def succeeded(self) -> bool:
        return self.task_complete and bool(self.success)


class RepairAgent:
    """
    Autonomous build fixer backed by the Anthropic tool-calling API.

    Args:
        model: Model client (its session id is reused for logging)
        on_event: Callback receiving (event, data) for iteration/log/code events
        runner: Command runner used by run_command (injectable for tests)
        files: File channel used by read/write/list tools
    """

    def __init__(
        self,
        model: ModelClient,
        on_event: EventCallback = None,
        runner: Optional[CommandRunner] = None,
        files: Optional[FileChannel] = None,
    ):
        self.model = model
        self.session_id = model.session_id
        self.on_event = on_event
        self.runner = runner
        self.files = files
        self.settings = get_settings()
        self.slogger = get_session_logger(self.session_id) if self.session_id != "unknown" else None

    def _emit(self, event: str, data: Dict[str, Any]) -> None:
        if self.on_event:
            self.on_event(event, data)

    def _log(self, message: str, level: str = "info") -> None:
        data = {"message": message}
        if level != "info":
            data["level"] = level
        self._emit("log", data)

    def ceiling(self, start_iteration: int) -> int:
        return min(
            self.settings.max_iterations,
            start_iteration + self.settings.max_repair_iterations,
        )

    async def repair(
        self,
        handle: SandboxHandle,
        source: str,
        diagnostics: str,
        image: Optional[ImagePayload] = None,
        start_iteration: int = 1,
    ) -> RepairSession:
        """Fix build errors in the component, keeping its visual design."""
        session = RepairSession(
            current_code=source,
            iteration=start_iteration,
            max_iterations=self.ceiling(start_iteration),
        )
        system = create_repair_prompt(source, diagnostics)
        if self.slogger:
            self.slogger.log_agent("REPAIR_START", f"diagnostics_len={len(diagnostics)}, max={session.max_iterations}")
        return await self._run(handle, session, system, REPAIR_START_MESSAGE, image)

    async def edit(
        self,
        handle: SandboxHandle,
        source: str,
        request: str,
        image: Optional[ImagePayload] = None,
        diagnostics: str = "",
    ) -> RepairSession:
        """Apply a user's change request with the same tools and termination rules."""
        session = RepairSession(
            current_code=source,
            iteration=0,
            max_iterations=self.ceiling(0),
        )
        system = create_edit_prompt(source, request, diagnostics)
        if self.slogger:
            self.slogger.log_agent("EDIT_START", f"request_len={len(request)}, max={session.max_iterations}")
        return await self._run(handle, session, system, EDIT_START_MESSAGE, image)

    async def _run(
        self,
        handle: SandboxHandle,
        session: RepairSession,
        system: str,
        start_message: str,
        image: Optional[ImagePayload],
    ) -> RepairSession:
        conversation = self.model.conversation(system, TOOLS, temperature=REPAIR_TEMPERATURE)
        ctx = create_tool_context(
            handle,
            session,
            session_id=self.session_id,
            runner=self.runner,
            files=self.files,
            on_log=self._log,
            on_code=lambda code: self._emit("code", {"code": code}),
        )

        pending_results: List[Dict[str, Any]] = []
        first_turn = True

        while not session.task_complete and not session.exhausted:
            session.iteration += 1
            self._emit("iteration", {"current": session.iteration, "max": session.max_iterations})
            self._log(f"🤖 Agent iteration {session.iteration}...")

            content = list(pending_results)
            content.append({"type": "text", "text": start_message if first_turn else CONTINUE_MESSAGE})
            if first_turn and image is not None:
                content.append(image.to_block())
            first_turn = False

            try:
                turn = await conversation.send(content)
            except ModelError as e:
                logger.error(f"[{self.session_id}] Repair loop stopped: {e}")
                self._log(f"❌ Model request failed: {e}", "error")
                break

            if self.slogger:
                self.slogger.log_agent(
                    "TURN",
                    f"iteration={session.iteration}, tool_calls={[c.name for c in turn.tool_calls]}",
                )

            if not turn.tool_calls:
                if turn.text:
                    self._log(f"💬 {turn.text[:100]}...")
                pending_results = []
                continue

            pending_results = []
            for call in turn.tool_calls:
                result = await dispatch_tool(ctx, call)
                pending_results.append({
                    "type": "tool_result",
                    "tool_use_id": call.id,
                    "content": result,
                    "is_error": result.startswith("Error:"),
                })

        if not session.task_complete:
            logger.warning(f"[{self.session_id}] Repair ended without task_complete at iteration {session.iteration}")
            if session.exhausted:
                self._log("⚠️ Max iterations reached", "warning")
            else:
                self._log("⚠️ Agent stopped before completing the task", "warning")

        if self.slogger:
            self.slogger.log_agent(
                "END",
                f"iterations={session.iteration}, task_complete={session.task_complete}, success={session.success}",
            )
        return session
