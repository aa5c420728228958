"""
Sandbox tools for the repair agent.

TOOLS holds the Anthropic tool schemas; TOOL_HANDLERS maps each tool name to an
async handler `(ctx, args) -> str`. Handlers act on the sandbox borrowed through
ToolContext and return the text fed back to the model as the tool result.
dispatch_tool() never raises: any failure becomes an "Error: ..." result so the
model can see it and recover.
"""

import logging
import posixpath
import time
import traceback
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from ..config import APP_DIR, COMPONENT_PATH, get_settings
from ..llm import ToolCall
from ..logging_config import get_session_logger
from ..sandbox_manager import SandboxHandle
from ..sandbox_ops import CommandRunner, FileChannel
from ..security import check_command, check_path

if TYPE_CHECKING:
    from ..agent import RepairSession

logger = logging.getLogger(__name__)


TOOLS = [
    {
        "name": "read_file",
        "description": "Read the contents of a file in the sandbox.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Absolute file path"},
            },
            "required": ["path"],
        },
    },
    {
        "name": "write_file",
        "description": "Write content to a file in the sandbox, replacing it entirely.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Absolute file path"},
                "content": {"type": "string", "description": "Full file content"},
            },
            "required": ["path", "content"],
        },
    },
    {
        "name": "run_command",
        "description": "Run a shell command in the sandbox. Use for npm run build, npm install, npx shadcn add, etc.",
        "input_schema": {
            "type": "object",
            "properties": {
                "command": {"type": "string", "description": "Shell command to run"},
                "cwd": {"type": "string", "description": f"Working directory (default: {APP_DIR})"},
            },
            "required": ["command"],
        },
    },
    {
        "name": "list_files",
        "description": "List files in a directory.",
        "input_schema": {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Directory path"},
            },
            "required": ["path"],
        },
    },
    {
        "name": "task_complete",
        "description": "Call this when the build succeeds or you cannot make further progress.",
        "input_schema": {
            "type": "object",
            "properties": {
                "success": {"type": "boolean", "description": "Whether the build now succeeds"},
                "message": {"type": "string", "description": "Summary of what was fixed"},
            },
            "required": ["success", "message"],
        },
    },
]

BUILD_COMMANDS = ["npm run build", "next build"]


@dataclass
class ToolContext:
    """Everything a tool handler may touch during one repair session."""
    handle: SandboxHandle
    session: "RepairSession"
    runner: CommandRunner
    files: FileChannel
    session_id: str = "unknown"
    on_log: Optional[Callable[..., None]] = None
    on_code: Optional[Callable[[str], None]] = None
    output_limit: int = 4000

    def log(self, message: str, level: str = "info") -> None:
        if self.on_log:
            self.on_log(message, level)


def resolve_path(path: str) -> str:
    """Absolute sandbox path; relative paths are taken from the app directory."""
    if not path:
        raise ValueError("path is required")
    if not path.startswith("/"):
        path = posixpath.join(APP_DIR, path)
    return posixpath.normpath(path)


def _truncate_output(output: str, limit: int) -> str:
    if len(output) <= limit:
        return output
    return f"{output[:limit]}\n... (truncated {len(output) - limit} chars)"


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


async def read_file(ctx: ToolContext, args: Dict[str, Any]) -> str:
    path = resolve_path(args.get("path", ""))
    allowed, reason = check_path(path)
    if not allowed:
        return f"Error: {reason}"

    ctx.log(f"📖 Reading {path}...")
    return await ctx.files.read(ctx.handle, path)


async def write_file(ctx: ToolContext, args: Dict[str, Any]) -> str:
    path = resolve_path(args.get("path", ""))
    content = args.get("content")
    if not isinstance(content, str):
        return "Error: content must be a string"
    allowed, reason = check_path(path)
    if not allowed:
        return f"Error: {reason}"

    ctx.log(f"📝 Writing {path}...")
    await ctx.files.write(ctx.handle, path, content)

    if path == COMPONENT_PATH:
        ctx.session.current_code = content
        if ctx.on_code:
            ctx.on_code(content)
    return "File written successfully"


async def run_command(ctx: ToolContext, args: Dict[str, Any]) -> str:
    command = (args.get("command") or "").strip()
    if not command:
        return "Error: command is required"
    cwd = resolve_path(args.get("cwd") or APP_DIR)

    allowed, reason = check_command(command)
    if not allowed:
        ctx.log(f"🚫 {reason}", "warning")
        return f"Error: {reason}"

    ctx.log(f"⚡ Running: {command}")
    result = await ctx.runner.run(ctx.handle, f"{command} 2>&1", cwd=cwd)

    if result.success and any(build in command for build in BUILD_COMMANDS):
        # Only task_complete ends the loop
        ctx.log("✅ Build successful!", "success")

    output = _truncate_output(result.output, ctx.output_limit)
    return f"Exit code: {result.exit_code}\nOutput:\n{output}"


async def list_files(ctx: ToolContext, args: Dict[str, Any]) -> str:
    path = resolve_path(args.get("path") or APP_DIR)
    ctx.log(f"📁 Listing {path}...")
    names = await ctx.files.list(ctx.handle, path)
    return "\n".join(names)


async def task_complete(ctx: ToolContext, args: Dict[str, Any]) -> str:
    success = _as_bool(args.get("success", False))
    message = str(args.get("message") or "")

    ctx.session.task_complete = True
    ctx.session.success = success
    ctx.session.completion_message = message

    if success:
        ctx.log("✅ Agent completed successfully!", "success")
    else:
        logger.warning(f"[{ctx.session_id}] Agent gave up: {message}")
        ctx.log(f"⚠️ {message}", "warning")
    return "Task marked complete"


ToolHandler = Callable[[ToolContext, Dict[str, Any]], Awaitable[str]]

TOOL_HANDLERS: Dict[str, ToolHandler] = {
    "read_file": read_file,
    "write_file": write_file,
    "run_command": run_command,
    "list_files": list_files,
    "task_complete": task_complete,
}


async def dispatch_tool(ctx: ToolContext, call: ToolCall) -> str:
    """
    Run one tool call and return its result text.

    Unknown tools and handler exceptions (file errors, command timeouts,
    transport failures) are returned as "Error: ..." strings.
    """
    start_time = time.time()
    slogger = get_session_logger(ctx.session_id) if ctx.session_id != "unknown" else None
    args = call.arguments if isinstance(call.arguments, dict) else {}

    input_str = str(args)
    if len(input_str) > 200:
        input_str = input_str[:200] + "..."
    logger.info(f"[{ctx.session_id}] [TOOL] {call.name} called: {input_str}")

    handler = TOOL_HANDLERS.get(call.name)
    success = True
    if handler is None:
        result = f"Error: Unknown tool: {call.name}"
        success = False
    else:
        try:
            result = await handler(ctx, args)
            success = not result.startswith("Error:")
        except Exception as e:
            logger.error(f"[{ctx.session_id}] [TOOL] {call.name} failed: {e}", exc_info=True)
            if slogger:
                slogger.log_error(call.name, str(e), traceback.format_exc())
            result = f"Error: {str(e)}"
            success = False

    duration_ms = (time.time() - start_time) * 1000
    if slogger:
        slogger.log_tool_call(
            tool_id=call.id,
            tool_name=call.name,
            input_data=args,
            duration_ms=duration_ms,
            success=success,
            output=result,
        )
    return result


def create_tool_context(
    handle: SandboxHandle,
    session: "RepairSession",
    session_id: str = "unknown",
    runner: Optional[CommandRunner] = None,
    files: Optional[FileChannel] = None,
    on_log: Optional[Callable[..., None]] = None,
    on_code: Optional[Callable[[str], None]] = None,
) -> ToolContext:
    settings = get_settings()
    return ToolContext(
        handle=handle,
        session=session,
        runner=runner or CommandRunner(settings.command_timeout),
        files=files or FileChannel(),
        session_id=session_id,
        on_log=on_log,
        on_code=on_code,
        output_limit=settings.diagnostic_limit,
    )
