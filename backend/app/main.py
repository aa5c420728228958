import logging
import shlex
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .config import APP_DIR, COMPONENT_PATH, get_settings
from .events import SSE_HEADERS, ProgressStream, stream_sse
from .llm import ModelClient
from .pipeline import EditPipeline, GenerationPipeline
from .rate_limiter import RateLimiter
from .sandbox_manager import (
    SandboxCommandError,
    SandboxError,
    SandboxHandle,
    SandboxNotFoundError,
    SandboxPool,
)
from .sandbox_ops import CommandRunner, FileChannel
from .schemas import (
    AgentEditRequest,
    FileActionRequest,
    FileItem,
    GenerationRequest,
    HealthResponse,
    SandboxInitResponse,
    SandboxKillRequest,
    SandboxUpdateRequest,
    TerminalRequest,
    TerminalResponse,
)
from .security import check_command

# Load environment variables from .env file
# Look for .env in project root (parent of backend/)
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

TERMINAL_TIMEOUT = 60
TREE_LIMIT = 200

# Process-wide sandbox pool (created on first use so settings come from .env)
pool: Optional[SandboxPool] = None
rate_limiter: Optional[RateLimiter] = None


def get_pool() -> SandboxPool:
    global pool
    if pool is None:
        pool = SandboxPool()
    return pool


def get_rate_limiter() -> RateLimiter:
    global rate_limiter
    if rate_limiter is None:
        settings = get_settings()
        rate_limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window)
    return rate_limiter


def create_model_client(session_id: str) -> ModelClient:
    return ModelClient(session_id=session_id)


def new_session_id() -> str:
    # Timestamp-prefixed for chronological sorting of log directories
    # Format: YYYYMMDD-HHMMSS-uuid8chars (e.g., 20251128-143052-a1b2c3d4)
    timestamp_prefix = datetime.utcnow().strftime("%Y%m%d-%H%M%S")
    return f"{timestamp_prefix}-{uuid.uuid4().hex[:8]}"


def _check_rate_limit(request: Request) -> None:
    client_host = request.client.host if request.client else "unknown"
    limiter = get_rate_limiter()
    if not limiter.allow(client_host):
        retry_after = int(limiter.reset_after(client_host)) + 1
        logger.warning(f"Rate limit exceeded for {client_host}")
        raise HTTPException(
            status_code=429,
            detail="Too many requests, please try again later",
            headers={"Retry-After": str(retry_after)},
        )


async def _connect_or_404(sandbox_id: Optional[str]) -> SandboxHandle:
    if not sandbox_id:
        raise HTTPException(status_code=400, detail="Sandbox ID is required")
    try:
        return await get_pool().connect(sandbox_id)
    except SandboxNotFoundError:
        raise HTTPException(status_code=404, detail="Sandbox session not found or expired")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Sketch-to-UI API")
    yield
    logger.info("Shutting down Sketch-to-UI API")
    if pool is not None:
        await pool.destroy_all()


# Create FastAPI application
app = FastAPI(
    title="Sketch-to-UI API",
    description="Turns hand-drawn sketches into running Next.js components in E2B sandboxes",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",  # Vite default
        "http://127.0.0.1:5173"
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns:
        HealthResponse with current status, live sandbox count and key configuration
    """
    settings = get_settings()
    sandbox_pool = get_pool()
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow().isoformat(),
        active_sandboxes=len(sandbox_pool.list_handles()),
        prewarmed_sandbox=sandbox_pool.prewarmed_id,
        e2b_configured=bool(settings.e2b_api_key),
        anthropic_configured=bool(settings.anthropic_api_key),
    )


@app.post("/api/generate")
async def generate(body: GenerationRequest, request: Request):
    """
    Generate a component from a sketch and stream progress as SSE.

    Events: start, iteration, log, code, sandbox, quality, complete | error
    """
    if not body.image:
        raise HTTPException(status_code=400, detail="Image is required")
    _check_rate_limit(request)

    session_id = new_session_id()
    logger.info(f"[{session_id}] Generation requested (sandbox hint: {body.sandboxId})")

    stream = ProgressStream(session_id)
    pipeline = GenerationPipeline(
        get_pool(),
        stream,
        session_id,
        model=create_model_client(session_id),
    )
    return StreamingResponse(
        stream_sse(stream, pipeline.run(body)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@app.post("/api/agent-edit")
async def agent_edit(body: AgentEditRequest, request: Request):
    """Apply a change request to the current component with the repair agent (SSE)."""
    if not body.prompt or not body.currentCode:
        raise HTTPException(status_code=400, detail="Prompt and current code are required")
    _check_rate_limit(request)

    session_id = new_session_id()
    logger.info(f"[{session_id}] Edit requested for sandbox {body.sandboxId}")

    stream = ProgressStream(session_id)
    pipeline = EditPipeline(
        get_pool(),
        stream,
        session_id,
        model=create_model_client(session_id),
    )
    return StreamingResponse(
        stream_sse(stream, pipeline.run(body)),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@app.post("/api/sandbox/init", response_model=SandboxInitResponse)
async def sandbox_init():
    """Pre-warm a sandbox, or report the one that already exists."""
    sandbox_pool = get_pool()
    existing = sandbox_pool.get_prewarmed()
    if existing is not None:
        return SandboxInitResponse(
            success=True,
            sandboxId=existing.id,
            url=existing.endpoint,
            cached=True,
        )

    logs = []
    try:
        handle = await sandbox_pool.prewarm(on_log=logs.append)
    except SandboxError as e:
        logger.error(f"Pre-warm failed: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=SandboxInitResponse(success=False, error=str(e), logs=logs).model_dump(),
        )

    return SandboxInitResponse(
        success=True,
        sandboxId=handle.id,
        url=handle.endpoint,
        cached=False,
        logs=logs,
    )


@app.get("/api/sandbox/init")
async def sandbox_init_status():
    """Report whether a pre-warmed sandbox is available."""
    existing = get_pool().get_prewarmed()
    if existing is None:
        return {"ready": False}
    return {
        "ready": True,
        "sandboxId": existing.id,
        "url": existing.endpoint,
        "state": existing.state.value,
    }


@app.post("/api/sandbox/kill")
async def sandbox_kill(body: SandboxKillRequest):
    """Kill a specific sandbox, or the pre-warmed one when no id is given."""
    sandbox_pool = get_pool()
    if body.sandboxId:
        await sandbox_pool.destroy(body.sandboxId)
        return {"success": True, "killed": body.sandboxId}

    prewarmed = sandbox_pool.get_prewarmed()
    if prewarmed is not None:
        sandbox_pool.clear_prewarmed()
        await sandbox_pool.destroy(prewarmed.id)
        return {"success": True, "killed": prewarmed.id}

    return {"success": True, "killed": None}


@app.post("/api/sandbox/terminal", response_model=TerminalResponse)
async def sandbox_terminal(body: TerminalRequest):
    """Run a shell command in the app directory of a sandbox."""
    if not body.sandboxId:
        raise HTTPException(status_code=400, detail="Sandbox ID is required")
    if not body.command:
        raise HTTPException(status_code=400, detail="Command is required")

    allowed, reason = check_command(body.command)
    if not allowed:
        raise HTTPException(status_code=400, detail=reason)

    handle = await _connect_or_404(body.sandboxId)
    try:
        result = await CommandRunner(TERMINAL_TIMEOUT).run(
            handle, body.command, cwd=APP_DIR, timeout=TERMINAL_TIMEOUT
        )
    except SandboxCommandError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return TerminalResponse(stdout=result.stdout, stderr=result.stderr, exitCode=result.exit_code)


@app.post("/api/sandbox/update")
async def sandbox_update(body: SandboxUpdateRequest):
    """Write new component code into a running sandbox (hot reload picks it up)."""
    if not body.sandboxId:
        raise HTTPException(status_code=400, detail="Sandbox ID is required")
    if not body.code:
        raise HTTPException(status_code=400, detail="Code is required")

    handle = get_pool().get(body.sandboxId) or await _connect_or_404(body.sandboxId)
    logs = ["📝 Updating component..."]
    try:
        await FileChannel().write(handle, COMPONENT_PATH, body.code)
    except SandboxError as e:
        return JSONResponse(
            status_code=500,
            content={"success": False, "errors": [str(e)], "logs": logs},
        )

    logs.append("✅ Component updated (hot reload should apply)")
    return {"success": True, "errors": [], "logs": logs, "url": handle.endpoint}


def _parse_ls(output: str, target: str) -> list:
    items = []
    for line in output.splitlines():
        if not line or line.startswith("total"):
            continue
        parts = line.split()
        if len(parts) < 9:
            continue
        name = " ".join(parts[8:])
        if name in (".", ".."):
            continue
        items.append(FileItem(
            name=name,
            path=f"{target.rstrip('/')}/{name}",
            isDirectory=parts[0].startswith("d"),
            permissions=parts[0],
            size=parts[4],
        ))
    return items


@app.post("/api/sandbox/files")
async def sandbox_files(body: FileActionRequest):
    """
    File explorer operations on a sandbox.

    Actions: list, read, write, mkdir, delete, rename, tree
    """
    handle = await _connect_or_404(body.sandboxId)
    runner = CommandRunner()
    files = FileChannel()
    path = body.path

    try:
        if body.action == "list":
            target = path or APP_DIR
            result = await runner.run(handle, f"ls -la {shlex.quote(target)}", cwd=APP_DIR)
            return {"items": _parse_ls(result.stdout, target)}

        if body.action == "tree":
            target = path or APP_DIR
            quoted = shlex.quote(target)
            result = await runner.run(
                handle, f"find {quoted} -type f -o -type d | head -{TREE_LIMIT}", cwd=APP_DIR
            )
            return {"paths": [p for p in result.stdout.splitlines() if p]}

        if body.action == "read":
            if not path:
                raise HTTPException(status_code=400, detail="Path is required")
            return {"content": await files.read(handle, path)}

        if body.action == "write":
            if not path or body.content is None:
                raise HTTPException(status_code=400, detail="Path and content are required")
            await files.write(handle, path, body.content)
            return {"success": True}

        if body.action == "mkdir":
            if not path:
                raise HTTPException(status_code=400, detail="Path is required")
            await runner.run(handle, f"mkdir -p {shlex.quote(path)}")
            return {"success": True}

        if body.action == "delete":
            if not path:
                raise HTTPException(status_code=400, detail="Path is required")
            await runner.run(handle, f"rm -rf {shlex.quote(path)}")
            return {"success": True}

        if body.action == "rename":
            if not path or not body.newPath:
                raise HTTPException(status_code=400, detail="Path and newPath are required")
            await runner.run(handle, f"mv {shlex.quote(path)} {shlex.quote(body.newPath)}")
            return {"success": True}

    except SandboxError as e:
        logger.error(f"[{handle.id}] File action '{body.action}' failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    raise HTTPException(status_code=400, detail="Invalid action")


@app.get("/api/sandboxes")
async def list_sandboxes():
    """List live sandboxes tracked by the pool."""
    handles = get_pool().list_handles()
    return {
        "sandboxes": [h.to_dict() for h in handles],
        "count": len(handles),
        "timestamp": datetime.utcnow().isoformat()
    }


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Sketch-to-UI API",
        "version": "1.0.0",
        "endpoints": {
            "health": "/health",
            "generate": "POST /api/generate",
            "agent_edit": "POST /api/agent-edit",
            "sandbox_init": "GET|POST /api/sandbox/init",
            "sandbox_kill": "POST /api/sandbox/kill",
            "sandbox_terminal": "POST /api/sandbox/terminal",
            "sandbox_update": "POST /api/sandbox/update",
            "sandbox_files": "POST /api/sandbox/files",
            "sandboxes": "/api/sandboxes"
        },
        "docs": "/docs",
        "timestamp": datetime.utcnow().isoformat()
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
