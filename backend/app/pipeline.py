"""
Request orchestration: sketch → code → sandbox → build → repair → complete.

Each pipeline run owns one ProgressStream and emits exactly one terminal event.
Only code extraction and sandbox provisioning failures (and unexpected
exceptions) end in an `error` event; everything that goes wrong inside the
repair loop ends in `complete` with success=False and the latest code.
"""

import logging
import traceback
from typing import Optional

from .agent import RepairAgent, RepairSession
from .build_checker import BuildChecker
from .code_generator import CodeGenerator, ExtractionError, parse_image_data_url
from .config import COMPONENT_PATH, PAGE_CONTENT, PAGE_PATH
from .dependencies import (
    DependencyResolver,
    detect_imports,
    detect_missing_components,
    detect_missing_packages,
)
from .events import ProgressStream
from .llm import ImagePayload, ModelClient, ModelError
from .logging_config import close_session_logger, get_session_logger
from .quality import score_code
from .sandbox_manager import SandboxError, SandboxHandle, SandboxPool
from .sandbox_ops import FileChannel
from .schemas import AgentEditRequest, GenerationRequest

logger = logging.getLogger(__name__)


class GenerationPipeline:
    """
    Generation flow for one /api/generate request.

    Collaborators are injectable so tests can run the whole flow against fake
    sandbox and model clients.
    """

    def __init__(
        self,
        pool: SandboxPool,
        stream: ProgressStream,
        session_id: str,
        model: Optional[ModelClient] = None,
        files: Optional[FileChannel] = None,
        resolver: Optional[DependencyResolver] = None,
        checker: Optional[BuildChecker] = None,
    ):
        self.pool = pool
        self.stream = stream
        self.session_id = session_id
        self.model = model or ModelClient(session_id=session_id)
        self.files = files or FileChannel()
        self.resolver = resolver or DependencyResolver()
        self.checker = checker or BuildChecker()
        self.agent = RepairAgent(self.model, on_event=self.stream.emit, files=self.files)
        self.slogger = get_session_logger(session_id)

    async def run(self, request: GenerationRequest) -> None:
        try:
            await self._run(request)
        except ExtractionError as e:
            self._fail(str(e))
        except SandboxError as e:
            self._fail(str(e))
        except ModelError as e:
            self._fail(str(e))
        except Exception as e:
            logger.error(f"[{self.session_id}] Generation failed: {e}", exc_info=True)
            self._fail(str(e) or type(e).__name__, traceback.format_exc())
        finally:
            close_session_logger(self.session_id)

    def _fail(self, message: str, tb: Optional[str] = None) -> None:
        self.slogger.log_error("pipeline", message, tb)
        self.slogger.record_outcome(success=False, error=message)
        if not self.stream.closed:
            self.stream.log(f"❌ Error: {message}", "error")
            self.stream.error(message)

    async def _prepare_sandbox(self, handle: SandboxHandle, code: str) -> None:
        self.stream.log("📝 Writing component...")
        await self.files.write(handle, COMPONENT_PATH, code)
        await self.files.write(handle, PAGE_PATH, PAGE_CONTENT)

        components = detect_imports(code)
        if components:
            await self.resolver.install_all(handle, components, on_log=self.stream.log)

    async def _install_from_diagnostics(self, handle: SandboxHandle, diagnostics: str) -> bool:
        """Install what "Cannot find module" errors name. Returns True if anything was attempted."""
        components = detect_missing_components(diagnostics)
        packages = detect_missing_packages(diagnostics)
        if components:
            await self.resolver.install_all(handle, components, on_log=self.stream.log)
        if packages:
            await self.resolver.install_packages(handle, packages, on_log=self.stream.log)
        return bool(components or packages)

    async def _run(self, request: GenerationRequest) -> None:
        stream = self.stream
        self.slogger.log_session("GENERATE", f"sandbox_hint={request.sandboxId}")

        stream.start("Starting generation...")
        stream.iteration(1, self.agent.ceiling(1))
        stream.log("🎨 Generating code from sketch...")

        palette = request.colorPalette.model_dump() if request.colorPalette else None
        code = await CodeGenerator(self.model).generate(
            request.image,
            style_guide=request.styleGuide,
            custom_prompt=request.customPrompt,
            color_palette=palette,
        )
        stream.log("✅ Initial code generated")
        stream.code(code)

        handle = await self.pool.create_or_reuse(request.sandboxId, on_log=stream.log)
        self.slogger.log_sandbox("ACQUIRED", f"id={handle.id}, state={handle.state.value}")
        stream.sandbox(handle.endpoint, handle.id)

        await self._prepare_sandbox(handle, code)

        stream.log("🔨 Checking build...")
        outcome = await self.checker.check(handle)

        if not outcome.success and await self._install_from_diagnostics(handle, outcome.diagnostic_text):
            stream.log("🔨 Re-checking build after installing missing modules...")
            outcome = await self.checker.check(handle)

        if outcome.success:
            stream.log("✅ Build successful on first try!", "success")
            session = RepairSession(current_code=code, task_complete=True, success=True)
        else:
            stream.log("⚠️ Build errors detected, starting autonomous fix agent...", "warning")
            media_type, data = parse_image_data_url(request.image)
            session = await self.agent.repair(
                handle,
                code,
                outcome.diagnostic_text,
                image=ImagePayload(media_type=media_type, data=data),
            )

        self._finish(handle, session)

    def _finish(self, handle: SandboxHandle, session: RepairSession) -> None:
        quality = score_code(session.current_code)
        self.stream.quality(quality.score, quality.to_dict()["details"])

        self.stream.log(f"🎉 Preview ready at {handle.endpoint}")
        self.stream.complete(
            code=session.current_code,
            sandbox_url=handle.endpoint,
            sandbox_id=handle.id,
            iterations=session.iteration,
            success=session.succeeded,
        )
        self.slogger.log_session(
            "COMPLETE",
            f"iterations={session.iteration}, success={session.succeeded}, quality={quality.score}",
        )
        self.slogger.record_outcome(
            success=session.succeeded,
            iterations=session.iteration,
            quality=quality.score,
            sandbox_id=handle.id,
        )


class EditPipeline(GenerationPipeline):
    """Agent-driven edit of an existing component (/api/agent-edit)."""

    async def _run(self, request: AgentEditRequest) -> None:
        stream = self.stream
        self.slogger.log_session("EDIT", f"sandbox={request.sandboxId}")

        stream.start("Starting edit...")
        if request.sandboxId:
            handle = await self.pool.connect(request.sandboxId)
        else:
            handle = await self.pool.create_or_reuse(on_log=stream.log)
            await self._prepare_sandbox(handle, request.currentCode)
        stream.sandbox(handle.endpoint, handle.id)
        stream.log("🤖 Agent starting...")

        image = None
        if request.imageData:
            media_type, data = parse_image_data_url(request.imageData)
            image = ImagePayload(media_type=media_type, data=data)

        session = await self.agent.edit(handle, request.currentCode, request.prompt, image=image)
        self._finish(handle, session)
