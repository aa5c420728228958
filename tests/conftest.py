"""
Pytest configuration and shared fixtures.

FakeSandbox mimics the parts of e2b_code_interpreter.Sandbox the service uses;
FakeAnthropic mimics anthropic.AsyncAnthropic().messages.create().
"""

import asyncio
import copy
import itertools
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from app.config import get_settings


# =============================================================================
# Fake E2B sandbox
# =============================================================================

class FakeCommands:
    """Records commands; results come from FakeSandbox.script()."""

    def __init__(self, sandbox):
        self.sandbox = sandbox
        self.calls = []

    def run(self, cmd, cwd=None, timeout=None, background=False, **kwargs):
        self.calls.append({"cmd": cmd, "cwd": cwd, "timeout": timeout, "background": background})
        if background:
            return SimpleNamespace(pid=1)

        for pattern, results in type(self.sandbox).scripts:
            if pattern in cmd:
                result = results.pop(0) if len(results) > 1 else results[0]
                if isinstance(result, BaseException):
                    raise result
                exit_code, output = result
                return SimpleNamespace(stdout=output, stderr="", exit_code=exit_code)
        return SimpleNamespace(stdout="", stderr="", exit_code=0)

    def commands_matching(self, pattern):
        return [c["cmd"] for c in self.calls if pattern in c["cmd"]]


class FakeFiles:
    def __init__(self):
        self.store = {}
        self.writes = []

    def write(self, path, content, **kwargs):
        self.store[path] = content
        self.writes.append((path, content))

    def read(self, path, **kwargs):
        if path not in self.store:
            raise FileNotFoundError(f"File not found: {path}")
        return self.store[path]

    def list(self, path, **kwargs):
        prefix = path.rstrip("/") + "/"
        names = sorted({p[len(prefix):].split("/")[0] for p in self.store if p.startswith(prefix)})
        return [SimpleNamespace(name=name) for name in names]


class FakeSandbox:
    """In-memory stand-in for e2b_code_interpreter.Sandbox."""

    registry = {}
    scripts = []
    fail_create = False
    _ids = itertools.count(1)

    def __init__(self, sandbox_id):
        self.sandbox_id = sandbox_id
        self.commands = FakeCommands(self)
        self.files = FakeFiles()
        self.killed = False
        self.running = True

    @classmethod
    def reset(cls):
        cls.registry = {}
        cls.scripts = []
        cls.fail_create = False
        cls._ids = itertools.count(1)

    @classmethod
    def script(cls, pattern, *results):
        """Results for commands containing `pattern`: (exit_code, output) or an exception.

        Results are consumed in order; the last one repeats.
        """
        cls.scripts.append((pattern, list(results)))

    @classmethod
    def create(cls, template=None, timeout=None, **kwargs):
        if cls.fail_create:
            raise RuntimeError("quota exceeded")
        sandbox = cls(f"sbx-{next(cls._ids)}")
        sandbox.template = template
        sandbox.timeout = timeout
        cls.registry[sandbox.sandbox_id] = sandbox
        return sandbox

    @classmethod
    def connect(cls, sandbox_id, **kwargs):
        sandbox = cls.registry.get(sandbox_id)
        if sandbox is None or sandbox.killed:
            raise RuntimeError(f"Sandbox {sandbox_id} not found")
        return sandbox

    def get_host(self, port):
        return f"{port}-{self.sandbox_id}.e2b.app"

    def is_running(self):
        return self.running and not self.killed

    def kill(self):
        self.killed = True


# =============================================================================
# Fake Anthropic client
# =============================================================================

def text_block(text):
    return SimpleNamespace(type="text", text=text)


def tool_use(name, tool_id=None, **arguments):
    return SimpleNamespace(type="tool_use", id=tool_id or f"toolu_{name}", name=name, input=arguments)


def model_response(*blocks, stop_reason=None):
    if stop_reason is None:
        stop_reason = "tool_use" if any(b.type == "tool_use" for b in blocks) else "end_turn"
    return SimpleNamespace(
        id="msg_test",
        content=list(blocks),
        stop_reason=stop_reason,
        usage=SimpleNamespace(input_tokens=100, output_tokens=50),
    )


def code_response(code):
    return model_response(text_block(f"Here is your component:\n```tsx\n{code}\n```"))


# Scripted response that never returns (sets FakeMessages.hanging first)
HANG = object()


class FakeMessages:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.hanging = asyncio.Event()

    async def create(self, **kwargs):
        # Snapshot: the conversation mutates its message list after the call
        self.calls.append(copy.deepcopy(kwargs))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if response is HANG:
            self.hanging.set()
            await asyncio.Event().wait()
        if isinstance(response, BaseException):
            raise response
        return response


class FakeAnthropic:
    def __init__(self, *responses):
        self.messages = FakeMessages(responses)


# =============================================================================
# Fixtures
# =============================================================================

SKETCH_IMAGE = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUg=="

SIMPLE_COMPONENT = """"use client";
export default function Component() {
  return (
    <div className="p-4">Hello</div>
  );
}"""


@pytest.fixture(autouse=True)
def test_settings(monkeypatch, tmp_path):
    """Isolated settings: logs in tmp, no dev-server grace period."""
    monkeypatch.setenv("LOGS_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("DEV_SERVER_GRACE_PERIOD", "0")
    monkeypatch.setenv("E2B_API_KEY", "e2b_test")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    monkeypatch.delenv("MAX_ITERATIONS", raising=False)
    monkeypatch.delenv("MAX_REPAIR_ITERATIONS", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fake_sandbox_cls():
    FakeSandbox.reset()
    yield FakeSandbox
    FakeSandbox.reset()


@pytest.fixture
def pool(fake_sandbox_cls):
    from app.sandbox_manager import SandboxPool
    return SandboxPool(sandbox_cls=fake_sandbox_cls, grace_period=0)


@pytest.fixture
def handle(fake_sandbox_cls):
    """A ready sandbox handle without going through the pool."""
    from app.sandbox_manager import SandboxHandle, SandboxState
    sandbox = fake_sandbox_cls.create(template="nextjs-shadcn")
    return SandboxHandle(
        id=sandbox.sandbox_id,
        endpoint=f"https://{sandbox.get_host(3000)}",
        state=SandboxState.READY,
        sandbox=sandbox,
    )
