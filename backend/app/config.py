"""
Runtime configuration for the sketch-to-UI builder.

Values come from environment variables (loaded from the project .env by
main.py) and fall back to the defaults the E2B template was built for.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

# Default model if not specified in environment
DEFAULT_MODEL = "claude-sonnet-4-5"

# Paths inside the nextjs-shadcn template
APP_DIR = "/home/user/app"
COMPONENT_PATH = f"{APP_DIR}/app/component.tsx"
PAGE_PATH = f"{APP_DIR}/app/page.tsx"
DEV_SERVER_PORT = 3000

PAGE_CONTENT = """import Component from "./component";
export default function Page() {
  return <Component />;
}"""


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name, "")
    try:
        return int(value) if value.strip() else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Settings resolved from the environment."""

    e2b_api_key: str
    anthropic_api_key: str
    model: str
    template: str
    sandbox_timeout: int
    max_iterations: int
    max_repair_iterations: int
    build_timeout: int
    command_timeout: int
    install_timeout: int
    dev_server_grace_period: int
    diagnostic_limit: int
    rate_limit_requests: int
    rate_limit_window: int
    logs_dir: Path

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            e2b_api_key=os.getenv("E2B_API_KEY", ""),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            model=os.getenv("CLAUDE_MODEL", DEFAULT_MODEL),
            template=os.getenv("E2B_TEMPLATE", "nextjs-shadcn"),
            sandbox_timeout=_int_env("SANDBOX_TIMEOUT", 600),
            max_iterations=_int_env("MAX_ITERATIONS", 100),
            max_repair_iterations=_int_env("MAX_REPAIR_ITERATIONS", 20),
            build_timeout=_int_env("BUILD_TIMEOUT", 120),
            command_timeout=_int_env("COMMAND_TIMEOUT", 120),
            install_timeout=_int_env("INSTALL_TIMEOUT", 120),
            dev_server_grace_period=_int_env("DEV_SERVER_GRACE_PERIOD", 5),
            diagnostic_limit=_int_env("DIAGNOSTIC_LIMIT", 4000),
            rate_limit_requests=_int_env("RATE_LIMIT_REQUESTS", 10),
            rate_limit_window=_int_env("RATE_LIMIT_WINDOW", 60),
            logs_dir=Path(
                os.getenv("LOGS_DIR", str(Path(__file__).parent.parent.parent / "logs"))
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return process-wide settings (cached after first read)."""
    return Settings.from_env()
