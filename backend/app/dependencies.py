"""
Best-effort dependency detection and installation for generated components.

Detection is a regex scan over the source (shadcn/ui imports) and over build
diagnostics ("Cannot find module ..."). Misses are expected; the repair loop
handles whatever the scan does not catch.
"""

import logging
import re
import shlex
from typing import Callable, Dict, Iterable, List, Optional

from .config import APP_DIR, get_settings
from .sandbox_manager import SandboxError, SandboxHandle
from .sandbox_ops import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

# Exported symbol -> shadcn/ui component id
SHADCN_COMPONENT_MAP: Dict[str, str] = {
    "Button": "button",
    "Card": "card",
    "CardHeader": "card",
    "CardContent": "card",
    "CardFooter": "card",
    "CardTitle": "card",
    "CardDescription": "card",
    "Input": "input",
    "Label": "label",
    "Textarea": "textarea",
    "Select": "select",
    "Checkbox": "checkbox",
    "RadioGroup": "radio-group",
    "Switch": "switch",
    "Slider": "slider",
    "Progress": "progress",
    "Badge": "badge",
    "Avatar": "avatar",
    "Dialog": "dialog",
    "Sheet": "sheet",
    "Popover": "popover",
    "Tooltip": "tooltip",
    "Tabs": "tabs",
    "Accordion": "accordion",
    "Alert": "alert",
    "AlertDialog": "alert-dialog",
    "Table": "table",
    "Separator": "separator",
    "ScrollArea": "scroll-area",
    "Skeleton": "skeleton",
    "Calendar": "calendar",
    "Command": "command",
    "ContextMenu": "context-menu",
    "DropdownMenu": "dropdown-menu",
    "HoverCard": "hover-card",
    "Menubar": "menubar",
    "NavigationMenu": "navigation-menu",
    "Collapsible": "collapsible",
    "AspectRatio": "aspect-ratio",
    "Toggle": "toggle",
    "ToggleGroup": "toggle-group",
}

KNOWN_COMPONENTS = frozenset(SHADCN_COMPONENT_MAP.values())

UI_IMPORT_RE = re.compile(r"""@/components/ui/([a-z-]+)""")
MISSING_MODULE_RE = re.compile(r"""Cannot find module ['"]([@a-z0-9\-/.]+)['"]""")

LogCallback = Optional[Callable[[str], None]]


def _unique(items: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return list(seen)


def detect_imports(source: str) -> List[str]:
    """Return the shadcn component ids imported by the source, in first-seen order."""
    found = []
    for match in re.finditer(r"""from\s+['"]@/components/ui/([a-z-]+)['"]""", source):
        component = match.group(1)
        if component in KNOWN_COMPONENTS:
            found.append(component)
    return _unique(found)


def detect_missing_components(diagnostics: str) -> List[str]:
    """Shadcn component ids named in "Cannot find module '@/components/ui/x'" errors."""
    found = []
    for module in MISSING_MODULE_RE.findall(diagnostics):
        match = UI_IMPORT_RE.match(module)
        if match and match.group(1) in KNOWN_COMPONENTS:
            found.append(match.group(1))
    return _unique(found)


def detect_missing_packages(diagnostics: str) -> List[str]:
    """npm package names from "Cannot find module" errors (local and alias paths skipped)."""
    packages = []
    for module in MISSING_MODULE_RE.findall(diagnostics):
        if module.startswith(("@/", "./", "../", "/")):
            continue
        parts = module.split("/")
        # Scoped packages keep their scope: @radix-ui/react-slot/dist -> @radix-ui/react-slot
        name = "/".join(parts[:2]) if module.startswith("@") else parts[0]
        packages.append(name)
    return _unique(packages)


class DependencyResolver:
    """Installs shadcn components and npm packages inside a sandbox."""

    def __init__(self, runner: Optional[CommandRunner] = None, timeout: Optional[int] = None):
        self.runner = runner or CommandRunner()
        self.timeout = timeout or get_settings().install_timeout

    async def install_all(
        self,
        handle: SandboxHandle,
        identifiers: List[str],
        on_log: LogCallback = None,
    ) -> List[CommandResult]:
        """
        Install shadcn components one at a time.

        Installs share package-lock.json and must not run concurrently. A failed
        or timed-out install is logged and skipped; the build will report it.
        """
        results = []
        if not identifiers:
            return results

        if on_log:
            on_log(f"📦 Installing shadcn: {', '.join(identifiers)}...")

        for component in identifiers:
            command = f"npx shadcn@latest add {shlex.quote(component)} --yes"
            try:
                result = await self.runner.run(handle, command, cwd=APP_DIR, timeout=self.timeout)
            except SandboxError as e:
                logger.warning(f"[{handle.id}] Install of '{component}' failed: {e}")
                continue
            if not result.success:
                logger.warning(f"[{handle.id}] Install of '{component}' exited with {result.exit_code}")
            results.append(result)
        return results

    async def install_packages(
        self,
        handle: SandboxHandle,
        packages: List[str],
        on_log: LogCallback = None,
    ) -> Optional[CommandResult]:
        """Install npm packages with a single `npm install` call."""
        if not packages:
            return None

        if on_log:
            on_log(f"📦 Installing packages: {', '.join(packages)}...")

        command = "npm install " + " ".join(shlex.quote(p) for p in packages)
        try:
            return await self.runner.run(handle, command, cwd=APP_DIR, timeout=self.timeout)
        except SandboxError as e:
            logger.warning(f"[{handle.id}] npm install failed: {e}")
            return None
