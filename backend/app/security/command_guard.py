"""
Deny-list guard for shell commands and file paths requested by the repair agent
or typed into the sandbox terminal.

The sandbox is disposable, so this is not a security boundary. It stops the
model from wiping the project it is supposed to fix and from reading secrets.
"""

import logging
import re
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# Dangerous patterns that should never be allowed
DANGEROUS_PATTERNS = [
    "sudo ",
    "mkfs",
    "dd if=",
    ":(){:|:&};:",  # Fork bomb
    "chmod -R 777 /",
]

# Redirects onto raw disks or memory (> /dev/null stays allowed)
DEVICE_WRITE_RE = re.compile(r">\s*/dev/(sd|nvme|hd|xvd|vd|mem|kmem)")

# shutdown/reboot as a command, not as a word in a grep pattern or file name
POWER_COMMAND_RE = re.compile(r"(^|[;&|]\s*)(shutdown|reboot|halt|poweroff)\b")

# Recursive delete of /, ~ or * (rm -rf /home/user/app/.next stays allowed)
RECURSIVE_DELETE_RE = re.compile(r"\brm\s+-\w*r\w*\s+(/\*?|~/?|\*)(?=\s|;|&|\||$)")

# Downloaded script piped straight into a shell
PIPE_TO_SHELL_RE = re.compile(r"\b(curl|wget)\b[^|]*\|\s*(ba|z)?sh\b")

# Allowed, but worth a log line
WARNING_PATTERNS = ["rm -rf", "chmod 777", "npm install", "npx"]

# Matched against single path segments (directory or file name)
SENSITIVE_NAME_RE = re.compile(
    r"^(\.env(\..+)?|\.ssh|\.npmrc|id_rsa(\.pub)?|credentials(\.\w+)?|secrets?(\.\w+)?)$"
)


def check_command(command: str) -> Tuple[bool, Optional[str]]:
    """
    Decide whether a shell command may run.

    Returns:
        (allowed, reason) where reason explains a refusal
    """
    # Normalize whitespace so "rm  -rf  /" does not slip through
    normalized = " ".join(command.split())

    if command.replace(" ", "").startswith(":(){"):
        logger.warning(f"[GUARD] Blocked dangerous command: {command}")
        return False, "Dangerous command blocked: fork bomb"

    match = RECURSIVE_DELETE_RE.search(normalized)
    if match:
        logger.warning(f"[GUARD] Blocked dangerous command: {command}")
        return False, f"Dangerous command blocked: {match.group(0)}"

    for pattern in DANGEROUS_PATTERNS:
        if pattern in normalized:
            logger.warning(f"[GUARD] Blocked dangerous command: {command}")
            return False, f"Dangerous command blocked: {pattern}"

    for regex in (DEVICE_WRITE_RE, POWER_COMMAND_RE):
        match = regex.search(normalized)
        if match:
            logger.warning(f"[GUARD] Blocked dangerous command: {command}")
            return False, f"Dangerous command blocked: {match.group(0).lstrip(';&| ')}"

    if PIPE_TO_SHELL_RE.search(normalized):
        logger.warning(f"[GUARD] Blocked pipe-to-shell command: {command}")
        return False, "Dangerous command blocked: piping a download into a shell"

    for pattern in WARNING_PATTERNS:
        if pattern in normalized:
            logger.info(f"[GUARD] Allowing potentially risky command: {command}")
            break

    return True, None


def check_path(path: str) -> Tuple[bool, Optional[str]]:
    """Refuse reads and writes of files that usually hold credentials.

    Only whole path segments are compared, so components/credentials-form.tsx
    is an ordinary file while config/credentials.json is not.
    """
    segments = [s for s in path.lower().replace("\\", "/").split("/") if s]
    git_config = any(a == ".git" and b == "config" for a, b in zip(segments, segments[1:]))
    if git_config or any(SENSITIVE_NAME_RE.match(s) for s in segments):
        logger.warning(f"[GUARD] Blocked access to sensitive file: {path}")
        return False, f"Access to sensitive file denied: {path}"
    return True, None
