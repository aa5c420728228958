"""Security module for sandbox command and file access control."""

from .command_guard import (
    check_command,
    check_path,
)

__all__ = [
    "check_command",
    "check_path",
]
