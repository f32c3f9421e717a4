"""CLI utilities for finding and checking the codex executable."""

import os
import shutil
from typing import Optional


def find_agent_binary(codex_bin: str = "codex") -> Optional[str]:
    """Find the agent executable.

    A value containing a path separator is checked directly; a bare name
    is looked up on PATH via shutil.which.

    Returns:
        Path to the executable or None if not found.
    """
    if os.sep in codex_bin or (os.altsep and os.altsep in codex_bin):
        candidate = os.path.expanduser(codex_bin)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
        return None
    return shutil.which(codex_bin)


def check_agent_available(codex_bin: str = "codex") -> tuple[bool, str]:
    """Check if the agent CLI is available.

    Returns:
        Tuple of (is_available, message).
    """
    path = find_agent_binary(codex_bin)
    if path:
        return True, f"{codex_bin} found at: {path}"
    return False, (
        f"{codex_bin} not found. "
        "Set CODEX_BIN to the codex executable or add it to PATH."
    )
