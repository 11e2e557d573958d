"""System clipboard access through the platform copy tools."""

import logging
import shutil
import subprocess

logger = logging.getLogger(__name__)

_COPY_TOOLS = (
    ["pbcopy"],
    ["wl-copy"],
    ["xclip", "-selection", "clipboard"],
)


def copy_to_clipboard(text: str) -> bool:
    """Copy ``text`` with the first available tool; False when none worked."""
    if not text.strip():
        return False
    for cmd in _COPY_TOOLS:
        if not shutil.which(cmd[0]):
            continue
        try:
            result = subprocess.run(cmd, input=text, text=True, check=False, timeout=2)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Clipboard copy with {cmd[0]} failed: {e}")
            continue
        if result.returncode == 0:
            return True
    return False
