"""Open an item URL in the browser or copy it to the clipboard."""
from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from typing import List, Optional

from .models import ERROR, INFO
from .state import ActionResult

log = logging.getLogger('gh_project_board')


def _browser_command(url: str) -> Optional[List[str]]:
    if sys.platform == "darwin":
        return ["open", url] if shutil.which("open") else None
    if sys.platform == "win32":
        return ["rundll32", "url.dll,FileProtocolHandler", url]
    return ["xdg-open", url] if shutil.which("xdg-open") else None


def _clipboard_command() -> Optional[List[str]]:
    if sys.platform == "darwin":
        return ["pbcopy"] if shutil.which("pbcopy") else None
    if sys.platform == "win32":
        return ["cmd", "/c", "clip"] if shutil.which("clip") else None
    if shutil.which("wl-copy"):
        return ["wl-copy"]
    if shutil.which("xclip"):
        return ["xclip", "-selection", "clipboard"]
    return None


def open_browser(url: str) -> ActionResult:
    cmd = _browser_command(url)
    if cmd is None:
        opener = "open" if sys.platform == "darwin" else "xdg-open"
        return ActionResult(f"Cannot open browser: '{opener}' not available. URL: {url}", INFO)
    try:
        subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except OSError as e:
        log.error("open browser failed: %s", e)
        return ActionResult(f"Error: {e}", ERROR)
    return ActionResult("Opened in browser", INFO)


def copy_to_clipboard(text: str) -> ActionResult:
    cmd = _clipboard_command()
    if cmd is None:
        return ActionResult(f"No clipboard utility found; URL: {text}", INFO)
    try:
        subprocess.run(cmd, input=text, text=True, check=True, capture_output=True)
    except (OSError, subprocess.CalledProcessError) as e:
        log.error("clipboard copy failed: %s", e)
        return ActionResult(f"Error: {e}", ERROR)
    return ActionResult("Copied URL to clipboard", INFO)
