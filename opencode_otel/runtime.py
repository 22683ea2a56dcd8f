"""
Runtime detection: terminal type and persistent anonymous user identity.

Both follow Claude Code's conventions so the two products report comparable
values: the terminal label comes from the same env var heuristics, and the
user id is shared through the same ~/.claude.json file.
"""

import json
import logging
import os
import secrets
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


def detect_terminal(env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Detect the terminal emulator or IDE from environment variables.

    IDE-specific variables are checked first, then TERM/TERM_PROGRAM, then
    terminal-specific variables. Returns None if nothing matches.
    """
    env = os.environ if env is None else env

    askpass = env.get("VSCODE_GIT_ASKPASS_MAIN", "")
    if "cursor" in askpass:
        return "cursor"
    if "windsurf" in askpass:
        return "windsurf"
    if "code" in askpass or env.get("VSCODE_PID"):
        return "vscode"

    if env.get("TERMINAL_EMULATOR") == "JetBrains-JediTerm":
        return "jetbrains"
    if env.get("VisualStudioVersion"):
        return "visualstudio"

    term = env.get("TERM", "")
    if term == "xterm-ghostty":
        return "ghostty"
    if "kitty" in term:
        return "kitty"
    if env.get("TERM_PROGRAM"):
        return env["TERM_PROGRAM"]

    for var, label in (
        ("TMUX", "tmux"),
        ("STY", "screen"),
        ("KONSOLE_VERSION", "konsole"),
        ("GNOME_TERMINAL_SERVICE", "gnome-terminal"),
        ("XTERM_VERSION", "xterm"),
        ("VTE_VERSION", "vte-based"),
        ("TERMINATOR_UUID", "terminator"),
        ("KITTY_WINDOW_ID", "kitty"),
        ("ALACRITTY_LOG", "alacritty"),
        ("TILIX_ID", "tilix"),
        ("WT_SESSION", "windows-terminal"),
    ):
        if env.get(var):
            return label

    if env.get("SESSIONNAME") and term == "cygwin":
        return "cygwin"
    if env.get("MSYSTEM"):
        return env["MSYSTEM"].lower()

    return None


def claude_config_path() -> Path:
    return Path.home() / ".claude.json"


def _read_config(path: Path) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def get_user_id(path: Optional[Path] = None) -> str:
    """Get or create the persistent anonymous user id.

    Reads ``userID`` from ~/.claude.json. Otherwise generates 32 random bytes
    as a 64-char hex string and tries to persist it into the same file; if
    that fails the id is still used for this process.
    """
    path = path or claude_config_path()
    config = _read_config(path)
    user_id = config.get("userID")
    if isinstance(user_id, str) and user_id:
        return user_id

    user_id = secrets.token_hex(32)
    config["userID"] = user_id
    try:
        path.write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        logger.debug(f"Could not persist user id to {path}: {e}")
    return user_id
