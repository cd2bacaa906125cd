"""Path and retention settings, resolved from flags, environment and defaults."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


def _env_path(*names: str) -> Path | None:
    for name in names:
        value = os.environ.get(name)
        if value:
            return Path(value).expanduser()
    return None


def get_codex_home() -> Path:
    """Return Codex's home directory (holds sessions/ and archived_sessions/)."""
    return _env_path("SESSION_HUB_CODEX_HOME", "CODEX_HOME") or Path.home() / ".codex"


def get_claude_home() -> Path:
    """Return Claude Code's home directory (holds projects/)."""
    return _env_path("SESSION_HUB_CLAUDE_HOME", "CLAUDE_CONFIG_DIR") or Path.home() / ".claude"


def get_gemini_home() -> Path:
    """Return Gemini CLI's home directory (holds tmp/<hash>/chats/)."""
    return _env_path("SESSION_HUB_GEMINI_HOME") or Path.home() / ".gemini"


def get_trash_root() -> Path:
    return _env_path("SESSION_HUB_TRASH_ROOT") or Path.home() / ".session-hub-trash"


def parse_retention_days(value, default: int = DEFAULT_RETENTION_DAYS) -> int:
    """Parse a retention window; negative or non-integer input gives the default."""
    try:
        days = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if days < 0:
        return default
    return days


def get_retention_days() -> int:
    raw = os.environ.get("SESSION_HUB_RETENTION_DAYS")
    if raw is None:
        return DEFAULT_RETENTION_DAYS
    days = parse_retention_days(raw)
    if str(days) != raw.strip():
        logger.warning("Invalid SESSION_HUB_RETENTION_DAYS=%r, using %d", raw, days)
    return days


@dataclass
class Settings:
    codex_home: Path
    claude_home: Path
    gemini_home: Path
    trash_root: Path
    retention_days: int = DEFAULT_RETENTION_DAYS

    @property
    def home_roots(self) -> dict[str, Path]:
        return {
            "codex": self.codex_home,
            "claude": self.claude_home,
            "gemini": self.gemini_home,
        }


def load_settings(
    codex_home=None,
    claude_home=None,
    gemini_home=None,
    trash_root=None,
    retention_days=None,
) -> Settings:
    """Build Settings; explicit arguments win over environment and defaults."""
    return Settings(
        codex_home=_absolute(codex_home or get_codex_home()),
        claude_home=_absolute(claude_home or get_claude_home()),
        gemini_home=_absolute(gemini_home or get_gemini_home()),
        trash_root=_absolute(trash_root or get_trash_root()),
        retention_days=(
            get_retention_days() if retention_days is None
            else parse_retention_days(retention_days)
        ),
    )


def _absolute(path) -> Path:
    return Path(os.path.abspath(Path(path).expanduser()))
