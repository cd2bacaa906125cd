"""Title normalization, system-session detection and per-store title caches.

Titles are derived by scanning the head of a conversation file. The scan is
bounded by a per-provider line cap, so a file's cost is the same no matter
how long the conversation grew. Results are memoized per absolute path and
invalidated implicitly whenever the file's mtime or size changes.
"""

import json
import logging
import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 56
ELLIPSIS = "…"
USER_MESSAGE_BEGIN = "## My request for Codex:"

SYSTEM_MESSAGE_PREFIXES = (
    "$skill-",
    "# agents.md instructions",
    "<environment_context>",
    "<permissions instructions>",
    "<app-context>",
    "<collaboration_mode>",
    "<instructions>",
    "<user_instructions>",
    "<skill>",
)
NON_INTERACTIVE_SOURCES = ("exec", "mcp")
SUB_AGENT_SOURCE_PREFIX = "sub_agent"

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_title(raw_title: Any) -> str | None:
    """Collapse whitespace and cap the title at 56 characters.

    Longer titles keep their first 55 characters followed by an ellipsis.
    Returns None for anything that is not a non-blank string.
    """
    if not isinstance(raw_title, str):
        return None

    one_line = _WHITESPACE_RE.sub(" ", raw_title).strip()
    if not one_line:
        return None

    if len(one_line) <= MAX_TITLE_LENGTH:
        return one_line
    return one_line[: MAX_TITLE_LENGTH - 1] + ELLIPSIS


def strip_user_message_prefix(text: Any) -> str:
    """Drop the IDE context block that precedes the actual request, if any."""
    if not isinstance(text, str):
        return ""

    index = text.find(USER_MESSAGE_BEGIN)
    if index >= 0:
        return text[index + len(USER_MESSAGE_BEGIN):].strip()
    return text.strip()


def is_system_message(title: str) -> bool:
    """True if a first user message was injected by tooling rather than typed."""
    return title.lower().startswith(SYSTEM_MESSAGE_PREFIXES)


def fallback_title(thread_id: str) -> str:
    if not thread_id or thread_id == "unknown":
        return "Untitled session"
    return f"Untitled {thread_id[:8]}"


@dataclass
class SessionSignals:
    """Provenance signals gathered from the head of a rollout file."""

    source: str = "unknown"
    has_user_message: bool = False
    first_user_title: Optional[str] = None
    first_user_is_system: bool = False

    @property
    def is_system_session(self) -> bool:
        if not self.has_user_message:
            return True
        if self.first_user_title and self.first_user_is_system:
            return True
        if self.source in NON_INTERACTIVE_SOURCES:
            return True
        return self.source.startswith(SUB_AGENT_SOURCE_PREFIX)


def iter_json_lines(path: Path, max_lines: int) -> Iterator[Any]:
    """Yield parsed records from the first max_lines lines of a JSONL file.

    Unparsable lines (a partially written trailing line, for instance) are
    skipped. FileNotFoundError propagates so callers can treat a vanished
    file as absent.
    """
    with path.open(encoding="utf-8", errors="replace") as f:
        for line_num, line in enumerate(f, 1):
            if line_num > max_lines:
                break
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping unparsable line %s:%d", path, line_num)
                continue


@dataclass
class _CacheEntry:
    mtime_ns: int
    size: int
    version: Optional[str]
    value: Any


class TitleCache:
    """Per-store memo of resolved metadata, keyed by absolute path.

    An entry is valid only while the file's mtime and size (and, where the
    store supplies one, an override version token) still match.
    """

    def __init__(self):
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, path: Path, mtime_ns: int, size: int, version: str | None = None) -> Any:
        with self._lock:
            entry = self._entries.get(str(path))
        if entry is None:
            return None
        if entry.mtime_ns != mtime_ns or entry.size != size or entry.version != version:
            return None
        return entry.value

    def put(self, path: Path, mtime_ns: int, size: int, value: Any, version: str | None = None) -> None:
        with self._lock:
            self._entries[str(path)] = _CacheEntry(mtime_ns, size, version, value)

    def prune(self, live_paths) -> int:
        """Drop entries for paths not seen in the latest listing."""
        live = {str(p) for p in live_paths}
        with self._lock:
            stale = [key for key in self._entries if key not in live]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path) -> bool:
        return str(path) in self._entries


class DesktopTitleCache:
    """Thread titles set in the desktop app, read from its global state file.

    The file is reparsed only when its mtime/size version token changes.
    A missing or malformed file means no overrides.
    """

    NO_FILE_VERSION = "none"

    def __init__(self, state_path: Path):
        self.state_path = state_path
        self.version = self.NO_FILE_VERSION
        self.titles: dict[str, str] = {}
        self._lock = threading.Lock()

    def load(self) -> dict[str, str]:
        with self._lock:
            try:
                stats = os.stat(self.state_path)
            except FileNotFoundError:
                self.version = self.NO_FILE_VERSION
                self.titles = {}
                return self.titles

            version = f"{stats.st_mtime_ns}:{stats.st_size}"
            if version == self.version:
                return self.titles

            self.version = version
            self.titles = self._read_titles()
            return self.titles

    def _read_titles(self) -> dict[str, str]:
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable desktop state %s: %s", self.state_path, e)
            return {}

        section = data.get("thread-titles") if isinstance(data, dict) else None
        raw_titles = section.get("titles") if isinstance(section, dict) else None
        if not isinstance(raw_titles, dict):
            return {}

        titles = {}
        for thread_id, raw_title in raw_titles.items():
            title = normalize_title(raw_title)
            if title:
                titles[thread_id] = title
        return titles
