"""Claude Code session store.

Reads sessions from ~/.claude/projects/. Each project directory is named
after the working directory it belongs to (``/Users/me/app`` becomes
``-Users-me-app``) and holds one ``<sessionId>.jsonl`` per conversation.
Nested directories (subagent transcripts, tool output) are not sessions.

JSONL entry types used for listing:
- "user": user turns. Content is a string or an array of blocks; only
  "text" blocks count toward the title (tool_result blocks are skipped).
  The first entry carrying "gitBranch" gives the session's branch.
- everything else: skipped.

Claude Code has no archived location, so this store only lists and finds.
"""

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..core import (
    ACTIVE,
    SessionItem,
    SessionListing,
    Selection,
    decode_item_id,
    encode_item_id,
    select_by_ids,
    sort_newest_first,
)
from ..fs_utils import normalize_relative_path
from ..provider import SessionStore
from ..titles import TitleCache, fallback_title, iter_json_lines, normalize_title

logger = logging.getLogger(__name__)

MAX_TITLE_SCAN_LINES = 50
ITEM_ID_PREFIX = "claude:"


def encode_claude_item_id(session_id: str) -> str:
    return encode_item_id(f"{ITEM_ID_PREFIX}{session_id}")


def decode_claude_item_id(item_id: str) -> str | None:
    decoded = decode_item_id(item_id)
    if decoded is None or not decoded.startswith(ITEM_ID_PREFIX):
        return None
    return decoded[len(ITEM_ID_PREFIX):]


def is_claude_item_id(item_id: str) -> bool:
    return decode_claude_item_id(item_id) is not None


def decode_project_name(dir_name: str) -> str:
    """Derive a display path from a folder name: -Users-me-app -> /Users/me/app.

    Claude Code writes every path separator as "-", so hyphens inside the
    original names cannot be told apart and also become "/".
    """
    return dir_name.replace("-", "/")


@dataclass
class ClaudeSignals:
    title: Optional[str] = None
    git_branch: Optional[str] = None
    message_count: int = 0


def read_claude_signals(path: Path) -> ClaudeSignals:
    """Scan the first MAX_TITLE_SCAN_LINES lines for title, branch and user turns."""
    signals = ClaudeSignals()
    first_user_text = None

    for entry in iter_json_lines(path, MAX_TITLE_SCAN_LINES):
        if not isinstance(entry, dict) or entry.get("type") != "user":
            continue

        signals.message_count += 1
        if not signals.git_branch and isinstance(entry.get("gitBranch"), str):
            signals.git_branch = entry["gitBranch"] or None
        if first_user_text is None:
            first_user_text = _extract_user_text(entry) or None

    signals.title = normalize_title(first_user_text)
    return signals


def _extract_user_text(entry: dict) -> str:
    """Extract plain text content from a user entry (ignoring tool_results)."""
    msg_data = entry.get("message")
    if not isinstance(msg_data, dict):
        return ""
    content = msg_data.get("content", [])
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""

    parts = []
    for block in content:
        if isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
        elif isinstance(block, str):
            parts.append(block)
    return "\n".join(p for p in parts if isinstance(p, str))


class ClaudeSessionStore(SessionStore):
    """Store for Claude Code project transcripts."""

    name = "claude"

    def __init__(self, home: Path):
        self.home = Path(home)
        self.projects_root = self.home / "projects"
        self.title_cache = TitleCache()
        self.lock = threading.RLock()

    def list_sessions(self) -> SessionListing:
        with self.lock:
            items = sort_newest_first(self._scan_projects())
            self.title_cache.prune(item.absolute_path for item in items)

        return SessionListing(
            items=items,
            counts={"total": len(items), "active": len(items), "archived": 0},
        )

    def find_items_by_ids(self, item_ids: list[str]) -> Selection:
        return select_by_ids(self.list_sessions().items, item_ids)

    def is_item_id(self, item_id: str) -> bool:
        return is_claude_item_id(item_id)

    # ── Private helpers ──────────────────────────────────────────────

    def _scan_projects(self) -> list[SessionItem]:
        try:
            project_dirs = [d for d in self.projects_root.iterdir() if d.is_dir()]
        except FileNotFoundError:
            return []

        items = []
        for project_dir in sorted(project_dirs):
            try:
                files = sorted(project_dir.iterdir())
            except FileNotFoundError:
                continue

            project_name = self._resolve_project_name(project_dir)
            for jsonl_file in files:
                if jsonl_file.suffix != ".jsonl" or not jsonl_file.is_file():
                    continue
                item = self._build_item(jsonl_file, project_name)
                if item is not None:
                    items.append(item)

        return items

    def _resolve_project_name(self, project_dir: Path) -> str:
        """Resolve the display path for a project directory.

        First checks sessions-index.json for projectPath,
        then falls back to deriving from directory name.
        """
        index_path = project_dir / "sessions-index.json"
        if index_path.exists():
            try:
                data = json.loads(index_path.read_text(encoding="utf-8"))
                entries = data.get("entries") if isinstance(data, dict) else data
                if isinstance(entries, list) and entries and isinstance(entries[0], dict):
                    path = entries[0].get("projectPath")
                    if path:
                        return path
            except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
                logger.debug("Ignoring sessions-index.json in %s: %s", project_dir, e)

        return decode_project_name(project_dir.name)

    def _build_item(self, path: Path, project_name: str) -> SessionItem | None:
        try:
            stats = path.stat()
        except FileNotFoundError:
            return None

        session_id = path.stem
        signals = self.title_cache.get(path, stats.st_mtime_ns, stats.st_size)
        if signals is None:
            try:
                signals = read_claude_signals(path)
            except FileNotFoundError:
                return None
            self.title_cache.put(path, stats.st_mtime_ns, stats.st_size, signals)

        created = getattr(stats, "st_birthtime", None) or stats.st_ctime or stats.st_mtime
        return SessionItem(
            item_id=encode_claude_item_id(session_id),
            thread_id=session_id,
            title=signals.title or fallback_title(session_id),
            state=ACTIVE,
            provider=self.name,
            absolute_path=path,
            relative_path=normalize_relative_path(os.path.relpath(path, self.home)),
            file_name=path.name,
            size_bytes=stats.st_size,
            created_at=datetime.fromtimestamp(created, tz=timezone.utc),
            updated_at=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
            project_name=project_name,
            git_branch=signals.git_branch,
            message_count=signals.message_count,
        )
