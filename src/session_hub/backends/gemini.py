"""Gemini CLI session store.

Reads chat checkpoints from ~/.gemini/:

- tmp/<projectHash>/chats/session-*.json (active)
- archived_sessions/<projectHash>/chats/session-*.json (archived)

Each file is a single JSON document (not JSONL):
{"sessionId", "projectHash", "startTime", "lastUpdated", "summary"?,
 "messages": [{"type": "user" | "gemini" | ..., "content": ...}]}

A "summary" written by the CLI is preferred over the first user message.
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
    ARCHIVED,
    SessionItem,
    SessionListing,
    Selection,
    decode_item_id,
    encode_item_id,
    select_by_ids,
    sort_newest_first,
)
from ..errors import DestinationExists, InvalidTransition
from ..fs_utils import ensure_dir, move_path, normalize_relative_path, path_exists
from ..provider import ArchivingSessionStore
from ..titles import TitleCache, fallback_title, normalize_title

logger = logging.getLogger(__name__)

ITEM_ID_PREFIX = "gemini:"


def encode_gemini_item_id(session_id: str) -> str:
    return encode_item_id(f"{ITEM_ID_PREFIX}{session_id}")


def decode_gemini_item_id(item_id: str) -> str | None:
    decoded = decode_item_id(item_id)
    if decoded is None or not decoded.startswith(ITEM_ID_PREFIX):
        return None
    return decoded[len(ITEM_ID_PREFIX):]


def is_gemini_item_id(item_id: str) -> bool:
    return decode_gemini_item_id(item_id) is not None


@dataclass
class GeminiMeta:
    session_id: str = ""
    title: Optional[str] = None
    start_time: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    message_count: int = 0


def read_gemini_meta(path: Path) -> GeminiMeta:
    """Parse a chat checkpoint. Unparsable documents yield empty metadata."""
    meta = GeminiMeta()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.debug("Unparsable Gemini session %s: %s", path, e)
        return meta

    if not isinstance(data, dict):
        return meta

    session_id = data.get("sessionId")
    meta.session_id = session_id if isinstance(session_id, str) else ""
    meta.start_time = _parse_iso(data.get("startTime"))
    meta.last_updated = _parse_iso(data.get("lastUpdated"))

    messages = data.get("messages")
    if not isinstance(messages, list):
        messages = []
    meta.message_count = len(messages)

    meta.title = normalize_title(data.get("summary"))
    if not meta.title:
        first_user = next(
            (m for m in messages if isinstance(m, dict) and m.get("type") == "user"),
            None,
        )
        if first_user is not None:
            meta.title = normalize_title(_message_text(first_user.get("content")))

    return meta


def _message_text(content) -> str | None:
    """Content is a plain string, or a list of {"text": ...} parts in newer CLIs."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            part.get("text") for part in content
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        return "\n".join(parts)
    return None


class GeminiSessionStore(ArchivingSessionStore):
    """Store for Gemini CLI chat checkpoints."""

    name = "gemini"

    def __init__(self, home: Path):
        self.home = Path(home)
        self.projects_root = self.home / "tmp"
        self.archived_root = self.home / "archived_sessions"
        self.title_cache = TitleCache()
        self.lock = threading.RLock()

    def list_sessions(self) -> SessionListing:
        with self.lock:
            active = self._scan_root(self.projects_root, ACTIVE)
            archived = self._scan_root(self.archived_root, ARCHIVED)

            items = sort_newest_first(active + archived)
            self.title_cache.prune(item.absolute_path for item in items)

        return SessionListing(
            items=items,
            counts={
                "total": len(items),
                "active": len(active),
                "archived": len(archived),
            },
        )

    def find_items_by_ids(self, item_ids: list[str]) -> Selection:
        return select_by_ids(self.list_sessions().items, item_ids)

    def is_item_id(self, item_id: str) -> bool:
        return is_gemini_item_id(item_id)

    def archive_item(self, item: SessionItem) -> dict:
        if item.state != ACTIVE:
            raise InvalidTransition("only active sessions can be archived")
        return self._move_between(item, self.projects_root, self.archived_root, "archived")

    def unarchive_item(self, item: SessionItem) -> dict:
        if item.state != ARCHIVED:
            raise InvalidTransition("only archived sessions can be restored to active")
        return self._move_between(item, self.archived_root, self.projects_root, "active")

    # ── Private helpers ──────────────────────────────────────────────

    def _move_between(self, item: SessionItem, from_root: Path, to_root: Path, label: str) -> dict:
        """Move a chat file to the same <hash>/chats/<file> location under to_root."""
        with self.lock:
            relative_from_root = os.path.relpath(item.absolute_path, from_root)
            destination = to_root / relative_from_root
            if path_exists(destination):
                raise DestinationExists(f"{label} destination already exists")

            ensure_dir(destination.parent)
            move_path(item.absolute_path, destination)

        logger.info("Moved Gemini session %s -> %s", item.relative_path, destination)
        return {"from": item.relative_path, "to": self._relative(destination)}

    def _relative(self, absolute_path: Path) -> str:
        return normalize_relative_path(os.path.relpath(absolute_path, self.home))

    def _scan_root(self, root: Path, state: str) -> list[SessionItem]:
        try:
            hash_dirs = [d for d in root.iterdir() if d.is_dir()]
        except FileNotFoundError:
            return []

        items = []
        for hash_dir in sorted(hash_dirs):
            chats_dir = hash_dir / "chats"
            try:
                files = sorted(chats_dir.iterdir())
            except (FileNotFoundError, NotADirectoryError):
                continue

            for chat_file in files:
                name = chat_file.name
                if not name.startswith("session-") or not name.endswith(".json"):
                    continue
                if not chat_file.is_file():
                    continue
                item = self._build_item(chat_file, hash_dir.name, state)
                if item is not None:
                    items.append(item)

        return items

    def _build_item(self, path: Path, project_hash: str, state: str) -> SessionItem | None:
        try:
            stats = path.stat()
        except FileNotFoundError:
            return None

        meta = self.title_cache.get(path, stats.st_mtime_ns, stats.st_size)
        if meta is None:
            try:
                meta = read_gemini_meta(path)
            except FileNotFoundError:
                return None
            self.title_cache.put(path, stats.st_mtime_ns, stats.st_size, meta)

        session_id = meta.session_id or path.stem
        created = getattr(stats, "st_birthtime", None) or stats.st_ctime or stats.st_mtime
        return SessionItem(
            item_id=encode_gemini_item_id(session_id),
            thread_id=session_id,
            title=meta.title or fallback_title(session_id),
            state=state,
            provider=self.name,
            absolute_path=path,
            relative_path=self._relative(path),
            file_name=path.name,
            size_bytes=stats.st_size,
            created_at=meta.start_time or datetime.fromtimestamp(created, tz=timezone.utc),
            updated_at=meta.last_updated or datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
            project_hash=project_hash,
            message_count=meta.message_count,
        )


def _parse_iso(value) -> datetime | None:
    """Parse an ISO 8601 datetime string."""
    if not value or not isinstance(value, str):
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
