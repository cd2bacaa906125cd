"""Codex session store.

Reads rollout logs from the Codex home directory:

- sessions/YYYY/MM/DD/rollout-<timestamp>-<threadId>.jsonl (active)
- archived_sessions/rollout-<timestamp>-<threadId>.jsonl (archived, flat)
- .codex-global-state.json (titles renamed in the desktop app)

Rollout entry types used for titles:
- "session_meta": payload.source tags how the session was started
  ("cli", "vscode", "exec", "mcp", "sub_agent_*", ...).
- "event_msg" with payload.type "user_message": a message the user typed.
  Injected context (AGENTS.md, environment blocks, skill triggers) arrives
  the same way and marks the whole session as system-generated.
"""

import logging
import os
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

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
from ..errors import DestinationExists, InvalidTransition, UnparsableLocation
from ..fs_utils import ensure_dir, move_path, normalize_relative_path, path_exists, walk_files
from ..provider import ArchivingSessionStore
from ..titles import (
    DesktopTitleCache,
    SessionSignals,
    TitleCache,
    fallback_title,
    is_system_message,
    iter_json_lines,
    normalize_title,
    strip_user_message_prefix,
)
from .claude_code import is_claude_item_id
from .gemini import is_gemini_item_id

logger = logging.getLogger(__name__)

MAX_TITLE_SCAN_LINES = 700

ROLLOUT_FILENAME_RE = re.compile(
    r"^rollout-(\d{4})-(\d{2})-(\d{2})T(\d{2})-(\d{2})-(\d{2})-(.+)\.jsonl$"
)


@dataclass(frozen=True)
class RolloutName:
    year: str
    month: str
    day: str
    hour: str
    minute: str
    second: str
    thread_id: str

    @property
    def created_at(self) -> datetime:
        return datetime(
            int(self.year), int(self.month), int(self.day),
            int(self.hour), int(self.minute), int(self.second),
            tzinfo=timezone.utc,
        )


def parse_rollout_filename(file_name: str) -> RolloutName | None:
    """Split a rollout file name into its timestamp parts and thread id."""
    match = ROLLOUT_FILENAME_RE.match(file_name)
    if not match:
        return None
    return RolloutName(*match.groups())


def encode_codex_item_id(relative_path: str) -> str:
    return encode_item_id(relative_path)


def decode_codex_item_id(item_id: str) -> str | None:
    """Return the home-relative rollout path an id points to."""
    if is_claude_item_id(item_id) or is_gemini_item_id(item_id):
        return None
    return decode_item_id(item_id)


def is_codex_item_id(item_id: str) -> bool:
    return decode_codex_item_id(item_id) is not None


def read_session_signals(path: Path) -> SessionSignals:
    """Scan the head of a rollout for its source tag and first user message.

    Stops as soon as both are known, or after MAX_TITLE_SCAN_LINES lines.
    """
    signals = SessionSignals()

    for record in iter_json_lines(path, MAX_TITLE_SCAN_LINES):
        if not isinstance(record, dict):
            continue
        payload = record.get("payload")
        if not isinstance(payload, dict):
            continue

        record_type = record.get("type")
        if signals.source == "unknown" and record_type == "session_meta":
            source = payload.get("source")
            if isinstance(source, str) and source.strip():
                signals.source = source.strip()

        if record_type == "event_msg" and payload.get("type") == "user_message":
            title = normalize_title(strip_user_message_prefix(payload.get("message")))
            if title:
                signals.has_user_message = True
                if not signals.first_user_title:
                    signals.first_user_title = title
                    signals.first_user_is_system = is_system_message(title)

        if signals.source != "unknown" and signals.first_user_title:
            break

    return signals


@dataclass
class _ResolvedMeta:
    title: str
    signals: SessionSignals


class CodexSessionStore(ArchivingSessionStore):
    """Store for Codex rollout files."""

    name = "codex"

    def __init__(self, home: Path):
        self.home = Path(home)
        self.sessions_root = self.home / "sessions"
        self.archived_root = self.home / "archived_sessions"
        self.title_cache = TitleCache()
        self.desktop_titles = DesktopTitleCache(self.home / ".codex-global-state.json")
        self.lock = threading.RLock()

    def list_sessions(self) -> SessionListing:
        with self.lock:
            desktop_titles = self.desktop_titles.load()
            scanned: list[Path] = []
            active = self._scan_root(self.sessions_root, ACTIVE, desktop_titles, scanned)
            archived = self._scan_root(self.archived_root, ARCHIVED, desktop_titles, scanned)

            items = sort_newest_first(active + archived)
            # hidden system sessions stay cached too
            self.title_cache.prune(scanned)

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
        return is_codex_item_id(item_id)

    def archive_item(self, item: SessionItem) -> dict:
        if item.state != ACTIVE:
            raise InvalidTransition("only active sessions can be archived")

        with self.lock:
            destination = self.archived_root / item.file_name
            if path_exists(destination):
                raise DestinationExists("archived destination already exists")

            ensure_dir(self.archived_root)
            move_path(item.absolute_path, destination)

        logger.info("Archived %s -> %s", item.relative_path, destination)
        return {"from": item.relative_path, "to": self._relative(destination)}

    def unarchive_item(self, item: SessionItem) -> dict:
        if item.state != ARCHIVED:
            raise InvalidTransition("only archived sessions can be restored to active")

        parsed = parse_rollout_filename(item.file_name)
        if parsed is None:
            raise UnparsableLocation("cannot infer date from rollout filename")

        with self.lock:
            destination_dir = self.sessions_root / parsed.year / parsed.month / parsed.day
            destination = destination_dir / item.file_name
            if path_exists(destination):
                raise DestinationExists("active destination already exists")

            ensure_dir(destination_dir)
            move_path(item.absolute_path, destination)

        logger.info("Unarchived %s -> %s", item.relative_path, destination)
        return {"from": item.relative_path, "to": self._relative(destination)}

    # ── Private helpers ──────────────────────────────────────────────

    def _relative(self, absolute_path: Path) -> str:
        return normalize_relative_path(os.path.relpath(absolute_path, self.home))

    def _scan_root(self, root: Path, state: str, desktop_titles: dict[str, str],
                   scanned: list[Path]) -> list[SessionItem]:
        items = []

        for absolute_path in walk_files(root):
            file_name = absolute_path.name
            if not file_name.startswith("rollout-") or not file_name.endswith(".jsonl"):
                continue

            try:
                stats = absolute_path.stat()
            except FileNotFoundError:
                continue
            scanned.append(absolute_path)

            parsed = parse_rollout_filename(file_name)
            thread_id = parsed.thread_id if parsed else "unknown"

            meta = self._resolve_meta(absolute_path, stats, thread_id, desktop_titles)
            if meta.signals.is_system_session:
                continue

            relative_path = self._relative(absolute_path)
            items.append(SessionItem(
                item_id=encode_codex_item_id(relative_path),
                thread_id=thread_id,
                title=meta.title,
                state=state,
                provider=self.name,
                absolute_path=absolute_path,
                relative_path=relative_path,
                file_name=file_name,
                size_bytes=stats.st_size,
                created_at=parsed.created_at if parsed else _created_from_stat(stats),
                updated_at=datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc),
                source=meta.signals.source,
                has_user_message=meta.signals.has_user_message,
            ))

        return items

    def _resolve_meta(self, path: Path, stats: os.stat_result, thread_id: str,
                      desktop_titles: dict[str, str]) -> _ResolvedMeta:
        version = self.desktop_titles.version
        cached = self.title_cache.get(path, stats.st_mtime_ns, stats.st_size, version)
        if cached is not None:
            return cached

        try:
            signals = read_session_signals(path)
        except FileNotFoundError:
            signals = SessionSignals()

        title = (
            desktop_titles.get(thread_id)
            or signals.first_user_title
            or fallback_title(thread_id)
        )
        meta = _ResolvedMeta(title=title, signals=signals)
        self.title_cache.put(path, stats.st_mtime_ns, stats.st_size, meta, version)
        return meta


def _created_from_stat(stats: os.stat_result) -> datetime:
    created = getattr(stats, "st_birthtime", None) or stats.st_ctime or stats.st_mtime
    return datetime.fromtimestamp(created, tz=timezone.utc)
