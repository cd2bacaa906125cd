"""Soft-delete store with restore, purge and retention-based expiry.

Layout under the trash root::

    items/<trashId>/meta.json
    items/<trashId>/payload/<path relative to the provider home>

meta.json is plain data that can be hand-edited, so restore re-validates
every path it derives from it against its allowed root before touching the
filesystem.
"""

import json
import logging
import os
import re
import secrets
import shutil
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .batch import run_batch
from .core import BatchReport, CleanupReport, Selection, SessionItem, TrashItem
from .errors import (
    DestinationExists,
    MalformedToken,
    NotFoundError,
    OutOfBoundsPath,
    UnclassifiableError,
)
from .fs_utils import (
    ensure_dir,
    move_path,
    normalize_relative_path,
    path_exists,
    resolve_within_root,
)

logger = logging.getLogger(__name__)

SAFE_TRASH_ID_RE = re.compile(r"^[A-Za-z0-9-]+$")
METADATA_FILE = "meta.json"
PAYLOAD_DIR = "payload"


def create_trash_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def is_safe_trash_id(value) -> bool:
    return isinstance(value, str) and bool(SAFE_TRASH_ID_RE.match(value))


def _describe_trash_id(trash_id: str) -> dict:
    return {"trash_id": trash_id}


class TrashStore:
    """Trash slots for sessions from any provider home."""

    def __init__(self, trash_root: Path, retention_days: int, home_roots: dict[str, Path]):
        self.trash_root = Path(trash_root)
        self.items_root = self.trash_root / "items"
        self.retention_days = retention_days
        self.home_roots = {name: Path(os.path.abspath(root)) for name, root in home_roots.items()}
        self.lock = threading.RLock()

    def init(self) -> None:
        ensure_dir(self.items_root)

    def trash_session_item(self, item: SessionItem, home_root: Path | None = None) -> TrashItem:
        """Move a session file into a fresh slot and record how to undo it."""
        effective_home = Path(os.path.abspath(home_root or self.home_roots[item.provider]))
        trash_id = create_trash_id()
        item_root = self.items_root / trash_id
        payload_relative_path = normalize_relative_path(Path(PAYLOAD_DIR) / item.relative_path)
        payload_path = resolve_within_root(item_root, payload_relative_path, "trash payload path")

        deleted_at = datetime.now(timezone.utc)
        trashed = TrashItem(
            trash_id=trash_id,
            thread_id=item.thread_id,
            file_name=item.file_name,
            title=item.title,
            original_state=item.state,
            original_relative_path=item.relative_path,
            payload_relative_path=payload_relative_path,
            size_bytes=item.size_bytes,
            deleted_at=deleted_at,
            expires_at=deleted_at + timedelta(days=self.retention_days),
            provider=item.provider,
            home_root=str(effective_home),
        )

        with self.lock:
            self.init()
            try:
                ensure_dir(payload_path.parent)
                move_path(item.absolute_path, payload_path)
            except OSError:
                shutil.rmtree(item_root, ignore_errors=True)
                raise

            try:
                (item_root / METADATA_FILE).write_text(
                    json.dumps(trashed.to_metadata(), indent=2, ensure_ascii=False),
                    encoding="utf-8",
                )
            except OSError:
                # a payload without meta.json is unreachable, so put it back
                move_path(payload_path, item.absolute_path)
                shutil.rmtree(item_root, ignore_errors=True)
                raise

        logger.info("Trashed %s session %s as %s", item.provider, item.relative_path, trash_id)
        return trashed

    def list_trash_items(self) -> list[TrashItem]:
        """Return every readable slot, most recently deleted first."""
        try:
            slots = [entry for entry in self.items_root.iterdir() if entry.is_dir()]
        except FileNotFoundError:
            return []

        now = datetime.now(timezone.utc)
        items = []
        for slot in slots:
            try:
                items.append(self._load_item(slot.name, now))
            except (NotFoundError, MalformedToken, UnclassifiableError, OSError) as e:
                logger.debug("Skipping trash slot %s: %s", slot.name, e)
                continue

        items.sort(key=lambda t: t.deleted_at, reverse=True)
        return items

    def restore(self, trash_ids: list[str]) -> BatchReport:
        return run_batch(
            trash_ids,
            _select_all,
            self._restore_one,
            id_field="trash_id",
            describe=_describe_trash_id,
        )

    def purge(self, trash_ids: list[str]) -> BatchReport:
        return run_batch(
            trash_ids,
            _select_all,
            self._purge_one,
            id_field="trash_id",
            describe=_describe_trash_id,
        )

    def cleanup_expired(self) -> CleanupReport:
        """Purge every slot whose retention window has elapsed."""
        expired_ids = [item.trash_id for item in self.list_trash_items() if item.expired]
        report = self.purge(expired_ids)
        if report.failed:
            logger.error("Failed to purge %d expired trash items", report.failed_count)
        return CleanupReport(
            requested=report.requested,
            succeeded=report.succeeded,
            failed=report.failed,
            expired_candidates=len(expired_ids),
        )

    # ── Private helpers ──────────────────────────────────────────────

    def _restore_one(self, trash_id: str) -> dict:
        with self.lock:
            trashed = self._load_item(trash_id, datetime.now(timezone.utc))
            item_root = self.items_root / trash_id

            payload_path = resolve_within_root(
                item_root, trashed.payload_relative_path, "trash payload path"
            )
            if not path_exists(payload_path):
                raise NotFoundError("trash payload is missing")

            home_root = self._allowed_home_root(trashed)
            target_path = resolve_within_root(
                home_root, trashed.original_relative_path, "restore target path"
            )
            if path_exists(target_path):
                raise DestinationExists("restore target already exists")

            ensure_dir(target_path.parent)
            move_path(payload_path, target_path)
            try:
                shutil.rmtree(item_root)
            except OSError as e:
                logger.error("Restored %s but could not remove its trash slot: %s", trash_id, e)

        restored_to = normalize_relative_path(os.path.relpath(target_path, home_root))
        logger.info("Restored trash item %s to %s", trash_id, target_path)
        return {"restored_to": restored_to, "provider": trashed.provider}

    def _purge_one(self, trash_id: str) -> dict:
        if not is_safe_trash_id(trash_id):
            raise MalformedToken("invalid trash id")

        with self.lock:
            item_root = self.items_root / trash_id
            try:
                shutil.rmtree(item_root)
            except FileNotFoundError:
                pass

        logger.info("Purged trash item %s", trash_id)
        return {}

    def _allowed_home_root(self, trashed: TrashItem) -> Path:
        """Return the home a slot may restore into.

        The recorded home must be one of the configured provider homes.
        """
        configured = self.home_roots.get(trashed.provider)
        if not trashed.home_root:
            if configured is None:
                raise OutOfBoundsPath("restore home root is not configured")
            return configured

        recorded = Path(os.path.abspath(trashed.home_root))
        if recorded not in self.home_roots.values():
            raise OutOfBoundsPath("restore home root escapes allowed root")
        return recorded

    def _load_item(self, trash_id: str, now: datetime) -> TrashItem:
        if not is_safe_trash_id(trash_id):
            raise MalformedToken("invalid trash id")

        item_root = self.items_root / trash_id
        try:
            raw = (item_root / METADATA_FILE).read_bytes()
        except FileNotFoundError:
            raise NotFoundError("trash item not found")

        try:
            metadata = json.loads(raw.decode("utf-8"))
            trashed = _trash_item_from_metadata(trash_id, metadata)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Unreadable trash metadata for %s: %s", trash_id, e)
            raise UnclassifiableError("trash metadata is unreadable")

        try:
            payload_path = resolve_within_root(
                item_root, trashed.payload_relative_path, "trash payload path"
            )
            trashed.payload_exists = path_exists(payload_path)
        except OutOfBoundsPath:
            trashed.payload_exists = False

        trashed.expired = now >= trashed.expires_at
        return trashed


def _select_all(trash_ids: list[str]) -> Selection:
    return Selection(found=list(trash_ids))


def _trash_item_from_metadata(trash_id: str, metadata: dict) -> TrashItem:
    deleted_at = _parse_timestamp(metadata.get("deletedAt"))
    return TrashItem(
        trash_id=trash_id,
        thread_id=str(metadata.get("threadId") or ""),
        file_name=str(metadata.get("fileName") or ""),
        title=str(metadata.get("title") or ""),
        original_state=str(metadata.get("originalState") or ""),
        original_relative_path=metadata.get("originalRelativePath"),
        payload_relative_path=metadata.get("payloadRelativePath"),
        size_bytes=int(metadata.get("sizeBytes") or 0),
        deleted_at=deleted_at,
        expires_at=_parse_timestamp(metadata.get("expiresAt")),
        provider=str(metadata.get("provider") or "codex"),
        home_root=str(metadata.get("homeRoot") or ""),
    )


def _parse_timestamp(value) -> datetime:
    """Parse an ISO timestamp; missing values sort as the epoch."""
    if not value:
        return datetime(1970, 1, 1, tzinfo=timezone.utc)
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
