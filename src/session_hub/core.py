"""Core data models for session-hub."""

import base64
import binascii
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

ACTIVE = "active"
ARCHIVED = "archived"


@dataclass
class SessionItem:
    """A conversation file as seen by one listing.

    Rebuilt on every listing and never persisted.
    """

    item_id: str  # opaque url-safe handle, see encode_item_id()
    thread_id: str
    title: str
    state: str  # "active" | "archived"
    provider: str  # "codex" | "claude" | "gemini"
    absolute_path: Path
    relative_path: str  # relative to the provider home, forward slashes
    file_name: str
    size_bytes: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    source: Optional[str] = None
    has_user_message: Optional[bool] = None
    project_name: Optional[str] = None
    project_hash: Optional[str] = None
    git_branch: Optional[str] = None
    message_count: Optional[int] = None


@dataclass
class SessionListing:
    """Result of a full store listing."""

    items: list[SessionItem]
    counts: dict[str, int]


@dataclass
class Selection:
    """Items resolved from opaque ids, plus the ids that matched nothing."""

    found: list = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    def extend(self, other: "Selection") -> None:
        self.found.extend(other.found)
        self.missing.extend(other.missing)


@dataclass
class TrashItem:
    """A soft-deleted session, as recorded in its trash slot's meta.json."""

    trash_id: str
    thread_id: str
    file_name: str
    original_state: str
    original_relative_path: str
    payload_relative_path: str
    size_bytes: int
    deleted_at: datetime
    expires_at: datetime
    provider: str
    home_root: str
    title: str = ""
    payload_exists: bool = True
    expired: bool = False

    def to_metadata(self) -> dict:
        """Serialize to the on-disk meta.json shape."""
        return {
            "trashId": self.trash_id,
            "threadId": self.thread_id,
            "fileName": self.file_name,
            "title": self.title,
            "originalState": self.original_state,
            "originalRelativePath": self.original_relative_path,
            "payloadRelativePath": self.payload_relative_path,
            "sizeBytes": self.size_bytes,
            "deletedAt": self.deleted_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
            "provider": self.provider,
            "homeRoot": self.home_root,
        }


@dataclass
class BatchReport:
    """Partial-success report of a multi-item operation."""

    requested: int
    succeeded: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> dict:
        return {
            "requested": self.requested,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "succeeded_count": self.succeeded_count,
            "failed_count": self.failed_count,
        }


@dataclass
class CleanupReport(BatchReport):
    """Report of an expiry sweep over the trash."""

    expired_candidates: int = 0

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["expired_candidates"] = self.expired_candidates
        return data


def encode_item_id(text: str) -> str:
    """Encode text as unpadded url-safe base64."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def decode_item_id(item_id: str) -> str | None:
    """Reverse encode_item_id(). Returns None for anything that is not one."""
    if not isinstance(item_id, str) or not item_id:
        return None
    padded = item_id + "=" * (-len(item_id) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        return raw.decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return None


def select_by_ids(items: list[SessionItem], item_ids: list[str]) -> Selection:
    """Split requested ids into the matching items and the unmatched ids."""
    by_id = {item.item_id: item for item in items}
    selection = Selection()
    for item_id in item_ids:
        item = by_id.get(item_id)
        if item is not None:
            selection.found.append(item)
        else:
            selection.missing.append(item_id)
    return selection


def sort_newest_first(items: list[SessionItem]) -> list[SessionItem]:
    return sorted(items, key=lambda item: item.updated_at or _epoch(), reverse=True)


def _epoch() -> datetime:
    """Return a datetime at epoch for sorting fallback."""
    return datetime(1970, 1, 1, tzinfo=timezone.utc)
