"""Abstract contracts for provider session stores."""

from abc import ABC, abstractmethod
from pathlib import Path

from .core import SessionItem, SessionListing, Selection
from .errors import UnsupportedOperation


class SessionStore(ABC):
    """Base contract for a tool's on-disk conversation store.

    Each backend (Codex, Claude Code, Gemini) implements this interface
    over its own directory layout and id encoding.
    """

    name: str  # "codex", "claude", "gemini"
    home: Path

    @abstractmethod
    def list_sessions(self) -> SessionListing:
        """Return every visible session, newest first, with per-state counts."""
        ...

    @abstractmethod
    def find_items_by_ids(self, item_ids: list[str]) -> Selection:
        """Resolve opaque ids against a fresh listing."""
        ...

    @abstractmethod
    def is_item_id(self, item_id: str) -> bool:
        """Return True if item_id was issued by this store's encoding."""
        ...


class ArchivingSessionStore(SessionStore):
    """A store whose provider has an archived location next to the active one."""

    @abstractmethod
    def archive_item(self, item: SessionItem) -> dict:
        """Move an active session under the archived root."""
        ...

    @abstractmethod
    def unarchive_item(self, item: SessionItem) -> dict:
        """Move an archived session back under the active root."""
        ...


def supports_archive(store: SessionStore) -> bool:
    return isinstance(store, ArchivingSessionStore)


def require_archive_support(store: SessionStore, action: str = "archive") -> ArchivingSessionStore:
    """Return store as an archiving store, or raise UnsupportedOperation."""
    if not supports_archive(store):
        raise UnsupportedOperation(f"{action} is not supported for {store.name} sessions")
    return store
