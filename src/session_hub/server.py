"""FastAPI web server for session-hub."""

import logging
from dataclasses import dataclass
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from .backends import PROVIDERS, build_stores, find_items_across_stores, group_item_ids
from .batch import run_batch
from .config import Settings, load_settings
from .core import CleanupReport, SessionItem, TrashItem, sort_newest_first
from .errors import UnsupportedOperation
from .provider import SessionStore, require_archive_support
from .trash import TrashStore

logger = logging.getLogger(__name__)

app = FastAPI(title="session-hub", version="0.1.0")


@dataclass
class Hub:
    """Stores and trash wired to one set of settings."""

    settings: Settings
    stores: dict[str, SessionStore]
    trash: TrashStore
    cleanup_report: CleanupReport | None = None


# Hub cache (populated on first request or by configure())
_hub: Hub | None = None


def create_hub(settings: Settings) -> Hub:
    return Hub(
        settings=settings,
        stores=build_stores(settings),
        trash=TrashStore(settings.trash_root, settings.retention_days, settings.home_roots),
    )


def configure(settings: Settings) -> Hub:
    """Point the app at explicit settings and sweep expired trash."""
    global _hub
    _hub = create_hub(settings)
    report = _hub.cleanup_report = _hub.trash.cleanup_expired()
    logger.info(
        "Expired trash cleanup: %d candidates, %d purged, %d failed",
        report.expired_candidates, report.succeeded_count, report.failed_count,
    )
    return _hub


def _get_hub() -> Hub:
    """Lazily initialize and cache the hub from environment settings."""
    if _hub is None:
        configure(load_settings())
    return _hub


def _item_to_dict(item: SessionItem) -> dict:
    """Convert a SessionItem to a JSON-serializable dict.

    The absolute path stays internal; clients address items by item_id.
    """
    data = {
        "item_id": item.item_id,
        "thread_id": item.thread_id,
        "title": item.title,
        "state": item.state,
        "provider": item.provider,
        "relative_path": item.relative_path,
        "file_name": item.file_name,
        "size_bytes": item.size_bytes,
        "created_at": item.created_at.isoformat() if item.created_at else None,
        "updated_at": item.updated_at.isoformat() if item.updated_at else None,
    }
    for extra in ("source", "project_name", "project_hash", "git_branch", "message_count"):
        value = getattr(item, extra)
        if value is not None:
            data[extra] = value
    return data


def _trash_item_to_dict(item: TrashItem) -> dict:
    return {
        "trash_id": item.trash_id,
        "thread_id": item.thread_id,
        "title": item.title,
        "file_name": item.file_name,
        "provider": item.provider,
        "original_state": item.original_state,
        "original_relative_path": item.original_relative_path,
        "size_bytes": item.size_bytes,
        "deleted_at": item.deleted_at.isoformat(),
        "expires_at": item.expires_at.isoformat(),
        "expired": item.expired,
        "payload_exists": item.payload_exists,
    }


class ItemIdsRequest(BaseModel):
    """Request body for session batch operations."""
    item_ids: list[str] = []


class TrashIdsRequest(BaseModel):
    """Request body for trash batch operations."""
    trash_ids: list[str] = []


# ── Routes ───────────────────────────────────────────────────────


@app.get("/")
async def index():
    """Serve the frontend."""
    html_path = Path(__file__).parent / "static" / "index.html"
    if not html_path.exists():
        raise HTTPException(status_code=404, detail="Frontend not found")
    return HTMLResponse(html_path.read_text(encoding="utf-8"))


@app.get("/api/health")
async def health():
    return {"ok": True}


@app.get("/api/config")
async def get_config():
    settings = _get_hub().settings
    return {
        "codex_home": str(settings.codex_home),
        "claude_home": str(settings.claude_home),
        "gemini_home": str(settings.gemini_home),
        "trash_root": str(settings.trash_root),
        "retention_days": settings.retention_days,
    }


@app.get("/api/sessions")
async def get_sessions(
    provider: str | None = Query(None, description="Filter by provider"),
    state: str | None = Query(None, description="Filter by state: active or archived"),
):
    """Return sessions from every provider, newest first."""
    hub = _get_hub()
    stores = hub.stores
    if provider:
        if provider not in stores:
            raise HTTPException(status_code=400, detail=f"Unknown provider: {provider}")
        stores = {provider: stores[provider]}

    all_items: list[SessionItem] = []
    for name, store in stores.items():
        try:
            all_items.extend(store.list_sessions().items)
        except OSError as e:
            logger.error("Failed to list sessions for %s: %s", name, e)
            raise HTTPException(status_code=500, detail=f"Failed to list {name} sessions")

    all_items = sort_newest_first(all_items)
    counts = {
        "total": len(all_items),
        "active": sum(1 for i in all_items if i.state == "active"),
        "archived": sum(1 for i in all_items if i.state == "archived"),
        "by_provider": {
            name: sum(1 for i in all_items if i.provider == name)
            for name in PROVIDERS if name in stores
        },
    }

    if state:
        all_items = [i for i in all_items if i.state == state]

    return {
        "items": [_item_to_dict(i) for i in all_items],
        "counts": counts,
    }


@app.post("/api/sessions/archive")
async def archive_sessions(body: ItemIdsRequest):
    return _run_transition(body.item_ids, "archive")


@app.post("/api/sessions/unarchive")
async def unarchive_sessions(body: ItemIdsRequest):
    return _run_transition(body.item_ids, "unarchive")


@app.post("/api/sessions/delete")
async def delete_sessions(body: ItemIdsRequest):
    """Move sessions from any provider into the trash."""
    hub = _get_hub()

    def trash_one(item: SessionItem) -> dict:
        trashed = hub.trash.trash_session_item(item, hub.settings.home_roots[item.provider])
        return {
            "trash_id": trashed.trash_id,
            "expires_at": trashed.expires_at.isoformat(),
        }

    report = run_batch(
        body.item_ids,
        lambda ids: find_items_across_stores(ids, hub.stores),
        trash_one,
    )
    return report.to_dict()


@app.get("/api/trash")
async def get_trash():
    return {"items": [_trash_item_to_dict(t) for t in _get_hub().trash.list_trash_items()]}


@app.post("/api/trash/restore")
async def restore_trash(body: TrashIdsRequest):
    return _get_hub().trash.restore(body.trash_ids).to_dict()


@app.post("/api/trash/purge")
async def purge_trash(body: TrashIdsRequest):
    return _get_hub().trash.purge(body.trash_ids).to_dict()


@app.post("/api/trash/cleanup")
async def cleanup_trash():
    return _get_hub().trash.cleanup_expired().to_dict()


def _run_transition(item_ids: list[str], action: str) -> dict:
    """Archive or unarchive ids, refusing providers without an archive."""
    hub = _get_hub()
    groups = group_item_ids(item_ids)

    for provider in groups:
        try:
            require_archive_support(hub.stores[provider], action)
        except UnsupportedOperation as e:
            raise HTTPException(status_code=400, detail=str(e))

    def transition(item: SessionItem) -> dict:
        store = require_archive_support(hub.stores[item.provider], action)
        if action == "archive":
            return store.archive_item(item)
        return store.unarchive_item(item)

    report = run_batch(
        item_ids,
        lambda ids: find_items_across_stores(ids, hub.stores),
        transition,
    )
    return report.to_dict()
