"""Provider store registry and cross-store id routing."""

from ..config import Settings
from ..core import Selection
from ..provider import SessionStore
from .claude_code import ClaudeSessionStore, is_claude_item_id
from .codex import CodexSessionStore
from .gemini import GeminiSessionStore, is_gemini_item_id

PROVIDERS = ("codex", "claude", "gemini")


def build_stores(settings: Settings) -> dict[str, SessionStore]:
    """Create one store per provider, keyed by provider tag."""
    return {
        "codex": CodexSessionStore(settings.codex_home),
        "claude": ClaudeSessionStore(settings.claude_home),
        "gemini": GeminiSessionStore(settings.gemini_home),
    }


def provider_for_item_id(item_id: str) -> str:
    """Route an id to its provider without listing anything.

    Claude and Gemini ids carry a tag; anything else is a Codex path id.
    """
    if is_gemini_item_id(item_id):
        return "gemini"
    if is_claude_item_id(item_id):
        return "claude"
    return "codex"


def group_item_ids(item_ids: list[str]) -> dict[str, list[str]]:
    """Group ids by provider, preserving request order within each group."""
    groups: dict[str, list[str]] = {}
    for item_id in item_ids:
        groups.setdefault(provider_for_item_id(item_id), []).append(item_id)
    return groups


def find_items_across_stores(item_ids: list[str], stores: dict[str, SessionStore]) -> Selection:
    """Resolve ids against whichever stores own them; one listing per store."""
    selection = Selection()
    for provider, ids in group_item_ids(item_ids).items():
        store = stores.get(provider)
        if store is None:
            selection.missing.extend(ids)
            continue
        selection.extend(store.find_items_by_ids(ids))
    return selection
