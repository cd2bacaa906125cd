"""Apply a single-item action across many opaque ids."""

import logging
from typing import Any, Callable, Iterable

from .core import BatchReport, Selection
from .errors import SessionHubError

logger = logging.getLogger(__name__)

NOT_FOUND_REASON = "session not found"


def describe_session(item) -> dict:
    return {"item_id": item.item_id, "thread_id": item.thread_id}


def run_batch(
    ids: Iterable[str],
    lookup: Callable[[list[str]], Selection],
    action: Callable[[Any], dict | None],
    *,
    id_field: str = "item_id",
    describe: Callable[[Any], dict] = describe_session,
    not_found_reason: str = NOT_FOUND_REASON,
) -> BatchReport:
    """Look up every id at once, then run action on each found item.

    Ids the lookup cannot resolve are reported with not_found_reason.
    A failing item is recorded and never stops its siblings.
    """
    ids = list(ids)
    selection = lookup(ids)
    report = BatchReport(requested=len(ids))

    for missing_id in selection.missing:
        report.failed.append({id_field: missing_id, "error": not_found_reason})

    for item in selection.found:
        identity = describe(item)
        try:
            details = action(item) or {}
        except (SessionHubError, OSError) as e:
            logger.warning("Batch action failed for %s: %s", identity, e)
            report.failed.append({**identity, "error": _error_message(e)})
            continue
        report.succeeded.append({**identity, **details})

    return report


def _error_message(error: Exception) -> str:
    if isinstance(error, OSError) and error.strerror:
        return error.strerror if not error.filename else f"{error.strerror}: {error.filename}"
    return str(error)
