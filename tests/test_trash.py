"""Tests for the trash store."""

import errno
import json
from unittest.mock import patch

import pytest
from conftest import ACTIVE_ROLLOUT, rollout_lines, write_rollout

from session_hub.backends.codex import CodexSessionStore
from session_hub.trash import TrashStore, create_trash_id, is_safe_trash_id


@pytest.fixture
def codex_store(populated_homes, codex_home):
    return CodexSessionStore(codex_home)


def _trash_store(settings, retention_days=None):
    days = settings.retention_days if retention_days is None else retention_days
    return TrashStore(settings.trash_root, days, settings.home_roots)


def _active_item(store):
    return next(i for i in store.list_sessions().items if i.thread_id == "active-thread-1")


def _rewrite_metadata(trash, trash_id, **changes):
    meta_path = trash.items_root / trash_id / "meta.json"
    metadata = json.loads(meta_path.read_text(encoding="utf-8"))
    metadata.update(changes)
    meta_path.write_text(json.dumps(metadata), encoding="utf-8")


class TestTrashIds:
    def test_created_ids_are_safe_and_unique(self):
        first, second = create_trash_id(), create_trash_id()
        assert is_safe_trash_id(first)
        assert first != second

    @pytest.mark.parametrize("value", ["../x", "a/b", "", "a b", None])
    def test_unsafe_ids(self, value):
        assert not is_safe_trash_id(value)


class TestTrashSession:
    def test_trash_moves_file_and_writes_metadata(self, settings, codex_store, codex_home):
        trash = _trash_store(settings)
        item = _active_item(codex_store)

        trashed = trash.trash_session_item(item)

        assert not item.absolute_path.exists()
        slot = trash.items_root / trashed.trash_id
        assert (slot / "payload" / item.relative_path).exists()
        metadata = json.loads((slot / "meta.json").read_text(encoding="utf-8"))
        assert metadata["originalRelativePath"] == item.relative_path
        assert metadata["originalState"] == "active"
        assert metadata["provider"] == "codex"
        assert metadata["homeRoot"] == str(codex_home)
        assert (trashed.expires_at - trashed.deleted_at).days == 30

    def test_list_trash_items(self, settings, codex_store):
        trash = _trash_store(settings)
        trashed = trash.trash_session_item(_active_item(codex_store))

        items = trash.list_trash_items()

        assert [t.trash_id for t in items] == [trashed.trash_id]
        assert items[0].title == "Build a codex history cleaner"
        assert items[0].payload_exists
        assert not items[0].expired

    def test_list_skips_unreadable_slots(self, settings, codex_store):
        trash = _trash_store(settings)
        trash.trash_session_item(_active_item(codex_store))
        broken = trash.items_root / "123-broken"
        broken.mkdir()
        (broken / "meta.json").write_text("{oops", encoding="utf-8")
        (trash.items_root / "no-meta").mkdir()

        assert len(trash.list_trash_items()) == 1

    def test_undecodable_metadata_fails_only_its_own_restore(self, settings, codex_store):
        trash = _trash_store(settings)
        item = _active_item(codex_store)
        good = trash.trash_session_item(item)
        bad = trash.items_root / "123-bad"
        bad.mkdir()
        (bad / "meta.json").write_bytes(b'{"title": "\xff\xfe"}')

        assert [t.trash_id for t in trash.list_trash_items()] == [good.trash_id]

        report = trash.restore(["123-bad", good.trash_id])

        assert report.failed == [{"trash_id": "123-bad", "error": "trash metadata is unreadable"}]
        assert report.succeeded_count == 1
        assert item.absolute_path.exists()

    def test_failed_move_leaves_no_slot(self, settings, codex_store):
        trash = _trash_store(settings, retention_days=0)
        item = _active_item(codex_store)
        item.absolute_path.unlink()

        with pytest.raises(FileNotFoundError):
            trash.trash_session_item(item)

        assert list(trash.items_root.iterdir()) == []

    def test_failed_metadata_write_puts_file_back(self, settings, codex_store):
        trash = _trash_store(settings)
        item = _active_item(codex_store)

        with patch("session_hub.trash.Path.write_text", side_effect=OSError(errno.ENOSPC, "No space left on device")):
            with pytest.raises(OSError):
                trash.trash_session_item(item)

        assert item.absolute_path.read_text(encoding="utf-8").startswith("{")
        assert list(trash.items_root.iterdir()) == []

    def test_empty_trash(self, settings):
        assert _trash_store(settings).list_trash_items() == []


class TestRestore:
    def test_restore_puts_file_back(self, settings, codex_store):
        trash = _trash_store(settings)
        item = _active_item(codex_store)
        trashed = trash.trash_session_item(item)

        report = trash.restore([trashed.trash_id])

        assert report.succeeded_count == 1
        assert report.succeeded[0]["restored_to"] == item.relative_path
        assert item.absolute_path.exists()
        assert not (trash.items_root / trashed.trash_id).exists()
        assert any(i.thread_id == "active-thread-1" for i in codex_store.list_sessions().items)

    def test_restore_refuses_to_overwrite(self, settings, codex_store, codex_home):
        trash = _trash_store(settings)
        item = _active_item(codex_store)
        trashed = trash.trash_session_item(item)
        write_rollout(codex_home, item.relative_path, rollout_lines("replacement"))

        report = trash.restore([trashed.trash_id])

        assert report.failed == [{"trash_id": trashed.trash_id, "error": "restore target already exists"}]
        assert (trash.items_root / trashed.trash_id).exists()

    @pytest.mark.parametrize("field,value,message", [
        ("originalRelativePath", "../../outside.jsonl", "restore target path escapes allowed root"),
        ("payloadRelativePath", "../../../outside.jsonl", "trash payload path escapes allowed root"),
        ("homeRoot", "/", "restore home root escapes allowed root"),
    ])
    def test_tampered_metadata_is_refused(self, settings, codex_store, tmp_path, field, value, message):
        trash = _trash_store(settings)
        trashed = trash.trash_session_item(_active_item(codex_store))
        (tmp_path / "outside.jsonl").write_text("x", encoding="utf-8")
        _rewrite_metadata(trash, trashed.trash_id, **{field: value})

        report = trash.restore([trashed.trash_id])

        assert report.succeeded == []
        assert report.failed[0]["error"] == message

    def test_restore_succeeds_when_slot_cleanup_fails(self, settings, codex_store):
        trash = _trash_store(settings)
        item = _active_item(codex_store)
        trashed = trash.trash_session_item(item)

        with patch("session_hub.trash.shutil.rmtree", side_effect=PermissionError(errno.EACCES, "Permission denied")):
            report = trash.restore([trashed.trash_id])

        assert report.succeeded_count == 1
        assert report.failed == []
        assert item.absolute_path.exists()

    def test_missing_payload(self, settings, codex_store):
        trash = _trash_store(settings)
        item = _active_item(codex_store)
        trashed = trash.trash_session_item(item)
        (trash.items_root / trashed.trash_id / "payload" / item.relative_path).unlink()

        report = trash.restore([trashed.trash_id])

        assert report.failed[0]["error"] == "trash payload is missing"

    def test_unknown_and_malformed_ids(self, settings):
        trash = _trash_store(settings)

        report = trash.restore(["123-abc", "../escape"])

        assert report.requested == 2
        assert [f["error"] for f in report.failed] == ["trash item not found", "invalid trash id"]


class TestPurgeAndCleanup:
    def test_purge_removes_slot(self, settings, codex_store):
        trash = _trash_store(settings)
        trashed = trash.trash_session_item(_active_item(codex_store))

        report = trash.purge([trashed.trash_id])

        assert report.succeeded == [{"trash_id": trashed.trash_id}]
        assert trash.list_trash_items() == []

    def test_purge_missing_slot_is_success(self, settings):
        report = _trash_store(settings).purge(["123-gone"])
        assert report.succeeded_count == 1

    def test_purge_rejects_malformed_id(self, settings, tmp_path):
        victim = tmp_path / "victim"
        victim.mkdir()

        report = _trash_store(settings).purge(["../../victim"])

        assert report.failed == [{"trash_id": "../../victim", "error": "invalid trash id"}]
        assert victim.exists()

    def test_zero_retention_expires_immediately(self, settings, codex_store):
        trash = _trash_store(settings, retention_days=0)
        trash.trash_session_item(_active_item(codex_store))

        assert trash.list_trash_items()[0].expired

        report = trash.cleanup_expired()

        assert report.expired_candidates == 1
        assert report.succeeded_count == 1
        assert trash.list_trash_items() == []

    def test_cleanup_keeps_unexpired_items(self, settings, codex_store):
        trash = _trash_store(settings)
        trash.trash_session_item(_active_item(codex_store))

        report = trash.cleanup_expired()

        assert report.expired_candidates == 0
        assert report.requested == 0
        assert len(trash.list_trash_items()) == 1

    def test_restores_into_provider_home(self, settings, codex_home):
        write_rollout(codex_home, ACTIVE_ROLLOUT.format(thread_id="t1"), rollout_lines("keep me"))
        store = CodexSessionStore(codex_home)
        trash = _trash_store(settings)
        trashed = trash.trash_session_item(store.list_sessions().items[0])
        _rewrite_metadata(trash, trashed.trash_id, homeRoot="")

        report = trash.restore([trashed.trash_id])

        assert report.succeeded[0]["provider"] == "codex"
        assert (codex_home / ACTIVE_ROLLOUT.format(thread_id="t1")).exists()
