"""Tests for the Claude Code store."""

import json

import pytest
from conftest import claude_assistant_line, claude_user_line, write_claude_session

from session_hub.backends.claude_code import (
    ClaudeSessionStore,
    decode_claude_item_id,
    decode_project_name,
    encode_claude_item_id,
    is_claude_item_id,
    read_claude_signals,
)
from session_hub.backends.codex import encode_codex_item_id
from session_hub.core import ACTIVE
from session_hub.errors import UnsupportedOperation
from session_hub.provider import require_archive_support, supports_archive


class TestClaudeSessionStore:
    """Tests for ClaudeSessionStore."""

    def test_list_sessions(self, populated_homes, claude_home):
        listing = ClaudeSessionStore(claude_home).list_sessions()

        assert listing.counts == {"total": 1, "active": 1, "archived": 0}
        item = listing.items[0]
        assert item.thread_id == "sess-aaa"
        assert item.title == "Hello world"
        assert item.state == ACTIVE
        assert item.provider == "claude"
        assert item.project_name == "/Users/test/myproject"
        assert item.git_branch == "main"
        assert item.message_count == 1
        assert item.relative_path == "projects/-Users-test-myproject/sess-aaa.jsonl"
        assert decode_claude_item_id(item.item_id) == "sess-aaa"

    def test_missing_home_is_empty(self, tmp_path):
        listing = ClaudeSessionStore(tmp_path / "absent").list_sessions()
        assert listing.items == []
        assert listing.counts["total"] == 0

    def test_untitled_fallback(self, claude_home):
        write_claude_session(
            claude_home / "projects" / "-tmp-app",
            "0123456789abcdef",
            [claude_assistant_line("0123456789abcdef")],
        )

        item = ClaudeSessionStore(claude_home).list_sessions().items[0]

        assert item.title == "Untitled 01234567"
        assert item.message_count == 0

    def test_title_skips_tool_results(self, claude_home):
        content = [
            {"type": "tool_result", "content": "ignored"},
            {"type": "text", "text": "Explain   the\nstack trace"},
        ]
        write_claude_session(claude_home / "projects" / "-tmp-app", "s1", [claude_user_line("s1", content)])

        item = ClaudeSessionStore(claude_home).list_sessions().items[0]

        assert item.title == "Explain the stack trace"

    def test_only_direct_jsonl_children_are_sessions(self, populated_homes, claude_home):
        project = claude_home / "projects" / "-Users-test-myproject"
        (project / "notes.txt").write_text("not a session", encoding="utf-8")
        write_claude_session(project / "sess-aaa" / "subagents", "agent-1", [claude_user_line("agent-1", "sub")])

        items = ClaudeSessionStore(claude_home).list_sessions().items

        assert [item.thread_id for item in items] == ["sess-aaa"]

    def test_project_path_from_sessions_index(self, populated_homes, claude_home):
        project = claude_home / "projects" / "-Users-test-myproject"
        index = {"entries": [{"sessionId": "sess-aaa", "projectPath": "/Users/test/my-project"}]}
        (project / "sessions-index.json").write_text(json.dumps(index), encoding="utf-8")

        item = ClaudeSessionStore(claude_home).list_sessions().items[0]

        assert item.project_name == "/Users/test/my-project"

    def test_find_items_by_ids(self, populated_homes, claude_home):
        store = ClaudeSessionStore(claude_home)
        known = encode_claude_item_id("sess-aaa")
        unknown = encode_claude_item_id("sess-zzz")

        selection = store.find_items_by_ids([known, unknown])

        assert [item.thread_id for item in selection.found] == ["sess-aaa"]
        assert selection.missing == [unknown]

    def test_has_no_archive(self, claude_home):
        store = ClaudeSessionStore(claude_home)

        assert not supports_archive(store)
        with pytest.raises(UnsupportedOperation, match="archive is not supported for claude sessions"):
            require_archive_support(store)


class TestClaudeHelpers:
    def test_item_id_detection(self):
        assert is_claude_item_id(encode_claude_item_id("abc"))
        assert not is_claude_item_id(encode_codex_item_id("sessions/2026/02/08/rollout.jsonl"))

    @pytest.mark.parametrize("dir_name,expected", [
        ("-Users-me-app", "/Users/me/app"),
        ("plain", "plain"),
        ("my-app", "my/app"),
    ])
    def test_decode_project_name(self, dir_name, expected):
        assert decode_project_name(dir_name) == expected

    def test_signals_count_every_user_turn_in_window(self, claude_home):
        lines = [claude_user_line("s1", f"turn {n}") for n in range(3)]
        path = write_claude_session(claude_home, "s1", lines)

        signals = read_claude_signals(path)

        assert signals.title == "turn 0"
        assert signals.message_count == 3
