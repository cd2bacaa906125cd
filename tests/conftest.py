"""Shared test fixtures for session-hub."""

import json
from pathlib import Path

import pytest

from session_hub.config import Settings

ACTIVE_ROLLOUT = "sessions/2026/02/08/rollout-2026-02-08T03-11-52-{thread_id}.jsonl"
ARCHIVED_ROLLOUT = "archived_sessions/rollout-2026-02-07T03-11-52-{thread_id}.jsonl"


def rollout_lines(message: str = "hello", source: str | None = "cli", thread_id: str = "thread") -> str:
    """Build a minimal rollout: a session_meta line and one user message."""
    meta = {"type": "session_meta", "payload": {"id": thread_id}}
    if source is not None:
        meta["payload"]["source"] = source
    user = {"type": "event_msg", "payload": {"type": "user_message", "message": message}}
    return json.dumps(meta) + "\n" + json.dumps(user) + "\n"


def write_rollout(codex_home: Path, relative_path: str, content: str | None = None) -> Path:
    path = codex_home / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content if content is not None else rollout_lines(), encoding="utf-8")
    return path


def claude_user_line(session_id: str, content, **extra) -> str:
    return json.dumps({
        "type": "user",
        "sessionId": session_id,
        "message": {"role": "user", "content": content},
        "timestamp": "2026-02-08T03:11:52.000Z",
        **extra,
    })


def claude_assistant_line(session_id: str) -> str:
    return json.dumps({
        "type": "assistant",
        "sessionId": session_id,
        "message": {"role": "assistant", "content": [{"type": "text", "text": "Sure."}]},
        "timestamp": "2026-02-08T03:12:00.000Z",
    })


def write_claude_session(project_dir: Path, session_id: str, lines: list[str]) -> Path:
    project_dir.mkdir(parents=True, exist_ok=True)
    path = project_dir / f"{session_id}.jsonl"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def gemini_document(session_id: str, messages: list[dict], summary: str | None = None,
                    last_updated: str = "2025-10-21T09:00:00.000Z") -> str:
    data = {
        "sessionId": session_id,
        "projectHash": "hash1",
        "startTime": "2025-10-21T08:53:00.000Z",
        "lastUpdated": last_updated,
        "messages": messages,
    }
    if summary:
        data["summary"] = summary
    return json.dumps(data)


def write_gemini_session(chats_dir: Path, file_name: str, content: str) -> Path:
    chats_dir.mkdir(parents=True, exist_ok=True)
    path = chats_dir / file_name
    path.write_text(content, encoding="utf-8")
    return path


@pytest.fixture
def codex_home(tmp_path):
    home = tmp_path / "codex"
    home.mkdir()
    return home


@pytest.fixture
def claude_home(tmp_path):
    home = tmp_path / "claude"
    home.mkdir()
    return home


@pytest.fixture
def gemini_home(tmp_path):
    home = tmp_path / "gemini"
    home.mkdir()
    return home


@pytest.fixture
def trash_root(tmp_path):
    return tmp_path / "trash"


@pytest.fixture
def settings(codex_home, claude_home, gemini_home, trash_root):
    return Settings(
        codex_home=codex_home,
        claude_home=claude_home,
        gemini_home=gemini_home,
        trash_root=trash_root,
        retention_days=30,
    )


@pytest.fixture
def populated_homes(codex_home, claude_home, gemini_home):
    """One visible session per provider, plus one hidden Codex system session.

    - codex: "active-thread-1" (active), "archived-thread-1" (archived),
      "skill-thread-1" (skill trigger, hidden)
    - claude: "sess-aaa" in project -Users-test-myproject
    - gemini: "sess-gem" in tmp/hash1/chats
    """
    write_rollout(
        codex_home,
        ACTIVE_ROLLOUT.format(thread_id="active-thread-1"),
        rollout_lines("Build a codex history cleaner", thread_id="active-thread-1"),
    )
    write_rollout(
        codex_home,
        ARCHIVED_ROLLOUT.format(thread_id="archived-thread-1"),
        rollout_lines("Old archived work", thread_id="archived-thread-1"),
    )
    write_rollout(
        codex_home,
        "sessions/2026/02/08/rollout-2026-02-08T03-11-53-skill-thread-1.jsonl",
        rollout_lines("$skill-installer", thread_id="skill-thread-1"),
    )
    write_claude_session(
        claude_home / "projects" / "-Users-test-myproject",
        "sess-aaa",
        [claude_user_line("sess-aaa", "Hello world", gitBranch="main"), claude_assistant_line("sess-aaa")],
    )
    write_gemini_session(
        gemini_home / "tmp" / "hash1" / "chats",
        "session-2025-10-21T08-53-abc123.json",
        gemini_document("sess-gem", [{"type": "user", "content": "Add dark mode"}]),
    )
    return codex_home, claude_home, gemini_home
