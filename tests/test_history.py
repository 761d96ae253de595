import os
import stat

import pytest

from core.history import ConversationWindow, PromptHistory
from core.providers import Usage


def test_missing_file_is_empty_history(tmp_path):
    history = PromptHistory(tmp_path / "nope")
    history.load()
    assert history.entries == []


def test_load_skips_blank_lines(tmp_path):
    path = tmp_path / "history"
    path.write_text("show users\n\n   \ncount orders\n", encoding="utf-8")
    history = PromptHistory(path)
    history.load()
    assert history.entries == ["show users", "count orders"]


def test_consecutive_duplicates_are_suppressed():
    history = PromptHistory()
    assert history.append("show users")
    assert not history.append("show users")
    assert history.append("count orders")
    assert history.append("show users")
    assert history.entries == ["show users", "count orders", "show users"]


def test_append_flattens_and_ignores_blank():
    history = PromptHistory()
    assert not history.append("   ")
    assert history.append("select *\nfrom users\n")
    assert history.entries == ["select * from users"]


def test_save_round_trips_with_owner_only_mode(tmp_path):
    path = tmp_path / "nested" / "history"
    history = PromptHistory(path)
    history.append("show users")
    history.append("#SELECT 1")
    history.save()

    assert path.read_text(encoding="utf-8") == "show users\n#SELECT 1\n"
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    reloaded = PromptHistory(path)
    reloaded.load()
    assert reloaded.entries == history.entries


def test_save_tightens_existing_file_mode(tmp_path):
    path = tmp_path / "history"
    path.write_text("old\n", encoding="utf-8")
    os.chmod(path, 0o644)
    history = PromptHistory(path)
    history.append("new")
    history.save()
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600


def test_clear_and_snapshot():
    history = PromptHistory()
    for entry in ("a", "b", "c"):
        history.append(entry)
    assert history.snapshot() == ["c", "b", "a"]
    history.clear()
    assert history.snapshot() == []


def test_recall_walks_back_and_forward():
    history = PromptHistory()
    for entry in ("first", "second", "third"):
        history.append(entry)

    assert history.recall("newer") is None
    assert history.recall("older") == "third"
    assert history.recall("older") == "second"
    assert history.recall("older") == "first"
    assert history.recall("older") is None
    assert history.recall("newer") == "second"
    assert history.recall("newer") == "third"
    assert history.recall("newer") == ""
    assert history.cursor == -1


def test_recall_on_empty_history():
    assert PromptHistory().recall("older") is None


def test_recall_rejects_unknown_direction():
    history = PromptHistory()
    history.append("x")
    with pytest.raises(ValueError):
        history.recall("sideways")


# ── Conversation Window ───────────────────────────────────────

def test_conversation_evicts_oldest():
    window = ConversationWindow(max_entries=2)
    assert not window
    window.append("one", "SELECT 1")
    window.append("two", "SELECT 2", Usage(provider="fake", total_tokens=3))
    window.append("three", "SELECT 3")
    assert len(window) == 2
    assert [entry.prompt for entry in window] == ["two", "three"]
    assert window.entries()[0].usage.total_tokens == 3


def test_conversation_requires_positive_size():
    with pytest.raises(ValueError):
        ConversationWindow(0)
