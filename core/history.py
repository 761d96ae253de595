# ============================================================
# asqli - AI-assisted SQL terminal client
# core/history.py - Prompt history store and conversation window
# ============================================================

import os
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Deque, List, Optional, Union

from loguru import logger

from core.providers import Usage


class PromptHistory:
    """
    Raw user inputs, oldest first, persisted as one line per entry.

    Consecutive duplicates are suppressed. The recall cursor walks backwards
    from the newest entry: -1 means the user is not browsing.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path).expanduser() if path else None
        self.entries: List[str] = []
        self.cursor = -1

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def load(self) -> None:
        """Read the history file. A missing file is an empty history."""
        if self.path is None or not self.path.exists():
            return
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not read history file {self.path}: {e}")
            return
        self.entries = [line for line in content.splitlines() if line.strip()]
        logger.debug(f"Loaded {len(self.entries)} history entries from {self.path}")

    def save(self) -> None:
        """Rewrite the whole file. Raises OSError on failure."""
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        body = "".join(f"{entry}\n" for entry in self.entries)
        fd = os.open(str(self.path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(body)
        os.chmod(str(self.path), 0o600)

    def append(self, entry: str) -> bool:
        """Add an entry unless it repeats the previous one. Multi-line input is flattened."""
        entry = " ".join(entry.splitlines()).strip()
        if not entry:
            return False
        if self.entries and self.entries[-1] == entry:
            return False
        self.entries.append(entry)
        return True

    def clear(self) -> None:
        self.entries = []
        self.reset_cursor()

    def snapshot(self) -> List[str]:
        """Newest first, for the history browser."""
        return list(reversed(self.entries))

    # ── Recall ────────────────────────────────────────────────

    def reset_cursor(self) -> None:
        self.cursor = -1

    def recall(self, direction: str) -> Optional[str]:
        """
        Step the cursor: "older" moves back in time, "newer" forward. Returns the
        text the input should now hold, "" when stepping past the newest entry,
        or None when nothing changes.
        """
        if not self.entries:
            return None

        if direction == "older":
            if self.cursor >= len(self.entries) - 1:
                return None
            self.cursor += 1
        elif direction == "newer":
            if self.cursor < 0:
                return None
            self.cursor -= 1
            if self.cursor < 0:
                return ""
        else:
            raise ValueError(f"unknown recall direction: {direction}")

        return self.entries[len(self.entries) - 1 - self.cursor]


@dataclass(frozen=True)
class ConversationEntry:
    prompt: str
    sql: str
    usage: Optional[Usage] = None


class ConversationWindow:
    """The last N (prompt, SQL, usage) exchanges, oldest evicted first."""

    def __init__(self, max_entries: int = 5):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: Deque[ConversationEntry] = deque(maxlen=max_entries)

    def append(self, prompt: str, sql: str, usage: Optional[Usage] = None) -> ConversationEntry:
        entry = ConversationEntry(prompt=prompt, sql=sql, usage=usage)
        self._entries.append(entry)
        return entry

    def entries(self) -> List[ConversationEntry]:
        return list(self._entries)

    def __len__(self):
        return len(self._entries)

    def __bool__(self):
        return bool(self._entries)

    def __iter__(self):
        return iter(list(self._entries))
