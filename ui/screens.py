# ============================================================
# asqli - AI-assisted SQL terminal client
# ui/screens.py - Confirmation, history and info modals
# ============================================================
#
# The modals never change state themselves: each key press becomes a session
# event and the app pushes or pops screens to match the resulting state.
# ============================================================

from typing import List

from rich.console import RenderableType
from textual.app import ComposeResult
from textual.containers import Container, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Label, ListItem, ListView, Static

from core.events import ClearHistory, CloseHistory, CloseInfo, ConfirmAnswer, SelectHistory
from ui.render import format_sql_syntax


class ConfirmScreen(ModalScreen):
    """
    Shown before a statement that may modify data.
    Y = execute. N or Escape = cancel.
    """

    BINDINGS = [
        ("y", "answer(True)", "Execute"),
        ("n", "answer(False)", "Cancel"),
        ("escape", "answer(False)", "Cancel"),
    ]

    def __init__(self, sql: str):
        self._sql = sql
        super().__init__()

    def compose(self) -> ComposeResult:
        with Container(id="confirm-container"):
            yield Label("⚠ CONFIRM QUERY", id="confirm-title")
            yield Label("This statement may modify data:", id="confirm-subtitle")
            yield Static(format_sql_syntax(self._sql), id="confirm-sql")
            yield Label("Press Y to execute  |  N or Escape to cancel", id="confirm-hint")

    def action_answer(self, accepted: bool) -> None:
        self.app.send_session_event(ConfirmAnswer(accepted))


class HistoryItem(ListItem):
    def __init__(self, text: str):
        self.text = text
        super().__init__(Label(text, markup=False))


class HistoryScreen(ModalScreen):
    """Past prompts, most recent first."""

    BINDINGS = [
        ("escape", "close", "Back"),
        ("ctrl+r", "close", "Back"),
        ("ctrl+d", "clear", "Clear history"),
    ]

    def __init__(self, entries: List[str]):
        self._entries = list(entries)
        super().__init__()

    def compose(self) -> ComposeResult:
        with Container(id="history-container"):
            yield Label(f"History ({len(self._entries)})", id="history-title")
            if self._entries:
                yield ListView(*[HistoryItem(text) for text in self._entries], id="history-list")
            else:
                yield Label("No history yet", id="history-empty")
            yield Label("Enter select  |  ctrl+d clear  |  Esc back", id="history-hint")

    def on_mount(self) -> None:
        if self._entries:
            self.query_one("#history-list", ListView).focus()

    def on_list_view_selected(self, event: ListView.Selected) -> None:
        event.stop()
        if isinstance(event.item, HistoryItem):
            self.app.send_session_event(SelectHistory(event.item.text))

    def action_close(self) -> None:
        self.app.send_session_event(CloseHistory())

    def action_clear(self) -> None:
        self.app.send_session_event(ClearHistory())


class InfoScreen(ModalScreen):
    """Prompts, SQL and token usage for the recent conversation."""

    BINDINGS = [
        ("escape", "close", "Back"),
        ("ctrl+p", "close", "Back"),
    ]

    def __init__(self, content: RenderableType):
        self._content = content
        super().__init__()

    def compose(self) -> ComposeResult:
        with Container(id="info-container"):
            yield Label("Recent queries", id="info-title")
            with VerticalScroll(id="info-scroll"):
                yield Static(self._content, id="info-body")
            yield Label("Esc back", id="info-hint")

    def action_close(self) -> None:
        self.app.send_session_event(CloseInfo())
