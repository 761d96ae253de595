# ============================================================
# asqli - AI-assisted SQL terminal client
# ui/tui.py - Main Textual application
# ============================================================
#
# The app owns one Session and one CommandDispatcher. Every key press and
# every finished command is turned into a session event; handle() returns
# effects which the app applies, then the view is redrawn from session state.
# Background commands report back with a CommandCompleted message so that
# session state is only ever touched on the UI loop.
# ============================================================

from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from loguru import logger
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.message import Message
from textual.screen import Screen
from textual.widgets import Input, Static

from config import app_config
from core.dispatcher import CommandDispatcher
from core.events import (
    ClearInput,
    CopyGrid,
    CopyText,
    Dispatch,
    Exit,
    GridMove,
    OpenHistory,
    OpenInfo,
    Quit,
    RecallHistory,
    Resize as TerminalResize,
    SetInput,
    Submit,
)
from core.session import Session, SessionState
from ui.render import (
    render_help_line,
    render_info,
    render_outcome,
    render_sql_line,
    render_status_line,
)
from ui.screens import ConfirmScreen, HistoryScreen, InfoScreen


class CommandCompleted(Message):
    """Posted by a command worker with the completion event it produced."""

    def __init__(self, event: Any):
        self.event = event
        super().__init__()


# ── Prompt Input ──────────────────────────────────────────────
class PromptInput(Input):
    """
    Text input that lends its arrow keys to the result grid.
    Without a grid, left/right keep moving the text cursor.
    """

    BINDINGS = [
        Binding("up", "grid_move('up')", show=False),
        Binding("down", "grid_move('down')", show=False),
        Binding("left", "grid_move('left')", show=False),
        Binding("right", "grid_move('right')", show=False),
        Binding("escape", "clear_prompt", show=False),
        Binding("ctrl+c", "copy_grid", show=False),
    ]

    def action_grid_move(self, direction: str) -> None:
        if self.app.session.grid is not None:
            self.app.send_session_event(GridMove(direction))
        elif direction == "left":
            self.action_cursor_left()
        elif direction == "right":
            self.action_cursor_right()

    def action_clear_prompt(self) -> None:
        self.app.send_session_event(ClearInput())

    def action_copy_grid(self) -> None:
        self.app.send_session_event(CopyGrid())


# ── Main asqli Application ────────────────────────────────────
class AsqliApp(App):
    """Results area on top, command bar (SQL, status, prompt, help) below."""

    CSS_PATH = str(Path(__file__).parent / "asqli.tcss")
    TITLE = "asqli"

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", priority=True),
        Binding("ctrl+r", "open_history", "History"),
        Binding("ctrl+p", "open_info", "Info"),
        Binding("ctrl+up", "recall('older')", "Previous", show=False),
        Binding("ctrl+down", "recall('newer')", "Next", show=False),
    ]

    ENABLE_COMMAND_PALETTE = False

    def __init__(self, session: Session, dispatcher: Optional[CommandDispatcher] = None):
        super().__init__()
        self.session = session
        self.dispatcher = dispatcher or CommandDispatcher()
        self._modal: Optional[Screen] = None
        self._modal_state: Optional[SessionState] = None
        self._views: Dict[str, Static] = {}
        self._prompt: Optional[PromptInput] = None

    # ── App Lifecycle ─────────────────────────────────────────

    def compose(self) -> ComposeResult:
        yield Static("", id="results")
        yield Vertical(
            Static("", id="sql-line"),
            Static("", id="status-line"),
            PromptInput(
                placeholder="Ask in plain English, or #SQL to run directly",
                id="prompt-input",
            ),
            Static("", id="help-line"),
            id="command-bar",
        )

    def on_mount(self) -> None:
        self.session.width = self.size.width
        self.session.height = self.size.height
        # Held directly: app queries only see the active screen, which may be a modal.
        self._prompt = self.query_one("#prompt-input", PromptInput)
        self._views = {name: self.query_one(f"#{name}", Static) for name in ("results", "sql-line", "status-line", "help-line")}
        self._prompt.focus()
        logger.info(f"{app_config.name} v{app_config.version} started ({self.size.width}x{self.size.height})")
        self._apply(self.session.start())
        self._refresh_view()

    def on_unmount(self) -> None:
        self.session.shutdown()
        self.dispatcher.shutdown()

    def on_resize(self, event: events.Resize) -> None:
        self.send_session_event(TerminalResize(event.size.width, event.size.height))

    # ── Session Plumbing ──────────────────────────────────────

    def send_session_event(self, event: Any) -> None:
        """The single entry point into the session."""
        effects = self.session.handle(event)
        self._apply(effects)
        if self.session.state is not SessionState.TERMINATED:
            self._sync_screens()
            self._refresh_view()

    def on_command_completed(self, message: CommandCompleted) -> None:
        self.send_session_event(message.event)

    async def _complete(self, command: Any) -> None:
        event = await self.dispatcher.run(command)
        self.post_message(CommandCompleted(event))

    def _apply(self, effects: Iterable[Any]) -> None:
        for effect in effects:
            if isinstance(effect, Dispatch):
                kind = effect.command.kind.value
                logger.debug(f"Dispatching {kind}")
                self.run_worker(self._complete(effect.command), name=kind, group=kind, exit_on_error=False)
            elif isinstance(effect, SetInput):
                if self._prompt is not None:
                    self._prompt.value = effect.text
                    self._prompt.cursor_position = len(effect.text)
            elif isinstance(effect, CopyText):
                self.copy_to_clipboard(effect.text)
            elif isinstance(effect, Exit):
                self.exit(return_code=effect.code)
            else:
                logger.warning(f"Unknown effect {effect!r}")

    def _sync_screens(self) -> None:
        """Keep exactly the modal that matches the session state on top."""
        state = self.session.state
        if state is self._modal_state:
            return

        if self._modal is not None:
            self.pop_screen()
            self._modal = None
            self._modal_state = None

        screen: Optional[Screen] = None
        if state is SessionState.CONFIRMING:
            screen = ConfirmScreen(self.session.generated_sql)
        elif state is SessionState.HISTORY_BROWSE:
            screen = HistoryScreen(self.session.history_snapshot)
        elif state is SessionState.INFO_VIEW:
            screen = InfoScreen(render_info(self.session))

        if screen is not None:
            self.push_screen(screen)
            self._modal = screen
            self._modal_state = state

    def _refresh_view(self) -> None:
        if not self._views:
            return
        session = self.session
        self._views["results"].update(render_outcome(session))
        self._views["sql-line"].update(render_sql_line(session, self.size.width))
        self._views["status-line"].update(render_status_line(session))
        self._views["help-line"].update(render_help_line(session))

    # ── Input Handlers ────────────────────────────────────────

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self.send_session_event(Submit(event.value))

    # ── Action Handlers (keyboard shortcuts) ─────────────────

    async def action_quit(self) -> None:
        """Ctrl+Q"""
        if self.session.state is SessionState.TERMINATED:
            self.exit()
            return
        self.send_session_event(Quit())

    def action_open_history(self) -> None:
        """Ctrl+R"""
        self.send_session_event(OpenHistory())

    def action_open_info(self) -> None:
        """Ctrl+P"""
        self.send_session_event(OpenInfo())

    def action_recall(self, direction: str) -> None:
        """Ctrl+Up / Ctrl+Down"""
        self.send_session_event(RecallHistory(direction))
