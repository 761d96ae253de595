# ============================================================
# asqli - AI-assisted SQL terminal client
# core/session.py - Session state machine
# ============================================================
#
# Session is the only place state changes. The UI feeds it events (key
# presses, resizes, command completions) one at a time through handle() and
# carries out the effects it returns: dispatching commands, setting the
# prompt text, copying to the clipboard, exiting.
# ============================================================

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from config import AIConfig, DatabaseConfig, TimeoutConfig
from core.agent import SQLGenerator
from core.database import AdapterRegistry, QueryResult
from core.dispatcher import ConnectCommand, ExecuteCommand, FetchSchemaCommand, GenerateCommand
from core.events import (
    COMPLETION_EVENTS,
    ClearHistory,
    ClearInput,
    CloseHistory,
    CloseInfo,
    ConfirmAnswer,
    Connected,
    CopyGrid,
    CopyText,
    Dispatch,
    Exit,
    GridMove,
    OpenHistory,
    OpenInfo,
    QueryExecuted,
    Quit,
    RecallHistory,
    Resize,
    SchemaLoaded,
    SelectHistory,
    SetInput,
    SQLGenerated,
    Submit,
)
from core.grid import ResultGrid
from core.history import ConversationWindow, PromptHistory
from core.providers import ProviderRegistry, Usage
from utils.helpers import is_dangerous_query

RAW_SQL_PREFIX = "#"
EXIT_WORDS = ("exit", "quit")

# Space the command bar and table padding take from the terminal.
COMMAND_BAR_HEIGHT = 6
TABLE_PADDING_HORIZONTAL = 4
TABLE_PADDING_VERTICAL = 2


class SessionState(Enum):
    CONNECTING = "connecting"
    LOADING_SCHEMA = "loading_schema"
    READY = "ready"
    THINKING = "thinking"
    EXECUTING = "executing"
    CONFIRMING = "confirming"
    HISTORY_BROWSE = "history_browse"
    INFO_VIEW = "info_view"
    TERMINATED = "terminated"


# ── Outcome ───────────────────────────────────────────────────
# Exactly one of these describes what the results area shows.

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class GenerationFailed:
    error: Exception


@dataclass(frozen=True)
class ExecutionFailed:
    error: Exception


@dataclass(frozen=True)
class QuerySucceeded:
    affected_rows: int = 0
    execution_ms: int = 0


@dataclass(frozen=True)
class ResultReady:
    grid: ResultGrid
    execution_ms: int = 0


Effects = List[Any]


class Session:
    def __init__(
        self,
        db_config: DatabaseConfig,
        ai_config: AIConfig,
        timeouts: TimeoutConfig,
        adapters: AdapterRegistry,
        providers: ProviderRegistry,
        history: Optional[PromptHistory] = None,
        max_query_history: int = 5,
        max_column_width: int = 50,
        width: int = 80,
        height: int = 24,
    ):
        self.db_config = db_config
        self.ai_config = ai_config
        self.timeouts = timeouts
        self.adapters = adapters
        self.providers = providers
        self.max_column_width = max_column_width

        self.state = SessionState.CONNECTING
        self.db_handle = None
        self.ai_handle = None
        self.generator: Optional[SQLGenerator] = None
        self.schema_text = ""

        self.current_prompt = ""
        self.generated_sql = ""
        self.last_usage: Optional[Usage] = None
        self.outcome: Any = Idle()

        self.history = history if history is not None else PromptHistory()
        self.history_snapshot: List[str] = []
        self.conversation = ConversationWindow(max_query_history)

        self.width = width
        self.height = height
        self.status_message = ""
        self.warnings: List[str] = []
        self.fatal_error: Optional[Exception] = None
        self._released = False

        self._handlers: Dict[type, Callable[[Any], Effects]] = {
            Connected: self._on_connected,
            SchemaLoaded: self._on_schema_loaded,
            SQLGenerated: self._on_sql_generated,
            QueryExecuted: self._on_query_executed,
            Resize: self._on_resize,
            Submit: self._on_submit,
            GridMove: self._on_grid_move,
            ConfirmAnswer: self._on_confirm_answer,
            OpenHistory: self._on_open_history,
            SelectHistory: self._on_select_history,
            CloseHistory: self._on_close_history,
            ClearHistory: self._on_clear_history,
            OpenInfo: self._on_open_info,
            CloseInfo: self._on_close_info,
            RecallHistory: self._on_recall_history,
            ClearInput: self._on_clear_input,
            CopyGrid: self._on_copy_grid,
            Quit: self._on_quit,
        }

    # ── Public API ────────────────────────────────────────────

    @property
    def grid(self) -> Optional[ResultGrid]:
        if isinstance(self.outcome, ResultReady):
            return self.outcome.grid
        return None

    @property
    def busy(self) -> bool:
        return self.state in (
            SessionState.CONNECTING,
            SessionState.LOADING_SCHEMA,
            SessionState.THINKING,
            SessionState.EXECUTING,
        )

    def grid_viewport(self) -> tuple:
        width = max(1, self.width - TABLE_PADDING_HORIZONTAL)
        height = max(1, self.height - COMMAND_BAR_HEIGHT - TABLE_PADDING_VERTICAL)
        return width, height

    def start(self) -> Effects:
        """Load history and kick off the connection."""
        self.history.load()
        self.state = SessionState.CONNECTING
        logger.info(f"Connecting to {self.db_config.driver_type} at {self.db_config.describe()}")
        return [Dispatch(ConnectCommand(
            db_config=self.db_config,
            ai_config=self.ai_config,
            adapters=self.adapters,
            providers=self.providers,
            timeout=self.timeouts.connection,
            ai_timeout=self.timeouts.ai_generation,
        ))]

    def handle(self, event: Any) -> Effects:
        if self.state is SessionState.TERMINATED:
            if isinstance(event, Connected):
                # Quitting during CONNECTING leaves the late handles to us.
                return self._on_connected(event)
            logger.debug(f"Ignoring {type(event).__name__} after termination")
            return []

        handler = self._handlers.get(type(event))
        if handler is None:
            logger.warning(f"No handler for event {event!r}")
            return []

        if not isinstance(event, COMPLETION_EVENTS + (Resize, CopyGrid)):
            self.status_message = ""
        return handler(event)

    def shutdown(self) -> None:
        """Release both handles. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        if self.db_handle is not None and self.state in (SessionState.EXECUTING, SessionState.LOADING_SCHEMA):
            # A worker is still inside the driver.
            try:
                self.db_handle.cancel()
            except Exception as e:
                logger.warning(f"Cancelling running statement failed: {e}")
        for label, handle in (("database connection", self.db_handle), ("AI provider", self.ai_handle)):
            if handle is None:
                continue
            try:
                handle.close()
            except Exception as e:
                logger.warning(f"Closing {label} failed: {e}")
        self.db_handle = None
        self.ai_handle = None
        self.generator = None

    # ── Helpers ───────────────────────────────────────────────

    def _expect(self, event: Any, *states: SessionState) -> bool:
        if self.state in states:
            return True
        logger.debug(f"Ignoring {type(event).__name__} in state {self.state.value}")
        return False

    def _unexpected_completion(self, event: Any) -> Effects:
        logger.warning(f"Unexpected {type(event).__name__} in state {self.state.value}; ignored")
        return []

    def _execute(self, sql: str) -> Effects:
        self.state = SessionState.EXECUTING
        return [Dispatch(ExecuteCommand(
            connection=self.db_handle,
            sql=sql,
            timeout=self.timeouts.query,
        ))]

    def _route_sql(self, sql: str) -> Effects:
        """Dangerous statements wait for confirmation, the rest run straight away."""
        if is_dangerous_query(sql):
            self.state = SessionState.CONFIRMING
            return []
        return self._execute(sql)

    def _persist_history(self) -> None:
        try:
            self.history.save()
        except OSError as e:
            logger.warning(f"Could not save history to {self.history.path}: {e}")
            self.warnings.append(f"history not saved: {e}")

    def _terminate(self, code: int) -> Effects:
        self._persist_history()
        self.shutdown()
        self.state = SessionState.TERMINATED
        return [Exit(code)]

    # ── Completion Events ─────────────────────────────────────

    def _on_connected(self, event: Connected) -> Effects:
        if self.state is not SessionState.CONNECTING:
            # A handle nobody will own must not leak.
            for handle in (event.connection, event.provider):
                if handle is not None:
                    try:
                        handle.close()
                    except Exception as e:
                        logger.warning(f"Closing stray handle failed: {e}")
            return self._unexpected_completion(event)

        if event.error is not None:
            logger.error(f"Startup failed: {event.error}")
            self.fatal_error = event.error
            self.shutdown()
            self.state = SessionState.TERMINATED
            return [Exit(1)]

        self.db_handle = event.connection
        self.ai_handle = event.provider
        self.generator = SQLGenerator(event.provider, database_type=event.connection.driver)
        self.state = SessionState.LOADING_SCHEMA
        return [Dispatch(FetchSchemaCommand(connection=self.db_handle, timeout=self.timeouts.schema_fetch))]

    def _on_schema_loaded(self, event: SchemaLoaded) -> Effects:
        if self.state is not SessionState.LOADING_SCHEMA:
            return self._unexpected_completion(event)

        if event.error is not None:
            warning = f"Schema unavailable, continuing without it: {event.error}"
            logger.warning(warning)
            self.warnings.append(warning)
            self.status_message = warning
            self.schema_text = ""
        else:
            self.schema_text = event.schema
            logger.info(f"Schema loaded ({len(self.schema_text)} chars)")

        self.state = SessionState.READY
        return []

    def _on_sql_generated(self, event: SQLGenerated) -> Effects:
        if self.state is not SessionState.THINKING:
            return self._unexpected_completion(event)

        if event.error is not None:
            self.outcome = GenerationFailed(event.error)
            self.generated_sql = ""
            self.state = SessionState.READY
            return []

        generated = event.result
        self.generated_sql = generated.query
        self.last_usage = generated.usage
        logger.info(f"Generated SQL: {self.generated_sql}")
        return self._route_sql(self.generated_sql)

    def _on_query_executed(self, event: QueryExecuted) -> Effects:
        if self.state is not SessionState.EXECUTING:
            return self._unexpected_completion(event)

        self.state = SessionState.READY
        if event.error is not None:
            self.outcome = ExecutionFailed(event.error)
        else:
            result: QueryResult = event.result
            if result.rows:
                width, height = self.grid_viewport()
                grid = ResultGrid.from_result(result, width, height, self.max_column_width)
                self.outcome = ResultReady(grid, result.execution_ms)
            else:
                self.outcome = QuerySucceeded(result.affected_rows, result.execution_ms)

        if self.history.append(self.current_prompt):
            self._persist_history()
        self.conversation.append(self.current_prompt, self.generated_sql, self.last_usage)
        return []

    # ── User Events ───────────────────────────────────────────

    def _on_resize(self, event: Resize) -> Effects:
        self.width = event.width
        self.height = event.height
        if self.grid is not None:
            self.grid.set_viewport(*self.grid_viewport())
        return []

    def _on_submit(self, event: Submit) -> Effects:
        if not self._expect(event, SessionState.READY):
            return []

        text = event.text.strip()
        if not text:
            return []
        if text.lower() in EXIT_WORDS:
            return self._terminate(0)

        # Capture the selected cell before the grid goes away.
        selected_column, selected_value = "", None
        if self.grid is not None:
            selected_column = self.grid.selected_column()
            selected_value = self.grid.selected_value()

        self.outcome = Idle()
        self.history.reset_cursor()
        self.current_prompt = text
        self.generated_sql = ""
        self.last_usage = None

        if text.startswith(RAW_SQL_PREFIX):
            sql = text[len(RAW_SQL_PREFIX):].strip()
            if not sql:
                self.status_message = "Nothing to run after '#'"
                return [SetInput("")]
            self.generated_sql = sql
            return [SetInput("")] + self._route_sql(sql)

        self.state = SessionState.THINKING
        return [SetInput(""), Dispatch(GenerateCommand(
            generator=self.generator,
            prompt=text,
            schema=self.schema_text,
            conversation=tuple(self.conversation.entries()),
            timeout=self.timeouts.ai_generation,
            selected_column=selected_column,
            selected_value=selected_value,
        ))]

    def _on_grid_move(self, event: GridMove) -> Effects:
        if self._expect(event, SessionState.READY) and self.grid is not None:
            self.grid.move(event.direction)
        return []

    def _on_confirm_answer(self, event: ConfirmAnswer) -> Effects:
        if not self._expect(event, SessionState.CONFIRMING):
            return []
        if event.accepted:
            return self._execute(self.generated_sql)

        logger.info(f"Query cancelled by user: {self.generated_sql}")
        self.generated_sql = ""
        self.status_message = "Query cancelled"
        self.state = SessionState.READY
        return []

    def _on_open_history(self, event: OpenHistory) -> Effects:
        if self._expect(event, SessionState.READY):
            self.history_snapshot = self.history.snapshot()
            self.state = SessionState.HISTORY_BROWSE
        return []

    def _on_select_history(self, event: SelectHistory) -> Effects:
        if not self._expect(event, SessionState.HISTORY_BROWSE):
            return []
        self.state = SessionState.READY
        self.history.reset_cursor()
        return [SetInput(event.text)]

    def _on_close_history(self, event: CloseHistory) -> Effects:
        if self._expect(event, SessionState.HISTORY_BROWSE):
            self.state = SessionState.READY
        return []

    def _on_clear_history(self, event: ClearHistory) -> Effects:
        if not self._expect(event, SessionState.HISTORY_BROWSE):
            return []
        self.history.clear()
        self._persist_history()
        self.history_snapshot = []
        self.status_message = "History cleared"
        self.state = SessionState.READY
        return []

    def _on_open_info(self, event: OpenInfo) -> Effects:
        if not self._expect(event, SessionState.READY):
            return []
        if not self.conversation:
            self.status_message = "No queries yet"
            return []
        self.state = SessionState.INFO_VIEW
        return []

    def _on_close_info(self, event: CloseInfo) -> Effects:
        if self._expect(event, SessionState.INFO_VIEW):
            self.state = SessionState.READY
        return []

    def _on_recall_history(self, event: RecallHistory) -> Effects:
        if not self._expect(event, SessionState.READY):
            return []
        text = self.history.recall(event.direction)
        if text is None:
            return []
        return [SetInput(text)]

    def _on_clear_input(self, event: ClearInput) -> Effects:
        if not self._expect(event, SessionState.READY):
            return []
        self.history.reset_cursor()
        return [SetInput("")]

    def _on_copy_grid(self, event: CopyGrid) -> Effects:
        if not self._expect(event, SessionState.READY):
            return []
        if self.grid is None:
            self.status_message = "No results to copy"
            return []
        self.status_message = f"Copied {len(self.grid.rows)} rows to clipboard"
        return [CopyText(self.grid.export_tsv())]

    def _on_quit(self, event: Quit) -> Effects:
        logger.info("Quit requested")
        return self._terminate(0)
