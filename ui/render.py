# ============================================================
# asqli - AI-assisted SQL terminal client
# ui/render.py - Rich renderables for the results area and command bar
# ============================================================

from rich.console import Group, RenderableType
from rich.syntax import Syntax
from rich.text import Text

from config import app_config
from core.session import (
    ExecutionFailed,
    GenerationFailed,
    Idle,
    QuerySucceeded,
    ResultReady,
    Session,
    SessionState,
)
from utils.helpers import format_duration, single_line, truncate_string

EXAMPLE_PROMPTS = (
    "show all users",
    "how many orders were placed last week?",
    "top 10 products by revenue",
    "#SELECT * FROM users LIMIT 5",
)


def format_sql_syntax(sql: str) -> Syntax:
    return Syntax(sql, "sql", theme="monokai", line_numbers=False, word_wrap=True)


def render_loading(session: Session) -> Text:
    text = Text()
    text.append(f"◆ {app_config.name} v{app_config.version}\n\n", style="bold cyan")
    if session.state is SessionState.CONNECTING:
        text.append("⏳ Connecting to database", style="yellow")
        text.append(f" {session.db_config.describe()}", style="dim")
    else:
        text.append("✓ Connected\n", style="green")
        text.append("⏳ Loading schema...", style="yellow")
    return text


def render_welcome(session: Session) -> Text:
    text = Text()
    text.append(f"◆ {app_config.name} v{app_config.version}\n\n", style="bold cyan")
    text.append("Database: ", style="dim")
    text.append(f"{session.db_config.driver_type} {session.db_config.describe()}\n", style="bold #58a6ff")
    if session.generator is not None:
        text.append("AI:       ", style="dim")
        text.append(f"{session.generator.name} ({session.generator.provider.model})\n", style="bold #58a6ff")
    if not session.schema_text:
        text.append("Schema:   ", style="dim")
        text.append("not available, answers may be less accurate\n", style="yellow")

    text.append("\nAsk in plain English, or start with # to run SQL directly.\n\n", style="white")
    text.append("Examples:\n", style="dim")
    for example in EXAMPLE_PROMPTS:
        text.append(f"  • {example}\n", style="dim cyan")
    return text


def render_outcome(session: Session) -> RenderableType:
    """Exactly one of: grid, generation error, execution error, success line, welcome."""
    if session.state in (SessionState.CONNECTING, SessionState.LOADING_SCHEMA):
        return render_loading(session)

    outcome = session.outcome
    if isinstance(outcome, ResultReady):
        return outcome.grid.render()

    if isinstance(outcome, GenerationFailed):
        text = Text()
        text.append("AI ERROR", style="bold red")
        text.append(f": {outcome.error}", style="red")
        return text

    if isinstance(outcome, ExecutionFailed):
        text = Text()
        text.append("ERROR", style="bold red")
        text.append(f": {outcome.error}", style="red")
        return text

    if isinstance(outcome, QuerySucceeded):
        text = Text()
        text.append("Query OK", style="bold green")
        row_word = "row" if outcome.affected_rows == 1 else "rows"
        text.append(f", {outcome.affected_rows} {row_word} affected ", style="green")
        text.append(f"({format_duration(outcome.execution_ms)})", style="dim italic")
        return text

    if isinstance(outcome, Idle) and session.busy:
        return Text("")
    return render_welcome(session)


def render_sql_line(session: Session, width: int) -> Text:
    text = Text()
    if not session.generated_sql:
        return text
    label = "SQL: "
    text.append(label, style="dim")
    text.append(truncate_string(single_line(session.generated_sql), max(4, width - len(label))), style="bold #79c0ff")
    return text


def render_status_line(session: Session) -> Text:
    state = session.state
    if state is SessionState.THINKING:
        provider = session.generator.name if session.generator else "AI"
        return Text(f"⏳ Generating SQL with {provider}...", style="yellow")
    if state is SessionState.EXECUTING:
        return Text("⏳ Executing query...", style="yellow")
    if state is SessionState.CONFIRMING:
        text = Text()
        text.append("⚠ This query may modify data. ", style="bold #f0883e")
        text.append("Execute? (y/n)", style="bold")
        return text
    if state in (SessionState.CONNECTING, SessionState.LOADING_SCHEMA):
        return Text("Starting...", style="dim")

    if session.status_message:
        return Text(session.status_message, style="cyan")

    outcome = session.outcome
    if isinstance(outcome, ResultReady):
        grid = outcome.grid
        row_word = "row" if len(grid.rows) == 1 else "rows"
        text = Text(f"{len(grid.rows)} {row_word} in set ({format_duration(outcome.execution_ms)})", style="dim")
        if session.last_usage is not None:
            text.append(f"  │  {session.last_usage.summary()}", style="dim")
        return text
    return Text("")


def render_help_line(session: Session) -> Text:
    hints = ["enter run", "#sql raw", "ctrl+↑/↓ recall", "ctrl+r history", "ctrl+p info"]
    if session.grid is not None:
        hints = ["←↑↓→ move", "ctrl+c copy"] + hints
    hints.append("esc clear")
    hints.append("ctrl+q quit")
    return Text("  ".join(hints), style="dim")


def render_info(session: Session) -> RenderableType:
    """Every exchange in the conversation window with its SQL and token usage."""
    entries = session.conversation.entries()
    if not entries:
        return Text("No queries yet", style="dim")

    parts = []
    for i, entry in enumerate(entries, start=1):
        header = Text()
        header.append(f"{i}. ", style="bold cyan")
        header.append(entry.prompt, style="bold white")
        parts.append(header)
        if entry.sql:
            parts.append(format_sql_syntax(entry.sql))
        if entry.usage is not None:
            parts.append(Text(f"   {entry.usage.summary()}", style="dim"))
        parts.append(Text(""))
    return Group(*parts)
