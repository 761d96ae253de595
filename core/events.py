# ============================================================
# asqli - AI-assisted SQL terminal client
# core/events.py - Events consumed and effects produced by the session
# ============================================================

from dataclasses import dataclass
from typing import Any, Optional


# ── User & Terminal Events ────────────────────────────────────

@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class Submit:
    text: str


@dataclass(frozen=True)
class GridMove:
    direction: str  # up, down, left, right


@dataclass(frozen=True)
class ConfirmAnswer:
    accepted: bool


@dataclass(frozen=True)
class OpenHistory:
    pass


@dataclass(frozen=True)
class SelectHistory:
    text: str


@dataclass(frozen=True)
class CloseHistory:
    pass


@dataclass(frozen=True)
class ClearHistory:
    pass


@dataclass(frozen=True)
class OpenInfo:
    pass


@dataclass(frozen=True)
class CloseInfo:
    pass


@dataclass(frozen=True)
class RecallHistory:
    direction: str  # older, newer


@dataclass(frozen=True)
class ClearInput:
    pass


@dataclass(frozen=True)
class CopyGrid:
    pass


@dataclass(frozen=True)
class Quit:
    pass


# ── Command Completions ───────────────────────────────────────
# Exactly one of these is produced per dispatched command.

@dataclass(frozen=True)
class Connected:
    connection: Any = None
    provider: Any = None
    error: Optional[Exception] = None


@dataclass(frozen=True)
class SchemaLoaded:
    schema: str = ""
    error: Optional[Exception] = None


@dataclass(frozen=True)
class SQLGenerated:
    result: Any = None  # GeneratedSQL
    error: Optional[Exception] = None


@dataclass(frozen=True)
class QueryExecuted:
    result: Any = None  # QueryResult
    error: Optional[Exception] = None


COMPLETION_EVENTS = (Connected, SchemaLoaded, SQLGenerated, QueryExecuted)


# ── Effects ───────────────────────────────────────────────────
# Returned by Session.handle for the application to carry out.

@dataclass(frozen=True)
class Dispatch:
    command: Any


@dataclass(frozen=True)
class SetInput:
    text: str


@dataclass(frozen=True)
class CopyText:
    text: str


@dataclass(frozen=True)
class Exit:
    code: int = 0
