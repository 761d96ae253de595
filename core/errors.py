# ============================================================
# asqli - AI-assisted SQL terminal client
# core/errors.py - Error taxonomy
# ============================================================

from typing import Optional


class AsqliError(Exception):
    """Base class for every error the session engine knows how to surface."""


class DatabaseConnectionError(AsqliError):
    """Connecting to the database or building the AI provider failed. Fatal."""


class SchemaFetchError(AsqliError):
    """Schema introspection failed. The session continues without a schema."""


class GenerationError(AsqliError):
    """The AI backend could not produce a usable SQL statement."""


class EmptyPromptError(GenerationError):
    def __init__(self, message: str = "prompt cannot be empty"):
        super().__init__(message)


class InvalidSQLError(GenerationError):
    def __init__(self, sql: str = ""):
        self.sql = sql
        super().__init__("invalid SQL query" + (f": {sql[:80]}" if sql else ""))


class ExecutionError(AsqliError):
    """The database rejected or failed to run a statement."""


class CommandAlreadyRunning(RuntimeError):
    """A second command of the same kind was dispatched while one is in flight."""


# ── Timeouts ──────────────────────────────────────────────────

class OperationTimeout(AsqliError):
    """Raised by the dispatcher when a command exceeds its deadline."""

    operation = "operation"

    def __init__(self, seconds: Optional[float] = None):
        self.seconds = seconds
        if seconds is None:
            message = f"{self.operation} timed out"
        else:
            message = f"{self.operation} timed out after {seconds:g}s"
        super().__init__(message)


class ConnectionTimeout(OperationTimeout, DatabaseConnectionError):
    operation = "database connection"


class SchemaFetchTimeout(OperationTimeout, SchemaFetchError):
    operation = "schema fetch"


class GenerationTimeout(OperationTimeout, GenerationError):
    operation = "AI generation"


class ExecutionTimeout(OperationTimeout, ExecutionError):
    operation = "query execution"
