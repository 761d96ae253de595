# ============================================================
# asqli - AI-assisted SQL terminal client
# core/dispatcher.py - Timeout-bounded background commands
# ============================================================

import asyncio
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set, Tuple, Type

from loguru import logger

from config import AIConfig, DatabaseConfig
from core.database import AdapterRegistry, Connection, open_connection
from core.errors import (
    AsqliError,
    CommandAlreadyRunning,
    ConnectionTimeout,
    DatabaseConnectionError,
    ExecutionError,
    ExecutionTimeout,
    GenerationError,
    GenerationTimeout,
    OperationTimeout,
    SchemaFetchError,
    SchemaFetchTimeout,
)
from core.events import Connected, QueryExecuted, SchemaLoaded, SQLGenerated
from core.history import ConversationEntry
from core.providers import ProviderRegistry


class CommandKind(Enum):
    CONNECT = "connect"
    FETCH_SCHEMA = "fetch_schema"
    GENERATE = "generate"
    EXECUTE = "execute"


# ── Commands ──────────────────────────────────────────────────
# Immutable descriptions of work. Everything the worker needs travels inside.

@dataclass(frozen=True)
class ConnectCommand:
    db_config: DatabaseConfig
    ai_config: AIConfig
    adapters: AdapterRegistry
    providers: ProviderRegistry
    timeout: float
    ai_timeout: float = 60.0

    kind = CommandKind.CONNECT


@dataclass(frozen=True)
class FetchSchemaCommand:
    connection: Connection
    timeout: float

    kind = CommandKind.FETCH_SCHEMA


@dataclass(frozen=True)
class GenerateCommand:
    generator: Any  # SQLGenerator
    prompt: str
    schema: str
    conversation: Tuple[ConversationEntry, ...]
    timeout: float
    selected_column: str = ""
    selected_value: Optional[Any] = None

    kind = CommandKind.GENERATE


@dataclass(frozen=True)
class ExecuteCommand:
    connection: Connection
    sql: str
    timeout: float

    kind = CommandKind.EXECUTE


# kind -> (completion event, error class, timeout class)
_KIND_TABLE: Dict[CommandKind, Tuple[type, Type[AsqliError], Type[OperationTimeout]]] = {
    CommandKind.CONNECT: (Connected, DatabaseConnectionError, ConnectionTimeout),
    CommandKind.FETCH_SCHEMA: (SchemaLoaded, SchemaFetchError, SchemaFetchTimeout),
    CommandKind.GENERATE: (SQLGenerated, GenerationError, GenerationTimeout),
    CommandKind.EXECUTE: (QueryExecuted, ExecutionError, ExecutionTimeout),
}


# ── Work ──────────────────────────────────────────────────────

def _connect(cmd: ConnectCommand) -> Connected:
    connection = open_connection(cmd.db_config, cmd.adapters, cmd.timeout)
    try:
        provider = cmd.providers.create(cmd.ai_config, cmd.ai_timeout)
    except Exception:
        _close_quietly(connection)
        raise
    return Connected(connection=connection, provider=provider)


def _fetch_schema(cmd: FetchSchemaCommand) -> SchemaLoaded:
    return SchemaLoaded(schema=cmd.connection.schema())


def _generate(cmd: GenerateCommand) -> SQLGenerated:
    result = cmd.generator.generate(
        cmd.prompt,
        schema=cmd.schema,
        conversation=cmd.conversation,
        selected_column=cmd.selected_column,
        selected_value=cmd.selected_value,
    )
    return SQLGenerated(result=result)


def _execute(cmd: ExecuteCommand) -> QueryExecuted:
    return QueryExecuted(result=cmd.connection.execute(cmd.sql))


_WORK = {
    CommandKind.CONNECT: _connect,
    CommandKind.FETCH_SCHEMA: _fetch_schema,
    CommandKind.GENERATE: _generate,
    CommandKind.EXECUTE: _execute,
}


def _close_quietly(resource: Any) -> None:
    if resource is None:
        return
    try:
        resource.close()
    except Exception as e:
        logger.warning(f"Cleanup of {type(resource).__name__} failed: {e}")


def _discard_late_connection(future: Future) -> None:
    """A connect that finishes after its deadline still owns live handles."""
    if future.cancelled() or future.exception() is not None:
        return
    late: Connected = future.result()
    logger.warning("Connection completed after timeout; closing it")
    _close_quietly(late.connection)
    _close_quietly(late.provider)


class CommandDispatcher:
    """
    Runs commands on a worker pool and turns each into exactly one completion
    event. Never raises for a failed command: the failure travels in the
    event's ``error`` field, wrapped in the command kind's error class.
    """

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="asqli-cmd")
        self._outstanding: Set[CommandKind] = set()

    def is_running(self, kind: CommandKind) -> bool:
        return kind in self._outstanding

    @property
    def outstanding(self) -> Set[CommandKind]:
        return set(self._outstanding)

    async def run(self, command: Any) -> Any:
        kind: CommandKind = command.kind
        if kind in self._outstanding:
            raise CommandAlreadyRunning(f"a {kind.value} command is already running")

        completion, error_class, timeout_class = _KIND_TABLE[kind]
        self._outstanding.add(kind)
        start = time.perf_counter()
        future = self._executor.submit(_WORK[kind], command)
        try:
            event = await asyncio.wait_for(asyncio.wrap_future(future), timeout=command.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{kind.value} timed out after {command.timeout:g}s")
            self._abandon(command, future)
            return completion(error=timeout_class(command.timeout))
        except asyncio.CancelledError:
            logger.info(f"{kind.value} cancelled while running")
            self._abandon(command, future)
            raise
        except Exception as e:
            error = e
            if not isinstance(e, error_class):
                error = error_class(str(e))
                error.__cause__ = e
            logger.error(f"{kind.value} failed: {error}")
            return completion(error=error)
        finally:
            self._outstanding.discard(kind)

        logger.debug(f"{kind.value} completed in {int((time.perf_counter() - start) * 1000)}ms")
        return event

    def _abandon(self, command: Any, future: Future) -> None:
        if command.kind is CommandKind.CONNECT:
            future.add_done_callback(_discard_late_connection)
        elif command.kind in (CommandKind.EXECUTE, CommandKind.FETCH_SCHEMA):
            if command.connection.cancel():
                logger.info(f"Cancelled running statement on {command.connection.driver}")

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
