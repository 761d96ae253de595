# ============================================================
# asqli - AI-assisted SQL terminal client
# core/database.py - Database gateway: adapters, registry, connection
# ============================================================

import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Type

from loguru import logger

from config import DatabaseConfig, DRIVER_ALIASES
from core.errors import AsqliError, DatabaseConnectionError, ExecutionError, SchemaFetchError


@dataclass
class QueryResult:
    """Tabular output of one statement. Rows map column name to value."""
    columns: List[str] = field(default_factory=list)
    rows: List[Dict[str, Any]] = field(default_factory=list)
    affected_rows: int = 0
    execution_ms: int = 0

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def __repr__(self):
        return f"<QueryResult rows={len(self.rows)} cols={len(self.columns)} time={self.execution_ms}ms>"


@dataclass
class ColumnDefinition:
    name: str
    type: str
    nullable: bool = True
    default: str = ""
    is_primary: bool = False
    is_auto_increment: bool = False


@dataclass
class ConstraintDefinition:
    name: str
    type: str  # PRIMARY KEY, FOREIGN KEY, UNIQUE
    definition: str
    columns: List[str] = field(default_factory=list)
    referenced_table: str = ""
    referenced_columns: List[str] = field(default_factory=list)


@dataclass
class TableDefinition:
    name: str
    columns: List[ColumnDefinition] = field(default_factory=list)
    constraints: List[ConstraintDefinition] = field(default_factory=list)


# ── Schema Formatting ─────────────────────────────────────────

def format_table_definition(table: TableDefinition) -> str:
    lines = [f"TABLE: {table.name}", "Columns:"]
    for col in table.columns:
        nullable = "NULL" if col.nullable else "NOT NULL"
        default = f" DEFAULT {col.default}" if col.default else ""
        primary = " PRIMARY KEY" if col.is_primary else ""
        auto_incr = " AUTO_INCREMENT" if col.is_auto_increment else ""
        lines.append(f"  {col.name} {col.type} {nullable}{default}{primary}{auto_incr}")

    if table.constraints:
        lines.append("Constraints:")
        for constraint in table.constraints:
            lines.append(f"  {constraint.type}: {constraint.definition}")
            if constraint.type == "FOREIGN KEY" and constraint.referenced_table:
                lines.append(f"    REFERENCES: {constraint.referenced_table}")

    return "\n".join(lines) + "\n\n"


def format_database_schema(tables: List[TableDefinition]) -> str:
    return "DATABASE SCHEMA:\n\n" + "".join(format_table_definition(t) for t in tables)


# ── Adapter Contract ──────────────────────────────────────────

class DatabaseAdapter(ABC):
    """
    Engine-specific operations. The registry makes one adapter per
    connection; every method receives the DB-API connection it should work
    on.
    """

    driver: str = ""

    @abstractmethod
    def connect(self, config: DatabaseConfig, timeout: float) -> Any:
        """Open and return a DB-API 2.0 connection."""

    @abstractmethod
    def table_names(self, raw: Any) -> List[str]:
        ...

    @abstractmethod
    def table_definition(self, raw: Any, table_name: str) -> TableDefinition:
        ...

    def database_schema(self, raw: Any) -> str:
        tables = []
        for name in self.table_names(raw):
            tables.append(self.table_definition(raw, name))
        return format_database_schema(tables)

    def cancel(self, raw: Any) -> bool:
        """Interrupt a running statement. Returns False when unsupported."""
        return False

    def ping(self, raw: Any) -> None:
        cursor = raw.cursor()
        try:
            cursor.execute("SELECT 1")
            cursor.fetchall()
        finally:
            cursor.close()


class AdapterRegistry:
    """Maps a driver tag to an adapter factory. Built once at startup."""

    def __init__(self):
        self._factories: Dict[str, Callable[[], DatabaseAdapter]] = {}

    def register(self, driver: str, factory: Callable[[], DatabaseAdapter]) -> None:
        self._factories[driver] = factory

    def create(self, driver: str) -> DatabaseAdapter:
        key = DRIVER_ALIASES.get(driver.lower(), driver.lower())
        factory = self._factories.get(key)
        if factory is None:
            supported = ", ".join(sorted(self._factories)) or "none"
            raise DatabaseConnectionError(
                f"unsupported database driver: {driver} (supported: {supported})"
            )
        return factory()

    def drivers(self) -> List[str]:
        return sorted(self._factories)


# ── Connection ────────────────────────────────────────────────

class Connection:
    """
    An open database connection bound to the adapter that created it.

    DB-API connections are not safe for concurrent statements, so one
    statement runs at a time. A statement abandoned after a timeout keeps the
    connection busy until the driver returns. Closing a busy connection
    leaves the driver close to the worker still running the statement; call
    cancel() first to make it return.
    """

    def __init__(self, raw: Any, adapter: DatabaseAdapter, description: str = ""):
        self._raw = raw
        self.adapter = adapter
        self.description = description
        self._closed = False
        self._raw_closed = False
        self._lock = threading.Lock()

    @property
    def driver(self) -> str:
        return self.adapter.driver

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def _exclusive(self, error_class: Type[AsqliError]) -> Iterator[Any]:
        if self._closed:
            raise error_class("connection is closed")
        if not self._lock.acquire(blocking=False):
            raise error_class("connection is busy: a previous statement is still running")
        try:
            yield self._raw
        finally:
            self._lock.release()
            if self._closed:
                try:
                    self._close_raw_if_idle()
                except Exception as e:
                    logger.warning(f"Deferred close of {self.driver} connection failed: {e}")

    def schema(self) -> str:
        with self._exclusive(SchemaFetchError) as raw:
            try:
                return self.adapter.database_schema(raw)
            except SchemaFetchError:
                raise
            except Exception as e:
                logger.error(f"Schema extraction failed: {e}")
                raise SchemaFetchError(f"failed to fetch schema: {e}") from e

    def execute(self, sql: str) -> QueryResult:
        """
        Run one statement. Statements that return rows produce columns and
        row mappings; anything else reports the affected row count.
        """
        with self._exclusive(ExecutionError) as raw:
            start = time.perf_counter()
            cursor = raw.cursor()
            try:
                cursor.execute(sql)
                if cursor.description:
                    columns = [str(desc[0]) for desc in cursor.description]
                    rows = [dict(zip(columns, row)) for row in cursor.fetchall()]
                    affected = 0
                else:
                    columns, rows = [], []
                    affected = max(cursor.rowcount, 0)
                self._commit()
            except Exception as e:
                logger.error(f"Query failed: {e}\nQuery: {sql}")
                raise ExecutionError(f"failed to execute query: {e}") from e
            finally:
                try:
                    cursor.close()
                except Exception as e:
                    logger.debug(f"Cursor close failed: {e}")

        elapsed = int((time.perf_counter() - start) * 1000)
        return QueryResult(columns=columns, rows=rows, affected_rows=affected, execution_ms=elapsed)

    def _commit(self) -> None:
        # Adapters open connections in autocommit mode where the driver allows;
        # sqlite3 still needs an explicit commit after DML.
        if getattr(self._raw, "in_transaction", False):
            self._raw.commit()

    def cancel(self) -> bool:
        """Interrupt the running statement, if the driver supports it."""
        if self._closed:
            return False
        try:
            return self.adapter.cancel(self._raw)
        except Exception as e:
            logger.warning(f"Cancel on {self.driver} connection failed: {e}")
            return False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._close_raw_if_idle():
            logger.info(f"{self.driver} connection busy; closing once the running statement returns")

    def _close_raw_if_idle(self) -> bool:
        """Close the driver connection unless a statement holds it. False if busy."""
        if not self._lock.acquire(blocking=False):
            return False
        try:
            if not self._raw_closed:
                self._raw_closed = True
                self._raw.close()
                logger.info(f"Disconnected from {self.driver}")
        finally:
            self._lock.release()
        return True


def open_connection(config: DatabaseConfig, registry: AdapterRegistry, timeout: float) -> Connection:
    """Resolve the adapter, connect and ping. Raises DatabaseConnectionError."""
    adapter = registry.create(config.driver_type)
    try:
        raw = adapter.connect(config, timeout)
    except DatabaseConnectionError:
        raise
    except Exception as e:
        logger.error(f"{adapter.driver} connection failed: {e}")
        raise DatabaseConnectionError(f"database connection failed: {e}") from e

    try:
        adapter.ping(raw)
    except Exception as e:
        try:
            raw.close()
        except Exception as close_error:
            logger.warning(f"Close after failed ping raised: {close_error}")
        raise DatabaseConnectionError(f"database connection failed: ping failed: {e}") from e

    logger.info(f"Connected to {adapter.driver} at {config.describe()}")
    return Connection(raw, adapter, description=config.describe())
