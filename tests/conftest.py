import threading
import time
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from config import AIConfig, DatabaseConfig, TimeoutConfig
from core.database import AdapterRegistry, DatabaseAdapter, QueryResult, TableDefinition
from core.errors import ExecutionError, SchemaFetchError
from core.events import Connected, SchemaLoaded
from core.history import PromptHistory
from core.providers import AIProvider, GenerateRequest, GenerateResponse, ProviderRegistry, Usage
from core.session import Session


class FakeProvider(AIProvider):
    """Answers prompts from a dict, or with a callable for anything else."""

    name = "fake"

    def __init__(
        self,
        config: Optional[AIConfig] = None,
        timeout: float = 60.0,
        answers: Optional[Dict[str, str]] = None,
        default: Union[str, Callable[[GenerateRequest], str]] = "SELECT 1",
        delay: float = 0.0,
    ):
        super().__init__(config or AIConfig(provider="fake", model="fake-model"), timeout)
        self.model = self.model or "fake-model"
        self.answers = answers or {}
        self.default = default
        self.delay = delay
        self.requests: List[GenerateRequest] = []
        self.close_calls = 0

    def generate_sql(self, request: GenerateRequest) -> GenerateResponse:
        self.requests.append(request)
        if self.delay:
            time.sleep(self.delay)
        answer = self.answers.get(request.prompt)
        if answer is None:
            answer = self.default(request) if callable(self.default) else self.default
        return GenerateResponse(
            query=answer,
            usage=Usage(provider=self.name, model=self.model, prompt_tokens=12, response_tokens=4, total_tokens=16),
        )

    def close(self) -> None:
        self.close_calls += 1


class FakeConnection:
    """Stands in for core.database.Connection."""

    driver = "fake"

    def __init__(self, results: Optional[Dict[str, QueryResult]] = None, schema: str = "DATABASE SCHEMA:\n\n",
                 schema_error: Optional[Exception] = None, delay: float = 0.0):
        self.results = results or {}
        self._schema = schema
        self.schema_error = schema_error
        self.delay = delay
        self.executed: List[str] = []
        self.close_calls = 0
        self.cancel_calls = 0

    def schema(self) -> str:
        if self.delay:
            time.sleep(self.delay)
        if self.schema_error is not None:
            raise self.schema_error
        return self._schema

    def execute(self, sql: str) -> QueryResult:
        self.executed.append(sql)
        if self.delay:
            time.sleep(self.delay)
        if sql not in self.results:
            raise ExecutionError(f"failed to execute query: no such statement {sql!r}")
        return self.results[sql]

    def cancel(self) -> bool:
        self.cancel_calls += 1
        return True

    def close(self) -> None:
        self.close_calls += 1


class CountingCursor:
    def __init__(self, raw: "CountingRaw"):
        self.raw = raw
        self.description = None
        self.rowcount = 0

    def execute(self, sql: str) -> None:
        with self.raw.guard:
            self.raw.active += 1
            self.raw.max_active = max(self.raw.max_active, self.raw.active)
        try:
            self.raw.statements.append(sql)
            if sql == "slow":
                time.sleep(self.raw.slow_seconds)
        finally:
            with self.raw.guard:
                self.raw.active -= 1

    def fetchall(self) -> list:
        return []

    def close(self) -> None:
        pass


class CountingRaw:
    """A DB-API connection that records how many statements overlap."""

    def __init__(self, slow_seconds: float = 0.3):
        self.guard = threading.Lock()
        self.slow_seconds = slow_seconds
        self.active = 0
        self.max_active = 0
        self.statements: List[str] = []
        self.close_calls = 0

    def cursor(self) -> CountingCursor:
        return CountingCursor(self)

    def close(self) -> None:
        self.close_calls += 1


class NoCancelAdapter(DatabaseAdapter):
    """An adapter whose driver cannot interrupt a running statement."""

    driver = "counting"

    def connect(self, config: DatabaseConfig, timeout: float) -> CountingRaw:
        return CountingRaw()

    def table_names(self, raw: Any) -> List[str]:
        return []

    def table_definition(self, raw: Any, table_name: str) -> TableDefinition:
        return TableDefinition(name=table_name)


def wait_for(condition: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while not condition() and time.monotonic() < deadline:
        time.sleep(0.01)
    return condition()


def users_result(count: int = 3) -> QueryResult:
    rows = [{"id": i, "name": f"user{i}", "email": None if i % 2 else f"user{i}@example.com"} for i in range(1, count + 1)]
    return QueryResult(columns=["id", "name", "email"], rows=rows, execution_ms=3)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(answers={"show all users": "SELECT * FROM users;"})


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection(results={
        "SELECT * FROM users;": users_result(),
        "SELECT 1": QueryResult(columns=["1"], rows=[{"1": 1}]),
        "DELETE FROM users": QueryResult(affected_rows=3, execution_ms=1),
    })


@pytest.fixture
def history_file(tmp_path):
    return tmp_path / "history"


@pytest.fixture
def make_session(history_file):
    def _make(**kwargs: Any) -> Session:
        params = dict(
            db_config=DatabaseConfig(driver="sqlite", file=":memory:"),
            ai_config=AIConfig(provider="fake", model="fake-model"),
            timeouts=TimeoutConfig(),
            adapters=AdapterRegistry(),
            providers=ProviderRegistry(),
            history=PromptHistory(history_file),
            max_query_history=5,
            width=100,
            height=30,
        )
        params.update(kwargs)
        return Session(**params)
    return _make


@pytest.fixture
def ready_session(make_session, connection, provider) -> Session:
    session = make_session()
    session.start()
    session.handle(Connected(connection=connection, provider=provider))
    session.handle(SchemaLoaded(schema="DATABASE SCHEMA:\n\nTABLE: users\n"))
    return session


@pytest.fixture
def schema_error() -> SchemaFetchError:
    return SchemaFetchError("failed to fetch schema: permission denied")
