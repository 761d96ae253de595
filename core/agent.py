# ============================================================
# asqli - AI-assisted SQL terminal client
# core/agent.py - SQL generation on top of an AI provider
# ============================================================

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from loguru import logger

from core.errors import EmptyPromptError, GenerationError, InvalidSQLError
from core.history import ConversationEntry
from core.providers import AIProvider, GenerateRequest, Usage
from utils.helpers import format_value, is_dangerous_query, is_valid_sql_start

SQL_KEYWORDS = r"SELECT|INSERT|UPDATE|DELETE|WITH|CREATE|DROP|ALTER"


@dataclass
class GeneratedSQL:
    query: str
    explanation: str = ""
    usage: Usage = field(default_factory=Usage)


def strip_think(text: str) -> str:
    """Drop <think>...</think> reasoning blocks some local models emit."""
    text = re.sub(r"<think>[\s\S]*?</think>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"<think>[\s\S]*$", "", text, flags=re.IGNORECASE)
    return re.sub(r"</?think>", "", text, flags=re.IGNORECASE)


def extract_sql(llm_response: str) -> str:
    """
    Pull the statement out of a model reply.

    Tries, in order: a ```sql fenced block, any fenced block that starts with
    a SQL keyword, then the reply itself with stray fences removed.
    """
    text = strip_think(llm_response).strip()

    m = re.search(r"```sql\s*(.*?)\s*```", text, re.DOTALL | re.IGNORECASE)
    if m and m.group(1).strip():
        return m.group(1).strip()

    m = re.search(r"```\s*(.*?)\s*```", text, re.DOTALL)
    if m and re.match(rf"^({SQL_KEYWORDS})\b", m.group(1).strip(), re.IGNORECASE):
        return m.group(1).strip()

    if text.startswith("```"):
        lines = text.split("\n")
        if len(lines) > 2:
            text = "\n".join(lines[1:])
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def clean_explanation(llm_response: str) -> str:
    """Whatever prose the model wrote around the SQL, with code blocks removed."""
    cleaned = strip_think(llm_response)
    cleaned = re.sub(r"```.*?```", "", cleaned, flags=re.DOTALL)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    return cleaned.strip()


class SQLGenerator:
    """
    Turns a natural-language prompt into one SQL statement.

    The request sent to the provider carries the schema, the target database
    type, the cell the user has selected in the current grid and a numbered
    list of the recent (prompt, SQL) exchanges.
    """

    def __init__(self, provider: AIProvider, database_type: str = ""):
        self.provider = provider
        self.database_type = database_type

    @property
    def name(self) -> str:
        return self.provider.name

    def generate(
        self,
        prompt: str,
        schema: str = "",
        conversation: Sequence[ConversationEntry] = (),
        selected_column: str = "",
        selected_value: Optional[Any] = None,
    ) -> GeneratedSQL:
        if not prompt.strip():
            raise EmptyPromptError()

        request = GenerateRequest(
            prompt=prompt,
            schema=schema,
            database_type=self.database_type,
            context=self.build_context(conversation, selected_column, selected_value),
        )
        logger.info(f"Generating SQL with {self.provider.name} for: {prompt[:80]}")
        response = self.provider.generate_sql(request)

        query = extract_sql(response.query)
        if not query:
            raise GenerationError("SQL generation failed: empty response")
        self.validate(query)

        explanation = response.explanation or clean_explanation(response.query)
        if explanation == query:
            explanation = ""
        return GeneratedSQL(query=query, explanation=explanation, usage=response.usage)

    def build_context(
        self,
        conversation: Sequence[ConversationEntry] = (),
        selected_column: str = "",
        selected_value: Optional[Any] = None,
    ) -> str:
        parts: List[str] = []

        if selected_column:
            parts.append(
                "Currently selected cell:\n"
                f"  Column: {selected_column}\n"
                f"  Value: {format_value(selected_value)}\n"
                'Use this when the request refers to "this", "that" or "the selected" value.'
            )

        if conversation:
            lines = ["Recent conversation history (oldest first):"]
            for i, entry in enumerate(conversation, start=1):
                lines.append(f"{i}. User: {entry.prompt}")
                lines.append(f"   SQL: {entry.sql}")
            parts.append("\n".join(lines))

        return "\n\n".join(parts)

    def validate(self, sql: str) -> None:
        if not is_valid_sql_start(sql):
            raise InvalidSQLError(sql)

    def is_dangerous(self, sql: str) -> bool:
        return is_dangerous_query(sql)

    def close(self) -> None:
        self.provider.close()
