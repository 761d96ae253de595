import pytest

from core.agent import SQLGenerator, clean_explanation, extract_sql, strip_think
from core.errors import EmptyPromptError, GenerationError, InvalidSQLError
from core.history import ConversationEntry

from conftest import FakeProvider


# ── Response Parsing ──────────────────────────────────────────

@pytest.mark.parametrize("reply, expected", [
    ("SELECT * FROM users", "SELECT * FROM users"),
    ("```sql\nSELECT id FROM users;\n```", "SELECT id FROM users;"),
    ("Here you go:\n```\nSELECT 1\n```\nEnjoy", "SELECT 1"),
    ("<think>users table has id</think>\nSELECT id FROM users", "SELECT id FROM users"),
    ("```\nSELECT name\nFROM users", "SELECT name\nFROM users"),
])
def test_extract_sql(reply, expected):
    assert extract_sql(reply) == expected


def test_unterminated_think_block_is_dropped():
    assert strip_think("SELECT 1 <think>still going") == "SELECT 1 "


def test_clean_explanation_removes_code():
    reply = "This lists users.\n```sql\nSELECT * FROM users\n```"
    assert clean_explanation(reply) == "This lists users."


# ── Generator ─────────────────────────────────────────────────

def test_generate_returns_query_and_usage():
    provider = FakeProvider(default="```sql\nSELECT COUNT(*) FROM orders;\n```")
    generator = SQLGenerator(provider, database_type="sqlite")

    generated = generator.generate("how many orders", schema="DATABASE SCHEMA:\n\nTABLE: orders\n")

    assert generated.query == "SELECT COUNT(*) FROM orders;"
    assert generated.usage.total_tokens == 16
    request = provider.requests[0]
    assert request.database_type == "sqlite"
    assert "TABLE: orders" in request.schema


def test_generate_rejects_empty_prompt():
    generator = SQLGenerator(FakeProvider())
    with pytest.raises(EmptyPromptError):
        generator.generate("   ")


def test_generate_rejects_empty_reply():
    generator = SQLGenerator(FakeProvider(default="<think>hmm</think>"))
    with pytest.raises(GenerationError, match="empty response"):
        generator.generate("anything")


def test_generate_rejects_non_sql():
    generator = SQLGenerator(FakeProvider(default="I cannot help with that."))
    with pytest.raises(InvalidSQLError) as info:
        generator.generate("anything")
    assert info.value.sql == "I cannot help with that."


def test_validate_accepts_known_statements():
    generator = SQLGenerator(FakeProvider())
    for sql in ("select 1", "WITH t AS (SELECT 1) SELECT * FROM t", "drop table x"):
        generator.validate(sql)
    with pytest.raises(InvalidSQLError):
        generator.validate("PRAGMA table_info(users)")


def test_context_has_selected_cell_and_numbered_history():
    generator = SQLGenerator(FakeProvider())
    context = generator.build_context(
        conversation=[
            ConversationEntry("show users", "SELECT * FROM users"),
            ConversationEntry("only admins", "SELECT * FROM users WHERE admin"),
        ],
        selected_column="email",
        selected_value=None,
    )
    assert "Currently selected cell:\n  Column: email\n  Value: NULL" in context
    assert "Recent conversation history (oldest first):" in context
    assert "1. User: show users\n   SQL: SELECT * FROM users" in context
    assert "2. User: only admins" in context
    assert context.index("Currently selected cell") < context.index("Recent conversation")


def test_context_is_empty_without_selection_or_history():
    assert SQLGenerator(FakeProvider()).build_context() == ""


def test_generate_passes_context_to_provider():
    provider = FakeProvider(default="SELECT * FROM orders WHERE user_id = 7")
    generator = SQLGenerator(provider)
    generator.generate(
        "orders for this user",
        conversation=(ConversationEntry("show users", "SELECT * FROM users"),),
        selected_column="id",
        selected_value=7,
    )
    context = provider.requests[0].context
    assert "Column: id" in context
    assert "Value: 7" in context
    assert "1. User: show users" in context


def test_dangerous_classification():
    generator = SQLGenerator(FakeProvider())
    assert not generator.is_dangerous("  select * from users")
    assert generator.is_dangerous("DELETE FROM users")
    assert generator.is_dangerous("WITH x AS (SELECT 1) UPDATE t SET a = 1")


def test_dangerous_classification_only_reads_the_first_keyword():
    generator = SQLGenerator(FakeProvider())
    # Known limitation of the heuristic, kept as documented.
    assert generator.is_dangerous("WITH t AS (SELECT 1) SELECT * FROM t")
    assert not generator.is_dangerous("SELECT 1; DROP TABLE users")
