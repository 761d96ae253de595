import re
from typing import Any, Optional

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

VALID_SQL_STARTS = ("SELECT", "INSERT", "UPDATE", "DELETE", "WITH", "CREATE", "ALTER", "DROP")

NULL_DISPLAY = "NULL"


def truncate_string(s: str, max_len: int = 80, suffix: str = "...") -> str:
    if len(s) <= max_len:
        return s
    if max_len <= len(suffix):
        return s[:max_len]
    return s[: max_len - len(suffix)] + suffix


def format_value(value: Any) -> str:
    """Stringify a result cell the way the grid and TSV export show it."""
    if value is None:
        return NULL_DISPLAY
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    return str(value)


def single_line(text: str) -> str:
    """Collapse every run of whitespace (newlines included) into one space."""
    return " ".join(text.split())


def first_keyword(sql: str) -> str:
    stripped = sql.strip().upper()
    if not stripped:
        return ""
    return re.split(r"[\s(;]", stripped, maxsplit=1)[0]


def is_dangerous_query(sql: str) -> bool:
    """
    Coarse heuristic: anything whose first keyword is not SELECT may modify
    data. Known limitation, left as is: the first keyword says nothing about
    what a CTE (WITH ...) finally does, so a WITH ... UPDATE is not recognised
    as an update, and "SELECT 1; DROP TABLE t" is considered safe.
    """
    return first_keyword(sql) != "SELECT"


def is_valid_sql_start(sql: str) -> bool:
    upper = sql.strip().upper()
    if not upper:
        return False
    return any(upper.startswith(start) for start in VALID_SQL_STARTS)


def is_valid_identifier(name: str) -> bool:
    return bool(name) and IDENTIFIER_PATTERN.match(name) is not None


def format_duration(milliseconds: int) -> str:
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    elif milliseconds < 60000:
        return f"{milliseconds / 1000:.2f}s"
    else:
        minutes = milliseconds // 60000
        seconds = (milliseconds % 60000) / 1000
        return f"{minutes}m {seconds:.1f}s"


def mask_secret(secret: Optional[str]) -> str:
    if not secret:
        return "(not set)"
    if len(secret) <= 8:
        return "*" * len(secret)
    return f"{secret[:4]}...{secret[-4:]}"
