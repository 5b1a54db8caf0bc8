"""Identifier quoting and SQL literal rendering for DM8 scripts.

Column defaults come out of the catalog as raw text that may be a literal,
a keyword, a function call or an arbitrary expression. ``classify_literal``
decides how that text should appear in regenerated DDL by walking
``LITERAL_RULES`` in order; the first rule whose predicate matches renders
the value. None of the functions here raise.
"""

import re
from dataclasses import dataclass
from typing import Callable, List, Optional

STRING_TYPES = {
    "CHAR", "NCHAR", "VARCHAR", "VARCHAR2", "NVARCHAR", "NVARCHAR2",
    "TEXT", "CLOB", "NCLOB", "LONG", "LONG VARCHAR", "CHARACTER",
}
NUMERIC_TYPES = {
    "NUMBER", "INTEGER", "INT", "SMALLINT", "TINYINT", "BIGINT", "DECIMAL",
    "NUMERIC", "DEC", "FLOAT", "DOUBLE", "DOUBLE PRECISION", "REAL", "BYTE",
}
BINARY_TYPES = {"RAW", "BINARY", "VARBINARY", "BLOB", "LONGVARBINARY", "IMAGE"}

SQL_KEYWORDS = (
    "SYSDATE",
    "SYSTIMESTAMP",
    "CURRENT_DATE",
    "CURRENT_TIME",
    "CURRENT_TIMESTAMP",
    "LOCALTIMESTAMP",
    "LOCALTIME",
    "USER",
    "CURRENT_USER",
    "CURRENT USER",
    "SESSION_USER",
    "SESSION USER",
    "CURRENT_SCHEMA",
    "CURRENT SCHEMA",
    "CURRENT_ROLE",
    "CURRENT ROLE",
    "DBTIMEZONE",
    "SESSIONTIMEZONE",
    "TRUE",
    "FALSE",
)

_DATE_PARTS = re.compile(r"[-: .T]")
_ISO_DATE_TIME_SEPARATOR = re.compile(r"^(\d{4}-\d{1,2}-\d{1,2})[Tt]")
_TZ_OFFSET = re.compile(r"(?<=\d)\s*([+-])(\d{2}):?(\d{2})?$")
_TZ_SUFFIX = re.compile(r"\d:\d{2}(?::\d{2})?(?:\.\d+)?\s*[+-]\d{2}:\d{2}$")
_PARAMETERS = re.compile(r"\(.*?\)")


def quote_identifier(name: str) -> str:
    """Quote a possibly dotted identifier: ``a.b`` -> ``"a"."b"``."""
    return ".".join('"' + part.replace('"', '""') + '"' for part in name.split("."))


def escape_literal(text: str) -> str:
    return text.replace("'", "''")


def quote_literal(text: str) -> str:
    return f"'{escape_literal(text)}'"


# --- type families -------------------------------------------------------

def base_type(data_type: str) -> str:
    """Upper-cased type name with any ``(...)`` parameters removed."""
    return " ".join(_PARAMETERS.sub("", data_type.upper()).split())


def is_string_type(data_type: str) -> bool:
    return base_type(data_type) in STRING_TYPES


def is_numeric_type(data_type: str) -> bool:
    return base_type(data_type) in NUMERIC_TYPES


def is_binary_type(data_type: str) -> bool:
    return base_type(data_type) in BINARY_TYPES


def is_date_type(data_type: str) -> bool:
    return base_type(data_type) == "DATE"


def is_timestamp_type(data_type: str) -> bool:
    base = base_type(data_type)
    return base.startswith("TIMESTAMP") or base.startswith("DATETIME")


def is_timezone_type(data_type: str) -> bool:
    return "TIME ZONE" in base_type(data_type)


# --- literal shapes ------------------------------------------------------

def is_date_literal(text: str) -> bool:
    """True for text starting ``YYYY-M[M]-D[D]`` (any time part may follow)."""
    parts = _DATE_PARTS.split(text.strip())
    if len(parts) < 3:
        return False
    year, month, day = parts[0], parts[1], parts[2]
    return (
        len(year) == 4 and year.isdigit()
        and 1 <= len(month) <= 2 and month.isdigit()
        and 1 <= len(day) <= 2 and day.isdigit()
    )


def is_timestamp_literal(text: str) -> bool:
    return is_date_literal(text) and (":" in text or "T" in text)


def normalize_iso_timestamp(text: str) -> str:
    """Rewrite ISO-8601 spellings into the form TO_TIMESTAMP accepts.

    ``T`` separator -> space, ``,`` fraction -> ``.``, ``Z`` -> ``+00:00``,
    ``+HH`` / ``+HHMM`` offsets -> ``+HH:MM``.
    """
    value = _ISO_DATE_TIME_SEPARATOR.sub(r"\1 ", text.strip())
    value = value.replace(",", ".")
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    if ":" in value:
        value = _TZ_OFFSET.sub(
            lambda m: f"{m.group(1)}{m.group(2)}:{m.group(3) or '00'}", value
        )
    return value


def has_fractional_seconds(text: str) -> bool:
    colon = text.find(":")
    return colon != -1 and "." in text[colon:]


def has_timezone(text: str) -> bool:
    return bool(_TZ_SUFFIX.search(text))


def build_timestamp_format(value: str, with_time_zone: bool) -> str:
    fmt = "YYYY-MM-DD HH24:MI:SS"
    if has_fractional_seconds(value):
        fmt += ".FF"
    if with_time_zone and has_timezone(value):
        fmt += " TZH:TZM"
    return fmt


def render_date(value: str) -> str:
    fmt = "YYYY-MM-DD HH24:MI:SS" if ":" in value else "YYYY-MM-DD"
    return f"TO_DATE('{escape_literal(value)}','{fmt}')"


def render_timestamp(data_type: str, value: str) -> str:
    normalized = normalize_iso_timestamp(value)
    with_tz = is_timezone_type(data_type)
    fmt = build_timestamp_format(normalized, with_tz)
    function = "TO_TIMESTAMP_TZ" if with_tz and has_timezone(normalized) else "TO_TIMESTAMP"
    return f"{function}('{escape_literal(normalized)}','{fmt}')"


# --- classification rules ------------------------------------------------

@dataclass(frozen=True)
class LiteralRule:
    """One step of the default-value classification.

    ``matches`` receives ``(declared_type, text, upper_text)`` and
    ``render`` receives ``(declared_type, text)``; both see the trimmed
    value and the upper-cased declared type.
    """
    name: str
    matches: Callable[[str, str, str], bool]
    render: Callable[[str, str], str]


def _pass_through(data_type: str, text: str) -> str:
    return text


def _is_quoted(data_type: str, text: str, upper: str) -> bool:
    return len(text) >= 2 and text.startswith("'") and text.endswith("'")


def _render_quoted(data_type: str, text: str) -> str:
    inner = text[1:-1]
    if is_date_type(data_type) and is_date_literal(inner):
        return render_date(inner)
    if is_timestamp_type(data_type) and (is_date_literal(inner) or is_timestamp_literal(inner)):
        return render_timestamp(data_type, inner)
    return text


def _is_prefixed_literal(data_type: str, text: str, upper: str) -> bool:
    return upper.startswith(("N'", "X'", "0X"))


def _is_typed_literal(data_type: str, text: str, upper: str) -> bool:
    return upper.startswith(("DATE ", "TIMESTAMP ", "INTERVAL "))


def _is_expression_syntax(data_type: str, text: str, upper: str) -> bool:
    return (
        "(" in text
        or "||" in text
        or upper.startswith("CASE ")
        or " CASE " in upper
        or upper.startswith("NEXT VALUE FOR")
        or ".NEXTVAL" in upper
        or ".CURRVAL" in upper
    )


def _is_sql_keyword(data_type: str, text: str, upper: str) -> bool:
    for keyword in SQL_KEYWORDS:
        if upper == keyword:
            return True
        if upper.startswith(keyword):
            following = upper[len(keyword)]
            if following in " +-*/":
                return True
    return False


def _is_arithmetic(data_type: str, text: str, upper: str) -> bool:
    # Dates contain '-' and timestamps may end in a '+HH:MM' offset.
    if is_date_literal(text):
        return False
    for i, ch in enumerate(text):
        if ch in "*/":
            return True
        if ch == "+" and i > 0 and not text[i:].startswith(("+0", "+1")):
            return True
        if ch == "-" and i > 0:
            previous = text[i - 1]
            if previous in " )" or previous.isalpha():
                return True
    return False


def _always(data_type: str, text: str, upper: str) -> bool:
    return True


def _render_by_type(data_type: str, text: str) -> str:
    if is_string_type(data_type):
        return quote_literal(text)
    if is_numeric_type(data_type):
        return text
    if is_date_type(data_type):
        return render_date(text) if is_date_literal(text) else text
    if is_timestamp_type(data_type):
        if is_date_literal(text) or is_timestamp_literal(text):
            return render_timestamp(data_type, text)
        return text
    if is_binary_type(data_type):
        upper = text.upper()
        if upper.startswith(("HEXTORAW", "X'")):
            return text
        if all(c in "0123456789abcdefABCDEF" for c in text):
            return f"HEXTORAW('{text}')"
        return text
    return quote_literal(text)


LITERAL_RULES: List[LiteralRule] = [
    LiteralRule("null", lambda dt, text, upper: upper == "NULL", lambda dt, text: "NULL"),
    LiteralRule("quoted", _is_quoted, _render_quoted),
    LiteralRule("prefixed", _is_prefixed_literal, _pass_through),
    LiteralRule("typed", _is_typed_literal, _pass_through),
    LiteralRule("expression", _is_expression_syntax, _pass_through),
    LiteralRule("keyword", _is_sql_keyword, _pass_through),
    LiteralRule("arithmetic", _is_arithmetic, _pass_through),
    LiteralRule("by_type", _always, _render_by_type),
]


def classify_literal(data_type: str, value: str) -> str:
    """Render a raw default/value for a column of ``data_type``."""
    text = value.strip()
    dt = data_type.upper()
    upper = text.upper()
    for rule in LITERAL_RULES:
        if rule.matches(dt, text, upper):
            return rule.render(dt, text)
    return quote_literal(text)


def format_row_value(data_type: str, value: Optional[str]) -> str:
    """Render one fetched row value for an INSERT statement.

    Row values are data, never SQL, so string columns (and columns of an
    unrecognised type) are always quoted even when the text would look like
    an expression as a default.
    """
    if value is None:
        return "NULL"
    if is_string_type(data_type) or not (
        is_numeric_type(data_type)
        or is_date_type(data_type)
        or is_timestamp_type(data_type)
        or is_binary_type(data_type)
    ):
        return quote_literal(value)
    return classify_literal(data_type, value)
