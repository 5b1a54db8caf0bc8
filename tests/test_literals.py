"""Tests for identifier quoting and literal classification.

Run with: pytest tests/test_literals.py -v
"""

import pytest

from schema_porter.services.literals import (
    LITERAL_RULES,
    classify_literal,
    escape_literal,
    format_row_value,
    has_timezone,
    is_date_literal,
    normalize_iso_timestamp,
    quote_identifier,
)


def _unquote(identifier: str) -> str:
    assert identifier.startswith('"') and identifier.endswith('"')
    return identifier[1:-1].replace('""', '"')


class TestQuoteIdentifier:

    def test_dotted_name_quotes_each_part(self):
        assert quote_identifier("APP.ORDERS") == '"APP"."ORDERS"'

    @pytest.mark.parametrize("name", ['A"B', '"', 'WEIRD""NAME', 'x"'])
    def test_embedded_quote_round_trips(self, name):
        assert _unquote(quote_identifier(name)) == name

    def test_escape_literal_doubles_quotes(self):
        assert escape_literal("it's") == "it''s"


class TestClassifyLiteral:

    def test_number_passes_through(self):
        assert classify_literal("NUMBER", "42") == "42"

    def test_string_is_quoted_and_escaped(self):
        assert classify_literal("VARCHAR", "O'Brien") == "'O''Brien'"

    def test_date_uses_to_date(self):
        assert classify_literal("DATE", "2024-01-01") == "TO_DATE('2024-01-01','YYYY-MM-DD')"

    def test_date_with_time(self):
        assert classify_literal("DATE", "2024-01-01 10:20:30") == (
            "TO_DATE('2024-01-01 10:20:30','YYYY-MM-DD HH24:MI:SS')"
        )

    def test_timestamp_with_fraction(self):
        assert classify_literal("TIMESTAMP", "2024-01-01 12:34:56.123") == (
            "TO_TIMESTAMP('2024-01-01 12:34:56.123','YYYY-MM-DD HH24:MI:SS.FF')"
        )

    def test_quoted_date_is_rewrapped(self):
        assert classify_literal("DATE", "'2024-03-05'") == "TO_DATE('2024-03-05','YYYY-MM-DD')"

    def test_timestamp_with_time_zone_iso_input(self):
        result = classify_literal("TIMESTAMP WITH TIME ZONE", "2024-01-01T08:00:00Z")
        assert result == (
            "TO_TIMESTAMP_TZ('2024-01-01 08:00:00+00:00','YYYY-MM-DD HH24:MI:SS TZH:TZM')"
        )

    def test_offset_ignored_for_plain_timestamp(self):
        result = classify_literal("TIMESTAMP", "2024-01-01 08:00:00+08:00")
        assert result.startswith("TO_TIMESTAMP('")
        assert "TZH" not in result

    @pytest.mark.parametrize("value", ["NULL", "null"])
    def test_null_keyword(self, value):
        assert classify_literal("VARCHAR2", value) == "NULL"

    @pytest.mark.parametrize("value", [
        "SYSDATE",
        "CURRENT_TIMESTAMP",
        "SYSDATE + 1",
        "USER",
        "SEQ_ORDERS.NEXTVAL",
        "NEXT VALUE FOR SEQ_ORDERS",
        "TO_CHAR(SYSDATE, 'YYYY')",
        "'A' || 'B'",
        "N'abc'",
        "X'FF'",
        "DATE '2024-01-01'",
    ])
    def test_expressions_are_preserved(self, value):
        assert classify_literal("VARCHAR2", value) == value

    def test_quoted_string_default_unchanged(self):
        assert classify_literal("VARCHAR2", "'NEW'") == "'NEW'"

    def test_arithmetic_heuristic(self):
        assert classify_literal("NUMBER", "2*3") == "2*3"
        assert classify_literal("VARCHAR2", "A - B") == "A - B"
        # A '+' followed by 0/1 looks like an offset and is not treated as arithmetic
        assert classify_literal("VARCHAR2", "X+0800") == "'X+0800'"

    def test_binary_hex_wrapped(self):
        assert classify_literal("RAW", "0A1B") == "HEXTORAW('0A1B')"
        assert classify_literal("BLOB", "HEXTORAW('00')") == "HEXTORAW('00')"

    def test_unknown_type_is_quoted(self):
        assert classify_literal("INTERVAL DAY TO SECOND", "abc") == "'abc'"

    def test_never_raises_on_odd_input(self):
        for value in ["", "'", "''", "+", "-", "(", "2024-", "TIMESTAMP"]:
            assert isinstance(classify_literal("TIMESTAMP", value), str)

    def test_rule_order_is_explicit(self):
        assert [rule.name for rule in LITERAL_RULES] == [
            "null", "quoted", "prefixed", "typed", "expression", "keyword", "arithmetic", "by_type",
        ]


class TestRowValues:

    def test_none_is_null(self):
        assert format_row_value("NUMBER", None) == "NULL"

    def test_string_row_values_are_always_quoted(self):
        assert format_row_value("VARCHAR2", "SYSDATE") == "'SYSDATE'"
        assert format_row_value("CLOB", "a || b") == "'a || b'"

    def test_numeric_and_date_row_values(self):
        assert format_row_value("NUMBER(10,2)", "12.50") == "12.50"
        assert format_row_value("DATE", "2024-01-01 00:00:00") == (
            "TO_DATE('2024-01-01 00:00:00','YYYY-MM-DD HH24:MI:SS')"
        )


class TestTimestampHelpers:

    @pytest.mark.parametrize("raw, expected", [
        ("2024-01-01T10:00:00", "2024-01-01 10:00:00"),
        ("2024-01-01 10:00:00,5", "2024-01-01 10:00:00.5"),
        ("2024-01-01 10:00:00Z", "2024-01-01 10:00:00+00:00"),
        ("2024-01-01 10:00:00+0530", "2024-01-01 10:00:00+05:30"),
        ("2024-01-01 10:00:00-08", "2024-01-01 10:00:00-08:00"),
        ("2024-01-01", "2024-01-01"),
    ])
    def test_normalize_iso_timestamp(self, raw, expected):
        assert normalize_iso_timestamp(raw) == expected

    def test_has_timezone(self):
        assert has_timezone("2024-01-01 10:00:00+08:00")
        assert has_timezone("2024-01-01 10:00:00.123-05:00")
        assert not has_timezone("2024-01-01 10:00:00")
        assert not has_timezone("2024-01-01")

    def test_is_date_literal(self):
        assert is_date_literal("2024-1-5")
        assert is_date_literal("2024-01-01T10:00:00")
        assert not is_date_literal("24-01-01")
        assert not is_date_literal("hello")
