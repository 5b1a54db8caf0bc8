"""Tests for trigger body rewriting and CREATE TRIGGER generation.

Run with: pytest tests/test_triggers.py -v
"""

from schema_porter.models.metadata import TriggerDefinition
from schema_porter.services.ddl_generator import generate_trigger, generate_triggers
from schema_porter.services.triggers import (
    TriggerTerminator,
    apply_trigger_terminator,
    extract_when_clause,
    normalize_trigger_body,
    normalize_trigger_references,
)


def _trigger(body, each_row=True, timing="BEFORE", events=None):
    return TriggerDefinition(
        name="TRG_ORDERS_ID",
        table_name="ORDERS",
        timing=timing,
        events=events or ["INSERT"],
        each_row=each_row,
        body=body,
    )


class TestNormalizeTriggerBody:

    def test_single_line_select_into_and_assignment(self):
        body = "BEGIN\nSELECT SEQ.NEXTVAL INTO :NEW.ID FROM DUAL\n:NEW.UPDATE_TIME := SYSDATE\nEND"
        normalized = normalize_trigger_body(body)
        assert normalized.splitlines() == [
            "BEGIN",
            "SELECT SEQ.NEXTVAL INTO :NEW.ID FROM DUAL;",
            ":NEW.UPDATE_TIME := SYSDATE;",
            "END;",
        ]

    def test_multiline_select_into_terminated_once(self):
        body = "\n".join([
            "BEGIN",
            "  SELECT COUNT(*)",
            "  INTO v_count",
            "  FROM ORDERS",
            "  WHERE STATUS = 'NEW'",
            "  :NEW.TOTAL := v_count",
            "END",
        ])
        lines = normalize_trigger_body(body).splitlines()
        assert lines[1] == "  SELECT COUNT(*)"
        assert lines[2] == "  INTO v_count"
        assert lines[3] == "  FROM ORDERS"
        assert lines[4] == "  WHERE STATUS = 'NEW';"
        assert lines[5] == "  :NEW.TOTAL := v_count;"
        assert lines[6] == "END;"

    def test_control_flow_lines_untouched(self):
        body = "\n".join([
            "BEGIN",
            "IF :NEW.ID IS NULL THEN",
            ":NEW.ID := 1",
            "ELSE",
            "NULL",
            "END IF;",
            "END;",
        ])
        lines = normalize_trigger_body(body).splitlines()
        assert lines[1] == "IF :NEW.ID IS NULL THEN"
        assert lines[2] == ":NEW.ID := 1;"
        assert lines[3] == "ELSE"
        assert lines[4] == "NULL;"
        assert lines[-1] == "END;"

    def test_statement_spanning_parentheses_not_split(self):
        body = "BEGIN\nINSERT INTO AUDIT_LOG (ID,\n  ACTION) VALUES (1, 'X')\nEND"
        lines = normalize_trigger_body(body).splitlines()
        assert lines[1] == "INSERT INTO AUDIT_LOG (ID,"
        assert lines[2] == "  ACTION) VALUES (1, 'X')"

    def test_existing_semicolons_kept(self):
        body = "BEGIN\nNULL;\nEND;"
        assert normalize_trigger_body(body) == body


class TestWhenClause:

    def test_extract_single_line(self):
        body = "WHEN (NEW.ID IS NULL)\nBEGIN\nSELECT SEQ.NEXTVAL INTO :NEW.ID FROM DUAL;\nEND"
        when_clause, rest = extract_when_clause(body)
        assert when_clause == "NEW.ID IS NULL"
        assert rest.startswith("BEGIN")
        assert "WHEN" not in rest.upper()

    def test_extract_multiline_with_nested_parens(self):
        body = "WHEN (\n  NEW.ID IS NULL\n  AND (NEW.STATUS = 'A')\n)\nBEGIN\nNULL;\nEND;"
        when_clause, rest = extract_when_clause(body)
        assert when_clause == "NEW.ID IS NULL AND (NEW.STATUS = 'A')"
        assert rest == "BEGIN\nNULL;\nEND;"

    def test_references_gain_bind_colon(self):
        assert normalize_trigger_references("new.ID = OLD.ID") == ":NEW.ID = :OLD.ID"
        assert normalize_trigger_references(":NEW.ID + RENEW.X") == ":NEW.ID + RENEW.X"


class TestGenerateTrigger:

    def test_row_trigger_is_rebuilt_with_when_and_wrapping(self):
        trigger = _trigger("WHEN (NEW.ID IS NULL)\nSELECT SEQ_ORDERS.NEXTVAL INTO NEW.ID FROM DUAL",
                           events=["INSERT", "UPDATE"])
        stmt = generate_trigger("APP", trigger, TriggerTerminator.STATEMENT)
        assert stmt == (
            'CREATE OR REPLACE TRIGGER "APP"."TRG_ORDERS_ID"\n'
            'BEFORE INSERT OR UPDATE ON "APP"."ORDERS" REFERENCING OLD AS OLD NEW AS NEW\n'
            "FOR EACH ROW\n"
            "WHEN (:NEW.ID IS NULL)\n"
            "BEGIN\n"
            "SELECT SEQ_ORDERS.NEXTVAL INTO :NEW.ID FROM DUAL;\n"
            "END;"
        )

    def test_statement_trigger_has_no_row_clauses(self):
        stmt = generate_trigger("APP", _trigger("BEGIN\nNULL;\nEND;", each_row=False, timing="AFTER"),
                                TriggerTerminator.STATEMENT)
        assert "FOR EACH ROW" not in stmt
        assert "REFERENCING" not in stmt
        assert "AFTER INSERT ON" in stmt

    def test_declare_body_not_wrapped(self):
        body = "DECLARE\n  v_count NUMBER;\nBEGIN\n  SELECT COUNT(*) INTO v_count FROM DUAL;\nEND"
        stmt = generate_trigger("APP", _trigger(body), TriggerTerminator.STATEMENT)
        assert "BEGIN\nDECLARE" not in stmt
        assert stmt.endswith("END;")

    def test_full_create_statement_passes_through(self):
        body = "CREATE OR REPLACE TRIGGER TRG_BPM_CATEGORY_ID\nBEFORE INSERT ON BPM_CATEGORY\nBEGIN\nNULL;\nEND;"
        statements = generate_triggers("APP", [_trigger(body)], TriggerTerminator.STATEMENT)
        assert len(statements) == 1
        assert statements[0].upper().count("CREATE OR REPLACE TRIGGER") == 1
        assert statements[0] == body

    def test_script_terminator_adds_slash_line(self):
        stmt = generate_trigger("APP", _trigger("BEGIN\nNULL;\nEND;"), TriggerTerminator.SCRIPT)
        assert stmt.endswith("END;\n/")

    def test_separate_script_uses_script_formatting(self):
        stmt = generate_trigger("APP", _trigger("BEGIN\nNULL;\nEND;"), TriggerTerminator.SEPARATE_SCRIPT)
        assert stmt.endswith("\n/")

    def test_apply_terminator_is_idempotent(self):
        once = apply_trigger_terminator("BEGIN NULL; END", TriggerTerminator.SCRIPT)
        assert once == "BEGIN NULL; END;\n/"
        assert apply_trigger_terminator(once, TriggerTerminator.SCRIPT) == once
