"""Trigger body rewriting.

Trigger sources read back from the catalog are frequently not directly
replayable: the ``WHEN`` condition is stored inline, ``NEW.``/``OLD.``
references lack the bind colon and statement terminators are missing.
The helpers here repair those bodies so the regenerated ``CREATE TRIGGER``
statements execute in a SQL client.
"""

import re
from enum import Enum
from typing import List, Tuple

_ROW_REFERENCE = re.compile(r"(?<![A-Za-z0-9_:])(NEW|OLD)\.", re.IGNORECASE)

_NO_TERMINATOR_PREFIXES = (
    "CREATE ",
    "DECLARE",
    "WHEN ",
    "IF ",
    "ELSIF ",
    "ELSE",
    "FOR ",
    "WHILE ",
    "LOOP",
    "BEGIN",
    "END",
    "EXCEPTION",
    "THEN",
)
_STATEMENT_PREFIXES = ("SELECT ", "INSERT ", "UPDATE ", "DELETE ", "INTO ", "NULL", "RAISE")
_ASSIGNMENT_MARKERS = (":NEW.", ":OLD.", ":=")
_SPAN_BREAK_PREFIXES = ("SELECT ", "INSERT ", "UPDATE ", "DELETE ", "END")


class TriggerTerminator(str, Enum):
    """How trigger statements are terminated in the generated script.

    STATEMENT ends each trigger with ``;`` only, for clients that split on
    statements themselves. SCRIPT adds a ``/`` line after each trigger.
    SEPARATE_SCRIPT uses SCRIPT formatting and writes triggers to their own
    file.
    """
    STATEMENT = "statement"
    SCRIPT = "script"
    SEPARATE_SCRIPT = "separate_script"


def extract_when_clause(body: str) -> Tuple[str, str]:
    """Split a leading ``WHEN (...)`` condition off a trigger body.

    Returns ``(condition, remaining_body)``. The condition may span several
    lines; nested parentheses are kept, the outermost pair is dropped.
    """
    clause: List[str] = []
    body_lines: List[str] = []
    in_when = False
    depth = 0

    for line in body.splitlines():
        trimmed = line.strip()
        upper = trimmed.upper()

        if upper.startswith("WHEN") and not in_when:
            after_when = trimmed[4:].lstrip()
            if after_when.startswith("("):
                in_when = True
                depth = 0
                for ch in after_when:
                    if ch == "(":
                        depth += 1
                        if depth > 1:
                            clause.append(ch)
                    elif ch == ")":
                        depth -= 1
                        if depth == 0:
                            in_when = False
                            break
                        clause.append(ch)
                    elif depth > 0:
                        clause.append(ch)
                continue

        if in_when:
            for ch in trimmed:
                if ch == "(":
                    depth += 1
                    clause.append(ch)
                elif ch == ")":
                    depth -= 1
                    if depth == 0:
                        in_when = False
                        break
                    clause.append(ch)
                else:
                    clause.append(ch)
            if in_when:
                clause.append(" ")
        else:
            body_lines.append(line)

    return "".join(clause).strip(), "\n".join(body_lines)


def normalize_trigger_references(text: str) -> str:
    """Rewrite bare ``NEW.x`` / ``OLD.x`` to the ``:NEW.x`` / ``:OLD.x`` bind form."""
    return _ROW_REFERENCE.sub(lambda m: f":{m.group(1).upper()}.", text)


def _mark_select_into_spans(lines: List[str]) -> List[bool]:
    """Flag lines belonging to a multi-line ``SELECT ... INTO ... FROM`` statement."""
    marked = [False] * len(lines)
    for i, line in enumerate(lines):
        if not line.strip().upper().startswith("SELECT "):
            continue

        into_idx = None
        for j in range(i + 1, len(lines)):
            next_upper = lines[j].strip().upper()
            if next_upper.startswith("INTO "):
                into_idx = j
                break
            if next_upper.endswith(";") or next_upper.startswith("SELECT "):
                break
        if into_idx is None:
            continue

        end_idx = into_idx
        depth = 0
        for j in range(into_idx + 1, len(lines)):
            next_line = lines[j].strip()
            next_upper = next_line.upper()
            depth += next_line.count("(") - next_line.count(")")
            if depth == 0 and (
                next_upper.endswith(";")
                or next_upper.startswith(_SPAN_BREAK_PREFIXES)
                or any(marker in next_upper for marker in _ASSIGNMENT_MARKERS)
            ):
                break
            end_idx = j

        for k in range(i, end_idx + 1):
            marked[k] = True
    return marked


def normalize_trigger_body(body: str) -> str:
    """Add the statement terminators a catalog-stored trigger body is missing.

    A ``;`` is appended to lines that start a DML/assignment/``NULL``/``RAISE``
    statement at parenthesis depth zero, to the last line of a multi-line
    ``SELECT ... INTO`` statement, and to a final bare ``END``. Control-flow
    lines are never terminated.
    """
    lines = body.splitlines()
    in_select_into = _mark_select_into_spans(lines)
    result: List[str] = []
    depth = 0

    for idx, line in enumerate(lines):
        trimmed = line.rstrip()
        upper = trimmed.lstrip().upper()
        if not upper:
            result.append(trimmed)
            continue

        prev_depth = depth
        depth += trimmed.count("(") - trimmed.count(")")

        last_of_span = in_select_into[idx] and (
            idx + 1 >= len(lines) or not in_select_into[idx + 1]
        )

        needs_terminator = (
            not upper.endswith(";")
            and prev_depth == 0
            and depth == 0
            and (not in_select_into[idx] or last_of_span)
            and not upper.startswith(_NO_TERMINATOR_PREFIXES)
            and (
                upper.startswith(_STATEMENT_PREFIXES)
                or any(marker in upper for marker in _ASSIGNMENT_MARKERS)
                or last_of_span
            )
        )
        result.append(trimmed + ";" if needs_terminator else trimmed)

    if result and result[-1].strip().upper() == "END" and not result[-1].endswith(";"):
        result[-1] += ";"

    return "\n".join(result)


def apply_trigger_terminator(statement: str, terminator: TriggerTerminator) -> str:
    if statement.rstrip().endswith("/"):
        return statement
    if not statement.rstrip().endswith(";"):
        statement += ";"
    if terminator != TriggerTerminator.STATEMENT:
        if not statement.endswith("\n"):
            statement += "\n"
        statement += "/"
    return statement
