"""
Helpers turning descriptor SQL fragments into SQLAlchemy constructs.

Descriptors carry raw fragments: bare field names that need the table
alias, and filters written with ``?`` placeholders. These helpers keep
that translation in one place so the model layer only composes statements.
"""
from __future__ import annotations

from typing import Any, Callable, Iterable, List, Sequence

from sqlalchemy import String, bindparam, literal, literal_column, text
from sqlalchemy.sql.elements import ColumnElement, TextClause

Quoter = Callable[[str], str]


def is_qualified(field: str) -> bool:
    """True when the field already names a table or is an expression."""
    return "." in field or "(" in field


def field_add_alias(field: str, alias: str, quote: Quoter) -> str:
    if not field:
        return ""
    if is_qualified(field):
        return field
    return f"{quote(alias)}.{field.strip()}"


def fields_add_alias(fields: Iterable[str], alias: str, quote: Quoter) -> List[str]:
    return [field_add_alias(f, alias, quote) for f in fields if f and f.strip()]


def _placeholder_positions(clause: str) -> List[int]:
    positions = []
    in_quote = False
    for i, ch in enumerate(clause):
        if ch == "'":
            in_quote = not in_quote
        elif ch == "?" and not in_quote:
            positions.append(i)
    return positions


def placeholder_count(clause: str) -> int:
    """Number of ``?`` placeholders outside quoted literals."""
    return len(_placeholder_positions(clause))


def positional_text(clause: str, values: Sequence[Any], prefix: str) -> TextClause:
    """Bind ``?`` placeholders in ``clause`` to ``values`` in order.

    List and tuple values use expanding binds so ``field IN ?`` works with
    any number of items.
    """
    positions = _placeholder_positions(clause)
    if len(positions) != len(values):
        raise ValueError(
            f"Clause {clause!r} has {len(positions)} placeholder(s) but {len(values)} value(s) were given"
        )
    if not positions:
        return text(clause)

    parts = []
    params = []
    last = 0
    for n, (pos, value) in enumerate(zip(positions, values)):
        name = f"{prefix}_{n}"
        parts.append(clause[last:pos])
        parts.append(f":{name}")
        last = pos + 1
        if isinstance(value, (list, tuple, set)):
            params.append(bindparam(name, value=list(value), expanding=True))
        else:
            params.append(bindparam(name, value=value))
    parts.append(clause[last:])
    return text("".join(parts)).bindparams(*params)


def concat_fields(fields: Sequence[str], sep: str) -> ColumnElement:
    """Concatenate already-aliased fields with a literal separator.

    Renders ``||`` on SQLite/PostgreSQL and ``concat()`` on MySQL.
    """
    if not fields:
        raise ValueError("concat_fields requires at least one field")
    columns = [literal_column(f, String) for f in fields]
    expr: ColumnElement = columns[0]
    for column in columns[1:]:
        if sep:
            expr = expr + literal(sep, String)
        expr = expr + column
    return expr
