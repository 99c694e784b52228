"""
Atomic insert-or-update helpers built on INSERT ... ON CONFLICT.

Every write that can race with another worker (sightings, derived metrics,
deduplicated reviews, master rows) goes through here so that the conflict is
resolved by the database in a single statement, never by read-then-write.

Supports PostgreSQL (production) and SQLite (tests/local), both of which
implement ON CONFLICT with the same SQLAlchemy construct.

Usage:
    from db.upsert import insert_or_increment

    insert_or_increment(
        db.session, KeywordAdSighting,
        {"app_slug": "formful", "keyword_id": 3, "seen_date": day,
         "first_seen_run_id": run_id, "last_seen_run_id": run_id},
        increment="times_seen_in_day",
        overwrite=["last_seen_run_id"],
    )
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Sequence

from sqlalchemy.dialects import postgresql, sqlite

log = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _insert_for(session, model):
    dialect = session.get_bind().dialect.name
    try:
        insert = _INSERT_BY_DIALECT[dialect]
    except KeyError:
        raise NotImplementedError(f"ON CONFLICT upsert not supported for dialect {dialect!r}")
    return insert(model.__table__)


def _conflict_target(model, index_elements: Optional[Sequence[str]]) -> list:
    target = index_elements or getattr(model, "UNIQUE_KEY", None)
    if not target:
        raise ValueError(f"{model.__name__} has no UNIQUE_KEY; pass index_elements")
    return list(target)


def insert_or_increment(
    session,
    model,
    values: Dict[str, Any],
    increment: str,
    overwrite: Iterable[str] = (),
    index_elements: Optional[Sequence[str]] = None,
) -> None:
    """
    Insert a row, or on unique-key conflict add 1 to `increment` and copy the
    `overwrite` columns from the incoming row. Columns not named are untouched.
    """
    stmt = _insert_for(session, model).values(**values)
    table = model.__table__
    set_ = {increment: table.c[increment] + 1}
    for column in overwrite:
        set_[column] = stmt.excluded[column]

    stmt = stmt.on_conflict_do_update(
        index_elements=_conflict_target(model, index_elements),
        set_=set_,
    )
    session.execute(stmt)


def upsert(
    session,
    model,
    values: Dict[str, Any],
    update: Iterable[str],
    index_elements: Optional[Sequence[str]] = None,
) -> None:
    """Insert a row, or on conflict overwrite the `update` columns."""
    stmt = _insert_for(session, model).values(**values)
    set_ = {column: stmt.excluded[column] for column in update}
    stmt = stmt.on_conflict_do_update(
        index_elements=_conflict_target(model, index_elements),
        set_=set_,
    )
    session.execute(stmt)


def insert_ignore(
    session,
    model,
    values: Dict[str, Any],
    index_elements: Optional[Sequence[str]] = None,
) -> bool:
    """
    Insert a row unless it conflicts on the unique key.

    Returns:
        True if a new row was written.
    """
    stmt = _insert_for(session, model).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=_conflict_target(model, index_elements))
    result = session.execute(stmt)
    return (result.rowcount or 0) > 0
