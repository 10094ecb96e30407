"""
Bulk upsert helper.

Writes a batch of rows with INSERT ... ON CONFLICT (<primary key>) DO UPDATE,
overwriting every supplied non-key column. Rows sharing a primary key are
collapsed first (first occurrence wins); PostgreSQL rejects a statement that
touches the same row twice.

Supported dialects: PostgreSQL (production) and SQLite (dev/test).

Usage:
    upsert_rows(session, Workflow, [{"tenant_id": "acme", ...}, ...])
"""

from __future__ import annotations

import logging

from sqlalchemy.dialects import postgresql, sqlite

from flowconfig.utils.helpers import chunked

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

BATCH_SIZE = 500


def primary_key_of(model, row: dict) -> tuple:
    return tuple(row[col.name] for col in model.__table__.primary_key.columns)


def dedupe_rows(model, rows) -> list[dict]:
    """Drop rows whose primary key was already seen, preserving order."""
    seen: dict[tuple, dict] = {}
    for row in rows:
        seen.setdefault(primary_key_of(model, row), row)
    return list(seen.values())


def upsert_rows(session, model, rows) -> int:
    """Insert or overwrite ``rows`` of ``model`` inside the caller's transaction.

    Args:
        session: Session whose transaction the statements join. Never committed here.
        model:   Mapped class; its primary key is the conflict target.
        rows:    Dicts keyed by column name. All rows must carry the same keys.

    Returns:
        Number of distinct rows written.
    """
    rows = dedupe_rows(model, rows)
    if not rows:
        return 0

    dialect = session.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise RuntimeError(f"Bulk upsert is not supported for dialect {dialect!r}")

    table = model.__table__
    pk_names = [col.name for col in table.primary_key.columns]
    update_cols = [name for name in rows[0] if name not in pk_names]

    for batch in chunked(rows, BATCH_SIZE):
        stmt = insert(table).values(batch)
        if update_cols:
            stmt = stmt.on_conflict_do_update(
                index_elements=pk_names,
                set_={name: stmt.excluded[name] for name in update_cols},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=pk_names)
        session.execute(stmt)

    logger.debug("Upserted %d %s rows", len(rows), table.name)
    return len(rows)
