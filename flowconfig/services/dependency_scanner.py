"""
Dependency scan over stored queries.

Before a work item type (or step) is removed, saved filters and review rooms
of the same tenant + datasource are searched for a predicate that pins that
name. The stored ``parsed_query`` text looks like::

    LOWER("workItemTypeName") = 'bug' AND ...

A row counts as a dependent when its lowercased parsed query contains the
field name followed, anywhere later, by ``= '<name lowercased>'``. The match
is textual and loose: a name that appears in an unrelated predicate after
the field name is reported too.

The scan is read-only and runs on the caller's session, inside the same
transaction as the cascade that acts on its result.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from sqlalchemy import func, select

from flowconfig.models import db
from flowconfig.models.query_consumers import ReviewRoom, SavedFilter
from flowconfig.utils.helpers import LIKE_ESCAPE, escape_like

logger = logging.getLogger(__name__)

WORK_ITEM_TYPE_NAME_FIELD = "workItemTypeName"

SOURCE_FILTER = "filter"
SOURCE_ROOM = "room"


class Dependent(NamedTuple):
    source: str        # SOURCE_FILTER | SOURCE_ROOM
    display_name: str


def predicate_pattern(name: str, field: str = WORK_ITEM_TYPE_NAME_FIELD) -> str:
    """LIKE pattern for ``<field> ... = '<name>'`` against lowercased query text."""
    return f"%{escape_like(field.lower())}%= '{escape_like(name.lower())}'%"


def _filter_names(session, pattern, tenant_id, datasource_id) -> list[str]:
    stmt = (
        select(SavedFilter.display_name)
        .where(
            SavedFilter.tenant_id == tenant_id,
            SavedFilter.datasource_id == datasource_id,
            SavedFilter.active_clause(),
            func.lower(SavedFilter.parsed_query).like(pattern, escape=LIKE_ESCAPE),
        )
        .order_by(SavedFilter.display_name)
    )
    return list(session.execute(stmt).scalars())


def _room_names(session, pattern, tenant_id, datasource_id) -> list[str]:
    stmt = (
        select(ReviewRoom.room_name)
        .where(
            ReviewRoom.tenant_id == tenant_id,
            ReviewRoom.datasource_id == datasource_id,
            func.lower(ReviewRoom.parsed_query).like(pattern, escape=LIKE_ESCAPE),
        )
        .order_by(ReviewRoom.room_name)
    )
    return list(session.execute(stmt).scalars())


def find_dependents(
    candidate_names,
    datasource_id: str,
    tenant_id: str,
    *,
    field: str = WORK_ITEM_TYPE_NAME_FIELD,
    session=None,
) -> dict[str, list[Dependent]]:
    """Report which candidate names are still referenced by filters or rooms.

    Args:
        candidate_names: Display names about to be removed.
        datasource_id:   Datasource whose filters/rooms are searched.
        tenant_id:       Owning tenant.
        field:           Query field the name must be compared against.
        session:         Session to read through (defaults to ``db.session``).

    Returns:
        ``{name: [Dependent, ...]}`` for names with at least one dependent.
        A name absent from the result is safe to delete.
    """
    session = session or db.session
    found: dict[str, list[Dependent]] = {}
    for name in dict.fromkeys(candidate_names):
        pattern = predicate_pattern(name, field)
        dependents = [
            Dependent(SOURCE_FILTER, n) for n in _filter_names(session, pattern, tenant_id, datasource_id)
        ] + [
            Dependent(SOURCE_ROOM, n) for n in _room_names(session, pattern, tenant_id, datasource_id)
        ]
        if dependents:
            found[name] = dependents

    if found:
        logger.info(
            "Dependents found for %d of %d candidate names",
            len(found), len(candidate_names),
            extra={"tenant_id": tenant_id, "datasource_id": datasource_id},
        )
    return found


def to_conflict_report(dependents: dict[str, list[Dependent]]) -> list[dict]:
    """Shape scanner output as ``[{entityName, blockingFilters, blockingRooms}]``."""
    return [
        {
            "entityName": name,
            "blockingFilters": [d.display_name for d in deps if d.source == SOURCE_FILTER],
            "blockingRooms": [d.display_name for d in deps if d.source == SOURCE_ROOM],
        }
        for name, deps in dependents.items()
    ]
