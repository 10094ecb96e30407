"""
Cascading removal of work tracking configuration.

Every function here runs on a caller-owned session and never commits or
rolls back: the reconciliation service owns the transaction so that removal
and the upsert of the desired state land together or not at all.

Order for a set of work item type maps (remove_work_item_types):

  1. invariant check   — every orphaned type really has no surviving map
  2. dependency veto   — orphaned type names still used by filters/rooms abort
  3. work items        — collect ids, hard-delete ``states`` rows for the pairs
  4. context maps      — tombstone maps of the deleted work items
  5. snapshots         — hard-delete history rows for the pairs
  6. work item types   — tombstone the orphaned types
  7. workflow scope    — archive maps, tombstone events, steps and workflows

Instance data goes before the type/workflow rows that legitimize it, so no
reader can observe a work item whose type has vanished.

Project removal (delete_projects) archives the projects' contexts first and
then feeds the projects' maps through the same cascade.
"""

from __future__ import annotations

import logging

from sqlalchemy import and_, delete, or_, select, update

from flowconfig.core.exceptions import DependencyConflictError, InvariantViolationError
from flowconfig.models import db
from flowconfig.models.context import Context, ContextWorkItemMap
from flowconfig.models.datasource import Project
from flowconfig.models.work_item import Snapshot, WorkItem, snapshot_partition_key, state_partition_key
from flowconfig.models.workflow import (
    WorkItemType,
    WorkItemTypeMap,
    Workflow,
    WorkflowEvent,
    WorkflowStep,
)
from flowconfig.services.dependency_scanner import find_dependents, to_conflict_report
from flowconfig.services.reconcile_planner import MapKey, load_live_maps, orphaned_work_item_type_ids
from flowconfig.utils.helpers import LIKE_ESCAPE, chunked, escape_like

logger = logging.getLogger(__name__)

# Pairs / ids per statement; keeps OR-chains and IN-lists within driver limits
PAIR_BATCH = 200
ID_BATCH = 500

_BULK = {"synchronize_session": False}
_PROJECT_DELIMITER = ","


def _pair_clause(model, pairs):
    return or_(*(
        and_(model.work_item_type_id == type_id, model.project_id == project_id)
        for type_id, project_id in pairs
    ))


def _scope_extra(tenant_id, datasource_id) -> dict:
    return {"tenant_id": tenant_id, "datasource_id": datasource_id}


# ── Instance data ────────────────────────────────────────────────────────


def delete_work_items(maps_to_remove, tenant_id: str, datasource_id: str, session) -> dict:
    """Hard-delete work items and snapshots of the removed (type, project) pairs.

    Context maps of the deleted work items are tombstoned in between.

    Returns:
        Counts: {"work_items", "context_work_item_maps", "snapshots"}.
    """
    pairs = sorted({m.type_project_pair for m in maps_to_remove})
    counts = {"work_items": 0, "context_work_item_maps": 0, "snapshots": 0}
    if not pairs:
        return counts

    state_scope = and_(
        WorkItem.partition_key == state_partition_key(tenant_id),
        WorkItem.sort_key.like(f"{escape_like(datasource_id)}#%", escape=LIKE_ESCAPE),
        WorkItem.deleted_at.is_(None),
    )
    work_item_ids: set[str] = set()
    for batch in chunked(pairs, PAIR_BATCH):
        where = and_(state_scope, _pair_clause(WorkItem, batch))
        work_item_ids.update(session.execute(select(WorkItem.work_item_id).where(where)).scalars())
        result = session.execute(delete(WorkItem).where(where).execution_options(**_BULK))
        counts["work_items"] += result.rowcount or 0

    for batch in chunked(sorted(work_item_ids), ID_BATCH):
        result = session.execute(
            update(ContextWorkItemMap)
            .where(
                ContextWorkItemMap.tenant_id == tenant_id,
                ContextWorkItemMap.work_item_id.in_(batch),
                ContextWorkItemMap.active_clause(),
            )
            .values(**ContextWorkItemMap.tombstone_values())
            .execution_options(**_BULK)
        )
        counts["context_work_item_maps"] += result.rowcount or 0

    snapshot_scope = and_(
        Snapshot.partition_key == snapshot_partition_key(tenant_id),
        Snapshot.gs2_partition_key.like(
            f"{escape_like(tenant_id)}#{escape_like(datasource_id)}#%", escape=LIKE_ESCAPE,
        ),
    )
    for batch in chunked(pairs, PAIR_BATCH):
        result = session.execute(
            delete(Snapshot)
            .where(snapshot_scope, _pair_clause(Snapshot, batch))
            .execution_options(**_BULK)
        )
        counts["snapshots"] += result.rowcount or 0

    return counts


# ── Work item types & workflows ──────────────────────────────────────────


def _assert_fully_unmapped(session, tenant_id, maps_to_remove, orphaned_type_ids) -> None:
    removing = set(maps_to_remove)
    for batch in chunked(sorted(orphaned_type_ids), ID_BATCH):
        stmt = select(*(getattr(WorkItemTypeMap, name) for name in MapKey._fields)).where(
            WorkItemTypeMap.tenant_id == tenant_id,
            WorkItemTypeMap.archived.is_(False),
            WorkItemTypeMap.work_item_type_id.in_(batch),
        )
        survivors = [key for key in map(MapKey._make, session.execute(stmt)) if key not in removing]
        if survivors:
            raise InvariantViolationError(
                f"Work item type {survivors[0].work_item_type_id!r} scheduled as orphaned "
                f"but still mapped to project {survivors[0].project_id!r}"
            )


def _display_names(session, tenant_id, type_ids) -> list[str]:
    names: list[str] = []
    for batch in chunked(sorted(type_ids), ID_BATCH):
        names.extend(session.execute(
            select(WorkItemType.display_name)
            .where(
                WorkItemType.tenant_id == tenant_id,
                WorkItemType.work_item_type_id.in_(batch),
                WorkItemType.active_clause(),
            )
            .order_by(WorkItemType.display_name)
        ).scalars())
    return names


def _check_dependencies(session, tenant_id, datasource_id, orphaned_type_ids, veto: bool) -> None:
    names = _display_names(session, tenant_id, orphaned_type_ids)
    if not names:
        return
    dependents = find_dependents(names, datasource_id, tenant_id, session=session)
    if not dependents:
        return
    report = to_conflict_report(dependents)
    if veto:
        raise DependencyConflictError(report)
    logger.warning(
        "Removing work item types still referenced by filters/rooms: %s",
        ", ".join(d["entityName"] for d in report),
        extra=_scope_extra(tenant_id, datasource_id),
    )


def _retire_workflow_scope(session, tenant_id, datasource_id, workflow_ids) -> None:
    for batch in chunked(sorted(workflow_ids), ID_BATCH):
        session.execute(
            update(WorkItemTypeMap)
            .where(
                WorkItemTypeMap.scope_clause(tenant_id, datasource_id),
                WorkItemTypeMap.workflow_id.in_(batch),
            )
            .values(archived=True)
            .execution_options(**_BULK)
        )
        for model in (WorkflowEvent, WorkflowStep, Workflow):
            session.execute(
                update(model)
                .where(
                    model.scope_clause(tenant_id, datasource_id),
                    model.workflow_id.in_(batch),
                    model.active_clause(),
                )
                .values(**model.tombstone_values())
                .execution_options(**_BULK)
            )


def remove_work_item_types(
    maps_to_remove,
    orphaned_type_ids,
    tenant_id: str,
    datasource_id: str,
    session=None,
    *,
    veto: bool = True,
) -> dict:
    """Remove work item type maps and everything that hangs off them.

    Args:
        maps_to_remove:    MapKeys planned for removal (this tenant + datasource).
        orphaned_type_ids: Type ids with no surviving map once these are gone.
        tenant_id:         Owning tenant.
        datasource_id:     Datasource the maps belong to.
        session:           Caller-owned session (defaults to ``db.session``).
        veto:              Abort when orphaned types still have dependents.
                           When False the dependents are only logged.

    Returns:
        Counts of removed instance rows (see delete_work_items).

    Raises:
        DependencyConflictError: an orphaned type is still referenced.
        InvariantViolationError: an "orphaned" type still has a surviving map.
    """
    session = session or db.session
    maps_to_remove = list(dict.fromkeys(maps_to_remove))
    orphaned_type_ids = frozenset(orphaned_type_ids)
    if not maps_to_remove and not orphaned_type_ids:
        return {"work_items": 0, "context_work_item_maps": 0, "snapshots": 0}

    _assert_fully_unmapped(session, tenant_id, maps_to_remove, orphaned_type_ids)
    _check_dependencies(session, tenant_id, datasource_id, orphaned_type_ids, veto)

    counts = delete_work_items(maps_to_remove, tenant_id, datasource_id, session)

    for batch in chunked(sorted(orphaned_type_ids), ID_BATCH):
        session.execute(
            update(WorkItemType)
            .where(
                WorkItemType.tenant_id == tenant_id,
                WorkItemType.work_item_type_id.in_(batch),
                WorkItemType.active_clause(),
            )
            .values(**WorkItemType.tombstone_values())
            .execution_options(**_BULK)
        )

    _retire_workflow_scope(session, tenant_id, datasource_id, {m.workflow_id for m in maps_to_remove})

    logger.info(
        "Removed %d work item type maps, orphaned %d types, deleted %d work items and %d snapshots",
        len(maps_to_remove), len(orphaned_type_ids), counts["work_items"], counts["snapshots"],
        extra={
            **_scope_extra(tenant_id, datasource_id),
            "maps_removed": len(maps_to_remove),
            "types_orphaned": len(orphaned_type_ids),
        },
    )
    return counts


# ── Contexts & projects ──────────────────────────────────────────────────


def _project_token_clause(project_id: str):
    token = escape_like(project_id)
    sep = _PROJECT_DELIMITER
    return or_(
        Context.project_id == project_id,
        Context.project_id.like(f"{token}{sep}%", escape=LIKE_ESCAPE),
        Context.project_id.like(f"%{sep}{token}", escape=LIKE_ESCAPE),
        Context.project_id.like(f"%{sep}{token}{sep}%", escape=LIKE_ESCAPE),
    )


def delete_contexts(project_ids, tenant_id: str, datasource_id: str, session=None) -> list[str]:
    """Archive contexts tied to ``project_ids`` and tombstone their work item maps.

    A context's project_id may list several comma-joined projects, so each id
    is matched as a whole token of that list.

    Returns:
        Ids of the archived contexts.
    """
    session = session or db.session
    project_ids = sorted(set(project_ids))
    if not project_ids:
        return []

    project_match = or_(*(_project_token_clause(pid) for pid in project_ids))
    context_ids = list(session.execute(
        select(Context.context_id).where(
            Context.tenant_id == tenant_id,
            Context.datasource_id == datasource_id,
            Context.archived.is_(False),
            project_match,
        )
    ).scalars())

    for batch in chunked(context_ids, ID_BATCH):
        session.execute(
            update(ContextWorkItemMap)
            .where(
                ContextWorkItemMap.tenant_id == tenant_id,
                ContextWorkItemMap.context_id.in_(batch),
                ContextWorkItemMap.active_clause(),
            )
            .values(**ContextWorkItemMap.tombstone_values())
            .execution_options(**_BULK)
        )
        session.execute(
            update(Context)
            .where(Context.tenant_id == tenant_id, Context.context_id.in_(batch))
            .values(archived=True)
            .execution_options(**_BULK)
        )

    if context_ids:
        logger.info("Archived %d contexts", len(context_ids), extra=_scope_extra(tenant_id, datasource_id))
    return context_ids


def delete_projects(
    project_ids,
    tenant_id: str,
    datasource_id: str,
    session=None,
    *,
    veto: bool = True,
) -> dict:
    """Remove whole projects: contexts, then their maps through the type cascade,
    then the project rows themselves.

    Raises:
        DependencyConflictError: a type orphaned by the removal is still referenced.
    """
    session = session or db.session
    project_ids = sorted(set(project_ids))
    if not project_ids:
        return {"work_items": 0, "context_work_item_maps": 0, "snapshots": 0}

    delete_contexts(project_ids, tenant_id, datasource_id, session)

    owned = set(project_ids)
    maps_to_remove = [
        m for m in load_live_maps(tenant_id, datasource_id, session=session) if m.project_id in owned
    ]
    orphaned = orphaned_work_item_type_ids(maps_to_remove, load_live_maps(tenant_id, session=session))
    counts = remove_work_item_types(
        maps_to_remove, orphaned, tenant_id, datasource_id, session, veto=veto,
    )

    for batch in chunked(project_ids, ID_BATCH):
        session.execute(
            update(Project)
            .where(
                Project.scope_clause(tenant_id, datasource_id),
                Project.project_id.in_(batch),
                Project.active_clause(),
            )
            .values(**Project.tombstone_values())
            .execution_options(**_BULK)
        )

    logger.info("Removed %d projects", len(project_ids), extra=_scope_extra(tenant_id, datasource_id))
    return counts
