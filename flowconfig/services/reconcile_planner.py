"""
Set-difference planning between desired and persisted configuration.

The planner decides which work item type maps disappear and which work item
types lose their last map. Everything desired is upserted unconditionally,
so only removals need planning.

Shared-type rule: a work item type may be mapped into many workflow/project
combinations, across datasources. It is orphaned only when *every* live map
that references it, anywhere in the tenant, is being removed, and the desired
set does not keep it.

The planning functions are pure; ``load_live_maps`` is the only database read.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import NamedTuple

from sqlalchemy import select

from flowconfig.models import db
from flowconfig.models.workflow import WorkItemTypeMap


class MapKey(NamedTuple):
    """Compound key of a WorkItemTypeMap row."""

    tenant_id: str
    datasource_id: str
    workflow_id: str
    work_item_type_id: str
    datasource_work_item_id: str
    project_id: str

    @property
    def type_project_pair(self) -> tuple[str, str]:
        return (self.work_item_type_id, self.project_id)


@dataclass(frozen=True)
class RemovalPlan:
    maps_to_remove: tuple[MapKey, ...]
    orphaned_type_ids: frozenset[str]

    @property
    def is_empty(self) -> bool:
        return not self.maps_to_remove and not self.orphaned_type_ids


def load_live_maps(tenant_id: str, datasource_id: str | None = None, *, session=None) -> list[MapKey]:
    """Non-archived map keys of a tenant, optionally narrowed to one datasource."""
    session = session or db.session
    stmt = select(*(getattr(WorkItemTypeMap, name) for name in MapKey._fields)).where(
        WorkItemTypeMap.tenant_id == tenant_id,
        WorkItemTypeMap.archived.is_(False),
    )
    if datasource_id is not None:
        stmt = stmt.where(WorkItemTypeMap.datasource_id == datasource_id)
    return [MapKey(*row) for row in session.execute(stmt)]


def maps_missing_from(desired_pairs, persisted_maps) -> list[MapKey]:
    """Persisted maps whose (work item type, project) pair is no longer desired."""
    desired_pairs = set(desired_pairs)
    return [m for m in dict.fromkeys(persisted_maps) if m.type_project_pair not in desired_pairs]


def orphaned_work_item_type_ids(maps_to_remove, tenant_maps, keep_type_ids=()) -> frozenset[str]:
    """Type ids whose every live tenant map is in ``maps_to_remove``.

    Args:
        maps_to_remove: Map keys scheduled for removal.
        tenant_maps:    All live map keys of the tenant, every datasource.
        keep_type_ids:  Type ids the desired configuration still declares.
    """
    removing = set(maps_to_remove)
    by_type: dict[str, list[MapKey]] = defaultdict(list)
    for m in tenant_maps:
        by_type[m.work_item_type_id].append(m)
    for m in removing:
        by_type.setdefault(m.work_item_type_id, [m])

    keep = set(keep_type_ids)
    return frozenset(
        type_id
        for type_id, maps in by_type.items()
        if type_id not in keep
        and all(m in removing for m in maps)
    )


def plan_removals(desired_pairs, persisted_maps, tenant_maps, keep_type_ids=()) -> RemovalPlan:
    """Partition persisted configuration into what stays and what goes.

    Args:
        desired_pairs:  (work_item_type_id, project_id) pairs in the desired set.
        persisted_maps: Live map keys of the submitting tenant + datasource.
        tenant_maps:    Live map keys of the whole tenant.
        keep_type_ids:  Work item type ids present in the desired set.
    """
    maps_to_remove = maps_missing_from(desired_pairs, persisted_maps)
    return RemovalPlan(
        maps_to_remove=tuple(maps_to_remove),
        orphaned_type_ids=orphaned_work_item_type_ids(maps_to_remove, tenant_maps, keep_type_ids),
    )
