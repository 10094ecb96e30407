"""Tests for the cascading deletion executor.

Coverage:
  1. Removing one map of a shared type deletes only that pair's instance data
  2. Orphaned types are tombstoned together with their workflow scope
  3. Dependency veto raises before anything is deleted
  4. Veto disabled logs the dependents and proceeds
  5. Invariant check rejects an "orphan" that still has a surviving map
  6. Other datasources' work items and snapshots are untouched
  7. Context project-id token match and project removal
"""

from __future__ import annotations

import logging

import pytest
from sqlalchemy import select

from flowconfig.core.exceptions import DependencyConflictError, InvariantViolationError
from flowconfig.models import db
from flowconfig.models.context import Context, ContextWorkItemMap
from flowconfig.models.datasource import Project
from flowconfig.models.query_consumers import SavedFilter
from flowconfig.models.work_item import Snapshot, WorkItem, snapshot_partition_key, state_partition_key
from flowconfig.models.workflow import (
    WorkItemType,
    WorkItemTypeMap,
    Workflow,
    WorkflowEvent,
    WorkflowStep,
)
from flowconfig.services import identity
from flowconfig.services.cascade_delete import (
    delete_contexts,
    delete_projects,
    remove_work_item_types,
)
from flowconfig.services.reconcile_planner import MapKey

TENANT = "acme"
DS = "d1"

BUG = identity.work_item_type_id(TENANT, "Bug")
STORY = identity.work_item_type_id(TENANT, "Story")


# ── Helpers ─────────────────────────────────────────────────────────────────


def _map_key(type_id, project_id, workflow_name="Kanban", datasource_id=DS) -> MapKey:
    return MapKey(
        tenant_id=TENANT,
        datasource_id=datasource_id,
        workflow_id=identity.workflow_id(TENANT, project_id, workflow_name),
        work_item_type_id=type_id,
        datasource_work_item_id="10001",
        project_id=project_id,
    )


def _seed_workflow(project_id, workflow_name, display_names, datasource_id=DS):
    """Workflow + event + two steps + types + one map per type."""
    wf_id = identity.workflow_id(TENANT, project_id, workflow_name)
    scope = {"tenant_id": TENANT, "datasource_id": datasource_id}
    db.session.add(Workflow(**scope, workflow_id=wf_id, workflow_name=workflow_name, project_id=project_id))
    db.session.add(WorkflowEvent(**scope, workflow_id=wf_id, arrival_point_order=0, departure_point_order=1))
    for order, step in enumerate(("To Do", "Done")):
        db.session.add(WorkflowStep(**scope, workflow_id=wf_id, id=str(order), name=step, order=order))
    for name in display_names:
        type_id = identity.work_item_type_id(TENANT, name)
        if WorkItemType.query.filter_by(tenant_id=TENANT, work_item_type_id=type_id).first() is None:
            db.session.add(WorkItemType(tenant_id=TENANT, work_item_type_id=type_id, display_name=name))
        key = _map_key(type_id, project_id, workflow_name, datasource_id)
        db.session.add(WorkItemTypeMap(**key._asdict(), archived=False))
    db.session.commit()


def _seed_work_item(work_item_id, type_id, project_id, datasource_id=DS):
    db.session.add(WorkItem(
        partition_key=state_partition_key(TENANT),
        sort_key=f"{datasource_id}#{work_item_id}",
        work_item_id=work_item_id,
        work_item_type_id=type_id,
        project_id=project_id,
        state="Done",
    ))
    db.session.add(Snapshot(
        partition_key=snapshot_partition_key(TENANT),
        sort_key=f"{work_item_id}#1",
        gs2_partition_key=f"{TENANT}#{datasource_id}#{type_id}",
        work_item_id=work_item_id,
        work_item_type_id=type_id,
        project_id=project_id,
        revision=1,
    ))
    db.session.commit()


def _map_context(context_id, project_id, work_item_ids):
    db.session.add(Context(tenant_id=TENANT, context_id=context_id, datasource_id=DS, project_id=project_id))
    for wid in work_item_ids:
        db.session.add(ContextWorkItemMap(tenant_id=TENANT, context_id=context_id, work_item_id=wid))
    db.session.commit()


def _work_item_ids():
    return set(db.session.execute(select(WorkItem.work_item_id)).scalars())


def _snapshot_ids():
    return set(db.session.execute(select(Snapshot.work_item_id)).scalars())


def _stored_map(key: MapKey) -> WorkItemTypeMap:
    db.session.expire_all()
    return WorkItemTypeMap.query.filter_by(**key._asdict()).one()


def _live(model, **filters):
    db.session.expire_all()
    return model.query_active().filter_by(**filters).all()


@pytest.fixture()
def seeded():
    """bug → p1 & p2 (Kanban), story → p1 (Scrum), plus work items and contexts."""
    _seed_workflow("p1", "Kanban", ["Bug"])
    _seed_workflow("p2", "Kanban", ["Bug"])
    _seed_workflow("p1", "Scrum", ["Story"])
    _seed_work_item("B-1", BUG, "p1")
    _seed_work_item("B-2", BUG, "p2")
    _seed_work_item("S-1", STORY, "p1")
    _seed_work_item("X-2", BUG, "p2", datasource_id="d2")
    _map_context("ctx-both", "p1,p2", ["B-1", "B-2"])


# ── remove_work_item_types ──────────────────────────────────────────────────


class TestSharedTypeRemoval:
    def test_only_removed_pair_loses_instance_data(self, seeded):
        counts = remove_work_item_types([_map_key(BUG, "p2")], set(), TENANT, DS, db.session)
        db.session.commit()

        assert counts == {"work_items": 1, "context_work_item_maps": 1, "snapshots": 1}
        assert _work_item_ids() == {"B-1", "S-1", "X-2"}
        assert _snapshot_ids() == {"B-1", "S-1", "X-2"}
        assert [m.work_item_id for m in _live(ContextWorkItemMap)] == ["B-1"]

    def test_snapshots_of_similarly_named_datasource_survive(self, seeded):
        _seed_work_item("XD-2", BUG, "p2", datasource_id="xd1")

        counts = remove_work_item_types([_map_key(BUG, "p2")], set(), TENANT, DS, db.session)
        db.session.commit()

        assert counts["snapshots"] == 1
        assert _snapshot_ids() == {"B-1", "S-1", "X-2", "XD-2"}
        assert _work_item_ids() == {"B-1", "S-1", "X-2", "XD-2"}

    def test_type_and_sibling_workflow_survive(self, seeded):
        remove_work_item_types([_map_key(BUG, "p2")], set(), TENANT, DS, db.session)
        db.session.commit()

        assert [t.work_item_type_id for t in _live(WorkItemType, work_item_type_id=BUG)] == [BUG]
        p1_map = _stored_map(_map_key(BUG, "p1"))
        p2_map = _stored_map(_map_key(BUG, "p2"))
        assert p1_map.archived is False
        assert p2_map.archived is True
        live_workflows = {w.workflow_id for w in _live(Workflow)}
        assert identity.workflow_id(TENANT, "p2", "Kanban") not in live_workflows
        assert identity.workflow_id(TENANT, "p1", "Kanban") in live_workflows


class TestOrphanRemoval:
    def test_orphaned_type_and_workflow_scope_are_retired(self, seeded):
        scrum = identity.workflow_id(TENANT, "p1", "Scrum")

        remove_work_item_types([_map_key(STORY, "p1", "Scrum")], {STORY}, TENANT, DS, db.session)
        db.session.commit()

        assert _live(WorkItemType, work_item_type_id=STORY) == []
        assert _live(Workflow, workflow_id=scrum) == []
        assert _live(WorkflowEvent, workflow_id=scrum) == []
        assert _live(WorkflowStep, workflow_id=scrum) == []
        assert "S-1" not in _work_item_ids()
        # Bug is untouched
        assert len(_live(WorkItemType, work_item_type_id=BUG)) == 1

    def test_invariant_violation_when_orphan_still_mapped(self, seeded):
        with pytest.raises(InvariantViolationError):
            remove_work_item_types([_map_key(BUG, "p2")], {BUG}, TENANT, DS, db.session)

    def test_empty_removal_is_noop(self, seeded):
        counts = remove_work_item_types([], set(), TENANT, DS, db.session)

        assert counts == {"work_items": 0, "context_work_item_maps": 0, "snapshots": 0}
        assert _work_item_ids() == {"B-1", "B-2", "S-1", "X-2"}


class TestDependencyVeto:
    def _pin_story(self):
        db.session.add(SavedFilter(
            tenant_id=TENANT,
            datasource_id=DS,
            display_name="Story WIP",
            parsed_query="LOWER(\"workItemTypeName\") = 'story'",
        ))
        db.session.commit()

    def test_conflict_raised_before_any_deletion(self, seeded):
        self._pin_story()

        with pytest.raises(DependencyConflictError) as exc_info:
            remove_work_item_types([_map_key(STORY, "p1", "Scrum")], {STORY}, TENANT, DS, db.session)

        assert exc_info.value.dependencies == [
            {"entityName": "Story", "blockingFilters": ["Story WIP"], "blockingRooms": []},
        ]
        db.session.rollback()
        assert "S-1" in _work_item_ids()
        assert len(_live(WorkItemType, work_item_type_id=STORY)) == 1

    def test_veto_disabled_logs_and_proceeds(self, seeded, caplog):
        self._pin_story()

        with caplog.at_level(logging.WARNING, logger="flowconfig.services.cascade_delete"):
            remove_work_item_types(
                [_map_key(STORY, "p1", "Scrum")], {STORY}, TENANT, DS, db.session, veto=False,
            )
        db.session.commit()

        assert "Story" in caplog.text
        assert _live(WorkItemType, work_item_type_id=STORY) == []


# ── Contexts & projects ─────────────────────────────────────────────────────


class TestContextsAndProjects:
    def test_delete_contexts_matches_whole_project_ids(self, seeded):
        _map_context("ctx-p1", "p1", [])
        _map_context("ctx-middle", "p3,p1,p4", [])
        _map_context("ctx-tail", "p3,p1", [])
        _map_context("ctx-p10", "p10", ["S-1"])
        _map_context("ctx-p10-list", "p10,p3", [])

        archived = delete_contexts(["p1"], TENANT, DS, db.session)
        db.session.commit()

        assert sorted(archived) == ["ctx-both", "ctx-middle", "ctx-p1", "ctx-tail"]
        db.session.expire_all()
        survivors = {
            c.context_id for c in Context.query.filter_by(tenant_id=TENANT, archived=False).all()
        }
        assert survivors == {"ctx-p10", "ctx-p10-list"}
        assert [m.context_id for m in _live(ContextWorkItemMap)] == ["ctx-p10"]

    def test_delete_projects_cascades(self, seeded):
        for project_id in ("p1", "p2"):
            db.session.add(Project(tenant_id=TENANT, datasource_id=DS, project_id=project_id))
        db.session.commit()

        delete_projects(["p2"], TENANT, DS, db.session)
        db.session.commit()

        assert [p.project_id for p in _live(Project)] == ["p1"]
        assert _stored_map(_map_key(BUG, "p2")).archived is True
        assert len(_live(WorkItemType, work_item_type_id=BUG)) == 1
        assert _work_item_ids() == {"B-1", "S-1", "X-2"}

    def test_delete_projects_orphans_exclusive_types(self, seeded):
        delete_projects(["p1"], TENANT, DS, db.session)
        db.session.commit()

        assert _live(WorkItemType, work_item_type_id=STORY) == []
        assert len(_live(WorkItemType, work_item_type_id=BUG)) == 1
        assert _work_item_ids() == {"B-2", "X-2"}
