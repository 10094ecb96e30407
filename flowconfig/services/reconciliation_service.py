"""
Reconciliation service — applies a tenant's desired configuration.

One call = one transaction:

    validate payload → plan removals → cascade removals → bulk upsert → commit
    → (after commit) re-ingest trigger

Rules:
  - The payload is validated before any database work (ValidationError).
  - A dependency conflict rolls everything back and is returned as a
    result, not raised: nothing changes when a removal is blocked.
  - Any other failure rolls everything back and propagates.
  - The re-ingest trigger is a post-commit side effect; its failure is
    logged and never undoes the committed configuration.
  - No locking: two concurrent reconciles of the same datasource race at
    the database, last writer wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError

from flowconfig.core.exceptions import DependencyConflictError, NotFoundError
from flowconfig.models import db
from flowconfig.models.datasource import Datasource, Project
from flowconfig.models.workflow import (
    WorkItemType,
    WorkItemTypeMap,
    Workflow,
    WorkflowEvent,
    WorkflowStep,
)
from flowconfig.services.cascade_delete import delete_projects, remove_work_item_types
from flowconfig.services.desired_config import parse_project_payload, parse_workflow_payload
from flowconfig.services.helpers.bulk_upsert import upsert_rows
from flowconfig.services.reconcile_planner import load_live_maps, plan_removals
from flowconfig.services.reingest import kick_off_reingest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Exactly one of ``applied`` / ``conflict`` is set."""

    applied: dict | None = None
    conflict: list[dict] | None = None
    reingest_triggered: bool = False

    @property
    def is_conflict(self) -> bool:
        return self.conflict is not None

    def to_dict(self) -> dict:
        if self.is_conflict:
            return {"dependencies": self.conflict}
        return {**self.applied, "reingest_triggered": self.reingest_triggered}


def _scope_extra(tenant_id, datasource_id, **kw) -> dict:
    return {"tenant_id": tenant_id, "datasource_id": datasource_id, **kw}


def _veto_enabled(veto: bool | None) -> bool:
    if veto is not None:
        return veto
    return bool(current_app.config.get("DEPENDENCY_VETO_ENABLED", True))


def _timeout_ms(timeout_ms: int | None) -> int | None:
    if timeout_ms is not None:
        return timeout_ms
    return current_app.config.get("RECONCILE_STATEMENT_TIMEOUT_MS")


def _apply_statement_timeout(session, timeout_ms: int | None) -> None:
    """Transaction-local statement timeout. PostgreSQL only; ignored elsewhere."""
    if not timeout_ms:
        return
    if session.get_bind().dialect.name != "postgresql":
        return
    session.execute(
        text("SELECT set_config('statement_timeout', :ms, true)"),
        {"ms": str(int(timeout_ms))},
    )


# ── Lookups & read views ─────────────────────────────────────────────────


def require_datasource(tenant_id: str, datasource_id: str, session=None) -> Datasource:
    """Return the active datasource or raise NotFoundError."""
    session = session or db.session
    datasource = session.execute(
        select(Datasource).where(
            Datasource.tenant_id == tenant_id,
            Datasource.datasource_id == datasource_id,
            Datasource.active_clause(),
        )
    ).scalar_one_or_none()
    if datasource is None:
        raise NotFoundError(resource="Datasource", resource_id=datasource_id, tenant_id=tenant_id)
    return datasource


def get_workflow_config(tenant_id: str, datasource_id: str, session=None) -> list[dict]:
    """Live configuration of a datasource, one entry per work item type map.

    Each entry merges the map with its work item type, its workflow, the
    workflow's boundary events and its steps ordered by position.
    """
    session = session or db.session

    def rows(stmt):
        return session.execute(stmt.execution_options(populate_existing=True)).scalars().all()

    maps = rows(
        select(WorkItemTypeMap)
        .where(
            WorkItemTypeMap.scope_clause(tenant_id, datasource_id),
            WorkItemTypeMap.archived.is_(False),
        )
        .order_by(WorkItemTypeMap.project_id, WorkItemTypeMap.workflow_id, WorkItemTypeMap.work_item_type_id)
    )
    if not maps:
        return []

    workflows = {
        w.workflow_id: w
        for w in rows(select(Workflow).where(Workflow.scope_clause(tenant_id, datasource_id), Workflow.active_clause()))
    }
    events = {
        e.workflow_id: e
        for e in rows(
            select(WorkflowEvent).where(WorkflowEvent.scope_clause(tenant_id, datasource_id), WorkflowEvent.active_clause())
        )
    }
    steps: dict[str, list[WorkflowStep]] = {}
    for step in rows(
        select(WorkflowStep)
        .where(WorkflowStep.scope_clause(tenant_id, datasource_id), WorkflowStep.active_clause())
        .order_by(WorkflowStep.order)
    ):
        steps.setdefault(step.workflow_id, []).append(step)
    types = {
        t.work_item_type_id: t
        for t in rows(
            select(WorkItemType).where(
                WorkItemType.tenant_id == tenant_id,
                WorkItemType.work_item_type_id.in_(sorted({m.work_item_type_id for m in maps})),
                WorkItemType.active_clause(),
            )
        )
    }

    view = []
    for m in maps:
        wit = types.get(m.work_item_type_id)
        workflow = workflows.get(m.workflow_id)
        event = events.get(m.workflow_id)
        view.append({
            **m.to_dict(),
            "display_name": wit.display_name if wit else None,
            "level": wit.level if wit else None,
            "service_level_expectation_in_days": (
                m.service_level_expectation_in_days
                if m.service_level_expectation_in_days is not None
                else (wit.service_level_expectation_in_days if wit else None)
            ),
            "workflow_name": workflow.workflow_name if workflow else None,
            "arrival_point_order": event.arrival_point_order if event else None,
            "commitment_point_order": event.commitment_point_order if event else None,
            "departure_point_order": event.departure_point_order if event else None,
            "steps": [s.to_dict() for s in steps.get(m.workflow_id, [])],
        })
    return view


def list_projects(tenant_id: str, datasource_id: str, session=None) -> list[dict]:
    session = session or db.session
    projects = session.execute(
        select(Project)
        .where(Project.scope_clause(tenant_id, datasource_id), Project.active_clause())
        .order_by(Project.project_id)
        .execution_options(populate_existing=True)
    ).scalars()
    return [p.to_dict() for p in projects]


# ── Transaction driver ───────────────────────────────────────────────────


def _trigger_reingest(reingest, tenant_id, datasource_id, session) -> bool:
    if reingest is None:
        return False
    try:
        return bool(reingest(tenant_id, datasource_id, session=session))
    except SQLAlchemyError:
        session.rollback()
        logger.exception(
            "Re-ingest trigger failed after commit",
            extra=_scope_extra(tenant_id, datasource_id),
        )
        return False


def _run_in_transaction(label, tenant_id, datasource_id, apply, *, session, reingest, timeout_ms) -> ReconcileResult:
    try:
        _apply_statement_timeout(session, timeout_ms)
        applied = apply()
        session.commit()
    except DependencyConflictError as exc:
        session.rollback()
        logger.info(
            "%s blocked by dependents: %s",
            label, ", ".join(d["entityName"] for d in exc.dependencies),
            extra=_scope_extra(tenant_id, datasource_id, outcome="conflict"),
        )
        return ReconcileResult(conflict=exc.dependencies)
    except Exception:
        session.rollback()
        logger.exception(
            "%s failed, transaction rolled back", label,
            extra=_scope_extra(tenant_id, datasource_id, outcome="error"),
        )
        raise

    logger.info("%s applied", label, extra=_scope_extra(tenant_id, datasource_id, outcome="applied"))
    return ReconcileResult(
        applied=applied,
        reingest_triggered=_trigger_reingest(reingest, tenant_id, datasource_id, session),
    )


# ── Workflows ────────────────────────────────────────────────────────────


def reconcile_workflows(
    tenant_id: str,
    datasource_id: str,
    payload,
    *,
    session=None,
    reingest=kick_off_reingest,
    veto: bool | None = None,
    timeout_ms: int | None = None,
) -> ReconcileResult:
    """Make the persisted workflow configuration of a datasource match ``payload``.

    Args:
        tenant_id:     Owning tenant.
        datasource_id: Datasource the payload was extracted from.
        payload:       List of work item type items (see desired_config).
        session:       Session owning the transaction (defaults to ``db.session``).
        reingest:      Post-commit trigger ``f(tenant, datasource, session=)``;
                       None disables it.
        veto:          Block removals with dependents. Defaults to
                       ``DEPENDENCY_VETO_ENABLED``.
        timeout_ms:    Statement timeout for the transaction. Defaults to
                       ``RECONCILE_STATEMENT_TIMEOUT_MS``.

    Returns:
        ReconcileResult with the applied configuration or the conflict report.

    Raises:
        ValidationError: malformed payload; nothing was touched.
        InvariantViolationError, SQLAlchemyError: after rollback.
    """
    desired = parse_workflow_payload(tenant_id, datasource_id, payload)
    session = session or db.session
    veto = _veto_enabled(veto)

    def apply() -> dict:
        plan = plan_removals(
            desired.type_project_pairs(),
            load_live_maps(tenant_id, datasource_id, session=session),
            load_live_maps(tenant_id, session=session),
            desired.work_item_type_ids(),
        )
        removed = remove_work_item_types(
            plan.maps_to_remove, plan.orphaned_type_ids, tenant_id, datasource_id, session, veto=veto,
        )
        upserted = {
            "workflows": upsert_rows(session, Workflow, desired.workflows),
            "work_item_types": upsert_rows(session, WorkItemType, desired.work_item_types),
            "work_item_type_maps": upsert_rows(session, WorkItemTypeMap, desired.work_item_type_maps),
            "workflow_events": upsert_rows(session, WorkflowEvent, desired.workflow_events),
            "workflow_steps": upsert_rows(session, WorkflowStep, desired.workflow_steps),
        }
        return {
            "removed": {
                "work_item_type_maps": len(plan.maps_to_remove),
                "work_item_types": len(plan.orphaned_type_ids),
                **removed,
            },
            "upserted": upserted,
            "workflows": get_workflow_config(tenant_id, datasource_id, session=session),
        }

    return _run_in_transaction(
        "Workflow reconcile", tenant_id, datasource_id, apply,
        session=session, reingest=reingest, timeout_ms=_timeout_ms(timeout_ms),
    )


# ── Projects ─────────────────────────────────────────────────────────────


def reconcile_projects(
    tenant_id: str,
    datasource_id: str,
    payload,
    *,
    provider: str | None = None,
    session=None,
    reingest=kick_off_reingest,
    veto: bool | None = None,
    timeout_ms: int | None = None,
) -> ReconcileResult:
    """Make the active project list of a datasource match ``payload``.

    Projects missing from the payload are removed with their contexts, maps
    and work items; every listed project is upserted. ``provider`` is stored
    as the project's datasource_type, defaulting to the datasource's provider.
    """
    desired = parse_project_payload(payload)
    session = session or db.session
    veto = _veto_enabled(veto)

    def apply() -> dict:
        datasource_type = provider
        if datasource_type is None:
            datasource_type = session.execute(
                select(Datasource.provider).where(
                    Datasource.tenant_id == tenant_id,
                    Datasource.datasource_id == datasource_id,
                )
            ).scalar_one_or_none()

        existing = set(session.execute(
            select(Project.project_id).where(
                Project.scope_clause(tenant_id, datasource_id),
                Project.active_clause(),
            )
        ).scalars())
        wanted = {p.project_id for p in desired}
        stale = sorted(existing - wanted)

        removed = delete_projects(stale, tenant_id, datasource_id, session, veto=veto)
        upsert_rows(session, Project, [
            {
                "tenant_id": tenant_id,
                "datasource_id": datasource_id,
                "project_id": p.project_id,
                "datasource_type": datasource_type,
                "name": p.name,
                "workspace": p.workspace,
                "deleted_at": None,
            }
            for p in desired
        ])
        return {
            "removed_projects": stale,
            "removed": removed,
            "projects": list_projects(tenant_id, datasource_id, session=session),
        }

    return _run_in_transaction(
        "Project reconcile", tenant_id, datasource_id, apply,
        session=session, reingest=reingest, timeout_ms=_timeout_ms(timeout_ms),
    )
