"""
Desired configuration — validation and normalization of inbound payloads.

The extraction side submits one item per work item type, fanned out across
the projects it is used in:

    {
      "name": "Kanban",                      # workflow name
      "displayName": "Bug",                  # work item type name
      "id": "10004",                         # type id in the source tool
      "level": "team",
      "serviceLevelExpectationInDays": 10,
      "isDistinct": false,
      "arrivalPointOrder": 0, "commitmentPointOrder": 1, "departurePointOrder": 3,
      "projects": [{"id": "p1", "name": "Platform", "isUnmapped": false}],
      "steps": [{"id": "1", "name": "To Do", "category": "proposed",
                 "type": "queue", "isUnmapped": false}, ...]
    }

Parsing derives workflow/work item type ids, drops unmapped projects and
produces row dicts ready for bulk upsert. Every problem in the payload is
collected and raised as one ValidationError before any database work.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flowconfig.core.exceptions import ValidationError
from flowconfig.services import identity


@dataclass
class DesiredConfig:
    """Normalized desired state for one tenant + datasource submission."""

    tenant_id: str
    datasource_id: str
    workflows: list[dict] = field(default_factory=list)
    work_item_types: list[dict] = field(default_factory=list)
    work_item_type_maps: list[dict] = field(default_factory=list)
    workflow_events: list[dict] = field(default_factory=list)
    workflow_steps: list[dict] = field(default_factory=list)

    def type_project_pairs(self) -> set[tuple[str, str]]:
        return {(m["work_item_type_id"], m["project_id"]) for m in self.work_item_type_maps}

    def work_item_type_ids(self) -> set[str]:
        return {t["work_item_type_id"] for t in self.work_item_types}


@dataclass
class DesiredProject:
    project_id: str
    name: str | None = None
    workspace: str | None = None


# ── Field coercion ───────────────────────────────────────────────────────


class _Errors(dict):
    def require_str(self, item: dict, key: str, path: str) -> str | None:
        value = item.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            self[f"{path}.{key}"] = "required"
            return None
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            self[f"{path}.{key}"] = "must be a string"
            return None
        return str(value)

    def require_slug(self, item: dict, key: str, path: str) -> str | None:
        value = self.require_str(item, key, path)
        if value is not None and not identity.slugify(value):
            self[f"{path}.{key}"] = "must contain at least one letter or digit"
            return None
        return value

    def optional_int(self, item: dict, key: str, path: str) -> int | None:
        value = item.get(key)
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            self[f"{path}.{key}"] = "must be a number"
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            self[f"{path}.{key}"] = "must be a number"
            return None

    def list_of_dicts(self, item: dict, key: str, path: str) -> list[dict]:
        value = item.get(key) or []
        if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
            self[f"{path}.{key}"] = "must be a list of objects"
            return []
        return value


def _raise_if_any(errors: _Errors) -> None:
    if errors:
        raise ValidationError(
            f"Invalid configuration payload ({len(errors)} problem(s))",
            details=dict(errors),
        )


# ── Workflows / work item types ──────────────────────────────────────────


def parse_workflow_payload(tenant_id: str, datasource_id: str, payload) -> DesiredConfig:
    """Validate ``payload`` and expand it into row dicts for every table.

    Raises:
        ValidationError: with a path → problem map in ``details``.
    """
    if not isinstance(payload, list):
        raise ValidationError("Configuration payload must be a list of work item types")

    errors = _Errors()
    desired = DesiredConfig(tenant_id=tenant_id, datasource_id=datasource_id)
    scope = {"tenant_id": tenant_id, "datasource_id": datasource_id}

    for index, item in enumerate(payload):
        path = f"[{index}]"
        if not isinstance(item, dict):
            errors[path] = "must be an object"
            continue

        workflow_name = errors.require_slug(item, "name", path)
        display_name = errors.require_slug(item, "displayName", path)
        external_id = errors.require_str(item, "id", path)
        sle = errors.optional_int(item, "serviceLevelExpectationInDays", path)
        orders = {
            "arrival_point_order": errors.optional_int(item, "arrivalPointOrder", path),
            "commitment_point_order": errors.optional_int(item, "commitmentPointOrder", path),
            "departure_point_order": errors.optional_int(item, "departurePointOrder", path),
        }

        projects = []
        for p_index, project in enumerate(errors.list_of_dicts(item, "projects", path)):
            if project.get("isUnmapped"):
                continue
            project_id = errors.require_str(project, "id", f"{path}.projects[{p_index}]")
            if project_id is not None:
                projects.append(project_id)

        steps = []
        for s_index, step in enumerate(errors.list_of_dicts(item, "steps", path)):
            s_path = f"{path}.steps[{s_index}]"
            step_id = errors.require_str(step, "id", s_path)
            step_name = errors.require_str(step, "name", s_path)
            steps.append((step_id, step_name, step))

        if workflow_name is None or display_name is None or external_id is None:
            continue

        type_id = identity.work_item_type_id(tenant_id, display_name)
        desired.work_item_types.append({
            "tenant_id": tenant_id,
            "work_item_type_id": type_id,
            "display_name": display_name,
            "level": item.get("level"),
            "service_level_expectation_in_days": sle,
            "deleted_at": None,
        })

        for project_id in projects:
            wf_id = identity.workflow_id(tenant_id, project_id, workflow_name)
            desired.workflows.append({
                **scope,
                "workflow_id": wf_id,
                "workflow_name": workflow_name,
                "project_id": project_id,
                "deleted_at": None,
            })
            desired.work_item_type_maps.append({
                **scope,
                "workflow_id": wf_id,
                "work_item_type_id": type_id,
                "datasource_work_item_id": external_id,
                "project_id": project_id,
                "archived": False,
                "service_level_expectation_in_days": sle,
                "is_distinct": bool(item.get("isDistinct", False)),
            })
            desired.workflow_events.append({
                **scope,
                "workflow_id": wf_id,
                **orders,
                "deleted_at": None,
            })
            for order, (step_id, step_name, step) in enumerate(steps):
                if step_id is None or step_name is None:
                    continue
                desired.workflow_steps.append({
                    **scope,
                    "workflow_id": wf_id,
                    "id": step_id,
                    "name": step_name,
                    "project_id": project_id,
                    "state_category": str(step.get("category") or "").lower(),
                    "state_type": step.get("type"),
                    "active": not step.get("isUnmapped", False),
                    "order": order,
                    "deleted_at": None,
                })

    _raise_if_any(errors)
    return desired


# ── Projects ─────────────────────────────────────────────────────────────


def parse_project_payload(payload) -> list[DesiredProject]:
    """Validate the desired project list: ``[{projectId, name, workspace}]``."""
    if not isinstance(payload, list):
        raise ValidationError("Project payload must be a list of projects")

    errors = _Errors()
    projects: dict[str, DesiredProject] = {}
    for index, item in enumerate(payload):
        path = f"[{index}]"
        if not isinstance(item, dict):
            errors[path] = "must be an object"
            continue
        key = "projectId" if "projectId" in item else "id"
        project_id = errors.require_str(item, key, path)
        if project_id is None:
            continue
        projects.setdefault(
            project_id,
            DesiredProject(project_id=project_id, name=item.get("name"), workspace=item.get("workspace")),
        )

    _raise_if_any(errors)
    return list(projects.values())
