"""
Workflow configuration models.

Five tables describe how a tenant's work is tracked:

  Workflow         — a named stage sequence scoped to one project.
  WorkflowStep     — one stage of a workflow, with category and ordering.
  WorkflowEvent    — the arrival / commitment / departure step indices.
  WorkItemType     — a kind of work ("Bug"); tenant-scoped, shared across
                     datasources and projects.
  WorkItemTypeMap  — binds a WorkItemType to a Workflow/Project. A type may
                     have zero, one or many live maps.

Ids for Workflow and WorkItemType are derived from names (see
services/identity.py); a rename in the source tool yields a new row.
Soft deletion uses ``deleted_at``; maps use the ``archived`` flag instead.
"""

from __future__ import annotations

from flowconfig.models import db
from flowconfig.models.base import DatasourceModel, TenantModel
from flowconfig.models.soft_delete import SoftDeleteMixin


class Workflow(SoftDeleteMixin, DatasourceModel):
    __tablename__ = "workflows"

    workflow_id = db.Column(db.String(512), primary_key=True)
    workflow_name = db.Column(db.String(512), nullable=True)
    project_id = db.Column(db.String(255), nullable=True, index=True)
    datasource_workflow_id = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "datasource_id": self.datasource_id,
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "project_id": self.project_id,
            "datasource_workflow_id": self.datasource_workflow_id,
        }


class WorkflowStep(SoftDeleteMixin, DatasourceModel):
    __tablename__ = "workflow_steps"

    workflow_id = db.Column(db.String(512), primary_key=True)
    id = db.Column(db.String(255), primary_key=True)
    name = db.Column(db.String(255), primary_key=True)
    project_id = db.Column(db.String(255), nullable=True)
    state_category = db.Column(
        db.String(20),
        nullable=True,
        comment="proposed | inprogress | completed | removed",
    )
    state_type = db.Column(db.String(40), nullable=True)
    order = db.Column(db.Integer, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "workflow_id": self.workflow_id,
            "id": self.id,
            "name": self.name,
            "project_id": self.project_id,
            "category": self.state_category,
            "type": self.state_type,
            "order": self.order,
            "active": self.active,
        }


class WorkflowEvent(SoftDeleteMixin, DatasourceModel):
    """Boundary step indices marking arrival, commitment and departure."""

    __tablename__ = "workflow_events"

    workflow_id = db.Column(db.String(512), primary_key=True)
    arrival_point_order = db.Column(db.Integer, nullable=True)
    commitment_point_order = db.Column(db.Integer, nullable=True)
    departure_point_order = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "workflow_id": self.workflow_id,
            "arrival_point_order": self.arrival_point_order,
            "commitment_point_order": self.commitment_point_order,
            "departure_point_order": self.departure_point_order,
        }


class WorkItemType(SoftDeleteMixin, TenantModel):
    """A kind of work. Not datasource-scoped: one row serves every datasource."""

    __tablename__ = "work_item_types"

    work_item_type_id = db.Column(db.String(512), primary_key=True)
    display_name = db.Column(db.String(255), nullable=False)
    level = db.Column(db.String(40), nullable=True, comment="portfolio | team | individual")
    service_level_expectation_in_days = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "work_item_type_id": self.work_item_type_id,
            "display_name": self.display_name,
            "level": self.level,
            "service_level_expectation_in_days": self.service_level_expectation_in_days,
        }


class WorkItemTypeMap(DatasourceModel):
    """Many-to-many binding of WorkItemType to Workflow/Project."""

    __tablename__ = "work_item_type_maps"
    __table_args__ = (
        db.Index("ix_work_item_type_maps_tenant_type", "tenant_id", "work_item_type_id"),
    )

    workflow_id = db.Column(db.String(512), primary_key=True)
    work_item_type_id = db.Column(db.String(512), primary_key=True)
    datasource_work_item_id = db.Column(
        db.String(255),
        primary_key=True,
        comment="Id of the issue/card type in the source tool.",
    )
    project_id = db.Column(db.String(255), primary_key=True)
    archived = db.Column(db.Boolean, nullable=False, default=False, index=True)
    service_level_expectation_in_days = db.Column(db.Integer, nullable=True)
    is_distinct = db.Column(db.Boolean, nullable=True)

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "datasource_id": self.datasource_id,
            "workflow_id": self.workflow_id,
            "work_item_type_id": self.work_item_type_id,
            "datasource_work_item_id": self.datasource_work_item_id,
            "project_id": self.project_id,
            "archived": self.archived,
            "service_level_expectation_in_days": self.service_level_expectation_in_days,
            "is_distinct": self.is_distinct,
        }

    def __repr__(self):
        return f"<WorkItemTypeMap {self.work_item_type_id}@{self.project_id}>"
