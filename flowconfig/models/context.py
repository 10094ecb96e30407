"""
Context models — saved reporting groupings (boards, initiatives) and the
work items bound to them.

Context rows are archived (flag) rather than tombstoned; their work item
maps use ``deleted_at``.
"""

from __future__ import annotations

from flowconfig.models import db
from flowconfig.models.base import TenantModel
from flowconfig.models.soft_delete import SoftDeleteMixin


class Context(TenantModel):
    __tablename__ = "contexts"
    __table_args__ = (
        db.Index("ix_contexts_tenant_datasource", "tenant_id", "datasource_id"),
    )

    context_id = db.Column(db.String(255), primary_key=True)
    datasource_id = db.Column(db.String(128), nullable=True)
    project_id = db.Column(
        db.String(512),
        nullable=True,
        comment="Project id, or several comma-joined ids; matched per id.",
    )
    name = db.Column(db.String(255), nullable=True)
    position_in_hierarchy = db.Column(db.String(64), nullable=True)
    context_address = db.Column(db.String(255), nullable=True)
    archived = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "context_id": self.context_id,
            "datasource_id": self.datasource_id,
            "project_id": self.project_id,
            "name": self.name,
            "position_in_hierarchy": self.position_in_hierarchy,
            "archived": self.archived,
        }


class ContextWorkItemMap(SoftDeleteMixin, TenantModel):
    __tablename__ = "context_work_item_maps"

    context_id = db.Column(db.String(255), primary_key=True)
    work_item_id = db.Column(db.String(255), primary_key=True, index=True)
