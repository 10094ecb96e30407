"""
Datasource & Project models.

  Datasource — one configured connection to an external tracking tool for a
               tenant. Holds the ingestion cursor that the re-ingest trigger
               clears after a configuration change.
  Project    — a tracked project/board inside that tool.
"""

from __future__ import annotations

from flowconfig.models import db
from flowconfig.models.base import DatasourceModel, TenantModel
from flowconfig.models.soft_delete import SoftDeleteMixin


class Datasource(SoftDeleteMixin, TenantModel):
    """A tenant's connection to one tracking tool instance."""

    __tablename__ = "datasources"

    datasource_id = db.Column(db.String(128), primary_key=True)
    provider = db.Column(
        db.String(40),
        nullable=True,
        comment="jira-cloud | jira-server | azure-boards | kanbanize | ...",
    )
    namespace = db.Column(db.String(255), nullable=True)
    enabled = db.Column(db.Boolean, nullable=False, default=True)
    next_run_start_from = db.Column(
        db.DateTime,
        nullable=True,
        comment="Ingestion cursor. NULL means the next extraction run starts from scratch.",
    )

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "datasource_id": self.datasource_id,
            "provider": self.provider,
            "namespace": self.namespace,
            "enabled": self.enabled,
            "next_run_start_from": (
                self.next_run_start_from.isoformat() if self.next_run_start_from else None
            ),
        }

    def __repr__(self):
        return f"<Datasource {self.tenant_id}/{self.datasource_id}>"


class Project(SoftDeleteMixin, DatasourceModel):
    """A project or board tracked in the source tool."""

    __tablename__ = "projects"

    project_id = db.Column(db.String(255), primary_key=True)
    datasource_type = db.Column(db.String(40), nullable=True)
    name = db.Column(db.String(255), nullable=True)
    workspace = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "datasource_id": self.datasource_id,
            "project_id": self.project_id,
            "datasource_type": self.datasource_type,
            "name": self.name,
            "workspace": self.workspace,
        }

    def __repr__(self):
        return f"<Project {self.datasource_id}/{self.project_id}>"
