"""
TenantModel — Abstract base classes for tenant-scoped models.

Every configuration table is partitioned by tenant. Tables that also come
from one external tracking tool instance inherit DatasourceModel, which adds
the datasource_id key column.

  - tenant_id / datasource_id columns (part of the natural primary key)
  - scope_clause(tenant_id, datasource_id) for bulk UPDATE/DELETE filters
"""

from sqlalchemy import and_

from flowconfig.models import db


class TenantModel(db.Model):
    """Abstract base for tenant-scoped tables."""
    __abstract__ = True

    tenant_id = db.Column(db.String(128), primary_key=True)


class DatasourceModel(TenantModel):
    """Abstract base for tables scoped by tenant and datasource."""
    __abstract__ = True

    datasource_id = db.Column(db.String(128), primary_key=True)

    @classmethod
    def scope_clause(cls, tenant_id, datasource_id):
        return and_(cls.tenant_id == tenant_id, cls.datasource_id == datasource_id)
