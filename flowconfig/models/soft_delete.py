"""
Soft Delete Mixin

Adds `deleted_at` timestamp column and query helpers for soft delete.
Models that include this mixin are tombstoned rather than physically
removed; a row with `deleted_at` set is logically absent everywhere.

Usage:
    class Workflow(SoftDeleteMixin, TenantModel):
        ...

    # Query only active records
    Workflow.query_active().all()

    # Bulk tombstone inside a caller-owned transaction
    session.execute(
        update(Workflow).where(...).values(**Workflow.tombstone_values())
    )
"""

from datetime import datetime, timezone

from flowconfig.models import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime, nullable=True, default=None, index=True)

    @classmethod
    def tombstone_values(cls) -> dict:
        """Column values for a bulk ``UPDATE ... SET deleted_at = now``."""
        return {"deleted_at": utcnow()}

    @classmethod
    def active_clause(cls):
        """WHERE clause selecting rows that are not soft-deleted."""
        return cls.deleted_at.is_(None)

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.active_clause())
