"""
Downstream consumers of configuration: stored queries.

SavedFilter and ReviewRoom both persist a user-written query and its parsed
SQL-like form (``parsed_query``). The parsed text embeds work item type and
step names as literals, e.g.::

    LOWER("workItemTypeName") = 'bug' AND "stateCategory" = 'inprogress'

services/dependency_scanner.py searches that text before configuration is
removed.
"""

from __future__ import annotations

from flowconfig.models import db
from flowconfig.models.soft_delete import SoftDeleteMixin


class SavedFilter(SoftDeleteMixin, db.Model):
    __tablename__ = "filters"
    __table_args__ = (
        db.Index("ix_filters_tenant_datasource", "tenant_id", "datasource_id"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    tenant_id = db.Column(db.String(128), nullable=False)
    datasource_id = db.Column(db.String(128), nullable=False)
    context_id = db.Column(db.String(255), nullable=True)
    display_name = db.Column(db.String(255), nullable=False)
    query = db.Column(db.Text, nullable=True, comment="Query as written by the user.")
    parsed_query = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "datasource_id": self.datasource_id,
            "display_name": self.display_name,
            "query": self.query,
        }


class ReviewRoom(db.Model):
    """Initiative/room rollup driven by a stored query. No soft delete."""

    __tablename__ = "review_rooms"
    __table_args__ = (
        db.Index("ix_review_rooms_tenant_datasource", "tenant_id", "datasource_id"),
    )

    room_id = db.Column(db.String(255), primary_key=True)
    tenant_id = db.Column(db.String(128), nullable=False)
    datasource_id = db.Column(db.String(128), nullable=True)
    room_name = db.Column(db.String(255), nullable=False)
    query = db.Column(db.Text, nullable=True)
    parsed_query = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "room_id": self.room_id,
            "datasource_id": self.datasource_id,
            "room_name": self.room_name,
        }
