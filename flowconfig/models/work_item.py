"""
Work item instance tables.

  WorkItem (table ``states``) — current lifecycle snapshot of one tracked item.
      partition_key = "state#<tenant>", sort_key = "<datasource>#<work item id>".
  Snapshot — historical point-in-time record of a work item.
      partition_key = "snapshot#<tenant>", gs2_partition_key carries
      "<tenant>#<datasource>#..." so rows can be scoped by datasource.

Both are high volume and are physically deleted, never tombstoned.
"""

from __future__ import annotations

from flowconfig.models import db


def state_partition_key(tenant_id: str) -> str:
    return f"state#{tenant_id}"


def snapshot_partition_key(tenant_id: str) -> str:
    return f"snapshot#{tenant_id}"


class WorkItem(db.Model):
    __tablename__ = "states"
    __table_args__ = (
        db.UniqueConstraint("partition_key", "sort_key", name="uq_states_partition_sort"),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    partition_key = db.Column(db.String(255), nullable=False)
    sort_key = db.Column(db.String(512), nullable=False)
    work_item_id = db.Column(db.String(255), nullable=False, index=True)
    work_item_type_id = db.Column(db.String(512), nullable=True)
    work_item_type_name = db.Column(db.String(255), nullable=True)
    work_item_type_level = db.Column(db.String(40), nullable=True)
    project_id = db.Column(db.String(255), nullable=True)
    title = db.Column(db.String(1024), nullable=True)
    state = db.Column(db.String(255), nullable=True)
    state_category = db.Column(db.String(20), nullable=True)
    changed_date = db.Column(db.DateTime, nullable=True)
    deleted_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "work_item_id": self.work_item_id,
            "work_item_type_id": self.work_item_type_id,
            "project_id": self.project_id,
            "title": self.title,
            "state": self.state,
            "state_category": self.state_category,
        }


class Snapshot(db.Model):
    __tablename__ = "snapshots"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    partition_key = db.Column(db.String(255), nullable=False, index=True)
    sort_key = db.Column(db.String(512), nullable=True)
    gs2_partition_key = db.Column(db.String(512), nullable=True)
    work_item_id = db.Column(db.String(255), nullable=False)
    work_item_type_id = db.Column(db.String(512), nullable=True)
    work_item_type_name = db.Column(db.String(255), nullable=True)
    project_id = db.Column(db.String(255), nullable=True)
    state = db.Column(db.String(255), nullable=True)
    state_category = db.Column(db.String(20), nullable=True)
    snapshot_date = db.Column(db.DateTime, nullable=True)
    revision = db.Column(db.Integer, nullable=True)
