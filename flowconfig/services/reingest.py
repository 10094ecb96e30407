"""
Re-ingest trigger.

Clearing a datasource's ingestion cursor makes the next extraction run start
from scratch, so work items removed by a reconcile are re-fetched under the
new configuration. Runs after the reconcile transaction has committed.
"""

from __future__ import annotations

import logging

from sqlalchemy import update

from flowconfig.models import db
from flowconfig.models.datasource import Datasource

logger = logging.getLogger(__name__)


def kick_off_reingest(tenant_id: str, datasource_id: str, session=None) -> bool:
    """Reset ``next_run_start_from`` for the datasource and commit.

    Returns:
        True when an active datasource row was updated.
    """
    session = session or db.session
    result = session.execute(
        update(Datasource)
        .where(
            Datasource.tenant_id == tenant_id,
            Datasource.datasource_id == datasource_id,
            Datasource.active_clause(),
        )
        .values(next_run_start_from=None)
        .execution_options(synchronize_session=False)
    )
    session.commit()

    updated = bool(result.rowcount)
    logger.info(
        "Re-ingest %s",
        "scheduled" if updated else "skipped (no active datasource)",
        extra={"tenant_id": tenant_id, "datasource_id": datasource_id},
    )
    return updated
