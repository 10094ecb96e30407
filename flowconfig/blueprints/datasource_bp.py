"""Datasource configuration blueprint.

REST API through which the extraction side submits the desired work tracking
structure of one datasource, and through which it can be read back.

Endpoint groups:
  Workflow configuration   GET/POST /api/v1/datasources/<datasource_id>/workflows
  Projects                 GET/POST /api/v1/datasources/<datasource_id>/projects

tenant_id is taken from the X-Tenant-ID header; authentication happens
upstream. The reconciliation service owns the transaction and commits.

POST outcomes:
  201  configuration applied
  409  removal blocked by dependent filters/rooms (nothing changed)
  422  malformed payload
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

import flowconfig.services.reconciliation_service as rs
from flowconfig.core.exceptions import NotFoundError, ValidationError
from flowconfig.utils.errors import E, api_error

logger = logging.getLogger(__name__)

datasource_bp = Blueprint("datasources", __name__, url_prefix="/api/v1/datasources")

TENANT_HEADER = "X-Tenant-ID"


# ── Tenant helpers ────────────────────────────────────────────────────────────


def _tenant_required() -> tuple[str | None, tuple | None]:
    tid = (request.headers.get(TENANT_HEADER) or "").strip()
    if not tid:
        return None, api_error(E.VALIDATION_REQUIRED, f"{TENANT_HEADER} header is required")
    return tid, None


def _json_payload():
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError("Request body must be JSON")
    return payload


def _reconcile_response(result: rs.ReconcileResult):
    if result.is_conflict:
        return api_error(
            E.DEPENDENCY_CONFLICT,
            "Removal blocked by dependent filters or rooms",
            details=result.to_dict(),
        )
    return jsonify(result.to_dict()), 201


# ── Error handlers ────────────────────────────────────────────────────────────


@datasource_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, f"{error.resource} not found")


@datasource_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), details={"details": error.details})


@datasource_bp.errorhandler(SQLAlchemyError)
def _handle_database(error: SQLAlchemyError):
    logger.exception("Database error in datasource_bp endpoint=%s", request.endpoint)
    return api_error(E.DATABASE, "Database error")


@datasource_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in datasource_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


# ═════════════════════════════════════════════════════════════════════════
# Workflow configuration
# ═════════════════════════════════════════════════════════════════════════


@datasource_bp.route("/<datasource_id>/workflows", methods=["GET"])
def get_workflows(datasource_id):
    """Return the live workflow configuration, one entry per work item type map."""
    tenant_id, err = _tenant_required()
    if err:
        return err
    rs.require_datasource(tenant_id, datasource_id)
    return jsonify({"workflows": rs.get_workflow_config(tenant_id, datasource_id)}), 200


@datasource_bp.route("/<datasource_id>/workflows", methods=["POST"])
def post_workflows(datasource_id):
    """Reconcile the datasource's workflow configuration against the body.

    Body: list of work item type items (name, displayName, id, projects, steps, ...)
    """
    tenant_id, err = _tenant_required()
    if err:
        return err
    rs.require_datasource(tenant_id, datasource_id)
    result = rs.reconcile_workflows(tenant_id, datasource_id, _json_payload())
    return _reconcile_response(result)


# ═════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════


@datasource_bp.route("/<datasource_id>/projects", methods=["GET"])
def get_projects(datasource_id):
    tenant_id, err = _tenant_required()
    if err:
        return err
    rs.require_datasource(tenant_id, datasource_id)
    return jsonify({"projects": rs.list_projects(tenant_id, datasource_id)}), 200


@datasource_bp.route("/<datasource_id>/projects", methods=["POST"])
def post_projects(datasource_id):
    """Reconcile the datasource's project list against the body.

    Body: [{"projectId": "...", "name": "...", "workspace": "..."}]
    Query params: provider (optional, defaults to the datasource's provider)
    """
    tenant_id, err = _tenant_required()
    if err:
        return err
    rs.require_datasource(tenant_id, datasource_id)
    result = rs.reconcile_projects(
        tenant_id, datasource_id, _json_payload(), provider=request.args.get("provider"),
    )
    return _reconcile_response(result)
