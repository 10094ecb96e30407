"""
Platform-wide exception hierarchy.

Services raise these; blueprints register handlers against them once and
get consistent HTTP status codes everywhere.

Usage:
    from flowconfig.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Datasource", resource_id="d1")
    raise ValidationError("project id is required", details={"[0].projects[1].id": "required"})

Reconciliation outcomes:
  - ValidationError          → payload rejected before any transaction work.
  - DependencyConflictError  → a normal, expected outcome. Raised inside the
                               cascade to unwind it; the orchestrator rolls back
                               and turns it into a conflict result.
  - InvariantViolationError  → internal logic fault; never swallowed.
"""

from __future__ import annotations


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for both genuinely missing records and cross-tenant lookups so that a
    response never confirms that another tenant's resource exists.

    Args:
        resource: Human-readable entity name (e.g. "Datasource").
        resource_id: The key that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: str | None = None,
        tenant_id: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when the desired-configuration payload is malformed.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are payload paths; values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class DependencyConflictError(Exception):
    """Raised when entities scheduled for removal are still referenced.

    Args:
        dependencies: One entry per blocked entity:
                      {"entityName", "blockingFilters", "blockingRooms"}.
    """

    def __init__(self, dependencies: list[dict]) -> None:
        self.dependencies = dependencies
        names = ", ".join(d["entityName"] for d in dependencies)
        super().__init__(f"Removal blocked by dependent filters/rooms: {names}")


class InvariantViolationError(Exception):
    """Raised when the cascade is asked to do something the plan does not justify.

    Example: orphaning a work item type that still has a surviving map.
    Maps to HTTP 500; the transaction is always rolled back.
    """
