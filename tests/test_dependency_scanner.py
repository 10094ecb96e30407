"""Tests for the dependency scan over saved filters and review rooms.

Coverage:
  1. A filter pinning the type name is reported (case-insensitive)
  2. Review rooms are reported alongside filters
  3. Soft-deleted filters are ignored
  4. Other datasources and other tenants are ignored
  5. LIKE wildcards inside a name match literally
  6. Loose textual match: a later unrelated predicate still counts
  7. Conflict report shape
"""

from __future__ import annotations

import uuid

from flowconfig.models import db
from flowconfig.models.query_consumers import ReviewRoom, SavedFilter
from flowconfig.models.soft_delete import utcnow
from flowconfig.services.dependency_scanner import (
    SOURCE_FILTER,
    SOURCE_ROOM,
    Dependent,
    find_dependents,
    predicate_pattern,
    to_conflict_report,
)

TENANT = "acme"
DS = "d1"


# ── Helpers ─────────────────────────────────────────────────────────────────


def _type_query(name: str) -> str:
    return f"LOWER(\"workItemTypeName\") = '{name.lower()}'"


def _make_filter(display_name, parsed_query, *, tenant_id=TENANT, datasource_id=DS, deleted=False):
    f = SavedFilter(
        tenant_id=tenant_id,
        datasource_id=datasource_id,
        display_name=display_name,
        parsed_query=parsed_query,
        deleted_at=utcnow() if deleted else None,
    )
    db.session.add(f)
    db.session.commit()
    return f


def _make_room(room_name, parsed_query, *, tenant_id=TENANT, datasource_id=DS):
    r = ReviewRoom(
        room_id=uuid.uuid4().hex,
        tenant_id=tenant_id,
        datasource_id=datasource_id,
        room_name=room_name,
        parsed_query=parsed_query,
    )
    db.session.add(r)
    db.session.commit()
    return r


# ── Tests ───────────────────────────────────────────────────────────────────


class TestPredicatePattern:
    def test_lowercases_field_and_name(self):
        assert predicate_pattern("Bug") == "%workitemtypename%= 'bug'%"

    def test_escapes_wildcards(self):
        assert predicate_pattern("100%_done") == "%workitemtypename%= '100\\%\\_done'%"


class TestFindDependents:
    def test_filter_referencing_name_is_reported(self):
        _make_filter("Open bugs", _type_query("bug") + " AND LOWER(\"state\") = 'open'")

        found = find_dependents(["Bug"], DS, TENANT)

        assert found == {"Bug": [Dependent(SOURCE_FILTER, "Open bugs")]}

    def test_rooms_are_reported(self):
        _make_filter("Bug filter", _type_query("bug"))
        _make_room("Bug room", _type_query("bug"))

        found = find_dependents(["bug"], DS, TENANT)

        assert found["bug"] == [
            Dependent(SOURCE_FILTER, "Bug filter"),
            Dependent(SOURCE_ROOM, "Bug room"),
        ]

    def test_unreferenced_name_is_absent(self):
        _make_filter("Stories", _type_query("story"))

        assert find_dependents(["bug"], DS, TENANT) == {}

    def test_soft_deleted_filter_is_ignored(self):
        _make_filter("Old bugs", _type_query("bug"), deleted=True)

        assert find_dependents(["bug"], DS, TENANT) == {}

    def test_other_datasource_and_tenant_are_ignored(self):
        _make_filter("Other ds", _type_query("bug"), datasource_id="d2")
        _make_filter("Other tenant", _type_query("bug"), tenant_id="globex")
        _make_room("Other tenant room", _type_query("bug"), tenant_id="globex")

        assert find_dependents(["bug"], DS, TENANT) == {}

    def test_wildcards_in_name_match_literally(self):
        _make_filter("Bugs", _type_query("bug"))

        assert find_dependents(["b_g", "%"], DS, TENANT) == {}

    def test_name_in_later_predicate_is_a_false_positive(self):
        _make_filter(
            "Stories in bug state",
            _type_query("story") + " AND LOWER(\"state\") = 'bug'",
        )

        found = find_dependents(["bug"], DS, TENANT)

        assert list(found) == ["bug"]

    def test_duplicate_candidates_scanned_once(self):
        _make_filter("Bugs", _type_query("bug"))

        found = find_dependents(["bug", "bug"], DS, TENANT)

        assert found == {"bug": [Dependent(SOURCE_FILTER, "Bugs")]}


class TestConflictReport:
    def test_shape(self):
        report = to_conflict_report({
            "Bug": [Dependent(SOURCE_FILTER, "Open bugs"), Dependent(SOURCE_ROOM, "Triage")],
        })

        assert report == [
            {"entityName": "Bug", "blockingFilters": ["Open bugs"], "blockingRooms": ["Triage"]},
        ]
