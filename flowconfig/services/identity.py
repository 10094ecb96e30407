"""
Stable identifiers derived from human-readable names.

Workflow and WorkItemType ids are pure functions of tenant + names, so the
same name submitted again always resolves to the same row, and a rename in
the source tool produces a different id (treated as remove + create).

    >>> workflow_id("acme", "proj-1", "To Do")
    'acme.proj-1.to-do'
    >>> work_item_type_id("acme", "User Story")
    'acme.user-story'
    >>> work_item_type_id("acme", "Ошибка")
    'acme.oshibka'
"""

from __future__ import annotations

import re

from text_unidecode import unidecode

_SEPARATOR = "."
_REPLACEMENT = "-"

# Characters kept by the URL-safe slug; everything else is dropped
_DISALLOWED = re.compile(r"[^\w\s$*+~.()'\"!:@-]+", re.ASCII)
_SPACING = re.compile(r"[\s-]+", re.ASCII)


def slugify(value: str) -> str:
    """URL-safe slug: transliterate to ASCII, drop unsafe chars, dash-join words."""
    value = unidecode(value)
    value = value.replace(_REPLACEMENT, " ")
    value = _DISALLOWED.sub("", value).strip()
    return _SPACING.sub(_REPLACEMENT, value)


def _derive(*parts: str) -> str:
    return slugify(_SEPARATOR.join(str(p) for p in parts).lower())


def workflow_id(tenant_id: str, project_id: str, name: str) -> str:
    return _derive(tenant_id, project_id, name)


def work_item_type_id(tenant_id: str, display_name: str) -> str:
    return _derive(tenant_id, display_name)
