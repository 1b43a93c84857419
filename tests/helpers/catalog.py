"""Builders for fixture catalogs and work contexts."""

from datetime import date
from typing import Any

from activation_engine.models import TaskScope, WorkContext, normalize_extension

# Fixed evaluation date so lifecycle results do not depend on the calendar
AS_OF = date(2026, 1, 15)


def make_context(
    extensions=(),
    markers=(),
    text: str = "",
    scope: TaskScope = TaskScope.FEATURE,
) -> WorkContext:
    """
    Build a WorkContext from loose values.

    Markers may be given as "file" or "file:key" strings or as tuples; a
    keyed marker also adds its bare filename, as the project scanner does.
    """
    marker_set = set()
    for marker in markers:
        if isinstance(marker, str):
            filename, _, key = marker.partition(":")
            marker = (filename, key or None)
        marker_set.add(marker)
        marker_set.add((marker[0], None))
    return WorkContext(
        touched_extensions=frozenset(normalize_extension(e) for e in extensions),
        project_markers=frozenset(marker_set),
        request_text=text,
        task_scope=scope,
    )


def unit(
    unit_id: str,
    category: str = "rule",
    priority: int = 1,
    extensions=(),
    markers=(),
    keywords=(),
    **extra: Any,
) -> dict[str, Any]:
    """Unit record in catalog.yaml form."""
    record: dict[str, Any] = {"id": unit_id, "category": category, "priority": priority}
    triggers = {}
    if extensions:
        triggers["extensions"] = list(extensions)
    if markers:
        triggers["markers"] = list(markers)
    if keywords:
        triggers["keywords"] = list(keywords)
    if triggers:
        record["triggers"] = triggers
    record.update(extra)
    return record
