"""Catalog Loader

Reads the declarative activation catalog from a directory:

1. YAML tables (``*.yaml`` in the catalog root, sorted by name)::

    coordinator: orchestrator
    units:
      - id: react-rules
        category: rule
        priority: 1
        domain: frontend
        triggers:
          extensions: [".tsx", ".jsx"]
          markers: ["package.json:react"]
          keywords: ["react", {pattern: "JSX", case_sensitive: true}]
    triggers:
      - {trigger_kind: keyword, pattern: "hooks", unit_id: react-rules}
    exclusion_groups:
      - {group_id: frontend-framework, category: rule,
         member_unit_ids: [react-rules, vue-rules]}

2. Markdown units with YAML frontmatter::

    rules/<id>.md
    agents/<id>.md
    skills/<id>/SKILL.md

    ---
    id: laravel-performance
    priority: 1
    loaded_by: laravel-specialist
    lifecycle:
      state: deprecated
      sunset_date: 2026-06-30
      replacement_id: laravel-octane
    triggers:
      keywords: [n+1, eager loading]
    ---

Declaration order (YAML units first, then markdown by path) is preserved;
it is the deterministic tie-break for every later ranking step.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml

from activation_engine.models import (
    Category,
    ContentUnit,
    ExclusionGroup,
    Lifecycle,
    LifecycleState,
    TriggerKind,
    TriggerSpec,
)

logger = logging.getLogger(__name__)

FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*(?:\n(.*))?$", re.DOTALL)

# Markdown directory -> default category
MARKDOWN_SOURCES = {
    "rules": Category.RULE,
    "agents": Category.AGENT,
    "skills": Category.SKILL,
}


class CatalogError(Exception):
    """Raised at load time when the catalog declaration is invalid."""
    pass


@dataclass
class TriggerRow:
    """One trigger table row referencing a unit by id."""

    trigger: TriggerSpec
    unit_id: str
    source: str = ""


@dataclass
class RawCatalog:
    """Catalog declarations before cross-reference validation."""

    units: list[ContentUnit] = field(default_factory=list)
    trigger_rows: list[TriggerRow] = field(default_factory=list)
    exclusion_groups: list[ExclusionGroup] = field(default_factory=list)
    coordinator: str | None = None
    sources: list[str] = field(default_factory=list)
    # (relative path, reason) for unit files that could not be loaded
    skipped: list[tuple[str, str]] = field(default_factory=list)


def _parse_date(value: Any, where: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise CatalogError(f"{where}: invalid date '{value}' (expected YYYY-MM-DD)")


def _parse_lifecycle(data: dict, where: str) -> Lifecycle:
    lifecycle = data.get("lifecycle")
    if lifecycle is None:
        # Flat row form: lifecycle_state / sunset_date / replacement_id
        lifecycle = {
            "state": data.get("lifecycle_state", "active"),
            "sunset_date": data.get("sunset_date"),
            "replacement_id": data.get("replacement_id"),
        }
    elif isinstance(lifecycle, str):
        lifecycle = {"state": lifecycle}
    elif not isinstance(lifecycle, dict):
        raise CatalogError(f"{where}: 'lifecycle' must be a state name or a mapping")

    try:
        state = LifecycleState(str(lifecycle.get("state", "active")).lower())
    except ValueError:
        raise CatalogError(f"{where}: unknown lifecycle state '{lifecycle.get('state')}'")

    return Lifecycle(
        state=state,
        sunset_date=_parse_date(lifecycle.get("sunset_date"), where),
        replacement_id=lifecycle.get("replacement_id") or None,
    )


def _parse_keyword(value: Any, where: str) -> TriggerSpec:
    if isinstance(value, dict):
        if "pattern" not in value:
            raise CatalogError(f"{where}: keyword trigger missing 'pattern'")
        return TriggerSpec.keyword(
            str(value["pattern"]), bool(value.get("case_sensitive", False))
        )
    return TriggerSpec.keyword(str(value))


def _parse_unit_triggers(triggers: Any, where: str) -> tuple[TriggerSpec, ...]:
    if not triggers:
        return ()
    if not isinstance(triggers, dict):
        raise CatalogError(f"{where}: 'triggers' must be a mapping")

    specs: list[TriggerSpec] = []
    for ext in triggers.get("extensions", []) or []:
        specs.append(TriggerSpec.file_extension(str(ext)))
    for marker in triggers.get("markers", []) or []:
        if isinstance(marker, dict):
            if not marker.get("file"):
                raise CatalogError(f"{where}: marker trigger missing 'file': {marker}")
            specs.append(TriggerSpec.project_marker(str(marker["file"]), marker.get("key")))
        else:
            specs.append(TriggerSpec(TriggerKind.PROJECT_MARKER, str(marker).strip()))
    for keyword in triggers.get("keywords", []) or []:
        specs.append(_parse_keyword(keyword, where))

    # Keep first occurrence order, drop duplicates
    return tuple(dict.fromkeys(specs))


def parse_unit(
    data: dict,
    source: str,
    default_id: str | None = None,
    default_category: Category | None = None,
) -> ContentUnit:
    """
    Build a ContentUnit from a YAML record or markdown frontmatter.

    Raises:
        CatalogError: If required fields are missing or invalid
    """
    unit_id = data.get("id") or default_id
    if not unit_id:
        raise CatalogError(f"{source}: unit is missing 'id'")
    where = f"{source} [{unit_id}]"

    category_value = data.get("category") or (
        default_category.value if default_category else None
    )
    try:
        category = Category(str(category_value).lower())
    except ValueError:
        raise CatalogError(f"{where}: unknown category '{category_value}'")

    try:
        priority = int(data.get("priority", 0) or 0)
    except (TypeError, ValueError):
        raise CatalogError(f"{where}: priority must be an integer")

    return ContentUnit(
        id=str(unit_id),
        category=category,
        triggers=_parse_unit_triggers(data.get("triggers"), where),
        priority=priority,
        lifecycle=_parse_lifecycle(data, where),
        loaded_by=data.get("loaded_by"),
        domain=data.get("domain"),
        description=data.get("description", "") or "",
        always_active=bool(data.get("always_active", False)),
        source=source,
    )


def _parse_trigger_row(row: dict, source: str) -> TriggerRow:
    kind_value = row.get("trigger_kind") or row.get("kind")
    try:
        kind = TriggerKind(kind_value)
    except ValueError:
        raise CatalogError(f"{source}: unknown trigger kind '{kind_value}' in row {row}")
    if not row.get("pattern") or not row.get("unit_id"):
        raise CatalogError(f"{source}: trigger row needs 'pattern' and 'unit_id': {row}")

    pattern = str(row["pattern"])
    if kind == TriggerKind.FILE_EXTENSION:
        trigger = TriggerSpec.file_extension(pattern)
    elif kind == TriggerKind.KEYWORD:
        trigger = TriggerSpec.keyword(pattern, bool(row.get("case_sensitive", False)))
    else:
        trigger = TriggerSpec(kind, pattern.strip())
    return TriggerRow(trigger=trigger, unit_id=str(row["unit_id"]), source=source)


def _parse_exclusion_group(data: dict, source: str) -> ExclusionGroup:
    group_id = data.get("group_id")
    members = data.get("member_unit_ids")
    if not group_id or not isinstance(members, list) or not members:
        raise CatalogError(
            f"{source}: exclusion group needs 'group_id' and a non-empty "
            f"'member_unit_ids' list: {data}"
        )
    category = None
    if data.get("category"):
        try:
            category = Category(data["category"])
        except ValueError:
            raise CatalogError(
                f"{source}: exclusion group '{group_id}' has unknown category "
                f"'{data['category']}'"
            )
    return ExclusionGroup(
        group_id=str(group_id),
        member_unit_ids=tuple(dict.fromkeys(str(m) for m in members)),
        category=category,
    )


def _records(data: dict, key: str, source: str) -> list[dict]:
    """The list of mappings under ``key`` in a catalog table."""
    records = data.get(key) or []
    if not isinstance(records, list):
        raise CatalogError(f"{source}: '{key}' must be a list")
    for position, record in enumerate(records):
        if not isinstance(record, dict):
            raise CatalogError(
                f"{source}: {key}[{position}] must be a mapping, got {record!r}"
            )
    return records


class CatalogLoader:
    """
    Loads catalog declarations from a directory.

    Loading is not thread-safe; the result is handed to RuleIndex.build()
    which produces the immutable snapshot shared by callers.
    """

    def __init__(self, catalog_path: Path):
        self.catalog_path = Path(catalog_path)
        self._seen_ids: set[str] = set()
        self._raw = RawCatalog()

    def load(self) -> RawCatalog:
        """
        Load YAML tables then markdown units.

        Returns:
            RawCatalog with declarations in declaration order

        Raises:
            CatalogError: If the directory is missing or a YAML table is invalid
        """
        if not self.catalog_path.is_dir():
            raise CatalogError(f"Catalog directory not found: {self.catalog_path}")

        self._seen_ids = set()
        self._raw = RawCatalog()

        for yaml_file in sorted(self.catalog_path.glob("*.yaml")):
            self._load_yaml_table(yaml_file)

        for dir_name, category in MARKDOWN_SOURCES.items():
            source_dir = self.catalog_path / dir_name
            if not source_dir.is_dir():
                continue
            if category == Category.SKILL:
                for skill_dir in sorted(p for p in source_dir.iterdir() if p.is_dir()):
                    skill_file = skill_dir / "SKILL.md"
                    if skill_file.is_file():
                        self._load_markdown_unit(skill_file, category)
                    else:
                        relative = str(skill_dir.relative_to(self.catalog_path))
                        self._skip(relative, "skill directory has no SKILL.md")
            else:
                for md_file in sorted(source_dir.glob("*.md")):
                    self._load_markdown_unit(md_file, category)

        logger.info(
            f"Catalog loaded from {self.catalog_path}: {len(self._raw.units)} units, "
            f"{len(self._raw.trigger_rows)} trigger rows, "
            f"{len(self._raw.exclusion_groups)} exclusion groups"
        )
        return self._raw

    def _add_unit(self, unit: ContentUnit) -> None:
        if unit.id in self._seen_ids:
            logger.warning(f"Skipping duplicate unit '{unit.id}' from {unit.source}")
            return
        self._seen_ids.add(unit.id)
        self._raw.units.append(unit)

    def _load_yaml_table(self, path: Path) -> None:
        source = path.name
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise CatalogError(f"Invalid YAML in catalog table {path}: {e}")
        except OSError as e:
            raise CatalogError(f"Cannot read catalog table {path}: {e}")

        if not isinstance(data, dict):
            raise CatalogError(f"{source}: top-level value must be a mapping")

        self._raw.sources.append(str(path))

        for record in _records(data, "units", source):
            self._add_unit(parse_unit(record, source))

        for row in _records(data, "triggers", source):
            self._raw.trigger_rows.append(_parse_trigger_row(row, source))

        for group in _records(data, "exclusion_groups", source):
            self._raw.exclusion_groups.append(_parse_exclusion_group(group, source))

        coordinator = data.get("coordinator")
        if coordinator:
            if self._raw.coordinator and self._raw.coordinator != coordinator:
                logger.warning(
                    f"{source}: coordinator '{coordinator}' ignored, "
                    f"already set to '{self._raw.coordinator}'"
                )
            else:
                self._raw.coordinator = str(coordinator)

    def _skip(self, relative: str, reason: str) -> None:
        logger.warning(f"Skipping unit file {relative}: {reason}")
        self._raw.skipped.append((relative, reason))

    def _load_markdown_unit(self, path: Path, category: Category) -> None:
        """Parse a markdown unit; unreadable or malformed files are skipped."""
        relative = str(path.relative_to(self.catalog_path))
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            self._skip(relative, f"cannot read ({e})")
            return

        match = FRONTMATTER_PATTERN.match(content)
        if not match:
            self._skip(relative, "no frontmatter")
            return

        try:
            metadata = yaml.safe_load(match.group(1)) or {}
        except yaml.YAMLError as e:
            self._skip(relative, f"invalid YAML frontmatter ({e})")
            return
        if not isinstance(metadata, dict):
            self._skip(relative, "frontmatter is not a mapping")
            return

        default_id = path.parent.name if category == Category.SKILL else path.stem
        self._add_unit(parse_unit(metadata, relative, default_id, category))
        self._raw.sources.append(str(path))
