"""Rule Index

Immutable lookup structure built once from the catalog declarations.

- lookup(trigger) -> unit ids fired by that trigger (fan-out)
- get_unit(id) -> ContentUnit, with every trigger that maps to it (union)

Construction fails fast on dangling references; an index that exists is
always internally consistent, so classification never has to check.
"""

import logging
from dataclasses import replace
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

from activation_engine.catalog_loader import CatalogError, CatalogLoader, RawCatalog
from activation_engine.models import (
    Category,
    ContentUnit,
    ExclusionGroup,
    TriggerKind,
    TriggerSpec,
)

logger = logging.getLogger(__name__)


class RuleIndex:
    """
    Read-only catalog snapshot.

    Thread Safety:
    - Never mutated after build(); safe to share across concurrent callers
    - Reloads create a new RuleIndex (see snapshot.CatalogStore)
    """

    def __init__(
        self,
        units: Mapping[str, ContentUnit],
        by_trigger: Mapping[TriggerSpec, tuple[str, ...]],
        exclusion_groups: tuple[ExclusionGroup, ...],
        coordinator: str | None,
        sources: tuple[str, ...] = (),
        skipped: tuple[tuple[str, str], ...] = (),
    ):
        self._units = MappingProxyType(dict(units))
        self._order = MappingProxyType({uid: i for i, uid in enumerate(units)})
        self._by_trigger = MappingProxyType(dict(by_trigger))
        self._triggers_by_kind = MappingProxyType(
            {
                kind: tuple(t for t in self._by_trigger if t.kind == kind)
                for kind in TriggerKind
            }
        )
        self.exclusion_groups = exclusion_groups
        self.coordinator = coordinator
        self.sources = sources
        self.skipped = skipped

    @classmethod
    def build(cls, raw: RawCatalog) -> "RuleIndex":
        """
        Validate declarations and build the index.

        Raises:
            CatalogError: On a trigger, exclusion group, replacement or
                coordinator that references an undefined unit
        """
        units: dict[str, ContentUnit] = {u.id: u for u in raw.units}
        extra: dict[str, list[TriggerSpec]] = {}

        for row in raw.trigger_rows:
            if row.unit_id not in units:
                raise CatalogError(
                    f"Trigger '{row.trigger}' ({row.source}) references "
                    f"undefined unit '{row.unit_id}'"
                )
            extra.setdefault(row.unit_id, []).append(row.trigger)

        merged: dict[str, ContentUnit] = {}
        by_trigger: dict[TriggerSpec, list[str]] = {}
        for uid, unit in units.items():
            triggers = tuple(dict.fromkeys(unit.triggers + tuple(extra.get(uid, []))))
            if triggers != unit.triggers:
                unit = replace(unit, triggers=triggers)
            merged[uid] = unit
            for trigger in triggers:
                by_trigger.setdefault(trigger, []).append(uid)

        for group in raw.exclusion_groups:
            for member in group.member_unit_ids:
                if member not in merged:
                    raise CatalogError(
                        f"Exclusion group '{group.group_id}' references "
                        f"undefined unit '{member}'"
                    )
                if group.category and merged[member].category != group.category:
                    raise CatalogError(
                        f"Exclusion group '{group.group_id}' is declared for "
                        f"category '{group.category.value}' but member '{member}' "
                        f"is a {merged[member].category.value}"
                    )

        for unit in merged.values():
            replacement = unit.lifecycle.replacement_id
            if replacement and replacement not in merged:
                raise CatalogError(
                    f"Unit '{unit.id}' ({unit.source}) declares undefined "
                    f"replacement '{replacement}'"
                )
            if unit.loaded_by and unit.loaded_by not in merged:
                logger.warning(
                    f"Unit '{unit.id}' is loaded_by unknown agent '{unit.loaded_by}'"
                )
        _check_replacement_cycles(merged)

        if raw.coordinator:
            coordinator = merged.get(raw.coordinator)
            if coordinator is None:
                raise CatalogError(
                    f"Coordinator references undefined unit '{raw.coordinator}'"
                )
            if coordinator.category != Category.AGENT:
                raise CatalogError(
                    f"Coordinator '{raw.coordinator}' must be an agent, "
                    f"not a {coordinator.category.value}"
                )

        index = cls(
            units=merged,
            by_trigger={t: tuple(ids) for t, ids in by_trigger.items()},
            exclusion_groups=tuple(raw.exclusion_groups),
            coordinator=raw.coordinator,
            sources=tuple(raw.sources),
            skipped=tuple(raw.skipped),
        )
        logger.info(
            f"Rule index built: {len(index)} units, {len(by_trigger)} distinct triggers, "
            f"{len(index.exclusion_groups)} exclusion groups"
        )
        return index

    @classmethod
    def from_path(cls, catalog_path: Path) -> "RuleIndex":
        """Load a catalog directory and build its index."""
        return cls.build(CatalogLoader(catalog_path).load())

    def __len__(self) -> int:
        return len(self._units)

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._units

    def lookup(self, trigger: TriggerSpec) -> tuple[str, ...]:
        """Unit ids fired by a trigger, in declaration order."""
        return self._by_trigger.get(trigger, ())

    def get_unit(self, unit_id: str) -> ContentUnit | None:
        return self._units.get(unit_id)

    def order_of(self, unit_id: str) -> int:
        """Declaration position; lower wins ties."""
        return self._order[unit_id]

    def triggers(self, kind: TriggerKind) -> tuple[TriggerSpec, ...]:
        """All distinct triggers of one kind."""
        return self._triggers_by_kind[kind]

    def units(self, category: Category | None = None) -> list[ContentUnit]:
        """Units in declaration order, optionally filtered by category."""
        return [
            u for u in self._units.values() if category is None or u.category == category
        ]

    def groups_for(self, unit_ids: Iterable[str]) -> list[ExclusionGroup]:
        """Exclusion groups with at least one member among unit_ids."""
        ids = set(unit_ids)
        return [g for g in self.exclusion_groups if ids.intersection(g.member_unit_ids)]


def _check_replacement_cycles(units: Mapping[str, ContentUnit]) -> None:
    """Raise CatalogError when replacement_id links loop back on themselves."""
    for start in units:
        chain = [start]
        current = units[start].lifecycle.replacement_id
        while current:
            if current in chain:
                loop = " -> ".join(chain[chain.index(current):] + [current])
                raise CatalogError(f"Replacement cycle: {loop}")
            chain.append(current)
            current = units[current].lifecycle.replacement_id
