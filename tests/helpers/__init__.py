"""Test helpers for the activation engine.

- Catalog builders: unit records and WorkContext shortcuts
- Assertions: Selection checks with readable failure messages
"""

from .assertions import (
    assert_not_selected,
    assert_rejected,
    assert_routed,
    assert_selected,
)
from .catalog import AS_OF, make_context, unit

__all__ = [
    # Builders
    "AS_OF",
    "make_context",
    "unit",
    # Assertions
    "assert_selected",
    "assert_not_selected",
    "assert_rejected",
    "assert_routed",
]
