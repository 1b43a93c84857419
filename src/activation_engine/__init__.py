"""Context-aware activation engine.

Selects a bounded, prioritized set of rules, skills and a primary agent for
a work context (touched files, project markers, request text, task scope).
"""

__version__ = "1.0.0"
