"""Core progress model.

Modules:
- hierarchy: entities and document codec
- progress: completion aggregation and dashboard summary
- mutations: pure tree transformations
"""

__all__ = [
    "hierarchy",
    "progress",
    "mutations",
]
