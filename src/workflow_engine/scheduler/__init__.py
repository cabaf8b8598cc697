"""Task graph scheduling.

This package provides first-class types for:
- Tasks and their results (models)
- Batch planning by topological leveling (planner)
- Bounded concurrency (limiter)
- Single-task execution with retry and caching (executor)
- Progress reporting (progress)
- Running whole graphs (scheduler)
"""

__all__: list[str] = []
