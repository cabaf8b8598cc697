"""Two-tier (memory + disk) cache with TTL expiry and tag invalidation.

Import concrete types from their modules, e.g.
`from workflow_engine.cache.cache import Cache`.
"""

__all__: list[str] = []
