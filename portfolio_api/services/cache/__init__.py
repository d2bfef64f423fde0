"""
Cache services.

Import from the submodules directly: `memory_cache` has no project imports and
`cache_manager` builds on both tiers.
"""
