"""
Cache package for the permission engine.

Stores final boolean decisions keyed by role, action, resource type and
resource id. The in-memory cache serves a single process; the Redis cache
is shared between processes. Both are cleared wholesale whenever a grant
or rule changes.
"""
