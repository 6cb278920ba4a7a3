"""
Core Services

- remote.py: Remote Interface Adapter
- identity.py / session.py: identity provider boundary and session lifecycle
- keys.py / cache.py: structured cache keys and the Entity Cache
- queries.py: remote reads mapped onto cache keys
- authorization.py: viewer variants, capabilities and ownership
- mutations.py: remote writes and their invalidation sets
- bindings.py: view subscriptions to cache keys
"""
