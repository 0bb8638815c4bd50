"""
System configuration store.

- Key/value settings, string-typed; callers coerce with the typed getters
- Read-only entries can never be updated or deleted through the service
"""
