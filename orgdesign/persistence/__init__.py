"""
Snapshot persistence, the durable local cache and debounced auto-save.
"""
