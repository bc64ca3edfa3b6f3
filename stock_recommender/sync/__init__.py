"""
Feed → store synchronization.

Modules
-------
retry        : RetryPolicy + call_with_retry() (bounded exponential backoff).
synchronizer : Synchronizer.full_sync() / incremental_sync().
"""
