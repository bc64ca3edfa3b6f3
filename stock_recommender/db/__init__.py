"""
SQLite persistence: connection manager, schema, repositories and the
``SqliteStore`` implementation of the ``Store`` protocol.
"""
