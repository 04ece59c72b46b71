"""
Unit Tests

Unit tests run without external services. The database is an in-memory
SQLite instance (aiosqlite); other collaborators are in-memory doubles
or mocks.
"""
