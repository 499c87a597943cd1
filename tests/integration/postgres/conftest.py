"""
Fixtures for PostgreSQL-specific integration tests.
"""
import pytest


@pytest.fixture
def mood_type(pg_ds):
    """User-defined enum type, unknown to the builtin type registry."""
    pg_ds.execute('drop type if exists mood')
    pg_ds.execute("create type mood as enum ('happy', 'sad')")
    yield 'mood'
    pg_ds.execute('drop type if exists mood')
