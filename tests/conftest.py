import pytest
from pgsource.types import clear_type_cache


@pytest.fixture(autouse=True)
def clear_caches():
    """Clear the type name cache before and after each test to ensure test isolation."""
    clear_type_cache()
    yield
    clear_type_cache()


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.postgres',
]
