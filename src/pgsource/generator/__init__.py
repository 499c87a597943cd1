"""
SQL generator factory for dialect-specific statement generation.
"""
from pgsource.generator.base import _GENERATOR_REGISTRY
from pgsource.generator.base import SQLGenerator as SQLGenerator
from pgsource.generator.base import register_generator as register_generator
from pgsource.generator.postgres import PostgreSQLGenerator as PostgreSQLGenerator


def get_generator_class(dialect: str) -> type[SQLGenerator]:
    """Get the generator class for a dialect without instantiating."""
    if dialect not in _GENERATOR_REGISTRY:
        available = list(_GENERATOR_REGISTRY.keys())
        raise ValueError(f'Unsupported dialect: {dialect}. Available: {available}')
    return _GENERATOR_REGISTRY[dialect]


def get_generator(dialect: str, **kwargs) -> SQLGenerator:
    """Instantiate the generator registered for a dialect."""
    return get_generator_class(dialect)(**kwargs)


def get_available_dialects() -> list[str]:
    """Return list of registered dialect names."""
    return list(_GENERATOR_REGISTRY.keys())
