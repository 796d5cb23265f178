"""Persistence layer - the handle the dispatcher calls for CRUD primitives."""

from collectra.config import DatabaseConfig
from collectra.persistence.adapter import CollectionHandle, PersistenceAdapter
from collectra.persistence.sql import SQLAlchemyAdapter, make_engine


def create_adapter(config: DatabaseConfig) -> PersistenceAdapter:
    """Create a persistence adapter for the configured database URL.

    Returns:
        An adapter instance (not yet connected).

    Raises:
        ValueError: For unsupported URL schemes.
    """
    if config.is_sqlite or config.is_postgresql:
        return SQLAlchemyAdapter(config.sqlalchemy_url)
    raise ValueError(f"Unsupported database URL scheme: {config.url}")


__all__ = [
    "CollectionHandle",
    "PersistenceAdapter",
    "SQLAlchemyAdapter",
    "create_adapter",
    "make_engine",
]
