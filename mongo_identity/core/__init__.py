"""
Core helpers shared by the stores and the migrator.
"""
from mongo_identity.core.errors import (
    ConcurrencyConflictError,
    ConfigurationError,
    DuplicateKeyError,
    IdentityError,
    MigrationCancelled,
    MigrationError,
    RoleNotFoundError,
)
from mongo_identity.core.key_types import (
    KeyAdapter,
    KeyAdapterRegistry,
    ObjectIdKeyAdapter,
    StringKeyAdapter,
    UUIDKeyAdapter,
    key_adapters,
)
from mongo_identity.core.normalizer import new_stamp, normalize

__all__ = [
    "ConcurrencyConflictError",
    "ConfigurationError",
    "DuplicateKeyError",
    "IdentityError",
    "MigrationCancelled",
    "MigrationError",
    "RoleNotFoundError",
    "KeyAdapter",
    "KeyAdapterRegistry",
    "ObjectIdKeyAdapter",
    "StringKeyAdapter",
    "UUIDKeyAdapter",
    "key_adapters",
    "new_stamp",
    "normalize",
]
