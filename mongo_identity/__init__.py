"""
mongo_identity - MongoDB persistence for identity accounts and roles.

Schema migrations run once at startup, then request-scoped stores provide
CRUD with optimistic concurrency.
"""
from mongo_identity.config import IdentitySettings, get_settings
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
    ObjectIdKeyAdapter,
    StringKeyAdapter,
    UUIDKeyAdapter,
    key_adapters,
)
from mongo_identity.core.normalizer import normalize
from mongo_identity.main import IdentityContext, identity_lifespan, initialize_identity
from mongo_identity.models import (
    IdentityClaim,
    IdentityRole,
    IdentityUser,
    IdentityUserLogin,
    IdentityUserToken,
)
from mongo_identity.migrations.migrator import Migrator, MigrationReport, apply_migrations
from mongo_identity.services import RoleStore, UserStore

__version__ = "0.1.0"

__all__ = [
    "IdentitySettings",
    "get_settings",
    "ConcurrencyConflictError",
    "ConfigurationError",
    "DuplicateKeyError",
    "IdentityError",
    "MigrationCancelled",
    "MigrationError",
    "RoleNotFoundError",
    "KeyAdapter",
    "ObjectIdKeyAdapter",
    "StringKeyAdapter",
    "UUIDKeyAdapter",
    "key_adapters",
    "normalize",
    "IdentityContext",
    "identity_lifespan",
    "initialize_identity",
    "IdentityClaim",
    "IdentityRole",
    "IdentityUser",
    "IdentityUserLogin",
    "IdentityUserToken",
    "Migrator",
    "MigrationReport",
    "apply_migrations",
    "RoleStore",
    "UserStore",
]
