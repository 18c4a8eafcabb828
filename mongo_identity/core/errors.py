"""
Exceptions raised by the identity stores, the migrator and startup.

Lookups that miss are not errors: ``find_*`` methods return ``None``.
"""
from typing import Any, Optional


class IdentityError(Exception):
    """Base class for all mongo_identity errors."""


class DuplicateKeyError(IdentityError, ValueError):
    """A normalized user name, email or role name is already taken."""

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f"Duplicate {field}: {value!r}")


class ConcurrencyConflictError(IdentityError):
    """
    The stored concurrency stamp no longer matches the caller's copy.

    The caller must re-read the record and retry; nothing is merged server-side.
    """

    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(
            f"Optimistic concurrency failure, {entity} {key!r} has been modified or deleted"
        )


class RoleNotFoundError(IdentityError, ValueError):
    """An account was asked to reference a role that does not exist."""

    def __init__(self, normalized_role_name: str):
        self.normalized_role_name = normalized_role_name
        super().__init__(f"Role {normalized_role_name!r} does not exist")


class MigrationError(IdentityError):
    """A migration step failed; the ledger was not advanced past it."""

    def __init__(self, message: str, version: Optional[int] = None):
        self.version = version
        super().__init__(message)


class MigrationCancelled(MigrationError):
    """Migration stopped between records because cancellation was requested."""


class ConfigurationError(IdentityError, ValueError):
    """Missing or invalid connection settings or key adapter setup."""
