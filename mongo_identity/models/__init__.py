"""
Pydantic models for identity documents.
"""
from mongo_identity.models.claims import IdentityClaim, IdentityUserLogin, IdentityUserToken
from mongo_identity.models.user import IdentityUser, USER_SCHEMA_VERSION
from mongo_identity.models.role import IdentityRole, ROLE_SCHEMA_VERSION
from mongo_identity.models.migration import (
    LEDGER_ID,
    LedgerEntry,
    MigrationLedger,
    LegacyClaim,
    LegacyEmbeddedRole,
)

__all__ = [
    "IdentityClaim",
    "IdentityUserLogin",
    "IdentityUserToken",
    "IdentityUser",
    "USER_SCHEMA_VERSION",
    "IdentityRole",
    "ROLE_SCHEMA_VERSION",
    "LEDGER_ID",
    "LedgerEntry",
    "MigrationLedger",
    "LegacyClaim",
    "LegacyEmbeddedRole",
]
