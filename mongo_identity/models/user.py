"""
Account model for the identity users collection.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from mongo_identity.models.claims import IdentityClaim, IdentityUserLogin, IdentityUserToken

# Schema version written by the current code; raised by each migration step.
USER_SCHEMA_VERSION = 3


class IdentityUser(BaseModel):
    """
    Account document model for the users collection.

    Subclass it to add application fields. Fields the model does not declare
    are kept as extras so they survive a read/update round-trip.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Any = Field(None, alias="_id", description="Primary key (ObjectId by default)")
    user_name: Optional[str] = Field(None, description="User name")
    normalized_user_name: Optional[str] = Field(None, description="Unique lookup form of user_name")
    email: Optional[str] = Field(None, description="Email address")
    normalized_email: Optional[str] = Field(None, description="Unique lookup form of email")
    email_confirmed: bool = False
    password_hash: Optional[str] = Field(None, description="Hash produced by the identity framework")
    security_stamp: Optional[str] = None
    concurrency_stamp: Optional[str] = Field(None, description="Changes on every write")
    phone_number: Optional[str] = None
    phone_number_confirmed: bool = False
    two_factor_enabled: bool = False
    lockout_end: Optional[datetime] = None
    lockout_enabled: bool = False
    access_failed_count: int = 0

    roles: list[str] = Field(default_factory=list, description="Referenced role names")
    claims: list[IdentityClaim] = Field(default_factory=list)
    logins: list[IdentityUserLogin] = Field(default_factory=list)
    tokens: list[IdentityUserToken] = Field(default_factory=list)

    authenticator_key: Optional[str] = None
    recovery_codes: list[str] = Field(default_factory=list)

    schema_version: int = Field(USER_SCHEMA_VERSION, description="Document shape version")

    def to_document(self) -> dict:
        """Serialize for MongoDB (``_id`` alias, embedded models as dicts)."""
        doc = self.model_dump(by_alias=True)
        if doc.get("_id") is None:
            doc.pop("_id", None)
        return doc
