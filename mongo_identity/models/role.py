"""
Role model for the identity roles collection.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from mongo_identity.models.claims import IdentityClaim

ROLE_SCHEMA_VERSION = 1


class IdentityRole(BaseModel):
    """
    Role document model for the roles collection.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Any = Field(None, alias="_id", description="Primary key (ObjectId by default)")
    name: Optional[str] = Field(None, description="Role name")
    normalized_name: Optional[str] = Field(None, description="Unique lookup form of name")
    concurrency_stamp: Optional[str] = Field(None, description="Changes on every write")
    claims: list[IdentityClaim] = Field(default_factory=list)
    schema_version: int = ROLE_SCHEMA_VERSION

    def to_document(self) -> dict:
        """Serialize for MongoDB."""
        doc = self.model_dump(by_alias=True)
        if doc.get("_id") is None:
            doc.pop("_id", None)
        return doc
