"""
Value objects embedded in account and role documents.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IdentityClaim(BaseModel):
    """A claim as a type/value pair."""

    model_config = ConfigDict(frozen=True, extra="allow")

    type: str = Field(..., description="Claim type URI or short name")
    value: str = Field(..., description="Claim value")

    def matches(self, other: "IdentityClaim") -> bool:
        return self.type == other.type and self.value == other.value


class IdentityUserLogin(BaseModel):
    """An external login linked to an account."""

    model_config = ConfigDict(extra="allow")

    login_provider: str = Field(..., description="External provider name, e.g. Google")
    provider_key: str = Field(..., description="Account key at the provider")
    provider_display_name: Optional[str] = Field(None, description="Display name of the provider")


class IdentityUserToken(BaseModel):
    """An authentication token stored for an account."""

    model_config = ConfigDict(extra="allow")

    login_provider: str = Field(..., description="Provider the token belongs to")
    name: str = Field(..., description="Token name")
    value: Optional[str] = Field(None, description="Token value")
