"""
Migration ledger model and the legacy shapes read by migration steps.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

LEDGER_ID = "ledger"


class LedgerEntry(BaseModel):
    """One applied migration step."""
    version: int
    description: str
    applied_at: datetime
    migrated: int = Field(0, description="Documents rewritten by the step")


class MigrationLedger(BaseModel):
    """
    Singleton document in the migrations collection.

    A missing document means version 0.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(LEDGER_ID, alias="_id")
    version: int = Field(0, description="Highest applied migration version")
    updated_at: Optional[datetime] = None
    history: list[LedgerEntry] = Field(default_factory=list)


class LegacyEmbeddedRole(BaseModel):
    """Role stored inside an account document by older schema versions."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Any = Field(None, alias="_id")
    name: Optional[str] = None
    normalized_name: Optional[str] = None
    claims: list[dict] = Field(default_factory=list)


class LegacyClaim(BaseModel):
    """Account claim as stored under ``user_claims`` by older schema versions."""

    model_config = ConfigDict(extra="allow")

    claim_type: Optional[str] = None
    claim_value: Optional[str] = None
