"""
Migration ledger: the single document recording the highest applied version.
"""
import logging
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorCollection

from mongo_identity.models.migration import LEDGER_ID, MigrationLedger

logger = logging.getLogger(__name__)


class Ledger:
    """Reads and advances the migration ledger document."""

    def __init__(self, collection: AsyncIOMotorCollection):
        self.collection = collection

    async def read(self) -> MigrationLedger:
        doc = await self.collection.find_one({"_id": LEDGER_ID})
        if not doc:
            return MigrationLedger()
        return MigrationLedger.model_validate(doc)

    async def read_version(self) -> int:
        """Highest applied version; 0 when no migration has ever run."""
        return (await self.read()).version

    async def advance(self, version: int, description: str, migrated: int = 0) -> None:
        """
        Record a completed step.

        ``$max`` keeps the stored version from ever decreasing.
        """
        now = datetime.now(timezone.utc)
        await self.collection.update_one(
            {"_id": LEDGER_ID},
            {
                "$max": {"version": version},
                "$set": {"updated_at": now},
                "$push": {
                    "history": {
                        "version": version,
                        "description": description,
                        "applied_at": now,
                        "migrated": migrated,
                    }
                },
            },
            upsert=True,
        )
        logger.info(f"Migration ledger advanced to version {version}")
