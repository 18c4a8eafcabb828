"""
Migrator: upgrades stored accounts to the current schema before any store
is handed out.

Every account document carries a ``schema_version``. For each known step
above the ledger version, documents below the step's version are rewritten
in place (``replace_one`` upsert keyed by ``_id``) and the ledger is advanced
only after the whole scan succeeds. A failed or cancelled step leaves the
ledger where it was, and since steps skip documents already at their version
the next startup simply resumes.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from types import ModuleType
from typing import Optional, Sequence

from motor.motor_asyncio import AsyncIOMotorCollection

from mongo_identity.core.errors import MigrationCancelled, MigrationError
from mongo_identity.core.key_types import KeyAdapter, ObjectIdKeyAdapter
from mongo_identity.migrations import (
    v001_role_references,
    v002_claims_field,
    v003_stamps_and_normalized_fields,
)
from mongo_identity.migrations.context import MigrationContext
from mongo_identity.migrations.ledger import Ledger

logger = logging.getLogger(__name__)

# Registered steps, in ascending VERSION order
MIGRATIONS: tuple[ModuleType, ...] = (
    v001_role_references,
    v002_claims_field,
    v003_stamps_and_normalized_fields,
)

LATEST_VERSION = max(m.VERSION for m in MIGRATIONS)


@dataclass
class MigrationReport:
    """Outcome of one ``Migrator.apply`` call."""
    from_version: int
    to_version: int
    migrated: dict[int, int] = field(default_factory=dict)
    roles_created: int = 0

    @property
    def applied(self) -> list[int]:
        return sorted(self.migrated)


class Migrator:
    """Applies pending migration steps to the users collection."""

    def __init__(
        self,
        ledger_collection: AsyncIOMotorCollection,
        users_collection: AsyncIOMotorCollection,
        roles_collection: AsyncIOMotorCollection,
        key_adapter: Optional[KeyAdapter] = None,
        steps: Optional[Sequence[ModuleType]] = None,
        batch_size: int = 500,
    ):
        self.ledger = Ledger(ledger_collection)
        self.users = users_collection
        self.roles = roles_collection
        self.key_adapter = key_adapter or ObjectIdKeyAdapter()
        self.steps = sorted(steps if steps is not None else MIGRATIONS, key=lambda m: m.VERSION)
        self.batch_size = batch_size

        versions = [s.VERSION for s in self.steps]
        if len(set(versions)) != len(versions):
            raise ValueError(f"Duplicate migration versions: {versions}")

    async def apply(self, cancel_event: Optional[asyncio.Event] = None) -> MigrationReport:
        """
        Run every step newer than the ledger.

        Args:
            cancel_event: When set, the scan stops before the next document

        Raises:
            MigrationCancelled: If cancel_event was set mid-step
            MigrationError: If a step failed
        """
        current = await self.ledger.read_version()
        report = MigrationReport(from_version=current, to_version=current)
        pending = [s for s in self.steps if s.VERSION > current]

        if not pending:
            if self.steps and current > self.steps[-1].VERSION:
                logger.warning(
                    f"Migration ledger at version {current} is newer than the "
                    f"latest known step {self.steps[-1].VERSION}; nothing to do"
                )
            else:
                logger.info(f"Identity schema up to date (version {current})")
            return report

        context = MigrationContext(self.roles, self.key_adapter)
        for step in pending:
            logger.info(f"Applying migration V{step.VERSION:03d}: {step.DESCRIPTION}")
            try:
                migrated = await self._run_step(step, context, cancel_event)
            except MigrationCancelled:
                logger.warning(f"Migration V{step.VERSION:03d} cancelled; ledger left at {report.to_version}")
                raise
            except Exception as e:
                logger.exception(f"Migration V{step.VERSION:03d} failed")
                raise MigrationError(
                    f"Migration V{step.VERSION:03d} ({step.DESCRIPTION}) failed: {e}",
                    version=step.VERSION,
                ) from e

            await self.ledger.advance(step.VERSION, step.DESCRIPTION, migrated)
            report.migrated[step.VERSION] = migrated
            report.to_version = step.VERSION
            logger.info(f"Migration V{step.VERSION:03d} rewrote {migrated} account(s)")

        report.roles_created = context.roles_created
        return report

    async def _run_step(
        self,
        step: ModuleType,
        context: MigrationContext,
        cancel_event: Optional[asyncio.Event],
    ) -> int:
        query = {
            "$or": [
                {"schema_version": {"$exists": False}},
                {"schema_version": {"$lt": step.VERSION}},
            ]
        }
        # Snapshot the ids first so rewritten documents are not revisited
        cursor = self.users.find(query, projection={"_id": 1}, batch_size=self.batch_size)
        ids = [doc["_id"] for doc in await cursor.to_list(length=None)]

        migrated = 0
        for doc_id in ids:
            if cancel_event is not None and cancel_event.is_set():
                raise MigrationCancelled(
                    f"Migration V{step.VERSION:03d} cancelled after {migrated} account(s)",
                    version=step.VERSION,
                )
            document = await self.users.find_one({"_id": doc_id})
            if document is None:
                continue
            version = document.get("schema_version", 0)
            if isinstance(version, int) and version >= step.VERSION:
                continue

            document = await step.migrate_user(document, context)
            document["schema_version"] = step.VERSION
            await self.users.replace_one({"_id": doc_id}, document, upsert=True)
            migrated += 1
        return migrated


async def apply_migrations(
    collections,
    key_adapter: Optional[KeyAdapter] = None,
    batch_size: int = 500,
    cancel_event: Optional[asyncio.Event] = None,
) -> MigrationReport:
    """Run the Migrator over an ``IdentityCollections`` bundle."""
    migrator = Migrator(
        ledger_collection=collections.migrations,
        users_collection=collections.users,
        roles_collection=collections.roles,
        key_adapter=key_adapter,
        batch_size=batch_size,
    )
    return await migrator.apply(cancel_event=cancel_event)
