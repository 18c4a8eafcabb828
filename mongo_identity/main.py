"""
Startup phase for the identity stores.

Migration runs here, explicitly awaited and before any store exists:

    context = await initialize_identity(settings)
    users = context.user_store()

Hosts that want connection cleanup use the lifespan manager instead:

    async with identity_lifespan(settings) as context:
        ...
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from motor.motor_asyncio import AsyncIOMotorClient

from mongo_identity.config import IdentitySettings, get_settings
from mongo_identity.core.key_types import KeyAdapter, ObjectIdKeyAdapter, key_adapters
from mongo_identity.database.connections import (
    IdentityCollections,
    close_connections,
    resolve_collections,
    validate_settings,
)
from mongo_identity.database.registry import create_identity_indexes
from mongo_identity.migrations.migrator import MigrationReport, Migrator
from mongo_identity.models.role import IdentityRole
from mongo_identity.models.user import IdentityUser
from mongo_identity.services.role_store import RoleStore
from mongo_identity.services.user_store import UserStore

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Install the default log format."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@dataclass
class IdentityContext:
    """Migrated collections plus factories for request-scoped stores."""
    collections: IdentityCollections
    key_adapter: KeyAdapter
    migration: MigrationReport
    user_model: type[IdentityUser] = IdentityUser
    role_model: type[IdentityRole] = IdentityRole

    def user_store(self) -> UserStore:
        return UserStore(
            self.collections.users,
            self.collections.roles,
            key_adapter=self.key_adapter,
            user_model=self.user_model,
            role_model=self.role_model,
        )

    def role_store(self) -> RoleStore:
        return RoleStore(
            self.collections.roles,
            key_adapter=self.key_adapter,
            role_model=self.role_model,
        )


async def initialize_identity(
    settings: Optional[IdentitySettings] = None,
    key_adapter: Optional[KeyAdapter] = None,
    client: Optional[AsyncIOMotorClient] = None,
    user_model: type[IdentityUser] = IdentityUser,
    role_model: type[IdentityRole] = IdentityRole,
    cancel_event: Optional[asyncio.Event] = None,
    ensure_indexes: bool = False,
    setup_logging: bool = False,
) -> IdentityContext:
    """
    Validate settings, register the key adapter, migrate, and return the stores' context.

    Must complete before the host accepts identity traffic.

    With ``setup_logging`` the root logger is configured from
    ``settings.log_level`` first.

    Raises:
        ConfigurationError: If the connection settings are invalid
        MigrationError: If a migration step failed (do not serve)
    """
    settings = settings or get_settings()
    if setup_logging:
        configure_logging(settings.log_level)
    validate_settings(settings)
    key_adapter = key_adapter or ObjectIdKeyAdapter()

    # Single writer: startup is the only place the process registry changes
    key_adapters.register(key_adapter)

    collections = await resolve_collections(settings, client)
    logger.info(
        f"Identity collections: {collections.users.name}, "
        f"{collections.roles.name}, {collections.migrations.name}"
    )

    migrator = Migrator(
        ledger_collection=collections.migrations,
        users_collection=collections.users,
        roles_collection=collections.roles,
        key_adapter=key_adapter,
        batch_size=settings.migration_batch_size,
    )
    report = await migrator.apply(cancel_event=cancel_event)
    if report.applied:
        logger.info(
            f"Identity schema migrated from version {report.from_version} "
            f"to {report.to_version}"
        )

    if ensure_indexes:
        await create_identity_indexes(collections)
        logger.info("Identity indexes created")

    return IdentityContext(
        collections=collections,
        key_adapter=key_adapter,
        migration=report,
        user_model=user_model,
        role_model=role_model,
    )


@asynccontextmanager
async def identity_lifespan(
    settings: Optional[IdentitySettings] = None,
    **kwargs,
) -> AsyncIterator[IdentityContext]:
    """
    Lifespan manager.

    Startup:
    - Resolve collections
    - Apply pending migrations
    - Optionally create indexes

    Shutdown:
    - Close the pooled MongoDB connection
    """
    logger.info("Starting identity stores...")
    try:
        context = await initialize_identity(settings, **kwargs)
    except Exception:
        await close_connections()
        raise

    try:
        yield context
    finally:
        logger.info("Shutting down identity stores...")
        await close_connections()
        logger.info("Database connections closed")
