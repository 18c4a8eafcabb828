"""
MongoDB connection management and collection resolution.
"""
from dataclasses import dataclass
from typing import Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo.errors import ConfigurationError as MongoConfigurationError, InvalidURI
from pymongo.uri_parser import parse_uri

from mongo_identity.config import IdentitySettings, get_settings
from mongo_identity.core.errors import ConfigurationError

# Global connection instance; the driver owns the connection pool
_mongo_client: Optional[AsyncIOMotorClient] = None

_SCHEMES = ("mongodb://", "mongodb+srv://")


@dataclass(frozen=True)
class IdentityCollections:
    """Typed handles to the three identity collections."""
    users: AsyncIOMotorCollection
    roles: AsyncIOMotorCollection
    migrations: AsyncIOMotorCollection


def validate_settings(settings: IdentitySettings) -> None:
    """
    Check connection settings before anything touches the network.

    Raises:
        ConfigurationError: If the URI or a collection name is unusable
    """
    if not settings.mongo_uri or not settings.mongo_uri.startswith(_SCHEMES):
        raise ConfigurationError(
            f"mongo_uri must start with one of {', '.join(_SCHEMES)}"
        )
    names = {
        "users_collection": settings.users_collection,
        "roles_collection": settings.roles_collection,
        "migration_collection": settings.migration_collection,
    }
    for setting, value in names.items():
        if not value or not value.strip():
            raise ConfigurationError(f"{setting} must not be empty")
    if len(set(names.values())) != len(names):
        raise ConfigurationError("users, roles and migration collections must be distinct")
    if settings.migration_batch_size < 1:
        raise ConfigurationError("migration_batch_size must be positive")


def resolve_database_name(settings: IdentitySettings) -> str:
    """
    Database name from settings, falling back to the connection string path.

    Raises:
        ConfigurationError: If neither names a database
    """
    if settings.database_name:
        return settings.database_name
    if settings.mongo_uri.startswith("mongodb+srv://"):
        # SRV URIs would need a DNS lookup to parse fully; read the path only
        path = settings.mongo_uri.split("://", 1)[1].partition("/")[2]
        database = path.partition("?")[0]
    else:
        try:
            database = parse_uri(settings.mongo_uri).get("database")
        except (InvalidURI, MongoConfigurationError, ValueError) as e:
            raise ConfigurationError(f"Invalid mongo_uri: {e}") from e
    if not database:
        raise ConfigurationError(
            "No database name configured: set database_name or include it in mongo_uri"
        )
    return database


async def get_mongo_client(settings: Optional[IdentitySettings] = None) -> AsyncIOMotorClient:
    """Get or create the MongoDB client."""
    global _mongo_client
    if _mongo_client is None:
        settings = settings or get_settings()
        validate_settings(settings)
        _mongo_client = AsyncIOMotorClient(
            settings.mongo_uri,
            uuidRepresentation="standard",
            serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
        )
    return _mongo_client


async def close_connections():
    """Close the MongoDB connection."""
    global _mongo_client

    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None


async def get_database(
    settings: Optional[IdentitySettings] = None,
    client: Optional[AsyncIOMotorClient] = None,
) -> AsyncIOMotorDatabase:
    """Get the identity database named by the settings."""
    settings = settings or get_settings()
    if client is None:
        client = await get_mongo_client(settings)
    return client[resolve_database_name(settings)]


async def get_collection(
    name: str,
    settings: Optional[IdentitySettings] = None,
    client: Optional[AsyncIOMotorClient] = None,
) -> AsyncIOMotorCollection:
    """Get a single collection from the identity database."""
    db = await get_database(settings, client)
    return db[name]


async def resolve_collections(
    settings: Optional[IdentitySettings] = None,
    client: Optional[AsyncIOMotorClient] = None,
) -> IdentityCollections:
    """
    Build handles to the users, roles and migrations collections.

    Args:
        settings: Connection settings (cached environment settings if omitted)
        client: Existing client to use instead of the pooled one

    Raises:
        ConfigurationError: If the settings are invalid
    """
    settings = settings or get_settings()
    validate_settings(settings)
    db = await get_database(settings, client)
    return IdentityCollections(
        users=db[settings.users_collection],
        roles=db[settings.roles_collection],
        migrations=db[settings.migration_collection],
    )
