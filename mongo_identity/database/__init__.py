"""
Database module - MongoDB connection and collection resolution.
"""
from mongo_identity.database.connections import (
    IdentityCollections,
    close_connections,
    get_collection,
    get_database,
    get_mongo_client,
    resolve_collections,
    resolve_database_name,
)
from mongo_identity.database.databases import identity_db

__all__ = [
    "IdentityCollections",
    "close_connections",
    "get_collection",
    "get_database",
    "get_mongo_client",
    "resolve_collections",
    "resolve_database_name",
    "identity_db",
]
