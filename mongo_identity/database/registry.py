"""
Index provisioning for the identity collections.

Uniqueness of normalized user names, emails and role names is also checked by
the stores; the indexes close the race between check and insert.
"""
import logging

from pymongo.errors import OperationFailure

from mongo_identity.database.connections import IdentityCollections
from mongo_identity.database.databases import identity_db

logger = logging.getLogger(__name__)


async def create_identity_indexes(collections: IdentityCollections) -> None:
    """Create indexes for the users and roles collections."""
    targets = {
        identity_db.Collections.USERS: collections.users,
        identity_db.Collections.ROLES: collections.roles,
    }
    for collection_key, indexes in identity_db.Collections.INDEXES.items():
        collection = targets[collection_key]
        for index_def in indexes:
            keys = index_def["keys"]
            kwargs = {k: v for k, v in index_def.items() if k != "keys"}
            try:
                await collection.create_index(keys, **kwargs)
            except OperationFailure as e:
                # Index might already exist with different options
                logger.warning(f"Index {keys} on {collection.name} not created: {e}")
