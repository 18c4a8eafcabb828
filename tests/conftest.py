"""
Global test fixtures for mongo_identity.

This module provides shared fixtures for all tests including:
- Mock MongoDB (mongomock-motor)
- Identity collections, stores and migrator
- Account and legacy document factories
"""

import pytest
import pytest_asyncio
from bson import ObjectId

from mongo_identity.config import IdentitySettings
from mongo_identity.core.key_types import ObjectIdKeyAdapter
from mongo_identity.database.connections import IdentityCollections
from mongo_identity.migrations.migrator import Migrator
from mongo_identity.models.role import IdentityRole
from mongo_identity.models.user import IdentityUser
from mongo_identity.services.role_store import RoleStore
from mongo_identity.services.user_store import UserStore
from tests.factories import make_role, make_user


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture
def test_settings() -> IdentitySettings:
    """Settings pointing at a named test database."""
    return IdentitySettings(
        mongo_uri="mongodb://localhost:27017",
        database_name="identity_test",
    )


# =============================================================================
# MongoDB Fixtures (mongomock-motor)
# =============================================================================

@pytest_asyncio.fixture
async def mock_async_mongo_client():
    """
    Create an async mock MongoDB client using mongomock-motor.
    """
    from mongomock_motor import AsyncMongoMockClient
    client = AsyncMongoMockClient()
    yield client
    client.close()


@pytest_asyncio.fixture
async def mock_identity_db(mock_async_mongo_client):
    """Provide mock identity database."""
    yield mock_async_mongo_client["identity_test"]


@pytest.fixture
def collections(mock_identity_db) -> IdentityCollections:
    """Users, roles and migrations collections on the mock database."""
    return IdentityCollections(
        users=mock_identity_db["users"],
        roles=mock_identity_db["roles"],
        migrations=mock_identity_db["_migrations"],
    )


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def key_adapter() -> ObjectIdKeyAdapter:
    return ObjectIdKeyAdapter()


@pytest.fixture
def user_store(collections, key_adapter) -> UserStore:
    return UserStore(collections.users, collections.roles, key_adapter=key_adapter)


@pytest.fixture
def role_store(collections, key_adapter) -> RoleStore:
    return RoleStore(collections.roles, key_adapter=key_adapter)


@pytest.fixture
def migrator(collections, key_adapter) -> Migrator:
    return Migrator(
        ledger_collection=collections.migrations,
        users_collection=collections.users,
        roles_collection=collections.roles,
        key_adapter=key_adapter,
    )


# =============================================================================
# Account Fixtures
# =============================================================================

@pytest.fixture
def new_user() -> IdentityUser:
    return make_user()


@pytest_asyncio.fixture
async def admin_role(role_store) -> IdentityRole:
    """An Admin role already stored."""
    return await role_store.create(make_role("Admin"))


@pytest.fixture
def legacy_user_document() -> dict:
    """An account as written by the oldest schema (no schema_version)."""
    return {
        "_id": ObjectId("507f1f77bcf86cd799439011"),
        "user_name": "legacy",
        "email": "Legacy@Example.com",
        "password_hash": "AQAAAAEAACcQAAAAELegacyHash==",
        "roles": [{"name": "Admin", "normalized_name": "ADMIN"}],
        "user_claims": [
            {"claim_type": "department", "claim_value": "finance"},
        ],
        "logins": [
            {"login_provider": "Google", "provider_key": "g-123", "provider_display_name": "Google"},
        ],
        "tokens": [
            {"login_provider": "[AspNetUserStore]", "name": "AuthenticatorKey", "value": "ABC"},
        ],
        "favourite_colour": "teal",
    }
