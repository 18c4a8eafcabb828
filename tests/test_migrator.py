"""
Tests for the migration ledger, migration steps and the Migrator.

These tests cover:
- Legacy embedded roles becoming name references (with role creation)
- Legacy user_claims moving into claims without data loss
- Idempotence across repeated runs
- Failure and cancellation leaving the ledger unadvanced
"""

import asyncio
import logging
from types import SimpleNamespace

import pytest
from bson import ObjectId

from mongo_identity.core.errors import MigrationCancelled, MigrationError
from mongo_identity.migrations import v001_role_references, v002_claims_field
from mongo_identity.migrations.context import MigrationContext
from mongo_identity.migrations.ledger import Ledger
from mongo_identity.migrations.migrator import LATEST_VERSION, Migrator, apply_migrations
from mongo_identity.models.claims import IdentityClaim
from mongo_identity.models.migration import LEDGER_ID
from mongo_identity.models.user import USER_SCHEMA_VERSION
from tests.factories import make_role, make_user


async def _all_users(collection) -> list[dict]:
    return await collection.find({}).sort("_id", 1).to_list(length=None)


# =============================================================================
# Ledger
# =============================================================================

class TestLedger:
    """Tests for the singleton migration ledger."""

    @pytest.mark.asyncio
    async def test_missing_ledger_is_version_zero(self, collections):
        assert await Ledger(collections.migrations).read_version() == 0

    @pytest.mark.asyncio
    async def test_advance_never_decreases(self, collections):
        ledger = Ledger(collections.migrations)
        await ledger.advance(2, "second")
        await ledger.advance(1, "first again")

        assert await ledger.read_version() == 2
        assert await collections.migrations.count_documents({}) == 1

    @pytest.mark.asyncio
    async def test_advance_records_history(self, collections):
        ledger = Ledger(collections.migrations)
        await ledger.advance(1, "first", migrated=4)

        state = await ledger.read()
        assert state.id == LEDGER_ID
        assert [(h.version, h.migrated) for h in state.history] == [(1, 4)]
        assert state.updated_at is not None


# =============================================================================
# Individual steps
# =============================================================================

class TestRoleReferenceStep:
    """Tests for V001 (embedded roles -> role names)."""

    @pytest.mark.asyncio
    async def test_embedded_role_becomes_name_and_role_is_created(self, collections, key_adapter):
        context = MigrationContext(collections.roles, key_adapter)
        doc = {"_id": ObjectId(), "roles": [{"name": "Admin"}, {"normalized_name": "EDITOR"}]}

        result = await v001_role_references.migrate_user(doc, context)

        assert result["roles"] == ["Admin", "EDITOR"]
        assert await collections.roles.count_documents({}) == 2
        admin = await collections.roles.find_one({"normalized_name": "ADMIN"})
        assert admin["name"] == "Admin"
        assert admin["concurrency_stamp"]
        assert context.roles_created == 2

    @pytest.mark.asyncio
    async def test_existing_role_reused_with_stored_spelling(self, collections, key_adapter, role_store):
        await role_store.create(make_role("Admin"))
        context = MigrationContext(collections.roles, key_adapter)

        result = await v001_role_references.migrate_user(
            {"_id": ObjectId(), "roles": [{"name": "admin"}, "ADMIN"]}, context
        )

        assert result["roles"] == ["Admin"]
        assert await collections.roles.count_documents({}) == 1
        assert context.roles_created == 0

    @pytest.mark.asyncio
    async def test_embedded_role_claims_carried_to_new_role(self, collections, key_adapter):
        context = MigrationContext(collections.roles, key_adapter)
        await v001_role_references.migrate_user(
            {
                "_id": ObjectId(),
                "roles": [{"name": "Billing", "claims": [{"claim_type": "perm", "claim_value": "pay"}]}],
            },
            context,
        )
        role = await collections.roles.find_one({"normalized_name": "BILLING"})
        assert role["claims"] == [{"type": "perm", "value": "pay"}]

    @pytest.mark.asyncio
    async def test_embedded_role_id_and_extra_fields_survive(self, migrator, collections):
        role_id = ObjectId()
        await collections.users.insert_one(
            {
                "_id": ObjectId(),
                "user_name": "auditor",
                "roles": [{"_id": role_id, "name": "Auditor", "description": "read-only"}],
            }
        )

        await migrator.apply()

        role = await collections.roles.find_one({"normalized_name": "AUDITOR"})
        assert role["_id"] == role_id
        assert role["description"] == "read-only"
        assert role["schema_version"] == 1

    @pytest.mark.asyncio
    async def test_unusable_embedded_role_id_kept_as_legacy_id(self, collections, key_adapter):
        context = MigrationContext(collections.roles, key_adapter)
        await v001_role_references.migrate_user(
            {"_id": ObjectId(), "roles": [{"_id": 17, "name": "Legacy"}]}, context
        )

        role = await collections.roles.find_one({"normalized_name": "LEGACY"})
        assert isinstance(role["_id"], ObjectId)
        assert role["legacy_id"] == 17

    @pytest.mark.asyncio
    async def test_existing_role_gains_embedded_claims(self, collections, key_adapter, role_store):
        stored = await role_store.create(make_role("Billing"))
        role_store.add_claim(stored, IdentityClaim(type="perm", value="view"))
        await role_store.update(stored)
        context = MigrationContext(collections.roles, key_adapter)

        await v001_role_references.migrate_user(
            {
                "_id": ObjectId(),
                "roles": [
                    {
                        "name": "billing",
                        "claims": [
                            {"claim_type": "perm", "claim_value": "view"},
                            {"claim_type": "perm", "claim_value": "pay"},
                        ],
                        "description": "payments",
                    }
                ],
            },
            context,
        )

        role = await collections.roles.find_one({"_id": stored.id})
        assert role["name"] == "Billing"
        assert role["claims"] == [
            {"type": "perm", "value": "view"},
            {"type": "perm", "value": "pay"},
        ]
        assert role["description"] == "payments"
        assert role["concurrency_stamp"] != stored.concurrency_stamp
        assert context.roles_created == 0

    @pytest.mark.asyncio
    async def test_nameless_embedded_role_fails(self, collections, key_adapter):
        context = MigrationContext(collections.roles, key_adapter)
        with pytest.raises(ValueError):
            await v001_role_references.migrate_user({"_id": 1, "roles": [{"id": "x"}]}, context)


class TestClaimsFieldStep:
    """Tests for V002 (user_claims -> claims)."""

    @pytest.mark.asyncio
    async def test_claims_merged_without_duplicates(self, collections, key_adapter):
        context = MigrationContext(collections.roles, key_adapter)
        doc = {
            "_id": ObjectId(),
            "claims": [{"type": "a", "value": "1"}],
            "user_claims": [
                {"claim_type": "a", "claim_value": "1"},
                {"claim_type": "b", "claim_value": "2", "issuer": "LOCAL AUTHORITY"},
            ],
        }

        result = await v002_claims_field.migrate_user(doc, context)

        assert "user_claims" not in result
        assert result["claims"] == [
            {"type": "a", "value": "1"},
            {"type": "b", "value": "2", "issuer": "LOCAL AUTHORITY"},
        ]

    @pytest.mark.asyncio
    async def test_document_without_legacy_claims_unchanged(self, collections, key_adapter):
        context = MigrationContext(collections.roles, key_adapter)
        doc = {"_id": ObjectId(), "claims": [{"type": "a", "value": "1"}]}
        result = await v002_claims_field.migrate_user(dict(doc), context)
        assert result == doc


# =============================================================================
# Migrator
# =============================================================================

class TestMigrator:
    """End-to-end Migrator runs against legacy documents."""

    def test_latest_step_matches_current_schema(self):
        assert LATEST_VERSION == USER_SCHEMA_VERSION

    @pytest.mark.asyncio
    async def test_legacy_admin_scenario(self, migrator, collections, legacy_user_document):
        """Ledger 0, embedded Admin role, no role record -> role created and referenced."""
        await collections.users.insert_one(legacy_user_document)

        report = await migrator.apply()

        assert report.from_version == 0
        assert report.to_version == LATEST_VERSION
        assert await Ledger(collections.migrations).read_version() == LATEST_VERSION
        role = await collections.roles.find_one({"normalized_name": "ADMIN"})
        assert role is not None
        assert role["name"] == "Admin"
        doc = await collections.users.find_one({"_id": legacy_user_document["_id"]})
        assert doc["roles"] == ["Admin"]
        assert report.roles_created == 1

    @pytest.mark.asyncio
    async def test_no_data_lost(self, migrator, collections, user_store, legacy_user_document):
        """Claims, logins, tokens and unknown fields survive migration."""
        await collections.users.insert_one(legacy_user_document)
        before_fields = set(legacy_user_document) - {"user_claims"}

        await migrator.apply()

        doc = await collections.users.find_one({"_id": legacy_user_document["_id"]})
        assert before_fields <= set(doc)
        assert doc["claims"] == [{"type": "department", "value": "finance"}]
        assert doc["logins"] == legacy_user_document["logins"]
        assert doc["tokens"] == legacy_user_document["tokens"]
        assert doc["favourite_colour"] == "teal"
        assert doc["normalized_email"] == "LEGACY@EXAMPLE.COM"
        assert doc["schema_version"] == USER_SCHEMA_VERSION

        user = await user_store.find_by_id(legacy_user_document["_id"])
        assert user.user_name == "legacy"
        assert user.concurrency_stamp
        assert user_store.is_in_role(user, "ADMIN")
        assert user.model_extra["favourite_colour"] == "teal"

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self, migrator, collections, legacy_user_document):
        await collections.users.insert_one(legacy_user_document)
        await migrator.apply()
        users_after_first = await _all_users(collections.users)
        ledger_after_first = await collections.migrations.find_one({"_id": LEDGER_ID})

        report = await migrator.apply()

        assert report.applied == []
        assert report.from_version == report.to_version == LATEST_VERSION
        assert await _all_users(collections.users) == users_after_first
        assert await collections.migrations.find_one({"_id": LEDGER_ID}) == ledger_after_first
        assert await collections.roles.count_documents({}) == 1

    @pytest.mark.asyncio
    async def test_current_documents_left_alone(self, migrator, collections, user_store):
        user = await user_store.create(make_user())
        stamp = user.concurrency_stamp

        report = await migrator.apply()

        assert report.migrated == {1: 0, 2: 0, 3: 0}
        stored = await collections.users.find_one({"_id": user.id})
        assert stored["concurrency_stamp"] == stamp

    @pytest.mark.asyncio
    async def test_failed_step_does_not_advance_ledger(self, collections, key_adapter, legacy_user_document):
        await collections.users.insert_one(legacy_user_document)

        async def explode(document, context):
            raise RuntimeError("boom")

        broken = SimpleNamespace(VERSION=2, DESCRIPTION="broken step", migrate_user=explode)
        migrator = Migrator(
            collections.migrations,
            collections.users,
            collections.roles,
            key_adapter=key_adapter,
            steps=[v001_role_references, broken],
        )

        with pytest.raises(MigrationError) as exc_info:
            await migrator.apply()

        assert exc_info.value.version == 2
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert await Ledger(collections.migrations).read_version() == 1

    @pytest.mark.asyncio
    async def test_retry_after_failure_completes(self, collections, key_adapter, legacy_user_document):
        await collections.users.insert_one(legacy_user_document)
        calls = {"n": 0}

        async def flaky(document, context):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("transient")
            return await v002_claims_field.migrate_user(document, context)

        step = SimpleNamespace(VERSION=2, DESCRIPTION="flaky claims", migrate_user=flaky)
        migrator = Migrator(
            collections.migrations,
            collections.users,
            collections.roles,
            key_adapter=key_adapter,
            steps=[v001_role_references, step],
        )

        with pytest.raises(MigrationError):
            await migrator.apply()
        report = await migrator.apply()

        assert report.from_version == 1
        assert report.to_version == 2
        doc = await collections.users.find_one({"_id": legacy_user_document["_id"]})
        assert doc["claims"] == [{"type": "department", "value": "finance"}]

    @pytest.mark.asyncio
    async def test_cancellation_between_records(self, migrator, collections, legacy_user_document):
        await collections.users.insert_one(legacy_user_document)
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(MigrationCancelled):
            await migrator.apply(cancel_event=cancel)

        assert await Ledger(collections.migrations).read_version() == 0
        doc = await collections.users.find_one({"_id": legacy_user_document["_id"]})
        assert doc == legacy_user_document

    @pytest.mark.asyncio
    async def test_ledger_ahead_of_known_steps(self, migrator, collections, caplog):
        await Ledger(collections.migrations).advance(99, "from a newer release")

        with caplog.at_level(logging.WARNING):
            report = await migrator.apply()

        assert report.applied == []
        assert await Ledger(collections.migrations).read_version() == 99
        assert "newer than the latest known step" in caplog.text

    def test_duplicate_step_versions_rejected(self, collections):
        with pytest.raises(ValueError):
            Migrator(
                collections.migrations,
                collections.users,
                collections.roles,
                steps=[v001_role_references, v001_role_references],
            )

    @pytest.mark.asyncio
    async def test_apply_migrations_helper(self, collections, legacy_user_document):
        await collections.users.insert_one(legacy_user_document)
        report = await apply_migrations(collections)
        assert report.to_version == LATEST_VERSION
