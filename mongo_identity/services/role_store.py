"""
Role store: CRUD and claim operations over the roles collection.
"""
import logging
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import errors as mongo_errors

from mongo_identity.core.errors import ConcurrencyConflictError, DuplicateKeyError
from mongo_identity.core.key_types import KeyAdapter, ObjectIdKeyAdapter
from mongo_identity.core.normalizer import new_stamp, normalize
from mongo_identity.models.claims import IdentityClaim
from mongo_identity.models.role import IdentityRole

logger = logging.getLogger(__name__)


class RoleStore:
    """
    Role persistence with optimistic concurrency.

    ``create``, ``update`` and ``delete`` hit the database. ``add_claim`` and
    ``remove_claim`` only change the in-memory role; call ``update`` to commit.
    Deleting a role does not touch accounts that reference it by name.
    """

    def __init__(
        self,
        roles_collection: AsyncIOMotorCollection,
        key_adapter: Optional[KeyAdapter] = None,
        role_model: type[IdentityRole] = IdentityRole,
    ):
        self.roles = roles_collection
        self.key_adapter = key_adapter or ObjectIdKeyAdapter()
        self.role_model = role_model

    # ==================== CRUD ====================

    async def create(self, role: IdentityRole) -> IdentityRole:
        """
        Insert a new role.

        ``role`` is only modified once the insert succeeds.

        Raises:
            DuplicateKeyError: If the normalized name is taken
            ValueError: If the supplied id does not convert to the key type
        """
        filled = {
            "id": self.key_adapter.generate() if role.id is None else self.key_adapter.coerce(role.id),
            "normalized_name": role.normalized_name or normalize(role.name),
            "concurrency_stamp": new_stamp(),
        }
        staged = role.model_copy(update=filled)

        await self._check_unique(staged)
        try:
            await self.roles.insert_one(staged.to_document())
        except mongo_errors.DuplicateKeyError as e:
            logger.warning(f"Duplicate role rejected by index: {staged.normalized_name}")
            raise DuplicateKeyError("normalized_name", staged.normalized_name) from e

        for name, value in filled.items():
            setattr(role, name, value)
        logger.debug(f"Created role {role.id} ({role.normalized_name})")
        return role

    async def update(self, role: IdentityRole) -> IdentityRole:
        """
        Replace the stored role if its concurrency stamp is unchanged.

        Raises:
            ConcurrencyConflictError: If the role changed or vanished since it was read
            DuplicateKeyError: If the new normalized name is taken
        """
        expected = role.concurrency_stamp
        stamp = new_stamp()
        await self._check_unique(role)

        doc = role.to_document()
        doc["concurrency_stamp"] = stamp
        try:
            result = await self.roles.replace_one(
                {"_id": role.id, "concurrency_stamp": expected},
                doc,
            )
        except mongo_errors.DuplicateKeyError as e:
            raise DuplicateKeyError("normalized_name", role.normalized_name) from e

        if result.matched_count == 0:
            logger.warning(f"Concurrency conflict updating role {role.id}")
            raise ConcurrencyConflictError("role", role.id)

        role.concurrency_stamp = stamp
        return role

    async def delete(self, role: IdentityRole) -> None:
        """
        Delete the role if its concurrency stamp is unchanged.

        Raises:
            ConcurrencyConflictError: If the role changed or vanished since it was read
        """
        result = await self.roles.delete_one(
            {"_id": role.id, "concurrency_stamp": role.concurrency_stamp}
        )
        if result.deleted_count == 0:
            logger.warning(f"Concurrency conflict deleting role {role.id}")
            raise ConcurrencyConflictError("role", role.id)

    async def find_by_id(self, role_id: Any) -> Optional[IdentityRole]:
        """Get role by key or its string form."""
        try:
            key = self.key_adapter.coerce(role_id)
        except ValueError:
            return None
        doc = await self.roles.find_one({"_id": key})
        return self._to_model(doc)

    async def find_by_normalized_name(self, normalized_name: str) -> Optional[IdentityRole]:
        doc = await self.roles.find_one({"normalized_name": normalized_name})
        return self._to_model(doc)

    async def list_roles(self, limit: int = 1000) -> list[IdentityRole]:
        cursor = self.roles.find({}).sort("normalized_name", 1)
        docs = await cursor.to_list(length=limit)
        return [self._to_model(doc) for doc in docs]

    # ==================== Claims (staged) ====================

    def get_claims(self, role: IdentityRole) -> list[IdentityClaim]:
        return list(role.claims)

    def add_claim(self, role: IdentityRole, claim: IdentityClaim) -> None:
        role.claims.append(claim)

    def remove_claim(self, role: IdentityRole, claim: IdentityClaim) -> None:
        role.claims = [c for c in role.claims if not c.matches(claim)]

    # ==================== Helpers ====================

    async def _check_unique(self, role: IdentityRole) -> None:
        if role.normalized_name is None:
            return
        query: dict = {"normalized_name": role.normalized_name}
        if role.id is not None:
            query["_id"] = {"$ne": role.id}
        if await self.roles.find_one(query, projection={"_id": 1}):
            logger.warning(f"Duplicate role name: {role.normalized_name}")
            raise DuplicateKeyError("normalized_name", role.normalized_name)

    def _to_model(self, doc: Optional[dict]) -> Optional[IdentityRole]:
        if not doc:
            return None
        return self.role_model.model_validate(doc)
