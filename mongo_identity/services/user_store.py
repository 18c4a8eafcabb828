"""
User store: CRUD plus role, claim, login, token and recovery-code operations
over the users collection.

Writes are optimistic. ``update`` and ``delete`` compare the caller's
concurrency stamp with the stored one in a single-document operation and
raise ``ConcurrencyConflictError`` when they differ; the caller re-reads and
retries.

Mutate-then-flush: every relationship method below the CRUD section only
stages a change on the in-memory ``IdentityUser``. Nothing is persisted until
the caller invokes ``update``::

    user = await store.find_by_id(user_id)
    await store.add_to_role(user, "ADMIN")
    store.add_claims(user, [IdentityClaim(type="tier", value="gold")])
    await store.update(user)
"""
import logging
from typing import Any, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import errors as mongo_errors

from mongo_identity.core.errors import (
    ConcurrencyConflictError,
    DuplicateKeyError,
    RoleNotFoundError,
)
from mongo_identity.core.key_types import KeyAdapter, ObjectIdKeyAdapter
from mongo_identity.core.normalizer import new_stamp, normalize
from mongo_identity.models.claims import IdentityClaim, IdentityUserLogin, IdentityUserToken
from mongo_identity.models.role import IdentityRole
from mongo_identity.models.user import IdentityUser

logger = logging.getLogger(__name__)

_UNIQUE_FIELDS = ("normalized_user_name", "normalized_email")


class UserStore:
    """Account persistence for the identity framework."""

    def __init__(
        self,
        users_collection: AsyncIOMotorCollection,
        roles_collection: AsyncIOMotorCollection,
        key_adapter: Optional[KeyAdapter] = None,
        user_model: type[IdentityUser] = IdentityUser,
        role_model: type[IdentityRole] = IdentityRole,
    ):
        self.users = users_collection
        self.roles = roles_collection
        self.key_adapter = key_adapter or ObjectIdKeyAdapter()
        self.user_model = user_model
        self.role_model = role_model

    # ==================== CRUD ====================

    async def create(self, user: IdentityUser) -> IdentityUser:
        """
        Insert a new account.

        Assigns an id when absent (a supplied id goes through the key
        adapter), fills missing normalized fields and sets a fresh
        concurrency stamp. ``user`` is only modified once the insert succeeds.

        Raises:
            DuplicateKeyError: If the normalized user name or email is taken
            ValueError: If the supplied id does not convert to the key type
        """
        filled = {
            "id": self.key_adapter.generate() if user.id is None else self.key_adapter.coerce(user.id),
            "normalized_user_name": user.normalized_user_name,
            "normalized_email": user.normalized_email,
            "security_stamp": user.security_stamp or new_stamp(),
            "concurrency_stamp": new_stamp(),
        }
        if filled["normalized_user_name"] is None:
            filled["normalized_user_name"] = normalize(user.user_name)
        if filled["normalized_email"] is None:
            filled["normalized_email"] = normalize(user.email)
        staged = user.model_copy(update=filled)

        await self._check_unique(staged)
        try:
            await self.users.insert_one(staged.to_document())
        except mongo_errors.DuplicateKeyError as e:
            raise self._translate_duplicate(e, staged) from e

        for name, value in filled.items():
            setattr(user, name, value)
        logger.debug(f"Created user {user.id}")
        return user

    async def update(self, user: IdentityUser) -> IdentityUser:
        """
        Persist the account, including any staged relationship changes.

        Raises:
            ConcurrencyConflictError: If the stored stamp differs from ``user.concurrency_stamp``
            DuplicateKeyError: If the normalized user name or email now collides
        """
        expected = user.concurrency_stamp
        stamp = new_stamp()
        await self._check_unique(user)

        doc = user.to_document()
        doc["concurrency_stamp"] = stamp
        try:
            result = await self.users.replace_one(
                {"_id": user.id, "concurrency_stamp": expected},
                doc,
            )
        except mongo_errors.DuplicateKeyError as e:
            raise self._translate_duplicate(e, user) from e

        if result.matched_count == 0:
            logger.warning(f"Concurrency conflict updating user {user.id}")
            raise ConcurrencyConflictError("user", user.id)

        user.concurrency_stamp = stamp
        logger.debug(f"Updated user {user.id}")
        return user

    async def delete(self, user: IdentityUser) -> None:
        """
        Delete the account if its concurrency stamp is unchanged.

        Raises:
            ConcurrencyConflictError: If the account changed or vanished since it was read
        """
        result = await self.users.delete_one(
            {"_id": user.id, "concurrency_stamp": user.concurrency_stamp}
        )
        if result.deleted_count == 0:
            logger.warning(f"Concurrency conflict deleting user {user.id}")
            raise ConcurrencyConflictError("user", user.id)
        logger.debug(f"Deleted user {user.id}")

    # ==================== Lookups ====================

    async def find_by_id(self, user_id: Any) -> Optional[IdentityUser]:
        """
        Get user by key or its string form.

        Returns:
            The account, or None if missing or the id is malformed
        """
        try:
            key = self.key_adapter.coerce(user_id)
        except ValueError:
            return None
        return self._to_model(await self.users.find_one({"_id": key}))

    async def find_by_normalized_user_name(self, normalized_user_name: str) -> Optional[IdentityUser]:
        doc = await self.users.find_one({"normalized_user_name": normalized_user_name})
        return self._to_model(doc)

    async def find_by_normalized_email(self, normalized_email: str) -> Optional[IdentityUser]:
        doc = await self.users.find_one({"normalized_email": normalized_email})
        return self._to_model(doc)

    async def find_by_login(self, login_provider: str, provider_key: str) -> Optional[IdentityUser]:
        """Get the account linked to an external login."""
        doc = await self.users.find_one({
            "logins": {
                "$elemMatch": {
                    "login_provider": login_provider,
                    "provider_key": provider_key,
                }
            }
        })
        return self._to_model(doc)

    async def get_users_in_role(self, normalized_role_name: str) -> list[IdentityUser]:
        """All accounts referencing the role; empty if the role does not exist."""
        role = await self._find_role(normalized_role_name)
        if role is None:
            return []
        cursor = self.users.find({"roles": role.name})
        return [self._to_model(doc) for doc in await cursor.to_list(length=None)]

    async def get_users_for_claim(self, claim: IdentityClaim) -> list[IdentityUser]:
        cursor = self.users.find({
            "claims": {"$elemMatch": {"type": claim.type, "value": claim.value}}
        })
        return [self._to_model(doc) for doc in await cursor.to_list(length=None)]

    async def list_users(self, limit: int = 1000) -> list[IdentityUser]:
        cursor = self.users.find({}).sort("normalized_user_name", 1)
        return [self._to_model(doc) for doc in await cursor.to_list(length=limit)]

    # ==================== Roles (staged) ====================

    async def add_to_role(self, user: IdentityUser, normalized_role_name: str) -> None:
        """
        Stage a reference to an existing role.

        Raises:
            RoleNotFoundError: If no role has this normalized name
        """
        role = await self._find_role(normalized_role_name)
        if role is None:
            raise RoleNotFoundError(normalized_role_name)
        if not self.is_in_role(user, normalized_role_name):
            user.roles.append(role.name)

    def remove_from_role(self, user: IdentityUser, normalized_role_name: str) -> None:
        user.roles = [r for r in user.roles if normalize(r) != normalized_role_name]

    def get_roles(self, user: IdentityUser) -> list[str]:
        return list(user.roles)

    def is_in_role(self, user: IdentityUser, normalized_role_name: str) -> bool:
        return any(normalize(r) == normalized_role_name for r in user.roles)

    # ==================== Claims (staged) ====================

    def get_claims(self, user: IdentityUser) -> list[IdentityClaim]:
        return list(user.claims)

    def add_claims(self, user: IdentityUser, claims: Iterable[IdentityClaim]) -> None:
        user.claims.extend(claims)

    def replace_claim(self, user: IdentityUser, claim: IdentityClaim, new_claim: IdentityClaim) -> None:
        """Replace every claim matching ``claim`` by type and value."""
        user.claims = [new_claim if c.matches(claim) else c for c in user.claims]

    def remove_claims(self, user: IdentityUser, claims: Iterable[IdentityClaim]) -> None:
        claims = list(claims)
        user.claims = [c for c in user.claims if not any(c.matches(r) for r in claims)]

    # ==================== Logins (staged) ====================

    def add_login(self, user: IdentityUser, login: IdentityUserLogin) -> None:
        user.logins.append(login)

    def remove_login(self, user: IdentityUser, login_provider: str, provider_key: str) -> None:
        user.logins = [
            l for l in user.logins
            if not (l.login_provider == login_provider and l.provider_key == provider_key)
        ]

    def get_logins(
        self, user: IdentityUser, login_provider: Optional[str] = None
    ) -> list[IdentityUserLogin]:
        """Linked logins, optionally only those of one provider."""
        if login_provider is None:
            return list(user.logins)
        return [l for l in user.logins if l.login_provider == login_provider]

    # ==================== Tokens (staged) ====================

    def get_token(self, user: IdentityUser, login_provider: str, name: str) -> Optional[str]:
        token = self._find_token(user, login_provider, name)
        return token.value if token else None

    def set_token(self, user: IdentityUser, login_provider: str, name: str, value: Optional[str]) -> None:
        token = self._find_token(user, login_provider, name)
        if token is None:
            user.tokens.append(
                IdentityUserToken(login_provider=login_provider, name=name, value=value)
            )
        else:
            token.value = value

    def remove_token(self, user: IdentityUser, login_provider: str, name: str) -> None:
        user.tokens = [
            t for t in user.tokens
            if not (t.login_provider == login_provider and t.name == name)
        ]

    # ==================== Two-factor (staged) ====================

    def set_authenticator_key(self, user: IdentityUser, key: Optional[str]) -> None:
        user.authenticator_key = key

    def replace_recovery_codes(self, user: IdentityUser, codes: Iterable[str]) -> None:
        user.recovery_codes = list(codes)

    def redeem_recovery_code(self, user: IdentityUser, code: str) -> bool:
        """Consume a recovery code; True if it was valid."""
        if code in user.recovery_codes:
            user.recovery_codes.remove(code)
            return True
        return False

    def count_recovery_codes(self, user: IdentityUser) -> int:
        return len(user.recovery_codes)

    # ==================== Helpers ====================

    async def _find_role(self, normalized_role_name: str) -> Optional[IdentityRole]:
        doc = await self.roles.find_one({"normalized_name": normalized_role_name})
        if not doc:
            return None
        return self.role_model.model_validate(doc)

    def _find_token(self, user: IdentityUser, login_provider: str, name: str) -> Optional[IdentityUserToken]:
        for token in user.tokens:
            if token.login_provider == login_provider and token.name == name:
                return token
        return None

    async def _check_unique(self, user: IdentityUser) -> None:
        for field in _UNIQUE_FIELDS:
            value = getattr(user, field)
            if value is None:
                continue
            query = {field: value, "_id": {"$ne": user.id}}
            if await self.users.find_one(query, projection={"_id": 1}):
                logger.warning(f"Duplicate {field}: {value}")
                raise DuplicateKeyError(field, value)

    def _translate_duplicate(
        self, error: mongo_errors.DuplicateKeyError, user: IdentityUser
    ) -> DuplicateKeyError:
        message = str(error)
        for field in _UNIQUE_FIELDS:
            if field in message:
                return DuplicateKeyError(field, getattr(user, field))
        return DuplicateKeyError("_id", user.id)

    def _to_model(self, doc: Optional[dict]) -> Optional[IdentityUser]:
        if not doc:
            return None
        return self.user_model.model_validate(doc)
