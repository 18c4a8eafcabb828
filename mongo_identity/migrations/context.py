"""
Shared state handed to migration steps.
"""
import logging
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorCollection

from mongo_identity.core.key_types import KeyAdapter
from mongo_identity.core.normalizer import new_stamp, normalize
from mongo_identity.models.migration import LegacyEmbeddedRole
from mongo_identity.models.role import ROLE_SCHEMA_VERSION

logger = logging.getLogger(__name__)


class MigrationContext:
    """Role collection access for steps that resolve role references."""

    def __init__(self, roles_collection: AsyncIOMotorCollection, key_adapter: KeyAdapter):
        self.roles = roles_collection
        self.key_adapter = key_adapter
        self._roles: dict[str, dict] = {}
        self.roles_created = 0

    async def ensure_role(self, name: str, legacy: Optional[LegacyEmbeddedRole] = None) -> str:
        """
        Return the stored name of the role, creating the role if missing.

        Lookup is by normalized name, so re-running a step never duplicates
        roles. When ``legacy`` is the role as it was embedded in an account,
        a new role keeps its id and extra fields, and an existing role gains
        whatever claims and fields it lacks.
        """
        normalized = normalize(name)
        doc = self._roles.get(normalized)
        if doc is None:
            doc = await self.roles.find_one({"normalized_name": normalized})
            if doc is None:
                doc = await self._create_role(name, normalized, legacy)
                self._roles[normalized] = doc
                return doc["name"]
            self._roles[normalized] = doc

        if legacy is not None:
            await self._merge_role(doc, legacy)
        return doc.get("name") or name

    async def _create_role(
        self, name: str, normalized: str, legacy: Optional[LegacyEmbeddedRole]
    ) -> dict:
        doc = dict(legacy.model_extra or {}) if legacy is not None else {}
        key, displaced_id = await self._role_key(legacy)
        if displaced_id is not None:
            doc["legacy_id"] = displaced_id
        doc.update(
            {
                "_id": key,
                "name": name,
                "normalized_name": normalized,
                "concurrency_stamp": new_stamp(),
                "claims": _claim_dicts(legacy.claims if legacy is not None else []),
                "schema_version": ROLE_SCHEMA_VERSION,
            }
        )
        await self.roles.insert_one(doc)
        self.roles_created += 1
        logger.info(f"Created role '{name}' referenced by a legacy account")
        return doc

    async def _role_key(self, legacy: Optional[LegacyEmbeddedRole]) -> tuple[Any, Any]:
        """
        Reuse the embedded role's id when it converts to the key type and is free.

        Returns:
            (key, displaced legacy id or None)
        """
        if legacy is None or legacy.id is None:
            return self.key_adapter.generate(), None
        try:
            key = self.key_adapter.coerce(legacy.id)
        except ValueError:
            key = None
        if key is not None and await self.roles.find_one({"_id": key}, projection={"_id": 1}) is None:
            return key, None
        logger.warning(
            f"Embedded role id {legacy.id!r} cannot be reused; kept as legacy_id"
        )
        return self.key_adapter.generate(), legacy.id

    async def _merge_role(self, doc: dict, legacy: LegacyEmbeddedRole) -> None:
        """Add the embedded role's missing claims and fields to a stored role."""
        claims = list(doc.get("claims") or [])
        seen = {(c.get("type"), c.get("value")) for c in claims if isinstance(c, dict)}
        added = 0
        for claim in _claim_dicts(legacy.claims):
            pair = (claim["type"], claim["value"])
            if pair not in seen:
                seen.add(pair)
                claims.append(claim)
                added += 1

        changes = {k: v for k, v in (legacy.model_extra or {}).items() if k not in doc}
        fields = len(changes)
        if added:
            changes["claims"] = claims
        if not changes:
            return

        changes["concurrency_stamp"] = new_stamp()
        await self.roles.update_one({"_id": doc["_id"]}, {"$set": changes})
        doc.update(changes)
        logger.info(
            f"Merged {added} claim(s) and {fields} field(s) "
            f"from a legacy account into role '{doc.get('name')}'"
        )


def _claim_dicts(raw_claims: list[dict]) -> list[dict]:
    """Convert either claim shape to the current one, keeping extra keys, without duplicates."""
    claims: list[dict] = []
    seen: set = set()
    for raw in raw_claims:
        claim_type = raw.get("type", raw.get("claim_type"))
        claim_value = raw.get("value", raw.get("claim_value"))
        if claim_type is None or claim_value is None:
            raise ValueError(f"Incomplete role claim {raw!r}")
        if (claim_type, claim_value) in seen:
            continue
        seen.add((claim_type, claim_value))
        claim = {k: v for k, v in raw.items() if k not in ("type", "value", "claim_type", "claim_value")}
        claim.update(type=claim_type, value=claim_value)
        claims.append(claim)
    return claims
