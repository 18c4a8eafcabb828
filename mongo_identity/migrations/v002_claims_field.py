"""Migration V002: Move ``user_claims`` into ``claims``.

Older documents kept claims under ``user_claims`` as
``{"claim_type": ..., "claim_value": ...}``. They are merged into ``claims``
as ``{"type": ..., "value": ...}`` without duplicating pairs already there.
"""
from mongo_identity.migrations.context import MigrationContext
from mongo_identity.models.migration import LegacyClaim

VERSION = 2
DESCRIPTION = "Move legacy user_claims into claims"


async def migrate_user(document: dict, context: MigrationContext) -> dict:
    claims = list(document.get("claims") or [])
    legacy_claims = document.get("user_claims")
    if legacy_claims is None:
        document["claims"] = claims
        return document

    seen = {(c.get("type"), c.get("value")) for c in claims}
    for raw in legacy_claims:
        legacy = LegacyClaim.model_validate(raw)
        if legacy.claim_type is None or legacy.claim_value is None:
            raise ValueError(
                f"Incomplete legacy claim {raw!r} on account {document.get('_id')!r}"
            )
        pair = (legacy.claim_type, legacy.claim_value)
        if pair in seen:
            continue
        seen.add(pair)
        claim = {"type": legacy.claim_type, "value": legacy.claim_value}
        claim.update(legacy.model_extra or {})
        claims.append(claim)

    document["claims"] = claims
    del document["user_claims"]
    return document
