"""Migration V003: Backfill stamps, normalized fields and empty collections."""
from mongo_identity.core.normalizer import new_stamp, normalize
from mongo_identity.migrations.context import MigrationContext

VERSION = 3
DESCRIPTION = "Backfill normalized fields, stamps and embedded collections"

_LIST_FIELDS = ("roles", "claims", "logins", "tokens", "recovery_codes")


async def migrate_user(document: dict, context: MigrationContext) -> dict:
    if document.get("normalized_user_name") is None and document.get("user_name") is not None:
        document["normalized_user_name"] = normalize(document["user_name"])
    if document.get("normalized_email") is None and document.get("email") is not None:
        document["normalized_email"] = normalize(document["email"])
    for stamp_field in ("security_stamp", "concurrency_stamp"):
        if not document.get(stamp_field):
            document[stamp_field] = new_stamp()
    for field in _LIST_FIELDS:
        if document.get(field) is None:
            document[field] = []
    return document
