"""Migration V001: Embedded role objects become role-name references.

Older documents stored each role as an object inside the account, e.g.
``{"name": "Admin", "normalized_name": "ADMIN", "claims": [...]}``. The
current shape is a list of role names; every referenced role must exist in
the roles collection, so missing ones are created from the embedded copy
(id and extra fields included) and existing ones gain any claims they lack.
"""
from mongo_identity.migrations.context import MigrationContext
from mongo_identity.models.migration import LegacyEmbeddedRole

VERSION = 1
DESCRIPTION = "Replace embedded role objects with role-name references"


async def migrate_user(document: dict, context: MigrationContext) -> dict:
    roles = document.get("roles")
    if not roles:
        return document

    names: list[str] = []
    for entry in roles:
        if isinstance(entry, str):
            name = await context.ensure_role(entry)
        elif isinstance(entry, dict):
            legacy = LegacyEmbeddedRole.model_validate(entry)
            role_name = legacy.name or legacy.normalized_name
            if not role_name:
                raise ValueError(
                    f"Embedded role without a name on account {document.get('_id')!r}"
                )
            name = await context.ensure_role(role_name, legacy)
        else:
            raise ValueError(
                f"Unrecognized role entry {entry!r} on account {document.get('_id')!r}"
            )
        if name not in names:
            names.append(name)

    document["roles"] = names
    return document
