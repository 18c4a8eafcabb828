"""Schema migrations for identity documents.

Each step is a module with:
- VERSION: int - The migration version number
- DESCRIPTION: str - Human-readable description
- migrate_user(document, context): coroutine returning the rewritten account document

Steps are applied in order and tracked in the migration ledger.
"""
