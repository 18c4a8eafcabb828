"""
Identity database configuration.
Default collection names and index definitions for accounts and roles.
"""


class Collections:
    """Default collection names (see IdentitySettings for overrides)."""
    USERS = "users"
    ROLES = "roles"

    # Index definitions keyed by the default collection name
    INDEXES = {
        "users": [
            {"keys": [("normalized_user_name", 1)], "unique": True,
             "partialFilterExpression": {"normalized_user_name": {"$type": "string"}}},
            {"keys": [("normalized_email", 1)], "unique": True,
             "partialFilterExpression": {"normalized_email": {"$type": "string"}}},
            {"keys": [("roles", 1)]},
            {"keys": [("logins.login_provider", 1), ("logins.provider_key", 1)]},
        ],
        "roles": [
            {"keys": [("normalized_name", 1)], "unique": True,
             "partialFilterExpression": {"normalized_name": {"$type": "string"}}},
        ],
    }
