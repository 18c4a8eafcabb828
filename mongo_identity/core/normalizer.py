"""
Lookup normalization and stamp generation.
"""
import uuid
from typing import Optional


def normalize(value: Optional[str]) -> Optional[str]:
    """Canonical form used for uniqueness checks (upper-case, trimmed)."""
    if value is None:
        return None
    return value.strip().upper()


def new_stamp() -> str:
    """Generate an opaque concurrency or security stamp."""
    return str(uuid.uuid4())
