"""
Key type adapters.

An adapter converts between a record's primary-key type and its canonical
string form, used whenever a key crosses a serialization boundary (claim
values, route parameters, tokens).

Stores receive their adapter explicitly. The module-level ``key_adapters``
registry exists for code that only has a key type in hand; it is written
during startup by a single caller and treated as read-only afterwards.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId

from mongo_identity.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class KeyAdapter(ABC):
    """Bidirectional converter between a key type and its string form."""

    key_type: type = str

    @abstractmethod
    def generate(self) -> Any:
        """Create a new unique key."""

    def to_string(self, key: Any) -> str:
        return str(key)

    @abstractmethod
    def from_string(self, value: str) -> Any:
        """Parse the string form; raises ValueError when malformed."""

    def coerce(self, key: Any) -> Any:
        """
        Accept either a key or its string form and return a key.

        Raises:
            ValueError: If the value cannot be converted
        """
        if isinstance(key, self.key_type):
            return key
        if isinstance(key, str):
            return self.from_string(key)
        raise ValueError(f"Cannot convert {type(key).__name__} to {self.key_type.__name__}")


class ObjectIdKeyAdapter(KeyAdapter):
    """MongoDB ObjectId keys (the default)."""

    key_type = ObjectId

    def generate(self) -> ObjectId:
        return ObjectId()

    def from_string(self, value: str) -> ObjectId:
        try:
            return ObjectId(value)
        except (InvalidId, TypeError) as e:
            raise ValueError(f"Invalid ObjectId: {value!r}") from e


class StringKeyAdapter(KeyAdapter):
    """Plain string keys, generated as uuid4 hex."""

    key_type = str

    def generate(self) -> str:
        return uuid.uuid4().hex

    def from_string(self, value: str) -> str:
        if not value:
            raise ValueError("Empty key")
        return value


class UUIDKeyAdapter(KeyAdapter):
    """uuid.UUID keys (requires uuidRepresentation="standard" on the client)."""

    key_type = uuid.UUID

    def generate(self) -> uuid.UUID:
        return uuid.uuid4()

    def from_string(self, value: str) -> uuid.UUID:
        try:
            return uuid.UUID(value)
        except (ValueError, AttributeError, TypeError) as e:
            raise ValueError(f"Invalid UUID: {value!r}") from e


class KeyAdapterRegistry:
    """Maps key types to their adapters."""

    def __init__(self):
        self._adapters: dict[type, KeyAdapter] = {}

    def register(self, adapter: KeyAdapter) -> None:
        """Install an adapter, replacing any previous one for the same key type."""
        if not isinstance(adapter, KeyAdapter):
            raise ConfigurationError(
                f"Expected a KeyAdapter, got {type(adapter).__name__}"
            )
        previous = self._adapters.get(adapter.key_type)
        if previous is not None and previous is not adapter:
            logger.debug(
                f"Replacing key adapter for {adapter.key_type.__name__}: "
                f"{type(previous).__name__} -> {type(adapter).__name__}"
            )
        self._adapters[adapter.key_type] = adapter

    def get(self, key_type: type) -> Optional[KeyAdapter]:
        return self._adapters.get(key_type)

    def require(self, key_type: type) -> KeyAdapter:
        adapter = self._adapters.get(key_type)
        if adapter is None:
            raise ConfigurationError(f"No key adapter registered for {key_type.__name__}")
        return adapter

    def to_string(self, key: Any) -> str:
        return self.require(type(key)).to_string(key)

    def from_string(self, key_type: type, value: str) -> Any:
        return self.require(key_type).from_string(value)

    def __contains__(self, key_type: type) -> bool:
        return key_type in self._adapters


# Process-wide registry; single writer at startup, read-only afterwards.
key_adapters = KeyAdapterRegistry()
