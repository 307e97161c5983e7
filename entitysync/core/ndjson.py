"""NDJSON encoding of keyed entity streams."""

import json
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, AsyncIterable, AsyncIterator, Callable, Iterable, Iterator, Mapping, Optional, Sequence, Union

from entitysync.core.exceptions import ConfigurationError

KeyFn = Callable[[Any], Any]


def make_key_fn(prop: str, prefix: Optional[str] = None) -> KeyFn:
    """
    Make a key access function.

    Args:
        prop: Name of the entity property used as the key
        prefix: Prefix prepended to the key, separated by a dot

    Returns:
        Function returning the key of an entity
    """
    def key_fn(obj: Any) -> Any:
        key = obj[prop] if isinstance(obj, Mapping) else getattr(obj, prop)
        if prefix:
            key = f"{prefix}.{key}"
        return key
    return key_fn


@dataclass(frozen=True)
class KeySpec:
    """Either a property name (with optional prefix) or a key function."""

    prop: Optional[str] = None
    prefix: Optional[str] = None
    fn: Optional[KeyFn] = None

    def __post_init__(self):
        if (self.prop is None) == (self.fn is None):
            raise ConfigurationError("Key specification needs exactly one of a property name or a function")

    @classmethod
    def for_property(cls, name: str, prefix: Optional[str] = None) -> "KeySpec":
        return cls(prop=name, prefix=prefix)

    @classmethod
    def for_function(cls, fn: KeyFn) -> "KeySpec":
        return cls(fn=fn)

    def to_key_fn(self) -> KeyFn:
        if self.fn is not None:
            return self.fn
        return make_key_fn(self.prop, self.prefix)

    @classmethod
    def resolve(cls, key: Union["KeySpec", KeyFn, str]) -> KeyFn:
        """
        Resolve a key specification to a single key function.

        Raises:
            ConfigurationError: If the key is not a KeySpec, callable or string
        """
        if isinstance(key, KeySpec):
            return key.to_key_fn()
        if isinstance(key, str):
            return cls.for_property(key).to_key_fn()
        if callable(key):
            return key
        raise ConfigurationError(f"Unsupported key specification: {key!r}")


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        if obj.tzinfo is not None:
            obj = obj.astimezone(timezone.utc).replace(tzinfo=None)
            return obj.isoformat(timespec="milliseconds") + "Z"
        return obj.isoformat()
    if isinstance(obj, date):
        return obj.isoformat()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def stringify(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False, default=_json_default) + "\n"


class NDJSONEncoder:
    """
    Encodes a sequence of entities as NDJSON.

    Each entity becomes one line holding the two-element array
    ``[key, entity]``. The prefix objects are emitted, one per line, before
    the entities and the suffix objects after them.
    """

    def __init__(self, key: KeyFn, prefixes: Sequence[Any] = (), suffixes: Sequence[Any] = ()):
        self.key = key
        self.prefixes = list(prefixes)
        self.suffixes = list(suffixes)

    def encode_entity(self, obj: Any) -> str:
        return stringify([self.key(obj), obj])

    def encode(self, entities: Iterable[Any]) -> Iterator[str]:
        for obj in self.prefixes:
            yield stringify(obj)
        for obj in entities:
            yield self.encode_entity(obj)
        for obj in self.suffixes:
            yield stringify(obj)

    async def aencode(self, entities: Union[AsyncIterable[Any], Iterable[Any]]) -> AsyncIterator[str]:
        for obj in self.prefixes:
            yield stringify(obj)
        if isinstance(entities, AsyncIterable):
            async for obj in entities:
                yield self.encode_entity(obj)
        else:
            for obj in entities:
                yield self.encode_entity(obj)
        for obj in self.suffixes:
            yield stringify(obj)
