"""JSON encoding and typed decoding of message bodies.

Bodies are UTF-8 JSON. Pydantic models are written by alias. Decoding goes
through a pydantic ``TypeAdapter`` after object keys are matched to field
names case-insensitively, at every level of the target type (nested models,
dataclasses, TypedDicts, list and dict members). A payload published as
``{"Text": ..., "Tags": ...}`` decodes into a model whose fields are
``text``/``tags`` and vice versa.

Examples
--------
>>> encode({"a": 1})
b'{"a":1}'
>>> decode(b'[1, 2]', list[int])
[1, 2]
"""
from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping, MutableMapping, MutableSequence, Sequence
from collections.abc import Set as AbstractSet
from functools import lru_cache
from types import UnionType
from typing import Annotated, Any, Optional, Type, TypeVar, Union, get_args, get_origin, get_type_hints

from pydantic import BaseModel, TypeAdapter, ValidationError

from .exceptions import MessageDeserializationError


T = TypeVar("T")


@lru_cache(maxsize=128)
def _adapter(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


def encode(payload: Any) -> bytes:
    """Serialize ``payload`` to compact UTF-8 JSON bytes."""
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(by_alias=True).encode("utf-8")
    return _adapter(type(payload)).dump_json(payload, by_alias=True)


def jsonable(value: Any) -> Any:
    """Return ``value`` as plain JSON-compatible Python data (aliases applied)."""
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    return _adapter(type(value)).dump_python(value, mode="json", by_alias=True)


def decode_text(raw: bytes) -> str:
    """Decode a body as UTF-8 text (raw reads)."""
    return raw.decode("utf-8", errors="replace")


def target_name(target: Any) -> str:
    return getattr(target, "__name__", None) or repr(target)


def decode(raw: bytes, target: Type[T]) -> T:
    """Parse a JSON body into ``target``.

    Object keys are matched to field names without regard to case, at every
    level the target type describes.

    Raises:
        MessageDeserializationError: If the body is not JSON or does not
            validate against ``target``.
    """
    try:
        data = json.loads(raw)
        return _adapter(target).validate_python(_fold_keys(data, target))
    except (ValueError, ValidationError) as exc:
        # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
        raise MessageDeserializationError(target_name(target), exc) from exc


def _is_model(target: Any) -> bool:
    try:
        return isinstance(target, type) and issubclass(target, BaseModel)
    except TypeError:
        # Parameterized generics such as list[int] on older interpreters
        return False


def _is_typeddict(target: Any) -> bool:
    # Covers both typing and typing_extensions TypedDict classes
    return issubclass(target, dict) and hasattr(target, "__required_keys__")


@lru_cache(maxsize=128)
def _field_lookup(target: Any) -> Optional[dict[str, tuple[str, Any]]]:
    """Map lower-cased field names and aliases to ``(wire key, annotation)``.

    Returns ``None`` for types without named fields.
    """
    if get_origin(target) is not None:
        return None
    if _is_model(target):
        lookup: dict[str, tuple[str, Any]] = {}
        for name, field in target.model_fields.items():
            key = field.alias or name
            lookup[name.lower()] = (key, field.annotation)
            lookup[key.lower()] = (key, field.annotation)
        return lookup
    if isinstance(target, type) and (dataclasses.is_dataclass(target) or _is_typeddict(target)):
        hints = get_type_hints(target)
        return {name.lower(): (name, hint) for name, hint in hints.items()}
    return None


def _fold_keys(data: Any, target: Any) -> Any:
    """Rename object keys in ``data`` to the field names ``target`` expects, ignoring case."""
    origin = get_origin(target)
    args = get_args(target)

    if origin is Annotated:
        return _fold_keys(data, args[0])
    if origin is Union or origin is UnionType:
        members = [arg for arg in args if arg is not type(None)]
        return _fold_keys(data, members[0]) if len(members) == 1 else data

    if isinstance(data, list):
        if origin in (list, set, frozenset, Sequence, MutableSequence, AbstractSet) and args:
            return [_fold_keys(item, args[0]) for item in data]
        if origin is tuple and args:
            if len(args) == 2 and args[1] is Ellipsis:
                return [_fold_keys(item, args[0]) for item in data]
            if len(args) == len(data):
                return [_fold_keys(item, arg) for item, arg in zip(data, args)]
        return data

    if not isinstance(data, dict):
        return data
    if origin in (dict, Mapping, MutableMapping) and len(args) == 2:
        return {key: _fold_keys(value, args[1]) for key, value in data.items()}

    lookup = _field_lookup(target)
    if lookup is None:
        return data
    folded: dict[str, Any] = {}
    for key, value in data.items():
        match = lookup.get(str(key).lower())
        if match is None:
            folded[key] = value
        else:
            folded[match[0]] = _fold_keys(value, match[1])
    return folded
