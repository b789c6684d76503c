from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .errors import StateParseError
from .reflector import AttributeDescriptor, ValueKind


def encode(value: Any, descriptor: AttributeDescriptor, scope: Any, *, omit_none: bool) -> Any:
    """Convert an attribute value to its JSON-compatible form.

    Nested models are encoded with the same `scope` as their parent, so a
    nested attribute is written only if its own declaration allows it.
    `omit_none` drops unset scalars inside nested models (map form).
    """
    if descriptor.kind is ValueKind.MODEL:
        if value is None:
            return None
        return value.encode_attributes(scope, omit_none=omit_none)

    if descriptor.kind is ValueKind.MODEL_LIST:
        # lists are always present, an unset list is written as []
        return [item.encode_attributes(scope, omit_none=omit_none) for item in value or ()]

    if value is None:
        return None
    return descriptor.adapter.dump_python(value, mode="json")


def decode(raw: Any, descriptor: AttributeDescriptor, scope: Any) -> Any:
    """Convert a JSON-compatible value back to the declared attribute type.

    Raises StateParseError when `raw` does not fit the declaration.
    """
    if descriptor.kind is ValueKind.MODEL:
        if raw is None:
            return None
        return _decode_model(raw, descriptor, scope)

    if descriptor.kind is ValueKind.MODEL_LIST:
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise StateParseError(
                f"{descriptor.name}: expected a list, got {type(raw).__name__}"
            )
        return [_decode_model(item, descriptor, scope) for item in raw]

    try:
        return descriptor.adapter.validate_python(raw)
    except ValidationError as ex:
        raise StateParseError(f"{descriptor.name}: invalid value {raw!r}") from ex


def _decode_model(raw: Any, descriptor: AttributeDescriptor, scope: Any) -> Any:
    if not isinstance(raw, Mapping):
        raise StateParseError(
            f"{descriptor.name}: expected an object, got {type(raw).__name__}"
        )
    try:
        nested = descriptor.model_type()
    except ValidationError as ex:
        raise StateParseError(
            f"{descriptor.name}: {descriptor.model_type.__qualname__} needs defaults for all fields"
        ) from ex
    return nested.from_map(raw, scope)
