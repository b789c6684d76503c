from __future__ import annotations

import threading
import types
import typing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple, Type, Union

from pydantic import PydanticUndefinedAnnotation, PydanticUserError, TypeAdapter

from .errors import StateConfigurationError
from .scope import ALL, Ignore, Save, Scope


class ValueKind(str, Enum):
    PRIMITIVE = "primitive"
    MODEL = "model"
    MODEL_LIST = "model_list"


@dataclass(frozen=True)
class AttributeDescriptor:
    """Persistence metadata of one declared model attribute.

    Fields
    - name: attribute name, also the key in map and text form.
    - scopes: scopes the attribute is saved in. Empty means universal.
    - ignored: never persisted, whatever the scope.
    - ignored_in: scopes the attribute is skipped in despite `scopes`.
    - kind: how the codec treats the value.
    - model_type: nested model class for MODEL and MODEL_LIST kinds.
    - adapter: validates decoded values against the declared annotation.
    """

    name: str
    scopes: FrozenSet[Scope] = frozenset()
    ignored: bool = False
    ignored_in: FrozenSet[Scope] = frozenset()
    kind: ValueKind = ValueKind.PRIMITIVE
    model_type: Optional[type] = None
    adapter: Optional[TypeAdapter] = field(default=None, compare=False, repr=False)

    def in_scope(self, scope: Any) -> bool:
        if self.ignored:
            return False
        if scope is ALL:
            return not self.ignored_in
        if scope in self.ignored_in:
            return False
        return not self.scopes or scope in self.scopes


# Process-wide, compute-once per model type. Entries are never replaced.
_CACHE: Dict[type, Tuple[AttributeDescriptor, ...]] = {}
_CACHE_LOCK = threading.Lock()


def classify(model_cls: Type[Any]) -> Tuple[AttributeDescriptor, ...]:
    """Return the attribute descriptors of `model_cls` in declaration order."""
    cached = _CACHE.get(model_cls)
    if cached is not None:
        return cached
    with _CACHE_LOCK:
        cached = _CACHE.get(model_cls)
        if cached is None:
            cached = _build_descriptors(model_cls)
            _CACHE[model_cls] = cached
        return cached


def has_scoped_attribute(model_cls: Type[Any], scope: Scope) -> bool:
    """True if a non-ignored attribute declares `scope`, even if it is skipped
    there by a scope-specific Ignore."""
    return any(not d.ignored and scope in d.scopes for d in classify(model_cls))


def save_state_fields(model_cls: Type[Any], scope: Any = ALL) -> Tuple[AttributeDescriptor, ...]:
    """Descriptors eligible for persistence in `scope` (ALL for no restriction)."""
    return tuple(d for d in classify(model_cls) if d.in_scope(scope))


def _build_descriptors(model_cls: Type[Any]) -> Tuple[AttributeDescriptor, ...]:
    from .model import StateModel

    if not (isinstance(model_cls, type) and issubclass(model_cls, StateModel)):
        raise StateConfigurationError(f"{model_cls!r} is not a StateModel subclass")

    if not model_cls.__pydantic_complete__:
        try:
            model_cls.model_rebuild()
        except (PydanticUndefinedAnnotation, PydanticUserError) as ex:
            raise StateConfigurationError(
                f"Cannot resolve attribute annotations of {model_cls.__qualname__}"
            ) from ex

    class_scope = getattr(model_cls, "__state_scope__", None)
    if class_scope is not None and not isinstance(class_scope, Scope):
        raise StateConfigurationError(
            f"{model_cls.__qualname__}.__state_scope__ must be a Scope, got {class_scope!r}"
        )

    out = []
    for name, info in model_cls.model_fields.items():
        saves = [m for m in info.metadata if isinstance(m, Save)]
        ignores = [m for m in info.metadata if isinstance(m, Ignore)]
        where = f"{model_cls.__qualname__}.{name}"
        if len(saves) > 1 or len(ignores) > 1:
            raise StateConfigurationError(f"{where}: duplicate Save/Ignore markers")
        if saves and ignores:
            raise StateConfigurationError(f"{where}: declared both Save and Ignore")

        if saves:
            scopes = saves[0].scopes
        elif class_scope is not None:
            scopes = frozenset({class_scope})
        elif ignores:
            # ignore marker on a field that is not saved anywhere
            scopes = frozenset()
        else:
            # plain pydantic field, not part of persisted state
            continue

        ignore = ignores[0] if ignores else None
        ignored = ignore is not None and (not ignore.scopes or class_scope is None)
        ignored_in = ignore.scopes if ignore is not None else frozenset()

        kind, nested = _value_kind(info.annotation, where)
        try:
            adapter = TypeAdapter(info.annotation) if kind is ValueKind.PRIMITIVE else None
        except PydanticUserError as ex:
            raise StateConfigurationError(f"{where}: unsupported annotation") from ex

        out.append(
            AttributeDescriptor(
                name=name,
                scopes=scopes,
                ignored=ignored,
                ignored_in=ignored_in,
                kind=kind,
                model_type=nested,
                adapter=adapter,
            )
        )
    return tuple(out)


def _strip_optional(tp: Any) -> Any:
    if typing.get_origin(tp) in (Union, types.UnionType):
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return tp


def _is_model(tp: Any) -> bool:
    from .model import StateModel

    return isinstance(tp, type) and issubclass(tp, StateModel)


def _value_kind(annotation: Any, where: str) -> Tuple[ValueKind, Optional[type]]:
    tp = _strip_optional(annotation)
    if _is_model(tp):
        return ValueKind.MODEL, tp

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)
    if origin is list and len(args) == 1 and _is_model(_strip_optional(args[0])):
        return ValueKind.MODEL_LIST, _strip_optional(args[0])
    if origin is not None and any(_is_model(_strip_optional(a)) for a in args):
        raise StateConfigurationError(
            f"{where}: nested models are only supported directly or in a list"
        )
    return ValueKind.PRIMITIVE, None
