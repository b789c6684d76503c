from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Annotated, Any, ClassVar, Dict, Optional, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    PrivateAttr,
    StringConstraints,
    TypeAdapter,
    ValidationError,
)

from . import codec, reflector
from .errors import HandlerNotAttachedError, MissingHandlerError, StateParseError
from .scope import ALL, Save, Scope

if TYPE_CHECKING:
    from .handlers import StateHandler


ID_PATTERN = r"^[A-Za-z0-9_-]+$"

# Ids become part of composite storage keys, so separators like "/" or ":"
# are rejected.
ModelId = Annotated[str, StringConstraints(pattern=ID_PATTERN)]

M = TypeVar("M", bound="StateModel")

_ID_ADAPTER: TypeAdapter = TypeAdapter(Optional[ModelId])


def type_name(model_cls: type) -> str:
    return f"{model_cls.__module__}.{model_cls.__qualname__}"


def attribute_key_for(model_cls: type, model_id: Optional[str] = None) -> str:
    """Storage address of a model: "<type name>" or "<type name>:<id>"."""
    name = type_name(model_cls)
    return f"{name}:{model_id}" if model_id else name


class StateModel(BaseModel):
    """
    Base class for state persisted across session, user and application scope.

    Declare persistent attributes with `Save`/`Ignore` markers:

        class Game(StateModel):
            score: Annotated[int, Save(Scope.USER, Scope.SESSION)] = 0
            top_score: Annotated[int, Save(Scope.APPLICATION)] = 0

    Alternatively set `__state_scope__` to save every declared field in that
    scope. Fields without a marker on an unscoped model are not persisted.

    Notes
    - Assignment is validated; `model.id = "a/b"` raises `ValidationError`
      and keeps the previous id.
    - A handler is attached with `with_handler()` or through `create()`; it is
      shared, the model never closes or owns it.
    """

    model_config = ConfigDict(validate_assignment=True)

    __state_scope__: ClassVar[Optional[Scope]] = None

    id: Annotated[Optional[ModelId], Save()] = None

    _handler: Optional["StateHandler"] = PrivateAttr(default=None)

    # -------- Handler --------
    @property
    def handler(self) -> Optional["StateHandler"]:
        return self._handler

    def with_handler(self: M, handler: "StateHandler") -> M:
        self._handler = handler
        return self

    @classmethod
    def create(cls: Type[M]) -> "StateModelBuilder":
        return StateModelBuilder(cls)

    # -------- Identity --------
    @property
    def attribute_key(self) -> str:
        return attribute_key_for(type(self), self.id)

    # -------- Scope queries --------
    @classmethod
    def save_state_fields(cls, scope: Any = ALL) -> list[str]:
        return [d.name for d in reflector.save_state_fields(cls, scope)]

    @classmethod
    def has_session_scoped_field(cls) -> bool:
        return reflector.has_scoped_attribute(cls, Scope.SESSION)

    @classmethod
    def has_user_scoped_field(cls) -> bool:
        return reflector.has_scoped_attribute(cls, Scope.USER)

    @classmethod
    def has_application_scoped_field(cls) -> bool:
        return reflector.has_scoped_attribute(cls, Scope.APPLICATION)

    # -------- Serialization --------
    def encode_attributes(self, scope: Any = ALL, *, omit_none: bool) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for d in reflector.save_state_fields(type(self), scope):
            value = codec.encode(getattr(self, d.name), d, scope, omit_none=omit_none)
            if value is None and omit_none:
                continue
            out[d.name] = value
        return out

    def to_map(self, scope: Any = ALL) -> Dict[str, Any]:
        """Attributes valid in `scope` as a dict. Unset scalars are left out,
        list attributes are always present."""
        return self.encode_attributes(scope, omit_none=True)

    def to_text(self, scope: Any = ALL) -> str:
        """Compact JSON of the attributes valid in `scope`, in declaration order,
        unset scalars included as null."""
        return json.dumps(self.encode_attributes(scope, omit_none=False), separators=(",", ":"))

    def from_map(self: M, data: Mapping[str, Any], scope: Any = ALL) -> M:
        """Populate attributes valid in `scope` from `data`.

        Keys missing from `data` keep their current value, unknown keys are
        ignored. The merged result is validated as a whole (field constraints
        and validators included); nothing is assigned if it fails.
        """
        if not isinstance(data, Mapping):
            raise StateParseError(f"expected an object, got {type(data).__name__}")
        decoded = {
            d.name: codec.decode(data[d.name], d, scope)
            for d in reflector.save_state_fields(type(self), scope)
            if d.name in data
        }
        if not decoded:
            return self

        current = {name: getattr(self, name) for name in type(self).model_fields}
        try:
            validated = type(self).model_validate({**current, **decoded})
        except ValidationError as ex:
            raise StateParseError(
                f"Invalid state for {type(self).__qualname__}: {', '.join(decoded)}"
            ) from ex

        # swap in validated values only; assignment one by one could fail midway
        for name in decoded:
            self.__dict__[name] = validated.__dict__[name]
        self.__pydantic_fields_set__.update(decoded)
        return self

    def from_text(self: M, text: str | bytes, scope: Any = ALL) -> M:
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as ex:
            raise StateParseError("Failed to parse state JSON") from ex
        return self.from_map(data, scope)

    # -------- Persistence --------
    def _require_handler(self) -> "StateHandler":
        if self._handler is None:
            raise HandlerNotAttachedError(
                f"No handler attached to {type(self).__qualname__}"
            )
        return self._handler

    def save(self) -> None:
        self._require_handler().save(self)

    def remove(self) -> None:
        self._require_handler().remove(self)


class StateModelBuilder:
    """Builds a model with a handler attached and an optional id."""

    def __init__(self, model_cls: Type[M]) -> None:
        self._model_cls = model_cls
        self._handler: Optional["StateHandler"] = None
        self._id: Optional[str] = None

    def with_handler(self, handler: "StateHandler") -> "StateModelBuilder":
        self._handler = handler
        return self

    def with_id(self, model_id: Optional[str]) -> "StateModelBuilder":
        self._id = _ID_ADAPTER.validate_python(model_id or None)
        return self

    def build(self) -> M:
        if self._handler is None:
            raise MissingHandlerError(
                f"A handler is required to build {self._model_cls.__qualname__}"
            )
        model = self._model_cls(id=self._id)
        return model.with_handler(self._handler)
