from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import MutableMapping
from typing import Optional, Type, TypeVar

from .model import StateModel, attribute_key_for
from .scope import Scope
from .stores import KeyValueStore


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=StateModel)


def _require_model_type(model_cls: type) -> None:
    if not (isinstance(model_cls, type) and issubclass(model_cls, StateModel)):
        raise TypeError(f"{model_cls!r} is not a StateModel subclass")


class StateHandler(ABC):
    """
    Persists models in one scope of one backing store.

    Subclasses provide the scope and raw text access by storage key. Writes
    serialize with the handler's scope (`to_text`, or map form for the
    session) and reads go through `from_text(scope)`, so only attributes
    valid in that scope reach the store or the model.

    Store failures propagate unchanged. A read that finds nothing returns None.
    """

    @property
    @abstractmethod
    def scope(self) -> Scope:
        ...

    @abstractmethod
    def storage_key(self, model_cls: type, model_id: Optional[str] = None) -> str:
        ...

    @abstractmethod
    def _get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def _put(self, key: str, text: str) -> None:
        ...

    @abstractmethod
    def _delete(self, key: str) -> None:
        ...

    def _encode(self, model: StateModel) -> str:
        return model.to_text(self.scope)

    # -------- Keys --------
    def attribute_key(self, model: StateModel) -> str:
        return model.attribute_key

    def attribute_key_for(self, model_cls: type, model_id: Optional[str] = None) -> str:
        return attribute_key_for(model_cls, model_id)

    # -------- Models --------
    def create_model(self, model_cls: Type[M], model_id: Optional[str] = None) -> M:
        """New instance of `model_cls` with this handler attached."""
        _require_model_type(model_cls)
        return model_cls.create().with_handler(self).with_id(model_id).build()

    def save(self, model: StateModel) -> None:
        _require_model_type(type(model))
        key = self.storage_key(type(model), model.id)
        text = self._encode(model)
        logger.debug("Saving %s state under %s", self.scope.value, key)
        self._put(key, text)

    def read(self, model_cls: Type[M], model_id: Optional[str] = None) -> Optional[M]:
        model = self.create_model(model_cls, model_id)
        key = self.storage_key(model_cls, model.id)
        text = self._get(key)
        if text is None:
            logger.debug("No %s state under %s", self.scope.value, key)
            return None
        logger.debug("Read %s state from %s", self.scope.value, key)
        return model.from_text(text, self.scope)

    def exists(self, model_cls: type, model_id: Optional[str] = None) -> bool:
        _require_model_type(model_cls)
        return self._get(self.storage_key(model_cls, model_id)) is not None

    def remove(self, model: StateModel) -> None:
        _require_model_type(type(model))
        key = self.storage_key(type(model), model.id)
        logger.debug("Removing %s state under %s", self.scope.value, key)
        self._delete(key)


class SessionStateHandler(StateHandler):
    """
    Keeps state in the session attributes of the current conversation.

    `session` is the caller's attribute mapping (string keys and values); the
    handler writes into it but never creates or clears it.
    """

    def __init__(self, session: MutableMapping[str, str]) -> None:
        self._session = session

    @property
    def session(self) -> MutableMapping[str, str]:
        return self._session

    @property
    def scope(self) -> Scope:
        return Scope.SESSION

    def storage_key(self, model_cls: type, model_id: Optional[str] = None) -> str:
        return attribute_key_for(model_cls, model_id)

    def _encode(self, model: StateModel) -> str:
        # map form leaves unset scalars out, so reading the session back into
        # a live model never overwrites its values with nulls
        return json.dumps(model.to_map(Scope.SESSION), separators=(",", ":"))

    def _get(self, key: str) -> Optional[str]:
        return self._session.get(key)

    def _put(self, key: str, text: str) -> None:
        self._session[key] = text

    def _delete(self, key: str) -> None:
        self._session.pop(key, None)


class _StoreStateHandler(StateHandler):
    """Handler backed by a `KeyValueStore`, partitioned by an external id."""

    def __init__(self, store: KeyValueStore, partition: str, what: str) -> None:
        if not partition:
            raise ValueError(f"{what} is required")
        self._store = store
        self._partition = partition

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def storage_key(self, model_cls: type, model_id: Optional[str] = None) -> str:
        return f"{self._partition}/{attribute_key_for(model_cls, model_id)}"

    def _get(self, key: str) -> Optional[str]:
        return self._store.get(key)

    def _put(self, key: str, text: str) -> None:
        self._store.put(key, text)

    def _delete(self, key: str) -> None:
        self._store.delete(key)


class UserStateHandler(_StoreStateHandler):
    """Persists USER-scoped attributes per end user (e.g. in DynamoDB)."""

    def __init__(self, store: KeyValueStore, user_id: str) -> None:
        super().__init__(store, user_id, "user_id")

    @property
    def user_id(self) -> str:
        return self._partition

    @property
    def scope(self) -> Scope:
        return Scope.USER


class ApplicationStateHandler(_StoreStateHandler):
    """Persists APPLICATION-scoped attributes shared by all users of a skill."""

    def __init__(self, store: KeyValueStore, application_id: str) -> None:
        super().__init__(store, application_id, "application_id")

    @property
    def application_id(self) -> str:
        return self._partition

    @property
    def scope(self) -> Scope:
        return Scope.APPLICATION
