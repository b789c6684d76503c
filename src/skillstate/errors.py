from __future__ import annotations


class StateError(Exception):
    """Base error for skill state persistence."""


class StateConfigurationError(StateError, TypeError):
    """A model type declares its persistent attributes in an unusable way."""


class HandlerNotAttachedError(StateError, RuntimeError):
    """save() or remove() was called on a model without a handler."""


class MissingHandlerError(StateError, ValueError):
    """A model builder was completed without a handler."""


class StateParseError(StateError, ValueError):
    """Serialized state could not be parsed into the target model."""


class PersistenceError(StateError, RuntimeError):
    """The backing store failed to read, write or delete state."""
