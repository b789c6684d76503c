"""
Scoped state persistence for voice-assistant skills.

Models declare per attribute whether it lives in the conversation session,
with the end user, or application-wide. Handlers write exactly the attributes
of their scope to their backing store:

- SessionStateHandler: the session attribute map of the current request
- UserStateHandler: a key-value store partitioned by user id (DynamoDB)
- ApplicationStateHandler: a key-value store partitioned by application id (S3)
"""

from .errors import (
    HandlerNotAttachedError,
    MissingHandlerError,
    PersistenceError,
    StateConfigurationError,
    StateError,
    StateParseError,
)
from .handlers import (
    ApplicationStateHandler,
    SessionStateHandler,
    StateHandler,
    UserStateHandler,
)
from .model import StateModel, StateModelBuilder, attribute_key_for
from .scope import ALL, Ignore, Save, Scope
from .stores import InMemoryStore, KeyValueStore

__all__ = [
    "ALL",
    "ApplicationStateHandler",
    "HandlerNotAttachedError",
    "Ignore",
    "InMemoryStore",
    "KeyValueStore",
    "MissingHandlerError",
    "PersistenceError",
    "Save",
    "Scope",
    "SessionStateHandler",
    "StateConfigurationError",
    "StateError",
    "StateHandler",
    "StateModel",
    "StateModelBuilder",
    "StateParseError",
    "UserStateHandler",
    "attribute_key_for",
]
