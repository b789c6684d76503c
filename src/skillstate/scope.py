from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet

from .errors import StateConfigurationError


class Scope(str, Enum):
    """Visibility tier an attribute is persisted in.

    The tiers are independent: an attribute saved in USER scope is not
    implicitly saved in SESSION scope, it has to say so.
    """

    SESSION = "session"
    USER = "user"
    APPLICATION = "application"


class _AllScopes:
    """Wildcard meaning "no scope restriction"."""

    _instance = None

    def __new__(cls) -> "_AllScopes":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ALL"


ALL = _AllScopes()


def _scope_set(scopes: tuple) -> FrozenSet[Scope]:
    out = set()
    for s in scopes:
        if not isinstance(s, Scope):
            raise StateConfigurationError(f"expected Scope, got {s!r}")
        out.add(s)
    return frozenset(out)


@dataclass(frozen=True)
class Save:
    """Marks a model attribute as persistent.

    Usage: ``name: Annotated[Optional[str], Save(Scope.USER)] = None``

    - No scopes on a model that declares ``__state_scope__`` means the model's
      scope.
    - No scopes otherwise means the attribute is universal and is written in
      every scope (the model id works this way).
    """

    scopes: FrozenSet[Scope]

    def __init__(self, *scopes: Scope) -> None:
        object.__setattr__(self, "scopes", _scope_set(scopes))


@dataclass(frozen=True)
class Ignore:
    """Excludes an attribute from persistence.

    Without scopes the attribute is never read or written. With scopes it is
    skipped only when one of those scopes is requested.
    """

    scopes: FrozenSet[Scope]

    def __init__(self, *scopes: Scope) -> None:
        object.__setattr__(self, "scopes", _scope_set(scopes))
