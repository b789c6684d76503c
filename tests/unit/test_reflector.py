from __future__ import annotations

import threading
from typing import Annotated, Dict, Optional

import pytest

from skillstate import ALL, Ignore, Save, Scope, StateConfigurationError, StateModel
from skillstate import reflector
from skillstate.reflector import ValueKind

from dummies import ApplicationModel, EmptyModel, Model, ModelUser, SessionModel, UserModel


def _names(model_cls, scope=ALL):
    return {d.name for d in reflector.save_state_fields(model_cls, scope)}


def test_classify_keeps_declaration_order():
    names = [d.name for d in reflector.classify(Model)]
    assert names == [
        "id",
        "sample_string",
        "sample_user",
        "sample_application",
        "sample_session",
        "users",
        "favorite",
        "sample_ignore",
    ]


def test_classify_is_cached_per_type():
    first = reflector.classify(Model)
    assert reflector.classify(Model) is first
    assert reflector.classify(ModelUser) is not first


def test_classify_concurrent_first_access_computes_once():
    class Fresh(StateModel):
        value: Annotated[Optional[int], Save(Scope.USER)] = None

    results = []

    def worker():
        results.append(reflector.classify(Fresh))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert all(r is results[0] for r in results)


def test_value_kinds():
    kinds = {d.name: d.kind for d in reflector.classify(Model)}
    assert kinds["sample_string"] is ValueKind.PRIMITIVE
    assert kinds["sample_session"] is ValueKind.PRIMITIVE
    assert kinds["users"] is ValueKind.MODEL_LIST
    assert kinds["favorite"] is ValueKind.MODEL


def test_unmarked_fields_are_not_persisted():
    assert "private_field" not in {d.name for d in reflector.classify(Model)}
    assert [d.name for d in reflector.classify(EmptyModel)] == ["id"]


def test_has_scoped_attribute():
    assert reflector.has_scoped_attribute(Model, Scope.SESSION)
    assert reflector.has_scoped_attribute(Model, Scope.USER)
    assert reflector.has_scoped_attribute(Model, Scope.APPLICATION)
    assert ModelUser.has_session_scoped_field()
    assert ModelUser.has_user_scoped_field()
    assert not ModelUser.has_application_scoped_field()
    assert not EmptyModel.has_session_scoped_field()
    assert not EmptyModel.has_user_scoped_field()
    assert not EmptyModel.has_application_scoped_field()


def test_ignored_attribute_excluded_everywhere():
    for scope in (ALL, Scope.SESSION, Scope.USER, Scope.APPLICATION):
        assert "sample_ignore" not in _names(Model, scope)


def test_save_state_fields_filter_by_scope():
    assert _names(Model, Scope.APPLICATION) == {"id", "sample_application"}
    assert _names(Model, Scope.USER) == {"id", "sample_user", "users", "favorite"}
    assert "sample_application" not in _names(Model, Scope.SESSION)


def test_save_state_fields_session_model():
    assert _names(SessionModel) == {"id", "sample_string"}
    assert _names(SessionModel, Scope.SESSION) == {
        "id",
        "sample_string",
        "sample_ignore_user",
        "sample_ignore_application",
    }
    assert _names(SessionModel, Scope.USER) == {"id"}
    assert _names(SessionModel, Scope.APPLICATION) == {"id"}


def test_save_state_fields_user_model():
    assert _names(UserModel, Scope.USER) == {
        "id",
        "sample_string",
        "sample_ignore_session",
        "sample_ignore_application",
    }
    session = _names(UserModel, Scope.SESSION)
    assert "sample_string" not in session
    assert "sample_ignore_user" not in _names(UserModel, Scope.USER)


def test_save_state_fields_application_model():
    fields = _names(ApplicationModel, Scope.APPLICATION)
    assert {"sample_string", "sample_ignore_session", "sample_ignore_user"} <= fields
    assert "sample_ignore_application" not in fields
    assert "sample_ignore" not in fields
    assert _names(ApplicationModel, Scope.USER) == {"id"}


def test_save_and_ignore_on_same_attribute_is_rejected():
    class Broken(StateModel):
        value: Annotated[Optional[str], Save(Scope.USER), Ignore()] = None

    with pytest.raises(StateConfigurationError):
        reflector.classify(Broken)


def test_nested_model_in_dict_is_rejected():
    class Broken(StateModel):
        by_name: Annotated[Dict[str, ModelUser], Save(Scope.USER)] = {}

    with pytest.raises(StateConfigurationError):
        reflector.classify(Broken)


def test_invalid_class_scope_is_rejected():
    class Broken(StateModel):
        __state_scope__ = "session"

        value: Optional[str] = None

    with pytest.raises(StateConfigurationError):
        reflector.classify(Broken)


def test_save_marker_requires_scope_values():
    with pytest.raises(StateConfigurationError):
        Save("user")


def test_classify_rejects_non_models():
    with pytest.raises(StateConfigurationError):
        reflector.classify(dict)


class _IgnoredInOwnScope(StateModel):
    __state_scope__ = Scope.SESSION

    value: Annotated[Optional[str], Ignore(Scope.SESSION)] = None


def test_has_scoped_attribute_counts_scope_specific_ignores():
    assert _IgnoredInOwnScope.has_session_scoped_field()
    assert "value" not in _names(_IgnoredInOwnScope, Scope.SESSION)
