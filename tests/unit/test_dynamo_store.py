from __future__ import annotations

import pytest
from botocore.exceptions import ClientError

from skillstate import PersistenceError, UserStateHandler
from skillstate.dynamo_store import DynamoKeyValueStore

from dummies import Model, ModelUser


class _FakeDynamo:
    def __init__(self) -> None:
        self.items = {}  # (table, key) -> item
        self.calls = []
        self.fail_with = None

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_with:
            raise ClientError({"Error": {"Code": self.fail_with}}, operation)

    def get_item(self, *, TableName: str, Key, ConsistentRead: bool = False):
        self.calls.append(("get_item", ConsistentRead))
        self._maybe_fail("GetItem")
        item = self.items.get((TableName, Key["model-key"]["S"]))
        return {"Item": item} if item else {}

    def put_item(self, *, TableName: str, Item):
        self._maybe_fail("PutItem")
        self.items[(TableName, Item["model-key"]["S"])] = Item
        return {}

    def delete_item(self, *, TableName: str, Key):
        self._maybe_fail("DeleteItem")
        self.items.pop((TableName, Key["model-key"]["S"]), None)
        return {}


def test_get_missing_returns_none():
    store = DynamoKeyValueStore("tableName", dynamodb=_FakeDynamo())
    assert store.get("userId/dummies.Model") is None


def test_put_get_delete_roundtrip():
    dynamo = _FakeDynamo()
    store = DynamoKeyValueStore("tableName", dynamodb=dynamo)
    store.put("userId/k", '{"a":1}')
    assert dynamo.items[("tableName", "userId/k")] == {
        "model-key": {"S": "userId/k"},
        "state": {"S": '{"a":1}'},
    }
    assert store.get("userId/k") == '{"a":1}'
    assert ("get_item", True) in dynamo.calls

    store.delete("userId/k")
    assert store.get("userId/k") is None


def test_item_without_state_attribute_is_an_error():
    dynamo = _FakeDynamo()
    dynamo.items[("t", "k")] = {"model-key": {"S": "k"}}
    store = DynamoKeyValueStore("t", dynamodb=dynamo)
    with pytest.raises(PersistenceError):
        store.get("k")


@pytest.mark.parametrize("op", ["get", "put", "delete"])
def test_client_errors_become_persistence_errors(op):
    dynamo = _FakeDynamo()
    dynamo.fail_with = "ProvisionedThroughputExceededException"
    store = DynamoKeyValueStore("t", dynamodb=dynamo)
    args = ("k", "v") if op == "put" else ("k",)
    with pytest.raises(PersistenceError) as excinfo:
        getattr(store, op)(*args)
    assert isinstance(excinfo.value.__cause__, ClientError)


def test_table_name_is_required():
    with pytest.raises(ValueError):
        DynamoKeyValueStore("", dynamodb=_FakeDynamo())


def test_from_env_missing_vars_raises(monkeypatch):
    monkeypatch.delenv("SKILLSTATE_TABLE", raising=False)
    with pytest.raises(RuntimeError):
        DynamoKeyValueStore.from_env()


def test_user_handler_crud_over_dynamo():
    dynamo = _FakeDynamo()
    handler = UserStateHandler(DynamoKeyValueStore("tableName", dynamodb=dynamo), "userId")

    model = Model(
        id="id",
        sample_string="value",
        sample_user="sampleUser",
        sample_application=True,
        users=[ModelUser(name="a"), ModelUser(name="b")],
    )
    model.with_handler(handler).save()
    assert ("tableName", "userId/dummies.Model:id") in dynamo.items

    read = handler.read(Model, "id")
    assert read is not None
    assert read.id == "id"
    assert read.sample_string is None
    assert read.sample_application is False
    assert read.sample_user == "sampleUser"
    assert [u.name for u in read.users] == ["a", "b"]

    model.remove()
    assert handler.read(Model, "id") is None
