from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

from .errors import PersistenceError


logger = logging.getLogger(__name__)

# Environment variable names for convenience configuration
ENV_TABLE = "SKILLSTATE_TABLE"

DEFAULT_KEY_ATTRIBUTE = "model-key"
DEFAULT_VALUE_ATTRIBUTE = "state"


class DynamoKeyValueStore:
    """
    DynamoDB-backed `KeyValueStore`; one item per storage key.

    Item layout
    - `<key_attribute>` (S, hash key): storage key, e.g. "user-1/app.models.Game:g1"
    - `<value_attribute>` (S): JSON text of the model in the handler's scope

    Reads are strongly consistent so a save followed by a read in the same
    request sees its own write. Failures surface as `PersistenceError`.

    Environment variables (optional)
    - `SKILLSTATE_TABLE`: table name used by `from_env()`
    """

    def __init__(
        self,
        table_name: str,
        *,
        dynamodb: Optional[object] = None,
        region_name: Optional[str] = None,
        key_attribute: str = DEFAULT_KEY_ATTRIBUTE,
        value_attribute: str = DEFAULT_VALUE_ATTRIBUTE,
    ) -> None:
        if not table_name:
            raise ValueError("table_name is required")
        self._dynamodb = dynamodb or boto3.client("dynamodb", region_name=region_name)
        self._table = table_name
        self._key_attr = key_attribute
        self._value_attr = value_attribute

    @property
    def table_name(self) -> str:
        return self._table

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "DynamoKeyValueStore":
        table = os.environ.get(ENV_TABLE)
        if not table:
            raise RuntimeError(
                f"Missing required environment variables for DynamoDB state store: {ENV_TABLE}"
            )
        return cls(table)

    # -------- Core operations --------
    def _key(self, key: str) -> Dict[str, Any]:
        return {self._key_attr: {"S": key}}

    def get(self, key: str) -> Optional[str]:
        try:
            resp = self._dynamodb.get_item(
                TableName=self._table, Key=self._key(key), ConsistentRead=True
            )
        except ClientError as e:
            raise PersistenceError(f"DynamoDB get_item failed for {key}") from e

        item = resp.get("Item")
        if not item:
            return None
        value = item.get(self._value_attr, {}).get("S")
        if value is None:
            raise PersistenceError(
                f"DynamoDB item {key} has no string attribute {self._value_attr!r}"
            )
        return value

    def put(self, key: str, value: str) -> None:
        item = self._key(key)
        item[self._value_attr] = {"S": value}
        try:
            self._dynamodb.put_item(TableName=self._table, Item=item)
        except ClientError as e:
            raise PersistenceError(f"DynamoDB put_item failed for {key}") from e
        logger.debug("Wrote %d chars to %s/%s", len(value), self._table, key)

    def delete(self, key: str) -> None:
        try:
            self._dynamodb.delete_item(TableName=self._table, Key=self._key(key))
        except ClientError as e:
            raise PersistenceError(f"DynamoDB delete_item failed for {key}") from e
