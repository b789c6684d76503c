from __future__ import annotations

import logging
import os
from typing import Optional

import boto3
from botocore.exceptions import ClientError
from cryptography.fernet import Fernet, InvalidToken

from .errors import PersistenceError


logger = logging.getLogger(__name__)

# Environment variable names for convenience configuration
ENV_BUCKET = "SKILLSTATE_BUCKET"
ENV_PREFIX = "SKILLSTATE_PREFIX"
ENV_FERNET_KEY = "SKILLSTATE_FERNET_KEY"


class S3KeyValueStore:
    """
    S3-backed `KeyValueStore`, optionally encrypted at rest using Fernet.

    Usage
    - Each storage key maps to the object `<prefix><key>.json` in `bucket`.
    - `get()` returns None when the object does not exist.
    - With `fernet_key`, bodies are Fernet tokens; a token that fails to
      decrypt raises `PersistenceError`.

    Environment variables (optional)
    - `SKILLSTATE_BUCKET`:     S3 bucket holding state objects
    - `SKILLSTATE_PREFIX`:     key prefix, e.g. "skill-state/"
    - `SKILLSTATE_FERNET_KEY`: urlsafe base64-encoded key for Fernet
    """

    def __init__(
        self,
        bucket: str,
        *,
        s3: Optional[object] = None,
        prefix: str = "",
        fernet_key: str | bytes | None = None,
        region_name: Optional[str] = None,
    ) -> None:
        if not bucket:
            raise ValueError("bucket is required")
        self._s3 = s3 or boto3.client("s3", region_name=region_name)
        self._bucket = bucket
        self._prefix = prefix
        self._fernet = None
        if fernet_key:
            # urlsafe base64 32-byte key, as from Fernet.generate_key()
            self._fernet = Fernet(
                fernet_key.encode("utf-8") if isinstance(fernet_key, str) else fernet_key
            )

    @property
    def bucket(self) -> str:
        return self._bucket

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "S3KeyValueStore":
        bucket = os.environ.get(ENV_BUCKET)
        if not bucket:
            raise RuntimeError(
                f"Missing required environment variables for S3 state store: {ENV_BUCKET}"
            )
        return cls(
            bucket,
            prefix=os.environ.get(ENV_PREFIX, ""),
            fernet_key=os.environ.get(ENV_FERNET_KEY) or None,
        )

    def object_key(self, key: str) -> str:
        return f"{self._prefix}{key}.json"

    # -------- Core operations --------
    def get(self, key: str) -> Optional[str]:
        obj_key = self.object_key(key)
        try:
            resp = self._s3.get_object(Bucket=self._bucket, Key=obj_key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return None
            raise PersistenceError(f"S3 get_object failed for s3://{self._bucket}/{obj_key}") from e

        body = resp["Body"].read()
        if self._fernet is not None:
            try:
                body = self._fernet.decrypt(body)
            except InvalidToken as ex:
                raise PersistenceError(
                    f"Failed to decrypt s3://{self._bucket}/{obj_key}: invalid Fernet token"
                ) from ex
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as ex:
            raise PersistenceError(f"s3://{self._bucket}/{obj_key} is not UTF-8 text") from ex

    def put(self, key: str, value: str) -> None:
        obj_key = self.object_key(key)
        body = value.encode("utf-8")
        content_type = "application/json"
        if self._fernet is not None:
            body = self._fernet.encrypt(body)
            content_type = "application/octet-stream"
        try:
            self._s3.put_object(
                Bucket=self._bucket,
                Key=obj_key,
                Body=body,
                ContentType=content_type,
            )
        except ClientError as e:
            raise PersistenceError(f"S3 put_object failed for s3://{self._bucket}/{obj_key}") from e
        logger.debug("Wrote %d bytes to s3://%s/%s", len(body), self._bucket, obj_key)

    def delete(self, key: str) -> None:
        obj_key = self.object_key(key)
        try:
            self._s3.delete_object(Bucket=self._bucket, Key=obj_key)
        except ClientError as e:
            raise PersistenceError(
                f"S3 delete_object failed for s3://{self._bucket}/{obj_key}"
            ) from e
