"""
S3 client for a single storage backend.

One BackendStorageClient is created per BackendNode and request. Backend
errors are normalized into the gateway error taxonomy: a missing key becomes
ObjectNotFoundError, everything else BackendOperationFailedError with the
botocore exception chained. botocore retries are disabled; the caller decides
whether to retry.
"""

import asyncio
from collections.abc import Callable, Iterator
import logging
import time
from typing import IO, Any, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import GatewaySettings, get_settings
from ..discovery.models import BackendNode
from ..enums import ExecutorName
from ..errors import (
    BackendOperationFailedError,
    GatewayError,
    ObjectNotFoundError,
    RequestCancelledError,
)
from ..telemetry import backend_operation_histogram, error_counter
from ..utils.executors import ServiceExecutorFactory


logger = logging.getLogger(__name__)

T = TypeVar("T")

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "NotFound", "404"})
_BUCKET_MISSING_CODES = frozenset({"NoSuchBucket", "NotFound", "404"})
_BUCKET_EXISTS_CODES = frozenset({"BucketAlreadyOwnedByYou", "BucketAlreadyExists"})

DEFAULT_CHUNK_SIZE = 64 * 1024


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _status_code(error: ClientError) -> int | None:
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return int(status) if status is not None else None


def is_not_found(error: ClientError) -> bool:
    """True if the backend reports the key (or its bucket) as absent."""
    return _error_code(error) in _NOT_FOUND_CODES or _status_code(error) == 404


class StoredObject:
    """
    Body of an object read from a backend.

    Reading is blocking; the HTTP layer streams it from a worker thread.
    """

    def __init__(
        self,
        object_id: str,
        body: Any,
        content_length: int | None = None,
        content_type: str | None = None,
        node_index: int | None = None,
    ) -> None:
        self.object_id = object_id
        self.content_length = content_length
        self.content_type = content_type
        self.node_index = node_index
        self._body = body

    def read(self, amt: int | None = None) -> bytes:
        data: bytes = self._body.read() if amt is None else self._body.read(amt)
        return data

    def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the body in chunks and close it when exhausted."""
        try:
            while chunk := self._body.read(chunk_size):
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        close = getattr(self._body, "close", None)
        if close is not None:
            close()


class BackendStorageClient:
    """
    put/get/list against one backend's bucket.
    """

    def __init__(
        self,
        node: BackendNode,
        settings: GatewaySettings | None = None,
        s3_client: Any = None,
    ) -> None:
        self.node = node
        self.settings = settings or get_settings()
        self.bucket = self.settings.bucket_name
        self._s3 = s3_client

    @property
    def s3(self) -> Any:
        """The boto3 client, created on first use (inside a worker thread)."""
        if self._s3 is None:
            settings = self.settings
            # A private session per client: boto3's default session is not thread-safe.
            session = boto3.session.Session()
            self._s3 = session.client(
                "s3",
                endpoint_url=f"http://{self.node.endpoint}",
                aws_access_key_id=self.node.access_key,
                aws_secret_access_key=self.node.secret_key,
                region_name=settings.backend_region,
                config=Config(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                    connect_timeout=settings.backend_connect_timeout_seconds,
                    read_timeout=settings.backend_read_timeout_seconds,
                    retries={"total_max_attempts": 1, "mode": "standard"},
                ),
            )
        return self._s3

    async def ensure_bucket(self, deadline: float | None = None) -> None:
        """
        Create the gateway bucket if the backend does not have it yet.

        Concurrent creators may race; losing the race counts as success.
        """
        try:
            await self._run(deadline, "head_bucket", Bucket=self.bucket)
            return
        except ClientError as e:
            if _error_code(e) not in _BUCKET_MISSING_CODES and _status_code(e) != 404:
                raise self._failure("head_bucket", e) from e
        except BotoCoreError as e:
            raise self._failure("head_bucket", e) from e

        logger.info("Creating bucket %s on backend %d", self.bucket, self.node.node_index)
        kwargs: dict[str, Any] = {"Bucket": self.bucket}
        if self.settings.backend_region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {
                "LocationConstraint": self.settings.backend_region
            }
        try:
            await self._run(deadline, "create_bucket", **kwargs)
        except ClientError as e:
            if _error_code(e) in _BUCKET_EXISTS_CODES:
                logger.debug(
                    "Bucket %s already exists on backend %d", self.bucket, self.node.node_index
                )
                return
            raise self._failure("create_bucket", e) from e
        except BotoCoreError as e:
            raise self._failure("create_bucket", e) from e

    async def put(
        self,
        object_id: str,
        data: bytes | IO[bytes],
        deadline: float | None = None,
    ) -> None:
        """
        Store data under object_id, replacing any existing object.

        Raises:
            BackendOperationFailedError: If the backend rejects the write
            RequestCancelledError: If the deadline passes first
        """
        logger.info("Putting object %s on backend %d", object_id, self.node.node_index)
        start = time.perf_counter()
        status = "error"
        try:
            await self.ensure_bucket(deadline)
            if isinstance(data, bytes | bytearray):
                payload = bytes(data)
            else:
                payload = await self._blocking(deadline, data.read)
            try:
                await self._run(
                    deadline,
                    "put_object",
                    Bucket=self.bucket,
                    Key=object_id,
                    Body=payload,
                    ContentLength=len(payload),
                )
            except (ClientError, BotoCoreError) as e:
                raise self._failure("put_object", e) from e
            status = "success"
        except GatewayError as e:
            status = _status_label(e, status)
            e.add_context(object_id=object_id, node_index=self.node.node_index)
            raise
        finally:
            backend_operation_histogram.labels(operation="put", status=status).observe(
                time.perf_counter() - start
            )

    async def get(self, object_id: str, deadline: float | None = None) -> StoredObject:
        """
        Open the object stored under object_id.

        Raises:
            ObjectNotFoundError: If the backend has no such object
            BackendOperationFailedError: For any other backend failure
            RequestCancelledError: If the deadline passes first
        """
        logger.info("Getting object %s from backend %d", object_id, self.node.node_index)
        start = time.perf_counter()
        status = "error"
        try:
            try:
                response = await self._run(
                    deadline, "get_object", Bucket=self.bucket, Key=object_id
                )
            except ClientError as e:
                if is_not_found(e):
                    raise ObjectNotFoundError() from e
                raise self._failure("get_object", e) from e
            except BotoCoreError as e:
                raise self._failure("get_object", e) from e
            status = "success"
        except GatewayError as e:
            status = _status_label(e, status)
            e.add_context(object_id=object_id, node_index=self.node.node_index)
            raise
        finally:
            backend_operation_histogram.labels(operation="get", status=status).observe(
                time.perf_counter() - start
            )

        return StoredObject(
            object_id=object_id,
            body=response["Body"],
            content_length=response.get("ContentLength"),
            content_type=response.get("ContentType"),
            node_index=self.node.node_index,
        )

    async def list_all(self, deadline: float | None = None) -> list[str]:
        """
        List every object id in the gateway bucket on this backend.

        Pages are fetched until the listing is exhausted. A backend without
        the bucket has no objects.

        Raises:
            BackendOperationFailedError: If a page cannot be fetched
            RequestCancelledError: If the deadline passes first; its partial
                attribute holds the ids listed so far
        """
        keys: list[str] = []
        start = time.perf_counter()
        status = "error"
        try:
            try:
                token: str | None = None
                while True:
                    kwargs: dict[str, Any] = {"Bucket": self.bucket}
                    if token:
                        kwargs["ContinuationToken"] = token
                    page = await self._run(deadline, "list_objects_v2", **kwargs)
                    keys.extend(obj["Key"] for obj in page.get("Contents", ()))
                    token = page.get("NextContinuationToken")
                    if not page.get("IsTruncated") or not token:
                        break
            except RequestCancelledError as e:
                e.partial = list(keys)
                raise
            except ClientError as e:
                if _error_code(e) in _BUCKET_MISSING_CODES:
                    logger.debug(
                        "Bucket %s missing on backend %d", self.bucket, self.node.node_index
                    )
                    status = "success"
                    return keys
                raise self._failure("list_objects_v2", e) from e
            except BotoCoreError as e:
                raise self._failure("list_objects_v2", e) from e
            status = "success"
        except GatewayError as e:
            status = _status_label(e, status)
            e.add_context(node_index=self.node.node_index)
            raise
        finally:
            backend_operation_histogram.labels(operation="list", status=status).observe(
                time.perf_counter() - start
            )

        logger.debug("Backend %d lists %d object(s)", self.node.node_index, len(keys))
        return keys

    async def _run(self, deadline: float | None, method: str, **kwargs: Any) -> Any:
        """Invoke an S3 client method in the storage pool under the deadline."""
        return await self._blocking(deadline, self._invoke, method, **kwargs)

    def _invoke(self, method: str, **kwargs: Any) -> Any:
        return getattr(self.s3, method)(**kwargs)

    async def _blocking(
        self,
        deadline: float | None,
        func: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        try:
            async with asyncio.timeout_at(deadline):
                return await ServiceExecutorFactory.run_blocking(
                    ExecutorName.STORAGE, func, *args, **kwargs
                )
        except TimeoutError as e:
            error_counter.labels(error_type=RequestCancelledError.kind.value).inc()
            raise RequestCancelledError(
                "Deadline exceeded waiting for backend", node_index=self.node.node_index
            ) from e

    def _failure(self, operation: str, error: Exception) -> BackendOperationFailedError:
        logger.error(
            "Backend %d (%s) failed %s: %s",
            self.node.node_index,
            self.node.endpoint,
            operation,
            error,
        )
        error_counter.labels(error_type=BackendOperationFailedError.kind.value).inc()
        return BackendOperationFailedError(
            f"{operation} failed on backend {self.node.node_index}",
            node_index=self.node.node_index,
        )


def _status_label(error: GatewayError, default: str) -> str:
    if isinstance(error, ObjectNotFoundError):
        return "not_found"
    if isinstance(error, RequestCancelledError):
        return "cancelled"
    return default
