"""S3-compatible storage backend using requests (works with any provider speaking the S3 API)."""

import base64
import hashlib
import logging
from typing import Iterator
from xml.etree import ElementTree
from xml.sax.saxutils import escape

import requests

from filestore.storage.base import (
    ChunkStream,
    Content,
    StorageBackend,
    StorageIOError,
    as_bytes,
    check_key,
)
from filestore.storage.client import S3Client

logger = logging.getLogger(__name__)

S3_NS = {"s3": "http://s3.amazonaws.com/doc/2006-03-01/"}
REDIRECT_CODES = (301, 302, 307, 308)
CHUNK_SIZE = 64 * 1024
# Upper bound on keys per DeleteObjects request
DELETE_BATCH_SIZE = 1000


class S3StorageError(StorageIOError):
    """Base exception for S3 storage operations."""
    pass


class S3BucketError(S3StorageError):
    """Error while checking or creating the bucket."""
    pass


class S3UploadError(S3StorageError):
    """Error during S3 upload."""
    pass


class S3DownloadError(S3StorageError):
    """Error during S3 download or existence check."""
    pass


class S3DeleteError(S3StorageError):
    """Error during S3 delete."""
    pass


class S3ListError(S3StorageError):
    """Error during S3 list operation."""
    pass


def _error_code(resp) -> str | None:
    """Extract the <Code> of an S3 XML error body, if there is one."""
    try:
        root = ElementTree.fromstring(resp.content)
    except ElementTree.ParseError:
        return None
    code = root.find("Code")
    if code is None:
        code = root.find("s3:Code", S3_NS)
    return code.text if code is not None else None


class S3Storage(StorageBackend):
    """Storage backend over a single bucket of an S3-compatible service.

    Each operation issues one request and checks the status code that the S3
    API documents for it. Nothing is retried here; retries, if any, are
    configured on the caller's ``S3Client``.
    """

    def __init__(self, client: S3Client, bucket: str):
        self.client = client
        self.bucket = bucket
        self.name = f"S3 bucket '{bucket}' at {client.endpoint}"

    def _send(self, error: type[S3StorageError], what: str, method: str, key: str | None = None, **kwargs):
        url = self.client.url(self.bucket, key)
        try:
            return self.client.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            raise error(f"{what} failed in bucket {self.bucket}: {e}") from e

    def _check(self, resp, expected: int, error: type[S3StorageError], what: str) -> None:
        if resp.status_code == expected:
            return
        if resp.status_code in REDIRECT_CODES:
            location = resp.headers.get("Location", "unknown")
            raise error(f"{what} redirected ({resp.status_code}) to: {location}")
        raise error(f"{what} failed in bucket {self.bucket}: {resp.status_code} {resp.text}")

    def initialize(self) -> None:
        """Create the bucket if it does not exist."""
        resp = self._send(S3BucketError, "Bucket check", "HEAD")
        if resp.status_code == 200:
            return

        logger.info("Bucket %s not accessible (%s), creating it", self.bucket, resp.status_code)
        body = None
        if self.client.region and self.client.region != "us-east-1":
            body = (
                '<CreateBucketConfiguration xmlns="http://s3.amazonaws.com/doc/2006-03-01/">'
                f"<LocationConstraint>{escape(self.client.region)}</LocationConstraint>"
                "</CreateBucketConfiguration>"
            ).encode("utf-8")

        resp = self._send(S3BucketError, "Bucket creation", "PUT", data=body)
        if resp.status_code == 409 and _error_code(resp) in ("BucketAlreadyOwnedByYou", "BucketAlreadyExists"):
            return
        self._check(resp, 200, S3BucketError, f"Failed to create bucket: {self.bucket}")

    def write(self, key: str, content: Content, content_type: str | None = None) -> None:
        """Upload content to a key.

        Streams are drained first; S3 requires the body length up front.
        """
        check_key(key)
        headers = {}
        if content_type:
            headers["Content-Type"] = content_type

        what = f"Failed to write file: {key}"
        resp = self._send(S3UploadError, what, "PUT", key, data=as_bytes(content), headers=headers)
        self._check(resp, 200, S3UploadError, what)

    def read_buffer(self, key: str) -> bytes:
        """Download the whole object."""
        check_key(key)
        what = f"Failed to read file: {key}"
        resp = self._send(S3DownloadError, what, "GET", key, stream=True)
        try:
            self._check(resp, 200, S3DownloadError, what)
            chunks = []
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    chunks.append(chunk)
            return b"".join(chunks)
        except requests.exceptions.RequestException as e:
            raise S3DownloadError(f"{what} from bucket {self.bucket}: {e}") from e
        finally:
            resp.close()

    def read_stream(self, key: str) -> ChunkStream:
        """Return the object body as a chunk stream without downloading it.

        The response stays open until the stream is exhausted or closed.
        """
        check_key(key)
        what = f"Failed to read file: {key}"
        resp = self._send(S3DownloadError, what, "GET", key, stream=True)
        try:
            self._check(resp, 200, S3DownloadError, what)
        except S3DownloadError:
            resp.close()
            raise
        return ChunkStream(self._iter_body(resp, what), resp.close)

    def _iter_body(self, resp, what: str) -> Iterator[bytes]:
        try:
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    yield chunk
        except requests.exceptions.RequestException as e:
            raise S3DownloadError(f"{what} from bucket {self.bucket}: {e}") from e
        finally:
            resp.close()

    def delete(self, key: str) -> None:
        """Delete a key. A key that is already gone counts as deleted."""
        check_key(key)
        what = f"Failed to delete file: {key}"
        resp = self._send(S3DeleteError, what, "DELETE", key)
        if resp.status_code == 404:
            logger.debug("Delete of missing key %s ignored", key)
            return
        self._check(resp, 204, S3DeleteError, what)

    def list_keys(self, prefix: str = "") -> list[str]:
        """List all keys with the given prefix."""
        return list(self._iter_keys(prefix))

    def _iter_keys(self, prefix: str) -> Iterator[str]:
        continuation_token = None

        while True:
            params = {"list-type": "2", "prefix": prefix}
            if continuation_token:
                params["continuation-token"] = continuation_token

            resp = self._send(S3ListError, "List", "GET", params=params)
            self._check(resp, 200, S3ListError, "Failed to list files")

            try:
                root = ElementTree.fromstring(resp.content)
            except ElementTree.ParseError as e:
                raise S3ListError(f"Malformed list response from bucket {self.bucket}: {e}") from e

            for content in root.findall(".//s3:Contents", S3_NS):
                key_elem = content.find("s3:Key", S3_NS)
                if key_elem is not None and key_elem.text:
                    yield key_elem.text

            # Check for more pages
            is_truncated = root.find(".//s3:IsTruncated", S3_NS)
            if is_truncated is None or is_truncated.text != "true":
                break
            token_elem = root.find(".//s3:NextContinuationToken", S3_NS)
            if token_elem is None or not token_elem.text:
                break
            continuation_token = token_elem.text

    def exists(self, key: str) -> bool:
        """Check if a key exists using a HEAD request.

        Only a 404 means absent. Any other failure, including network errors,
        raises instead of guessing.
        """
        check_key(key)
        what = f"Failed to check existence of file: {key}"
        resp = self._send(S3DownloadError, what, "HEAD", key)
        if resp.status_code == 404:
            return False
        self._check(resp, 200, S3DownloadError, what)
        return True

    def clear(self) -> None:
        """Delete every key in the bucket with batched DeleteObjects requests."""
        keys = self.list_keys()
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            self._delete_batch(keys[start:start + DELETE_BATCH_SIZE])

    def _delete_batch(self, keys: list[str]) -> None:
        objects = "".join(f"<Object><Key>{escape(key)}</Key></Object>" for key in keys)
        body = f"<Delete><Quiet>true</Quiet>{objects}</Delete>".encode("utf-8")
        headers = {
            "Content-MD5": base64.b64encode(hashlib.md5(body).digest()).decode("ascii"),
            "Content-Type": "application/xml",
        }

        what = f"Failed to clear bucket {self.bucket}"
        resp = self._send(S3DeleteError, what, "POST", params={"delete": ""}, data=body, headers=headers)
        self._check(resp, 200, S3DeleteError, what)

        try:
            root = ElementTree.fromstring(resp.content)
        except ElementTree.ParseError as e:
            raise S3DeleteError(f"{what}: malformed response: {e}") from e
        errors = root.findall("s3:Error", S3_NS) + root.findall("Error")
        if errors:
            messages = ", ".join(
                f"{err.findtext('s3:Key', '', S3_NS) or err.findtext('Key', '')}: "
                f"{err.findtext('s3:Message', '', S3_NS) or err.findtext('Message', '')}"
                for err in errors
            )
            raise S3DeleteError(f"Failed to delete some files in bucket {self.bucket}: {messages}")

    def type(self) -> str:
        return "s3"
