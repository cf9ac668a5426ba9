"""
Shared pytest fixtures for filestore tests.
"""

from urllib.parse import unquote
from xml.etree import ElementTree
from xml.sax.saxutils import escape

import pytest

from filestore.storage import LocalStorage, S3Client, S3Storage, StorageIOError

ENDPOINT = "http://s3.test"
NS = "http://s3.amazonaws.com/doc/2006-03-01/"


class MemoryStore:
    """Minimal in-memory store implementing only the core protocol calls."""

    def __init__(self, name="memory", files=None):
        self.name = name
        self.files = dict(files or {})
        self.deleted = []
        self.written = []

    def initialize(self):
        pass

    def write(self, key, content, content_type=None):
        if not isinstance(content, bytes):
            content = b"".join(content)
        self.files[key] = content
        self.written.append(key)

    def read_buffer(self, key):
        if key not in self.files:
            raise StorageIOError(f"missing: {key}")
        return self.files[key]

    def read_stream(self, key):
        return iter([self.read_buffer(key)])

    def delete(self, key):
        self.files.pop(key, None)
        self.deleted.append(key)

    def list_keys(self, prefix=""):
        return [key for key in self.files if key.startswith(prefix)]

    def exists(self, key):
        return key in self.files

    def type(self):
        return "memory"


class FakeResponse:
    def __init__(self, status_code, content=b"", headers=None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.closed = False

    @property
    def text(self):
        return self.content.decode("utf-8", "replace")

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]

    def close(self):
        self.closed = True


def _error(status, code):
    return FakeResponse(status, f"<Error><Code>{code}</Code></Error>".encode())


class FakeS3Session:
    """In-memory stand-in for a requests session talking to an S3 endpoint.

    ``fail`` maps (method, key) to a FakeResponse or an exception to return
    instead of the normal behavior. Bucket-level requests use key None.
    """

    def __init__(self, page_size=1000):
        self.buckets = {}
        self.page_size = page_size
        self.fail = {}
        self.calls = []
        self.closed = False

    def request(self, method, url, params=None, data=None, headers=None, stream=False,
                timeout=None, allow_redirects=True):
        assert url.startswith(ENDPOINT + "/")
        bucket, _, key = url[len(ENDPOINT) + 1:].partition("/")
        key = unquote(key) if key else None
        self.calls.append((method, key))

        injected = self.fail.get((method, key))
        if isinstance(injected, BaseException):
            raise injected
        if injected is not None:
            return injected

        if key is None:
            return self._bucket_request(method, bucket, params or {}, data)
        return self._object_request(method, bucket, key, data)

    def _bucket_request(self, method, bucket, params, data):
        if method == "HEAD":
            return FakeResponse(200 if bucket in self.buckets else 404)
        if method == "PUT":
            if bucket in self.buckets:
                return _error(409, "BucketAlreadyOwnedByYou")
            self.buckets[bucket] = {}
            return FakeResponse(200)
        if bucket not in self.buckets:
            return _error(404, "NoSuchBucket")
        if method == "GET":
            return self._list(bucket, params)
        if method == "POST" and "delete" in params:
            root = ElementTree.fromstring(data)
            for key in root.iter("Key"):
                self.buckets[bucket].pop(key.text, None)
            return FakeResponse(200, f'<DeleteResult xmlns="{NS}"/>'.encode())
        return _error(405, "MethodNotAllowed")

    def _list(self, bucket, params):
        prefix = params.get("prefix", "")
        keys = sorted(k for k in self.buckets[bucket] if k.startswith(prefix))
        start = int(params.get("continuation-token", 0))
        page = keys[start:start + self.page_size]
        truncated = start + self.page_size < len(keys)

        parts = [f'<ListBucketResult xmlns="{NS}">']
        for key in page:
            parts.append(f"<Contents><Key>{escape(key)}</Key></Contents>")
        parts.append(f"<IsTruncated>{'true' if truncated else 'false'}</IsTruncated>")
        if truncated:
            parts.append(f"<NextContinuationToken>{start + self.page_size}</NextContinuationToken>")
        parts.append("</ListBucketResult>")
        return FakeResponse(200, "".join(parts).encode())

    def _object_request(self, method, bucket, key, data):
        objects = self.buckets.get(bucket)
        if objects is None:
            return _error(404, "NoSuchBucket")
        if method == "PUT":
            objects[key] = bytes(data)
            return FakeResponse(200)
        if method in ("GET", "HEAD"):
            if key not in objects:
                return _error(404, "NoSuchKey") if method == "GET" else FakeResponse(404)
            return FakeResponse(200, objects[key] if method == "GET" else b"")
        if method == "DELETE":
            objects.pop(key, None)
            return FakeResponse(204)
        return _error(405, "MethodNotAllowed")

    def close(self):
        self.closed = True


@pytest.fixture
def s3_session():
    return FakeS3Session()


@pytest.fixture
def s3_client(s3_session):
    return S3Client(ENDPOINT, session=s3_session)


@pytest.fixture
def s3_store(s3_client):
    store = S3Storage(s3_client, "test-bucket")
    store.initialize()
    return store


@pytest.fixture
def local_store(tmp_path):
    store = LocalStorage(tmp_path / "store")
    store.initialize()
    return store


@pytest.fixture(params=["local", "s3"])
def any_store(request, tmp_path):
    """Each real backend in turn."""
    if request.param == "local":
        store = LocalStorage(tmp_path / "store")
    else:
        store = S3Storage(S3Client(ENDPOINT, session=FakeS3Session()), "test-bucket")
    store.initialize()
    return store
