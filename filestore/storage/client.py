"""HTTP client for S3-compatible object stores."""

from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from requests_aws4auth import AWS4Auth
from urllib3.util.retry import Retry


class S3Client:
    """Signed requests session bound to an S3-compatible endpoint.

    The client owns the connection pool. Stores built on it only borrow the
    session, so one client can serve several buckets.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str | None = None,
        max_retries: int = 0,
        timeout: int = 300,
        session: requests.Session | None = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.region = region
        self.timeout = timeout

        if session is None:
            session = requests.Session()
            if access_key and secret_key:
                # AWS4Auth with empty region (works for most S3-compatible providers)
                session.auth = AWS4Auth(access_key, secret_key, region or "", "s3")

            if max_retries > 0:
                # Transport-level retries on connection errors and server errors
                retry_strategy = Retry(
                    total=max_retries,
                    backoff_factor=2,
                    status_forcelist=[500, 502, 503, 504],
                    allowed_methods=["HEAD", "GET", "PUT", "DELETE"],
                )
                adapter = HTTPAdapter(max_retries=retry_strategy)
                session.mount("http://", adapter)
                session.mount("https://", adapter)

            # Disable automatic redirect following
            session.max_redirects = 0

        self.session = session

    def url(self, bucket: str, key: str | None = None) -> str:
        """Build the path-style URL of a bucket or of a key inside it."""
        base = f"{self.endpoint}/{bucket}"
        if key is None:
            return base
        return f"{base}/{quote(key, safe='/~')}"

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        return self.session.request(method, url, allow_redirects=False, **kwargs)

    def close(self) -> None:
        self.session.close()
