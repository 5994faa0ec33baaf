"""
Move ciphertext to and from capability URLs.

Protocol per call:
  push: PUT <url> with Content-Type and "x-ms-blob-type: BlockBlob", body = bytes
  pull: GET <url>, body = bytes

Failure classes:
  - timeout / connection reset or aborted -> retried under the RetryPolicy,
    TransferFailedError once retries run out
  - 404 on pull                           -> ObjectNotFoundError, no retry
  - any other 4xx                         -> TransferRejectedError, no retry
  - 5xx or other request errors           -> TransferFailedError, no retry

The client holds no state between calls; two clients may hit the same
capability URL independently, the URL only stops working when it expires.
"""

import logging
import time
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

import requests

from ..core.encoding import normalize_payload
from ..core.exceptions import (
    InvalidInputError,
    ObjectNotFoundError,
    TransferFailedError,
    TransferRejectedError,
)
from ..core.models import PulledObject
from .retry import RetriesExhausted, RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
PUSH_TIMEOUT = 60.0  # seconds; larger files need the headroom
PULL_TIMEOUT = 120.0


def _redact(url: str) -> str:
    # capability urls carry their signature in the query string
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


def _describe(exc: BaseException, url: str) -> str:
    """Error text with the capability query string scrubbed out."""
    text = str(exc)
    query = urlsplit(url).query
    if query:
        text = text.replace(query, "<redacted>")
    return text or type(exc).__name__


class TransferResult:
    __slots__ = ("status_code", "attempts", "size")

    def __init__(self, status_code: int, attempts: int, size: int):
        self.status_code = status_code
        self.attempts = attempts
        self.size = size

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def __repr__(self):
        return f"TransferResult(status_code={self.status_code}, attempts={self.attempts}, size={self.size})"


class TransferClient:
    def __init__(
        self,
        session: Optional[requests.Session] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        push_timeout: float = PUSH_TIMEOUT,
        pull_timeout: float = PULL_TIMEOUT,
    ):
        self.session = session if session is not None else requests.Session()
        self.policy = policy if policy is not None else RetryPolicy()
        self._sleep = sleep
        self.push_timeout = push_timeout
        self.pull_timeout = pull_timeout

    def _run(self, label: str, url: str, send: Callable[[], requests.Response]):
        attempts = 0

        def attempt():
            nonlocal attempts
            attempts += 1
            return send()

        try:
            response = call_with_retry(attempt, self.policy, sleep=self._sleep, label=label)
        except RetriesExhausted as e:
            reason = _describe(e.last_error, url)
            logger.error("All %s attempts failed for %s: %s", label, _redact(url), reason)
            raise TransferFailedError(
                f"{label} failed after {e.attempts} attempts: {reason}",
                attempts=e.attempts,
            ) from e.last_error
        except requests.RequestException as e:
            # malformed url, too many redirects, ...: nothing a retry would fix
            reason = _describe(e, url)
            logger.error("%s to %s failed: %s", label, _redact(url), reason)
            raise TransferFailedError(f"{label} failed: {reason}", attempts=attempts) from e
        return response, attempts

    def _check_status(self, label: str, url: str, response: requests.Response, attempts: int) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        logger.error("%s to %s returned HTTP %d", label, _redact(url), status)
        if 400 <= status < 500:
            raise TransferRejectedError(f"{label} rejected with HTTP {status}", status_code=status)
        raise TransferFailedError(f"{label} failed with HTTP {status}", attempts=attempts, status_code=status)

    def push(self, url: str, data: Any, content_type: Optional[str] = None) -> TransferResult:
        """Upload ``data`` to a write capability URL."""
        if not url:
            raise InvalidInputError("url required")
        body = normalize_payload(data)
        headers = {
            "Content-Type": content_type or DEFAULT_CONTENT_TYPE,
            "x-ms-blob-type": "BlockBlob",
        }
        logger.info("Uploading %d bytes as %s", len(body), headers["Content-Type"])

        response, attempts = self._run(
            "upload",
            url,
            lambda: self.session.put(url, data=body, headers=headers, timeout=self.push_timeout),
        )
        self._check_status("upload", url, response, attempts)
        return TransferResult(response.status_code, attempts, len(body))

    def pull(self, url: str) -> PulledObject:
        """Download the object behind a read capability URL."""
        if not url:
            raise InvalidInputError("url required")

        response, attempts = self._run(
            "download",
            url,
            lambda: self.session.get(url, timeout=self.pull_timeout),
        )
        if response.status_code == 404:
            logger.error("Object not found in storage: %s", _redact(url))
            raise ObjectNotFoundError("File not found in storage. It may have been deleted or moved.")
        self._check_status("download", url, response, attempts)

        data = response.content or b""
        logger.info("Downloaded %d bytes", len(data))
        return PulledObject(data=data, content_type=response.headers.get("Content-Type"))
