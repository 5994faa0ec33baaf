"""Shared fakes for the VaultDrop test-suite."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union
from urllib.parse import urlsplit

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from vaultdrop.network.capabilities import BlobBackend  # noqa: E402

BLOB_HOST = "https://blobs.test"

# unit tests do not need real key stretching
FAST_ITERATIONS = 1000


def make_response(status_code: int = 200, content: bytes = b"", content_type: Optional[str] = None) -> requests.Response:
    """Build a real ``requests.Response`` without touching the network."""
    response = requests.Response()
    response.status_code = status_code
    response._content = content
    if content_type:
        response.headers["Content-Type"] = content_type
    return response


class FakeBlobBackend(BlobBackend):
    """In-memory blob backend; capability urls point at ``BLOB_HOST``."""

    def __init__(self, fail_delete: bool = False):
        super().__init__()
        self.blobs: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.containers_created = 0
        self.issued: List[tuple] = []
        self.deleted: List[str] = []
        self.fail_delete = fail_delete

    def _create_container(self) -> None:
        self.containers_created += 1

    def _sign(self, object_name, ttl, write):
        perm = "cw" if write else "r"
        self.issued.append((object_name, perm, ttl))
        return f"{BLOB_HOST}/{object_name}?sp={perm}&sig=test"

    def delete_object(self, object_name):
        if self.fail_delete:
            raise RuntimeError("backend unavailable")
        self.deleted.append(object_name)
        return self.blobs.pop(object_name, None) is not None


class ScriptedSession:
    """
    A ``requests.Session`` stand-in that replays a script of outcomes.

    Each entry is either a Response (returned) or an exception (raised).
    """

    def __init__(self, script: Iterable[Union[requests.Response, BaseException]]):
        self.script = list(script)
        self.calls: List[dict] = []

    def _next(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        outcome = self.script.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def put(self, url, data=None, headers=None, timeout=None):
        return self._next("PUT", url, data=data, headers=headers, timeout=timeout)

    def get(self, url, timeout=None):
        return self._next("GET", url, timeout=timeout)


class BlobSession:
    """Session that reads and writes a FakeBlobBackend's blobs directly."""

    def __init__(self, backend: FakeBlobBackend):
        self.backend = backend

    @staticmethod
    def _parse(url):
        parts = urlsplit(url)
        return parts.path.lstrip("/"), parts.query

    def put(self, url, data=None, headers=None, timeout=None):
        name, query = self._parse(url)
        if "sp=cw" not in query:
            return make_response(403)
        self.backend.blobs[name] = bytes(data)
        self.backend.content_types[name] = (headers or {}).get("Content-Type")
        return make_response(201)

    def get(self, url, timeout=None):
        name, query = self._parse(url)
        if "sp=r" not in query:
            return make_response(403)
        if name not in self.backend.blobs:
            return make_response(404)
        return make_response(200, self.backend.blobs[name], self.backend.content_types.get(name))


@pytest.fixture
def backend():
    return FakeBlobBackend()


@pytest.fixture
def no_sleep():
    """Records requested backoff delays instead of sleeping."""
    delays: List[float] = []

    def sleep(seconds):
        delays.append(seconds)

    sleep.delays = delays
    return sleep
