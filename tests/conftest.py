"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and provides:
- Project root on sys.path (flat module layout)
- Test environment variables, set before the service module loads its config
- An upstream double built on httpx.MockTransport
"""

import os
import sys
from pathlib import Path
from typing import Callable, List

import httpx
import pytest

# Add parent directory to Python path so tests can import project modules
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# The service loads config at import time, so these must be set during collection.
os.environ.setdefault("RESOURCE_NAME", "test-resource")
os.environ.setdefault("API_VERSION", "2023-05-15")
os.environ.setdefault("API_KEY", "test-secret")
os.environ.setdefault("AZURE_API_KEY", "azure-test-key")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOG_COLOR", "false")
os.environ.setdefault("LOG_PATH", "/tmp/azure_proxy_test.log")


class ChunkStream(httpx.AsyncByteStream):
    """Async byte stream that yields pre-split chunks, optionally failing at the end."""

    def __init__(self, chunks: List[bytes], error: Exception | None = None) -> None:
        self._chunks = chunks
        self._error = error
        self.closed = False

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error

    async def aclose(self) -> None:
        self.closed = True


class FakeUpstream:
    """Records outbound requests and answers them with a canned handler."""

    def __init__(self, responder: Callable[[httpx.Request], httpx.Response]) -> None:
        self._responder = responder
        self.requests: List[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture(scope="session")
def project_root_path():
    """Get project root path."""
    return project_root


@pytest.fixture
def chunk_stream():
    """Factory for ChunkStream bodies."""
    return ChunkStream


@pytest.fixture
def fake_upstream():
    """Factory for FakeUpstream doubles."""
    return FakeUpstream
