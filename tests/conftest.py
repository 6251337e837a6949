"""Shared fixtures: isolated document storage, controllable clock, fake renderer."""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Must be set before htmlpdf_backend.config is imported anywhere.
os.environ.setdefault("HTMLPDF_DOCUMENTS_ROOT", tempfile.mkdtemp(prefix="htmlpdf-tests-"))

from htmlpdf_backend.converter import ConversionService  # noqa: E402
from htmlpdf_backend.links import LinkRegistry  # noqa: E402
from htmlpdf_backend.mailer import Mailer  # noqa: E402
from htmlpdf_backend.storage import DocumentStore  # noqa: E402


FAKE_PDF = b"%PDF-1.4\n% fake pdf for tests\n%%EOF\n"


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2025, 3, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeRenderer:
    def __init__(self, result=FAKE_PDF, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def __call__(self, html, options):
        self.calls.append((html, options))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return LinkRegistry(clock=clock)


@pytest.fixture
def store(tmp_path):
    return DocumentStore(tmp_path / "documents")


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def mailer():
    # No SMTP host: delivery is only logged.
    return Mailer(host="", username="", password="")


@pytest.fixture
def service(store, registry, renderer, mailer):
    return ConversionService(store, registry, renderer=renderer, base_url="http://testserver", mailer=mailer)


@pytest.fixture
def client(service):
    """Test client wired to an isolated service with a fake renderer."""
    from fastapi.testclient import TestClient

    import server
    from htmlpdf_backend.ratelimit import RateLimiter

    server.app.state.converter = service
    server.app.state.api_key = None
    server.app.state.rate_limiter = RateLimiter(max_requests=1000)
    return TestClient(server.app)
