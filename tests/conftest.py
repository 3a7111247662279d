"""Shared fixtures: an in-memory HTTP server standing in for requests.Session."""

import pytest
import requests

from cydia_mirror.state import RunHandle

REPO = "http://repo.test/"


class FakeResponse:
    def __init__(self, url, status_code=200, content=b""):
        self.url = url
        self.status_code = status_code
        self.content = content
        self.headers = {"content-length": str(len(content))}

    def raise_for_status(self):
        if not 200 <= self.status_code < 300:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}", response=self)

    def iter_content(self, chunk_size=1):
        for offset in range(0, len(self.content), chunk_size):
            yield self.content[offset:offset + chunk_size]

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class FakeSession:
    """
    Serves ``routes``: URL -> bytes, (status, bytes) or an exception instance.
    Unknown URLs answer 404. Every requested URL is recorded in ``requests``.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []
        self.headers = {}
        self.on_get = None
        self.closed = False

    def get(self, url, timeout=None, stream=False, **kwargs):
        self.requests.append(url)
        if self.on_get is not None:
            self.on_get(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(url, 404, b"Not Found")
        if isinstance(route, Exception):
            raise route
        if isinstance(route, tuple):
            status, body = route
            return FakeResponse(url, status, body)
        return FakeResponse(url, 200, route)

    def count(self, url):
        return self.requests.count(url)

    def close(self):
        self.closed = True


def listing(*names):
    """A minimal Apache-style auto-index page."""
    rows = ['<a href="?C=N;O=D">Name</a>', '<a href="../">Parent Directory</a>']
    rows += [f'<a href="{name}">{name}</a>' for name in names]
    return ("<html><body><pre>" + "\n".join(rows) + "</pre></body></html>").encode("utf-8")


def packages_text(filenames, **extra):
    stanzas = []
    for i, filename in enumerate(filenames):
        lines = [f"Package: com.example.pkg{i}", "Version: 1.0", f"Filename: {filename}"]
        lines += [f"{k}: {v}" for k, v in extra.items()]
        stanzas.append("\n".join(lines))
    return ("\n\n".join(stanzas) + "\n").encode("utf-8")


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def handle():
    return RunHandle()
