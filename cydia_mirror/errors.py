"""Exceptions raised by the mirroring engine."""


class MirrorError(Exception):
    """Base class for all mirror errors."""


class InputValidationError(MirrorError):
    """Repository URL or destination directory is unusable."""


class NotFoundError(MirrorError):
    """No Packages file could be located under the repository root.

    When a Release file was found along the way, ``release_url``,
    ``release`` and ``release_content`` are set so the caller can keep the
    Release file and fall back to crawling.
    """

    def __init__(self, message, release_url=None, release=None, release_content=None):
        super().__init__(message)
        self.release_url = release_url
        self.release = release
        self.release_content = release_content


class DecompressionError(MirrorError):
    """Metadata payload is not a valid stream of the declared format."""


class ParseError(MirrorError):
    """Metadata was read but produced nothing usable."""


class TransportError(MirrorError):
    """A single fetch failed (network error or non-2xx status)."""

    def __init__(self, url, reason, status=None):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
        self.status = status
