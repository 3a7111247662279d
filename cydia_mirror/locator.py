"""
Locating Release / Packages files under a repository root.

Repositories in the wild do not agree on a layout: some serve a flat
Packages file next to the root, some a full Debian dists/ tree, some a
dists/ tree without a Release file. The locator tries a fixed, ordered list
of candidates and takes the first one the server answers.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from . import config
from .client import fetch
from .control import ReleaseDescriptor, extract_release_fields
from .decompress import format_for
from .errors import NotFoundError, TransportError

logger = logging.getLogger(__name__)

RELEASE = "Release"
ROOT_PACKAGES_NAMES = ("Packages", "Packages.bz2", "Packages.gz")
SUBPATH_PACKAGES_NAMES = ("Packages", "Packages.gz", "Packages.bz2")
LEGACY_RELEASE = "stable"
LEGACY_COMPONENT = "main"


@dataclass(frozen=True)
class Probe:
    """One candidate location: a base URL plus a file name."""

    base: str
    filename: str
    slash: bool = True

    @property
    def url(self):
        if self.slash:
            return self.base.rstrip("/") + "/" + self.filename
        return self.base + self.filename


@dataclass
class ProbeHit:
    probe: Probe
    content: bytes

    @property
    def url(self):
        return self.probe.url


@dataclass
class LocatedMetadata:
    url: str
    filename: str
    content: bytes
    compression: Optional[str]
    repository_root: str
    release: Optional[ReleaseDescriptor] = None
    release_url: Optional[str] = None
    release_content: Optional[bytes] = None

    @property
    def base_url(self):
        """Directory of the located file."""
        return self.url.rsplit("/", 1)[0] + "/"


def root_probes(root, names):
    """Probes for names directly under root, with and without a slash."""
    probes = []
    for name in names:
        probes.append(Probe(root, name, slash=True))
        probes.append(Probe(root, name, slash=False))
    return probes


def binary_dir(release, component, arch):
    return f"dists/{release}/{component}/binary-{arch}/"


def subpath_probes(root, subpaths):
    """Probes for Packages files under each subpath, in the order given."""
    base = root.rstrip("/") + "/"
    return [
        Probe(base + subpath, name)
        for subpath in subpaths
        for name in SUBPATH_PACKAGES_NAMES
    ]


def release_subpaths(release, arch):
    """dists/<release>/<component>/binary-<arch>/ for every release/component pair."""
    return [
        binary_dir(name, component, arch)
        for name in release.releases()
        for component in release.components
    ]


def legacy_subpaths(arch):
    return [binary_dir(LEGACY_RELEASE, LEGACY_COMPONENT, arch)]


def first_success(session, probes, timeout=config.PROBE_TIMEOUT, handle=None, tried=None):
    """
    Try each probe in order and return the first ProbeHit.

    Probes resolving to a URL already in ``tried`` are skipped. Returns None
    when all probes failed, or when the run handle was cancelled.
    """
    if tried is None:
        tried = set()
    for probe in probes:
        url = probe.url
        if url in tried:
            continue
        tried.add(url)
        if handle is not None and not handle.checkpoint():
            return None
        try:
            content = fetch(session, url, timeout=timeout)
        except TransportError as e:
            logger.debug(f"Not found: {e}")
            continue
        if not content:
            logger.debug(f"Empty response: {url}")
            continue
        logger.info(f"Found: {url}")
        return ProbeHit(probe, content)
    return None


class MetadataLocator:
    """Finds the Release and Packages files of a repository."""

    def __init__(self, session, arch=config.DEFAULT_ARCH, timeout=config.PROBE_TIMEOUT, handle=None):
        self.session = session
        self.arch = arch
        self.timeout = timeout
        self.handle = handle

    def _first(self, probes, tried):
        return first_success(self.session, probes, timeout=self.timeout,
                             handle=self.handle, tried=tried)

    def locate(self, root):
        """
        Locate the Packages file of the repository at root.

        Returns:
            LocatedMetadata

        Raises:
            NotFoundError: when every candidate was tried without success
        """
        tried = set()
        release = None
        release_url = None
        release_content = None

        release_hit = self._first(root_probes(root, [RELEASE]), tried)
        if release_hit is not None:
            release_url = release_hit.url
            release_content = release_hit.content
            release = extract_release_fields(release_hit.content.decode("utf-8", errors="replace"))
            logger.info(
                f"Release: suite={release.suite or '-'} codename={release.codename or '-'} "
                f"components={' '.join(release.components)}"
            )

        hit = self._first(root_probes(root, ROOT_PACKAGES_NAMES), tried)
        if hit is None and release is not None:
            hit = self._first(subpath_probes(root, release_subpaths(release, self.arch)), tried)
        if hit is None:
            hit = self._first(subpath_probes(root, legacy_subpaths(self.arch)), tried)

        if hit is None:
            if release_url is not None:
                raise NotFoundError(
                    f"Found {release_url} but no Packages file under {root}",
                    release_url=release_url,
                    release=release,
                    release_content=release_content,
                )
            raise NotFoundError(f"No Release or Packages file found under {root}")

        filename = hit.probe.filename
        return LocatedMetadata(
            url=hit.url,
            filename=filename,
            content=hit.content,
            compression=format_for(filename),
            repository_root=root,
            release=release,
            release_url=release_url,
            release_content=release_content,
        )
