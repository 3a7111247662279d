"""Tests for the metadata locator."""

import bz2
import gzip

import pytest
import requests

from cydia_mirror.errors import NotFoundError
from cydia_mirror.locator import MetadataLocator, Probe, first_success, root_probes

from conftest import REPO, packages_text

ARCH = "iphoneos-arm"
PACKAGES = packages_text(["debs/a.deb"])
RELEASE = b"Origin: Example\nSuite: stable\nComponents: main tweaks\n"


def binary(release, component):
    return f"{REPO}dists/{release}/{component}/binary-{ARCH}/"


class TestProbe:
    def test_with_and_without_slash(self):
        assert Probe("http://x.test/repo", "Packages").url == "http://x.test/repo/Packages"
        assert Probe("http://x.test/repo", "Packages", slash=False).url == "http://x.test/repoPackages"
        assert Probe("http://x.test/repo/", "Packages").url == "http://x.test/repo/Packages"

    def test_root_probe_order(self):
        urls = [p.url for p in root_probes("http://x.test/repo", ["Release", "Packages"])]
        assert urls == [
            "http://x.test/repo/Release",
            "http://x.test/repoRelease",
            "http://x.test/repo/Packages",
            "http://x.test/repoPackages",
        ]


class TestFirstSuccess:
    def test_stops_at_first_hit(self, session):
        session.routes = {REPO + "b": b"B", REPO + "c": b"C"}
        hit = first_success(session, [Probe(REPO, n) for n in ("a", "b", "c")])

        assert hit.url == REPO + "b"
        assert hit.content == b"B"
        assert session.requests == [REPO + "a", REPO + "b"]

    def test_transport_errors_are_not_fatal(self, session):
        session.routes = {
            REPO + "a": requests.ConnectionError("refused"),
            REPO + "b": (500, b"oops"),
            REPO + "c": b"",
            REPO + "d": b"D",
        }
        hit = first_success(session, [Probe(REPO, n) for n in "abcd"])
        assert hit.url == REPO + "d"

    def test_duplicate_urls_probed_once(self, session):
        tried = set()
        first_success(session, [Probe(REPO, "a"), Probe(REPO, "a", slash=False)], tried=tried)
        assert session.requests == [REPO + "a"]
        assert tried == {REPO + "a"}

    def test_cancelled_handle(self, session, handle):
        session.routes = {REPO + "a": b"A"}
        handle.cancel()
        assert first_success(session, [Probe(REPO, "a")], handle=handle) is None
        assert session.requests == []


class TestLocate:
    def test_flat_repository(self, session):
        session.routes = {REPO + "Packages": PACKAGES}
        located = MetadataLocator(session, arch=ARCH).locate(REPO)

        assert located.url == REPO + "Packages"
        assert located.compression is None
        assert located.content == PACKAGES
        assert located.repository_root == REPO
        assert located.base_url == REPO

    def test_root_packages_beats_dists(self, session):
        session.routes = {
            REPO + "Packages.gz": gzip.compress(PACKAGES),
            binary("stable", "main") + "Packages": PACKAGES,
        }
        located = MetadataLocator(session, arch=ARCH).locate(REPO)

        assert located.url == REPO + "Packages.gz"
        assert located.compression == "gzip"

    def test_root_packages_beats_release_subpaths(self, session):
        session.routes = {
            REPO + "Release": RELEASE,
            REPO + "Packages.bz2": bz2.compress(PACKAGES),
            binary("stable", "main") + "Packages": PACKAGES,
        }
        located = MetadataLocator(session, arch=ARCH).locate(REPO)

        assert located.url == REPO + "Packages.bz2"
        assert located.release.suite == "stable"
        assert located.release_url == REPO + "Release"
        assert located.release_content == RELEASE

    def test_root_probe_order(self, session):
        with pytest.raises(NotFoundError):
            MetadataLocator(session, arch=ARCH).locate(REPO)

        assert session.requests[:4] == [
            REPO + "Release",
            REPO + "Packages",
            REPO + "Packages.bz2",
            REPO + "Packages.gz",
        ]

    def test_root_without_trailing_slash(self, session):
        session.routes = {"http://repo.test/cydiaPackages": PACKAGES}
        located = MetadataLocator(session, arch=ARCH).locate("http://repo.test/cydia")

        assert located.url == "http://repo.test/cydiaPackages"
        assert session.requests[:4] == [
            "http://repo.test/cydia/Release",
            "http://repo.test/cydiaRelease",
            "http://repo.test/cydia/Packages",
            "http://repo.test/cydiaPackages",
        ]

    def test_release_driven_subpaths(self, session):
        session.routes = {
            REPO + "Release": RELEASE,
            binary("stable", "tweaks") + "Packages.bz2": bz2.compress(PACKAGES),
        }
        located = MetadataLocator(session, arch=ARCH).locate(REPO)

        assert located.url == binary("stable", "tweaks") + "Packages.bz2"
        assert located.compression == "bzip2"
        assert session.requests[4:] == [
            binary("stable", "main") + "Packages",
            binary("stable", "main") + "Packages.gz",
            binary("stable", "main") + "Packages.bz2",
            binary("stable", "tweaks") + "Packages",
            binary("stable", "tweaks") + "Packages.gz",
            binary("stable", "tweaks") + "Packages.bz2",
        ]

    def test_suite_and_codename(self, session):
        session.routes = {
            REPO + "Release": b"Suite: stable\nCodename: ios\n",
            binary("ios", "main") + "Packages": PACKAGES,
        }
        located = MetadataLocator(session, arch=ARCH).locate(REPO)

        assert located.url == binary("ios", "main") + "Packages"
        assert session.requests.index(binary("stable", "main") + "Packages") < \
            session.requests.index(binary("ios", "main") + "Packages")

    def test_legacy_subpath_without_release(self, session):
        session.routes = {binary("stable", "main") + "Packages.gz": gzip.compress(PACKAGES)}
        located = MetadataLocator(session, arch=ARCH).locate(REPO)

        assert located.url == binary("stable", "main") + "Packages.gz"
        assert located.release is None
        assert session.requests[4:] == [
            binary("stable", "main") + "Packages",
            binary("stable", "main") + "Packages.gz",
        ]

    def test_legacy_subpath_after_release_candidates(self, session):
        session.routes = {
            REPO + "Release": b"Suite: beta\n",
            binary("stable", "main") + "Packages": PACKAGES,
        }
        located = MetadataLocator(session, arch=ARCH).locate(REPO)

        assert located.url == binary("stable", "main") + "Packages"
        assert session.requests.index(binary("beta", "main") + "Packages.bz2") < \
            session.requests.index(binary("stable", "main") + "Packages")

    def test_other_architecture(self, session):
        url = f"{REPO}dists/stable/main/binary-iphoneos-arm64/Packages"
        session.routes = {url: PACKAGES}
        assert MetadataLocator(session, arch="iphoneos-arm64").locate(REPO).url == url

    def test_nothing_found(self, session):
        with pytest.raises(NotFoundError) as exc_info:
            MetadataLocator(session, arch=ARCH).locate(REPO)

        assert exc_info.value.release_url is None

    def test_release_only(self, session):
        session.routes = {REPO + "Release": RELEASE}
        with pytest.raises(NotFoundError) as exc_info:
            MetadataLocator(session, arch=ARCH).locate(REPO)

        assert exc_info.value.release_url == REPO + "Release"
        assert exc_info.value.release.components == ["main", "tweaks"]
        assert exc_info.value.release_content == RELEASE
