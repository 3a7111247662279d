"""Turning Packages stanzas into downloadable artifact URLs."""

import logging
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RootRelativeRule:
    """
    Resolve Filename values starting with ``prefix`` against
    ``<scheme>://<host>/<root_path>/`` instead of the metadata base URL.

    Some repositories publish Filename values relative to a shared root
    on the host rather than to the directory holding dists/.
    """

    prefix: str
    root_path: str

    def matches(self, filename):
        return filename.startswith(self.prefix)

    def base_for(self, base_url):
        parsed = urlparse(base_url)
        path = self.root_path.strip("/")
        root = f"{parsed.scheme}://{parsed.netloc}/"
        return root + path + "/" if path else root

    @classmethod
    def parse(cls, text):
        """Build a rule from ``PREFIX=ROOT_PATH``."""
        prefix, sep, root_path = text.partition("=")
        if not sep or not prefix.strip():
            raise ValueError(f"Invalid root rule {text!r}, expected PREFIX=ROOT_PATH")
        return cls(prefix.strip(), root_path.strip())


# BigBoss publishes debs2.0/... paths relative to /repofiles/cydia/
DEFAULT_ROOT_RULES = (
    RootRelativeRule("debs2.0/", "repofiles/cydia"),
)


@dataclass(frozen=True)
class ArtifactReference:
    path: str
    base_url: str
    url: str


def has_scheme(filename):
    parsed = urlparse(filename)
    return bool(parsed.scheme) and bool(parsed.netloc)


def resolve_filename(filename, base_url, rules=DEFAULT_ROOT_RULES):
    """Resolve one Filename value to an ArtifactReference."""
    if has_scheme(filename):
        return ArtifactReference(filename, base_url, filename)

    path = filename
    while path.startswith("./"):
        path = path[2:]
    if path.startswith("//"):
        # network-path reference; keep it on the repository host
        path = "/" + path.lstrip("/")

    for rule in rules:
        if rule.matches(path):
            base = rule.base_for(base_url)
            return ArtifactReference(path, base, urljoin(base, path))

    base = base_url if base_url.endswith("/") else base_url + "/"
    return ArtifactReference(path, base, urljoin(base, path))


def build_artifacts(stanzas, base_url, rules=DEFAULT_ROOT_RULES):
    """
    Collect the artifacts referenced by a Package Index.

    Stanzas without a usable Filename field are skipped. An artifact listed
    more than once is returned once, at its first position.
    """
    artifacts = []
    seen = set()
    for stanza in stanzas:
        filename = (stanza.get("Filename") or "").strip()
        if not filename:
            continue
        # folded values: only the first line is the path
        filename = filename.split("\n", 1)[0].strip()
        if not filename:
            continue
        artifact = resolve_filename(filename, base_url, rules)
        if artifact.url in seen:
            continue
        seen.add(artifact.url)
        artifacts.append(artifact)

    logger.debug(f"{len(artifacts)} artifacts from {len(stanzas)} stanzas")
    return artifacts


def build_artifact_urls(stanzas, base_url, rules=DEFAULT_ROOT_RULES):
    return [a.url for a in build_artifacts(stanzas, base_url, rules)]
