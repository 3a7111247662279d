"""
Recursive crawl of a repository's directory listings.

Used when a repository has no usable package index, and after the
structured download pass to pick up everything else a repository serves
(icons, depictions, banners, HTML).
"""

import logging
import os
import posixpath
import threading
import time
from urllib.parse import unquote, urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup

from . import config
from .client import download_file, fetch, has_file
from .errors import TransportError

logger = logging.getLogger(__name__)

LINK_ATTRIBUTES = ("href", "src")
SKIPPED_LINKS = ("../", "..", "./", ".", "/", "")
SKIPPED_SCHEMES = ("mailto:", "javascript:", "data:", "tel:")


def host_dir_name(url):
    parsed = urlparse(url)
    host = parsed.hostname or "repo"
    if parsed.port:
        host = f"{host}+{parsed.port}"
    return host


def local_path_for_url(url, destination):
    """
    Map a URL to its place in the mirror tree: <destination>/<host>/<path>.

    Parent references are dropped so nothing can be written outside the
    host directory. Directory URLs map to directories.
    """
    parsed = urlparse(url)
    path = posixpath.normpath("/" + unquote(parsed.path))
    parts = [p for p in path.split("/") if p not in ("", ".", "..")]
    return os.path.join(destination, host_dir_name(url), *parts)


def is_directory(url):
    """Check if a link is a directory (ends with /)."""
    return urlparse(url).path.endswith("/")


class CrawlContext:
    """State of one crawl tree: its root URL and the URLs already visited."""

    def __init__(self, root):
        self.root = root if root.endswith("/") else root + "/"
        self.visited = set()
        self._lock = threading.Lock()

    def mark_visited(self, url):
        """Add url to the visited set. Returns False if it was already there."""
        with self._lock:
            if url in self.visited:
                return False
            self.visited.add(url)
            return True

    def in_scope(self, url):
        """Same origin as the root and not above it."""
        root, other = urlparse(self.root), urlparse(url)
        if (root.scheme, root.netloc) != (other.scheme, other.netloc):
            return False
        return other.path.startswith(root.path)


class RecursiveCrawler:
    def __init__(self, session, destination, handle, timeout=config.DOWNLOAD_TIMEOUT,
                 max_depth=config.MAX_CRAWL_DEPTH, delay=0.0):
        self.session = session
        self.destination = destination
        self.handle = handle
        self.timeout = timeout
        self.max_depth = max_depth
        self.delay = delay
        self.downloaded_count = 0
        self.failed_count = 0
        self.skipped_count = 0

    def get_directory_listing(self, url):
        """Fetch url and return the links it lists, or None if it is not a listing."""
        try:
            body = fetch(self.session, url, timeout=self.timeout)
        except TransportError as e:
            logger.debug(f"Not a listing: {e}")
            return None

        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug(f"Not a listing (binary content): {url}")
            return None

        return extract_links(text, url)

    def download(self, url):
        local_path = local_path_for_url(url, self.destination)
        if has_file(local_path):
            logger.debug(f"Skipping (already exists): {local_path}")
            self.skipped_count += 1
            return

        self.handle.add_total()
        try:
            logger.info(f"Downloading: {url}")
            size = download_file(self.session, url, local_path, timeout=self.timeout)
            logger.info(f"✓ Downloaded: {os.path.basename(local_path)} ({size / 1024:.1f} KB)")
            self.downloaded_count += 1
        except TransportError as e:
            logger.error(f"✗ Failed to download {url}: {e.reason}")
            self.handle.add_failure(urlparse(url).path, e.reason)
            self.failed_count += 1
        finally:
            self.handle.mark_done()

        if self.delay:
            time.sleep(self.delay)

    def crawl(self, url, local_dir, context, depth=0):
        """Recursively crawl directories and download files."""
        if not context.mark_visited(url):
            return
        if not self.handle.checkpoint():
            return
        if depth > self.max_depth:
            logger.warning(f"Maximum depth reached for {url}")
            return

        indent = "  " * depth
        logger.info(f"{indent}Exploring: {url}")

        links = self.get_directory_listing(url)
        if not links:
            logger.debug(f"{indent}No links found in {url}")
            return
        try:
            os.makedirs(local_dir, exist_ok=True)
        except OSError as e:
            logger.error(f"✗ Cannot create directory for {url}: {e}")
            self.handle.add_failure(urlparse(url).path, f"could not create {local_dir}: {e}")
            self.failed_count += 1
            return

        for link in links:
            if not self.handle.checkpoint():
                return
            if not context.in_scope(link):
                continue

            if is_directory(link):
                subdir = local_path_for_url(link, self.destination)
                self.crawl(link, subdir, context, depth + 1)
            elif context.mark_visited(link):
                self.download(link)

    def start(self, root):
        """Crawl everything reachable below root."""
        context = CrawlContext(root)
        local_dir = local_path_for_url(context.root, self.destination)
        self.crawl(context.root, local_dir, context)
        logger.info(
            f"Crawl finished: {self.downloaded_count} downloaded, "
            f"{self.skipped_count} skipped, {self.failed_count} failed"
        )
        return context


def extract_links(text, base_url):
    """
    Return the absolute URLs referenced by href/src attributes in text.

    Parent-directory markers, same-page fragments, query-only links (the
    sort links of auto-index pages) and non-fetchable schemes are left out.
    Order of first appearance is kept.
    """
    soup = BeautifulSoup(text, "html.parser")
    links = []
    seen = set()
    for tag in soup.find_all(True):
        for attr in LINK_ATTRIBUTES:
            value = tag.get(attr)
            if not isinstance(value, str):
                continue
            value = value.strip()
            if value in SKIPPED_LINKS or value.startswith(("#", "?")):
                continue
            if value.lower().startswith(SKIPPED_SCHEMES):
                continue
            absolute, _ = urldefrag(urljoin(base_url, value))
            if absolute == base_url or absolute in seen:
                continue
            seen.add(absolute)
            links.append(absolute)
    return links
