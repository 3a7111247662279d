"""
Mirror orchestration: validate, locate metadata, build the package index,
download every artifact, crawl whatever else is reachable, write the log.
"""

import concurrent.futures
import enum
import logging
import os
import time
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

from . import config
from .client import build_session, download_file, has_file, save_file
from .control import parse_control
from .crawler import RecursiveCrawler, host_dir_name, local_path_for_url
from .decompress import decompress
from .errors import (
    DecompressionError,
    InputValidationError,
    NotFoundError,
    ParseError,
    TransportError,
)
from .index import DEFAULT_ROOT_RULES, build_artifacts
from .locator import MetadataLocator
from .state import (
    PHASE_CANCELLED,
    PHASE_COMPLETE,
    PHASE_CRAWLING,
    PHASE_DOWNLOADING,
    PHASE_ERROR,
    PHASE_PARSING,
    PHASE_SEARCHING,
    PHASE_VALIDATING,
    RunHandle,
    RunLogHandler,
)

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "cydia_mirror"


class MirrorStatus(enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class MirrorResult:
    status: MirrorStatus
    files_total: int
    files_downloaded: int
    failures: List = field(default_factory=list)
    mirror_root: Optional[str] = None
    log_path: Optional[str] = None
    message: str = ""


def validate_inputs(repo_url, destination):
    """
    Check the repository URL and destination directory.

    Returns:
        tuple: (normalized repository URL, absolute destination path)

    Raises:
        InputValidationError: if either one is unusable
    """
    url = (repo_url or "").strip()
    if not url:
        raise InputValidationError("Invalid URL: the repository URL is empty")
    parsed = urlparse(url)
    if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
        raise InputValidationError(
            "Invalid URL: Please enter a valid URL starting with http:// or https://"
        )

    if not destination or not str(destination).strip():
        raise InputValidationError("Invalid destination: no download destination given")
    dest = os.path.abspath(os.path.expanduser(str(destination).strip()))
    if not os.path.isdir(dest):
        raise InputValidationError(
            f"Invalid destination: {dest} must be an existing folder"
        )
    return url, dest


def format_failures(failures, limit=config.DISPLAY_FAILURE_LIMIT):
    """Failure lines for display, capped at limit with a '+N more' line."""
    lines = [f"  ✗ {failure}" for failure in failures[:limit]]
    if len(failures) > limit:
        lines.append(f"  +{len(failures) - limit} more")
    return lines


def summary_line(status, failures, message=""):
    if status is MirrorStatus.CANCELLED:
        return "Operation cancelled by user."
    if failures:
        return (f"Download finished with {len(failures)} errors. "
                f"See {config.ERROR_LOG_FILE_NAME} for details.")
    if status is MirrorStatus.FAILED:
        return f"Download failed: {message}"
    return "Download complete. No errors encountered."


class RepoMirror:
    """Mirrors one APT repository into <destination>/<host>/."""

    def __init__(self, repo_url, destination, mirror_config=None, handle=None, session=None):
        self.repo_url = repo_url
        self.destination = destination
        self.config = mirror_config or config.MirrorConfig()
        self.handle = handle or RunHandle()
        self.session = session
        self.mirror_root = None
        self.root_rules = (
            DEFAULT_ROOT_RULES if self.config.root_rules is None
            else tuple(self.config.root_rules)
        )

    def run(self):
        """
        Run the mirror to completion.

        Only input validation raises (InputValidationError); every later
        problem is reported through the returned MirrorResult.
        """
        self.handle.set_phase(PHASE_VALIDATING)
        url, dest = validate_inputs(self.repo_url, self.destination)
        self.repo_url, self.destination = url, dest
        self.mirror_root = os.path.join(dest, host_dir_name(url))

        package_logger = logging.getLogger(PACKAGE_LOGGER)
        log_handler = RunLogHandler(self.handle, level=logging.DEBUG)
        previous_level = package_logger.level
        if package_logger.getEffectiveLevel() > logging.INFO:
            package_logger.setLevel(logging.INFO)
        package_logger.addHandler(log_handler)

        own_session = self.session is None
        if own_session:
            self.session = build_session(self.config.identity, self.config.max_retry)
        try:
            return self._mirror()
        finally:
            package_logger.removeHandler(log_handler)
            package_logger.setLevel(previous_level)
            if own_session:
                self.session.close()
                self.session = None

    def _mirror(self):
        start_time = time.time()
        try:
            os.makedirs(self.mirror_root, exist_ok=True)
        except OSError as e:
            return self._finalize(MirrorStatus.FAILED, f"Failed to create destination directory: {e}")

        logger.info("=" * 70)
        logger.info("Cydia Repo Mirror")
        logger.info(f"Repository: {self.repo_url}")
        logger.info(f"Mirror Directory: {self.mirror_root}")
        logger.info("=" * 70)

        self.handle.set_phase(PHASE_SEARCHING)
        locator = MetadataLocator(self.session, arch=self.config.arch,
                                  timeout=self.config.probe_timeout, handle=self.handle)
        crawl_root = self.repo_url
        try:
            located = locator.locate(self.repo_url)
        except NotFoundError as e:
            if self.handle.cancelled:
                return self._finalize(MirrorStatus.CANCELLED)
            if e.release_url is None:
                return self._finalize(MirrorStatus.FAILED, str(e))
            logger.warning(f"{e}; crawling the repository instead")
            crawl_root = e.release_url.rsplit("/", 1)[0] + "/"
            self.save_metadata(e.release_url, e.release_content)
            located = None

        if located is not None:
            self.handle.set_phase(PHASE_PARSING)
            try:
                artifacts = self.build_index(located)
            except (DecompressionError, ParseError) as e:
                return self._finalize(MirrorStatus.FAILED, f"{located.filename}: {e}")
            self.save_metadata(located.release_url, located.release_content)
            self.save_metadata(located.url, located.content)

            self.handle.set_phase(PHASE_DOWNLOADING)
            self.download_all(artifacts)

        if self.config.crawl and not self.handle.cancelled:
            self.handle.set_phase(PHASE_CRAWLING)
            crawler = RecursiveCrawler(
                self.session, self.destination, self.handle,
                timeout=self.config.download_timeout, max_depth=self.config.max_depth,
                delay=self.config.delay,
            )
            crawler.start(crawl_root)

        elapsed = time.time() - start_time
        logger.info(f"Time elapsed: {elapsed:.2f} seconds")

        if self.handle.cancelled:
            return self._finalize(MirrorStatus.CANCELLED)
        if self.handle.failures:
            return self._finalize(MirrorStatus.FAILED)
        return self._finalize(MirrorStatus.SUCCESS)

    def build_index(self, located):
        """Decompress and parse the located Packages file into artifacts."""
        content = located.content
        if located.compression:
            logger.info(f"Decompressing {located.filename} ({located.compression})")
            content = decompress(content, located.compression,
                                 max_size=self.config.max_metadata_size or None)

        stanzas = parse_control(content.decode("utf-8", errors="replace"))
        if not stanzas:
            raise ParseError("no package entries found")

        artifacts = build_artifacts(stanzas, located.repository_root, self.root_rules)
        if not artifacts:
            raise ParseError(f"no .deb files listed in {len(stanzas)} package entries")
        logger.info(f"Found {len(artifacts)} .deb files in {len(stanzas)} package entries")
        return artifacts

    def save_metadata(self, url, content):
        """Keep a fetched Release or Packages file in the mirror tree."""
        if url is None or content is None:
            return
        local_path = local_path_for_url(url, self.destination)
        try:
            save_file(content, local_path)
            logger.info(f"✓ Saved: {url}")
        except OSError as e:
            logger.error(f"✗ Failed to save {url}: {e}")
            self.handle.add_failure(urlparse(url).path, f"could not write {local_path}: {e}")

    def download_artifact(self, artifact, position, total):
        """Fetch one artifact unless it is already mirrored. Never raises TransportError."""
        local_path = local_path_for_url(artifact.url, self.destination)
        try:
            if has_file(local_path):
                logger.info(f"({position}/{total}) Skipping (already exists): {artifact.path}")
                return
            logger.info(f"({position}/{total}) Downloading: {artifact.url}")
            size = download_file(self.session, artifact.url, local_path,
                                 timeout=self.config.download_timeout)
            logger.info(f"✓ Downloaded: {os.path.basename(local_path)} ({size / (1024 * 1024):.2f} MB)")
        except TransportError as e:
            logger.error(f"✗ Failed to download {artifact.path}: {e.reason}")
            self.handle.add_failure(artifact.path, e.reason)
        finally:
            self.handle.mark_done()

    def download_all(self, artifacts):
        """Download artifacts in index order, honoring pause and cancellation."""
        total = len(artifacts)
        self.handle.add_total(total)
        workers = max(1, min(self.config.workers, total or 1))

        if workers == 1:
            for position, artifact in enumerate(artifacts, 1):
                if not self.handle.checkpoint():
                    logger.info("Cancellation requested, stopping downloads")
                    return
                self.download_artifact(artifact, position, total)
            return

        logger.info(f"Starting parallel download of {total} files with {workers} workers")

        def worker(artifact, position):
            if not self.handle.checkpoint():
                return
            self.download_artifact(artifact, position, total)

        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_artifact = {
                executor.submit(worker, artifact, position): artifact
                for position, artifact in enumerate(artifacts, 1)
            }
            for future in concurrent.futures.as_completed(future_to_artifact):
                artifact = future_to_artifact[future]
                try:
                    future.result()
                except Exception as e:
                    logger.error(f"Download task for {artifact.url} generated an unhandled exception: {e}")
                    self.handle.add_failure(artifact.path, str(e))

    def _finalize(self, status, message=""):
        failures = self.handle.failures
        if status is MirrorStatus.CANCELLED:
            self.handle.set_phase(PHASE_CANCELLED)
        elif status is MirrorStatus.FAILED and not failures:
            self.handle.set_phase(PHASE_ERROR)
            logger.error(message)
        else:
            self.handle.set_phase(PHASE_COMPLETE)

        summary = summary_line(status, failures, message)
        logger.info("=" * 70)
        logger.info("Download Summary")
        logger.info(f"Files: {self.handle.files_downloaded}/{self.handle.files_total}")
        logger.info(f"Failed: {len(failures)} files")
        for line in format_failures(failures, self.config.display_failure_limit):
            logger.info(line)
        logger.info("=" * 70)

        log_path = self._write_logs(summary, failures)
        logger.info(summary)
        if log_path:
            logger.info(f"Your local mirror is at: {self.mirror_root}")

        return MirrorResult(
            status=status,
            files_total=self.handle.files_total,
            files_downloaded=self.handle.files_downloaded,
            failures=failures,
            mirror_root=self.mirror_root,
            log_path=log_path,
            message=message or summary,
        )

    def _write_logs(self, summary, failures):
        """Write download.log and download-errors.log. Returns the log path or None."""
        if not self.mirror_root or not os.path.isdir(self.mirror_root):
            return None
        log_path = os.path.join(self.mirror_root, config.LOG_FILE_NAME)
        error_path = os.path.join(self.mirror_root, config.ERROR_LOG_FILE_NAME)
        try:
            with open(log_path, "w", encoding="utf-8") as f:
                text = self.handle.log_text
                if text:
                    f.write(text + "\n")
                f.write(summary + "\n")

            if failures:
                with open(error_path, "w", encoding="utf-8") as f:
                    for failure in failures:
                        f.write(f"{failure}\n")
            elif os.path.exists(error_path):
                os.remove(error_path)
        except OSError as e:
            logger.error(f"Failed to write run log to {log_path}: {e}")
            return None
        return log_path


def mirror_repository(repo_url, destination, mirror_config=None, handle=None, session=None):
    """Convenience wrapper around RepoMirror(...).run()."""
    return RepoMirror(repo_url, destination, mirror_config, handle, session).run()
