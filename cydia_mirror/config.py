"""
Default settings for a mirror run.

Every default can be overridden through a ``CYDIA_MIRROR_*`` environment
variable, and again from the command line.
"""

import hashlib
import os
from dataclasses import dataclass, field
from typing import List, Optional


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {value!r}")


def _env_float(name, default):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {value!r}")


DEFAULT_ARCH = os.getenv("CYDIA_MIRROR_ARCH", "iphoneos-arm")

# Synthetic client identity. Several jailbreak repositories only serve
# packages to requests that look like they come from Cydia on a device.
USER_AGENT = os.getenv("CYDIA_MIRROR_USER_AGENT", "Telesphoreo APT-HTTP/1.0.592")
DEVICE_MODEL = os.getenv("CYDIA_MIRROR_DEVICE", "iPhone10,3")
FIRMWARE_VERSION = os.getenv("CYDIA_MIRROR_FIRMWARE", "13.5")
# 40 hex digits, stable across runs so repositories see the same "device"
DEVICE_ID = os.getenv(
    "CYDIA_MIRROR_UDID",
    hashlib.sha1(f"cydia-mirror:{DEVICE_MODEL}".encode("utf-8")).hexdigest(),
)

# (connect, read) timeouts in seconds
PROBE_TIMEOUT = _env_float("CYDIA_MIRROR_PROBE_TIMEOUT", 10.0)
DOWNLOAD_TIMEOUT = _env_float("CYDIA_MIRROR_DOWNLOAD_TIMEOUT", 60.0)
MAX_RETRY = _env_int("CYDIA_MIRROR_MAX_RETRY", 2)

MAX_CRAWL_DEPTH = _env_int("CYDIA_MIRROR_MAX_DEPTH", 20)
# seconds to wait between crawl downloads
CRAWL_DELAY = _env_float("CYDIA_MIRROR_WAIT", 0.0)
DOWNLOAD_WORKERS = _env_int("CYDIA_MIRROR_WORKERS", 1)
# 0 disables the limit
MAX_METADATA_SIZE = _env_int("CYDIA_MIRROR_MAX_METADATA_SIZE", 0)

DISPLAY_FAILURE_LIMIT = _env_int("CYDIA_MIRROR_DISPLAY_FAILURES", 10)
LOG_FILE_NAME = "download.log"
ERROR_LOG_FILE_NAME = "download-errors.log"
TMP_PREFIX = "._syncing_."


@dataclass
class ClientIdentity:
    user_agent: str = USER_AGENT
    device_model: str = DEVICE_MODEL
    device_id: str = DEVICE_ID
    firmware: str = FIRMWARE_VERSION

    def headers(self):
        """HTTP headers sent with every request."""
        return {
            "User-Agent": self.user_agent,
            "X-Machine": self.device_model,
            "X-Unique-ID": self.device_id,
            "X-Firmware": self.firmware,
        }


@dataclass
class MirrorConfig:
    """Per-run settings for RepoMirror."""

    arch: str = DEFAULT_ARCH
    identity: ClientIdentity = field(default_factory=ClientIdentity)
    probe_timeout: float = PROBE_TIMEOUT
    download_timeout: float = DOWNLOAD_TIMEOUT
    max_retry: int = MAX_RETRY
    max_depth: int = MAX_CRAWL_DEPTH
    delay: float = CRAWL_DELAY
    workers: int = DOWNLOAD_WORKERS
    crawl: bool = True
    root_rules: Optional[List] = None
    max_metadata_size: int = MAX_METADATA_SIZE
    display_failure_limit: int = DISPLAY_FAILURE_LIMIT
