"""
HTTP access with the synthetic Cydia client identity.

All network traffic of a run goes through one requests.Session built here,
so every probe, package download and crawl fetch carries the same headers.
"""

import logging
import os

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import config
from .errors import TransportError

logger = logging.getLogger(__name__)


def build_session(identity=None, max_retry=config.MAX_RETRY):
    """Create a session that identifies itself as Cydia on a device."""
    identity = identity or config.ClientIdentity()
    session = requests.Session()
    retry = Retry(
        total=max_retry,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods={"GET", "HEAD"},
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update(identity.headers())
    return session


def fetch(session, url, timeout=config.PROBE_TIMEOUT):
    """
    GET a URL and return its body.

    Raises:
        TransportError: on network errors and non-2xx responses
    """
    try:
        with session.get(url, timeout=timeout) as response:
            response.raise_for_status()
            return response.content
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        raise TransportError(url, f"HTTP {status}", status=status) from e
    except requests.RequestException as e:
        raise TransportError(url, str(e)) from e


def tmp_path_for(local_path):
    directory, name = os.path.split(local_path)
    return os.path.join(directory, config.TMP_PREFIX + name)


def has_file(local_path):
    """True when a non-empty file is already present at local_path."""
    return os.path.isfile(local_path) and os.path.getsize(local_path) > 0


def save_file(data, local_path):
    """Write bytes already in memory to local_path through a temporary file."""
    tmp_path = tmp_path_for(local_path)
    try:
        os.makedirs(os.path.dirname(local_path), exist_ok=True)
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, local_path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
    return len(data)


def download_file(session, url, local_path, timeout=config.DOWNLOAD_TIMEOUT):
    """
    Download url to local_path.

    The body is streamed to a temporary sibling file which is renamed into
    place once complete, so an interrupted transfer never leaves a truncated
    file behind under the real name.

    Returns:
        int: Number of bytes written

    Raises:
        TransportError: if the fetch fails or the file cannot be written
    """
    tmp_path = tmp_path_for(local_path)
    written = 0
    try:
        with session.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            os.makedirs(os.path.dirname(local_path), exist_ok=True)
            with open(tmp_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        os.replace(tmp_path, local_path)
        return written
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        raise TransportError(url, f"HTTP {status}", status=status) from e
    except requests.RequestException as e:
        raise TransportError(url, str(e)) from e
    except OSError as e:
        raise TransportError(url, f"could not write {local_path}: {e}") from e
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
