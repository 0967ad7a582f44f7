"""HTTP download helpers for the CPAN index and MetaCPAN release search.

All network I/O is isolated here; the rest of the package works with
in-memory data structures.
"""

import gzip
import io
from pathlib import Path
from typing import Any, Iterator

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from . import __version__
from .parsers import RELEASE_FIELDS, releases_from_response

DEFAULT_HTTP_TIMEOUT = (10, 120)  # (connect, read)
INDEX_FILENAME = "02packages.details.txt.gz"


def requests_session() -> requests.Session:
    """Create a requests session with the generator's headers.

    Returns:
        Configured ``requests.Session``.
    """
    s = requests.Session()
    s.headers.update(
        {
            "User-Agent": f"cpansa-db/{__version__} (+https://github.com/)",
            "Accept": "application/json",
        }
    )
    return s


@retry(
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    reraise=True,
)
def download_to_file(
    session: requests.Session,
    url: str,
    dest: Path,
    timeout: tuple[float, float] = DEFAULT_HTTP_TIMEOUT,
) -> Path:
    """Stream a URL to a local file.

    Connection errors and timeouts are retried; an HTTP error status is not.

    Args:
        session: Requests session.
        url: URL to fetch.
        dest: File to write.
        timeout: ``(connect, read)`` timeout.

    Returns:
        ``dest``.

    Raises:
        requests.HTTPError: on a non-success status.
    """
    with session.get(url, stream=True, timeout=timeout, headers={"Accept": "*/*"}) as r:
        r.raise_for_status()
        with dest.open("wb") as f:
            for chunk in r.iter_content(chunk_size=1024 * 1024):
                if chunk:
                    f.write(chunk)
    return dest


# ─────────────────────────────────────────────────────────────────────────────
# CPAN 02packages index
# ─────────────────────────────────────────────────────────────────────────────


def download_module_index(
    session: requests.Session,
    url: str,
    dest_dir: Path,
    timeout: tuple[float, float] = DEFAULT_HTTP_TIMEOUT,
) -> Path:
    """Download the compressed CPAN module index into ``dest_dir``.

    Args:
        session: Requests session.
        url: Index URL.
        dest_dir: Scratch directory owned by the caller.
        timeout: ``(connect, read)`` timeout.

    Returns:
        Path to the downloaded ``.gz`` file.

    Raises:
        RuntimeError: if the index cannot be fetched.
    """
    dest = dest_dir / INDEX_FILENAME
    try:
        return download_to_file(session, url, dest, timeout=timeout)
    except requests.RequestException as e:
        raise RuntimeError(f"Could not fetch CPAN index {url}: {e}") from e


def iter_index_lines(path: Path) -> Iterator[str]:
    """Yield decoded lines from a gzip-compressed index file.

    Raises:
        RuntimeError: if the file is not valid gzip data.
    """
    try:
        with gzip.open(path, "rb") as gz:
            for raw in io.TextIOWrapper(gz, encoding="utf-8", errors="replace"):
                yield raw.rstrip("\r\n")
    except (OSError, EOFError) as e:
        raise RuntimeError(f"Could not read CPAN index {path}: {e}") from e


# ─────────────────────────────────────────────────────────────────────────────
# MetaCPAN release search
# ─────────────────────────────────────────────────────────────────────────────


def release_search_query(package: str, size: int = 5000) -> dict[str, Any]:
    """Build the release search request body for one distribution."""
    return {
        "size": size,
        "fields": list(RELEASE_FIELDS),
        "query": {"term": {"distribution": package}},
        "sort": [{"date": "asc"}],
    }


def search_releases(
    session: requests.Session,
    url: str,
    package: str,
    size: int = 5000,
    timeout: tuple[float, float] = DEFAULT_HTTP_TIMEOUT,
) -> list[dict[str, Any]]:
    """Fetch every known release of ``package``, oldest first.

    A failed request aborts the run; there is no retry here because a
    snapshot missing one distribution's history is not worth publishing.

    Args:
        session: Requests session.
        url: Release search endpoint.
        package: Distribution name.
        size: Maximum releases to request.
        timeout: ``(connect, read)`` timeout.

    Returns:
        List of ``{date, version, status, main_module}`` dicts; empty when
        the service knows no releases.

    Raises:
        RuntimeError: on a transport failure, a non-success status, or a
            response body that is not a JSON object.
    """
    try:
        r = session.post(url, json=release_search_query(package, size), timeout=timeout)
    except requests.RequestException as e:
        raise RuntimeError(f"Release search for {package} failed: {e}") from e
    if not r.ok:
        raise RuntimeError(f"Release search for {package} failed: HTTP {r.status_code}")
    try:
        payload = r.json()
    except ValueError as e:
        raise RuntimeError(f"Release search for {package} returned invalid JSON: {e}") from e
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise RuntimeError(f"Release search for {package} returned {type(payload).__name__}, expected an object")
    return releases_from_response(payload)
