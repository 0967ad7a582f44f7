"""CPAN index and MetaCPAN release parsing.

Pure functions for splitting CPAN package pathnames, reading the
``02packages`` index body, and deriving version history from release search
hits.  No I/O or network calls; all inputs are in-memory data structures.
"""

import re
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping

_AUTHOR_PREFIX_RE = re.compile(r"^(?:.*?/)?(?:authors/)?(?:id/)?([A-Z])/(\1[A-Z])/(\2[-A-Z0-9]*)/", re.IGNORECASE)
_ARCHIVE_RE = re.compile(r"([^/]+)\.(tar\.(?:g?z|bz2|xz)|zip|tgz|tbz)$", re.IGNORECASE)
_DIST_VERSION_RE = re.compile(r"^(?P<name>.+)-(?P<version>[vV]?\d[^-]*(?:-TRIAL\d*)?)$")


@dataclass(frozen=True)
class PackagePath:
    """Components of a CPAN package pathname such as
    ``A/AU/AUTHOR/Foo-Bar-1.0.tar.gz``.

    Attributes:
        pathname: The pathname as given.
        author: PAUSE id of the uploader, if the path carries one.
        name: Bare package (distribution) name, e.g. ``Foo-Bar``.
        versioned_name: Name with version, e.g. ``Foo-Bar-1.0``.
        version: Version string, or ``None`` when none could be split off.
        extension: Archive extension, e.g. ``tar.gz``.
    """

    pathname: str
    author: str | None
    name: str
    versioned_name: str
    version: str | None
    extension: str


def split_name_version(versioned_name: str) -> tuple[str, str | None]:
    """Split ``Foo-Bar-1.0`` into ``("Foo-Bar", "1.0")``.

    The version is the last ``-`` segment starting with a digit (optionally
    preceded by ``v``), plus a trailing ``-TRIAL`` marker; digit-led segments
    before it (``Acme-6502-0.77``) stay in the name.  A ``Dist.pm-1.0`` style
    name loses its ``.pm``.
    """
    m = _DIST_VERSION_RE.match(versioned_name)
    if not m:
        name, version = versioned_name, None
    else:
        name, version = m.group("name"), m.group("version")
    if name.endswith(".pm"):
        name = name[:-3]
    return name, version


def parse_package_pathname(pathname: str) -> PackagePath | None:
    """Parse a CPAN package pathname.

    Args:
        pathname: Pathname from the third column of ``02packages``.

    Returns:
        ``PackagePath``, or ``None`` when the path is not a recognized archive
        or yields no package name.
    """
    path = re.sub(r"/{2,}", "/", (pathname or "").strip())
    if not path:
        return None

    author = None
    m = _AUTHOR_PREFIX_RE.match(path)
    if m:
        author = m.group(3).upper()

    archive = _ARCHIVE_RE.search(path)
    if not archive:
        return None
    versioned_name, extension = archive.group(1), archive.group(2)

    name, version = split_name_version(versioned_name)
    if not name:
        return None
    return PackagePath(
        pathname=pathname,
        author=author,
        name=name,
        versioned_name=versioned_name,
        version=version,
        extension=extension,
    )


def iter_index_records(lines: Iterable[str]) -> Iterator[tuple[str, str, str]]:
    """Yield ``(module, version, pathname)`` from ``02packages`` text.

    Header lines up to and including the first empty line are skipped.  Body
    lines with fewer than three columns are ignored.
    """
    it = iter(lines)
    for line in it:
        if not line.strip():
            break
    for line in it:
        parts = line.split()
        if len(parts) < 3:
            continue
        yield parts[0], parts[1], parts[2]


def build_module_index(
    lines: Iterable[str],
    packages: Mapping[str, Any],
) -> tuple[dict[str, str], int]:
    """Map module names to the packages that own them.

    Only packages present in ``packages`` are recorded; when a module appears
    more than once the last line wins.

    Args:
        lines: ``02packages`` text, header included.
        packages: Known packages (typically the advisory mapping).

    Returns:
        Tuple of (module → package mapping, number of lines whose pathname
        could not be parsed).
    """
    index: dict[str, str] = {}
    unparsed = 0
    for module, _version, pathname in iter_index_records(lines):
        info = parse_package_pathname(pathname)
        if info is None:
            unparsed += 1
            continue
        if info.name in packages:
            index[module] = info.name
    return index, unparsed


# ─────────────────────────────────────────────────────────────────────────────
# MetaCPAN release search
# ─────────────────────────────────────────────────────────────────────────────

RELEASE_FIELDS = ("date", "version", "status", "main_module")


def _unwrap(value: Any) -> Any:
    """Elasticsearch ``fields`` values may come back as one-element lists."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


def normalize_hit(hit: Mapping[str, Any]) -> dict[str, Any]:
    """Flatten one search hit into a ``{date, version, status, main_module}`` dict."""
    fields = hit.get("fields") or hit.get("_source") or {}
    return {key: _unwrap(fields.get(key)) for key in RELEASE_FIELDS}


def releases_from_response(payload: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Extract normalized releases from a release search response body."""
    hits = (payload.get("hits") or {}).get("hits") or []
    return [normalize_hit(h) for h in hits if isinstance(h, dict)]


def summarize_releases(releases: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], str | None]:
    """Derive version history and main module from ordered releases.

    Args:
        releases: Releases sorted by date ascending.

    Returns:
        Tuple of (``[{date, version}, ...]`` in input order, main module).
        The main module comes from the release whose status is ``latest``,
        falling back to the last release.  ``([], None)`` for no releases.
    """
    if not releases:
        return [], None
    versions = [{"date": r.get("date"), "version": r.get("version")} for r in releases]
    latest = next((r for r in releases if r.get("status") == "latest"), releases[-1])
    return versions, latest.get("main_module")
