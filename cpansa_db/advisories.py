"""CPANSA advisory loading.

Advisory files come in two shapes:

- a bare list of advisory records, each carrying a ``distribution`` field
  (the package name is taken from the first record);
- a mapping with ``distribution`` and ``advisories`` keys.

Both are folded into one ``{package_name: [advisory, ...]}`` mapping.  The
records themselves are opaque; they are only normalized into plain
JSON-compatible data (string keys, no binary or non-finite scalars) so both
output formats can carry them.
"""

import base64
import datetime
import math
from pathlib import Path
from typing import Any, Iterable

import yaml

from .log import Logger, NullLogger


class AdvisoryLoader(yaml.SafeLoader):
    """``SafeLoader`` that keeps date-like scalars as plain strings.

    Advisory records are opaque; turning ``reported: 2021-03-04`` into a
    ``datetime.date`` would leak a Python type into the serialized snapshot.
    """


AdvisoryLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_advisory_file(path: Path) -> Any:
    """Read and parse one advisory file.

    Args:
        path: YAML advisory file.

    Returns:
        The parsed document (list, dict, or whatever the file holds).

    Raises:
        OSError: if the file cannot be read.
        yaml.YAMLError: if the file is not valid YAML.
    """
    with path.open("r", encoding="utf-8") as f:
        return yaml.load(f, Loader=AdvisoryLoader)


def split_document(document: Any) -> tuple[str | None, list[Any]] | None:
    """Extract ``(package_name, advisories)`` from one parsed document.

    Returns:
        ``None`` when the document has neither accepted shape.  The package
        name is ``None`` (or empty) when the document does not name one.
    """
    if isinstance(document, list):
        first = document[0] if document else None
        name = first.get("distribution") if isinstance(first, dict) else None
        return name, document
    if isinstance(document, dict) and isinstance(document.get("advisories"), list):
        return document.get("distribution"), document["advisories"]
    return None


def normalize_value(value: Any) -> Any:
    """Coerce a parsed YAML value into plain JSON-compatible data.

    Mapping keys become strings, sequences and sets become lists, ``!!binary``
    payloads become base64 text, explicit timestamps become ISO strings and
    ``.nan``/``.inf`` become ``"nan"``/``"inf"``/``"-inf"``.  Everything else
    is returned as is.
    """
    if isinstance(value, dict):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [normalize_value(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return [normalize_value(v) for v in sorted(value, key=str)]
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return value


def collect_advisories(
    sources: Iterable[tuple[str, Any]],
    logger: Logger | None = None,
) -> dict[str, list[Any]]:
    """Group advisories from every source by package name.

    Sources are processed in order; advisories for a package seen in several
    sources are concatenated, duplicates included.  Records are passed
    through :func:`normalize_value`.

    Args:
        sources: ``(source_name, parsed_document)`` pairs.  The name is only
            used in warnings.
        logger: Receives a warning for each skipped source.

    Returns:
        Mapping of package name to its advisories, in first-seen order.
    """
    logger = logger or NullLogger()
    by_package: dict[str, list[Any]] = {}

    for source, document in sources:
        split = split_document(document)
        if split is None:
            logger.warning(f"{source}: unrecognized advisory document shape, skipping")
            continue
        name, advisories = split
        if not name or not isinstance(name, str):
            logger.warning(f"{source}: no distribution name, skipping")
            continue
        by_package.setdefault(name, []).extend(normalize_value(advisories))

    return by_package


def load_advisories(paths: Iterable[Path], logger: Logger | None = None) -> dict[str, list[Any]]:
    """Load advisory files and group them by package name.

    Args:
        paths: Advisory files, in load order.
        logger: Progress/warning sink.

    Returns:
        Mapping of package name to its advisories.

    Raises:
        OSError: if a file cannot be read.
        yaml.YAMLError: if a file cannot be parsed.
    """
    logger = logger or NullLogger()
    paths = list(paths)
    logger.info(f"Loading {len(paths)} advisory file(s)...")
    advisories = collect_advisories(((str(p), load_advisory_file(p)) for p in paths), logger)
    logger.info(f"  Loaded advisories for {len(advisories)} distribution(s)")
    return advisories
