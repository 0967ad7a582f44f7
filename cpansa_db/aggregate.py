"""Database assembly.

Combines the advisory corpus with the CPAN module index and MetaCPAN release
history to build the in-memory vulnerability database.
"""

import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import requests

from .advisories import load_advisories
from .config import GeneratorConfig
from .downloaders import download_module_index, iter_index_lines, search_releases
from .log import Logger, NullLogger
from .parsers import build_module_index, summarize_releases

# The index reports an artifact for perl's own main module.
MAIN_MODULE_OVERRIDES = {"perl": "perl"}


@dataclass
class PackageEntry:
    """One distribution with at least one advisory.

    Attributes:
        name: Distribution name, case-sensitive.
        advisories: Advisory records in load order.
        versions: ``{date, version}`` dicts, oldest first.
        main_module: Module currently considered the distribution's entry point.
    """

    name: str
    advisories: list[Any] = field(default_factory=list)
    versions: list[dict[str, Any]] = field(default_factory=list)
    main_module: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "advisories": self.advisories,
            "versions": self.versions,
            "main_module": self.main_module,
        }


@dataclass
class Database:
    """The complete snapshot content.

    Attributes:
        packages: Distribution name → ``PackageEntry``.
        module_to_package: Module name → distribution name.
    """

    packages: dict[str, PackageEntry] = field(default_factory=dict)
    module_to_package: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "packages": {name: entry.to_dict() for name, entry in self.packages.items()},
            "module_to_package": dict(self.module_to_package),
        }


def assemble_database(
    advisories: Mapping[str, list[Any]],
    module_to_package: Mapping[str, str],
    fetch_releases: Callable[[str], list[dict[str, Any]]],
    logger: Logger | None = None,
) -> Database:
    """Resolve releases for each advisory package and build the database.

    Packages are resolved in ``advisories`` order.  A package with no
    releases is dropped, along with any module index entries pointing at it.

    Args:
        advisories: Package name → advisories.
        module_to_package: Module index restricted to advisory packages.
        fetch_releases: Returns a package's releases, oldest first.
        logger: Progress/warning sink.

    Returns:
        The assembled ``Database``.
    """
    logger = logger or NullLogger()
    db = Database()

    for name, records in advisories.items():
        versions, main_module = summarize_releases(fetch_releases(name))
        if not versions:
            logger.warning(f"{name}: no releases found, dropping from database")
            continue
        db.packages[name] = PackageEntry(
            name=name,
            advisories=list(records),
            versions=versions,
            main_module=main_module,
        )

    for name, main_module in MAIN_MODULE_OVERRIDES.items():
        if name in db.packages:
            db.packages[name].main_module = main_module

    db.module_to_package = {
        module: package for module, package in module_to_package.items() if package in db.packages
    }
    return db


def fetch_module_index(
    config: GeneratorConfig,
    session: requests.Session,
    packages: Mapping[str, Any],
    logger: Logger | None = None,
) -> dict[str, str]:
    """Download the CPAN index and map modules to advisory packages.

    The index is fetched into a temporary directory that is removed before
    this function returns.

    Raises:
        RuntimeError: if the index cannot be fetched or decompressed.
    """
    logger = logger or NullLogger()
    logger.info(f"Downloading CPAN index from {config.index_url}...")
    with tempfile.TemporaryDirectory(prefix="cpansa_db_") as tmp:
        index_path = download_module_index(session, config.index_url, Path(tmp), timeout=config.http_timeout)
        module_to_package, unparsed = build_module_index(iter_index_lines(index_path), packages)
    logger.info(f"  Mapped {len(module_to_package)} module(s) to advisory distributions")
    if unparsed:
        logger.info(f"  Skipped {unparsed} index line(s) with an unparseable package path")
    return module_to_package


def build_database(
    config: GeneratorConfig,
    session: requests.Session,
    logger: Logger | None = None,
) -> Database:
    """Run the full pipeline: advisories, module index, release history.

    Args:
        config: Generator configuration.
        session: Requests session used for every network call.
        logger: Progress/warning sink.

    Returns:
        The assembled ``Database``.

    Raises:
        RuntimeError: if the index or a release search fails.
        OSError: if an advisory file cannot be read.
        yaml.YAMLError: if an advisory file cannot be parsed.
    """
    logger = logger or NullLogger()
    advisories = load_advisories(config.advisory_paths(), logger)
    module_to_package = fetch_module_index(config, session, advisories, logger)

    logger.info(f"Resolving releases for {len(advisories)} distribution(s)...")

    def fetch(name: str) -> list[dict[str, Any]]:
        return search_releases(
            session,
            config.release_search_url,
            name,
            size=config.release_page_size,
            timeout=config.http_timeout,
        )

    db = assemble_database(advisories, module_to_package, fetch, logger)
    logger.info(f"  {len(db.packages)} distribution(s) in database")
    return db
