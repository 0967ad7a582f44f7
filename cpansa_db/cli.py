"""Command-line entry point for the database generator."""

import argparse
import sys
from pathlib import Path
from typing import Any, Sequence

import requests
import yaml
from pydantic import ValidationError

from . import __version__
from .aggregate import build_database
from .config import GeneratorConfig, load_config
from .downloaders import requests_session
from .log import make_logger
from .serialize import next_version, read_previous_version, render, write_atomic
from .signing import SIGNATURE_SUFFIX, sign_bytes


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cpansa-db-generate",
        description="Build the CPAN security advisory database snapshot.",
    )
    p.add_argument("files", nargs="*", type=Path, help="Advisory files (default: all files in --advisories-dir)")
    p.add_argument("--config", type=Path, help="YAML or JSON settings file")
    p.add_argument("--advisories-dir", type=Path, help="Directory scanned for advisory files")
    p.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    p.add_argument("--json", action="store_true", help="Write JSON instead of a Python module")
    p.add_argument("--gpg-key", help="Sign the output with this GPG key")
    p.add_argument("-q", "--quiet", action="store_true", help="Suppress progress messages")
    p.add_argument("--version-stamp", help="Use this YYYYMMDD.NNN version instead of deriving one")
    p.add_argument("--index-url", help="CPAN 02packages index URL")
    p.add_argument("--release-search-url", help="MetaCPAN release search endpoint")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def _resolve_config(args: argparse.Namespace) -> GeneratorConfig:
    """Merge the optional config file with command-line overrides."""
    base = load_config(args.config) if args.config else GeneratorConfig()
    overrides: dict[str, Any] = {}
    if args.files:
        overrides["advisory_files"] = args.files
    if args.advisories_dir is not None:
        overrides["advisories_dir"] = args.advisories_dir
    if args.output is not None:
        overrides["output"] = args.output
    if args.json:
        overrides["output_format"] = "json"
    if args.gpg_key:
        overrides["gpg_key"] = args.gpg_key
    if args.quiet:
        overrides["quiet"] = True
    if args.version_stamp:
        overrides["version"] = args.version_stamp
    if args.index_url:
        overrides["index_url"] = args.index_url
    if args.release_search_url:
        overrides["release_search_url"] = args.release_search_url
    return GeneratorConfig.model_validate({**base.model_dump(), **overrides})


def generate(config: GeneratorConfig, session: requests.Session | None = None) -> str:
    """Build, render, sign and write one snapshot.

    Nothing is written until the database has been built, rendered and (if
    requested) signed.

    Args:
        config: Generator configuration.
        session: Requests session (a fresh one by default).

    Returns:
        The version stamp of the written snapshot.
    """
    logger = make_logger(config.quiet)
    session = session or requests_session()

    db = build_database(config, session, logger)
    version = config.version or next_version(read_previous_version(config.output))
    text = render(db, version, config.output_format)

    if config.output is None:
        if config.gpg_key:
            logger.warning("output is stdout, not signing")
        sys.stdout.write(text)
        sys.stdout.flush()
        return version

    data = text.encode("utf-8")
    signature = sign_bytes(data, config.gpg_key) if config.gpg_key else None
    write_atomic(config.output, data)
    logger.info(f"Wrote {config.output} (version {version})")
    if signature is not None:
        sig_path = config.output.with_name(config.output.name + SIGNATURE_SUFFIX)
        write_atomic(sig_path, signature)
        logger.info(f"Wrote {sig_path}")
    return version


def main(argv: Sequence[str] | None = None) -> int:
    """Run the generator.  Returns a process exit code."""
    args = _build_parser().parse_args(argv)
    try:
        config = _resolve_config(args)
        generate(config)
    except (RuntimeError, OSError, TypeError, ValueError, requests.RequestException, yaml.YAMLError, ValidationError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0
