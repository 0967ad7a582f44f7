"""Shared fixtures: advisory files, a gzip CPAN index and mocked sessions."""

import gzip
import io
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import yaml

INDEX_HEADER = """File:         02packages.details.txt
URL:          http://www.perl.com/CPAN/modules/02packages.details.txt
Description:  Package names found in directory $CPAN/authors/id/
Columns:      package name, version, path
Line-Count:   3
"""


def make_index_gz(body_lines: list[str], header: str = INDEX_HEADER) -> bytes:
    """Build a gzip-compressed ``02packages`` file."""
    text = header + "\n" + "\n".join(body_lines) + "\n"
    buf = io.BytesIO()
    with gzip.GzipFile(fileobj=buf, mode="wb") as gz:
        gz.write(text.encode("utf-8"))
    return buf.getvalue()


def release_response(releases: list[dict[str, Any]], status_code: int = 200) -> MagicMock:
    """Mock ``requests.Response`` for a release search."""
    resp = MagicMock()
    resp.ok = 200 <= status_code < 400
    resp.status_code = status_code
    resp.json.return_value = {"hits": {"total": len(releases), "hits": [{"fields": r} for r in releases]}}
    return resp


def streamed_response(content: bytes) -> MagicMock:
    """Mock streaming response usable as a context manager."""
    resp = MagicMock()
    resp.iter_content.return_value = [content]
    resp.__enter__ = lambda s: s
    resp.__exit__ = MagicMock(return_value=False)
    return resp


def make_session(index_gz: bytes, releases_by_package: dict[str, list[dict[str, Any]]]) -> MagicMock:
    """Mock session: ``get`` serves the index, ``post`` answers release searches."""
    session = MagicMock()
    session.get.return_value = streamed_response(index_gz)

    def post(url, json=None, timeout=None):
        name = json["query"]["term"]["distribution"]
        return release_response(releases_by_package.get(name, []))

    session.post.side_effect = post
    return session


def write_yaml(path: Path, document: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def foo_bar_advisory_dir(tmp_path: Path) -> Path:
    """Advisory directory with one mapping-shaped Foo-Bar document."""
    adv_dir = tmp_path / "cpansa"
    write_yaml(adv_dir / "CPANSA-Foo-Bar.yml", {"distribution": "Foo-Bar", "advisories": [{"id": "CPANSA-1"}]})
    return adv_dir


@pytest.fixture
def foo_bar_index_gz() -> bytes:
    return make_index_gz(
        [
            "Foo::Bar                         1.0  A/AU/Foo-Bar-1.0.tar.gz",
            "Unrelated::Module                2.0  U/UN/UNRELATED/Unrelated-2.0.tar.gz",
        ]
    )


@pytest.fixture
def foo_bar_releases() -> dict[str, list[dict[str, Any]]]:
    return {
        "Foo-Bar": [
            {"date": "2020-01-01", "version": "1.0", "status": "latest", "main_module": "Foo::Bar"},
        ]
    }
