"""Unit tests for cpansa_db.aggregate: database assembly."""

import io
from pathlib import Path
from typing import Any

import pytest
import requests

from conftest import make_index_gz, make_session, release_response, write_yaml
from cpansa_db.aggregate import Database, PackageEntry, assemble_database, build_database, fetch_module_index
from cpansa_db.config import GeneratorConfig
from cpansa_db.log import StreamLogger


def _fetcher(releases_by_package: dict[str, list[dict[str, Any]]]):
    calls: list[str] = []

    def fetch(name: str) -> list[dict[str, Any]]:
        calls.append(name)
        return releases_by_package.get(name, [])

    fetch.calls = calls
    return fetch


def _release(date: str, version: str, status: str = "cpan", main_module: str = "Main") -> dict[str, Any]:
    return {"date": date, "version": version, "status": status, "main_module": main_module}


# ── assemble_database ────────────────────────────────────────────────────────


class TestAssembleDatabase:
    def test_resolves_in_advisory_order(self):
        advisories = {"B-Dist": [{"id": "1"}], "A-Dist": [{"id": "2"}]}
        fetch = _fetcher({"B-Dist": [_release("2020-01-01", "1")], "A-Dist": [_release("2021-01-01", "2")]})
        db = assemble_database(advisories, {}, fetch)
        assert fetch.calls == ["B-Dist", "A-Dist"]
        assert list(db.packages) == ["B-Dist", "A-Dist"]

    def test_drops_packages_without_releases(self):
        stream = io.StringIO()
        advisories = {"Kept": [{"id": "1"}], "Gone": [{"id": "2"}]}
        fetch = _fetcher({"Kept": [_release("2020-01-01", "1.0", "latest", "Kept")]})
        db = assemble_database(advisories, {"Kept": "Kept", "Gone::Mod": "Gone"}, fetch, StreamLogger(stream))
        assert set(db.packages) == {"Kept"}
        assert set(db.packages) < set(advisories)
        assert db.module_to_package == {"Kept": "Kept"}
        assert "Gone" in stream.getvalue()

    def test_attaches_versions_and_main_module(self):
        releases = [
            _release("2019-01-01", "1.0", "backpan", "Old::Name"),
            _release("2020-01-01", "2.0", "latest", "New::Name"),
            _release("2021-01-01", "2.1_01", "cpan", "Dev::Name"),
        ]
        db = assemble_database({"Dist": [{"id": "x"}]}, {}, _fetcher({"Dist": releases}))
        entry = db.packages["Dist"]
        assert entry.main_module == "New::Name"
        assert [v["version"] for v in entry.versions] == ["1.0", "2.0", "2.1_01"]
        assert entry.advisories == [{"id": "x"}]

    def test_perl_main_module_override(self):
        fetch = _fetcher({"perl": [_release("2022-05-28", "5.36.0", "latest", "perl5db.pl")]})
        db = assemble_database({"perl": [{"id": "CPANSA-perl-1"}]}, {}, fetch)
        assert db.packages["perl"].main_module == "perl"

    def test_perl_override_noop_when_absent(self):
        db = assemble_database({"Other": [{"id": "1"}]}, {}, _fetcher({"Other": [_release("2020", "1", "latest", "O")]}))
        assert "perl" not in db.packages
        assert db.packages["Other"].main_module == "O"

    def test_fetch_failure_propagates(self):
        def fetch(name):
            raise RuntimeError(f"Release search for {name} failed: HTTP 500")

        with pytest.raises(RuntimeError, match="HTTP 500"):
            assemble_database({"Foo": [{"id": "1"}]}, {}, fetch)

    def test_idempotent(self):
        advisories = {"A": [{"id": "1"}, {"id": "2"}], "B": [{"id": "3"}], "C": [{"id": "4"}]}
        releases = {"A": [_release("2020", "1"), _release("2021", "2", "latest", "A")], "B": [_release("2019", "0.1")]}
        index = {"A": "A", "A::Util": "A", "B": "B", "C": "C"}
        first = assemble_database(advisories, index, _fetcher(releases))
        second = assemble_database(advisories, index, _fetcher(releases))
        assert first.to_dict() == second.to_dict()
        assert list(first.packages) == list(second.packages)


class TestDatabaseToDict:
    def test_shape(self):
        db = Database(
            packages={"Foo": PackageEntry(name="Foo", advisories=[{"id": "1"}], versions=[{"date": "d", "version": "1"}], main_module="Foo")},
            module_to_package={"Foo": "Foo"},
        )
        assert db.to_dict() == {
            "packages": {"Foo": {"advisories": [{"id": "1"}], "versions": [{"date": "d", "version": "1"}], "main_module": "Foo"}},
            "module_to_package": {"Foo": "Foo"},
        }


# ── fetch_module_index / build_database ──────────────────────────────────────


class TestFetchModuleIndex:
    def test_filters_to_advisory_packages(self, foo_bar_index_gz):
        session = make_session(foo_bar_index_gz, {})
        stream = io.StringIO()
        index = fetch_module_index(GeneratorConfig(), session, {"Foo-Bar": []}, StreamLogger(stream))
        assert index == {"Foo::Bar": "Foo-Bar"}
        assert "Mapped 1 module" in stream.getvalue()

    def test_reports_unparseable_lines(self):
        gz = make_index_gz(["Foo::Bar 1.0 A/AU/Foo-Bar-1.0.tar.gz", "Loose::Script 0 S/SC/SCRIPTER/tool.pl"])
        stream = io.StringIO()
        fetch_module_index(GeneratorConfig(), make_session(gz, {}), {"Foo-Bar": []}, StreamLogger(stream))
        assert "Skipped 1 index line" in stream.getvalue()

    def test_index_fetch_failure(self):
        session = make_session(b"", {})
        session.get.return_value.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        with pytest.raises(RuntimeError, match="Could not fetch CPAN index"):
            fetch_module_index(GeneratorConfig(), session, {}, None)


class TestBuildDatabase:
    def test_end_to_end(self, foo_bar_advisory_dir: Path, foo_bar_index_gz, foo_bar_releases):
        config = GeneratorConfig(advisories_dir=foo_bar_advisory_dir)
        db = build_database(config, make_session(foo_bar_index_gz, foo_bar_releases))

        assert list(db.packages) == ["Foo-Bar"]
        entry = db.packages["Foo-Bar"]
        assert entry.advisories == [{"id": "CPANSA-1"}]
        assert entry.versions == [{"date": "2020-01-01", "version": "1.0"}]
        assert entry.main_module == "Foo::Bar"
        assert db.module_to_package == {"Foo::Bar": "Foo-Bar"}

    def test_explicit_files_replace_directory(self, tmp_path: Path, foo_bar_advisory_dir: Path, foo_bar_index_gz, foo_bar_releases):
        extra = write_yaml(tmp_path / "elsewhere" / "Baz.yml", [{"distribution": "Baz", "id": "CPANSA-Baz-1"}])
        releases = {**foo_bar_releases, "Baz": [_release("2018-01-01", "0.5", "latest", "Baz")]}
        config = GeneratorConfig(advisories_dir=foo_bar_advisory_dir, advisory_files=[extra])
        db = build_database(config, make_session(foo_bar_index_gz, releases))
        assert list(db.packages) == ["Baz"]
        assert db.module_to_package == {}

    def test_release_failure_aborts(self, foo_bar_advisory_dir: Path, foo_bar_index_gz):
        session = make_session(foo_bar_index_gz, {})
        session.post.side_effect = None
        session.post.return_value = release_response([], status_code=500)
        with pytest.raises(RuntimeError, match="Foo-Bar failed: HTTP 500"):
            build_database(GeneratorConfig(advisories_dir=foo_bar_advisory_dir), session)

    def test_missing_explicit_file_is_fatal(self, tmp_path: Path, foo_bar_index_gz):
        config = GeneratorConfig(advisory_files=[tmp_path / "nope.yml"])
        with pytest.raises(OSError):
            build_database(config, make_session(foo_bar_index_gz, {}))

    def test_repeatable(self, foo_bar_advisory_dir: Path, foo_bar_index_gz, foo_bar_releases):
        config = GeneratorConfig(advisories_dir=foo_bar_advisory_dir)
        first = build_database(config, make_session(foo_bar_index_gz, foo_bar_releases))
        second = build_database(config, make_session(foo_bar_index_gz, foo_bar_releases))
        assert first.to_dict() == second.to_dict()
