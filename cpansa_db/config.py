"""Configuration model using Pydantic.

A single ``GeneratorConfig`` is built at startup (from defaults, an optional
config file and command-line overrides) and handed to every component that
needs it.  Nothing reads options from module-level state.
"""

import json
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from .downloaders import DEFAULT_HTTP_TIMEOUT

DEFAULT_ADVISORIES_DIR = Path("cpan-security-advisory/cpansa")
CPAN_INDEX_URL = "https://www.cpan.org/modules/02packages.details.txt.gz"
METACPAN_RELEASE_SEARCH_URL = "https://fastapi.metacpan.org/v1/release/_search"

VERSION_STAMP_RE = re.compile(r"^\d{8}\.\d{3}$")


class GeneratorConfig(BaseModel):
    """Validated generator configuration.

    Example YAML::

        advisories_dir: cpan-security-advisory/cpansa
        output: lib/cpansa_db_data.py
        output_format: module
        gpg_key: "0xDEADBEEF"
        quiet: false

    Attributes:
        advisory_files: Explicit advisory files.  When non-empty these replace
            the default directory scan.
        advisories_dir: Directory scanned for advisory files by default.
        advisory_glob: Filename pattern used for the directory scan.
        index_url: CPAN ``02packages`` index location.
        release_search_url: MetaCPAN release search endpoint.
        release_page_size: Maximum releases requested per distribution.
        output: Destination file, or ``None`` to write to stdout.
        output_format: ``module`` (Python source) or ``json``.
        gpg_key: Key id used for a detached signature.  ``None`` disables
            signing.
        quiet: Suppress progress and warning messages.
        version: Explicit ``YYYYMMDD.NNN`` stamp.  ``None`` derives one from
            the date and any previous output.
        http_timeout: ``(connect, read)`` timeout in seconds.
    """

    advisory_files: list[Path] = Field(default_factory=list)
    advisories_dir: Path = DEFAULT_ADVISORIES_DIR
    advisory_glob: str = "*.yml"
    index_url: str = CPAN_INDEX_URL
    release_search_url: str = METACPAN_RELEASE_SEARCH_URL
    release_page_size: int = Field(default=5000, ge=1, le=10000)
    output: Path | None = None
    output_format: str = "module"  # module | json
    gpg_key: str | None = None
    quiet: bool = False
    version: str | None = None
    http_timeout: tuple[float, float] = DEFAULT_HTTP_TIMEOUT

    @field_validator("output_format", mode="before")
    @classmethod
    def _check_format(cls, v: Any) -> str:
        fmt = str(v or "").strip().lower()
        if fmt not in ("module", "json"):
            raise ValueError(f"output_format must be 'module' or 'json', not {v!r}")
        return fmt

    @field_validator("version")
    @classmethod
    def _check_version(cls, v: str | None) -> str | None:
        if v is not None and not VERSION_STAMP_RE.match(v):
            raise ValueError(f"version must look like YYYYMMDD.NNN, not {v!r}")
        return v

    @field_validator("gpg_key", mode="before")
    @classmethod
    def _blank_key_is_none(cls, v: Any) -> str | None:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    def advisory_paths(self) -> list[Path]:
        """Resolve the advisory files to load, in load order.

        Returns:
            The explicit ``advisory_files`` when given, otherwise every file in
            ``advisories_dir`` matching ``advisory_glob``, sorted by name.

        Raises:
            FileNotFoundError: if no files are given and ``advisories_dir``
                does not exist.
        """
        if self.advisory_files:
            return list(self.advisory_files)
        if not self.advisories_dir.is_dir():
            raise FileNotFoundError(f"Advisories directory {self.advisories_dir} does not exist")
        return sorted(p for p in self.advisories_dir.glob(self.advisory_glob) if p.is_file())


def load_config(path: Path) -> GeneratorConfig:
    """Load generator settings from a YAML or JSON file.

    Args:
        path: Path to the config file.

    Returns:
        Validated ``GeneratorConfig`` instance.

    Raises:
        FileNotFoundError: if the file doesn't exist.
        pydantic.ValidationError: if content fails validation.
    """
    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        raw = json.loads(content)
    else:
        raw = yaml.safe_load(content) or {}
    return GeneratorConfig.model_validate(raw)
