"""Snapshot serialization.

Renders a ``Database`` either as JSON or as an importable Python module (via
the Jinja2 template in ``cpansa_db/templates/db.py.j2``), and derives the
``YYYYMMDD.NNN`` version stamp from any previous snapshot.
"""

import datetime as dt
import json
import pprint
import re
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from . import __version__
from .aggregate import Database

_TEMPLATES_DIR = Path(__file__).parent / "templates"

_STAMP_RE = re.compile(r"""^(?:VERSION\s*=|  "version":)\s*["'](\d{8})\.(\d{3})["']""", re.MULTILINE)


def now_utc_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0).isoformat()


def find_version_stamp(text: str) -> str | None:
    """Return the top-level ``YYYYMMDD.NNN`` stamp of a module or JSON snapshot."""
    m = _STAMP_RE.search(text or "")
    if not m:
        return None
    return f"{m.group(1)}.{m.group(2)}"


def read_previous_version(path: Path | None) -> str | None:
    """Read the version stamp embedded in a previous snapshot, if any."""
    if path is None or not path.is_file():
        return None
    return find_version_stamp(path.read_text(encoding="utf-8", errors="replace"))


def next_version(previous: str | None, today: dt.date | None = None) -> str:
    """Compute the stamp for a new snapshot.

    Same-day regenerations bump the serial; a new day starts at ``001``.

    Args:
        previous: Stamp of the previous snapshot, or ``None``.
        today: Generation date (defaults to the current UTC date).

    Returns:
        Stamp such as ``20240615.002``.
    """
    today = today or dt.datetime.now(dt.timezone.utc).date()
    date_part = today.strftime("%Y%m%d")
    serial = 1
    if previous:
        prev_date, _, prev_serial = previous.partition(".")
        if prev_date == date_part and prev_serial.isdigit():
            serial = int(prev_serial) + 1
    return f"{date_part}.{serial:03d}"


def render_json(db: Database, version: str, generated_at: str | None = None) -> str:
    """Render the snapshot as a JSON document."""
    payload: dict[str, Any] = {
        "version": version,
        "generated_at": generated_at or now_utc_iso(),
        **db.to_dict(),
    }
    return json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def render_module(db: Database, version: str, generated_at: str | None = None) -> str:
    """Render the snapshot as Python source defining ``VERSION`` and ``DB``."""
    env = Environment(
        loader=FileSystemLoader(str(_TEMPLATES_DIR)),
        autoescape=select_autoescape(default_for_string=False, default=False),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["pyrepr"] = repr
    template = env.get_template("db.py.j2")
    return template.render(
        generator_version=__version__,
        generated_at=generated_at or now_utc_iso(),
        version=version,
        db_literal=pprint.pformat(db.to_dict(), indent=1, width=100, sort_dicts=True),
    )


def render(db: Database, version: str, output_format: str, generated_at: str | None = None) -> str:
    """Render in the configured format (``module`` or ``json``)."""
    if output_format == "json":
        return render_json(db, version, generated_at)
    return render_module(db, version, generated_at)


def write_atomic(path: Path, data: bytes) -> None:
    """Write bytes to ``path`` via a temporary sibling and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("wb") as f:
        f.write(data)
    tmp.replace(path)
