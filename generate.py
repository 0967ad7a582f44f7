#!/usr/bin/env python3
"""cpansa-db generator shim.

Lets ``python generate.py`` work from a checkout without installing the
package.  The real implementation lives in ``cpansa_db/``.
"""

from cpansa_db.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
