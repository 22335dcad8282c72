"""Script entry point.

Why it exists:
- Allows `python -m main` from inside `src/` during development.
- Keeps a plain entry point next to the `acprov` console script.
"""

from __future__ import annotations

import sys

# SteamCMD output and Rich panels contain non-cp1252 characters.
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

from cli.main import run


def main() -> None:
    run()


if __name__ == "__main__":
    main()
