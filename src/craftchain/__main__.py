"""Module entrypoint for ``python -m craftchain``."""

from __future__ import annotations

from craftchain.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
