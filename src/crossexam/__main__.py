"""Module entrypoint for ``python -m crossexam``."""

from __future__ import annotations

from crossexam.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
