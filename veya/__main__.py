"""Module entrypoint for running Veya as ``python -m veya``."""

from __future__ import annotations

from veya.cli import main


if __name__ == "__main__":
    main()
