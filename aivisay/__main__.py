"""Module entrypoint for running aivisay as ``python -m aivisay``."""

from __future__ import annotations

from aivisay.cli import main


if __name__ == "__main__":
    main()
