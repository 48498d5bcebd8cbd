"""Module entrypoint for running Ambiscene as ``python -m ambiscene``."""

from __future__ import annotations

from ambiscene.cli import main


if __name__ == "__main__":
    main()
