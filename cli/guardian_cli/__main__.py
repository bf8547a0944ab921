"""Entry point for `python -m guardian_cli` and `guardian` console script."""

from __future__ import annotations

from guardian_cli.app import app


def main() -> None:
    app()


if __name__ == "__main__":
    main()
