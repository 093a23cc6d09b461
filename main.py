"""Main entry point for jsonwebhooks."""

from jsonwebhooks.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
