"""Entry point for running nodeflow as a module.

Usage:
    python -m nodeflow
"""

from nodeflow.cli.app import app


def main() -> None:
    """Main entry point for the nodeflow CLI."""
    app()


if __name__ == "__main__":
    main()
