"""CLI entry point for copilot-client."""

import sys


def main() -> int:
    """Main entry point for copilot-client CLI."""
    from copilot_client.cli import run_cli

    return run_cli(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
