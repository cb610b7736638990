"""CLI entry point for slicer_copilot.

Enables invocation via `python -m slicer_copilot` or `uv run slicer-copilot`.
"""

import sys

from slicer_copilot.cli.app import app

if __name__ == "__main__":
    exit_code = app()
    sys.exit(exit_code if exit_code is not None else 0)
