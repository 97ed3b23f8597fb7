"""Main entry point for the laneq CLI.

Usage:
    python -m laneq --help
    laneq --help  # If installed via pip/uv
"""

from laneq.cli import main

if __name__ == "__main__":
    main()
