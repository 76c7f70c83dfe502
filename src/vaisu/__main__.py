"""Entry point for running Vaisu as a module.

Usage:
    python -m vaisu [command] [options]

Example:
    python -m vaisu analyze report.md --output analysis.md
    python -m vaisu check
"""

from vaisu.cli import app

if __name__ == "__main__":
    app()
