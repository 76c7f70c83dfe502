"""Vaisu utility modules.

- logging: Standardized logging with human/verbose/JSON modes
- preflight: Provider access checks run before analysis
"""

from vaisu.utils.logging import configure_from_cli, get_logger, setup_logging
from vaisu.utils.preflight import PreflightChecker, PreflightResult

__all__ = [
    "configure_from_cli",
    "get_logger",
    "setup_logging",
    "PreflightChecker",
    "PreflightResult",
]
