"""Utility modules for the roof pricing functions."""

from utils.estimate_logger import (
    configure_logging,
    log_estimate_breakdown,
    log_ledger_replay,
)

__all__ = [
    "configure_logging",
    "log_estimate_breakdown",
    "log_ledger_replay",
]
