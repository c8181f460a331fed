"""Utility functions for certificate management."""

from milou_ssl.utils.cmd import command_exists, run_cmd
from milou_ssl.utils.output import Reporter

__all__ = [
    "Reporter",
    "command_exists",
    "run_cmd",
]
