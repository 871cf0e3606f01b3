"""Shared helpers for hostbench."""

from hb_common.api import HBError, configure_logging

__all__ = ["configure_logging", "HBError"]
