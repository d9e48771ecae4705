"""Utility helpers for LANLink."""

from .logging import configure_logging

__all__ = ["configure_logging"]
