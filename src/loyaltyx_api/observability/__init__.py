"""Tracing setup."""

from .tracing import configure_tracing

__all__ = ["configure_tracing"]
