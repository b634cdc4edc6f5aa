"""Telemetry and observability helpers.

This package emits structured run events for speech pipeline diagnostics.
"""

from .logger import RunLogger

__all__ = ["RunLogger"]
