"""Shared utilities for ovpnsvc."""

from ._logging import create_service_logger
from ._time import get_timestamp

__all__ = ["create_service_logger", "get_timestamp"]
