"""Exceptions raised by the analytics engine."""
from __future__ import annotations


class EngineError(Exception):
    """Base class for analytics engine failures."""


class InvalidRangeError(EngineError):
    """Raised when a date range or duration is malformed.

    Examples are a range whose start falls after its end, a non-positive
    number of days, or a workout with a non-positive duration. Not a
    ``ValueError`` so pydantic validators let it propagate unwrapped.
    """

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.context = context


class ConfigurationError(EngineError):
    """Raised when the analytics threshold file cannot be used."""
