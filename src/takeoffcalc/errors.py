from __future__ import annotations


class TakeoffError(Exception):
    """Base class for takeoff compiler failures."""


class InvariantViolation(TakeoffError, AssertionError):
    """An internal ordering or reference assumption no longer holds."""


class InputError(TakeoffError, ValueError):
    """The supplied takeoff table cannot be mapped to raw rows."""


__all__ = ["TakeoffError", "InvariantViolation", "InputError"]
