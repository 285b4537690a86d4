"""Compile construction takeoff line items into formula-annotated estimate workbooks."""

from .errors import InputError, InvariantViolation, TakeoffError
from .models import RawRow, Sheet, Workbook
from .pipeline import CompileResult, compile_takeoff

__all__ = [
    "CompileResult",
    "InputError",
    "InvariantViolation",
    "RawRow",
    "Sheet",
    "TakeoffError",
    "Workbook",
    "compile_takeoff",
]
