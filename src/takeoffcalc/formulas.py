"""Small tagged expression type for spreadsheet formulas.

Expressions are built with ordinary Python operators (``this.J * this.H / 27``) and only
become text once every row reference has been bound to a concrete row number by the
layout builder. Binding and rendering are separate so references can be validated first.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Set, Tuple, Union

from .errors import InvariantViolation
from .models import COLUMNS, CY, FT, LBS, QTY_FINAL, SQ_FT, FormulaCell, ValueCell

SWELL_FACTOR = 1.3
CUBIC_FEET_PER_YARD = 27

_PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2}
_ATOM = 3
_PLAIN_SHEET = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Number = Union[int, float]


class Expr:
    """Base class; arithmetic operators build :class:`BinaryOp` nodes."""

    def __add__(self, other: Any) -> "BinaryOp":
        return BinaryOp("+", self, as_expr(other))

    def __radd__(self, other: Any) -> "BinaryOp":
        return BinaryOp("+", as_expr(other), self)

    def __sub__(self, other: Any) -> "BinaryOp":
        return BinaryOp("-", self, as_expr(other))

    def __rsub__(self, other: Any) -> "BinaryOp":
        return BinaryOp("-", as_expr(other), self)

    def __mul__(self, other: Any) -> "BinaryOp":
        return BinaryOp("*", self, as_expr(other))

    def __rmul__(self, other: Any) -> "BinaryOp":
        return BinaryOp("*", as_expr(other), self)

    def __truediv__(self, other: Any) -> "BinaryOp":
        return BinaryOp("/", self, as_expr(other))

    def __rtruediv__(self, other: Any) -> "BinaryOp":
        return BinaryOp("/", as_expr(other), self)


@dataclass(frozen=True, eq=True)
class Literal(Expr):
    value: Number


@dataclass(frozen=True, eq=True)
class ColumnRef(Expr):
    """Reference to ``column`` on ``row``.

    ``row`` is ``None`` for "the row this formula lives on", a layout ``RowHandle``
    before binding, or an ``int`` afterwards. ``sheet`` is set for cross-sheet refs.
    """

    column: str
    row: Any = None
    sheet: Optional[str] = None


@dataclass(frozen=True, eq=True)
class Sum(Expr):
    column: str
    spans: Tuple[Tuple[Any, Any], ...]
    sheet: Optional[str] = None


@dataclass(frozen=True, eq=True)
class BinaryOp(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True, eq=True)
class Call(Expr):
    name: str
    args: Tuple[Expr, ...]


def as_expr(value: Any) -> Expr:
    if isinstance(value, Expr):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"cannot use {value!r} in a formula")
    return Literal(value)


def roundup(value: Any, digits: int = 0) -> Call:
    return Call("ROUNDUP", (as_expr(value), Literal(digits)))


def sqrt(value: Any) -> Call:
    return Call("SQRT", (as_expr(value),))


def total(column: str, *spans: Tuple[Any, Any], sheet: Optional[str] = None) -> Sum:
    if not spans:
        raise ValueError("SUM needs at least one span")
    return Sum(column, tuple(spans), sheet)


class RowView:
    """Attribute access sugar: ``RowView(handle).L`` is ``ColumnRef("L", handle)``."""

    __slots__ = ("_row", "_sheet")

    def __init__(self, row: Any = None, sheet: Optional[str] = None) -> None:
        self._row = row
        self._sheet = sheet

    def __getattr__(self, name: str) -> ColumnRef:
        if name in COLUMNS:
            return ColumnRef(name, self._row, self._sheet)
        raise AttributeError(name)


this = RowView()


def at(row: Any, sheet: Optional[str] = None) -> RowView:
    return RowView(row, sheet)


# ---------------------------------------------------------------------------
# Binding and inspection


def _bind_row(row: Any, resolve: Callable[[Any], int], current: Optional[int]) -> int:
    if row is None:
        if current is None:
            raise InvariantViolation("current-row reference outside of a row")
        return current
    if isinstance(row, int) and not isinstance(row, bool):
        return row
    return resolve(row)


def bind(expr: Expr, resolve: Callable[[Any], int], row: Optional[int] = None) -> Expr:
    """Return ``expr`` with every row reference replaced by a row number."""

    if isinstance(expr, Literal):
        return expr
    if isinstance(expr, ColumnRef):
        return ColumnRef(expr.column, _bind_row(expr.row, resolve, row), expr.sheet)
    if isinstance(expr, Sum):
        spans = tuple(
            (_bind_row(first, resolve, row), _bind_row(last, resolve, row)) for first, last in expr.spans
        )
        return Sum(expr.column, spans, expr.sheet)
    if isinstance(expr, BinaryOp):
        return BinaryOp(expr.op, bind(expr.left, resolve, row), bind(expr.right, resolve, row))
    if isinstance(expr, Call):
        return Call(expr.name, tuple(bind(a, resolve, row) for a in expr.args))
    raise TypeError(f"unknown expression node {expr!r}")


def _walk(expr: Expr) -> Iterable[Expr]:
    yield expr
    if isinstance(expr, BinaryOp):
        yield from _walk(expr.left)
        yield from _walk(expr.right)
    elif isinstance(expr, Call):
        for arg in expr.args:
            yield from _walk(arg)


def referenced_rows(expr: Expr, row: Optional[int] = None) -> Tuple[int, ...]:
    """Sorted same-sheet rows ``expr`` reads; ``expr`` must be bound (or ``row`` given)."""

    rows: Set[int] = set()
    for node in _walk(expr):
        if isinstance(node, ColumnRef) and node.sheet is None:
            rows.add(_bind_row(node.row, _unbound, row))
        elif isinstance(node, Sum) and node.sheet is None:
            for first, last in node.spans:
                lo, hi = _bind_row(first, _unbound, row), _bind_row(last, _unbound, row)
                if lo > hi:
                    raise InvariantViolation(f"SUM span {lo}:{hi} runs backwards")
                rows.update(range(lo, hi + 1))
    return tuple(sorted(rows))


def referenced_sheets(expr: Expr) -> Tuple[str, ...]:
    names = {n.sheet for n in _walk(expr) if isinstance(n, (ColumnRef, Sum)) and n.sheet}
    return tuple(sorted(names))


def _unbound(row: Any) -> int:
    raise InvariantViolation(f"row reference {row!r} has not been bound")


# ---------------------------------------------------------------------------
# Rendering


def format_number(value: Number) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    return format(value, ".10g")


def sheet_prefix(name: Optional[str]) -> str:
    if not name:
        return ""
    if _PLAIN_SHEET.match(name):
        return f"{name}!"
    return "'" + name.replace("'", "''") + "'!"


def _precedence(expr: Expr) -> int:
    if isinstance(expr, BinaryOp):
        return _PRECEDENCE[expr.op]
    return _ATOM


def _operand(expr: Expr, row: Optional[int], parent: str, right: bool) -> str:
    text = render(expr, row)
    mine, theirs = _precedence(expr), _PRECEDENCE[parent]
    if mine < theirs or (right and mine == theirs and parent in "-/"):
        return f"({text})"
    if isinstance(expr, Literal) and expr.value < 0:
        return f"({text})"
    return text


def render(expr: Expr, row: Optional[int] = None) -> str:
    """Spreadsheet text for ``expr`` without the leading ``=``."""

    if isinstance(expr, Literal):
        return format_number(expr.value)
    if isinstance(expr, ColumnRef):
        return f"{sheet_prefix(expr.sheet)}{expr.column}{_bind_row(expr.row, _unbound, row)}"
    if isinstance(expr, Sum):
        prefix = sheet_prefix(expr.sheet)
        parts = []
        for first, last in expr.spans:
            lo, hi = _bind_row(first, _unbound, row), _bind_row(last, _unbound, row)
            if lo == hi:
                parts.append(f"{prefix}{expr.column}{lo}")
            else:
                parts.append(f"{prefix}{expr.column}{lo}:{expr.column}{hi}")
        return "SUM(" + ",".join(parts) + ")"
    if isinstance(expr, BinaryOp):
        left = _operand(expr.left, row, expr.op, right=False)
        right = _operand(expr.right, row, expr.op, right=True)
        return f"{left}{expr.op}{right}"
    if isinstance(expr, Call):
        return expr.name + "(" + ",".join(render(a, row) for a in expr.args) + ")"
    raise TypeError(f"unknown expression node {expr!r}")


def formula_cell(expr: Expr, *, deferred: bool = False) -> FormulaCell:
    """Wrap a fully bound expression as a workbook cell."""

    return FormulaCell(
        expr=expr,
        text=render(expr),
        referenced_rows=referenced_rows(expr),
        sheet_refs=referenced_sheets(expr),
        deferred=deferred,
    )


# ---------------------------------------------------------------------------
# Evaluation

Lookup = Callable[[Optional[str], str, int], float]


def _roundup(value: float, digits: float) -> float:
    factor = 10 ** int(digits)
    scaled = round(abs(value) * factor, 9)
    return math.copysign(math.ceil(scaled) / factor, value) if value else 0.0


def _sqrt(value: float) -> float:
    return math.sqrt(value) if value > 0 else 0.0


_FUNCTIONS: Dict[str, Callable[..., float]] = {"ROUNDUP": _roundup, "SQRT": _sqrt}


def evaluate(expr: Expr, lookup: Lookup, row: Optional[int] = None) -> float:
    """Numeric value of ``expr``; blank and text cells count as zero."""

    if isinstance(expr, Literal):
        return float(expr.value)
    if isinstance(expr, ColumnRef):
        return lookup(expr.sheet, expr.column, _bind_row(expr.row, _unbound, row))
    if isinstance(expr, Sum):
        result = 0.0
        for first, last in expr.spans:
            lo, hi = _bind_row(first, _unbound, row), _bind_row(last, _unbound, row)
            for r in range(lo, hi + 1):
                result += lookup(expr.sheet, expr.column, r)
        return result
    if isinstance(expr, BinaryOp):
        left = evaluate(expr.left, lookup, row)
        right = evaluate(expr.right, lookup, row)
        if expr.op == "+":
            return left + right
        if expr.op == "-":
            return left - right
        if expr.op == "*":
            return left * right
        if right == 0:
            return 0.0
        return left / right
    if isinstance(expr, Call):
        func = _FUNCTIONS.get(expr.name)
        if func is None:
            raise ValueError(f"unsupported function {expr.name}")
        return func(*(evaluate(a, lookup, row) for a in expr.args))
    raise TypeError(f"unknown expression node {expr!r}")


def numeric(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return 0.0 if isinstance(value, float) and math.isnan(value) else float(value)
    return 0.0


class WorkbookEvaluator:
    """Memoising evaluator that follows formulas across the sheets of one workbook."""

    def __init__(self, workbook: Any) -> None:
        self.workbook = workbook
        self._cache: Dict[Tuple[str, str, int], float] = {}
        self._active: Set[Tuple[str, str, int]] = set()

    def value(self, sheet: str, column: str, row: int) -> float:
        key = (sheet, column, row)
        if key in self._cache:
            return self._cache[key]
        if key in self._active:
            raise InvariantViolation(f"circular reference at {sheet}!{column}{row}")
        try:
            target = self.workbook.sheet(sheet).row(row)
        except KeyError:
            return 0.0
        cell = target.cell(column)
        self._active.add(key)
        try:
            if isinstance(cell, FormulaCell):
                result = evaluate(cell.expr, lambda s, c, r: self.value(s or sheet, c, r), row)
            elif isinstance(cell, ValueCell):
                result = numeric(cell.value)
            else:
                result = numeric(cell)
        finally:
            self._active.discard(key)
        self._cache[key] = result
        return result


# ---------------------------------------------------------------------------
# Derivation shapes


def area_only() -> Dict[str, Expr]:
    return {SQ_FT: this.C, CY: this.J * this.H / CUBIC_FEET_PER_YARD}


def linear_to_area() -> Dict[str, Expr]:
    return {
        FT: this.C,
        SQ_FT: this.I * this.H,
        CY: this.J * this.G / CUBIC_FEET_PER_YARD,
    }


def box_volume() -> Dict[str, Expr]:
    return {
        SQ_FT: this.C * this.F * this.G,
        CY: this.J * this.H / CUBIC_FEET_PER_YARD,
        QTY_FINAL: this.C,
    }


def swell_excavation() -> Dict[str, Expr]:
    """Bank volume in K, swell-adjusted volume in L."""

    return {
        LBS: this.J * this.H / CUBIC_FEET_PER_YARD,
        CY: this.K * SWELL_FACTOR,
    }


def backfill_volume() -> Dict[str, Expr]:
    return {CY: this.J * this.H / CUBIC_FEET_PER_YARD}


def count_only() -> Dict[str, Expr]:
    return {QTY_FINAL: this.C}


__all__ = [
    "BinaryOp",
    "CUBIC_FEET_PER_YARD",
    "Call",
    "ColumnRef",
    "Expr",
    "Literal",
    "RowView",
    "SWELL_FACTOR",
    "Sum",
    "WorkbookEvaluator",
    "area_only",
    "as_expr",
    "at",
    "backfill_volume",
    "bind",
    "box_volume",
    "count_only",
    "evaluate",
    "format_number",
    "formula_cell",
    "linear_to_area",
    "numeric",
    "referenced_rows",
    "referenced_sheets",
    "render",
    "roundup",
    "sqrt",
    "sheet_prefix",
    "swell_excavation",
    "this",
    "total",
]
