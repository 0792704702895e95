"""2D affine matrix helpers shared by extraction and document assembly."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Callable, ClassVar, Iterable, Sequence

__all__ = ["Matrix"]


_FUNCTION_RE = re.compile(r"\s*([a-zA-Z][a-zA-Z0-9]*)\(([^()]*)\)\s*")
_NUMBER_RE = re.compile(r"^([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)([a-zA-Z%]*)$")

_ANGLE_UNITS = {
    "deg": math.pi / 180.0,
    "rad": 1.0,
    "grad": math.pi / 200.0,
    "turn": 2.0 * math.pi,
}


@dataclass(frozen=True, slots=True)
class Matrix:
    """Affine transform ``[[a, c, e], [b, d, f], [0, 0, 1]]``.

    The layout matches both CSS ``matrix(a, b, c, d, e, f)`` and the six
    operands of the PDF ``cm``/``Tm`` operators.
    """

    IDENTITY_VALUES: ClassVar[tuple[float, float, float, float, float, float]] = (
        1.0,
        0.0,
        0.0,
        1.0,
        0.0,
        0.0,
    )

    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    e: float = 0.0
    f: float = 0.0

    @classmethod
    def identity(cls) -> "Matrix":
        return cls()

    @classmethod
    def from_list(cls, values: Iterable[float]) -> "Matrix":
        items = [float(value) for value in values]
        if len(items) != 6:
            raise ValueError(f"An affine matrix needs 6 values, got {len(items)}")
        return cls(*items)

    @classmethod
    def from_style_string(cls, value: str | None) -> "Matrix":
        """Parse a CSS 2D transform function list.

        Computed styles always serialise as ``none`` or ``matrix(...)``, but
        snapshots written by hand may carry the authored function list, so the
        common 2D functions are accepted too. Anything that does not parse
        yields the identity matrix.
        """

        if not value:
            return cls()
        text = value.strip()
        if not text or text == "none":
            return cls()

        result = cls()
        position = 0
        while position < len(text):
            match = _FUNCTION_RE.match(text, position)
            if match is None:
                return cls()
            position = match.end()
            name = match.group(1).lower()
            args = [arg for arg in re.split(r"[\s,]+", match.group(2).strip()) if arg]
            try:
                step = _parse_function(name, args)
            except ValueError:
                return cls()
            if step is None:
                return cls()
            result = result.multiply(step)
        return result

    @property
    def is_identity(self) -> bool:
        return self.to_tuple() == self.IDENTITY_VALUES

    def multiply(self, other: "Matrix") -> "Matrix":
        """Return ``self x other`` (``other`` is applied first to points)."""

        a1, b1, c1, d1, e1, f1 = self.to_tuple()
        a2, b2, c2, d2, e2, f2 = other.to_tuple()
        return Matrix(
            a1 * a2 + c1 * b2,
            b1 * a2 + d1 * b2,
            a1 * c2 + c1 * d2,
            b1 * c2 + d1 * d2,
            a1 * e2 + c1 * f2 + e1,
            b1 * e2 + d1 * f2 + f1,
        )

    def to_tuple(self) -> tuple[float, float, float, float, float, float]:
        return (self.a, self.b, self.c, self.d, self.e, self.f)

    def to_list(self) -> list[float]:
        return list(self.to_tuple())


def _parse_number(token: str, units: dict[str, float] | None = None) -> float:
    match = _NUMBER_RE.match(token)
    if match is None:
        raise ValueError(f"Not a number: {token!r}")
    number = float(match.group(1))
    unit = match.group(2).lower()
    if units is None:
        if unit not in ("", "px"):
            raise ValueError(f"Unsupported length unit: {token!r}")
        return number
    if not unit:
        if number != 0.0:
            raise ValueError(f"Angle without unit: {token!r}")
        return 0.0
    if unit not in units:
        raise ValueError(f"Unsupported angle unit: {token!r}")
    return number * units[unit]


def _length(token: str) -> float:
    return _parse_number(token)


def _angle(token: str) -> float:
    return _parse_number(token, _ANGLE_UNITS)


def _scalar(token: str) -> float:
    if token.endswith("%"):
        return _parse_number(token[:-1]) / 100.0
    match = _NUMBER_RE.match(token)
    if match is None or match.group(2):
        raise ValueError(f"Not a plain number: {token!r}")
    return float(match.group(1))


def _expect(args: Sequence[str], *counts: int) -> None:
    if len(args) not in counts:
        raise ValueError(f"Unexpected argument count {len(args)}")


def _translate(args: Sequence[str]) -> Matrix:
    _expect(args, 1, 2)
    tx = _length(args[0])
    ty = _length(args[1]) if len(args) == 2 else 0.0
    return Matrix(1.0, 0.0, 0.0, 1.0, tx, ty)


def _scale(args: Sequence[str]) -> Matrix:
    _expect(args, 1, 2)
    sx = _scalar(args[0])
    sy = _scalar(args[1]) if len(args) == 2 else sx
    return Matrix(sx, 0.0, 0.0, sy, 0.0, 0.0)


def _rotate(args: Sequence[str]) -> Matrix:
    _expect(args, 1)
    angle = _angle(args[0])
    cos, sin = math.cos(angle), math.sin(angle)
    return Matrix(cos, sin, -sin, cos, 0.0, 0.0)


def _skew(args: Sequence[str]) -> Matrix:
    _expect(args, 1, 2)
    ax = _angle(args[0])
    ay = _angle(args[1]) if len(args) == 2 else 0.0
    return Matrix(1.0, math.tan(ay), math.tan(ax), 1.0, 0.0, 0.0)


def _matrix(args: Sequence[str]) -> Matrix:
    _expect(args, 6)
    return Matrix.from_list(_scalar(arg) for arg in args)


def _matrix3d(args: Sequence[str]) -> Matrix:
    _expect(args, 16)
    values = [_scalar(arg) for arg in args]
    # Column-major 4x4; keep the 2D affine part.
    return Matrix(values[0], values[1], values[4], values[5], values[12], values[13])


def _one(args: Sequence[str]) -> str:
    _expect(args, 1)
    return args[0]


def _three(args: Sequence[str]) -> Sequence[str]:
    _expect(args, 3)
    return args[:2]


_FUNCTIONS: dict[str, Callable[[Sequence[str]], Matrix]] = {
    "matrix": _matrix,
    "matrix3d": _matrix3d,
    "translate": _translate,
    "translatex": lambda args: _translate([_one(args), "0"]),
    "translatey": lambda args: _translate(["0", _one(args)]),
    "translate3d": lambda args: _translate(_three(args)),
    "scale": _scale,
    "scalex": lambda args: _scale([_one(args), "1"]),
    "scaley": lambda args: _scale(["1", _one(args)]),
    "scale3d": lambda args: _scale(_three(args)),
    "rotate": _rotate,
    "rotatez": _rotate,
    "skew": _skew,
    "skewx": lambda args: _skew([_one(args), "0"]),
    "skewy": lambda args: _skew(["0", _one(args)]),
}


def _parse_function(name: str, args: Sequence[str]) -> Matrix | None:
    handler = _FUNCTIONS.get(name)
    if handler is None:
        return None
    return handler(args)
