"""OpenMath integers (OMI payload).

Two representations:

    compact   a Python int inside the signed 128-bit range
    big       a validated decimal string matching [+-]?[0-9]+

The compact form is chosen whenever the value fits.  No big-number
arithmetic happens here: a literal that does not fit is validated and
kept as text, and ordering compares digit strings.
"""

from __future__ import annotations

import functools
import re
from typing import Optional, Tuple

from ._constants import I128_MAX, I128_MIN
from ._errors import ERR_INVALID_INTEGER, ERR_RANGE, ERR_TYPE, OpenMathError

_DECIMAL = re.compile(r"[+-]?[0-9]+\Z")

# Longest magnitude (in digits) that can still be compact: 2**127 has 39.
_MAX_COMPACT_DIGITS = len(str(I128_MAX))


@functools.total_ordering
class Integer:
    """An arbitrary-precision integer literal with a 128-bit fast path."""

    __slots__ = ("_compact", "_big")

    def __init__(self, value: int) -> None:
        # bool is an int subclass; OpenMath has no boolean integer.
        if isinstance(value, bool) or not isinstance(value, int):
            raise OpenMathError(
                ERR_TYPE, "Integer expects int, got {}".format(type(value).__name__))
        if I128_MIN <= value <= I128_MAX:
            self._compact: Optional[int] = value
            self._big: Optional[str] = None
        else:
            self._compact = None
            try:
                self._big = str(value)
            except ValueError:
                raise OpenMathError(
                    ERR_RANGE, "integer too large to convert to decimal") from None

    @classmethod
    def parse(cls, s: str) -> "Integer":
        """Parse a decimal literal.  A leading '+' is dropped, zeros kept."""
        if not isinstance(s, str) or not _DECIMAL.match(s):
            raise OpenMathError(ERR_INVALID_INTEGER,
                                "invalid integer literal: {!r}".format(s))
        magnitude = s.lstrip("+-").lstrip("0")
        if len(magnitude) <= _MAX_COMPACT_DIGITS:
            sign = "-" if s.startswith("-") else ""
            value = int(sign + (magnitude or "0"))
            if I128_MIN <= value <= I128_MAX:
                return cls(value)
        out = cls.__new__(cls)
        out._compact = None
        out._big = s[1:] if s.startswith("+") else s
        return out

    # ── Classification ───────────────────────────────────────

    @property
    def compact(self) -> Optional[int]:
        return self._compact

    @property
    def big(self) -> Optional[str]:
        return self._big

    def is_zero(self) -> bool:
        # A big literal never has a zero magnitude: those parse as compact.
        return self._compact == 0

    def is_positive(self) -> bool:
        if self._compact is not None:
            return self._compact > 0
        return not self._big.startswith("-")

    def is_negative(self) -> bool:
        if self._compact is not None:
            return self._compact < 0
        return self._big.startswith("-")

    # ── Comparison ───────────────────────────────────────────

    def _sign_digits(self) -> Tuple[int, str]:
        if self._compact is not None:
            v = self._compact
            return (v > 0) - (v < 0), str(abs(v))
        sign = -1 if self._big.startswith("-") else 1
        return sign, self._big.lstrip("-").lstrip("0")

    def _cmp(self, other: "Integer") -> int:
        sa, da = self._sign_digits()
        sb, db = other._sign_digits()
        if sa != sb:
            return -1 if sa < sb else 1
        ka, kb = (len(da), da), (len(db), db)
        c = (ka > kb) - (ka < kb)
        return c if sa >= 0 else -c

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Integer):
            return NotImplemented
        return self._cmp(other) == 0

    def __lt__(self, other: "Integer") -> bool:
        if not isinstance(other, Integer):
            return NotImplemented
        return self._cmp(other) < 0

    def __hash__(self) -> int:
        return hash(self._sign_digits())

    # ── Conversion ───────────────────────────────────────────

    def __int__(self) -> int:
        if self._compact is not None:
            return self._compact
        sign, digits = self._sign_digits()
        try:
            return int(digits) * sign
        except ValueError:
            raise OpenMathError(
                ERR_RANGE, "integer literal has too many digits for int()") from None

    def __str__(self) -> str:
        if self._compact is not None:
            return str(self._compact)
        return self._big

    def __repr__(self) -> str:
        if self._compact is not None:
            return "Integer({})".format(self._compact)
        return "Integer.parse({!r})".format(self._big)
