"""Serializer contract: the sink interface and the display sink.

A value becomes OpenMath by calling emission operations on a sink:

    class Point:
        def as_openmath(self, sink):
            return sink.oma(OMS("geometry1", "point", "http://example.org"),
                            (self.x, self.y))

Sinks conceal the target format (display text, XML, JSON tree).  Each
sink is single-use: the first emission consumes it, and children are
emitted through fresh sub-sinks.

cdbase inheritance (OpenMath 2.0 §2.1.4).  Every sink tracks the current
effective cdbase and a pending one set by `with_cdbase()`.  A node that
can carry the attribute (OMS, OMA, OMBIND, OME, OMATTR) emits it only
when the pending value differs from the current one; children start
from the parent's effective value.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple

from ._constants import DEFAULT_CDBASE
from ._errors import ERR_CUSTOM, ERR_SINK_CONSUMED, ERR_TYPE, ERR_UNEXPECTED, OpenMathError
from ._int import Integer
from ._model import OMFOREIGN, BoundVariable, as_variable


def serialize(value: Any, sink: "Sink") -> Any:
    """Emit `value` into `sink`.

    Native values map directly: int/Integer → OMI, float → OMF,
    str → OMSTR, bytes → OMB.  Anything else must provide
    `as_openmath(sink)` and may provide `openmath_cdbase()`.
    """
    # bool before int: a bool is an int subclass but has no OMI meaning.
    if isinstance(value, bool):
        raise OpenMathError(ERR_TYPE, "bool has no OpenMath representation")
    if isinstance(value, Integer):
        return sink.omi(value)
    if isinstance(value, int):
        return sink.omi(Integer(value))
    if isinstance(value, float):
        return sink.omf(value)
    if isinstance(value, str):
        return sink.omstr(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return sink.omb(bytes(value))
    if isinstance(value, OMFOREIGN):
        raise OpenMathError(
            ERR_UNEXPECTED,
            "OMFOREIGN is only allowed as an OME argument or attribute value")
    emit = getattr(value, "as_openmath", None)
    if emit is None:
        raise OpenMathError(
            ERR_TYPE, "no OpenMath representation for {}".format(type(value).__name__))
    preferred = getattr(value, "openmath_cdbase", None)
    if preferred is not None:
        cdbase = preferred()
        if cdbase is not None and cdbase != sink.current_cdbase():
            sink = sink.with_cdbase(cdbase)
    return emit(sink)


class OMObject:
    """Root wrapper: serializes `value` inside an OMOBJ envelope."""

    __slots__ = ("value", "namespace")

    def __init__(self, value: Any, namespace: bool = True) -> None:
        self.value = value
        self.namespace = namespace

    def as_openmath(self, sink: "Sink") -> Any:
        return serialize(self.value, sink)


# ── Sink base ────────────────────────────────────────────────

class Sink:
    """Abstract emission target.

    Subclasses implement the om* operations and `_derive()`, which makes
    a sibling sink writing to the same output with the given cdbase
    state.
    """

    def __init__(self, current: str = DEFAULT_CDBASE,
                 pending: Optional[str] = None) -> None:
        self._current = current
        self._pending = pending
        self._used = False

    def _derive(self, current: str, pending: Optional[str]) -> "Sink":
        raise NotImplementedError

    # ── cdbase tracking ──

    def current_cdbase(self) -> str:
        return self._pending if self._pending is not None else self._current

    def with_cdbase(self, cdbase: str) -> "Sink":
        if cdbase == self.current_cdbase():
            return self
        return self._derive(self._current, cdbase)

    def _consume(self) -> None:
        if self._used:
            raise OpenMathError(ERR_SINK_CONSUMED, "sink already used")
        self._used = True

    def _enter(self) -> Optional[str]:
        """Consume the sink; return the cdbase attribute to emit, if any."""
        self._consume()
        pending, self._pending = self._pending, None
        if pending is not None and pending != self._current:
            self._current = pending
            return pending
        return None

    def _child(self) -> "Sink":
        return self._derive(self._current, None)

    def _emit(self, value: Any) -> Any:
        return serialize(value, self._child())

    def custom(self, message: str) -> OpenMathError:
        """Error for user code to raise from as_openmath."""
        return OpenMathError(ERR_CUSTOM, message)

    # ── Emission operations ──

    def omi(self, value: Integer) -> Any:
        raise NotImplementedError

    def omf(self, value: float) -> Any:
        raise NotImplementedError

    def omstr(self, value: str) -> Any:
        raise NotImplementedError

    def omb(self, data: Iterable[int]) -> Any:
        raise NotImplementedError

    def omv(self, name: str) -> Any:
        raise NotImplementedError

    def oms(self, cd: str, name: str) -> Any:
        raise NotImplementedError

    def oma(self, head: Any, args: Iterable[Any]) -> Any:
        raise NotImplementedError

    def ome(self, error: Any, args: Iterable[Any]) -> Any:
        raise NotImplementedError

    def omattr(self, attrs: Iterable[Tuple[Any, Any]], body: Any) -> Any:
        raise NotImplementedError

    def ombind(self, head: Any, variables: Iterable[Any], body: Any) -> Any:
        raise NotImplementedError


def variables_of(variables: Iterable[Any]) -> Iterator[BoundVariable]:
    """Normalize bound variables: names, OMV, (name, attrs) or BoundVariable."""
    for var in variables:
        yield as_variable(var)


def peek(items: Iterable[Any]) -> Tuple[bool, Iterator[Any]]:
    """Return (non_empty, iterator) without losing the first item."""
    it = iter(items)
    for first in it:
        def chained() -> Iterator[Any]:
            yield first
            yield from it
        return True, chained()
    return False, it


# ── Display sink ─────────────────────────────────────────────
# Flat LISP-like text for debugging and fixtures:
#     OMA@http://example.org(OMS(arith1#plus),OMI(2),OMI(2))

def display_float(value: float) -> str:
    return repr(value)


def display_string(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)


_DISPLAY_DELIMITERS = frozenset('()[],#/@=" ')


def display_name(name: str, allowed: str = "") -> str:
    """`name` bare, or as a string literal when it could be misread."""
    for c in name:
        if c.isspace() or (c in _DISPLAY_DELIMITERS and c not in allowed):
            return display_string(name)
    return name if name else display_string(name)


def display_cdbase(cdbase: str) -> str:
    return display_name(cdbase, allowed="/")



class DisplaySink(Sink):
    def __init__(self, write: Callable[[str], Any],
                 current: str = DEFAULT_CDBASE,
                 pending: Optional[str] = None) -> None:
        super().__init__(current, pending)
        self._write = write

    def _derive(self, current: str, pending: Optional[str]) -> "DisplaySink":
        return DisplaySink(self._write, current, pending)

    def _head(self, tag: str) -> None:
        cdbase = self._enter()
        self._write(tag)
        if cdbase is not None:
            self._write("@" + display_cdbase(cdbase))
        self._write("(")

    def _maybe_foreign(self, value: Any) -> None:
        if isinstance(value, OMFOREIGN):
            self._write("OMFOREIGN(" + display_string(value.value))
            if value.encoding is not None:
                self._write("," + display_string(value.encoding))
            self._write(")")
        else:
            self._emit(value)

    def _attrs(self, attrs: Iterable[Tuple[Any, Any]]) -> None:
        self._write("[")
        for i, (symbol, value) in enumerate(attrs):
            if i:
                self._write(", ")
            self._emit(symbol)
            self._write(" = ")
            self._maybe_foreign(value)
        self._write("]")

    def omi(self, value: Integer) -> None:
        self._consume()
        self._write("OMI({})".format(value))

    def omf(self, value: float) -> None:
        self._consume()
        self._write("OMF({})".format(display_float(value)))

    def omstr(self, value: str) -> None:
        self._consume()
        self._write("OMSTR({})".format(display_string(value)))

    def omb(self, data: Iterable[int]) -> None:
        self._consume()
        self._write("OMB(" + ",".join(str(b) for b in data) + ")")

    def omv(self, name: str) -> None:
        self._consume()
        self._write("OMV({})".format(display_name(name)))

    def oms(self, cd: str, name: str) -> None:
        cdbase = self._enter()
        if cdbase is not None:
            self._write("OMS({}/{}#{})".format(
                display_cdbase(cdbase), display_name(cd), display_name(name)))
        else:
            self._write("OMS({}#{})".format(display_name(cd), display_name(name)))

    def oma(self, head: Any, args: Iterable[Any]) -> None:
        self._head("OMA")
        self._emit(head)
        for arg in args:
            self._write(",")
            self._emit(arg)
        self._write(")")

    def ome(self, error: Any, args: Iterable[Any]) -> None:
        self._head("OME")
        self._emit(error)
        for arg in args:
            self._write(",")
            self._maybe_foreign(arg)
        self._write(")")

    def omattr(self, attrs: Iterable[Tuple[Any, Any]], body: Any) -> None:
        non_empty, attrs = peek(attrs)
        if not non_empty:
            # Empty attribute list: the bare object, with our cdbase state.
            self._consume()
            return serialize(body, self._derive(self._current, self._pending))
        self._head("OMATTR")
        self._emit(body)
        self._write(",")
        self._attrs(attrs)
        self._write(")")

    def ombind(self, head: Any, variables: Iterable[Any], body: Any) -> None:
        self._head("OMBIND")
        self._emit(head)
        self._write(",[")
        for i, var in enumerate(variables_of(variables)):
            if i:
                self._write(", ")
            if var.attributes:
                self._write("OMATTR(OMV({}),".format(display_name(var.name)))
                self._attrs(var.attributes)
                self._write(")")
            else:
                self._write(display_name(var.name))
        self._write("],")
        self._emit(body)
        self._write(")")


def to_display(value: Any) -> str:
    """Render `value` in the display form."""
    out: List[str] = []
    serialize(value, DisplaySink(out.append))
    return "".join(out)
