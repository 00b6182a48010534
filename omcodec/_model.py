"""OpenMath object model (OpenMath 2.0 §2.1).

Node classes, one per kind:

    OMI  OMF  OMSTR  OMB  OMV  OMS       leaves
    OMA  OMBIND  OME  OMATTR             compound
    OMFOREIGN                            only inside OME / attribute values

The same classes serve two roles.  As a plain tree their children are
nodes; this is the model users build and serialize.  During decoding a
driver builds them with child slots holding `Accepted` / `Pending`
results (see _de.py), which is what visitors receive.

cdbase: OMS and the compound nodes carry an optional explicit `cdbase`.
None means "inherit".  Equality resolves every OMS against the effective
cdbase at its position, starting from DEFAULT_CDBASE at the root, so two
trees that spell the same symbols with different (redundant) cdbase
declarations compare equal.
"""

from __future__ import annotations

import enum
import math
from typing import Any, Iterable, Optional, Tuple, Union

from ._constants import DEFAULT_CDBASE
from ._int import Integer


class OMKind(enum.IntEnum):
    """Kind tag; discriminants are stable and part of the wire contract."""

    OMI = 0
    OMF = 1
    OMSTR = 2
    OMB = 3
    OMV = 4
    OMS = 5
    OMA = 6
    OMBIND = 7
    OME = 8
    OMATTR = 9
    OMFOREIGN = 10
    OMR = 11

    def __str__(self) -> str:
        return self.name


class Node:
    """Base class of all OpenMath nodes."""

    __slots__ = ()
    KIND: OMKind

    @property
    def kind(self) -> OMKind:
        return self.KIND

    def openmath_cdbase(self) -> Optional[str]:
        return None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return structurally_equal(self, other)

    def __hash__(self) -> int:
        return _hash(self)

    def __repr__(self) -> str:
        args = []
        for name in self.__slots__:
            value = getattr(self, name)
            if name == "cdbase" and value is None:
                continue
            args.append(repr(value))
        return "{}({})".format(type(self).__name__, ", ".join(args))


def _scoped(node: Node, sink: Any) -> Any:
    cdbase = node.openmath_cdbase()
    if cdbase is not None and cdbase != sink.current_cdbase():
        return sink.with_cdbase(cdbase)
    return sink


# ── Leaves ───────────────────────────────────────────────────

class OMI(Node):
    __slots__ = ("value",)
    KIND = OMKind.OMI

    def __init__(self, value: Union[Integer, int]) -> None:
        self.value = value if isinstance(value, Integer) else Integer(value)

    def as_openmath(self, sink: Any) -> Any:
        return sink.omi(self.value)


class OMF(Node):
    __slots__ = ("value",)
    KIND = OMKind.OMF

    def __init__(self, value: float) -> None:
        self.value = float(value)

    def as_openmath(self, sink: Any) -> Any:
        return sink.omf(self.value)


class OMSTR(Node):
    __slots__ = ("value",)
    KIND = OMKind.OMSTR

    def __init__(self, value: str) -> None:
        self.value = value

    def as_openmath(self, sink: Any) -> Any:
        return sink.omstr(self.value)


class OMB(Node):
    __slots__ = ("value",)
    KIND = OMKind.OMB

    def __init__(self, value: bytes) -> None:
        self.value = bytes(value)

    def as_openmath(self, sink: Any) -> Any:
        return sink.omb(self.value)


class OMV(Node):
    __slots__ = ("name",)
    KIND = OMKind.OMV

    def __init__(self, name: str) -> None:
        self.name = name

    def as_openmath(self, sink: Any) -> Any:
        return sink.omv(self.name)


class OMS(Node):
    """A symbol: (cdbase, cd, name).  cdbase None inherits."""

    __slots__ = ("cd", "name", "cdbase")
    KIND = OMKind.OMS

    def __init__(self, cd: str, name: str, cdbase: Optional[str] = None) -> None:
        self.cd = cd
        self.name = name
        self.cdbase = cdbase

    def openmath_cdbase(self) -> Optional[str]:
        return self.cdbase

    def as_openmath(self, sink: Any) -> Any:
        return _scoped(self, sink).oms(self.cd, self.name)


class OMFOREIGN(Node):
    """Opaque payload; legal only as an OME argument or attribute value."""

    __slots__ = ("value", "encoding")
    KIND = OMKind.OMFOREIGN

    def __init__(self, value: str, encoding: Optional[str] = None) -> None:
        self.value = value
        self.encoding = encoding


# ── Compound nodes ───────────────────────────────────────────

class OMA(Node):
    __slots__ = ("applicant", "arguments", "cdbase")
    KIND = OMKind.OMA

    def __init__(self, applicant: Any, arguments: Iterable[Any] = (),
                 cdbase: Optional[str] = None) -> None:
        self.applicant = applicant
        self.arguments = tuple(arguments)
        self.cdbase = cdbase

    def openmath_cdbase(self) -> Optional[str]:
        return self.cdbase

    def as_openmath(self, sink: Any) -> Any:
        return _scoped(self, sink).oma(self.applicant, self.arguments)


class BoundVariable:
    """A variable bound by OMBIND, optionally attributed."""

    __slots__ = ("name", "attributes")

    def __init__(self, name: str, attributes: Iterable[Tuple[OMS, Any]] = ()) -> None:
        self.name = name
        self.attributes = tuple(tuple(pair) for pair in attributes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BoundVariable):
            return NotImplemented
        return _var_eq(self, other, DEFAULT_CDBASE, DEFAULT_CDBASE)

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        if self.attributes:
            return "BoundVariable({!r}, {!r})".format(self.name, self.attributes)
        return "BoundVariable({!r})".format(self.name)


def as_variable(var: Any) -> BoundVariable:
    if isinstance(var, BoundVariable):
        return var
    if isinstance(var, str):
        return BoundVariable(var)
    if isinstance(var, OMV):
        return BoundVariable(var.name)
    name, attributes = var
    return BoundVariable(name, attributes)


class OMBIND(Node):
    __slots__ = ("binder", "variables", "body", "cdbase")
    KIND = OMKind.OMBIND

    def __init__(self, binder: Any, variables: Iterable[Any], body: Any,
                 cdbase: Optional[str] = None) -> None:
        self.binder = binder
        self.variables = tuple(as_variable(v) for v in variables)
        self.body = body
        self.cdbase = cdbase

    def openmath_cdbase(self) -> Optional[str]:
        return self.cdbase

    def as_openmath(self, sink: Any) -> Any:
        return _scoped(self, sink).ombind(self.binder, self.variables, self.body)


class OME(Node):
    """An error object: error symbol plus arguments (objects or OMFOREIGN)."""

    __slots__ = ("error", "arguments", "cdbase")
    KIND = OMKind.OME

    def __init__(self, error: OMS, arguments: Iterable[Any] = (),
                 cdbase: Optional[str] = None) -> None:
        self.error = error
        self.arguments = tuple(arguments)
        self.cdbase = cdbase

    @classmethod
    def unhandled_symbol(cls, symbol: OMS) -> "OME":
        """The standard error#unhandled_symbol report for `symbol`."""
        return cls(OMS("error", "unhandled_symbol", DEFAULT_CDBASE), (symbol,))

    def openmath_cdbase(self) -> Optional[str]:
        return self.cdbase

    def as_openmath(self, sink: Any) -> Any:
        return _scoped(self, sink).ome(self.error, self.arguments)


class OMATTR(Node):
    """An attributed object: bare object plus (symbol, value) pairs.

    With no attributes it is the bare object: `kind` reports the inner
    kind, equality looks through it and serializers elide the wrapper.
    """

    __slots__ = ("obj", "attributes", "cdbase")
    KIND = OMKind.OMATTR

    def __init__(self, obj: Any, attributes: Iterable[Tuple[OMS, Any]] = (),
                 cdbase: Optional[str] = None) -> None:
        self.obj = obj
        self.attributes = tuple(tuple(pair) for pair in attributes)
        self.cdbase = cdbase

    @property
    def kind(self) -> OMKind:
        if self.attributes:
            return OMKind.OMATTR
        return getattr(self.obj, "kind", OMKind.OMATTR)

    def openmath_cdbase(self) -> Optional[str]:
        return self.cdbase

    def as_openmath(self, sink: Any) -> Any:
        return _scoped(self, sink).omattr(self.attributes, self.obj)


# ── Structural equality ──────────────────────────────────────

def _unwrap(x: Any, base: str) -> Tuple[Any, str]:
    while isinstance(x, OMATTR) and not x.attributes:
        base = x.cdbase or base
        x = x.obj
    return x, base


def _float_eq(a: float, b: float) -> bool:
    return a == b or (math.isnan(a) and math.isnan(b))


def _seq_eq(xs: Tuple[Any, ...], ys: Tuple[Any, ...], ba: str, bb: str) -> bool:
    return len(xs) == len(ys) and all(_eq(x, y, ba, bb) for x, y in zip(xs, ys))


def _attrs_eq(xs: Tuple[Any, ...], ys: Tuple[Any, ...], ba: str, bb: str) -> bool:
    if len(xs) != len(ys):
        return False
    for (ka, va), (kb, vb) in zip(xs, ys):
        if not (_eq(ka, kb, ba, bb) and _eq(va, vb, ba, bb)):
            return False
    return True


def _var_eq(a: BoundVariable, b: BoundVariable, ba: str, bb: str) -> bool:
    return a.name == b.name and _attrs_eq(a.attributes, b.attributes, ba, bb)


def _eq(a: Any, b: Any, ba: str, bb: str) -> bool:
    a, ba = _unwrap(a, ba)
    b, bb = _unwrap(b, bb)
    if not isinstance(a, Node) or not isinstance(b, Node):
        return a == b
    if type(a) is not type(b):
        return False
    if isinstance(a, OMF):
        return _float_eq(a.value, b.value)
    if isinstance(a, (OMI, OMSTR, OMB)):
        return a.value == b.value
    if isinstance(a, OMV):
        return a.name == b.name
    if isinstance(a, OMFOREIGN):
        return a.value == b.value and a.encoding == b.encoding
    ba = a.cdbase or ba
    bb = b.cdbase or bb
    if isinstance(a, OMS):
        return a.cd == b.cd and a.name == b.name and ba == bb
    if isinstance(a, OMA):
        return (_eq(a.applicant, b.applicant, ba, bb)
                and _seq_eq(a.arguments, b.arguments, ba, bb))
    if isinstance(a, OMBIND):
        return (_eq(a.binder, b.binder, ba, bb)
                and len(a.variables) == len(b.variables)
                and all(_var_eq(x, y, ba, bb) for x, y in zip(a.variables, b.variables))
                and _eq(a.body, b.body, ba, bb))
    if isinstance(a, OME):
        return (_eq(a.error, b.error, ba, bb)
                and _seq_eq(a.arguments, b.arguments, ba, bb))
    # OMATTR with attributes
    return (_attrs_eq(a.attributes, b.attributes, ba, bb)
            and _eq(a.obj, b.obj, ba, bb))


def structurally_equal(a: Any, b: Any, cdbase: str = DEFAULT_CDBASE) -> bool:
    """Compare two trees, resolving symbols against `cdbase` at the root."""
    return _eq(a, b, cdbase, cdbase)


def _hash(x: Any) -> int:
    x, _ = _unwrap(x, DEFAULT_CDBASE)
    if isinstance(x, OMF):
        # NaN hashes by identity in Python; all NaNs compare equal here.
        return hash((OMKind.OMF, "nan" if math.isnan(x.value) else x.value))
    if isinstance(x, BoundVariable):
        return hash(x.name)
    if not isinstance(x, Node):
        return hash(x) if not isinstance(x, tuple) else hash(tuple(_hash(i) for i in x))
    parts = []
    for name in x.__slots__:
        if name == "cdbase":
            continue
        parts.append(_hash(getattr(x, name)))
    return hash((x.KIND, tuple(parts)))
