"""Deserializer contract: bottom-up visitors.

A target type takes part in decoding through one method,

    from_openmath(node, cdbase) -> Accepted(value) | Pending(node)

which the format driver calls at every object node, leaves first and
children in source order before their parent.  `cdbase` is the effective
cdbase at that node.  Child slots of the node handed to the visitor hold
the outcomes of the earlier calls: `Accepted` for values the visitor has
committed to, `Pending` for raw subtrees it chose to interpret later,
typically at the enclosing OMA:

    class Arith:
        @classmethod
        def from_openmath(cls, node, cdbase):
            if isinstance(node, OMS) and node.cd == "arith1":
                return Pending(node)
            if (isinstance(node, OMA) and isinstance(node.applicant, Pending)
                    and node.applicant.node.name == "plus"):
                return Accepted(sum(a.value for a in node.arguments))
            if isinstance(node, OMI):
                return Accepted(int(node.value))
            return Pending(node)

After the root the outcome must be Accepted; otherwise decoding fails
with ERR_NOT_CONVERTIBLE.  Visitors are called without shared state, so
they must not depend on call history beyond the children they are given.
"""

from __future__ import annotations

import logging
import re
import struct
from typing import Any, Dict, List, Optional

from ._constants import DEFAULT_CDBASE, FLOAT_INF, FLOAT_NAN, FLOAT_NEG_INF, MAX_DEPTH
from ._errors import (
    ERR_INVALID_FLOAT,
    ERR_LIMIT_DEPTH,
    ERR_NOT_CONVERTIBLE,
    ERR_RANGE,
    ERR_TYPE,
    OpenMathError,
)
from ._int import Integer
from ._model import (
    OMA,
    OMATTR,
    OMB,
    OMBIND,
    OME,
    OMF,
    OMI,
    OMS,
    OMSTR,
    BoundVariable,
    Node,
)
from ._ser import serialize

logger = logging.getLogger(__name__)


# ── Child slots ──────────────────────────────────────────────

class Accepted:
    """A finished visitor value."""

    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.value = value

    def as_openmath(self, sink: Any) -> Any:
        return serialize(self.value, sink)

    def openmath_cdbase(self) -> Optional[str]:
        preferred = getattr(self.value, "openmath_cdbase", None)
        return preferred() if preferred is not None else None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Accepted):
            return NotImplemented
        return self.value == other.value

    def __hash__(self) -> int:
        return hash(("accepted", self.value))

    def __repr__(self) -> str:
        return "Accepted({!r})".format(self.value)


class Pending:
    """A raw subtree the visitor deferred to its parent."""

    __slots__ = ("node",)

    def __init__(self, node: Node) -> None:
        self.node = node

    @property
    def kind(self) -> Any:
        return self.node.kind

    def as_openmath(self, sink: Any) -> Any:
        return serialize(self.node, sink)

    def openmath_cdbase(self) -> Optional[str]:
        return self.node.openmath_cdbase()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Pending):
            return NotImplemented
        return self.node == other.node

    def __hash__(self) -> int:
        return hash(("pending", self.node))

    def __repr__(self) -> str:
        return "Pending({!r})".format(self.node)


def unslot(slot: Any) -> Any:
    """The value of an Accepted slot or the node of a Pending one."""
    if isinstance(slot, Accepted):
        return slot.value
    if isinstance(slot, Pending):
        return slot.node
    return slot


# ── Literal parsing shared by the drivers ────────────────────

_DOUBLE = re.compile(r"[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?\Z")
_SPECIAL_FLOATS = {
    FLOAT_INF: float("inf"),
    FLOAT_NEG_INF: float("-inf"),
    FLOAT_NAN: float("nan"),
}


def parse_decimal_float(text: str) -> float:
    """Parse an xsd:double lexical form (decimal, exponent, INF, -INF, NaN)."""
    if isinstance(text, str) and text in _SPECIAL_FLOATS:
        return _SPECIAL_FLOATS[text]
    if not isinstance(text, str) or not _DOUBLE.match(text):
        raise OpenMathError(ERR_INVALID_FLOAT, "invalid float literal: {!r}".format(text))
    return float(text)


def decimal_float_text(value: float) -> str:
    """xsd:double spelling of `value`."""
    if value != value:
        return FLOAT_NAN
    if value in (float("inf"), float("-inf")):
        return FLOAT_INF if value > 0 else FLOAT_NEG_INF
    return repr(value)


# ── Driver state ─────────────────────────────────────────────

def target_name(target: Any) -> str:
    if isinstance(target, type):
        return target.__name__
    return getattr(target, "name", type(target).__name__)


class Decoder:
    """Visitor dispatch and cdbase scope stack shared by every driver.

    Drivers call `enter()` when a node declaring (or able to declare) a
    cdbase starts, `visit()` once a node's children are all visited, and
    `leave()` after it.  `finish()` applies the top-level policy.
    """

    def __init__(self, target: Any, cdbase: str = DEFAULT_CDBASE,
                 max_depth: int = MAX_DEPTH) -> None:
        self.visitor = resolve_visitor(target)
        self.name = target_name(target)
        self.max_depth = max_depth
        self._scopes: List[str] = [cdbase]

    @property
    def cdbase(self) -> str:
        return self._scopes[-1]

    def enter(self, cdbase: Optional[str] = None) -> None:
        if len(self._scopes) > self.max_depth:
            raise OpenMathError(ERR_LIMIT_DEPTH,
                                "nesting exceeds {} levels".format(self.max_depth))
        self._scopes.append(cdbase if cdbase is not None else self._scopes[-1])

    def leave(self) -> None:
        self._scopes.pop()

    def visit(self, node: Node, cdbase: Optional[str] = None) -> Any:
        """Hand `node` to the visitor; `cdbase` overrides for OMS only."""
        outcome = self.visitor.from_openmath(node, cdbase or self._scopes[-1])
        if not isinstance(outcome, (Accepted, Pending)):
            raise OpenMathError(
                ERR_TYPE,
                "{}.from_openmath must return Accepted or Pending, got {}".format(
                    self.name, type(outcome).__name__))
        return outcome

    def finish(self, outcome: Any) -> Any:
        if isinstance(outcome, Pending):
            raise OpenMathError(
                ERR_NOT_CONVERTIBLE,
                "object does not represent a valid {}".format(self.name))
        logger.debug("decoded %s", self.name)
        return outcome.value


# ── Built-in visitors ────────────────────────────────────────

def _through_attribution(node: Any) -> Any:
    """An attributed value whose object was accepted, else None."""
    if isinstance(node, OMATTR) and isinstance(node.obj, Accepted):
        return node.obj
    return None


class NativeInt:
    """Fixed-width integer visitor: accepts OMI, ERR_RANGE on overflow."""

    def __init__(self, bits: int, signed: bool) -> None:
        self.bits = bits
        self.signed = signed
        self.name = "{}{}".format("i" if signed else "u", bits)
        if signed:
            self.min, self.max = -(2 ** (bits - 1)), 2 ** (bits - 1) - 1
        else:
            self.min, self.max = 0, 2 ** bits - 1

    def from_openmath(self, node: Any, cdbase: str) -> Any:
        inner = _through_attribution(node)
        if inner is not None:
            return inner
        if not isinstance(node, OMI):
            return Pending(node)
        number = node.value
        value = number.compact
        # u128 reaches past the compact range; anything wider is out anyway.
        if value is None and len(number.big.lstrip("-").lstrip("0")) <= 39:
            value = int(number)
        if value is None or not self.min <= value <= self.max:
            raise OpenMathError(
                ERR_RANGE, "integer {} does not fit in {}".format(node.value, self.name))
        return Accepted(value)


class _Primitive:
    def __init__(self, name: str, node_type: type, convert: Any) -> None:
        self.name = name
        self.node_type = node_type
        self.convert = convert

    def from_openmath(self, node: Any, cdbase: str) -> Any:
        inner = _through_attribution(node)
        if inner is not None:
            return inner
        if isinstance(node, self.node_type):
            return Accepted(self.convert(node.value))
        return Pending(node)


def _to_f32(value: float) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        raise OpenMathError(ERR_RANGE, "float {!r} does not fit in f32".format(value)) from None


Int8 = NativeInt(8, True)
Int16 = NativeInt(16, True)
Int32 = NativeInt(32, True)
Int64 = NativeInt(64, True)
Int128 = NativeInt(128, True)
UInt8 = NativeInt(8, False)
UInt16 = NativeInt(16, False)
UInt32 = NativeInt(32, False)
UInt64 = NativeInt(64, False)
UInt128 = NativeInt(128, False)

# Python's int is unbounded, so it takes any OMI, big literals included.
BigInt = _Primitive("int", OMI, int)
Float64 = _Primitive("f64", OMF, float)
Float32 = _Primitive("f32", OMF, _to_f32)
String = _Primitive("str", OMSTR, str)
Bytes = _Primitive("bytes", OMB, bytes)
IntegerValue = _Primitive("Integer", OMI, lambda v: v)


class ObjectVisitor:
    """Accept every node, rebuilding a plain model tree.

    OMS nodes (and the symbols of OME and attributions) record the
    effective cdbase they were found under, so the result compares
    equal to the source tree regardless of where cdbase was declared.
    """

    name = "OpenMath object"

    @staticmethod
    def _symbol(symbol: OMS, cdbase: str) -> OMS:
        return OMS(symbol.cd, symbol.name, symbol.cdbase or cdbase)

    def _attrs(self, attrs: Any, cdbase: str) -> List[Any]:
        return [(self._symbol(k, cdbase), unslot(v)) for k, v in attrs]

    def from_openmath(self, node: Any, cdbase: str) -> Accepted:
        if isinstance(node, OMS):
            return Accepted(self._symbol(node, cdbase))
        if isinstance(node, OMA):
            return Accepted(OMA(unslot(node.applicant),
                                [unslot(a) for a in node.arguments],
                                node.cdbase))
        if isinstance(node, OMBIND):
            variables = [BoundVariable(v.name, self._attrs(v.attributes, cdbase))
                         for v in node.variables]
            return Accepted(OMBIND(unslot(node.binder), variables,
                                   unslot(node.body), node.cdbase))
        if isinstance(node, OME):
            return Accepted(OME(self._symbol(node.error, cdbase),
                                [unslot(a) for a in node.arguments],
                                node.cdbase))
        if isinstance(node, OMATTR):
            return Accepted(OMATTR(unslot(node.obj),
                                   self._attrs(node.attributes, cdbase),
                                   node.cdbase))
        return Accepted(node)


OBJECT = ObjectVisitor()

_BUILTINS: Dict[Any, Any] = {
    int: BigInt,
    float: Float64,
    str: String,
    bytes: Bytes,
    Integer: IntegerValue,
    Node: OBJECT,
}


def resolve_visitor(target: Any) -> Any:
    """Map a target (builtin type, Node, visitor class or instance) to a visitor."""
    try:
        builtin = _BUILTINS.get(target)
    except TypeError:
        builtin = None
    if builtin is not None:
        return builtin
    if hasattr(target, "from_openmath"):
        return target
    raise OpenMathError(
        ERR_TYPE, "{} cannot be decoded from OpenMath".format(target_name(target)))
