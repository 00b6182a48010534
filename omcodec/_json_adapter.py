"""OpenMath JSON encoding (OpenMath 2.0 JSON, §3.2 of the 2.0 updates).

Every object is a JSON object with a `kind` discriminator:

    OMI        integer | decimal | hexadecimal (rejected)
    OMF        float | decimal | hexadecimal (rejected)
    OMSTR      string
    OMB        bytes (array of octets) | base64
    OMV        name
    OMS        cd, name, cdbase?
    OMA        applicant, arguments?, cdbase?
    OMBIND     binder, variables, object, cdbase?
    OME        error, arguments?, cdbase?
    OMATTR     attributes ([[OMS, value], ...]), object, cdbase?
    OMFOREIGN  foreign, encoding?     (OME arguments / attribute values only)
    OMOBJ      object, openmath?, cdbase?   (root only)

`id` and unknown fields are ignored; OMR is rejected.  The writer side
builds this structure as plain dicts and lists (`to_tree`) and hands it
to the standard json module; the reader side (`from_tree`) walks an
already-parsed tree, so any self-describing source that yields the same
dict/list shape can be decoded with it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ._base64 import b64decode, b64encode
from ._constants import (
    DEFAULT_CDBASE,
    KIND_OMA,
    KIND_OMATTR,
    KIND_OMB,
    KIND_OMBIND,
    KIND_OME,
    KIND_OMF,
    KIND_OMFOREIGN,
    KIND_OMI,
    KIND_OMOBJ,
    KIND_OMR,
    KIND_OMS,
    KIND_OMSTR,
    KIND_OMV,
    MAX_DEPTH,
    OPENMATH_VERSION,
)
from ._de import Decoder, decimal_float_text, parse_decimal_float
from ._errors import (
    ERR_DUPLICATE_FIELD,
    ERR_INVALID_INTEGER,
    ERR_MISSING_FIELD,
    ERR_RANGE,
    ERR_SYNTAX,
    ERR_UNEXPECTED,
    ERR_UNKNOWN_KIND,
    ERR_UNSUPPORTED,
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
    OMFOREIGN,
    OMI,
    OMS,
    OMSTR,
    OMV,
    BoundVariable,
    Node,
)
from ._ser import OMObject, Sink, peek, serialize, variables_of

logger = logging.getLogger(__name__)

JsonTree = Dict[str, Any]


# ── Writer: structured-tree sink ─────────────────────────────

class TreeSink(Sink):
    """Sink producing the JSON encoding as dicts and lists."""

    def _derive(self, current: str, pending: Optional[str]) -> "TreeSink":
        return TreeSink(current, pending)

    def _node(self, kind: str, cdbase: Optional[str] = None) -> JsonTree:
        out: JsonTree = {"kind": kind}
        if cdbase is not None:
            out["cdbase"] = cdbase
        return out

    def _maybe_foreign(self, value: Any) -> JsonTree:
        if isinstance(value, OMFOREIGN):
            out = self._node(KIND_OMFOREIGN)
            if value.encoding is not None:
                out["encoding"] = value.encoding
            out["foreign"] = value.value
            return out
        return self._emit(value)

    def _attrs(self, attrs: Iterable[Tuple[Any, Any]]) -> List[List[JsonTree]]:
        return [[self._emit(symbol), self._maybe_foreign(value)]
                for symbol, value in attrs]

    def omi(self, value: Integer) -> JsonTree:
        self._consume()
        out = self._node(KIND_OMI)
        if value.compact is not None:
            out["integer"] = value.compact
        else:
            out["decimal"] = value.big
        return out

    def omf(self, value: float) -> JsonTree:
        self._consume()
        out = self._node(KIND_OMF)
        if value != value or value in (float("inf"), float("-inf")):
            # JSON numbers cannot carry non-finite values.
            out["decimal"] = decimal_float_text(value)
        else:
            out["float"] = value
        return out

    def omstr(self, value: str) -> JsonTree:
        self._consume()
        out = self._node(KIND_OMSTR)
        out["string"] = value
        return out

    def omb(self, data: Iterable[int]) -> JsonTree:
        self._consume()
        out = self._node(KIND_OMB)
        out["base64"] = b64encode(data)
        return out

    def omv(self, name: str) -> JsonTree:
        self._consume()
        out = self._node(KIND_OMV)
        out["name"] = name
        return out

    def oms(self, cd: str, name: str) -> JsonTree:
        out = self._node(KIND_OMS, self._enter())
        out["cd"] = cd
        out["name"] = name
        return out

    def oma(self, head: Any, args: Iterable[Any]) -> JsonTree:
        out = self._node(KIND_OMA, self._enter())
        out["applicant"] = self._emit(head)
        out["arguments"] = [self._emit(arg) for arg in args]
        return out

    def ome(self, error: Any, args: Iterable[Any]) -> JsonTree:
        out = self._node(KIND_OME, self._enter())
        out["error"] = self._emit(error)
        out["arguments"] = [self._maybe_foreign(arg) for arg in args]
        return out

    def omattr(self, attrs: Iterable[Tuple[Any, Any]], body: Any) -> JsonTree:
        non_empty, attrs = peek(attrs)
        if not non_empty:
            self._consume()
            return serialize(body, self._derive(self._current, self._pending))
        out = self._node(KIND_OMATTR, self._enter())
        out["attributes"] = self._attrs(attrs)
        out["object"] = self._emit(body)
        return out

    def ombind(self, head: Any, variables: Iterable[Any], body: Any) -> JsonTree:
        out = self._node(KIND_OMBIND, self._enter())
        out["binder"] = self._emit(head)
        bound: List[JsonTree] = []
        for var in variables_of(variables):
            omv = {"kind": KIND_OMV, "name": var.name}
            if var.attributes:
                omv = {"kind": KIND_OMATTR,
                       "attributes": self._attrs(var.attributes),
                       "object": omv}
            bound.append(omv)
        out["variables"] = bound
        out["object"] = self._emit(body)
        return out


def to_tree(value: Any) -> JsonTree:
    """Serialize `value` to the JSON encoding as a dict tree."""
    if isinstance(value, OMObject):
        return {"kind": KIND_OMOBJ, "openmath": OPENMATH_VERSION,
                "object": serialize(value.value, TreeSink())}
    return serialize(value, TreeSink())


def to_json(value: Any, indent: Optional[int] = None) -> str:
    """Serialize `value` to OpenMath JSON text."""
    return json.dumps(to_tree(value), indent=indent, ensure_ascii=False,
                      allow_nan=False)


# ── Reader ───────────────────────────────────────────────────

def _child_path(path: str, *parts: Union[str, int]) -> str:
    return path + "".join("/{}".format(p) for p in parts)


class _TreeDecoder:
    """Walk a parsed JSON tree depth-first, visiting nodes bottom-up."""

    def __init__(self, decoder: Decoder) -> None:
        self.decoder = decoder

    # ── field access ──

    @staticmethod
    def _field(obj: JsonTree, name: str, kinds: Any, path: str,
               required: bool = True) -> Any:
        if name not in obj:
            if required:
                raise OpenMathError(ERR_MISSING_FIELD,
                                    "{} requires field '{}'".format(obj["kind"], name),
                                    path)
            return None
        value = obj[name]
        if isinstance(value, bool) or not isinstance(value, kinds):
            raise OpenMathError(ERR_UNEXPECTED,
                                "field '{}' has the wrong type".format(name),
                                _child_path(path, name))
        return value

    @staticmethod
    def _one_of(obj: JsonTree, path: str, *names: str) -> Tuple[str, Any]:
        present = [n for n in names if n in obj]
        if not present:
            raise OpenMathError(
                ERR_MISSING_FIELD,
                "{} requires one of {}".format(obj["kind"], ", ".join(names)), path)
        if len(present) > 1:
            raise OpenMathError(
                ERR_DUPLICATE_FIELD,
                "{} allows only one of {}".format(obj["kind"], ", ".join(present)), path)
        return present[0], obj[present[0]]

    @staticmethod
    def _kind(obj: Any, path: str) -> str:
        if not isinstance(obj, dict):
            raise OpenMathError(ERR_UNEXPECTED, "expected an OpenMath JSON object", path)
        if "kind" not in obj:
            raise OpenMathError(ERR_MISSING_FIELD, "object has no 'kind'", path)
        kind = obj["kind"]
        if not isinstance(kind, str):
            raise OpenMathError(ERR_UNKNOWN_KIND, "'kind' must be a string", path)
        if kind == KIND_OMR:
            raise OpenMathError(ERR_UNSUPPORTED, "OMR references are not supported", path)
        if kind not in _READERS and kind not in (KIND_OMFOREIGN, KIND_OMOBJ):
            raise OpenMathError(ERR_UNKNOWN_KIND, "unknown kind {!r}".format(kind), path)
        return kind

    def _cdbase(self, obj: JsonTree, path: str) -> Optional[str]:
        return self._field(obj, "cdbase", str, path, required=False)

    # ── nodes ──

    def object(self, obj: Any, path: str) -> Any:
        """Decode an object position; returns the visitor outcome."""
        try:
            kind = self._kind(obj, path)
            if kind == KIND_OMFOREIGN:
                raise OpenMathError(
                    ERR_UNEXPECTED,
                    "OMFOREIGN is only allowed as an OME argument or attribute value",
                    path)
            if kind == KIND_OMOBJ:
                raise OpenMathError(ERR_UNEXPECTED, "OMOBJ is only allowed at the root", path)
            return _READERS[kind](self, obj, path)
        except OpenMathError as e:
            raise e.at(path)

    def maybe_foreign(self, obj: Any, path: str) -> Any:
        if isinstance(obj, dict) and obj.get("kind") == KIND_OMFOREIGN:
            payload = self._field(obj, "foreign", str, path)
            encoding = self._field(obj, "encoding", str, path, required=False)
            return OMFOREIGN(payload, encoding)
        return self.object(obj, path)

    def symbol(self, obj: Any, path: str) -> OMS:
        """An OMS in field position (OME error, attribute key): not visited."""
        if self._kind(obj, path) != KIND_OMS:
            raise OpenMathError(ERR_UNEXPECTED, "expected an OMS", path)
        return OMS(self._field(obj, "cd", str, path),
                   self._field(obj, "name", str, path),
                   self._cdbase(obj, path))

    def attributes(self, pairs: List[Any], path: str) -> List[Tuple[OMS, Any]]:
        out = []
        for i, pair in enumerate(pairs):
            pair_path = _child_path(path, i)
            if not isinstance(pair, list) or len(pair) != 2:
                raise OpenMathError(ERR_UNEXPECTED,
                                    "attribute must be a [symbol, value] pair", pair_path)
            key = self.symbol(pair[0], _child_path(pair_path, 0))
            out.append((key, self.maybe_foreign(pair[1], _child_path(pair_path, 1))))
        return out

    def omi(self, obj: JsonTree, path: str) -> Any:
        field, value = self._one_of(obj, path, "integer", "decimal", "hexadecimal")
        if field == "hexadecimal":
            raise OpenMathError(ERR_UNSUPPORTED, "hexadecimal integers are not supported", path)
        if field == "integer":
            if isinstance(value, bool) or not isinstance(value, int):
                raise OpenMathError(ERR_INVALID_INTEGER,
                                    "'integer' must be a JSON integer", path)
            number = Integer(value)
        else:
            number = Integer.parse(value)
        return self.decoder.visit(OMI(number))

    def omf(self, obj: JsonTree, path: str) -> Any:
        field, value = self._one_of(obj, path, "float", "decimal", "hexadecimal")
        if field == "hexadecimal":
            raise OpenMathError(ERR_UNSUPPORTED, "hexadecimal floats are not supported", path)
        if field == "float":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise OpenMathError(ERR_UNEXPECTED, "'float' must be a JSON number", path)
            try:
                number = float(value)
            except OverflowError:
                raise OpenMathError(ERR_RANGE, "'float' does not fit in a double", path) from None
        else:
            number = parse_decimal_float(value)
        return self.decoder.visit(OMF(number))

    def omstr(self, obj: JsonTree, path: str) -> Any:
        return self.decoder.visit(OMSTR(self._field(obj, "string", str, path)))

    def omb(self, obj: JsonTree, path: str) -> Any:
        field, value = self._one_of(obj, path, "bytes", "base64")
        if field == "base64":
            if not isinstance(value, str):
                raise OpenMathError(ERR_UNEXPECTED, "'base64' must be a string", path)
            try:
                data = b64decode(value)
            except OpenMathError as e:
                raise OpenMathError(e.code, "{} at index {}".format(e.args[0], e.position),
                                    _child_path(path, "base64")) from None
        else:
            if not isinstance(value, list) or not all(
                    isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255
                    for b in value):
                raise OpenMathError(ERR_UNEXPECTED,
                                    "'bytes' must be an array of octets", path)
            data = bytes(value)
        return self.decoder.visit(OMB(data))

    def omv(self, obj: JsonTree, path: str) -> Any:
        return self.decoder.visit(OMV(self._field(obj, "name", str, path)))

    def oms(self, obj: JsonTree, path: str) -> Any:
        symbol = self.symbol(obj, path)
        return self.decoder.visit(symbol, symbol.cdbase)

    def oma(self, obj: JsonTree, path: str) -> Any:
        cdbase = self._cdbase(obj, path)
        self.decoder.enter(cdbase)
        head = self.object(self._field(obj, "applicant", dict, path),
                           _child_path(path, "applicant"))
        args = [self.object(arg, _child_path(path, "arguments", i))
                for i, arg in enumerate(
                    self._field(obj, "arguments", list, path, required=False) or ())]
        outcome = self.decoder.visit(OMA(head, args, cdbase))
        self.decoder.leave()
        return outcome

    def variable(self, obj: Any, path: str) -> BoundVariable:
        if isinstance(obj, str):
            return BoundVariable(obj)
        kind = self._kind(obj, path)
        if kind == KIND_OMV:
            return BoundVariable(self._field(obj, "name", str, path))
        if kind == KIND_OMATTR:
            pairs = self._field(obj, "attributes", list, path)
            inner = self._field(obj, "object", dict, path)
            if self._kind(inner, _child_path(path, "object")) != KIND_OMV:
                raise OpenMathError(ERR_UNEXPECTED, "bound variable must be an OMV",
                                    _child_path(path, "object"))
            self.decoder.enter(self._cdbase(obj, path))
            attrs = self.attributes(pairs, _child_path(path, "attributes"))
            self.decoder.leave()
            return BoundVariable(self._field(inner, "name", str, _child_path(path, "object")),
                                 attrs)
        raise OpenMathError(ERR_UNEXPECTED, "bound variable must be an OMV", path)

    def ombind(self, obj: JsonTree, path: str) -> Any:
        cdbase = self._cdbase(obj, path)
        self.decoder.enter(cdbase)
        binder = self.object(self._field(obj, "binder", dict, path),
                             _child_path(path, "binder"))
        variables = [self.variable(v, _child_path(path, "variables", i))
                     for i, v in enumerate(self._field(obj, "variables", list, path))]
        body = self.object(self._field(obj, "object", dict, path),
                           _child_path(path, "object"))
        outcome = self.decoder.visit(OMBIND(binder, variables, body, cdbase))
        self.decoder.leave()
        return outcome

    def ome(self, obj: JsonTree, path: str) -> Any:
        cdbase = self._cdbase(obj, path)
        self.decoder.enter(cdbase)
        error = self.symbol(self._field(obj, "error", dict, path), _child_path(path, "error"))
        args = [self.maybe_foreign(arg, _child_path(path, "arguments", i))
                for i, arg in enumerate(
                    self._field(obj, "arguments", list, path, required=False) or ())]
        outcome = self.decoder.visit(OME(error, args, cdbase))
        self.decoder.leave()
        return outcome

    def omattr(self, obj: JsonTree, path: str) -> Any:
        cdbase = self._cdbase(obj, path)
        self.decoder.enter(cdbase)
        attrs = self.attributes(self._field(obj, "attributes", list, path),
                                _child_path(path, "attributes"))
        inner = self.object(self._field(obj, "object", dict, path),
                            _child_path(path, "object"))
        # An empty attribute list is the bare object.
        outcome = self.decoder.visit(OMATTR(inner, attrs, cdbase)) if attrs else inner
        self.decoder.leave()
        return outcome

    def root(self, obj: Any) -> Any:
        if isinstance(obj, dict) and obj.get("kind") == KIND_OMOBJ:
            try:
                version = self._field(obj, "openmath", str, "", required=False)
                if version is not None and not version.startswith("2."):
                    logger.debug("OMOBJ declares OpenMath version %s", version)
                self.decoder.enter(self._cdbase(obj, ""))
                inner = self._field(obj, "object", dict, "")
            except OpenMathError as e:
                raise e.at("")
            outcome = self.object(inner, "/object")
            self.decoder.leave()
            return outcome
        return self.object(obj, "")


_READERS = {
    KIND_OMI: _TreeDecoder.omi,
    KIND_OMF: _TreeDecoder.omf,
    KIND_OMSTR: _TreeDecoder.omstr,
    KIND_OMB: _TreeDecoder.omb,
    KIND_OMV: _TreeDecoder.omv,
    KIND_OMS: _TreeDecoder.oms,
    KIND_OMA: _TreeDecoder.oma,
    KIND_OMBIND: _TreeDecoder.ombind,
    KIND_OME: _TreeDecoder.ome,
    KIND_OMATTR: _TreeDecoder.omattr,
}


def from_tree(obj: Any, target: Any = Node, cdbase: str = DEFAULT_CDBASE,
              max_depth: int = MAX_DEPTH) -> Any:
    """Decode an already-parsed JSON tree into `target`.

    `target` is a builtin (int, float, str, bytes, Integer), Node for the
    plain model tree, or anything with a `from_openmath` visitor.
    """
    decoder = Decoder(target, cdbase, max_depth)
    return decoder.finish(_TreeDecoder(decoder).root(obj))


# ── JSON text ────────────────────────────────────────────────

def _pairs_hook(pairs: List[Tuple[str, Any]]) -> JsonTree:
    result: JsonTree = {}
    for key, value in pairs:
        if key in result:
            raise OpenMathError(ERR_DUPLICATE_FIELD, "duplicate key {!r}".format(key))
        result[key] = value
    return result


def _reject_constant(name: str) -> Any:
    raise OpenMathError(ERR_SYNTAX, "JSON constant {} not allowed".format(name))


def from_json(text: Union[str, bytes], target: Any = Node,
              cdbase: str = DEFAULT_CDBASE, max_depth: int = MAX_DEPTH) -> Any:
    """Parse OpenMath JSON text and decode it into `target`."""
    logger.debug("decoding JSON document (%d chars)", len(text))
    try:
        obj = json.loads(text, object_pairs_hook=_pairs_hook,
                         parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise OpenMathError(ERR_SYNTAX, "JSON parse error: {}".format(e.msg), e.pos) from None
    except UnicodeDecodeError:
        raise OpenMathError(ERR_SYNTAX, "JSON input is not valid UTF-8") from None
    except ValueError as e:
        # int() refuses literals past the interpreter's digit limit.
        raise OpenMathError(ERR_RANGE, "JSON number out of range: {}".format(e)) from None
    return from_tree(obj, target, cdbase, max_depth)
