"""OpenMath XML encoding (OpenMath 2.0 §3.1).

Writer: `XmlSink` streams elements through a `write` callable, either
compact (no whitespace between tags) or pretty (one element per line,
two-space indent).

Reader: `from_xml` runs a hardened expat parser (defusedxml) with an
event target.  Elements close in document order, children before their
parent, so each node is handed to the visitor as soon as its end tag is
seen.  Errors carry the byte offset of the offending element.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import DefusedXMLParser, ParseError

from ._base64 import Base64Encoder, b64decode
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
    TAG_OMATP,
    TAG_OMBVAR,
    XML_NAMESPACE,
)
from ._de import Decoder, decimal_float_text, parse_decimal_float
from ._errors import (
    ERR_EMPTY_SEQUENCE,
    ERR_MISSING_FIELD,
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


# ── Escaping ─────────────────────────────────────────────────

def escape_text(s: str) -> str:
    # CR survives parsing only as a character reference.
    return (s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
            .replace("\r", "&#13;"))


def escape_attr(s: str) -> str:
    # The parser turns raw tab and LF in attribute values into spaces.
    return (escape_text(s).replace('"', "&quot;")
            .replace("\t", "&#9;").replace("\n", "&#10;"))


def _attr_text(attrs: Iterable[Tuple[str, Optional[str]]]) -> str:
    return "".join(' {}="{}"'.format(k, escape_attr(v)) for k, v in attrs if v is not None)


# ── Writer ───────────────────────────────────────────────────

class _XmlWriter:
    """Output plus indentation state shared by a sink and its sub-sinks."""

    __slots__ = ("write", "pretty", "depth", "started")

    def __init__(self, write: Callable[[str], Any], pretty: bool) -> None:
        self.write = write
        self.pretty = pretty
        self.depth = 0
        self.started = False

    def line(self) -> None:
        if self.pretty and self.started:
            self.write("\n" + "  " * self.depth)
        self.started = True

    def empty(self, tag: str, *attrs: Tuple[str, Optional[str]]) -> None:
        self.line()
        self.write("<{}{}/>".format(tag, _attr_text(attrs)))

    def text(self, tag: str, text: str, *attrs: Tuple[str, Optional[str]]) -> None:
        self.line()
        self.write("<{}{}>{}</{}>".format(tag, _attr_text(attrs), escape_text(text), tag))

    def open(self, tag: str, *attrs: Tuple[str, Optional[str]]) -> None:
        self.line()
        self.write("<{}{}>".format(tag, _attr_text(attrs)))
        self.depth += 1

    def close(self, tag: str) -> None:
        self.depth -= 1
        self.line()
        self.write("</{}>".format(tag))


class XmlSink(Sink):
    """Sink writing the XML encoding."""

    def __init__(self, writer: _XmlWriter, current: str = DEFAULT_CDBASE,
                 pending: Optional[str] = None) -> None:
        super().__init__(current, pending)
        self._w = writer

    def _derive(self, current: str, pending: Optional[str]) -> "XmlSink":
        return XmlSink(self._w, current, pending)

    def _maybe_foreign(self, value: Any) -> None:
        if isinstance(value, OMFOREIGN):
            self._w.text(KIND_OMFOREIGN, value.value, ("encoding", value.encoding))
        else:
            self._emit(value)

    def _attrs(self, attrs: Iterable[Tuple[Any, Any]]) -> None:
        self._w.open(TAG_OMATP)
        for symbol, value in attrs:
            self._emit(symbol)
            self._maybe_foreign(value)
        self._w.close(TAG_OMATP)

    def omi(self, value: Integer) -> None:
        self._consume()
        self._w.text(KIND_OMI, str(value))

    def omf(self, value: float) -> None:
        self._consume()
        self._w.empty(KIND_OMF, ("dec", decimal_float_text(value)))

    def omstr(self, value: str) -> None:
        self._consume()
        self._w.text(KIND_OMSTR, value)

    def omb(self, data: Iterable[int]) -> None:
        self._consume()
        self._w.line()
        self._w.write("<OMB>")
        for chunk in Base64Encoder(data):
            self._w.write(chunk.decode("ascii"))
        self._w.write("</OMB>")

    def omv(self, name: str) -> None:
        self._consume()
        self._w.empty(KIND_OMV, ("name", name))

    def oms(self, cd: str, name: str) -> None:
        self._w.empty(KIND_OMS, ("cdbase", self._enter()), ("cd", cd), ("name", name))

    def oma(self, head: Any, args: Iterable[Any]) -> None:
        self._w.open(KIND_OMA, ("cdbase", self._enter()))
        self._emit(head)
        for arg in args:
            self._emit(arg)
        self._w.close(KIND_OMA)

    def ome(self, error: Any, args: Iterable[Any]) -> None:
        self._w.open(KIND_OME, ("cdbase", self._enter()))
        self._emit(error)
        for arg in args:
            self._maybe_foreign(arg)
        self._w.close(KIND_OME)

    def omattr(self, attrs: Iterable[Tuple[Any, Any]], body: Any) -> None:
        non_empty, attrs = peek(attrs)
        if not non_empty:
            self._consume()
            return serialize(body, self._derive(self._current, self._pending))
        self._w.open(KIND_OMATTR, ("cdbase", self._enter()))
        self._attrs(attrs)
        self._emit(body)
        self._w.close(KIND_OMATTR)

    def ombind(self, head: Any, variables: Iterable[Any], body: Any) -> None:
        self._w.open(KIND_OMBIND, ("cdbase", self._enter()))
        self._emit(head)
        non_empty, variables = peek(variables_of(variables))
        if not non_empty:
            self._w.empty(TAG_OMBVAR)
        else:
            self._w.open(TAG_OMBVAR)
            for var in variables:
                if var.attributes:
                    self._w.open(KIND_OMATTR)
                    self._attrs(var.attributes)
                    self._w.empty(KIND_OMV, ("name", var.name))
                    self._w.close(KIND_OMATTR)
                else:
                    self._w.empty(KIND_OMV, ("name", var.name))
            self._w.close(TAG_OMBVAR)
        self._emit(body)
        self._w.close(KIND_OMBIND)


def to_xml(value: Any, pretty: bool = False) -> str:
    """Serialize `value` to OpenMath XML.  OMObject roots get an OMOBJ envelope."""
    out: List[str] = []
    writer = _XmlWriter(out.append, pretty)
    if isinstance(value, OMObject):
        writer.open(KIND_OMOBJ,
                    ("xmlns", XML_NAMESPACE if value.namespace else None),
                    ("version", OPENMATH_VERSION))
        serialize(value.value, XmlSink(writer))
        writer.close(KIND_OMOBJ)
    else:
        serialize(value, XmlSink(writer))
    return "".join(out)


def to_xml_object(value: Any, pretty: bool = False, namespace: bool = True) -> str:
    """Serialize `value` as a complete <OMOBJ> document element."""
    return to_xml(OMObject(value, namespace), pretty)


# ── Reader ───────────────────────────────────────────────────

_OBJECT_TAGS = frozenset((KIND_OMI, KIND_OMF, KIND_OMSTR, KIND_OMB, KIND_OMV, KIND_OMS,
                          KIND_OMA, KIND_OMBIND, KIND_OME, KIND_OMATTR))
_LEAF_TAGS = frozenset((KIND_OMI, KIND_OMF, KIND_OMSTR, KIND_OMB, KIND_OMV, KIND_OMS))
_TEXT_TAGS = frozenset((KIND_OMI, KIND_OMSTR, KIND_OMB, KIND_OMFOREIGN))
_SCOPED_TAGS = frozenset((KIND_OMA, KIND_OMBIND, KIND_OME, KIND_OMATTR, KIND_OMOBJ))
# Elements whose content is a mandatory non-empty sequence.
_NON_EMPTY_TAGS = frozenset((KIND_OMA, KIND_OMBIND, KIND_OME, KIND_OMATTR, KIND_OMOBJ))
_KNOWN_TAGS = _OBJECT_TAGS | {KIND_OMFOREIGN, KIND_OMOBJ, TAG_OMBVAR, TAG_OMATP}

# Roles an element plays in its parent.
_ROOT = "root"
_OBJECT = "object"          # visited object
_VALUE = "value"            # visited object or OMFOREIGN
_SYMBOL = "symbol"          # raw OMS: OME error, attribute key
_VARIABLE = "variable"      # OMV / attributed OMV inside OMBVAR
_VAR_NAME = "var-name"      # the OMV inside an attributed variable
_WRAPPER = "wrapper"        # OMBVAR, OMATP


def _local(tag: str) -> str:
    return tag.rpartition("}")[2]


class _Frame:
    __slots__ = ("tag", "attrib", "position", "role", "children", "text")

    def __init__(self, tag: str, attrib: Dict[str, str], position: int, role: str) -> None:
        self.tag = tag
        self.attrib = attrib
        self.position = position
        self.role = role
        self.children: List[Any] = []
        self.text: List[str] = []


class _Group:
    """Result of an OMBVAR or OMATP wrapper."""

    __slots__ = ("items",)

    def __init__(self, items: List[Any]) -> None:
        self.items = items


class _XmlHandler:
    """ElementTree parser target turning element events into visitor calls."""

    def __init__(self, decoder: Decoder) -> None:
        self.decoder = decoder
        self.expat: Any = None
        self.result: Any = None
        self._stack: List[_Frame] = []
        self._foreign: Optional[_Frame] = None
        self._foreign_depth = 0

    def _offset(self) -> int:
        return self.expat.CurrentByteIndex if self.expat is not None else -1

    def _fail(self, code: str, msg: str, position: Optional[int] = None) -> OpenMathError:
        return OpenMathError(code, msg, self._offset() if position is None else position)

    # ── role of a new element ──

    def _role(self, parent: Optional[_Frame], tag: str) -> str:
        if parent is None:
            return _ROOT
        ptag, index = parent.tag, len(parent.children)
        if ptag in _LEAF_TAGS:
            raise self._fail(ERR_UNEXPECTED, "<{}> cannot contain <{}>".format(ptag, tag))
        if ptag == TAG_OMBVAR:
            if tag not in (KIND_OMV, KIND_OMATTR):
                raise self._fail(ERR_UNEXPECTED, "OMBVAR holds only variables")
            return _VARIABLE
        if parent.role == _VARIABLE:
            # <OMATTR><OMATP>..</OMATP><OMV/></OMATTR> inside OMBVAR
            if index == 0 and tag == TAG_OMATP:
                return _WRAPPER
            if index == 1 and tag == KIND_OMV:
                return _VAR_NAME
            raise self._fail(ERR_UNEXPECTED, "malformed attributed variable")
        if ptag == TAG_OMATP:
            if index % 2 == 0:
                if tag != KIND_OMS:
                    raise self._fail(ERR_UNEXPECTED, "attribute key must be an OMS")
                return _SYMBOL
            return _VALUE
        if ptag == KIND_OME:
            if index == 0:
                if tag != KIND_OMS:
                    raise self._fail(ERR_UNEXPECTED, "OME must start with its error symbol")
                return _SYMBOL
            return _VALUE
        if ptag == KIND_OMATTR:
            if index == 0:
                if tag != TAG_OMATP:
                    raise self._fail(ERR_UNEXPECTED, "OMATTR must start with OMATP")
                return _WRAPPER
            if index == 1:
                return _OBJECT
            raise self._fail(ERR_UNEXPECTED, "OMATTR holds a single object")
        if ptag == KIND_OMBIND:
            if index == 1:
                if tag != TAG_OMBVAR:
                    raise self._fail(ERR_UNEXPECTED, "OMBIND needs OMBVAR after the binder")
                return _WRAPPER
            if index > 2:
                raise self._fail(ERR_UNEXPECTED, "OMBIND holds binder, OMBVAR and body")
            return _OBJECT
        if ptag == KIND_OMOBJ and index > 0:
            raise self._fail(ERR_UNEXPECTED, "OMOBJ holds a single object")
        return _OBJECT

    # ── parser target interface ──

    def start(self, tag: str, attrib: Dict[str, str]) -> None:
        tag = _local(tag)
        if self._foreign is not None:
            self._foreign.text.append("<{}{}>".format(
                tag, _attr_text((_local(k), v) for k, v in attrib.items())))
            self._foreign_depth += 1
            return
        position = self._offset()
        if tag == KIND_OMR:
            raise self._fail(ERR_UNSUPPORTED, "OMR references are not supported", position)
        if tag not in _KNOWN_TAGS:
            raise self._fail(ERR_UNKNOWN_KIND, "unknown element <{}>".format(tag), position)
        parent = self._stack[-1] if self._stack else None
        role = self._role(parent, tag)
        if tag == KIND_OMFOREIGN and role != _VALUE:
            raise self._fail(
                ERR_UNEXPECTED,
                "OMFOREIGN is only allowed as an OME argument or attribute value", position)
        if tag in (TAG_OMBVAR, TAG_OMATP) and role != _WRAPPER:
            raise self._fail(ERR_UNEXPECTED, "misplaced <{}>".format(tag), position)
        if tag == KIND_OMOBJ and role != _ROOT:
            raise self._fail(ERR_UNEXPECTED, "OMOBJ is only allowed at the root", position)
        if tag in _SCOPED_TAGS:
            try:
                self.decoder.enter(attrib.get("cdbase"))
            except OpenMathError as e:
                raise e.at(position)
        frame = _Frame(tag, {_local(k): v for k, v in attrib.items()}, position, role)
        self._stack.append(frame)
        if tag == KIND_OMFOREIGN:
            self._foreign = frame

    def data(self, text: str) -> None:
        if self._foreign is not None:
            self._foreign.text.append(escape_text(text) if self._foreign_depth else text)
            return
        if not self._stack:
            return
        frame = self._stack[-1]
        if frame.tag in _TEXT_TAGS:
            frame.text.append(text)
        elif text.strip():
            raise self._fail(ERR_UNEXPECTED, "unexpected text in <{}>".format(frame.tag))

    def end(self, tag: str) -> None:
        if self._foreign is not None and self._foreign_depth:
            self._foreign.text.append("</{}>".format(_local(tag)))
            self._foreign_depth -= 1
            return
        frame = self._stack.pop()
        if frame is self._foreign:
            self._foreign = None
        try:
            result = self._build(frame)
        except OpenMathError as e:
            raise e.at(frame.position)
        if frame.tag in _SCOPED_TAGS:
            self.decoder.leave()
        if self._stack:
            self._stack[-1].children.append(result)
        else:
            self.result = result

    def close(self) -> Any:
        return self.result

    # ── node construction ──

    def _require(self, frame: _Frame, name: str) -> str:
        if name not in frame.attrib:
            raise OpenMathError(ERR_MISSING_FIELD,
                                "<{}> requires attribute '{}'".format(frame.tag, name))
        return frame.attrib[name]

    def _build(self, frame: _Frame) -> Any:
        tag, attrib, children = frame.tag, frame.attrib, frame.children
        cdbase = attrib.get("cdbase")
        visit = self.decoder.visit
        if tag in _NON_EMPTY_TAGS and not children:
            raise OpenMathError(ERR_EMPTY_SEQUENCE, "<{}> has no content".format(tag))

        if tag == KIND_OMI:
            text = "".join(frame.text).strip()
            if text.lstrip("-").startswith("x"):
                raise OpenMathError(ERR_UNSUPPORTED, "hexadecimal integers are not supported")
            return visit(OMI(Integer.parse(text)))
        if tag == KIND_OMF:
            if "hex" in attrib:
                raise OpenMathError(ERR_UNSUPPORTED, "hexadecimal floats are not supported")
            return visit(OMF(parse_decimal_float(self._require(frame, "dec"))))
        if tag == KIND_OMSTR:
            return visit(OMSTR("".join(frame.text)))
        if tag == KIND_OMB:
            payload = "".join("".join(frame.text).split())
            try:
                data = b64decode(payload)
            except OpenMathError as e:
                raise OpenMathError(
                    e.code, "{} at index {} of OMB content".format(e.args[0], e.position)) from None
            return visit(OMB(data))
        if tag == KIND_OMV:
            name = self._require(frame, "name")
            if frame.role in (_VARIABLE, _VAR_NAME):
                return BoundVariable(name)
            return visit(OMV(name))
        if tag == KIND_OMS:
            symbol = OMS(self._require(frame, "cd"), self._require(frame, "name"), cdbase)
            if frame.role == _SYMBOL:
                return symbol
            return visit(symbol, cdbase)
        if tag == KIND_OMFOREIGN:
            return OMFOREIGN("".join(frame.text), attrib.get("encoding"))
        if tag == TAG_OMBVAR:
            return _Group(children)
        if tag == TAG_OMATP:
            if len(children) % 2:
                raise OpenMathError(ERR_MISSING_FIELD, "attribute key without value")
            return _Group(list(zip(children[::2], children[1::2])))
        if tag == KIND_OMA:
            return visit(OMA(children[0], children[1:], cdbase))
        if tag == KIND_OMBIND:
            if len(children) != 3:
                raise OpenMathError(ERR_MISSING_FIELD, "OMBIND requires binder, OMBVAR and body")
            return visit(OMBIND(children[0], children[1].items, children[2], cdbase))
        if tag == KIND_OME:
            return visit(OME(children[0], children[1:], cdbase))
        if tag == KIND_OMATTR:
            if len(children) != 2:
                raise OpenMathError(ERR_MISSING_FIELD, "OMATTR requires OMATP and an object")
            pairs, inner = children[0].items, children[1]
            if frame.role == _VARIABLE:
                return BoundVariable(inner.name, pairs)
            if not pairs:
                return inner
            return visit(OMATTR(inner, pairs, cdbase))
        # OMOBJ; a second child was refused when it started
        return children[0]


def from_xml(text: Union[str, bytes], target: Any = Node,
             cdbase: str = DEFAULT_CDBASE, max_depth: int = MAX_DEPTH) -> Any:
    """Parse OpenMath XML (an OMOBJ or a bare object element) into `target`."""
    logger.debug("decoding XML document (%d bytes)", len(text))
    decoder = Decoder(target, cdbase, max_depth)
    handler = _XmlHandler(decoder)
    parser = DefusedXMLParser(target=handler)
    handler.expat = parser.parser
    try:
        parser.feed(text)
        outcome = parser.close()
    except ParseError as e:
        raise OpenMathError(ERR_SYNTAX, "XML parse error: {}".format(e),
                            handler.expat.ErrorByteIndex) from None
    except DefusedXmlException as e:
        raise OpenMathError(ERR_SYNTAX, "forbidden XML construct: {}".format(e)) from None
    if outcome is None:
        raise OpenMathError(ERR_MISSING_FIELD, "document holds no OpenMath object")
    return decoder.finish(outcome)
