"""Reader for the display form written by DisplaySink.

Grammar (no whitespace except after list commas and around ' = '):

    object  := OMI(int) | OMF(float) | OMSTR("str") | OMB(n,n,...) | OMV(name)
             | OMS([cdbase/]cd#name)
             | OMA[@cdbase](object,object...)
             | OMBIND[@cdbase](object,[var, var...],object)
             | OME[@cdbase](OMS(...),value...)
             | OMATTR[@cdbase](object,[attr, attr...])
    var     := name | OMATTR(OMV(name),[attr, ...])
    attr    := OMS(...) = value
    value   := object | OMFOREIGN("payload"[,"encoding"])

Strings are JSON string literals.  A name, cd or cdbase is written bare
unless it is empty or holds whitespace or one of ()[],#/@=" (a cdbase
may hold '/'); then it is a string literal as well.  Errors carry the
character offset.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional, Tuple

from ._constants import DEFAULT_CDBASE, MAX_DEPTH
from ._de import Decoder
from ._errors import (
    ERR_INVALID_FLOAT,
    ERR_SYNTAX,
    ERR_UNEXPECTED,
    ERR_UNKNOWN_KIND,
    ERR_UNSUPPORTED,
    OpenMathError,
)
from ._int import Integer
from ._model import OMA, OMATTR, OMB, OMBIND, OME, OMF, OMFOREIGN, OMI, OMS, OMSTR, OMV, BoundVariable, Node

logger = logging.getLogger(__name__)

_TAG = re.compile(r"[A-Z]+")
# repr() spellings of a float
_FLOAT = re.compile(r"-?(inf|nan|[0-9]+(\.[0-9]*)?([eE][+-]?[0-9]+)?)\Z")

_JSON = json.JSONDecoder()


class _Parser:
    def __init__(self, text: str, decoder: Decoder) -> None:
        self.text = text
        self.pos = 0
        self.decoder = decoder

    # ── lexing ──

    def _fail(self, msg: str, position: Optional[int] = None) -> OpenMathError:
        return OpenMathError(ERR_SYNTAX, msg, self.pos if position is None else position)

    def _expect(self, token: str) -> None:
        if not self.text.startswith(token, self.pos):
            raise self._fail("expected {!r}".format(token))
        self.pos += len(token)

    def _accept(self, token: str) -> bool:
        if self.text.startswith(token, self.pos):
            self.pos += len(token)
            return True
        return False

    def _until(self, stops: str) -> str:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in stops:
            self.pos += 1
        return self.text[start:self.pos]

    def _string(self) -> str:
        try:
            value, end = _JSON.raw_decode(self.text, self.pos)
        except ValueError:
            raise self._fail("expected a quoted string") from None
        if not isinstance(value, str):
            raise self._fail("expected a quoted string")
        self.pos = end
        return value

    def _tag(self) -> str:
        m = _TAG.match(self.text, self.pos)
        if not m:
            raise self._fail("expected an OpenMath element")
        self.pos = m.end()
        return m.group()

    def _name(self, stops: str) -> str:
        if self.text.startswith('"', self.pos):
            return self._string()
        return self._until(stops)

    def _cdbase(self) -> Optional[str]:
        if self._accept("@"):
            return self._name("(")
        return None

    # ── grammar ──

    def symbol(self) -> OMS:
        self._expect("OMS(")
        cdbase: Optional[str] = None
        if self.text.startswith('"', self.pos):
            cd = self._string()
            if self._accept("/"):
                cdbase, cd = cd, self._name("#)")
        else:
            bare = self._until('#)"')
            if self.text.startswith('"', self.pos):
                if not bare.endswith("/"):
                    raise self._fail("expected '/' before a quoted cd")
                cdbase, cd = bare[:-1], self._string()
            else:
                prefix, slash, cd = bare.rpartition("/")
                cdbase = prefix if slash else None
        if not self._accept("#"):
            raise self._fail("symbol needs cd#name")
        name = self._name(")")
        self._expect(")")
        return OMS(cd, name, cdbase)

    def value(self) -> Any:
        if self._accept("OMFOREIGN("):
            payload = self._string()
            encoding = self._string() if self._accept(",") else None
            self._expect(")")
            return OMFOREIGN(payload, encoding)
        return self.object()

    def attributes(self) -> List[Tuple[OMS, Any]]:
        self._expect("[")
        pairs = []
        while not self._accept("]"):
            if pairs:
                self._expect(", ")
            key = self.symbol()
            self._expect(" = ")
            pairs.append((key, self.value()))
        return pairs

    def variable(self) -> BoundVariable:
        if self._accept("OMATTR(OMV("):
            name = self._name(")")
            self._expect("),")
            attrs = self.attributes()
            self._expect(")")
            return BoundVariable(name, attrs)
        return BoundVariable(self._name(",]"))

    def object(self) -> Any:
        start = self.pos
        try:
            return self._object()
        except OpenMathError as e:
            raise e.at(start)

    def _object(self) -> Any:
        start = self.pos
        tag = self._tag()
        visit = self.decoder.visit
        if tag == "OMS":
            self.pos = start
            symbol = self.symbol()
            return visit(symbol, symbol.cdbase)
        if tag in ("OMA", "OMBIND", "OME", "OMATTR"):
            cdbase = self._cdbase()
            self._expect("(")
            self.decoder.enter(cdbase)
            outcome = getattr(self, "_" + tag.lower())(cdbase)
            self._expect(")")
            self.decoder.leave()
            return outcome
        if tag == "OMR":
            raise OpenMathError(ERR_UNSUPPORTED, "OMR references are not supported", start)
        if tag == "OMFOREIGN":
            raise OpenMathError(
                ERR_UNEXPECTED,
                "OMFOREIGN is only allowed as an OME argument or attribute value", start)
        self._expect("(")
        if tag == "OMSTR":
            node: Node = OMSTR(self._string())
        elif tag == "OMV":
            node = OMV(self._name(")"))
        else:
            body = self._until(")")
            if tag == "OMI":
                node = OMI(Integer.parse(body))
            elif tag == "OMF":
                if not _FLOAT.match(body):
                    raise OpenMathError(ERR_INVALID_FLOAT,
                                        "invalid float literal: {!r}".format(body))
                node = OMF(float(body))
            elif tag == "OMB":
                try:
                    node = OMB(bytes(int(b) for b in body.split(",")) if body else b"")
                except ValueError:
                    raise self._fail("OMB takes comma-separated octets") from None
            else:
                raise OpenMathError(ERR_UNKNOWN_KIND, "unknown element {}".format(tag), start)
        self._expect(")")
        return visit(node)

    def _oma(self, cdbase: Optional[str]) -> Any:
        head = self.object()
        args = []
        while self._accept(","):
            args.append(self.object())
        return self.decoder.visit(OMA(head, args, cdbase))

    def _ombind(self, cdbase: Optional[str]) -> Any:
        binder = self.object()
        self._expect(",[")
        variables: List[BoundVariable] = []
        while not self._accept("]"):
            if variables:
                self._expect(", ")
            variables.append(self.variable())
        self._expect(",")
        body = self.object()
        return self.decoder.visit(OMBIND(binder, variables, body, cdbase))

    def _ome(self, cdbase: Optional[str]) -> Any:
        error = self.symbol()
        args = []
        while self._accept(","):
            args.append(self.value())
        return self.decoder.visit(OME(error, args, cdbase))

    def _omattr(self, cdbase: Optional[str]) -> Any:
        inner = self.object()
        self._expect(",")
        attrs = self.attributes()
        if not attrs:
            return inner
        return self.decoder.visit(OMATTR(inner, attrs, cdbase))

    def parse(self) -> Any:
        outcome = self.object()
        if self.pos != len(self.text):
            raise self._fail("trailing characters after object")
        return outcome


def from_display(text: str, target: Any = Node, cdbase: str = DEFAULT_CDBASE,
                 max_depth: int = MAX_DEPTH) -> Any:
    """Parse the display form into `target`."""
    logger.debug("decoding display form (%d chars)", len(text))
    decoder = Decoder(target, cdbase, max_depth)
    return decoder.finish(_Parser(text.strip(), decoder).parse())
