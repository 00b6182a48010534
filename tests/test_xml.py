"""XML encoding: XmlSink output and the expat-driven reader."""

from __future__ import annotations

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from omcodec import (
    DEFAULT_CDBASE,
    ERR_B64_ILLEGAL_LENGTH,
    ERR_EMPTY_SEQUENCE,
    ERR_INVALID_FLOAT,
    ERR_INVALID_INTEGER,
    ERR_LIMIT_DEPTH,
    ERR_MISSING_FIELD,
    ERR_SYNTAX,
    ERR_UNEXPECTED,
    ERR_UNKNOWN_KIND,
    ERR_UNSUPPORTED,
    OMA,
    OMATTR,
    OMBIND,
    OME,
    OMF,
    OMFOREIGN,
    OMI,
    OMS,
    OMSTR,
    OMV,
    Int64,
    Integer,
    OMObject,
    OpenMathError,
    from_xml,
    to_xml,
    to_xml_object,
)

EX = "http://example.org"
OM = "http://openmath.org"


class Point:
    def __init__(self, x, y):
        self.x = x
        self.y = y

    def as_openmath(self, sink):
        return sink.oma(OMS("geometry1", "point", EX), (self.x, self.y))


def lam(variables, body):
    return OMBIND(OMS("fns1", "lambda"), variables, body, OM)


POINT_XML = (
    "<OMA>\n"
    '  <OMS cdbase="http://example.org" cd="geometry1" name="point"/>\n'
    '  <OMF dec="1.4"/>\n'
    '  <OMF dec="7.8"/>\n'
    "</OMA>"
)

LAMBDA_XML = (
    '<OMBIND cdbase="http://openmath.org">\n'
    '  <OMS cd="fns1" name="lambda"/>\n'
    "  <OMBVAR>\n"
    '    <OMV name="x"/>\n'
    '    <OMV name="y"/>\n'
    "  </OMBVAR>\n"
    "  <OMSTR>x + y</OMSTR>\n"
    "</OMBIND>"
)


# ── Writer ────────────────────────────────────────────────────

class TestXmlWriter(unittest.TestCase):
    def test_leaves(self):
        self.assertEqual(to_xml(OMI(42)), "<OMI>42</OMI>")
        self.assertEqual(to_xml(Integer.parse("-" + "9" * 40)), "<OMI>-{}</OMI>".format("9" * 40))
        self.assertEqual(to_xml(1.5), '<OMF dec="1.5"/>')
        self.assertEqual(to_xml(float("-inf")), '<OMF dec="-INF"/>')
        self.assertEqual(to_xml(float("nan")), '<OMF dec="NaN"/>')
        self.assertEqual(to_xml(b"foo bar"), "<OMB>Zm9vIGJhcg==</OMB>")
        self.assertEqual(to_xml(OMV("x")), '<OMV name="x"/>')

    def test_text_escaping(self):
        self.assertEqual(to_xml("a<b&c>"), "<OMSTR>a&lt;b&amp;c&gt;</OMSTR>")
        self.assertEqual(to_xml(OMV('a"b')), '<OMV name="a&quot;b"/>')

    def test_whitespace_escaping(self):
        self.assertEqual(to_xml("a\rb"), "<OMSTR>a&#13;b</OMSTR>")
        self.assertEqual(to_xml(OMV("a\tb\nc")), '<OMV name="a&#9;b&#10;c"/>')

    def test_pretty_point(self):
        self.assertEqual(to_xml(Point(1.4, 7.8), pretty=True), POINT_XML)

    def test_pretty_lambda(self):
        self.assertEqual(to_xml(lam(["x", "y"], "x + y"), pretty=True), LAMBDA_XML)

    def test_empty_bound_variables(self):
        out = to_xml(lam([], "true"), pretty=True)
        self.assertTrue(out.endswith("  <OMBVAR/>\n  <OMSTR>true</OMSTR>\n</OMBIND>"))

    def test_compact_has_no_whitespace(self):
        self.assertEqual(
            to_xml(OMA(OMS("arith1", "plus"), [1, 2])),
            '<OMA><OMS cd="arith1" name="plus"/><OMI>1</OMI><OMI>2</OMI></OMA>')

    def test_omobj_envelope(self):
        self.assertEqual(
            to_xml_object(OMI(1)),
            '<OMOBJ xmlns="http://www.openmath.org/OpenMath" version="2.0"><OMI>1</OMI></OMOBJ>')
        self.assertEqual(to_xml_object(OMI(1), namespace=False),
                         '<OMOBJ version="2.0"><OMI>1</OMI></OMOBJ>')
        self.assertEqual(
            to_xml(OMObject(OMI(1)), pretty=True),
            '<OMOBJ xmlns="http://www.openmath.org/OpenMath" version="2.0">\n'
            "  <OMI>1</OMI>\n"
            "</OMOBJ>")

    def test_attribution_writes_omatp_first(self):
        node = OMATTR(OMV("x"), [(OMS("ecc", "type"), OMSTR("int"))])
        self.assertEqual(
            to_xml(node),
            '<OMATTR><OMATP><OMS cd="ecc" name="type"/><OMSTR>int</OMSTR></OMATP>'
            '<OMV name="x"/></OMATTR>')

    def test_attributed_bound_variable(self):
        node = OMBIND(OMS("fns1", "lambda"),
                      [("x", [(OMS("ecc", "type"), OMS("ecc", "int"))])], OMV("x"))
        self.assertEqual(
            to_xml(node),
            '<OMBIND><OMS cd="fns1" name="lambda"/><OMBVAR><OMATTR><OMATP>'
            '<OMS cd="ecc" name="type"/><OMS cd="ecc" name="int"/></OMATP>'
            '<OMV name="x"/></OMATTR></OMBVAR><OMV name="x"/></OMBIND>')

    def test_foreign_payload_is_escaped(self):
        node = OME(OMS("error", "unhandled_symbol"), [OMFOREIGN("<x/>", "text/xml")])
        self.assertEqual(
            to_xml(node),
            '<OME><OMS cd="error" name="unhandled_symbol"/>'
            '<OMFOREIGN encoding="text/xml">&lt;x/&gt;</OMFOREIGN></OME>')

    def test_cdbase_switches(self):
        node = OMA(OMS("a", "f"), [OMS("b", "g", DEFAULT_CDBASE)], EX)
        self.assertEqual(
            to_xml(node),
            '<OMA cdbase="http://example.org"><OMS cd="a" name="f"/>'
            '<OMS cdbase="http://www.openmath.org/cd" cd="b" name="g"/></OMA>')


# ── Reader ────────────────────────────────────────────────────

class TestXmlReader(unittest.TestCase):
    def test_native_target(self):
        self.assertEqual(from_xml("<OMI>42</OMI>", Int64), 42)
        self.assertEqual(from_xml("<OMI> 42 </OMI>", int), 42)
        self.assertEqual(from_xml("<OMSTR/>", str), "")
        self.assertEqual(from_xml(b'<OMF dec="2.5"/>', float), 2.5)

    def test_namespaced_omobj(self):
        text = ('<OMOBJ xmlns="http://www.openmath.org/OpenMath" version="2.0">'
                '<OMA><OMS cd="arith1" name="plus"/><OMI>1</OMI><OMI>2</OMI></OMA></OMOBJ>')
        self.assertEqual(from_xml(text), OMA(OMS("arith1", "plus"), [OMI(1), OMI(2)]))

    def test_pretty_documents(self):
        self.assertEqual(from_xml(LAMBDA_XML), lam(["x", "y"], OMSTR("x + y")))
        self.assertEqual(from_xml(POINT_XML),
                         OMA(OMS("geometry1", "point", EX), [OMF(1.4), OMF(7.8)]))

    def test_cdbase_inheritance(self):
        text = ('<OMA cdbase="http://example.org"><OMS cd="a" name="f"/>'
                '<OMS cd="b" name="g" cdbase="http://x.org"/></OMA>')
        self.assertEqual(from_xml(text),
                         OMA(OMS("a", "f"), [OMS("b", "g", "http://x.org")], EX))

    def test_omobj_cdbase(self):
        text = '<OMOBJ cdbase="http://example.org"><OMS cd="a" name="f"/></OMOBJ>'
        self.assertEqual(from_xml(text), OMS("a", "f", EX))

    def test_base64_with_line_breaks(self):
        self.assertEqual(from_xml("<OMB>Zm9v\n  IGJhcg==</OMB>", bytes), b"foo bar")
        self.assertEqual(from_xml("<OMB/>", bytes), b"")

    def test_attribution(self):
        text = ('<OMATTR><OMATP><OMS cd="ecc" name="type"/><OMSTR>int</OMSTR></OMATP>'
                '<OMV name="x"/></OMATTR>')
        self.assertEqual(from_xml(text),
                         OMATTR(OMV("x"), [(OMS("ecc", "type"), OMSTR("int"))]))

    def test_empty_attribution(self):
        self.assertEqual(from_xml("<OMATTR><OMATP/><OMI>7</OMI></OMATTR>", Int64), 7)

    def test_attributed_bound_variable(self):
        text = ('<OMBIND><OMS cd="fns1" name="lambda"/><OMBVAR><OMATTR><OMATP>'
                '<OMS cd="ecc" name="type"/><OMS cd="ecc" name="int"/></OMATP>'
                '<OMV name="x"/></OMATTR></OMBVAR><OMV name="x"/></OMBIND>')
        node = from_xml(text)
        self.assertEqual(node, OMBIND(OMS("fns1", "lambda"),
                                      [("x", [(OMS("ecc", "type"), OMS("ecc", "int"))])],
                                      OMV("x")))

    def test_whitespace_round_trip(self):
        nodes = [
            OMSTR("a\rb"),
            OMSTR("line\r\nbreak"),
            OMV("a\tb"),
            OMV("a\nb"),
            OMV("a\rb"),
            OMS("c\td", "n\ne"),
            OMA(OMS("f", "g", "http://example.org/\tx"), [OMI(1)]),
            OME(OMS("error", "unhandled_symbol"), [OMFOREIGN("p\rq", "text\tplain")]),
            OMBIND(OMS("fns1", "lambda"), ["x\ty"], OMV("x\ty")),
        ]
        for node in nodes:
            with self.subTest(node=node):
                self.assertEqual(from_xml(to_xml(node)), node)
                self.assertEqual(from_xml(to_xml(node, pretty=True)), node)

    def test_foreign_markup_kept_as_text(self):
        text = ('<OME><OMS cd="error" name="unhandled_symbol"/>'
                '<OMFOREIGN encoding="text/xml"><x a="1">y &amp; z</x></OMFOREIGN></OME>')
        node = from_xml(text)
        self.assertEqual(node.arguments[0], OMFOREIGN('<x a="1">y &amp; z</x>', "text/xml"))

    def _error(self, text, **kwargs):
        with self.assertRaises(OpenMathError) as ctx:
            from_xml(text, **kwargs)
        return ctx.exception

    def test_structural_errors(self):
        cases = [
            ("<OMX/>", ERR_UNKNOWN_KIND),
            ('<OMR href="#a"/>', ERR_UNSUPPORTED),
            ('<OMF hex="3FF0000000000000"/>', ERR_UNSUPPORTED),
            ("<OMI>x1F</OMI>", ERR_UNSUPPORTED),
            ("<OMF/>", ERR_MISSING_FIELD),
            ('<OMS cd="a"/>', ERR_MISSING_FIELD),
            ("<OMA/>", ERR_EMPTY_SEQUENCE),
            ("<OME></OME>", ERR_EMPTY_SEQUENCE),
            ("<OMBIND/>", ERR_EMPTY_SEQUENCE),
            ("<OMATTR/>", ERR_EMPTY_SEQUENCE),
            ("<OMOBJ/>", ERR_EMPTY_SEQUENCE),
            ('<OMBIND><OMS cd="fns1" name="lambda"/></OMBIND>', ERR_MISSING_FIELD),
            ("<OME><OMI>1</OMI></OME>", ERR_UNEXPECTED),
            ('<OMA><OMS cd="a" name="f"/><OMFOREIGN>x</OMFOREIGN></OMA>', ERR_UNEXPECTED),
            ("<OMOBJ><OMI>1</OMI><OMI>2</OMI></OMOBJ>", ERR_UNEXPECTED),
            ("<OMI>1<OMI>2</OMI></OMI>", ERR_UNEXPECTED),
            ('<OMA>text<OMS cd="a" name="f"/></OMA>', ERR_UNEXPECTED),
            ('<OMBVAR><OMV name="x"/></OMBVAR>', ERR_UNEXPECTED),
            ("<OMI>1.5</OMI>", ERR_INVALID_INTEGER),
            ('<OMF dec="1,5"/>', ERR_INVALID_FLOAT),
            ("<OMB>Zm9</OMB>", ERR_B64_ILLEGAL_LENGTH),
        ]
        for text, code in cases:
            with self.subTest(text=text):
                self.assertEqual(self._error(text).code, code)

    def test_error_carries_byte_offset(self):
        e = self._error('<OMA><OMS cd="a" name="f"/><OMI>1x</OMI></OMA>')
        self.assertEqual(e.code, ERR_INVALID_INTEGER)
        self.assertEqual(e.position, 27)

    def test_malformed_xml(self):
        e = self._error("<OMI>1</OMA>")
        self.assertEqual(e.code, ERR_SYNTAX)
        self.assertIsInstance(e.position, int)

    def test_entities_forbidden(self):
        e = self._error('<!DOCTYPE OMSTR [<!ENTITY a "b">]><OMSTR>&a;</OMSTR>')
        self.assertEqual(e.code, ERR_SYNTAX)

    def test_empty_document(self):
        self.assertEqual(self._error("").code, ERR_SYNTAX)

    def test_depth_limit(self):
        text = '<OMA><OMS cd="a" name="f"/>' * 10 + "<OMI>1</OMI>" + "</OMA>" * 10
        self.assertIsInstance(from_xml(text, max_depth=10), OMA)
        self.assertEqual(self._error(text, max_depth=9).code, ERR_LIMIT_DEPTH)

    def test_default_depth_limit(self):
        text = '<OMA><OMS cd="a" name="f"/>' * 300 + "<OMI>1</OMI>" + "</OMA>" * 300
        self.assertEqual(self._error(text).code, ERR_LIMIT_DEPTH)


if __name__ == "__main__":
    unittest.main()
