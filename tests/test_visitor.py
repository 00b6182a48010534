"""Deserializer contract: bottom-up visiting, slots, built-in visitors."""

from __future__ import annotations

import os
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from omcodec import (
    ERR_CUSTOM,
    ERR_NOT_CONVERTIBLE,
    ERR_RANGE,
    ERR_TYPE,
    OMA,
    OMATTR,
    OMF,
    OMI,
    OMS,
    OMSTR,
    Accepted,
    Float32,
    Int8,
    Int64,
    Int128,
    Integer,
    OpenMathError,
    Pending,
    UInt8,
    UInt128,
    custom,
    from_display,
    from_json,
    from_tree,
    from_xml,
    resolve_visitor,
    to_display,
    unslot,
)

EX = "http://example.org"
PLUS = '{"kind":"OMA","applicant":{"kind":"OMS","cd":"arith1","name":"plus"},' \
       '"arguments":[{"kind":"OMI","integer":2},{"kind":"OMI","integer":2}]}'


class Arith:
    """Evaluates arith1#plus over integers."""

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


class Recorder:
    """Accepts everything, remembering (kind, cdbase) in visiting order."""

    def __init__(self):
        self.seen = []

    def from_openmath(self, node, cdbase):
        self.seen.append((str(node.kind), cdbase))
        return Accepted(str(node.kind))


class Point:
    def __init__(self, x, y):
        self.x = x
        self.y = y

    @classmethod
    def from_openmath(cls, node, cdbase):
        if isinstance(node, OMS):
            # keep the symbol's effective cdbase for the enclosing OMA
            return Pending(OMS(node.cd, node.name, cdbase))
        if isinstance(node, OMF):
            return Accepted(node.value)
        if (isinstance(node, OMA) and isinstance(node.applicant, Pending)
                and node.applicant.node.name == "point"
                and node.applicant.node.cdbase == EX):
            x, y = (unslot(a) for a in node.arguments)
            return Accepted(cls(x, y))
        return Pending(node)


# ── Arithmetic scenario ───────────────────────────────────────

class TestArith(unittest.TestCase):
    def test_plus_from_json(self):
        self.assertEqual(from_json(PLUS, Arith), 4)

    def test_plus_from_xml(self):
        text = ('<OMA><OMS cd="arith1" name="plus"/>'
                '<OMI>2</OMI><OMI>3</OMI><OMI>4</OMI></OMA>')
        self.assertEqual(from_xml(text, Arith), 9)

    def test_plus_from_display(self):
        self.assertEqual(from_display("OMA(OMS(arith1#plus),OMI(1),OMI(-1))", Arith), 0)

    def test_unknown_operator_is_not_convertible(self):
        with self.assertRaises(OpenMathError) as ctx:
            from_display("OMA(OMS(arith1#times),OMI(2),OMI(2))", Arith)
        self.assertEqual(ctx.exception.code, ERR_NOT_CONVERTIBLE)
        self.assertIn("Arith", str(ctx.exception))


# ── Visiting order and cdbase ─────────────────────────────────

class TestVisitingOrder(unittest.TestCase):
    def test_children_before_parent(self):
        rec = Recorder()
        text = ('<OMA><OMS cd="arith1" name="plus"/><OMI>1</OMI>'
                '<OMA><OMS cd="arith1" name="minus"/><OMF dec="2.0"/></OMA></OMA>')
        self.assertEqual(from_xml(text, rec), "OMA")
        self.assertEqual([k for k, _ in rec.seen],
                         ["OMS", "OMI", "OMS", "OMF", "OMA", "OMA"])

    def test_effective_cdbase_is_passed(self):
        rec = Recorder()
        text = ('<OMA cdbase="http://example.org"><OMS cd="a" name="f"/>'
                '<OMS cd="b" name="g" cdbase="http://x.org"/><OMI>1</OMI></OMA>')
        from_xml(text, rec)
        self.assertEqual(rec.seen, [
            ("OMS", EX),
            ("OMS", "http://x.org"),
            ("OMI", EX),
            ("OMA", EX),
        ])

    def test_root_cdbase_argument(self):
        rec = Recorder()
        from_json('{"kind":"OMS","cd":"a","name":"f"}', rec, cdbase=EX)
        self.assertEqual(rec.seen, [("OMS", EX)])

    def test_error_symbol_is_not_visited(self):
        rec = Recorder()
        from_tree({"kind": "OME",
                   "error": {"kind": "OMS", "cd": "error", "name": "unexpected_symbol"},
                   "arguments": [{"kind": "OMI", "integer": 1},
                                 {"kind": "OMFOREIGN", "foreign": "x"}]}, rec)
        self.assertEqual([k for k, _ in rec.seen], ["OMI", "OME"])

    def test_attribute_keys_are_not_visited(self):
        rec = Recorder()
        text = ('<OMATTR><OMATP><OMS cd="ecc" name="type"/><OMSTR>int</OMSTR></OMATP>'
                '<OMV name="x"/></OMATTR>')
        from_xml(text, rec)
        self.assertEqual([k for k, _ in rec.seen], ["OMSTR", "OMV", "OMATTR"])

    def test_bound_variables_are_not_visited(self):
        rec = Recorder()
        text = ('<OMBIND><OMS cd="fns1" name="lambda"/><OMBVAR><OMATTR><OMATP>'
                '<OMS cd="ecc" name="type"/><OMS cd="ecc" name="int"/></OMATP>'
                '<OMV name="x"/></OMATTR></OMBVAR><OMV name="x"/></OMBIND>')
        from_xml(text, rec)
        # the attribute value of the variable is, the variable itself is not
        self.assertEqual([k for k, _ in rec.seen], ["OMS", "OMS", "OMV", "OMBIND"])

    def test_slots_hold_outcomes(self):
        seen = {}

        class Capture:
            @staticmethod
            def from_openmath(node, cdbase):
                if isinstance(node, OMA):
                    seen["node"] = node
                    return Accepted(None)
                if isinstance(node, OMI):
                    return Accepted(int(node.value))
                return Pending(node)

        from_display("OMA(OMS(a#f),OMI(1),OMSTR(\"s\"))", Capture)
        node = seen["node"]
        self.assertEqual(node.applicant, Pending(OMS("a", "f")))
        self.assertEqual(node.arguments, (Accepted(1), Pending(OMSTR("s"))))


# ── User types ────────────────────────────────────────────────

class TestUserTypes(unittest.TestCase):
    def test_point_in_private_cd(self):
        p = from_display("OMA(OMS(http://example.org/geometry1#point),OMF(1.4),OMF(7.8))",
                         Point)
        self.assertEqual((p.x, p.y), (1.4, 7.8))

    def test_point_in_wrong_cd(self):
        with self.assertRaises(OpenMathError) as ctx:
            from_display("OMA(OMS(geometry1#point),OMF(1.4),OMF(7.8))", Point)
        self.assertEqual(ctx.exception.code, ERR_NOT_CONVERTIBLE)

    def test_visitor_must_return_outcome(self):
        class Sloppy:
            @staticmethod
            def from_openmath(node, cdbase):
                return 1

        with self.assertRaises(OpenMathError) as ctx:
            from_display("OMI(1)", Sloppy)
        self.assertEqual(ctx.exception.code, ERR_TYPE)

    def test_visitor_custom_error(self):
        class Picky:
            @staticmethod
            def from_openmath(node, cdbase):
                raise custom("no thanks")

        with self.assertRaises(OpenMathError) as ctx:
            from_display("OMI(1)", Picky)
        self.assertEqual(ctx.exception.code, ERR_CUSTOM)

    def test_unknown_target(self):
        for target in (object, list, {}):
            with self.subTest(target=target):
                with self.assertRaises(OpenMathError) as ctx:
                    resolve_visitor(target)
                self.assertEqual(ctx.exception.code, ERR_TYPE)

    def test_outcomes_serialize(self):
        self.assertEqual(to_display(Pending(OMI(1))), "OMI(1)")
        self.assertEqual(to_display(Accepted(2.5)), "OMF(2.5)")
        self.assertEqual(unslot(Accepted(3)), 3)
        self.assertEqual(unslot(Pending(OMI(3))), OMI(3))


# ── Built-in visitors ─────────────────────────────────────────

class TestBuiltins(unittest.TestCase):
    def _range_error(self, text, target):
        with self.assertRaises(OpenMathError) as ctx:
            from_display(text, target)
        self.assertEqual(ctx.exception.code, ERR_RANGE)

    def test_fixed_width_bounds(self):
        self.assertEqual(from_display("OMI(127)", Int8), 127)
        self.assertEqual(from_display("OMI(-128)", Int8), -128)
        self._range_error("OMI(128)", Int8)
        self.assertEqual(from_display("OMI(255)", UInt8), 255)
        self._range_error("OMI(-1)", UInt8)
        self._range_error("OMI(9223372036854775808)", Int64)

    def test_128_bit(self):
        self.assertEqual(from_display("OMI({})".format(2**127 - 1), Int128), 2**127 - 1)
        self._range_error("OMI({})".format(2**127), Int128)
        self.assertEqual(from_display("OMI({})".format(2**128 - 1), UInt128), 2**128 - 1)
        self._range_error("OMI({})".format(2**128), UInt128)
        self._range_error("OMI({})".format("9" * 60), UInt128)

    def test_python_int_is_unbounded(self):
        self.assertEqual(from_display("OMI({})".format("9" * 60), int), int("9" * 60))

    def test_integer_value(self):
        self.assertEqual(from_display("OMI(-5)", Integer), Integer(-5))

    def test_native_targets(self):
        self.assertEqual(from_display("OMF(2.5)", float), 2.5)
        self.assertEqual(from_display('OMSTR("hi")', str), "hi")
        self.assertEqual(from_display("OMB(104,105)", bytes), b"hi")

    def test_wrong_kind_is_not_convertible(self):
        with self.assertRaises(OpenMathError) as ctx:
            from_display('OMSTR("x")', Int64)
        self.assertEqual(ctx.exception.code, ERR_NOT_CONVERTIBLE)
        self.assertIn("i64", str(ctx.exception))

    def test_attribution_is_looked_through(self):
        text = "OMATTR(OMI(5),[OMS(ecc#type) = OMS(ecc#int)])"
        self.assertEqual(from_display(text, Int64), 5)

    def test_float32(self):
        value = from_display("OMF(1.1)", Float32)
        self.assertNotEqual(value, 1.1)
        self.assertAlmostEqual(value, 1.1, places=6)
        self._range_error("OMF(1e+300)", Float32)

    def test_object_visitor_resolves_symbols(self):
        node = from_display("OMATTR@http://example.org(OMV(x),[OMS(ecc#type) = OMI(1)])")
        self.assertIsInstance(node, OMATTR)
        self.assertEqual(node.attributes[0][0].cdbase, EX)


if __name__ == "__main__":
    unittest.main()
