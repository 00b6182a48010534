"""omcodec: OpenMath 2.0 objects in XML, JSON and a display form.

Serialize any value that knows how to emit itself against a sink, and
decode documents bottom-up into any type that implements a visitor.

Quick start:
    >>> from omcodec import OMA, OMS, to_display, to_xml, from_json
    >>> plus = OMA(OMS("arith1", "plus"), [2, 2])
    >>> to_display(plus)
    'OMA(OMS(arith1#plus),OMI(2),OMI(2))'
    >>> to_xml(plus)
    '<OMA><OMS cd="arith1" name="plus"/><OMI>2</OMI><OMI>2</OMI></OMA>'
    >>> from_json('{"kind":"OMI","integer":42}', int)
    42

Decoding into a user type:
    >>> class Sum:
    ...     @classmethod
    ...     def from_openmath(cls, node, cdbase):
    ...         if isinstance(node, OMI):
    ...             return Accepted(int(node.value))
    ...         if isinstance(node, OMA):
    ...             return Accepted(sum(a.value for a in node.arguments))
    ...         return Pending(node)
"""

from __future__ import annotations

from ._base64 import Base64Decoder, Base64Encoder, b64decode, b64encode
from ._constants import DEFAULT_CDBASE, MAX_DEPTH, OPENMATH_VERSION, XML_NAMESPACE
from ._de import (
    Accepted,
    BigInt,
    Bytes,
    Decoder,
    Float32,
    Float64,
    Int8,
    Int16,
    Int32,
    Int64,
    Int128,
    IntegerValue,
    NativeInt,
    ObjectVisitor,
    Pending,
    String,
    UInt8,
    UInt16,
    UInt32,
    UInt64,
    UInt128,
    resolve_visitor,
    unslot,
)
from ._display import from_display
from ._errors import (
    CATEGORY,
    ERR_B64_ILLEGAL_CHAR,
    ERR_B64_ILLEGAL_LENGTH,
    ERR_B64_NONSENSICAL_PADDING,
    ERR_CUSTOM,
    ERR_DUPLICATE_FIELD,
    ERR_EMPTY_SEQUENCE,
    ERR_INVALID_FLOAT,
    ERR_INVALID_INTEGER,
    ERR_LIMIT_DEPTH,
    ERR_MISSING_FIELD,
    ERR_NOT_CONVERTIBLE,
    ERR_RANGE,
    ERR_SINK_CONSUMED,
    ERR_SYNTAX,
    ERR_TYPE,
    ERR_UNEXPECTED,
    ERR_UNKNOWN_KIND,
    ERR_UNSUPPORTED,
    OpenMathError,
    custom,
)
from ._int import Integer
from ._json_adapter import TreeSink, from_json, from_tree, to_json, to_tree
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
    OMKind,
    structurally_equal,
)
from ._ser import DisplaySink, OMObject, Sink, serialize, to_display
from ._xml import XmlSink, from_xml, to_xml, to_xml_object

__version__ = "0.3.0"

__all__ = [
    # Model
    "OMKind",
    "Node",
    "OMI",
    "OMF",
    "OMSTR",
    "OMB",
    "OMV",
    "OMS",
    "OMA",
    "OMBIND",
    "OME",
    "OMATTR",
    "OMFOREIGN",
    "BoundVariable",
    "Integer",
    "structurally_equal",
    # Serialization
    "Sink",
    "DisplaySink",
    "XmlSink",
    "TreeSink",
    "OMObject",
    "serialize",
    "to_display",
    "to_xml",
    "to_xml_object",
    "to_tree",
    "to_json",
    # Deserialization
    "Accepted",
    "Pending",
    "unslot",
    "Decoder",
    "ObjectVisitor",
    "NativeInt",
    "resolve_visitor",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "Int128",
    "UInt8",
    "UInt16",
    "UInt32",
    "UInt64",
    "UInt128",
    "BigInt",
    "Float32",
    "Float64",
    "String",
    "Bytes",
    "IntegerValue",
    "from_json",
    "from_tree",
    "from_xml",
    "from_display",
    # Base64
    "Base64Encoder",
    "Base64Decoder",
    "b64encode",
    "b64decode",
    # Constants
    "DEFAULT_CDBASE",
    "XML_NAMESPACE",
    "OPENMATH_VERSION",
    "MAX_DEPTH",
    # Errors
    "OpenMathError",
    "custom",
    "CATEGORY",
    "ERR_MISSING_FIELD",
    "ERR_DUPLICATE_FIELD",
    "ERR_UNKNOWN_KIND",
    "ERR_EMPTY_SEQUENCE",
    "ERR_UNEXPECTED",
    "ERR_UNSUPPORTED",
    "ERR_LIMIT_DEPTH",
    "ERR_INVALID_INTEGER",
    "ERR_INVALID_FLOAT",
    "ERR_B64_ILLEGAL_LENGTH",
    "ERR_B64_ILLEGAL_CHAR",
    "ERR_B64_NONSENSICAL_PADDING",
    "ERR_RANGE",
    "ERR_CUSTOM",
    "ERR_NOT_CONVERTIBLE",
    "ERR_SINK_CONSUMED",
    "ERR_TYPE",
    "ERR_SYNTAX",
]
