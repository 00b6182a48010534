"""OpenMath constants: default cdbase, namespace, kind tags, wire field names.

References: OpenMath 2.0 §2.1.4 (cdbase), §3.1 (XML encoding),
§3.2 (JSON encoding).
"""

from __future__ import annotations

__openmath_version__ = "2.0"

# Effective cdbase at the root of every object unless one is declared.
DEFAULT_CDBASE: str = "http://www.openmath.org/cd"

# Namespace of the XML encoding, emitted on OMOBJ when requested.
XML_NAMESPACE: str = "http://www.openmath.org/OpenMath"

OPENMATH_VERSION: str = "2.0"

# ── Compact integer range ────────────────────────────────────
# Python ints are unbounded, so the compact/big split is a range check.
I128_MIN: int = -(2**127)
I128_MAX: int = 2**127 - 1

# ── Kind names (wire spelling) ───────────────────────────────
KIND_OMI: str = "OMI"
KIND_OMF: str = "OMF"
KIND_OMSTR: str = "OMSTR"
KIND_OMB: str = "OMB"
KIND_OMV: str = "OMV"
KIND_OMS: str = "OMS"
KIND_OMA: str = "OMA"
KIND_OMBIND: str = "OMBIND"
KIND_OME: str = "OME"
KIND_OMATTR: str = "OMATTR"
KIND_OMFOREIGN: str = "OMFOREIGN"
KIND_OMR: str = "OMR"
KIND_OMOBJ: str = "OMOBJ"

# XML-only wrapper elements.
TAG_OMBVAR: str = "OMBVAR"
TAG_OMATP: str = "OMATP"

# ── Float spellings for non-finite values (XML Schema double) ─
FLOAT_INF: str = "INF"
FLOAT_NEG_INF: str = "-INF"
FLOAT_NAN: str = "NaN"

# ── Limits ───────────────────────────────────────────────────
# Drivers recurse once per nesting level; keep well under the
# interpreter's recursion limit.
MAX_DEPTH: int = 200
