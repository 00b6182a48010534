"""OpenMath codec error codes, exception class, and error categories.

Every failure in this package is fatal for the operation that raised it:
drivers stop at the first error and report it together with whatever
position the underlying source provides (byte offset for XML and base64,
a JSON-pointer path for JSON trees, a character offset for the display
form).
"""

from __future__ import annotations

from typing import Dict, Optional, Union

# ── Error codes ──────────────────────────────────────────────
# Grep-friendly; the conformance vectors compare against these strings.

# structural
ERR_MISSING_FIELD: str = "ERR_MISSING_FIELD"      # mandatory field/attribute absent
ERR_DUPLICATE_FIELD: str = "ERR_DUPLICATE_FIELD"  # two mutually-exclusive fields
ERR_UNKNOWN_KIND: str = "ERR_UNKNOWN_KIND"        # unrecognised kind / element
ERR_EMPTY_SEQUENCE: str = "ERR_EMPTY_SEQUENCE"    # mandatory sequence is empty
ERR_UNEXPECTED: str = "ERR_UNEXPECTED"            # misplaced element or wrong field type
ERR_UNSUPPORTED: str = "ERR_UNSUPPORTED"          # OMR, hexadecimal forms
ERR_LIMIT_DEPTH: str = "ERR_LIMIT_DEPTH"          # exceeds MAX_DEPTH

# lexical
ERR_INVALID_INTEGER: str = "ERR_INVALID_INTEGER"
ERR_INVALID_FLOAT: str = "ERR_INVALID_FLOAT"
ERR_B64_ILLEGAL_LENGTH: str = "ERR_B64_ILLEGAL_LENGTH"
ERR_B64_ILLEGAL_CHAR: str = "ERR_B64_ILLEGAL_CHAR"
ERR_B64_NONSENSICAL_PADDING: str = "ERR_B64_NONSENSICAL_PADDING"

# range
ERR_RANGE: str = "ERR_RANGE"                      # number outside the representable range

# domain
ERR_CUSTOM: str = "ERR_CUSTOM"                    # user-injected error
ERR_NOT_CONVERTIBLE: str = "ERR_NOT_CONVERTIBLE"  # root still pending
ERR_SINK_CONSUMED: str = "ERR_SINK_CONSUMED"      # single-use sink reused
ERR_TYPE: str = "ERR_TYPE"                        # no OpenMath representation

# format
ERR_SYNTAX: str = "ERR_SYNTAX"                    # malformed JSON/XML/display text

CATEGORY: Dict[str, str] = {
    ERR_MISSING_FIELD: "structural",
    ERR_DUPLICATE_FIELD: "structural",
    ERR_UNKNOWN_KIND: "structural",
    ERR_EMPTY_SEQUENCE: "structural",
    ERR_UNEXPECTED: "structural",
    ERR_UNSUPPORTED: "structural",
    ERR_LIMIT_DEPTH: "structural",
    ERR_INVALID_INTEGER: "lexical",
    ERR_INVALID_FLOAT: "lexical",
    ERR_B64_ILLEGAL_LENGTH: "lexical",
    ERR_B64_ILLEGAL_CHAR: "lexical",
    ERR_B64_NONSENSICAL_PADDING: "lexical",
    ERR_RANGE: "range",
    ERR_CUSTOM: "domain",
    ERR_NOT_CONVERTIBLE: "domain",
    ERR_SINK_CONSUMED: "domain",
    ERR_TYPE: "domain",
    ERR_SYNTAX: "format",
}


class OpenMathError(Exception):
    """Exception for OpenMath encoding and decoding errors.

    `.code` is one of the ERR_* strings above.  `.position` is an int
    offset, a JSON-pointer path string, or None when the source gives
    no location.
    """

    def __init__(self, code: str, msg: str = "",
                 position: Optional[Union[int, str]] = None) -> None:
        super().__init__(msg or code)
        self.code = code
        self.position = position

    @property
    def category(self) -> str:
        return CATEGORY.get(self.code, "domain")

    def at(self, position: Union[int, str]) -> "OpenMathError":
        """Attach a position unless a more precise one is already set."""
        if self.position is None:
            self.position = position
        return self

    def __str__(self) -> str:
        msg = super().__str__()
        if self.position is None:
            return msg
        if isinstance(self.position, int):
            return "{} (at offset {})".format(msg, self.position)
        return "{} (at {})".format(msg, self.position or "/")


def custom(message: str) -> OpenMathError:
    """Build a domain error for user code inside as_openmath/from_openmath."""
    return OpenMathError(ERR_CUSTOM, message)
