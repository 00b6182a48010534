"""omcodec command-line interface.

Usage:
    echo '{"kind":"OMI","integer":42}' | python3 -m omcodec convert --from json --to xml
    python3 -m omcodec convert --from xml --to display --input doc.xml
    python3 -m omcodec convert --from display --to json --pretty --omobj
    printf 'foo bar' | python3 -m omcodec b64 encode
    python3 -m omcodec version
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, List, Optional

from . import (
    Node,
    OMObject,
    OpenMathError,
    __version__,
    b64decode,
    b64encode,
    from_display,
    from_json,
    from_xml,
    to_display,
    to_json,
    to_xml,
)

FORMATS = ("json", "xml", "display")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="omcodec",
        description="omcodec: convert OpenMath objects between XML, JSON and display form",
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Log decoding steps to stderr")
    sub = parser.add_subparsers(dest="command")

    # ── convert ──
    conv_p = sub.add_parser("convert", help="Re-encode an OpenMath object")
    conv_p.add_argument("--from", dest="source", choices=FORMATS, required=True,
                        help="Input encoding")
    conv_p.add_argument("--to", dest="dest", choices=FORMATS, required=True,
                        help="Output encoding")
    conv_p.add_argument("--pretty", action="store_true",
                        help="Indent XML and JSON output")
    conv_p.add_argument("--omobj", action="store_true",
                        help="Wrap XML and JSON output in an OMOBJ envelope")
    conv_p.add_argument("--input", "-i", metavar="FILE",
                        help="Read from FILE instead of stdin")

    # ── b64 ──
    b64_p = sub.add_parser("b64", help="Base64 encode or decode raw bytes")
    b64_p.add_argument("direction", choices=("encode", "decode"))
    b64_p.add_argument("--input", "-i", metavar="FILE",
                       help="Read from FILE instead of stdin")

    # ── version ──
    sub.add_parser("version", help="Print version and exit")

    return parser


def _read_input(filepath: Optional[str]) -> bytes:
    """Read bytes from a file or stdin."""
    if filepath:
        with open(filepath, "rb") as f:
            return f.read()
    if sys.stdin.isatty():
        print("omcodec: reading from stdin (Ctrl-D to end)...", file=sys.stderr)
    return sys.stdin.buffer.read()


def _decode(raw: bytes, source: str) -> Any:
    if source == "json":
        return from_json(raw, Node)
    if source == "xml":
        return from_xml(raw, Node)
    return from_display(raw.decode("utf-8"), Node)


def _cmd_convert(args: argparse.Namespace) -> None:
    obj = _decode(_read_input(args.input), args.source)
    if args.omobj and args.dest != "display":
        obj = OMObject(obj)
    if args.dest == "json":
        print(to_json(obj, indent=2 if args.pretty else None))
    elif args.dest == "xml":
        print(to_xml(obj, pretty=args.pretty))
    else:
        print(to_display(obj))


def _cmd_b64(args: argparse.Namespace) -> None:
    raw = _read_input(args.input)
    if args.direction == "encode":
        print(b64encode(raw))
    else:
        # Line breaks are not part of the alphabet; allow wrapped input.
        text = "".join(raw.decode("ascii", errors="replace").split())
        sys.stdout.buffer.write(b64decode(text))
        sys.stdout.buffer.flush()


def main(argv: Optional[List[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr,
                            format="%(name)s: %(message)s")

    if args.command == "version":
        print(f"omcodec {__version__}")
        return

    try:
        if args.command == "convert":
            _cmd_convert(args)
        elif args.command == "b64":
            _cmd_b64(args)
    except OpenMathError as e:
        print(f"omcodec: error [{e.code}]: {e}", file=sys.stderr)
        sys.exit(2)
    except UnicodeDecodeError as e:
        print(f"omcodec: input is not valid UTF-8: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
