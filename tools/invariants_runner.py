#!/usr/bin/env python3
# tools/invariants_runner.py
#
# Codec invariants over random OpenMath trees.
#
# This runner:
# - generates random model trees (all object kinds, cdbase declarations, OMFOREIGN)
# - checks encode stability and decode(encode(x)) == x for XML, JSON and display form
# - checks that the three encodings agree with each other after a round trip
# - checks streaming base64 against the standard library codec
#
# Exit code:
#   0 -> all checks passed
#   1 -> invariant violation

import os, sys, base64, random
from typing import Any, Dict, List

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, ROOT)

from omcodec import (
    DEFAULT_CDBASE,
    OMA, OMATTR, OMB, OMBIND, OME, OMF, OMFOREIGN, OMI, OMS, OMSTR, OMV,
    Integer,
    OpenMathError,
    b64decode, b64encode,
    from_display, from_json, from_xml,
    to_display, to_json, to_xml,
)

SEED = int(os.environ.get("OMCODEC_SEED", "1337"))
TRIALS = int(os.environ.get("OMCODEC_TRIALS", "2000"))
MAX_GEN_DEPTH = int(os.environ.get("OMCODEC_GEN_MAX_DEPTH", "5"))
MAX_ARGS = int(os.environ.get("OMCODEC_GEN_MAX_ARGS", "4"))
MAX_STR = int(os.environ.get("OMCODEC_GEN_MAX_STR", "24"))
MAX_BYTES = int(os.environ.get("OMCODEC_GEN_MAX_BYTES", "32"))

CDBASES = [None, None, None, DEFAULT_CDBASE, "http://example.org", "http://example.org/cd"]
NAMES = ["x", "y", "z", "plus", "times", "lambda", "point", "type", "int", "f1",
         "f(x)", "a b", "x,y", "c#d", "p/q"]

random.seed(SEED)

def rand_text() -> str:
    # XML 1.0 cannot carry most control characters.
    out = []
    for _ in range(random.randint(0, MAX_STR)):
        r = random.random()
        if r < 0.70:
            out.append(chr(random.randint(0x20, 0x7E)))
        elif r < 0.80:
            out.append(random.choice("\r\n\t<>&\"'"))
        elif r < 0.95:
            out.append(chr(random.randint(0xA0, 0xD7FF)))
        else:
            out.append(chr(random.randint(0x10000, 0x10FFFF)))
    return "".join(out)

def rand_bytes() -> bytes:
    return bytes(random.getrandbits(8) for _ in range(random.randint(0, MAX_BYTES)))

def rand_integer() -> Integer:
    r = random.random()
    if r < 0.6:
        return Integer(random.randint(-1000, 1000))
    if r < 0.8:
        return Integer(random.randint(-(2**127), 2**127 - 1))
    digits = str(random.randint(1, 9)) + "".join(
        random.choice("0123456789") for _ in range(random.randint(39, 80)))
    return Integer.parse(random.choice(["", "-"]) + digits)

def rand_float() -> float:
    r = random.random()
    if r < 0.05:
        return random.choice([float("inf"), float("-inf"), float("nan"), -0.0])
    if r < 0.5:
        return float(random.randint(-100, 100)) / 8
    return random.uniform(-1e300, 1e300) * random.random() ** 40

def rand_symbol() -> OMS:
    return OMS(random.choice(NAMES) + "1", random.choice(NAMES), random.choice(CDBASES))

def gen_leaf() -> Any:
    r = random.random()
    if r < 0.2:
        return OMI(rand_integer())
    if r < 0.35:
        return OMF(rand_float())
    if r < 0.5:
        return OMSTR(rand_text())
    if r < 0.6:
        return OMB(rand_bytes())
    if r < 0.75:
        return OMV(random.choice(NAMES))
    return rand_symbol()

def gen_attrs(depth: int) -> List[Any]:
    pairs = []
    for _ in range(random.randint(1, 3)):
        value = OMFOREIGN(rand_text(), random.choice([None, "text/plain"])) \
            if random.random() < 0.15 else gen_object(depth + 1)
        pairs.append((rand_symbol(), value))
    return pairs

def gen_object(depth: int) -> Any:
    if depth >= MAX_GEN_DEPTH or random.random() < 0.4:
        return gen_leaf()
    cdbase = random.choice(CDBASES)
    n = random.randint(0, MAX_ARGS)
    r = random.random()
    if r < 0.4:
        return OMA(gen_object(depth + 1), [gen_object(depth + 1) for _ in range(n)], cdbase)
    if r < 0.6:
        variables = []
        for _ in range(n):
            name = random.choice(NAMES)
            variables.append((name, gen_attrs(depth)) if random.random() < 0.2 else name)
        return OMBIND(gen_object(depth + 1), variables, gen_object(depth + 1), cdbase)
    if r < 0.8:
        args = [OMFOREIGN(rand_text()) if random.random() < 0.2 else gen_object(depth + 1)
                for _ in range(n)]
        return OME(rand_symbol(), args, cdbase)
    return OMATTR(gen_object(depth + 1), gen_attrs(depth), cdbase)

CODECS: Dict[str, Any] = {
    "xml": (to_xml, from_xml),
    "json": (to_json, from_json),
    "display": (to_display, from_display),
}

def fail(label: str, tree: Any, **context: Any) -> int:
    print("INVARIANT FAIL:", label)
    print("TREE:", repr(tree)[:2000])
    for k, v in context.items():
        print("{}:".format(k.upper()), repr(v)[:2000])
    return 1

def check_tree(tree: Any) -> int:
    decoded: Dict[str, Any] = {}
    for name, (encode, decode) in CODECS.items():
        # (1) Encoding stability
        text1 = encode(tree)
        text2 = encode(tree)
        if text1 != text2:
            return fail("{} encode stability".format(name), tree, first=text1, second=text2)

        # (2) decode(encode(x)) == x
        try:
            back = decode(text1)
        except OpenMathError as e:
            return fail("{} decode error {}".format(name, e.code), tree, text=text1, error=str(e))
        if back != tree:
            return fail("{} round trip".format(name), tree, text=text1, back=back)

        # (3) Re-encoding a decoded tree is a fixed point
        again = encode(back)
        if again != text1:
            return fail("{} re-encode".format(name), tree, first=text1, again=again)
        decoded[name] = back

    # (4) All encodings agree after a round trip
    shown = {name: to_display(v) for name, v in decoded.items()}
    if len(set(shown.values())) != 1:
        return fail("cross-format agreement", tree, displays=shown)
    return 0

def check_base64() -> int:
    data = rand_bytes()
    ours = b64encode(data)
    ref = base64.b64encode(data).decode("ascii")
    if ours != ref:
        print("INVARIANT FAIL: base64 encode", data, ours, ref)
        return 1
    if b64decode(ours) != data:
        print("INVARIANT FAIL: base64 decode", data, ours)
        return 1
    return 0

def main() -> int:
    for t in range(TRIALS):
        if check_tree(gen_object(0)) or check_base64():
            print("trial:", t, "seed:", SEED)
            return 1
        if (t + 1) % 500 == 0:
            print("...", t + 1, "trials ok")
    print("INVARIANTS OK: {} trials (seed {})".format(TRIALS, SEED))
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
