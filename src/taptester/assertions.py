"""assertions.py - Value comparisons and the assertion alias table.

Every public assertion on a Test is one of a dozen primitives; the many
spellings tape users know are plain aliases installed from ALIASES.
"""

import re
from collections.abc import Mapping, Sequence, Set


# Primitive method name -> alias names bound to the same method
ALIASES = {
    "ok": ("true", "assert_"),
    "not_ok": ("false", "notok"),
    "error": ("if_error", "if_err", "iferror"),
    "equal": ("equals", "is_equal", "is_", "strict_equal", "strict_equals"),
    "not_equal": (
        "not_equals",
        "not_strict_equal",
        "not_strict_equals",
        "is_not_equal",
        "is_not",
        "not_",
        "does_not_equal",
        "is_inequal",
    ),
    "deep_equal": ("deep_equals", "is_equivalent", "same"),
    "not_deep_equal": (
        "not_equivalent",
        "not_deeply",
        "not_same",
        "is_not_deep_equal",
        "is_not_deeply",
        "is_not_equivalent",
        "is_inequivalent",
    ),
    "deep_loose_equal": ("loose_equal", "loose_equals"),
    "not_deep_loose_equal": ("not_loose_equal", "not_loose_equals"),
}

kUNNAMED = "(unnamed assert)"

DEFAULT_MESSAGES = {
    "ok": "should be truthy",
    "not_ok": "should be falsy",
    "equal": "should be equal",
    "not_equal": "should not be equal",
    "deep_equal": "should be equivalent",
    "not_deep_equal": "should not be equivalent",
    "deep_loose_equal": "should be equivalent",
    "not_deep_loose_equal": "should not be equivalent",
    "throws": "should throw",
    "does_not_throw": "should not throw",
}

_SCALARS = (type(None), bool, int, float, complex, str, bytes)
_SEQUENCES = (list, tuple)


def install_aliases(cls):
    """Bind every alias in ALIASES to its primitive method on cls."""
    for primitive, names in ALIASES.items():
        method = getattr(cls, primitive)
        for name in names:
            setattr(cls, name, method)
    return cls


# ── Equality ──────────────────────────────────────────────────────────────────

def strict_equal(a, b):
    """Equality without coercion.

    Scalars must share a type and compare equal; anything else must be the
    very same object.
    """
    if isinstance(a, _SCALARS) or isinstance(b, _SCALARS):
        return type(a) is type(b) and a == b
    return a is b


def loose_equal(a, b):
    return a == b


def deep_equal(a, b, strict=True):
    """Structural comparison of a and b.

    Mappings, lists/tuples, sets and plain objects are walked recursively.
    With strict=True containers must have identical types and leaves use
    strict_equal; otherwise any two mappings (or sequences) are comparable
    and leaves use ==. Pairs already on the walk compare equal, so cyclic
    structures terminate.
    """
    return _deep_equal(a, b, strict, set())


def _deep_equal(a, b, strict, seen):
    if a is b:
        return True

    if isinstance(a, _SCALARS) or isinstance(b, _SCALARS):
        return strict_equal(a, b) if strict else loose_equal(a, b)

    if strict and type(a) is not type(b):
        return False

    pair = (id(a), id(b))
    if pair in seen:
        return True
    seen.add(pair)

    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if set(a.keys()) != set(b.keys()):
            return False
        return all(_deep_equal(a[key], b[key], strict, seen) for key in a)

    if isinstance(a, _SEQUENCES) and isinstance(b, _SEQUENCES):
        if len(a) != len(b):
            return False
        return all(_deep_equal(x, y, strict, seen) for x, y in zip(a, b))

    if isinstance(a, Set) and isinstance(b, Set):
        return a == b

    if isinstance(a, (Mapping, Sequence, Set)) or isinstance(b, (Mapping, Sequence, Set)):
        return False

    if hasattr(a, "__dict__") and hasattr(b, "__dict__"):
        if type(a) is not type(b):
            return False
        return _deep_equal(vars(a), vars(b), strict, seen)

    if strict:
        return type(a) is type(b) and a == b
    return a == b


# ── Exceptions ────────────────────────────────────────────────────────────────

def matches_exception(exc, expected):
    """Return True if exc satisfies an expected pattern, class, or validator."""
    if expected is None:
        return True
    if isinstance(expected, re.Pattern):
        return expected.search(str(exc)) is not None
    if isinstance(expected, type) and issubclass(expected, BaseException):
        return isinstance(exc, expected)
    if isinstance(expected, tuple):
        return isinstance(exc, expected)
    if callable(expected):
        return bool(expected(exc))
    raise TypeError(f"unsupported expectation for throws(): {expected!r}")
