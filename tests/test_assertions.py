"""Comparison primitives and the assertion methods built on them."""

import re

import pytest

from taptester.assertions import (
    ALIASES,
    deep_equal,
    matches_exception,
    strict_equal,
)
from taptester.testcase import Test


class Point:
    def __init__(self, x, y):
        self.x = x
        self.y = y


# ── Comparisons ───────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "a, b, expected",
    [
        (1, 1, True),
        ("a", "a", True),
        (None, None, True),
        (1, 1.0, False),
        (1, True, False),
        ("1", 1, False),
        ([1], [1], False),
    ],
)
def test_strict_equal(a, b, expected):
    assert strict_equal(a, b) is expected


def test_strict_equal_is_identity_for_objects():
    items = [1, 2]
    assert strict_equal(items, items)


@pytest.mark.parametrize(
    "a, b",
    [
        ({"a": [1, 2, {"b": None}]}, {"a": [1, 2, {"b": None}]}),
        ((1, "two", 3.0), (1, "two", 3.0)),
        ({1, 2, 3}, {3, 2, 1}),
        (Point(1, 2), Point(1, 2)),
        ([], []),
    ],
)
def test_deep_equal_matches_structures(a, b):
    assert deep_equal(a, b)
    assert deep_equal(b, a)
    assert deep_equal(a, a)


@pytest.mark.parametrize(
    "a, b",
    [
        ({"a": 1}, {"a": 1, "b": 2}),
        ([1, 2], [1, 2, 3]),
        ([1, 2], (1, 2)),
        ({"a": 1}, {"a": 1.0}),
        ([True], [1]),
        (Point(1, 2), Point(2, 1)),
        ({"a": [1]}, {"a": "1"}),
    ],
)
def test_deep_equal_strict_mismatches(a, b):
    assert not deep_equal(a, b)
    assert not deep_equal(b, a)


def test_deep_loose_equal_coerces_leaves_and_containers():
    assert deep_equal({"a": 1}, {"a": 1.0}, strict=False)
    assert deep_equal([True, 0], [1, False], strict=False)
    assert deep_equal([1, 2], (1, 2), strict=False)
    assert not deep_equal([1, 2], [1, 3], strict=False)


def test_deep_equal_terminates_on_cycles():
    a = {"name": "node"}
    a["self"] = a
    b = {"name": "node"}
    b["self"] = b
    assert deep_equal(a, b)

    c = [1]
    c.append(c)
    d = [2]
    d.append(d)
    assert not deep_equal(c, d)


def test_matches_exception():
    exc = ValueError("bad value 42")
    assert matches_exception(exc, None)
    assert matches_exception(exc, ValueError)
    assert matches_exception(exc, (KeyError, ValueError))
    assert matches_exception(exc, re.compile(r"value \d+"))
    assert matches_exception(exc, lambda e: "42" in str(e))
    assert not matches_exception(exc, KeyError)
    assert not matches_exception(exc, re.compile("missing"))
    with pytest.raises(TypeError):
        matches_exception(exc, 42)


def test_every_alias_is_the_primitive():
    for primitive, names in ALIASES.items():
        for name in names:
            assert getattr(Test, name) is getattr(Test, primitive), name


# ── Assertion methods ─────────────────────────────────────────────────────────

def _outcomes(harness, body):
    test = harness.test("assertions", body)
    harness.create_stream()
    harness.run()
    return [(record.ok, record.name, record.operator) for record in test.assertions]


def test_truthiness_assertions(harness):
    def body(t):
        t.ok(1)
        t.true([])
        t.assert_("text", "custom message")
        t.not_ok(0)
        t.false("x")
        t.notok(None)
        t.end()

    assert _outcomes(harness, body) == [
        (True, "should be truthy", "ok"),
        (False, "should be truthy", "ok"),
        (True, "custom message", "ok"),
        (True, "should be falsy", "notOk"),
        (False, "should be falsy", "notOk"),
        (True, "should be falsy", "notOk"),
    ]


def test_equality_assertions(harness):
    def body(t):
        t.equal(1, 1)
        t.is_("a", "a")
        t.strict_equals(1, 1.0)
        t.not_equal(1, 2)
        t.not_(1, 1)
        t.is_inequal([1], [1])
        t.end()

    assert [ok for ok, _, _ in _outcomes(harness, body)] == [True, True, False, True, False, True]


def test_deep_assertions(harness):
    def body(t):
        t.deep_equal({"a": [1]}, {"a": [1]})
        t.same([1], [1.0])
        t.not_deep_equal([1], [1.0])
        t.is_not_equivalent([1], [1])
        t.deep_loose_equal([1], [1.0])
        t.loose_equals([1], [2])
        t.not_deep_loose_equal([1], [2])
        t.not_loose_equal([1], (1,))
        t.end()

    assert [ok for ok, _, _ in _outcomes(harness, body)] == [
        True, False, True, False, True, False, True, False,
    ]


def test_throws_assertions(harness):
    def raise_value_error():
        raise ValueError("bad value")

    def body(t):
        t.throws(raise_value_error)
        t.throws(raise_value_error, ValueError, "class matches")
        t.throws(raise_value_error, re.compile("bad"))
        t.throws(raise_value_error, "message only")
        t.throws(raise_value_error, KeyError)
        t.throws(lambda: None)
        t.does_not_throw(lambda: None)
        t.does_not_throw(raise_value_error, "should be quiet")
        t.end()

    assert _outcomes(harness, body) == [
        (True, "should throw", "throws"),
        (True, "class matches", "throws"),
        (True, "should throw", "throws"),
        (True, "message only", "throws"),
        (False, "should throw", "throws"),
        (False, "should throw", "throws"),
        (True, "should not throw", "doesNotThrow"),
        (False, "should be quiet", "doesNotThrow"),
    ]


def test_error_assertions(harness):
    def body(t):
        t.error(None)
        t.if_error(ValueError("it broke"))
        t.iferror(ValueError("it broke"), "explicit message")
        t.if_err(0)
        t.end()

    assert _outcomes(harness, body) == [
        (True, "None", "error"),
        (False, "it broke", "error"),
        (False, "explicit message", "error"),
        (True, "0", "error"),
    ]


def test_pass_and_fail(harness):
    def body(t):
        t.pass_()
        t.fail("nope")
        t.end()

    assert _outcomes(harness, body) == [
        (True, "(unnamed assert)", "pass"),
        (False, "nope", "fail"),
    ]
