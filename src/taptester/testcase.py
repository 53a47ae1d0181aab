"""testcase.py - One test unit: lifecycle, assertions, subtests, timeout.

A Test moves through pending -> running -> completing -> done. Its own
completion is a single-assignment future settled by whichever trigger fires
first (plan fulfilled, end(), timeout, or an exception in the body). Once
that has happened the unit runs its subtests one at a time, and only after
the last of them is done does the unit itself count as done.
"""

import asyncio
import collections
import inspect
import logging
import os
import traceback
import weakref
from collections.abc import Mapping

from .assertions import (
    DEFAULT_MESSAGES,
    deep_equal,
    install_aliases,
    kUNNAMED,
    matches_exception,
    strict_equal,
)
from .errors import HarnessError
from .results import UNSET, Assertion


logger = logging.getLogger(__name__)

kPACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
kOPTIONS = ("skip", "timeout")
kANONYMOUS = "(anonymous)"

PENDING = "pending"
RUNNING = "running"
COMPLETING = "completing"
DONE = "done"


def parse_test_args(args, opts):
    """Sort (name, options, body) given in any supported order.

    Accepts (name, options, body), (name, body), (options, body) and (body);
    keyword options are merged over the options mapping.
    """
    name = None
    options = {}
    body = None

    if len(args) > 3:
        raise TypeError(f"test() takes at most 3 positional arguments ({len(args)} given)")

    for arg in args:
        if isinstance(arg, str) and name is None:
            name = arg
        elif isinstance(arg, Mapping) and not options:
            options = dict(arg)
        elif callable(arg) and body is None:
            body = arg
        else:
            raise TypeError(f"unexpected test() argument: {arg!r}")

    options.update(opts)
    unknown = sorted(set(options) - set(kOPTIONS))
    if unknown:
        raise TypeError(f"unknown test option(s): {', '.join(unknown)}")

    if name is None:
        name = getattr(body, "__name__", None)
        if not name or name == "<lambda>":
            name = kANONYMOUS

    return name, options, body


def _caller_location():
    """Describe the innermost stack frame outside this package."""
    for frame in reversed(traceback.extract_stack()):
        if not os.path.abspath(frame.filename).startswith(kPACKAGE_DIR + os.sep):
            return f"{frame.name} ({frame.filename}:{frame.lineno})"
    return None


def _error_location(exc):
    frames = traceback.extract_tb(exc.__traceback__)
    if not frames:
        return None
    frame = frames[-1]
    return f"{frame.name} ({frame.filename}:{frame.lineno})"


def _settle(future, value):
    if future is None or future.done() or future.get_loop().is_closed():
        return
    future.set_result(value)


@install_aliases
class Test:
    """A single test or subtest, handed to its body as ``t``."""

    __test__ = False  # keep pytest from collecting this class

    def __init__(self, harness, name, body=None, skip=False, timeout=None,
                 parent=None, only=False):
        self.name = name
        self.only = only
        self.id = None
        self.state = PENDING
        self.assert_count = 0
        self.assertions = []
        self.children = []

        self._harness = harness
        self._results = harness.results
        self._body = body
        self._skip = bool(skip) or body is None
        self._timeout = timeout if timeout is not None else harness.timeout_ms
        self._parent = weakref.ref(parent) if parent is not None else None
        self._progeny = collections.deque()  # spawned children not yet started
        self._plan = None
        self._timer = None
        self._task = None
        self._ended = None  # own completion; result is the trigger name
        self._done = None   # this unit and every descendant finished

    def __repr__(self):
        return f"<Test {self.name!r} {self.state}>"

    # ── Introspection ────────────────────────────────────────────────────────

    @property
    def parent(self):
        return self._parent() if self._parent is not None else None

    @property
    def depth(self):
        depth = 0
        parent = self.parent
        while parent is not None:
            depth += 1
            parent = parent.parent
        return depth

    @property
    def pending_count(self):
        return sum(1 for child in self.children if child.state != DONE)

    @property
    def ended(self):
        """True once a completion trigger has fired."""
        if self.state == DONE:
            return True
        return self.end_reason is not None

    @property
    def end_reason(self):
        if self._ended is None or not self._ended.done() or self._ended.cancelled():
            return None
        return self._ended.result()

    # ── Run ──────────────────────────────────────────────────────────────────

    async def run(self):
        """Run the body, then each subtest in spawn order, until done."""
        loop = asyncio.get_running_loop()
        self._ended = loop.create_future()
        self._done = loop.create_future()
        self.state = RUNNING

        parent = self.parent
        if parent is not None:
            parent.assert_count += 1

        if self._skip:
            logger.debug("skipping test %r", self.name)
            self._results.test_start(self, skipped=True)
            self._complete("skip")
        else:
            logger.debug("starting test %r", self.name)
            self._results.test_start(self)
            if self._timeout is not None:
                self.timeout_after(self._timeout)
            self._invoke_body()

        await self._ended
        if not self._done.done():
            self.state = COMPLETING

        while self._progeny and not self._done.done():
            child = self._progeny.popleft()
            await child.run()

        self._finish()

    def _invoke_body(self):
        try:
            ret = self._body(self)
        except Exception as exc:
            self._fail_with_exception(exc)
            return

        if inspect.isawaitable(ret):
            self._task = asyncio.ensure_future(ret)
            self._task.add_done_callback(self._on_body_done)
        else:
            self._after_body(implicit_end=False)

    def _on_body_done(self, task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._fail_with_exception(exc)
        else:
            self._after_body(implicit_end=True)

    def _after_body(self, implicit_end):
        """Settle completion that only becomes knowable once the body returns."""
        if self.ended:
            return
        if self._plan is not None:
            self._check_plan()
        elif self._progeny or implicit_end:
            self._complete("implicit")

    def _fail_with_exception(self, exc):
        self._record(
            False,
            str(exc) or type(exc).__name__,
            "error",
            actual=exc,
            error=exc,
            at=_error_location(exc),
        )
        self._complete("error")

    def _complete(self, reason):
        if self._ended is None or self._ended.done():
            return False
        self._ended.set_result(reason)
        logger.debug("test %r ended (%s)", self.name, reason)
        return True

    def _finish(self):
        if self.state == DONE:
            return
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.state = DONE
        _settle(self._done, None)
        self._results.test_end(self)
        logger.debug("test %r done: %d assertions", self.name, self.assert_count)

    def _force_done(self, reason):
        """Finish this unit and every descendant, whatever they are doing."""
        for child in self.children:
            if child.state != DONE:
                child._force_done(reason)
        self._progeny.clear()
        _settle(self._ended, reason)
        self._finish()

    def _exit(self):
        """Fail every unit still running its body and finish the subtree."""
        for child in self.children:
            if child.state in (RUNNING, COMPLETING):
                child._exit()
        if self.state == RUNNING and not self.ended:
            self._record(False, f"test exited without ending: {self.name}", "fail", locate=False)
        self._force_done("exit")

    # ── Lifecycle API ────────────────────────────────────────────────────────

    def plan(self, n):
        """Declare that n assertions (subtests included) will run."""
        if isinstance(n, bool) or not isinstance(n, int) or n < 0:
            raise TypeError(f"plan() expects a non-negative integer, got {n!r}")

        if self.ended:
            self._record(False, ".plan() called after test ended", "fail")
        elif self._plan is not None:
            self._record(False, "plan() called twice", "fail", actual=n, expected=self._plan)
        elif self.assert_count or self._progeny:
            self._record(False, "plan() called after assertions", "fail")
        else:
            self._plan = n

    def end(self, err=None):
        """Declare the end of the test; a truthy err fails it first."""
        if self.state == PENDING:
            raise HarnessError(f"end() called on test {self.name!r} before it started")
        if not self.ended and err:
            self.error(err)

        if self.ended:
            if self.end_reason == "end":
                self._record(False, ".end() called twice", "fail")
            else:
                self._record(False, ".end() called after test ended", "fail")
            return

        if self._plan is not None and self._pending_asserts() > 0:
            self._record(
                False,
                "plan != count",
                "fail",
                actual=self.assert_count,
                expected=self._plan,
            )
        self._complete("end")

    def timeout_after(self, ms):
        """Fail and finish the test if it is not done within ms milliseconds."""
        if self.state == PENDING:
            self._timeout = ms
            return
        if self.state == DONE:
            return
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(ms / 1000, self._handle_when_test_times_out, ms)

    def _handle_when_test_times_out(self, ms):
        self._timer = None
        if self.state == DONE:
            return
        logger.debug("test %r timed out after %sms", self.name, ms)
        self._record(False, f"test timed out after {ms}ms", "fail", locate=False)
        self._force_done("timeout")

    def test(self, *args, **opts):
        """Spawn a subtest; it runs after this test's own completion."""
        name, options, body = parse_test_args(args, opts)
        child = Test(self._harness, name, body, parent=self, **options)

        if self.state == DONE:
            self._record(False, f"subtest {name!r} created after test ended", "fail")
            return child

        if self.end_reason == "plan":
            self._record(
                False,
                "plan != count",
                "fail",
                actual=self.assert_count + len(self._progeny) + 1,
                expected=self._plan,
            )

        self.children.append(child)
        self._progeny.append(child)
        if self._plan is not None and not self.ended:
            asyncio.get_running_loop().call_soon(self._check_plan)
        return child

    def comment(self, message):
        self._results.comment(self, message)

    # ── Recording ────────────────────────────────────────────────────────────

    def _pending_asserts(self):
        return self._plan - (self.assert_count + len(self._progeny))

    def _check_plan(self):
        if self.ended or self._plan is None:
            return
        pending = self._pending_asserts()
        if pending < 0:
            self._record(
                False,
                "plan != count",
                "fail",
                actual=self._plan - pending,
                expected=self._plan,
            )
        if pending <= 0:
            self._complete("plan")

    def _record(self, ok, name, operator, actual=UNSET, expected=UNSET,
                skip=False, error=None, at=None, locate=True):
        if not ok and at is None and locate:
            at = _caller_location()
        record = Assertion(
            ok=bool(ok),
            name=name,
            operator=operator,
            actual=actual,
            expected=expected,
            skip=skip,
            at=at,
            error=error,
        )
        self.assert_count += 1
        self.assertions.append(record)
        self._results.assertion(self, record)
        return record

    def _assert(self, ok, name, operator, actual=UNSET, expected=UNSET,
                skip=False, error=None):
        """Record one assertion outcome; the base of every public assertion."""
        if self.ended:
            if self.end_reason == "plan":
                self._record(
                    False,
                    "plan != count",
                    "fail",
                    actual=self.assert_count + 1,
                    expected=self._plan,
                )
            elif self.end_reason == "end":
                self._record(False, f".end() already called: {name}", operator, actual, expected)
            else:
                self._record(False, f"assertion after test ended: {name}", operator, actual, expected)
            return

        self._record(ok, name, operator, actual, expected, skip=skip, error=error)
        if self._plan is not None and self._pending_asserts() <= 0:
            self._complete("plan")

    # ── Assertions ───────────────────────────────────────────────────────────

    def pass_(self, msg=None):
        self._assert(True, msg if msg is not None else kUNNAMED, "pass")

    def fail(self, msg=None):
        self._assert(False, msg if msg is not None else kUNNAMED, "fail")

    def skip(self, msg=None):
        self._assert(True, msg if msg is not None else kUNNAMED, "skip", skip=True)

    def ok(self, value, msg=None):
        self._assert(bool(value), _message(msg, "ok"), "ok", actual=value, expected=True)

    def not_ok(self, value, msg=None):
        self._assert(not value, _message(msg, "not_ok"), "notOk", actual=value, expected=False)

    def error(self, err, msg=None):
        """Pass when err is falsy; on failure the message defaults to str(err)."""
        self._assert(
            not err,
            msg if msg is not None else str(err),
            "error",
            actual=err,
            expected=None,
            error=err if isinstance(err, BaseException) else None,
        )

    def equal(self, actual, expected, msg=None):
        ok = strict_equal(actual, expected)
        self._assert(ok, _message(msg, "equal"), "equal", actual, expected)

    def not_equal(self, actual, expected, msg=None):
        ok = not strict_equal(actual, expected)
        self._assert(ok, _message(msg, "not_equal"), "notEqual", actual, expected)

    def deep_equal(self, actual, expected, msg=None):
        ok = deep_equal(actual, expected, strict=True)
        self._assert(ok, _message(msg, "deep_equal"), "deepEqual", actual, expected)

    def not_deep_equal(self, actual, expected, msg=None):
        ok = not deep_equal(actual, expected, strict=True)
        self._assert(ok, _message(msg, "not_deep_equal"), "notDeepEqual", actual, expected)

    def deep_loose_equal(self, actual, expected, msg=None):
        ok = deep_equal(actual, expected, strict=False)
        self._assert(ok, _message(msg, "deep_loose_equal"), "deepLooseEqual", actual, expected)

    def not_deep_loose_equal(self, actual, expected, msg=None):
        ok = not deep_equal(actual, expected, strict=False)
        self._assert(
            ok, _message(msg, "not_deep_loose_equal"), "notDeepLooseEqual", actual, expected
        )

    def throws(self, fn, expected=None, msg=None):
        """Pass when fn() raises, and the exception satisfies expected if given.

        expected may be an exception class (or tuple of them), a compiled
        regular expression searched in str(exc), or a callable validator.
        A plain string in its place is taken as the message.
        """
        if isinstance(expected, str):
            msg, expected = expected, None
        caught = None
        try:
            fn()
        except Exception as exc:
            caught = exc
        ok = caught is not None and matches_exception(caught, expected)
        self._assert(
            ok,
            _message(msg, "throws"),
            "throws",
            actual=caught,
            expected=expected,
            error=None if ok else caught,
        )

    def does_not_throw(self, fn, expected=None, msg=None):
        if isinstance(expected, str):
            msg, expected = expected, None
        caught = None
        try:
            fn()
        except Exception as exc:
            caught = exc
        self._assert(
            caught is None,
            _message(msg, "does_not_throw"),
            "doesNotThrow",
            actual=caught,
            expected=expected,
            error=caught,
        )


def _message(msg, primitive):
    return msg if msg is not None else DEFAULT_MESSAGES[primitive]
