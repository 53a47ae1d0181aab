"""harness.py - Test registration, serial scheduling, and the default harness."""

import asyncio
import atexit
import collections
import logging

from .errors import HarnessError
from .results import Results
from .testcase import DONE, Test, parse_test_args


logger = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"
FINISHED = "finished"
ABORTED = "aborted"

kIDLE_CHECK_S = 0.1


def _loop_is_idle(loop, drain_task):
    """True when no callback, timer, or task other than the drain is left.

    Only loops exposing the base event loop's ready and scheduled queues
    can be inspected; any other loop is reported as busy.
    """
    ready = getattr(loop, "_ready", None)
    scheduled = getattr(loop, "_scheduled", None)
    if ready is None or scheduled is None:
        return False
    if ready:
        return False
    if any(not handle.cancelled() for handle in scheduled):
        return False
    return all(task is drain_task for task in asyncio.all_tasks(loop))


class Harness:
    """A queue of top-level tests with its own emitter and counters.

    Tests run one at a time in registration order; the next one starts
    only when the current test and all of its subtests are done.
    """

    def __init__(self, timeout_ms=None):
        self.timeout_ms = timeout_ms   # Default per-test timeout (ms), None for none
        self.results = Results()
        self.tests = []                # Every registered top-level test, in order
        self.state = IDLE
        self.current = None            # Top-level test being drained
        self._queue = collections.deque()
        self._only = False
        self._finish_callbacks = []
        self._idle_handle = None

    # ── Registration ─────────────────────────────────────────────────────────

    def test(self, *args, **opts):
        """Register a test: (name, options, body), (name, body), (options, body) or (body)."""
        return self._register(args, opts)

    __call__ = test

    def only(self, *args, **opts):
        """Register an exclusive test; non-exclusive tests will not run."""
        self._only = True
        return self._register(args, opts, only=True)

    def skip(self, *args, **opts):
        opts["skip"] = True
        return self._register(args, opts)

    def _register(self, args, opts, only=False):
        if self.state in (FINISHED, ABORTED):
            raise HarnessError("cannot register tests on a harness that has finished")
        name, options, body = parse_test_args(args, opts)
        test = Test(self, name, body, only=only, **options)
        self.tests.append(test)
        self._queue.append(test)
        return test

    def on_finish(self, callback):
        """Call callback() once the queue has fully drained."""
        if self.state == FINISHED:
            callback()
            return
        self._finish_callbacks.append(callback)

    def create_stream(self, object_mode=False):
        """Take the output away from stdout and return it as a ResultStream."""
        return self.results.create_stream(object_mode)

    # ── Draining ─────────────────────────────────────────────────────────────

    async def drain(self):
        """Run every queued test to completion, then write the summary."""
        if self.state != IDLE:
            raise HarnessError(f"harness cannot run again (state: {self.state})")
        self.state = RUNNING

        loop = asyncio.get_running_loop()
        self._idle_handle = loop.call_later(
            kIDLE_CHECK_S, self._handle_when_loop_may_be_idle, loop, asyncio.current_task()
        )
        try:
            while self._queue:
                test = self._queue.popleft()
                if self._only and not test.only:
                    logger.debug("only-mode: not running %r", test.name)
                    test.state = DONE
                    continue
                self.current = test
                await test.run()
                self.current = None
        except asyncio.CancelledError:
            self._abort()
            raise
        finally:
            self._idle_handle.cancel()
            self._idle_handle = None

        self.results.close()
        self.state = FINISHED
        logger.debug("harness finished: %r", self.get_results())

        for callback in self._finish_callbacks:
            callback()
        return self.get_results()

    def run(self):
        """Drain the queue on a new event loop; returns get_results()."""
        return asyncio.run(self.drain())

    def _handle_when_loop_may_be_idle(self, loop, drain_task):
        """Fail the current test if nothing left on the loop can ever end it."""
        self._idle_handle = None
        if self.state != RUNNING:
            return
        if self.current is not None and _loop_is_idle(loop, drain_task):
            logger.error("test %r can never finish: nothing left to run", self.current.name)
            self.current._exit()
        self._idle_handle = loop.call_later(
            kIDLE_CHECK_S, self._handle_when_loop_may_be_idle, loop, drain_task
        )

    def _abort(self):
        """Fail whatever is still running and close the output."""
        if self.state != RUNNING:
            return
        unfinished = len(self._queue)
        if self.current is not None:
            self.current._exit()
            self.current = None
        self.results.close()
        self.state = ABORTED
        logger.error(
            "harness stopped before all tests finished (%d not started)", unfinished
        )

    def get_results(self):
        """Return the aggregate counts and verdict."""
        results = self.results
        return {
            "tests": results.count,
            "pass": results.pass_count,
            "fail": results.fail_count,
            "skip": results.skip_count,
            "ok": results.fail_count == 0,
        }


# ── Default harness ───────────────────────────────────────────────────────────

# Glanceable state
g = {
    "harness": None,   # Process-wide harness behind the module-level functions
}


def create_harness(timeout_ms=None):
    """Return a new harness with its own queue and counters."""
    return Harness(timeout_ms)


def get_harness():
    """Return the default harness, creating it on first use."""
    if g["harness"] is None:
        g["harness"] = Harness()
        atexit.register(_handle_when_process_exits)
    return g["harness"]


def _handle_when_process_exits():
    """Run a default harness nobody ran; complain about one left unfinished."""
    harness = g["harness"]
    if harness is None:
        return

    if harness.state == IDLE and harness.tests:
        harness.run()
        return

    if harness.state == RUNNING:
        harness._abort()

    if harness.state == ABORTED:
        raise HarnessError("process exited before all tests finished")


def test(*args, **opts):
    return get_harness().test(*args, **opts)


test.__test__ = False  # keep pytest from collecting this function


def only(*args, **opts):
    return get_harness().only(*args, **opts)


def skip(*args, **opts):
    return get_harness().skip(*args, **opts)


def on_finish(callback):
    get_harness().on_finish(callback)


def create_stream(object_mode=False):
    return get_harness().create_stream(object_mode)


def set_timeout(timeout_ms):
    get_harness().timeout_ms = timeout_ms


def run():
    return get_harness().run()


def get_results():
    return get_harness().get_results()
