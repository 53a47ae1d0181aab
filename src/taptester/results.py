"""results.py - TAP emitter, global counters, and the output stream."""

import collections
import logging
import pprint
import sys
import traceback

from .errors import HarnessError


logger = logging.getLogger(__name__)

class _Unset:
    """Marks an assertion field that was never supplied."""

    def __repr__(self):
        return "UNSET"


UNSET = _Unset()

Assertion = collections.namedtuple(
    "Assertion",
    ["ok", "name", "operator", "actual", "expected", "skip", "at", "error"],
    defaults=[UNSET, UNSET, False, None, None],
)

kHEADER = "TAP version 13"
kINDENT = "  "


def render(value):
    """Stable, diffable text for a diagnostic value."""
    if value is UNSET:
        value = None
    return pprint.pformat(value, width=72, sort_dicts=False)


def _field(label, text):
    if "\n" in text:
        lines = [f"{kINDENT}{label.rstrip()} |-"]
        lines.extend(f"{kINDENT}  {line}" for line in text.splitlines())
        return lines
    return [f"{kINDENT}{label} {text}"]


def format_diagnostic(record):
    """Return the YAML block lines for a failing assertion."""
    lines = [f"{kINDENT}---", f"{kINDENT}operator: {record.operator}"]
    if record.expected is not UNSET or record.actual is not UNSET:
        lines.extend(_field("expected:", render(record.expected)))
        lines.extend(_field("actual:  ", render(record.actual)))
    if record.at:
        lines.append(f"{kINDENT}at: {record.at}")
    error = record.error
    if isinstance(error, BaseException) and error.__traceback__ is not None:
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        lines.extend(_field("stack:", stack.rstrip()))
    lines.append(f"{kINDENT}...")
    return lines


def _one_line(text):
    return " ".join(str(text).splitlines())


def _write_stdout(text):
    sys.stdout.write(text)


class ResultStream:
    """Buffered sink for TAP lines, or for row dicts in object mode.

    Items queue up until something reads them or a target is piped in;
    after pipe() every item is forwarded as it is written.
    """

    def __init__(self, object_mode=False):
        self.object_mode = object_mode
        self.closed = False
        self._buffer = collections.deque()
        self._targets = []

    def write(self, item):
        if self.closed:
            logger.warning("result stream closed, dropping output: %r", item)
            return
        if self._targets:
            for target in self._targets:
                _send(target, item)
        else:
            self._buffer.append(item)

    def pipe(self, target):
        """Forward buffered and future items to a file-like or callable."""
        self._targets.append(target)
        while self._buffer:
            _send(target, self._buffer.popleft())
        return target

    def read(self):
        items = list(self._buffer)
        self._buffer.clear()
        if self.object_mode:
            return items
        return "".join(items)

    def __iter__(self):
        while self._buffer:
            yield self._buffer.popleft()

    def close(self):
        self.closed = True


def _send(target, item):
    if hasattr(target, "write"):
        target.write(item)
    else:
        target(item)


class Results:
    """Numbers assertions across one harness run and writes them out.

    One instance per harness: the sequence counter and the pass/fail/skip
    totals are never shared between harnesses.
    """

    def __init__(self):
        self.count = 0
        self.pass_count = 0
        self.fail_count = 0
        self.skip_count = 0
        self.started = False
        self.closed = False
        self._stream = None
        self._next_test_id = 0

    # ── Sink ─────────────────────────────────────────────────────────────────

    def create_stream(self, object_mode=False):
        if self.started:
            raise HarnessError("create_stream() must be called before any output")
        self._stream = ResultStream(object_mode)
        return self._stream

    @property
    def stream(self):
        if self._stream is None:
            self._stream = ResultStream()
            self._stream.pipe(_write_stdout)
        return self._stream

    @property
    def object_mode(self):
        return self.stream.object_mode

    def _begin(self):
        if self.started:
            return
        self.started = True
        if not self.object_mode:
            self.stream.write(kHEADER + "\n")

    def _line(self, text):
        self._begin()
        self.stream.write(text + "\n")

    def _row(self, row):
        self._begin()
        self.stream.write(row)

    # ── Events ───────────────────────────────────────────────────────────────

    def test_start(self, test, skipped=False):
        test.id = self._next_test_id
        self._next_test_id += 1

        if self.object_mode:
            parent = test.parent
            self._row({
                "type": "test",
                "id": test.id,
                "name": test.name,
                "parent": parent.id if parent is not None else None,
                "skip": skipped,
            })
            return

        prefix = "SKIP " if skipped else ""
        self._line(f"# {kINDENT * test.depth}{prefix}{_one_line(test.name)}")

    def assertion(self, test, record):
        """Number one record, update totals, and emit it. Returns its number."""
        self.count += 1
        if record.ok:
            self.pass_count += 1
        else:
            self.fail_count += 1
        if record.skip:
            self.skip_count += 1

        if self.object_mode:
            self._row({
                "type": "assert",
                "id": self.count,
                "ok": record.ok,
                "name": record.name,
                "operator": record.operator,
                "actual": None if record.actual is UNSET else record.actual,
                "expected": None if record.expected is UNSET else record.expected,
                "skip": record.skip,
                "test": test.id,
            })
            return self.count

        status = "ok" if record.ok else "not ok"
        line = f"{status} {self.count} {_one_line(record.name)}"
        if record.skip:
            line += " # SKIP"
        self._line(line)
        if not record.ok:
            for diag_line in format_diagnostic(record):
                self._line(diag_line)
        return self.count

    def comment(self, test, message):
        lines = str(message).strip().splitlines() or [""]
        for line in lines:
            if self.object_mode:
                self._row({"type": "comment", "text": line, "test": test.id})
            else:
                self._line(f"# {line}".rstrip())

    def test_end(self, test):
        if self.object_mode and test.id is not None:
            self._row({"type": "end", "test": test.id})

    def close(self):
        """Write the plan footer and summary. Safe to call more than once."""
        if self.closed:
            return
        self._begin()
        self.closed = True

        if self.object_mode:
            self.stream.write({
                "type": "summary",
                "tests": self.count,
                "pass": self.pass_count,
                "fail": self.fail_count,
                "skip": self.skip_count,
                "ok": self.fail_count == 0,
            })
        else:
            lines = [
                "",
                f"1..{self.count}",
                f"# tests {self.count}",
                f"# pass  {self.pass_count}",
            ]
            if self.skip_count:
                lines.append(f"# skip  {self.skip_count}")
            lines.append(f"# fail  {self.fail_count}")
            lines.append("")
            lines.append("# ok" if self.fail_count == 0 else "# not ok")
            for line in lines:
                self.stream.write(line + "\n")

        self.stream.close()
        logger.debug(
            "results closed: %d tests, %d pass, %d fail",
            self.count, self.pass_count, self.fail_count,
        )
