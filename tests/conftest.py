"""Shared fixtures for the taptester pytest suite."""

import pytest

import taptester
from taptester import harness as harness_module


@pytest.fixture(autouse=True)
def _fresh_default_harness(monkeypatch):
    """Keep module-level calls from leaking a default harness between tests."""
    monkeypatch.setitem(harness_module.g, "harness", None)


@pytest.fixture
def harness():
    return taptester.create_harness()


@pytest.fixture
def stream(harness):
    return harness.create_stream()


def strip_volatile(text):
    """Drop the file/line markers and stack traces that vary by machine."""
    lines = []
    in_stack = False
    for line in text.splitlines():
        if in_stack and line.startswith("    "):
            continue
        in_stack = False
        if line.startswith("  at: "):
            continue
        if line == "  stack: |-":
            in_stack = True
            continue
        lines.append(line)
    return lines


@pytest.fixture
def run_tap(harness, stream):
    """Run the harness and return its TAP output as a list of stable lines."""

    def _run():
        harness.run()
        return strip_volatile(stream.read())

    return _run
