"""
taptester

Minimal serial test harness that reports in TAP (Test Anything Protocol).

Public API intentionally small:
    - test
    - only
    - skip
    - on_finish
    - create_stream
    - create_harness
    - set_timeout
    - run
    - get_results
"""

import logging

__version__ = "0.1.0"


from .errors import HarnessError
from .harness import (
    Harness,
    create_harness,
    create_stream,
    get_harness,
    get_results,
    on_finish,
    only,
    run,
    set_timeout,
    skip,
    test,
)
from .results import ResultStream
from .testcase import Test

__all__ = [
    "Harness",
    "HarnessError",
    "ResultStream",
    "Test",
    "create_harness",
    "create_stream",
    "get_harness",
    "get_results",
    "on_finish",
    "only",
    "run",
    "set_timeout",
    "skip",
    "test",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
