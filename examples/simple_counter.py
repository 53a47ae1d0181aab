"""Simple example: test a counter with taptester."""

import asyncio

import taptester


# Application state
app = {
    "count": 0,
}


def reset():
    app["count"] = 0


def increment():
    app["count"] += 1


async def increment_later(delay_s):
    await asyncio.sleep(delay_s)
    increment()


# Tests

def test_initial_state(t):
    reset()
    t.equal(app["count"], 0, "initial value should be 0")
    t.end()


def test_increment_once(t):
    reset()
    t.plan(1)
    increment()
    t.equal(app["count"], 1)


def test_increment_three_times(t):
    reset()
    for _ in range(3):
        increment()
    t.equal(app["count"], 3)
    t.end()


async def test_slow_increments(t):
    reset()
    t.timeout_after(1000)
    for expected in (1, 2, 3):
        await increment_later(0.05)
        t.equal(app["count"], expected, f"count reaches {expected}")


def test_nested(t):
    reset()

    def sub_increment(st):
        increment()
        st.equal(app["count"], 1)
        st.end()

    def sub_reset(st):
        reset()
        st.equal(app["count"], 0)
        st.end()

    t.test("increment", sub_increment)
    t.test("reset", sub_reset)


if __name__ == "__main__":
    taptester.set_timeout(5000)

    taptester.test("Initial state is zero", test_initial_state)
    taptester.test("Increment once", test_increment_once)
    taptester.test("Increment three times", test_increment_three_times)
    taptester.test("Slow increments", test_slow_increments)
    taptester.test("Subtests", test_nested)

    results = taptester.run()
    raise SystemExit(0 if results["ok"] else 1)
