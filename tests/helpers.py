"""Shared fakes for the test-suite."""

import asyncio
import heapq
import itertools

import numpy as np


class FakeApproximator:
    """Approximator returning the same Q-row for every state."""

    def __init__(self, row):
        self.row = np.asarray(row, dtype=np.float32)
        self.fit_calls = []
        self.weights = {'w': 0}

    def predict(self, states):
        states = np.asarray(states)
        batch = states.shape[0] if states.ndim > 1 else 1
        return np.tile(self.row, (batch, 1))

    def fit(self, states, targets):
        self.fit_calls.append((np.array(states), np.array(targets)))
        return 0.0

    def get_weights(self):
        return dict(self.weights)

    def set_weights(self, weights):
        self.weights = dict(weights)


class FakeTimer:
    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Minimal ``call_later`` clock that only advances when told to."""

    def __init__(self):
        self.now = 0.0
        self._queue = []
        self._counter = itertools.count()

    def time(self):
        return self.now

    def call_later(self, delay, callback, *args):
        timer = FakeTimer(self.now + delay, callback, args)
        heapq.heappush(self._queue, (timer.when, next(self._counter), timer))
        return timer

    def pending(self):
        return sorted(
            (timer for _, _, timer in self._queue if not timer.cancelled),
            key=lambda t: t.when
        )

    def advance(self, seconds):
        """Run every timer due within ``seconds`` from now, in order."""
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self.now = when
            timer.callback(*timer.args)
        self.now = target


async def wait_until(predicate, timeout=5.0):
    """Yield to the running loop until ``predicate()`` holds."""
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(poll(), timeout)
