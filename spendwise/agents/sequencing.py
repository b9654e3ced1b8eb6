"""
Out-of-order result guard.

Insight calls have no cancellation token. If the user asks again before
the first answer arrives, both answers eventually come back, possibly in
the wrong order. Every request is stamped; only the result of the most
recently issued stamp may be applied.
"""

from itertools import count


class LatestRequestGuard:
    """
    Monotonic request stamps.

        token = guard.issue()
        result = await slow_call()
        if guard.is_current(token):
            apply(result)
    """

    def __init__(self):
        self._stamps = count(1)
        self._latest = 0

    @property
    def latest(self) -> int:
        return self._latest

    def issue(self) -> int:
        self._latest = next(self._stamps)
        return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest

    def invalidate(self) -> None:
        """Make every outstanding token stale (the consumer moved on)."""
        self.issue()
