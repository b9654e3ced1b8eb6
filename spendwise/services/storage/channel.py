"""
Change channel: a small pub/sub bus carrying ChangeNotice messages.

Both local mutations and the backend's cross-context signals are
published here; the store is the only built-in listener.
"""

from itertools import count
from typing import Callable

from spendwise.models.events import ChangeNotice, ChangeReason, Collection


NoticeListener = Callable[[ChangeNotice], None]


class ChangeChannel:
    """
    Synchronous publish/subscribe channel.

    Listeners run in subscription order on the publisher's call stack.
    Exceptions from a listener propagate to the publisher.
    """

    def __init__(self):
        self._listeners: dict[int, NoticeListener] = {}
        self._ids = count()

    def subscribe(self, listener: NoticeListener) -> Callable[[], None]:
        """Register a listener. Returns an idempotent unsubscribe handle."""
        listener_id = next(self._ids)
        self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def publish(self, notice: ChangeNotice) -> None:
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners.values()):
            listener(notice)

    def notify(self, collection: Collection, reason: ChangeReason) -> None:
        self.publish(ChangeNotice(collection=collection, reason=reason))

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
