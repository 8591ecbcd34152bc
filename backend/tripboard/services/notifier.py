"""
In-process change notification keyed by trip id.
"""
import logging
from collections import defaultdict
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[int], None]


class ChangeNotifier:
    """Delivers "trip changed" events to subscribers, in subscription order."""

    def __init__(self):
        self._subscribers: Dict[int, List[ChangeCallback]] = defaultdict(list)
        self._global: List[ChangeCallback] = []

    def subscribe(self, trip_id: int, callback: ChangeCallback) -> Callable[[], None]:
        """Subscribe to one trip. Returns a function that removes the subscription."""
        self._subscribers[trip_id].append(callback)

        def unsubscribe():
            callbacks = self._subscribers.get(trip_id, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(trip_id, None)

        return unsubscribe

    def subscribe_all(self, callback: ChangeCallback) -> Callable[[], None]:
        """Subscribe to changes on every trip."""
        self._global.append(callback)

        def unsubscribe():
            if callback in self._global:
                self._global.remove(callback)

        return unsubscribe

    def publish(self, trip_id: int) -> None:
        """Notify subscribers; a failing callback does not stop the others."""
        for callback in list(self._global) + list(self._subscribers.get(trip_id, [])):
            try:
                callback(trip_id)
            except Exception as e:
                logger.error(f"Change callback failed for trip {trip_id}: {e}", exc_info=True)
