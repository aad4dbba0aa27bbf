import logging
from typing import Callable, List, Set


logger = logging.getLogger(__name__)

Listener = Callable[[str], None]


class PathInvalidator:
    """Marks view paths stale after a mutation.

    Fire-and-forget: a failing listener is logged and otherwise ignored.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._stale: Set[str] = set()

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def revalidate(self, *paths: str) -> None:
        for path in paths:
            self._stale.add(path)
            for listener in list(self._listeners):
                try:
                    listener(path)
                except Exception:
                    logger.exception("Revalidation listener failed for %s", path)

    def is_stale(self, path: str) -> bool:
        return path in self._stale
