"""Client-side authoritative collections with optimistic updates.

A mutation is applied to local state at once, then confirmed remotely. Remote
calls for the same item id run one at a time in submission order. When a call
fails, the item goes back to its pre-mutation snapshot, and every mutation
queued behind it on that id is dropped without reaching the remote.
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
import copy
from dataclasses import dataclass
from enum import Enum
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from studydeck.errors import UNEXPECTED


logger = logging.getLogger(__name__)

Item = Dict[str, Any]
Change = Callable[[Item], Optional[Item]]
Remote = Callable[[], Union[Awaitable[Any], Any]]

SUPERSEDED = "Superseded by a failed update"


class MutationStatus(Enum):
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    NOOP = "noop"


@dataclass(frozen=True)
class MutationResult:
    status: MutationStatus
    item_ids: Tuple[str, ...]
    error: Optional[str] = None

    @property
    def item_id(self) -> str:
        return self.item_ids[0]

    @property
    def ok(self) -> bool:
        return self.status is not MutationStatus.ROLLED_BACK


def remote_error(outcome: Any) -> Optional[str]:
    """Error message carried by a failure envelope, or None for success."""
    if isinstance(outcome, Mapping) and outcome.get("success") is False:
        return str(outcome.get("error") or UNEXPECTED)
    return None


class OptimisticStore:
    def __init__(self, items: Iterable[Mapping[str, Any]] = (), key: str = "id") -> None:
        self.key = key
        self._items: Dict[str, Item] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._epochs: Dict[str, int] = {}
        self.last_error: Optional[str] = None
        self.replace_all(items)

    def replace_all(self, items: Iterable[Mapping[str, Any]]) -> None:
        """Swap in a freshly loaded collection (after a revalidate)."""
        self._items = {str(item[self.key]): copy.deepcopy(dict(item)) for item in items}
        # Bookkeeping for ids that left the collection goes too, unless a
        # remote call on that id is still in flight.
        busy = {item_id for item_id, lock in self._locks.items() if lock.locked()}
        for table in (self._locks, self._epochs):
            for item_id in [i for i in table if i not in self._items and i not in busy]:
                del table[item_id]

    @property
    def items(self) -> List[Item]:
        return copy.deepcopy(list(self._items.values()))

    def get(self, item_id: str) -> Item:
        return copy.deepcopy(self._items[str(item_id)])

    def __contains__(self, item_id: object) -> bool:
        return str(item_id) in self._items

    def __len__(self) -> int:
        return len(self._items)

    def _lock(self, item_id: str) -> asyncio.Lock:
        lock = self._locks.get(item_id)
        if lock is None:
            lock = self._locks[item_id] = asyncio.Lock()
        return lock

    async def mutate(
        self,
        item_id: str,
        change: Change,
        remote: Remote,
        revalidate: Optional[Callable[[], Any]] = None,
    ) -> MutationResult:
        return await self.mutate_many({item_id: change}, remote, revalidate)

    async def mutate_many(
        self,
        changes: Mapping[str, Change],
        remote: Remote,
        revalidate: Optional[Callable[[], Any]] = None,
    ) -> MutationResult:
        """Apply ``changes`` (item id -> change) locally, then confirm with one remote call.

        A change receives a private copy of the item and either edits it in
        place or returns a replacement.
        """
        ids = tuple(str(item_id) for item_id in changes)
        missing = [item_id for item_id in ids if item_id not in self._items]
        if missing:
            raise KeyError(f"Unknown item id(s): {', '.join(missing)}")

        snapshots = {item_id: copy.deepcopy(self._items[item_id]) for item_id in ids}
        updated: Dict[str, Item] = {}
        for item_id, change in zip(ids, changes.values()):
            draft = copy.deepcopy(self._items[item_id])
            result = change(draft)
            updated[item_id] = draft if result is None else result
        if all(updated[item_id] == snapshots[item_id] for item_id in ids):
            return MutationResult(MutationStatus.NOOP, ids)

        self._items.update(updated)
        epochs = {item_id: self._epochs.get(item_id, 0) for item_id in ids}

        async with AsyncExitStack() as stack:
            for item_id in sorted(ids):
                await stack.enter_async_context(self._lock(item_id))

            poisoned = [item_id for item_id in ids if self._epochs.get(item_id, 0) != epochs[item_id]]
            if poisoned:
                self._restore(snapshots, skip=poisoned)
                return self._rolled_back(ids, SUPERSEDED)

            error = await self._call(remote)
            if error is not None:
                self._restore(snapshots)
                return self._rolled_back(ids, error)

        if revalidate is not None:
            try:
                revalidate()
            except Exception:
                logger.exception("Revalidate after mutation of %s failed", ", ".join(ids))
        return MutationResult(MutationStatus.COMMITTED, ids)

    def _restore(self, snapshots: Mapping[str, Item], skip: Iterable[str] = ()) -> None:
        skipped = set(skip)
        for item_id, snapshot in snapshots.items():
            if item_id in skipped:
                continue
            self._items[item_id] = copy.deepcopy(snapshot)
            self._epochs[item_id] = self._epochs.get(item_id, 0) + 1

    def _rolled_back(self, ids: Tuple[str, ...], error: str) -> MutationResult:
        self.last_error = error
        logger.warning("Rolled back %s: %s", ", ".join(ids), error)
        return MutationResult(MutationStatus.ROLLED_BACK, ids, error)

    @staticmethod
    async def _call(remote: Remote) -> Optional[str]:
        try:
            if inspect.iscoroutinefunction(remote):
                outcome = await remote()
            else:
                # Blocking server actions run off the event loop.
                outcome = await asyncio.to_thread(remote)
                if inspect.isawaitable(outcome):
                    outcome = await outcome
        except Exception as exc:
            logger.exception("Remote mutation raised")
            return str(exc) or UNEXPECTED
        return remote_error(outcome)
