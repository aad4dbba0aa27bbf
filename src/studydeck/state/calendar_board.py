"""Interactive calendar and task boards on top of :class:`OptimisticStore`.

Dragging an item follows::

    IDLE -> DRAGGING -> PENDING -> COMMITTED | ROLLED_BACK
                     -> IDLE            (dropped on its own day)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from studydeck.core.calendar import CalendarItem, bucket_by_day, split_uid
from studydeck.core.dates import DATE_ONLY_RE, local_noon, local_zone
from studydeck.state.store import MutationResult, MutationStatus, OptimisticStore


logger = logging.getLogger(__name__)

Envelope = Mapping[str, Any]


class DragState(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class DragError(Exception):
    pass


@dataclass
class CalendarGateway:
    """Remote calls the board needs, keyed by item kind.

    ``reschedule[kind](source_id, iso_instant)`` and
    ``set_completed[kind](source_id, flag)`` return action envelopes.
    """

    reschedule: Dict[str, Callable[[str, str], Envelope]]
    set_completed: Dict[str, Callable[[str, bool], Envelope]]


def action_gateway(ctx) -> CalendarGateway:
    """Gateway that calls the server actions directly with ``ctx``."""
    from studydeck.actions import assessments, career, personal_tasks

    return CalendarGateway(
        reschedule={
            "assessment": lambda source_id, when: assessments.update_assessment_date(ctx, source_id, when),
            "personal": lambda source_id, when: personal_tasks.update_personal_task_date(ctx, source_id, when),
        },
        set_completed={
            "assessment": lambda source_id, flag: assessments.toggle_assessment_completion(ctx, source_id, flag),
            "personal": lambda source_id, flag: personal_tasks.toggle_personal_task_complete(ctx, source_id, flag),
            "interview": lambda source_id, flag: career.toggle_interview_complete(ctx, source_id, flag),
            "oa": lambda source_id, flag: career.toggle_interview_complete(ctx, source_id, flag),
        },
    )


class CalendarBoard:
    def __init__(
        self,
        items: Iterable[CalendarItem],
        gateway: CalendarGateway,
        revalidate: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.store = OptimisticStore((asdict(item) for item in items), key="uid")
        self.gateway = gateway
        self.revalidate = revalidate
        self.state = DragState.IDLE
        self.dragging: Optional[str] = None
        self.last_result: Optional[MutationResult] = None

    @property
    def items(self) -> List[CalendarItem]:
        return [CalendarItem(**data) for data in self.store.items]

    def days(self) -> Dict[str, List[CalendarItem]]:
        return bucket_by_day(self.items)

    def start_drag(self, uid: str) -> None:
        if self.state in (DragState.DRAGGING, DragState.PENDING):
            raise DragError(f"Cannot start a drag while {self.state.value}")
        item = self.store.get(uid)
        if item["kind"] not in self.gateway.reschedule:
            raise DragError(f"{item['kind'].capitalize()} items cannot be rescheduled")
        self.dragging = uid
        self.state = DragState.DRAGGING

    def cancel_drag(self) -> None:
        self.dragging = None
        self.state = DragState.IDLE

    async def drop(self, day_key: str) -> DragState:
        """Drop the dragged item on ``day_key``; same-day drops do nothing."""
        if self.state is not DragState.DRAGGING or self.dragging is None:
            raise DragError("No item is being dragged")
        if not DATE_ONLY_RE.match(day_key):
            raise DragError(f"Invalid day: {day_key}")
        try:
            when = local_noon(day_key, local_zone()).isoformat()
        except ValueError as exc:
            raise DragError(f"Invalid day: {day_key}") from exc

        uid = self.dragging
        self.dragging = None
        current = self.store.get(uid)
        if current["date_key"] == day_key:
            self.state = DragState.IDLE
            return self.state

        _, source_id = split_uid(uid)
        call = self.gateway.reschedule[current["kind"]]

        def move(item: Dict[str, Any]) -> None:
            item["date_key"] = day_key

        self.state = DragState.PENDING
        result = await self.store.mutate(uid, move, lambda: call(source_id, when), self.revalidate)
        return self._settle(result)

    async def toggle_complete(self, uid: str) -> MutationResult:
        current = self.store.get(uid)
        call = self.gateway.set_completed[current["kind"]]
        _, source_id = split_uid(uid)
        flag = not current["is_completed"]

        def flip(item: Dict[str, Any]) -> None:
            item["is_completed"] = flag

        result = await self.store.mutate(uid, flip, lambda: call(source_id, flag), self.revalidate)
        self.last_result = result
        return result

    def _settle(self, result: MutationResult) -> DragState:
        self.last_result = result
        if result.status is MutationStatus.ROLLED_BACK:
            logger.warning("Reschedule of %s rolled back: %s", result.item_id, result.error)
            self.state = DragState.ROLLED_BACK
        elif result.status is MutationStatus.COMMITTED:
            self.state = DragState.COMMITTED
        else:
            self.state = DragState.IDLE
        return self.state


class TasksBoard:
    """Optimistic toggle, inline edit and reorder over task rows."""

    def __init__(
        self,
        tasks: Iterable[Mapping[str, Any]],
        toggle: Callable[[str, bool], Envelope],
        update: Callable[[str, Dict[str, Any]], Envelope],
        reorder: Callable[[List[str]], Envelope],
        revalidate: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.store = OptimisticStore(tasks)
        self._toggle = toggle
        self._update = update
        self._reorder = reorder
        self.revalidate = revalidate

    @classmethod
    def from_actions(cls, ctx, tasks: Iterable[Mapping[str, Any]]) -> "TasksBoard":
        from studydeck.actions import tasks as task_actions

        return cls(
            tasks,
            toggle=lambda task_id, flag: task_actions.toggle_task_complete(ctx, task_id, flag),
            update=lambda task_id, values: task_actions.update_task(ctx, task_id, values),
            reorder=lambda ids: task_actions.reorder_tasks(ctx, {"task_ids": ids}),
        )

    def ordered(self, list_id: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = [t for t in self.store.items if list_id is None or t.get("list_id") == list_id]
        return sorted(rows, key=lambda t: (t.get("position") is None, t.get("position") or 0))

    async def toggle(self, task_id: str) -> MutationResult:
        flag = not self.store.get(task_id).get("is_completed")

        def flip(task: Dict[str, Any]) -> None:
            task["is_completed"] = flag

        return await self.store.mutate(task_id, flip, lambda: self._toggle(task_id, flag), self.revalidate)

    async def edit(self, task_id: str, **values: Any) -> MutationResult:
        def apply(task: Dict[str, Any]) -> None:
            task.update(values)

        return await self.store.mutate(task_id, apply, lambda: self._update(task_id, dict(values)), self.revalidate)

    async def reorder(self, task_ids: Sequence[str]) -> MutationResult:
        ids = list(task_ids)

        def place(position: int):
            def apply(task: Dict[str, Any]) -> None:
                task["position"] = position

            return apply

        changes = {task_id: place(position) for position, task_id in enumerate(ids)}
        return await self.store.mutate_many(changes, lambda: self._reorder(ids), self.revalidate)
