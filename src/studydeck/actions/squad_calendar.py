"""Squad templates as one member sees them.

Each member keeps a private overlay row per template in ``user_task_states``.
A custom title, date or weight there replaces the template's value, and the
status, grade and notes belong to the member alone. Deleting the overlay
resets the task to the template.
"""

from typing import Any, Dict, List, Mapping, Optional

from studydeck.actions.base import ActionContext, parse, remote, server_action
from studydeck.actions.schemas import TaskStatePayload
from studydeck.core.constants import PATH_CALENDAR, TASK_STATUS_COMPLETED, TASK_STATUS_PENDING, TASK_STATUSES
from studydeck.core.dates import DATE_ONLY_RE, date_key, local_zone, parse_instant
from studydeck.errors import AuthorizationError, ValidationError
from studydeck.services.auth_service import AuthUser
from studydeck.services.row_store import RowStore, utc_now_iso


def visible_template(store: RowStore, user: AuthUser, template_id: str) -> Dict[str, Any]:
    """The template, provided ``user`` belongs to the squad that published it."""
    if not template_id:
        raise ValidationError("Template id is required")
    template = store.find_first("squad_templates", {"id": template_id})
    if template is None:
        raise ValidationError("Template not found")
    membership = store.find_first("squad_memberships", {"user_id": user.uid, "squad_id": template["squad_id"]})
    if membership is None:
        raise AuthorizationError()
    return template


def overlay(template: Mapping[str, Any], state: Optional[Mapping[str, Any]], squad_name: Optional[str]) -> Dict[str, Any]:
    state = state or {}
    weight = state.get("custom_weight")
    return {
        "template_id": template["id"],
        "squad_id": template["squad_id"],
        "squad_name": squad_name,
        "display_title": state.get("custom_title") or template["title"],
        "display_date": state.get("custom_date") or template["due_date"],
        "display_weight": weight if weight is not None else template.get("weight"),
        "type": template.get("type"),
        "description": template.get("description"),
        "status": state.get("status") or TASK_STATUS_PENDING,
        "grade": state.get("grade"),
        "notes": state.get("notes"),
        "completed_at": state.get("completed_at"),
        "is_personal": False,
        "is_archived": bool(template.get("is_archived")),
    }


def _personal(task: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "template_id": task["id"],
        "squad_id": None,
        "squad_name": None,
        "display_title": task["title"],
        "display_date": task["due_date"],
        "display_weight": None,
        "type": task.get("type"),
        "description": task.get("description"),
        "status": TASK_STATUS_COMPLETED if task.get("is_completed") else TASK_STATUS_PENDING,
        "grade": None,
        "notes": None,
        "completed_at": None,
        "is_personal": True,
        "is_archived": False,
    }


def _sort_key(item: Mapping[str, Any]) -> float:
    instant = parse_instant(item.get("display_date"))
    return instant.timestamp() if instant is not None else float("inf")


def _in_range(key: Optional[str], start: Optional[str], end: Optional[str]) -> bool:
    if key is None:
        return False
    return (start is None or key >= start) and (end is None or key <= end)


def build_my_calendar(store: RowStore, user: AuthUser) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    membership = store.find_first("squad_memberships", {"user_id": user.uid})
    if membership is not None:
        squad = store.find_first("squads", {"id": membership["squad_id"]}) or {}
        states = {s["template_id"]: s for s in store.select("user_task_states", {"user_id": user.uid})}
        for template in store.select("squad_templates", {"squad_id": membership["squad_id"], "is_archived": False}):
            items.append(overlay(template, states.get(template["id"]), squad.get("name")))
    for task in store.select("personal_tasks", {"user_id": user.uid}):
        if task.get("due_date"):
            items.append(_personal(task))
    return items


def upsert_state(store: RowStore, user: AuthUser, template_id: str, values: Mapping[str, Any]) -> Dict[str, Any]:
    scoped = {"user_id": user.uid, "template_id": template_id}
    now = utc_now_iso()
    with store.transaction():
        existing = store.find_first("user_task_states", scoped)
        if existing is None:
            return store.insert(
                "user_task_states",
                {**scoped, "status": TASK_STATUS_PENDING, **values, "updated_at": now},
            )
        store.update("user_task_states", {**values, "updated_at": now}, {**scoped, "id": existing["id"]})
        return store.find_first("user_task_states", scoped)


def _completion(status: str) -> Dict[str, Any]:
    return {"status": status, "completed_at": utc_now_iso() if status == TASK_STATUS_COMPLETED else None}


@server_action
def get_my_calendar(ctx: ActionContext, user: AuthUser, start: Optional[str] = None, end: Optional[str] = None):
    """Squad templates through the member's overlay, plus dated personal tasks.

    ``start`` and ``end`` are inclusive ``YYYY-MM-DD`` bounds on the local
    date of each item's display date.
    """
    for bound in (start, end):
        if bound is not None and not DATE_ONLY_RE.match(bound):
            raise ValidationError("Invalid date format")
    items = remote("Failed to fetch calendar items", lambda: build_my_calendar(ctx.store, user))
    if start or end:
        zone = local_zone()
        items = [item for item in items if _in_range(date_key(item["display_date"], zone), start, end)]
    items.sort(key=_sort_key)
    return {"items": items}


@server_action
def update_task_status(ctx: ActionContext, user: AuthUser, template_id: str, status: str):
    if status not in TASK_STATUSES:
        raise ValidationError(f"Status must be one of {', '.join(TASK_STATUSES)}")
    visible_template(ctx.store, user, template_id)
    state = remote("Failed to update status", lambda: upsert_state(ctx.store, user, template_id, _completion(status)))
    ctx.revalidate(PATH_CALENDAR)
    return {"state": state}


@server_action
def update_task_details(ctx: ActionContext, user: AuthUser, data):
    """Save the member's overrides; fields left out keep their current value."""
    payload = parse(TaskStatePayload, data)
    visible_template(ctx.store, user, payload.template_id)
    values = payload.model_dump(exclude_unset=True, exclude={"template_id"})
    status = values.pop("status", None)
    if status is not None:
        values.update(_completion(status))
    if not values:
        current = ctx.store.find_first("user_task_states", {"user_id": user.uid, "template_id": payload.template_id})
        return {"state": current, "message": "No changes made"}
    state = remote("Failed to update task", lambda: upsert_state(ctx.store, user, payload.template_id, values))
    ctx.revalidate(PATH_CALENDAR)
    return {"state": state}


@server_action
def delete_task_state(ctx: ActionContext, user: AuthUser, template_id: str):
    remote(
        "Failed to delete task state",
        lambda: ctx.store.delete("user_task_states", {"user_id": user.uid, "template_id": template_id}),
    )
    ctx.revalidate(PATH_CALENDAR)
    return {}


@server_action
def get_task_state(ctx: ActionContext, user: AuthUser, template_id: str):
    state = remote(
        "Failed to fetch task state",
        lambda: ctx.store.find_first("user_task_states", {"user_id": user.uid, "template_id": template_id}),
    )
    return {"state": state}
