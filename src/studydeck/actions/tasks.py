import logging
from typing import Any, Dict, List

from studydeck.actions.base import ActionContext, parse, remote, require_owned, server_action
from studydeck.actions.schemas import ReorderPayload, TaskListPayload, TaskPayload, TaskUpdatePayload
from studydeck.core.constants import INBOX_LIST_COLOR, INBOX_LIST_NAME, PATH_CALENDAR, PATH_TASKS
from studydeck.errors import AuthorizationError
from studydeck.services.auth_service import AuthUser
from studydeck.services.row_store import RowStore


logger = logging.getLogger(__name__)


def inbox_list_id(store: RowStore, user: AuthUser) -> str:
    inbox = store.find_first("task_lists", {"user_id": user.uid, "name": INBOX_LIST_NAME})
    if inbox is not None:
        return inbox["id"]
    row = remote(
        "Failed to create Inbox task list",
        lambda: store.insert("task_lists", {"user_id": user.uid, "name": INBOX_LIST_NAME, "color_hex": INBOX_LIST_COLOR}),
    )
    logger.info("Created Inbox list for %s", user.uid)
    return row["id"]


@server_action
def get_task_lists_with_tasks(ctx: ActionContext, user: AuthUser):
    store = ctx.store
    lists = remote("Failed to fetch task lists", lambda: store.select("task_lists", {"user_id": user.uid}, order_by=("created_at",)))
    tasks = remote("Failed to fetch tasks", lambda: store.select("tasks", {"user_id": user.uid}, order_by=("-created_at",)))

    by_list: Dict[str, List[Dict[str, Any]]] = {}
    for task in tasks:
        by_list.setdefault(task["list_id"], []).append(task)
    for items in by_list.values():
        # Explicit positions first, the rest in creation order (newest first).
        items.sort(key=lambda t: (t.get("position") is None, t.get("position") or 0))
    return {"lists": [{**task_list, "tasks": by_list.get(task_list["id"], [])} for task_list in lists]}


@server_action
def create_task_list(ctx: ActionContext, user: AuthUser, data):
    payload = parse(TaskListPayload, data)
    row = remote(
        "Failed to create task list",
        lambda: ctx.store.insert("task_lists", {"user_id": user.uid, **payload.model_dump()}),
    )
    ctx.revalidate(PATH_TASKS)
    return {"list": row}


@server_action
def delete_task_list(ctx: ActionContext, user: AuthUser, list_id: str):
    require_owned(ctx.store, "task_lists", list_id, user, not_found="Task list not found")
    store = ctx.store

    def cascade() -> None:
        with store.transaction():
            store.delete("tasks", {"list_id": list_id, "user_id": user.uid})
            store.delete("task_lists", {"id": list_id, "user_id": user.uid})

    remote("Failed to delete task list", cascade)
    ctx.revalidate(PATH_TASKS)
    return {}


@server_action
def create_task(ctx: ActionContext, user: AuthUser, data):
    """Create a task; without a list it lands in the (lazily created) Inbox."""
    payload = parse(TaskPayload, data)
    store = ctx.store
    if payload.list_id:
        require_owned(store, "task_lists", payload.list_id, user, not_found="Task list not found")
        list_id = payload.list_id
    else:
        list_id = inbox_list_id(store, user)
    if payload.course_id:
        require_owned(store, "courses", payload.course_id, user, not_found="Course not found")

    row = remote(
        "Failed to create task",
        lambda: store.insert(
            "tasks",
            {
                "user_id": user.uid,
                "list_id": list_id,
                "title": payload.title,
                "description": payload.description,
                "notes": payload.notes,
                "due_date": payload.due_date,
                "priority": payload.priority,
                "course_id": payload.course_id,
                "is_completed": False,
                "position": None,
            },
        ),
    )
    ctx.revalidate(PATH_TASKS, PATH_CALENDAR)
    return {"task": row}


@server_action
def toggle_task_complete(ctx: ActionContext, user: AuthUser, task_id: str, is_completed: bool):
    require_owned(ctx.store, "tasks", task_id, user, not_found="Task not found")
    remote(
        "Failed to update task",
        lambda: ctx.store.update("tasks", {"is_completed": bool(is_completed)}, {"id": task_id, "user_id": user.uid}),
    )
    ctx.revalidate(PATH_TASKS, PATH_CALENDAR)
    return {}


@server_action
def update_task(ctx: ActionContext, user: AuthUser, task_id: str, data):
    payload = parse(TaskUpdatePayload, data)
    require_owned(ctx.store, "tasks", task_id, user, not_found="Task not found")
    values = payload.model_dump(exclude_unset=True)
    if not values:
        return {}
    if values.get("course_id"):
        require_owned(ctx.store, "courses", values["course_id"], user, not_found="Course not found")
    remote("Failed to update task", lambda: ctx.store.update("tasks", values, {"id": task_id, "user_id": user.uid}))
    ctx.revalidate(PATH_TASKS, PATH_CALENDAR)
    return {}


@server_action
def delete_task(ctx: ActionContext, user: AuthUser, task_id: str):
    require_owned(ctx.store, "tasks", task_id, user, not_found="Task not found")
    remote("Failed to delete task", lambda: ctx.store.delete("tasks", {"id": task_id, "user_id": user.uid}))
    ctx.revalidate(PATH_TASKS, PATH_CALENDAR)
    return {}


@server_action
def reorder_tasks(ctx: ActionContext, user: AuthUser, data):
    """Persist ``task_ids`` order as positions 0..n-1."""
    payload = parse(ReorderPayload, data)
    store = ctx.store
    if not payload.task_ids:
        return {}
    owned = {row["id"] for row in store.select("tasks", {"user_id": user.uid, "id": payload.task_ids})}
    if len(owned) != len(set(payload.task_ids)):
        raise AuthorizationError()

    def write() -> None:
        with store.transaction():
            for position, task_id in enumerate(payload.task_ids):
                store.update("tasks", {"position": position}, {"id": task_id, "user_id": user.uid})

    remote("Failed to reorder tasks", write)
    ctx.revalidate(PATH_TASKS)
    return {}
