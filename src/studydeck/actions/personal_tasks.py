from studydeck.actions.base import ActionContext, parse, remote, require_owned, server_action
from studydeck.actions.schemas import PersonalTaskPayload
from studydeck.core.constants import PATH_CALENDAR, PATH_DASHBOARD, PATH_GRADES
from studydeck.core.dates import parse_instant
from studydeck.errors import ValidationError
from studydeck.services.auth_service import AuthUser


@server_action
def create_personal_task(ctx: ActionContext, user: AuthUser, data):
    """Create a personal or course-work task and return the stored row."""
    payload = parse(PersonalTaskPayload, data)
    if payload.course_id:
        require_owned(ctx.store, "courses", payload.course_id, user, not_found="Course not found")
    row = remote(
        "Failed to create task",
        lambda: ctx.store.insert(
            "personal_tasks",
            {
                "user_id": user.uid,
                "title": payload.title,
                "description": (payload.description or "").strip() or None,
                "due_date": payload.due_date,
                "type": payload.type,
                "course_id": payload.course_id,
                "is_completed": False,
            },
        ),
    )
    ctx.revalidate(PATH_DASHBOARD, PATH_CALENDAR, PATH_GRADES)
    return {"task": row, "message": "Task created successfully"}


@server_action
def toggle_personal_task_complete(ctx: ActionContext, user: AuthUser, task_id: str, is_completed: bool):
    require_owned(ctx.store, "personal_tasks", task_id, user, not_found="Task not found")
    remote(
        "Failed to update task",
        lambda: ctx.store.update(
            "personal_tasks", {"is_completed": bool(is_completed)}, {"id": task_id, "user_id": user.uid}
        ),
    )
    ctx.revalidate(PATH_DASHBOARD, PATH_CALENDAR)
    return {"message": "Task status updated"}


@server_action
def update_personal_task_date(ctx: ActionContext, user: AuthUser, task_id: str, new_date: str):
    if parse_instant(new_date) is None:
        raise ValidationError("Invalid due date")
    require_owned(ctx.store, "personal_tasks", task_id, user, not_found="Task not found")
    remote(
        "Failed to update date",
        lambda: ctx.store.update("personal_tasks", {"due_date": new_date}, {"id": task_id, "user_id": user.uid}),
    )
    ctx.revalidate(PATH_DASHBOARD, PATH_CALENDAR)
    return {"message": "Date updated successfully"}


@server_action
def delete_personal_task(ctx: ActionContext, user: AuthUser, task_id: str):
    require_owned(ctx.store, "personal_tasks", task_id, user, not_found="Task not found")
    remote(
        "Failed to delete task",
        lambda: ctx.store.delete("personal_tasks", {"id": task_id, "user_id": user.uid}),
    )
    ctx.revalidate(PATH_DASHBOARD, PATH_CALENDAR)
    return {"message": "Task deleted successfully"}
