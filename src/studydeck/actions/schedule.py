from typing import Any, Dict

from studydeck.actions.base import ActionContext, parse, remote, require_owned, server_action
from studydeck.actions.schemas import ScheduleItemPayload, ScheduleItemUpdatePayload
from studydeck.core.constants import PATH_SCHEDULE, WEEKDAYS
from studydeck.errors import ValidationError
from studydeck.services.auth_service import AuthUser


def _course_summary(course: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": course["id"],
        "course_code": course.get("course_code"),
        "course_name": course.get("course_name"),
        "color": course.get("color"),
    }


@server_action
def get_schedule_items(ctx: ActionContext, user: AuthUser):
    """Weekly schedule joined with course details, Monday first."""
    store = ctx.store
    items = remote("Failed to fetch schedule", lambda: store.select("schedule_items", {"user_id": user.uid}))
    courses = {}
    if items:
        rows = store.select("courses", {"user_id": user.uid, "id": sorted({i["course_id"] for i in items})})
        courses = {row["id"]: _course_summary(row) for row in rows}

    items.sort(key=lambda i: (WEEKDAYS.index(i["day"]) if i["day"] in WEEKDAYS else len(WEEKDAYS), i["start_time"]))
    return {"data": [{**item, "course": courses.get(item["course_id"])} for item in items]}


@server_action
def create_schedule_item(ctx: ActionContext, user: AuthUser, data):
    payload = parse(ScheduleItemPayload, data)
    course = require_owned(ctx.store, "courses", payload.course_id, user, not_found="Course not found")
    row = remote(
        "Failed to create schedule item",
        lambda: ctx.store.insert("schedule_items", {"user_id": user.uid, **payload.model_dump()}),
    )
    ctx.revalidate(PATH_SCHEDULE)
    return {"data": {**row, "course": _course_summary(course)}}


@server_action
def update_schedule_item(ctx: ActionContext, user: AuthUser, item_id: str, data):
    payload = parse(ScheduleItemUpdatePayload, data)
    current = require_owned(ctx.store, "schedule_items", item_id, user, not_found="Schedule item not found")
    values = payload.model_dump(exclude_none=True)
    if not values:
        return {}
    if "course_id" in values:
        require_owned(ctx.store, "courses", values["course_id"], user, not_found="Course not found")

    start = values.get("start_time", current["start_time"])
    end = values.get("end_time", current["end_time"])
    if end[:5] <= start[:5]:
        raise ValidationError("End time must be after start time")

    remote(
        "Failed to update schedule item",
        lambda: ctx.store.update("schedule_items", values, {"id": item_id, "user_id": user.uid}),
    )
    ctx.revalidate(PATH_SCHEDULE)
    return {}


@server_action
def delete_schedule_item(ctx: ActionContext, user: AuthUser, item_id: str):
    require_owned(ctx.store, "schedule_items", item_id, user, not_found="Schedule item not found")
    remote(
        "Failed to delete schedule item",
        lambda: ctx.store.delete("schedule_items", {"id": item_id, "user_id": user.uid}),
    )
    ctx.revalidate(PATH_SCHEDULE)
    return {}
