"""Focus mode: what is due soon, and timed study sessions."""

from datetime import date, timedelta
import logging
from typing import Any, Dict, List, Mapping, Optional

from studydeck.actions.base import ActionContext, parse, remote, require_owned, server_action
from studydeck.actions.schemas import FocusSessionPayload
from studydeck.actions.settings import ensure_profile
from studydeck.config.settings import settings
from studydeck.core.constants import INTERVIEW_STATUS_DONE, PATH_DASHBOARD, PATH_LEADERBOARD, SOURCE_COLORS
from studydeck.core.dates import date_key, days_remaining, local_zone, parse_instant
from studydeck.errors import ValidationError
from studydeck.services.auth_service import AuthUser
from studydeck.services.row_store import utc_now_iso


logger = logging.getLogger(__name__)

FALLBACK_COURSE_COLOR = "#555"


def _in_window(value: Any, first: str, last: str) -> bool:
    key = date_key(value, local_zone())
    return key is not None and first <= key <= last


def _timestamp(row: Mapping[str, Any], column: str) -> float:
    instant = parse_instant(row.get(column))
    return instant.timestamp() if instant is not None else float("inf")


@server_action
def get_upcoming_tasks(ctx: ActionContext, user: AuthUser, today: Optional[date] = None):
    """Open assessments, personal tasks and interviews due in the next window.

    The window runs from the start of today through ``upcoming_window_days``
    days ahead, compared on local date keys.
    """
    store = ctx.store
    today = today or date.today()
    first = today.isoformat()
    last = (today + timedelta(days=settings.upcoming_window_days)).isoformat()

    courses = {c["id"]: c for c in store.select("courses", {"user_id": user.uid})}
    assignments: List[Dict[str, Any]] = []
    for a in store.select("assessments", {"user_id": user.uid}):
        if a.get("is_completed") or not _in_window(a.get("due_date"), first, last):
            continue
        course = courses.get(a["course_id"]) or {}
        assignments.append(
            {
                "id": a["id"],
                "name": a["name"],
                "due_date": a["due_date"],
                "weight": a.get("weight") or 0,
                "is_completed": bool(a.get("is_completed")),
                "course_code": course.get("course_code") or "General",
                "color": course.get("color") or FALLBACK_COURSE_COLOR,
                "type": "assessment",
            }
        )

    for t in store.select("personal_tasks", {"user_id": user.uid, "is_completed": False}):
        if not _in_window(t.get("due_date"), first, last):
            continue
        course = courses.get(t.get("course_id")) if t.get("type") == "course_work" else None
        assignments.append(
            {
                "id": t["id"],
                "name": t["title"],
                "due_date": t["due_date"],
                "weight": 0,
                "is_completed": False,
                "course_code": course["course_code"] if course else "Personal",
                "color": course["color"] if course else SOURCE_COLORS["personal"],
                "type": "personal_task",
                "description": t.get("description"),
            }
        )
    assignments.sort(key=lambda item: _timestamp(item, "due_date"))

    career = [
        i
        for i in store.select("interviews", {"user_id": user.uid})
        if i.get("status") != INTERVIEW_STATUS_DONE and _in_window(i.get("interview_date"), first, last)
    ]
    career.sort(key=lambda item: _timestamp(item, "interview_date"))

    for item in assignments:
        item["days_left"] = days_remaining(date_key(item["due_date"], local_zone()), today)
    for item in career:
        item["days_left"] = days_remaining(date_key(item["interview_date"], local_zone()), today)
    return {"assignments": assignments, "career": career}


@server_action
def start_focus_session(ctx: ActionContext, user: AuthUser, data):
    payload = parse(FocusSessionPayload, data)
    if payload.linked_assessment_id:
        require_owned(ctx.store, "assessments", payload.linked_assessment_id, user, not_found="Assessment not found")
    row = remote(
        "Failed to start session",
        lambda: ctx.store.insert(
            "focus_sessions",
            {
                "user_id": user.uid,
                **payload.model_dump(),
                "is_completed": False,
                "started_at": utc_now_iso(),
            },
        ),
    )
    return {"sessionId": row["id"]}


@server_action
def end_focus_session(ctx: ActionContext, user: AuthUser, session_id: str, duration: int):
    """Close a session and credit ``duration`` minutes to the profile."""
    if isinstance(duration, bool) or not isinstance(duration, int) or duration < 0:
        raise ValidationError("Duration must be a non-negative number of minutes")
    session = require_owned(ctx.store, "focus_sessions", session_id, user, not_found="Session not found")
    if session.get("is_completed"):
        raise ValidationError("Session already ended")
    store = ctx.store

    def write() -> int:
        with store.transaction():
            store.update(
                "focus_sessions",
                {"is_completed": True, "ended_at": utc_now_iso()},
                {"id": session_id, "user_id": user.uid},
            )
            profile = ensure_profile(store, user)
            total = (profile.get("focus_minutes") or 0) + duration
            store.update("profiles", {"focus_minutes": total}, {"id": user.uid})
        return total

    total = remote("Failed to end session", write)
    logger.info("Focus session %s ended (%d min) for %s", session_id, duration, user.uid)
    ctx.revalidate(PATH_DASHBOARD, PATH_LEADERBOARD)
    return {"focusMinutes": total}


@server_action
def complete_item(ctx: ActionContext, user: AuthUser, item_id: str):
    """Mark an upcoming item done, whichever of the three sources it is."""
    store = ctx.store
    scoped = {"id": item_id, "user_id": user.uid}
    if store.find_first("assessments", scoped):
        remote("Failed to complete item", lambda: store.update("assessments", {"is_completed": True}, scoped))
        kind = "assessment"
    elif store.find_first("interviews", scoped):
        remote("Failed to complete item", lambda: store.update("interviews", {"status": INTERVIEW_STATUS_DONE}, scoped))
        kind = "interview"
    elif store.find_first("personal_tasks", scoped):
        remote("Failed to complete item", lambda: store.update("personal_tasks", {"is_completed": True}, scoped))
        kind = "personal_task"
    else:
        raise ValidationError("Item not found")
    ctx.revalidate(PATH_DASHBOARD)
    return {"kind": kind}
