from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from studydeck.actions.base import ActionContext, remote, server_action
from studydeck.actions.courses import courses_with_assessments
from studydeck.core.calendar import bucket_by_day, build_calendar_items, filter_items
from studydeck.core.dates import local_zone, parse_instant
from studydeck.services.auth_service import AuthUser
from studydeck.services.row_store import RowStore


ICAL_PRODID = "-//StudyDeck//Calendar Feed//EN"
ICAL_UID_DOMAIN = "studydeck"


def _load(ctx: ActionContext, user: AuthUser):
    store = ctx.store
    courses = courses_with_assessments(store, user)
    interviews = store.select("interviews", {"user_id": user.uid}, order_by=("interview_date",))
    personal = store.select("personal_tasks", {"user_id": user.uid}, order_by=("due_date",))
    return courses, interviews, personal


def _ical_instant(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=local_zone())
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _ical_text(value: Any) -> str:
    text = str(value)
    for raw, escaped in (("\\", "\\\\"), (";", "\\;"), (",", "\\,"), ("\r\n", "\\n"), ("\n", "\\n")):
        text = text.replace(raw, escaped)
    return text


def build_ical(store: RowStore, user: AuthUser, now: Optional[datetime] = None) -> str:
    """Every dated assessment as an iCalendar (RFC 5545) event."""
    stamp = _ical_instant(now or datetime.now(timezone.utc))
    lines: List[str] = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{ICAL_PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    courses: Mapping[str, Mapping[str, Any]] = {c["id"]: c for c in store.select("courses", {"user_id": user.uid})}
    for assessment in store.select("assessments", {"user_id": user.uid}, order_by=("due_date",)):
        due = parse_instant(assessment.get("due_date"))
        if due is None:
            continue
        course = courses.get(assessment["course_id"]) or {}
        course_name = course.get("course_name") or course.get("course_code") or "Course"
        weight = assessment.get("weight") or 0
        lines += [
            "BEGIN:VEVENT",
            f"UID:{assessment['id']}@{ICAL_UID_DOMAIN}",
            f"DTSTAMP:{stamp}",
            f"DTSTART:{_ical_instant(due)}",
            f"SUMMARY:{_ical_text(course_name)}: {_ical_text(assessment['name'])}",
            f"DESCRIPTION:Type: {_ical_text(assessment.get('type') or 'Other')} | Weight: {weight:g}%",
            "END:VEVENT",
        ]
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


@server_action
def get_calendar_data(ctx: ActionContext, user: AuthUser):
    courses, interviews, personal = remote("Failed to load calendar", lambda: _load(ctx, user))
    return {"courses": courses, "interviews": interviews, "personalTasks": personal}


@server_action
def get_calendar_buckets(ctx: ActionContext, user: AuthUser, show_completed: bool = True):
    """Calendar items grouped by local date key, heaviest first per day."""
    courses, interviews, personal = remote("Failed to load calendar", lambda: _load(ctx, user))
    items = filter_items(build_calendar_items(courses, interviews, personal, local_zone()), show_completed)
    buckets = bucket_by_day(items)
    return {"days": {key: [asdict(item) for item in day] for key, day in sorted(buckets.items())}}


@server_action
def get_calendar_feed(ctx: ActionContext, user: AuthUser, now: Optional[datetime] = None):
    return {"ics": remote("Failed to build calendar feed", lambda: build_ical(ctx.store, user, now))}
