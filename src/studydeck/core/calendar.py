from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from typing import Any, Dict, Iterable, List, Mapping, Optional

from studydeck.core.classify import classify_assessment
from studydeck.core.constants import (
    INTERVIEW_SORT_WEIGHT,
    INTERVIEW_STATUS_DONE,
    OA_SORT_WEIGHT,
    PERSONAL_SORT_WEIGHT,
    SOURCE_COLORS,
)
from studydeck.core.dates import date_key, parse_instant


ASSESSMENT_PREFIX = "assessment-"
INTERVIEW_PREFIX = "interview-"
PERSONAL_PREFIX = "personal-"


@dataclass(frozen=True)
class CalendarItem:
    uid: str
    source_id: str
    kind: str
    name: str
    color: str
    weight: float
    is_completed: bool
    date_key: Optional[str]
    label: str = ""
    description: str = ""
    time_display: str = ""


def split_uid(uid: str) -> tuple[str, str]:
    """('assessment' | 'interview' | 'personal', source id) from a prefixed uid."""
    for prefix in (ASSESSMENT_PREFIX, INTERVIEW_PREFIX, PERSONAL_PREFIX):
        if uid.startswith(prefix):
            return prefix[:-1], uid[len(prefix):]
    raise ValueError(f"Unknown calendar item id: {uid}")


def normalize_assessment(
    assessment: Mapping[str, Any],
    course: Optional[Mapping[str, Any]] = None,
    tz: Optional[tzinfo] = None,
) -> CalendarItem:
    course = course or {}
    name = str(assessment.get("name", ""))
    return CalendarItem(
        uid=f"{ASSESSMENT_PREFIX}{assessment['id']}",
        source_id=str(assessment["id"]),
        kind="assessment",
        name=name,
        color=course.get("color") or SOURCE_COLORS["assessment"],
        weight=float(assessment.get("weight") or 0),
        is_completed=bool(assessment.get("is_completed")),
        date_key=date_key(assessment.get("due_date"), tz),
        label=str(course.get("course_code") or "General"),
        description=classify_assessment(name, assessment.get("type")),
    )


def normalize_interview(interview: Mapping[str, Any], tz: Optional[tzinfo] = None) -> CalendarItem:
    is_oa = str(interview.get("type") or "interview").lower() == "oa"
    when = parse_instant(interview.get("interview_date"))
    time_display = ""
    if when is not None and when.tzinfo is not None:
        when = when.astimezone(tz) if tz is not None else when.astimezone()
    if when is not None:
        time_display = when.strftime("%I:%M %p").lstrip("0")
    return CalendarItem(
        uid=f"{INTERVIEW_PREFIX}{interview['id']}",
        source_id=str(interview["id"]),
        kind="oa" if is_oa else "interview",
        name=str(interview.get("company_name", "")),
        color=SOURCE_COLORS["oa" if is_oa else "interview"],
        weight=OA_SORT_WEIGHT if is_oa else INTERVIEW_SORT_WEIGHT,
        is_completed=interview.get("status") == INTERVIEW_STATUS_DONE,
        date_key=date_key(interview.get("interview_date"), tz),
        label="OA" if is_oa else "Interview",
        description=str(interview.get("role_title") or ""),
        time_display=time_display,
    )


def normalize_personal_task(
    task: Mapping[str, Any],
    course: Optional[Mapping[str, Any]] = None,
    tz: Optional[tzinfo] = None,
) -> CalendarItem:
    linked = course if task.get("type") == "course_work" and course else None
    return CalendarItem(
        uid=f"{PERSONAL_PREFIX}{task['id']}",
        source_id=str(task["id"]),
        kind="personal",
        name=str(task.get("title", "")),
        color=(linked or {}).get("color") or SOURCE_COLORS["personal"],
        weight=PERSONAL_SORT_WEIGHT,
        is_completed=bool(task.get("is_completed")),
        date_key=date_key(task.get("due_date"), tz),
        label=str((linked or {}).get("course_code") or "Personal"),
        description=str(task.get("description") or ""),
    )


def build_calendar_items(
    courses: Iterable[Mapping[str, Any]],
    interviews: Iterable[Mapping[str, Any]] = (),
    personal_tasks: Iterable[Mapping[str, Any]] = (),
    tz: Optional[tzinfo] = None,
) -> List[CalendarItem]:
    courses = list(courses)
    by_id = {str(course["id"]): course for course in courses if "id" in course}

    items: List[CalendarItem] = []
    for course in courses:
        for assessment in course.get("assessments") or []:
            items.append(normalize_assessment(assessment, course, tz))
    for interview in interviews:
        items.append(normalize_interview(interview, tz))
    for task in personal_tasks:
        items.append(normalize_personal_task(task, by_id.get(str(task.get("course_id"))), tz))
    return items


def bucket_by_day(items: Iterable[CalendarItem]) -> Dict[str, List[CalendarItem]]:
    """Group dated items by date key; heaviest first within a day.

    Undated items are left out. The sort is stable, so equal weights keep
    their input order.
    """
    buckets: Dict[str, List[CalendarItem]] = {}
    for item in items:
        if item.date_key is None:
            continue
        buckets.setdefault(item.date_key, []).append(item)
    for key in buckets:
        buckets[key].sort(key=lambda item: item.weight, reverse=True)
    return buckets


def filter_items(items: Iterable[CalendarItem], show_completed: bool = False) -> List[CalendarItem]:
    if show_completed:
        return list(items)
    return [item for item in items if not item.is_completed]
