import logging
from typing import Any, Dict, List, Optional

from studydeck.actions.base import ActionContext, parse, remote, require_owned, server_action
from studydeck.actions.schemas import CoursePayload, CourseUpdatePayload
from studydeck.actions.terms import find_current_term, resolve_term_id
from studydeck.core.constants import (
    MAX_COURSES_PER_TERM,
    PATH_CALENDAR,
    PATH_COURSES,
    PATH_DASHBOARD,
    PATH_GRADES,
    PATH_SCHEDULE,
)
from studydeck.core.grades import course_stats, sort_assessments, term_average, weight_warning
from studydeck.errors import ValidationError
from studydeck.services.auth_service import AuthUser
from studydeck.services.row_store import RowStore


logger = logging.getLogger(__name__)


def courses_with_assessments(
    store: RowStore,
    user: AuthUser,
    term_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """The user's courses, each carrying its sorted ``assessments`` and ``stats``."""
    filters: Dict[str, Any] = {"user_id": user.uid}
    if term_id:
        filters["term_id"] = term_id
    courses = store.select("courses", filters, order_by=("course_code",))
    if not courses:
        return []

    assessments = store.select(
        "assessments",
        {"user_id": user.uid, "course_id": [course["id"] for course in courses]},
    )
    by_course: Dict[str, List[Dict[str, Any]]] = {}
    for assessment in assessments:
        by_course.setdefault(assessment["course_id"], []).append(assessment)

    result = []
    for course in courses:
        items = sort_assessments(by_course.get(course["id"], []))
        stats = course_stats(items)
        result.append(
            {
                **course,
                "assessments": items,
                "stats": {
                    "earned_weight": stats.earned_weight,
                    "attempted_weight": stats.attempted_weight,
                    "total_weight": stats.total_weight,
                    "average": stats.average,
                    "progress": stats.progress,
                },
                "weight_warning": weight_warning(items),
            }
        )
    return result


@server_action
def create_course(ctx: ActionContext, user: AuthUser, data):
    payload = parse(CoursePayload, data)
    store = ctx.store

    if payload.term_label:
        term_id = resolve_term_id(store, user, payload.term_label)
    else:
        current = find_current_term(store, user)
        if current is None:
            raise ValidationError("No active term found. Please set up a term first.")
        term_id = current["id"]

    if store.count("courses", {"user_id": user.uid, "term_id": term_id}) >= MAX_COURSES_PER_TERM:
        raise ValidationError(f"Maximum {MAX_COURSES_PER_TERM} courses allowed per term")

    row = remote(
        "Failed to create course",
        lambda: store.insert(
            "courses",
            {
                "user_id": user.uid,
                "term_id": term_id,
                "course_code": payload.course_code,
                "course_name": payload.course_name,
                "color": payload.color,
                "credits": payload.credits,
            },
        ),
    )
    logger.info("Created course %s (%s) for %s", row["id"], payload.course_code, user.uid)
    ctx.revalidate(PATH_DASHBOARD, PATH_GRADES, PATH_COURSES)
    return {"courseId": row["id"], "termId": term_id, "message": "Course created successfully"}


@server_action
def get_courses(ctx: ActionContext, user: AuthUser, term_id: Optional[str] = None):
    filters: Dict[str, Any] = {"user_id": user.uid}
    if term_id:
        filters["term_id"] = term_id
    rows = remote("Failed to fetch courses", lambda: ctx.store.select("courses", filters, order_by=("course_code",)))
    return {"data": rows}


@server_action
def get_course_with_assessments(ctx: ActionContext, user: AuthUser, course_id: str):
    require_owned(ctx.store, "courses", course_id, user, not_found="Course not found")
    courses = [c for c in courses_with_assessments(ctx.store, user) if c["id"] == course_id]
    return {"data": courses[0]}


@server_action
def get_grades_overview(ctx: ActionContext, user: AuthUser, term_id: Optional[str] = None):
    if term_id is None:
        current = find_current_term(ctx.store, user)
        term_id = current["id"] if current else None
    courses = courses_with_assessments(ctx.store, user, term_id)
    return {"termId": term_id, "courses": courses, "termAverage": term_average(courses)}


@server_action
def update_course_details(ctx: ActionContext, user: AuthUser, course_id: str, data):
    payload = parse(CourseUpdatePayload, data)
    require_owned(ctx.store, "courses", course_id, user, not_found="Course not found")
    values = payload.model_dump(exclude_none=True)
    if "term_id" in values:
        require_owned(ctx.store, "terms", values["term_id"], user, not_found="Term not found")
    if not values:
        return {"message": "No changes made"}
    remote(
        "Failed to update course",
        lambda: ctx.store.update("courses", values, {"id": course_id, "user_id": user.uid}),
    )
    ctx.revalidate(PATH_DASHBOARD, PATH_GRADES, PATH_COURSES, PATH_CALENDAR, PATH_SCHEDULE)
    return {"message": "Course updated successfully"}


@server_action
def delete_course(ctx: ActionContext, user: AuthUser, course_id: str):
    """Delete a course along with its assessments and schedule items."""
    require_owned(ctx.store, "courses", course_id, user, not_found="Course not found")
    store = ctx.store

    def cascade() -> int:
        with store.transaction():
            removed = store.delete("assessments", {"course_id": course_id, "user_id": user.uid})
            store.delete("schedule_items", {"course_id": course_id, "user_id": user.uid})
            store.delete("courses", {"id": course_id, "user_id": user.uid})
        return removed

    removed = remote("Failed to delete course", cascade)
    logger.info("Deleted course %s and %d assessment(s)", course_id, removed)
    ctx.revalidate(PATH_DASHBOARD, PATH_GRADES, PATH_COURSES, PATH_CALENDAR, PATH_SCHEDULE)
    return {"message": "Course deleted successfully"}
