import logging
from typing import Any, Dict, Optional

from studydeck.actions.base import ActionContext, parse, remote, require_owned, server_action
from studydeck.actions.schemas import AssessmentPayload
from studydeck.core.classify import classify_assessment
from studydeck.core.constants import (
    MAX_ASSESSMENTS_PER_COURSE,
    PATH_CALENDAR,
    PATH_DASHBOARD,
    PATH_GRADES,
)
from studydeck.core.dates import parse_instant
from studydeck.core.grades import validate_score
from studydeck.errors import ValidationError
from studydeck.services.auth_service import AuthUser


logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _update(ctx: ActionContext, user: AuthUser, assessment_id: str, values: Dict[str, Any], fallback: str) -> None:
    require_owned(ctx.store, "assessments", assessment_id, user, not_found="Assessment not found")
    remote(fallback, lambda: ctx.store.update("assessments", values, {"id": assessment_id, "user_id": user.uid}))


@server_action
def create_assessment(ctx: ActionContext, user: AuthUser, data):
    payload = parse(AssessmentPayload, data)
    store = ctx.store
    require_owned(store, "courses", payload.course_id, user, not_found="Course not found or access denied")

    if store.count("assessments", {"user_id": user.uid, "course_id": payload.course_id}) >= MAX_ASSESSMENTS_PER_COURSE:
        raise ValidationError(f"Maximum {MAX_ASSESSMENTS_PER_COURSE} assessments allowed per course")

    row = remote(
        "Failed to create assessment",
        lambda: store.insert(
            "assessments",
            {
                "user_id": user.uid,
                "course_id": payload.course_id,
                "name": payload.name,
                "type": classify_assessment(payload.name, payload.type),
                "weight": payload.weight,
                "total_marks": payload.total_marks,
                "due_date": payload.due_date,
                "score": None,
                "is_completed": False,
                "group_tag": payload.group_tag,
            },
        ),
    )
    ctx.revalidate(PATH_GRADES)
    return {"assessmentId": row["id"], "message": "Assessment created successfully"}


@server_action
def delete_assessment(ctx: ActionContext, user: AuthUser, assessment_id: str):
    require_owned(ctx.store, "assessments", assessment_id, user, not_found="Assessment not found")
    remote(
        "Failed to delete assessment",
        lambda: ctx.store.delete("assessments", {"id": assessment_id, "user_id": user.uid}),
    )
    ctx.revalidate(PATH_GRADES)
    return {"message": "Assessment deleted successfully"}


@server_action
def update_assessment_details(
    ctx: ActionContext,
    user: AuthUser,
    assessment_id: str,
    due_date: Optional[str] = _UNSET,
    score: Optional[float] = None,
    name: Optional[str] = None,
):
    """Unified edit: any of date, score and name.

    Entering a score also marks the assessment completed. ``due_date=None``
    clears the date; leaving it out keeps it.
    """
    values: Dict[str, Any] = {}
    if due_date is not _UNSET:
        if due_date is not None and parse_instant(due_date) is None:
            raise ValidationError("Invalid due date")
        values["due_date"] = due_date
    if name is not None and name.strip():
        values["name"] = name.strip()
    if score is not None:
        values["score"] = validate_score(score)
        values["is_completed"] = True

    if not values:
        return {"message": "No changes made"}

    _update(ctx, user, assessment_id, values, "Failed to update assessment")
    ctx.revalidate(PATH_DASHBOARD, PATH_GRADES, PATH_CALENDAR)
    return {"message": "Assessment updated successfully"}


@server_action
def update_assessment_date(ctx: ActionContext, user: AuthUser, assessment_id: str, new_date: str):
    if parse_instant(new_date) is None:
        raise ValidationError("Invalid due date")
    _update(ctx, user, assessment_id, {"due_date": new_date}, "Failed to update date")
    ctx.revalidate(PATH_DASHBOARD, PATH_GRADES, PATH_CALENDAR)
    return {"message": "Date updated successfully"}


@server_action
def update_assessment_score(ctx: ActionContext, user: AuthUser, assessment_id: str, score: Optional[float]):
    value = validate_score(score)
    _update(ctx, user, assessment_id, {"score": value}, "Failed to save grade")
    ctx.revalidate(PATH_DASHBOARD, PATH_GRADES)
    return {"score": value}


@server_action
def toggle_assessment_completion(ctx: ActionContext, user: AuthUser, assessment_id: str, is_completed: bool):
    _update(ctx, user, assessment_id, {"is_completed": bool(is_completed)}, "Failed to update assessment")
    ctx.revalidate(PATH_CALENDAR)
    return {"isCompleted": bool(is_completed)}
