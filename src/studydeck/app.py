from functools import lru_cache
import logging
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from studydeck.actions import (
    assessments,
    calendar,
    career,
    courses,
    focus,
    leaderboard,
    personal_tasks,
    schedule,
    squad_calendar,
    squads,
    tasks,
    terms,
)
from studydeck.actions import settings as profile
from studydeck.actions.base import ActionContext
from studydeck.config.logging import configure_logging
from studydeck.config.settings import settings
from studydeck.errors import NOT_AUTHENTICATED, UNAUTHORIZED
from studydeck.services import auth_service, row_store
from studydeck.services.auth_service import AuthService
from studydeck.services.revalidation import PathInvalidator
from studydeck.services.row_store import RowStore


configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="StudyDeck API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_origin_regex=settings.cors_allow_origin_regex or None,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

invalidator = PathInvalidator()
invalidator.subscribe(lambda path: logger.debug("Marked %s stale", path))


class CompletionPayload(BaseModel):
    is_completed: bool


class DatePayload(BaseModel):
    date: str


class ScorePayload(BaseModel):
    score: Optional[float] = None


class CountPayload(BaseModel):
    count: int


class MovePayload(BaseModel):
    target_status: str
    count: int


class OutcomePayload(BaseModel):
    outcome: str


class DurationPayload(BaseModel):
    duration: int


class StatusPayload(BaseModel):
    status: str


class FlagPayload(BaseModel):
    value: bool


class AssessmentDetailsPayload(BaseModel):
    due_date: Optional[str] = None
    score: Optional[float] = None
    name: Optional[str] = None


@lru_cache
def get_store() -> RowStore:
    return row_store.from_settings()


@lru_cache
def get_auth() -> AuthService:
    return auth_service.from_settings()


def get_context(
    x_appwrite_user_jwt: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
    store: RowStore = Depends(get_store),
    auth: AuthService = Depends(get_auth),
) -> ActionContext:
    token = x_appwrite_user_jwt if settings.backend != "sqlite" else x_user_id
    return ActionContext(store=store, auth=auth, invalidator=invalidator, token=token)


def respond(envelope: Dict[str, Any]) -> JSONResponse:
    if envelope.get("success"):
        return JSONResponse(envelope)
    error = envelope.get("error")
    if error == NOT_AUTHENTICATED:
        code = 401
    elif error == UNAUTHORIZED:
        code = 403
    else:
        code = 400
    return JSONResponse(envelope, status_code=code)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok", "backend": settings.backend}


# Terms


@app.get("/terms")
def list_terms(ctx: ActionContext = Depends(get_context)):
    return respond(terms.get_terms(ctx))


@app.get("/terms/current")
def current_term(ctx: ActionContext = Depends(get_context)):
    return respond(terms.get_current_term(ctx))


@app.put("/terms/{term_id}/current")
def set_current_term(term_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(terms.set_current_term(ctx, term_id))


# Courses and grades


@app.get("/courses")
def list_courses(term_id: Optional[str] = None, ctx: ActionContext = Depends(get_context)):
    return respond(courses.get_courses(ctx, term_id))


@app.post("/courses")
def create_course(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(courses.create_course(ctx, payload))


@app.get("/courses/{course_id}")
def get_course(course_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(courses.get_course_with_assessments(ctx, course_id))


@app.patch("/courses/{course_id}")
def update_course(course_id: str, payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(courses.update_course_details(ctx, course_id, payload))


@app.delete("/courses/{course_id}")
def delete_course(course_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(courses.delete_course(ctx, course_id))


@app.get("/grades")
def grades_overview(term_id: Optional[str] = None, ctx: ActionContext = Depends(get_context)):
    return respond(courses.get_grades_overview(ctx, term_id))


# Assessments


@app.post("/assessments")
def create_assessment(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(assessments.create_assessment(ctx, payload))


@app.patch("/assessments/{assessment_id}")
def update_assessment(
    assessment_id: str,
    payload: AssessmentDetailsPayload,
    ctx: ActionContext = Depends(get_context),
):
    changes = payload.model_dump(exclude_unset=True)
    return respond(assessments.update_assessment_details(ctx, assessment_id, **changes))


@app.put("/assessments/{assessment_id}/date")
def move_assessment(assessment_id: str, payload: DatePayload, ctx: ActionContext = Depends(get_context)):
    return respond(assessments.update_assessment_date(ctx, assessment_id, payload.date))


@app.put("/assessments/{assessment_id}/score")
def score_assessment(assessment_id: str, payload: ScorePayload, ctx: ActionContext = Depends(get_context)):
    return respond(assessments.update_assessment_score(ctx, assessment_id, payload.score))


@app.put("/assessments/{assessment_id}/completion")
def complete_assessment(assessment_id: str, payload: CompletionPayload, ctx: ActionContext = Depends(get_context)):
    return respond(assessments.toggle_assessment_completion(ctx, assessment_id, payload.is_completed))


@app.delete("/assessments/{assessment_id}")
def delete_assessment(assessment_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(assessments.delete_assessment(ctx, assessment_id))


# Schedule


@app.get("/schedule")
def list_schedule(ctx: ActionContext = Depends(get_context)):
    return respond(schedule.get_schedule_items(ctx))


@app.post("/schedule")
def create_schedule_item(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(schedule.create_schedule_item(ctx, payload))


@app.patch("/schedule/{item_id}")
def update_schedule_item(item_id: str, payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(schedule.update_schedule_item(ctx, item_id, payload))


@app.delete("/schedule/{item_id}")
def delete_schedule_item(item_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(schedule.delete_schedule_item(ctx, item_id))


# Task lists and tasks


@app.get("/task-lists")
def list_task_lists(ctx: ActionContext = Depends(get_context)):
    return respond(tasks.get_task_lists_with_tasks(ctx))


@app.post("/task-lists")
def create_task_list(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(tasks.create_task_list(ctx, payload))


@app.delete("/task-lists/{list_id}")
def delete_task_list(list_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(tasks.delete_task_list(ctx, list_id))


@app.post("/tasks")
def create_task(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(tasks.create_task(ctx, payload))


@app.post("/tasks/reorder")
def reorder_tasks(task_ids: List[str] = Body(..., embed=True), ctx: ActionContext = Depends(get_context)):
    return respond(tasks.reorder_tasks(ctx, {"task_ids": task_ids}))


@app.patch("/tasks/{task_id}")
def update_task(task_id: str, payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(tasks.update_task(ctx, task_id, payload))


@app.put("/tasks/{task_id}/completion")
def complete_task(task_id: str, payload: CompletionPayload, ctx: ActionContext = Depends(get_context)):
    return respond(tasks.toggle_task_complete(ctx, task_id, payload.is_completed))


@app.delete("/tasks/{task_id}")
def delete_task(task_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(tasks.delete_task(ctx, task_id))


# Personal tasks


@app.post("/personal-tasks")
def create_personal_task(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(personal_tasks.create_personal_task(ctx, payload))


@app.put("/personal-tasks/{task_id}/completion")
def complete_personal_task(task_id: str, payload: CompletionPayload, ctx: ActionContext = Depends(get_context)):
    return respond(personal_tasks.toggle_personal_task_complete(ctx, task_id, payload.is_completed))


@app.put("/personal-tasks/{task_id}/date")
def move_personal_task(task_id: str, payload: DatePayload, ctx: ActionContext = Depends(get_context)):
    return respond(personal_tasks.update_personal_task_date(ctx, task_id, payload.date))


@app.delete("/personal-tasks/{task_id}")
def delete_personal_task(task_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(personal_tasks.delete_personal_task(ctx, task_id))


# Career


@app.get("/career/stats")
def career_stats(ctx: ActionContext = Depends(get_context)):
    return respond(career.get_career_stats(ctx))


@app.post("/career/applications")
def add_applications(payload: CountPayload, ctx: ActionContext = Depends(get_context)):
    return respond(career.add_applications(ctx, payload.count))


@app.post("/career/applications/move")
def move_applications(payload: MovePayload, ctx: ActionContext = Depends(get_context)):
    return respond(career.move_applications(ctx, payload.target_status, payload.count))


@app.post("/career/outcomes")
def log_outcome(payload: OutcomePayload, ctx: ActionContext = Depends(get_context)):
    return respond(career.log_interview_outcome(ctx, payload.outcome))


@app.post("/career/stats/{category}/reset")
def reset_stat(category: str, ctx: ActionContext = Depends(get_context)):
    return respond(career.reset_stat(ctx, category))


@app.get("/career/interviews")
def list_interviews(ctx: ActionContext = Depends(get_context)):
    return respond(career.get_interviews(ctx))


@app.post("/career/interviews")
def add_interview(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(career.add_interview(ctx, payload))


@app.put("/career/interviews/{interview_id}/completion")
def complete_interview(interview_id: str, payload: CompletionPayload, ctx: ActionContext = Depends(get_context)):
    return respond(career.toggle_interview_complete(ctx, interview_id, payload.is_completed))


# Calendar


@app.get("/calendar")
def calendar_data(ctx: ActionContext = Depends(get_context)):
    return respond(calendar.get_calendar_data(ctx))


@app.get("/calendar/days")
def calendar_days(show_completed: bool = True, ctx: ActionContext = Depends(get_context)):
    return respond(calendar.get_calendar_buckets(ctx, show_completed))


@app.get("/calendar/feed.ics")
def calendar_feed(ctx: ActionContext = Depends(get_context)):
    envelope = calendar.get_calendar_feed(ctx)
    if not envelope.get("success"):
        return respond(envelope)
    return Response(
        envelope["ics"],
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": "inline; filename=calendar.ics"},
    )


# Focus


@app.get("/focus/upcoming")
def upcoming(ctx: ActionContext = Depends(get_context)):
    return respond(focus.get_upcoming_tasks(ctx))


@app.post("/focus/sessions")
def start_session(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(focus.start_focus_session(ctx, payload))


@app.post("/focus/sessions/{session_id}/end")
def end_session(session_id: str, payload: DurationPayload, ctx: ActionContext = Depends(get_context)):
    return respond(focus.end_focus_session(ctx, session_id, payload.duration))


@app.post("/focus/items/{item_id}/complete")
def complete_item(item_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(focus.complete_item(ctx, item_id))


# Squads


@app.get("/squads/mine")
def my_squad(ctx: ActionContext = Depends(get_context)):
    return respond(squads.get_my_squad(ctx))


@app.post("/squads")
def create_squad(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(squads.create_squad(ctx, payload))


@app.post("/squads/join")
def join_squad(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(squads.join_squad(ctx, payload))


@app.post("/squads/{squad_id}/leave")
def leave_squad(squad_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(squads.leave_squad(ctx, squad_id))


@app.post("/squads/{squad_id}/templates")
def create_template(squad_id: str, payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(squads.create_task_template(ctx, {**payload, "squad_id": squad_id}))


@app.post("/squads/curriculum")
def create_squad_with_curriculum(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(squads.create_squad_with_curriculum(ctx, payload))


@app.get("/squads/calendar")
def my_squad_calendar(start: Optional[str] = None, end: Optional[str] = None, ctx: ActionContext = Depends(get_context)):
    return respond(squad_calendar.get_my_calendar(ctx, start, end))


@app.get("/squads/templates/{template_id}/state")
def get_task_state(template_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(squad_calendar.get_task_state(ctx, template_id))


@app.put("/squads/templates/{template_id}/status")
def update_task_status(template_id: str, payload: StatusPayload, ctx: ActionContext = Depends(get_context)):
    return respond(squad_calendar.update_task_status(ctx, template_id, payload.status))


@app.patch("/squads/templates/{template_id}/state")
def update_task_details(template_id: str, payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(squad_calendar.update_task_details(ctx, {**payload, "template_id": template_id}))


@app.delete("/squads/templates/{template_id}/state")
def delete_task_state(template_id: str, ctx: ActionContext = Depends(get_context)):
    return respond(squad_calendar.delete_task_state(ctx, template_id))


@app.get("/squads/leaderboard")
def squad_leaderboard(ctx: ActionContext = Depends(get_context)):
    return respond(leaderboard.get_squad_leaderboard(ctx))


# Profile and leaderboard


@app.get("/profile")
def get_profile(ctx: ActionContext = Depends(get_context)):
    return respond(profile.get_profile(ctx))


@app.patch("/profile")
def update_profile(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(profile.update_profile(ctx, payload))


@app.put("/profile/academic")
def update_academic_profile(payload: Dict[str, Any] = Body(...), ctx: ActionContext = Depends(get_context)):
    return respond(profile.update_academic_profile(ctx, payload))


@app.put("/profile/privacy")
def set_privacy(payload: FlagPayload, ctx: ActionContext = Depends(get_context)):
    return respond(profile.toggle_privacy(ctx, payload.value))


@app.put("/profile/participation")
def set_participation(payload: FlagPayload, ctx: ActionContext = Depends(get_context)):
    return respond(profile.toggle_participation(ctx, payload.value))


@app.get("/leaderboard")
def get_leaderboard(ctx: ActionContext = Depends(get_context)):
    return respond(leaderboard.get_leaderboard(ctx))


@app.post("/leaderboard/privacy/cycle")
def cycle_privacy_mode(ctx: ActionContext = Depends(get_context)):
    return respond(leaderboard.cycle_privacy_mode(ctx))
