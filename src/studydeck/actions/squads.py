"""Study squads: small groups joined by invite code.

A user belongs to at most one squad. The creator joins as ``leader`` and is
the only one who can publish task templates; owners cannot leave.

A squad can carry a curriculum: a snapshot of the leader's courses and their
assessments taken when the squad is created. Everyone who joins gets their
own copy of those courses. Nobody edits the snapshot itself.
"""

import logging
import secrets
import string
from typing import Any, Dict, List, Mapping, Tuple

from studydeck.actions.base import ActionContext, parse, remote, server_action
from studydeck.actions.schemas import (
    CreateSquadPayload,
    CurriculumSquadPayload,
    JoinSquadPayload,
    TaskTemplatePayload,
)
from studydeck.actions.terms import find_current_term, resolve_term_id
from studydeck.core.constants import (
    ACADEMIC_TERMS,
    MAX_ASSESSMENTS_PER_COURSE,
    MAX_COURSES_PER_TERM,
    PATH_CALENDAR,
    PATH_COURSES,
    PATH_DASHBOARD,
    PATH_GRADES,
    PATH_GROUPS,
)
from studydeck.errors import AuthorizationError, ValidationError
from studydeck.services.auth_service import AuthUser
from studydeck.services.row_store import RowStore


logger = logging.getLogger(__name__)

INVITE_ALPHABET = string.ascii_lowercase + string.digits
INVITE_CODE_LENGTH = 8
ROLE_LEADER = "leader"
ROLE_MEMBER = "member"

# Columns an assessment shares with its curriculum snapshot.
SNAPSHOT_ASSESSMENT_COLUMNS = ("name", "type", "weight", "total_marks", "due_date", "group_tag")


def generate_invite_code(store: RowStore, attempts: int = 10) -> str:
    for _ in range(attempts):
        code = "".join(secrets.choice(INVITE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))
        if store.find_first("squads", {"invite_code": code}) is None:
            return code
    raise ValidationError("Could not generate a unique invite code")


def _membership(store: RowStore, user: AuthUser):
    return store.find_first("squad_memberships", {"user_id": user.uid})


def _insert_squad(store: RowStore, user: AuthUser, payload: CreateSquadPayload) -> Dict[str, Any]:
    squad = store.insert(
        "squads",
        {
            **payload.model_dump(include=set(CreateSquadPayload.model_fields)),
            "owner_id": user.uid,
            "invite_code": generate_invite_code(store),
        },
    )
    store.insert("squad_memberships", {"user_id": user.uid, "squad_id": squad["id"], "role": ROLE_LEADER})
    return squad


def snapshot_course(store: RowStore, user: AuthUser, squad_id: str, course: Mapping[str, Any]) -> int:
    """Copy one of the leader's courses into the squad curriculum.

    The leader's course and assessments are linked to their snapshot rows so
    they are not cloned back to the leader. Returns the number of assessments
    copied.
    """
    squad_course = store.insert(
        "squad_courses",
        {
            "squad_id": squad_id,
            "course_code": course["course_code"],
            "course_name": course.get("course_name"),
            "color": course.get("color"),
            "credits": course.get("credits"),
            "created_by": user.uid,
        },
    )
    store.update("courses", {"squad_course_id": squad_course["id"]}, {"id": course["id"], "user_id": user.uid})
    assessments = store.select("assessments", {"user_id": user.uid, "course_id": course["id"]})
    for assessment in assessments:
        snapshot = store.insert(
            "squad_assessments",
            {
                "squad_id": squad_id,
                "squad_course_id": squad_course["id"],
                **{column: assessment.get(column) for column in SNAPSHOT_ASSESSMENT_COLUMNS},
            },
        )
        store.update(
            "assessments",
            {"squad_assessment_id": snapshot["id"]},
            {"id": assessment["id"], "user_id": user.uid},
        )
    return len(assessments)


def _clone_term_id(store: RowStore, user: AuthUser, squad: Mapping[str, Any]) -> str:
    label = (squad.get("term") or "").strip().upper()
    if label in ACADEMIC_TERMS:
        return resolve_term_id(store, user, label)
    current = find_current_term(store, user)
    if current is None:
        raise ValidationError("No active term found. Please set up a term first.")
    return current["id"]


def clone_curriculum(store: RowStore, user: AuthUser, squad: Mapping[str, Any]) -> Tuple[int, int]:
    """Give ``user`` their own copy of the squad's curriculum.

    Courses land in the term named by the squad, or the user's current term
    when the squad names none. Courses the user already has a copy of are
    skipped, so rejoining does not duplicate anything. Returns the number of
    courses and assessments created.
    """
    curriculum = store.select("squad_courses", {"squad_id": squad["id"]})
    if not curriculum:
        return 0, 0

    term_id = _clone_term_id(store, user, squad)
    existing = store.select("courses", {"user_id": user.uid, "term_id": term_id})
    copied = {course.get("squad_course_id") for course in existing}
    pending = [course for course in curriculum if course["id"] not in copied]
    if len(existing) + len(pending) > MAX_COURSES_PER_TERM:
        raise ValidationError(f"Term limit reached. Maximum {MAX_COURSES_PER_TERM} courses allowed per term.")

    by_course: Dict[str, List[Dict[str, Any]]] = {}
    for snapshot in store.select("squad_assessments", {"squad_id": squad["id"]}):
        by_course.setdefault(snapshot["squad_course_id"], []).append(snapshot)

    assessments = 0
    for squad_course in pending:
        course = store.insert(
            "courses",
            {
                "user_id": user.uid,
                "term_id": term_id,
                "course_code": squad_course["course_code"],
                "course_name": squad_course.get("course_name"),
                "color": squad_course.get("color"),
                "credits": squad_course.get("credits"),
                "squad_course_id": squad_course["id"],
            },
        )
        for snapshot in by_course.get(squad_course["id"], [])[:MAX_ASSESSMENTS_PER_COURSE]:
            store.insert(
                "assessments",
                {
                    "user_id": user.uid,
                    "course_id": course["id"],
                    **{column: snapshot.get(column) for column in SNAPSHOT_ASSESSMENT_COLUMNS},
                    "score": None,
                    "is_completed": False,
                    "squad_assessment_id": snapshot["id"],
                },
            )
            assessments += 1
    return len(pending), assessments


@server_action
def create_squad(ctx: ActionContext, user: AuthUser, data):
    payload = parse(CreateSquadPayload, data)
    store = ctx.store
    if _membership(store, user) is not None:
        raise ValidationError("You must leave your current squad first")

    def write() -> Dict[str, Any]:
        with store.transaction():
            return _insert_squad(store, user, payload)

    squad = remote("Failed to create squad", write)
    logger.info("Squad %s created by %s", squad["id"], user.uid)
    ctx.revalidate(PATH_GROUPS)
    return {"squad": squad}


@server_action
def create_squad_with_curriculum(ctx: ActionContext, user: AuthUser, data):
    """Create a squad and snapshot the leader's chosen courses as its curriculum."""
    payload = parse(CurriculumSquadPayload, data)
    store = ctx.store
    if _membership(store, user) is not None:
        raise ValidationError("You must leave your current squad first")

    course_ids = list(dict.fromkeys(payload.course_ids))
    courses = store.select("courses", {"user_id": user.uid, "id": course_ids}) if course_ids else []
    if len(courses) != len(course_ids):
        raise AuthorizationError()

    def write() -> Tuple[Dict[str, Any], int]:
        with store.transaction():
            squad = _insert_squad(store, user, payload)
            copied = sum(snapshot_course(store, user, squad["id"], course) for course in courses)
        return squad, copied

    squad, assessments = remote("Failed to create squad", write)
    logger.info(
        "Squad %s created by %s with %d courses and %d assessments",
        squad["id"],
        user.uid,
        len(courses),
        assessments,
    )
    ctx.revalidate(PATH_GROUPS, PATH_COURSES)
    return {
        "squad": squad,
        "message": f'Squad "{squad["name"]}" created with {len(courses)} course templates',
    }


@server_action
def join_squad(ctx: ActionContext, user: AuthUser, data):
    payload = parse(JoinSquadPayload, data)
    store = ctx.store
    squad = store.find_first("squads", {"invite_code": payload.invite_code})
    if squad is None:
        raise ValidationError("Invalid invite code")

    current = _membership(store, user)
    if current is not None:
        joined = store.find_first("squads", {"id": current["squad_id"]}) or {}
        name = joined.get("name") or "a squad"
        raise ValidationError(f"You are already in {name}. Leave it to join this one.")

    def write() -> Tuple[int, int]:
        with store.transaction():
            store.insert("squad_memberships", {"user_id": user.uid, "squad_id": squad["id"], "role": ROLE_MEMBER})
            return clone_curriculum(store, user, squad)

    courses, assessments = remote("Failed to join squad", write)
    if courses:
        logger.info("Cloned %d courses and %d assessments from squad %s for %s", courses, assessments, squad["id"], user.uid)
        ctx.revalidate(PATH_DASHBOARD, PATH_GRADES, PATH_COURSES)
    ctx.revalidate(PATH_GROUPS, PATH_CALENDAR)
    return {"squad": squad, "coursesCloned": courses, "assessmentsCloned": assessments}


@server_action
def leave_squad(ctx: ActionContext, user: AuthUser, squad_id: str):
    store = ctx.store
    squad = store.find_first("squads", {"id": squad_id})
    if squad is not None and squad.get("owner_id") == user.uid:
        raise ValidationError("Squad owners cannot leave. Delete the squad instead.")
    removed = remote(
        "Failed to leave squad",
        lambda: store.delete("squad_memberships", {"user_id": user.uid, "squad_id": squad_id}),
    )
    if not removed:
        raise ValidationError("You are not a member of this squad")
    ctx.revalidate(PATH_GROUPS, PATH_CALENDAR)
    return {}


@server_action
def get_my_squad(ctx: ActionContext, user: AuthUser):
    store = ctx.store
    membership = _membership(store, user)
    if membership is None:
        return {"squads": []}
    squad = store.find_first("squads", {"id": membership["squad_id"]})
    if squad is None:
        raise ValidationError("Failed to fetch squad details")
    members = store.select("squad_memberships", {"squad_id": squad["id"]})
    return {
        "squads": [
            {
                **squad,
                "my_role": membership["role"],
                "joined_at": membership.get("created_at"),
                "member_count": len(members),
            }
        ]
    }


@server_action
def create_task_template(ctx: ActionContext, user: AuthUser, data):
    payload = parse(TaskTemplatePayload, data)
    store = ctx.store
    membership = store.find_first("squad_memberships", {"user_id": user.uid, "squad_id": payload.squad_id})
    if membership is None or membership.get("role") != ROLE_LEADER:
        raise AuthorizationError("Only squad leaders can create templates")
    template = remote(
        "Failed to create template",
        lambda: store.insert("squad_templates", {**payload.model_dump(mode="json"), "is_archived": False}),
    )
    ctx.revalidate(PATH_CALENDAR)
    return {"template": template}
