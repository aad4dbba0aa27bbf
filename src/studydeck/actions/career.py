"""Job-search pipeline: application counters and interviews.

Counters live in one ``career_stats`` row per user, created on first read.
Applications move out of ``pending`` into an outcome column; pending never
drops below zero.
"""

from typing import Any, Dict

from studydeck.actions.base import ActionContext, parse, remote, require_owned, server_action
from studydeck.actions.schemas import InterviewPayload
from studydeck.core.constants import (
    CAREER_STAT_COLUMNS,
    INTERVIEW_STATUS_DONE,
    INTERVIEW_STATUS_OPEN,
    PATH_CALENDAR,
    PATH_CAREER,
)
from studydeck.errors import ValidationError
from studydeck.services.auth_service import AuthUser
from studydeck.services.row_store import RowStore


COUNTER_COLUMNS = tuple(sorted(set(CAREER_STAT_COLUMNS.values())))
OUTCOME_COLUMNS = {"offer": "offer_count", "no_offer": "no_offer_count"}


def load_stats(store: RowStore, user: AuthUser) -> Dict[str, Any]:
    stats = store.find_first("career_stats", {"user_id": user.uid})
    if stats is None:
        stats = store.insert("career_stats", {"user_id": user.uid, **{column: 0 for column in COUNTER_COLUMNS}})
    for column in COUNTER_COLUMNS:
        stats[column] = stats.get(column) or 0
    return stats


def _positive(count: Any) -> int:
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise ValidationError("Count must be a positive whole number")
    return count


def _save(store: RowStore, user: AuthUser, values: Dict[str, int]) -> None:
    remote("Failed to update career stats", lambda: store.update("career_stats", values, {"user_id": user.uid}))


@server_action
def get_career_stats(ctx: ActionContext, user: AuthUser):
    return {"stats": remote("Failed to load career stats", lambda: load_stats(ctx.store, user))}


@server_action
def add_applications(ctx: ActionContext, user: AuthUser, count: int):
    count = _positive(count)
    stats = load_stats(ctx.store, user)
    pending = stats["pending_count"] + count
    _save(ctx.store, user, {"pending_count": pending})
    ctx.revalidate(PATH_CAREER)
    return {"pending_count": pending}


@server_action
def move_applications(ctx: ActionContext, user: AuthUser, target_status: str, count: int):
    """Move ``count`` applications from pending into ``target_status``.

    The target gains the full count even when fewer were pending.
    """
    count = _positive(count)
    column = CAREER_STAT_COLUMNS.get(target_status)
    if column is None or column == "pending_count":
        raise ValidationError(f"Unknown application status: {target_status}")
    stats = load_stats(ctx.store, user)
    values = {
        "pending_count": stats["pending_count"] - min(stats["pending_count"], count),
        column: stats[column] + count,
    }
    _save(ctx.store, user, values)
    ctx.revalidate(PATH_CAREER)
    return values


@server_action
def add_interview(ctx: ActionContext, user: AuthUser, data):
    payload = parse(InterviewPayload, data)
    store = ctx.store
    stats = load_stats(store, user)

    def write() -> Dict[str, Any]:
        with store.transaction():
            row = store.insert(
                "interviews",
                {"user_id": user.uid, **payload.model_dump(), "status": INTERVIEW_STATUS_OPEN},
            )
            store.update(
                "career_stats",
                {
                    "pending_count": stats["pending_count"] - min(stats["pending_count"], 1),
                    "interview_count": stats["interview_count"] + 1,
                },
                {"user_id": user.uid},
            )
        return row

    row = remote("Failed to add interview", write)
    ctx.revalidate(PATH_CAREER, PATH_CALENDAR)
    return {"interview": row}


@server_action
def log_interview_outcome(ctx: ActionContext, user: AuthUser, outcome: str):
    column = OUTCOME_COLUMNS.get(outcome)
    if column is None:
        raise ValidationError("Outcome must be 'offer' or 'no_offer'")
    stats = load_stats(ctx.store, user)
    _save(ctx.store, user, {column: stats[column] + 1})
    ctx.revalidate(PATH_CAREER)
    return {column: stats[column] + 1}


@server_action
def reset_stat(ctx: ActionContext, user: AuthUser, category: str):
    column = CAREER_STAT_COLUMNS.get(category)
    if column is None:
        raise ValidationError(f"Unknown stat: {category}")
    load_stats(ctx.store, user)
    _save(ctx.store, user, {column: 0})
    ctx.revalidate(PATH_CAREER)
    return {}


@server_action
def toggle_interview_complete(ctx: ActionContext, user: AuthUser, interview_id: str, is_complete: bool):
    require_owned(ctx.store, "interviews", interview_id, user, not_found="Interview not found")
    status = INTERVIEW_STATUS_DONE if is_complete else INTERVIEW_STATUS_OPEN
    remote(
        "Failed to update interview",
        lambda: ctx.store.update("interviews", {"status": status}, {"id": interview_id, "user_id": user.uid}),
    )
    ctx.revalidate(PATH_CALENDAR, PATH_CAREER)
    return {"status": status}


@server_action
def get_interviews(ctx: ActionContext, user: AuthUser):
    rows = remote(
        "Failed to fetch interviews",
        lambda: ctx.store.select("interviews", {"user_id": user.uid}, order_by=("interview_date",)),
    )
    return {"data": rows}
