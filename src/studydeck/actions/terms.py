"""Term lookups and the single-current-term rule.

A user has at most one term flagged ``is_current``. Every write that turns a
term current first clears the flag on its siblings, inside one store
transaction.
"""

from datetime import date
import logging
from typing import Any, Dict, List, Optional

from studydeck.actions.base import ActionContext, remote, require_owned, server_action
from studydeck.core.constants import (
    ACADEMIC_TERMS,
    PATH_COURSES,
    PATH_DASHBOARD,
    PATH_GRADES,
)
from studydeck.core.dates import academic_week, parse_instant
from studydeck.errors import ValidationError
from studydeck.services.auth_service import AuthUser
from studydeck.services.row_store import RowStore


logger = logging.getLogger(__name__)


def _normalize_label(label: str) -> str:
    value = (label or "").strip().upper()
    if value not in ACADEMIC_TERMS:
        raise ValidationError(f"Unknown term label: {label}")
    return value


def list_terms(store: RowStore, user: AuthUser) -> List[Dict[str, Any]]:
    terms = store.select("terms", {"user_id": user.uid})
    # Dated terms newest first, placeholder terms (no start date) last.
    dated = sorted((t for t in terms if t.get("start_date")), key=lambda t: t["start_date"], reverse=True)
    undated = [t for t in terms if not t.get("start_date")]
    return dated + undated


def find_current_term(store: RowStore, user: AuthUser) -> Optional[Dict[str, Any]]:
    return store.find_first("terms", {"user_id": user.uid, "is_current": True})


def resolve_term_id(store: RowStore, user: AuthUser, label: str) -> str:
    """Return the id of the user's term with ``label``, creating it if absent.

    The new row is a placeholder: season ``"<label> Term"``, no dates, not
    current. Sequential calls converge on one row; two concurrent first calls
    for the same label can both insert.
    """
    label = _normalize_label(label)
    existing = store.find_first("terms", {"user_id": user.uid, "label": label})
    if existing is not None:
        return existing["id"]
    row = remote(
        "Failed to create term",
        lambda: store.insert(
            "terms",
            {
                "user_id": user.uid,
                "label": label,
                "season": f"{label} Term",
                "start_date": None,
                "end_date": None,
                "is_current": False,
            },
        ),
    )
    logger.info("Created placeholder term %s for %s", label, user.uid)
    return row["id"]


def make_current(store: RowStore, user: AuthUser, term_id: str) -> None:
    with store.transaction():
        store.update("terms", {"is_current": False}, {"user_id": user.uid, "is_current": True})
        store.update("terms", {"is_current": True}, {"user_id": user.uid, "id": term_id})


@server_action
def get_terms(ctx: ActionContext, user: AuthUser):
    return {"data": remote("Failed to fetch terms", lambda: list_terms(ctx.store, user))}


@server_action
def get_current_term(ctx: ActionContext, user: AuthUser, today: Optional[date] = None):
    """The current term, with the teaching week of ``today`` when the term has a start date."""
    term = remote("Failed to fetch current term", lambda: find_current_term(ctx.store, user))
    week = None
    start = parse_instant(term.get("start_date")) if term else None
    if start is not None:
        week = academic_week((today or date.today()).isoformat(), start.date())
    return {"data": term, "week": week}


@server_action
def get_or_create_term(ctx: ActionContext, user: AuthUser, label: str):
    return {"termId": resolve_term_id(ctx.store, user, label)}


@server_action
def set_current_term(ctx: ActionContext, user: AuthUser, term_id: str):
    require_owned(ctx.store, "terms", term_id, user, not_found="Term not found")
    remote("Failed to set current term", lambda: make_current(ctx.store, user, term_id))
    ctx.revalidate(PATH_DASHBOARD, PATH_GRADES, PATH_COURSES)
    return {"termId": term_id}
