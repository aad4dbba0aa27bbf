from typing import Any, Dict

from studydeck.actions.base import ActionContext, parse, remote, server_action
from studydeck.actions.schemas import AcademicProfilePayload, ProfileUpdatePayload
from studydeck.actions.terms import make_current, resolve_term_id
from studydeck.core.constants import (
    LEADERBOARD_PRIVACY_MODES,
    PATH_COURSES,
    PATH_DASHBOARD,
    PATH_GRADES,
    PATH_LEADERBOARD,
    PATH_PROFILE,
)
from studydeck.services.auth_service import AuthUser
from studydeck.services.row_store import RowStore


def ensure_profile(store: RowStore, user: AuthUser) -> Dict[str, Any]:
    """The user's profile row, created with defaults on first use."""
    profile = store.find_first("profiles", {"id": user.uid})
    if profile is not None:
        return profile
    return store.insert(
        "profiles",
        {
            "id": user.uid,
            "full_name": user.name or None,
            "avatar_url": None,
            "is_anonymous": False,
            "is_participating": True,
            "focus_minutes": 0,
            "leaderboard_privacy": LEADERBOARD_PRIVACY_MODES[0],
        },
    )


def _update_profile(store: RowStore, user: AuthUser, values: Dict[str, Any]) -> None:
    def write() -> None:
        ensure_profile(store, user)
        store.update("profiles", values, {"id": user.uid})

    remote("Failed to update profile", write)


@server_action
def get_profile(ctx: ActionContext, user: AuthUser):
    return {"profile": remote("Failed to load profile", lambda: ensure_profile(ctx.store, user))}


@server_action
def update_profile(ctx: ActionContext, user: AuthUser, data):
    payload = parse(ProfileUpdatePayload, data)
    _update_profile(ctx.store, user, {"full_name": payload.full_name})
    ctx.revalidate(PATH_PROFILE)
    return {}


@server_action
def update_academic_profile(ctx: ActionContext, user: AuthUser, data):
    """Record university, program and term; the term becomes the current one."""
    payload = parse(AcademicProfilePayload, data)
    store = ctx.store
    _update_profile(
        store,
        user,
        {
            "university_id": payload.university_id,
            "program_id": payload.program_id,
            "current_term_label": payload.term_label,
        },
    )
    term_id = resolve_term_id(store, user, payload.term_label)
    remote("Failed to set current term", lambda: make_current(store, user, term_id))
    ctx.revalidate(PATH_DASHBOARD, PATH_PROFILE, PATH_COURSES, PATH_GRADES)
    return {"termId": term_id}


@server_action
def toggle_privacy(ctx: ActionContext, user: AuthUser, is_anonymous: bool):
    _update_profile(ctx.store, user, {"is_anonymous": bool(is_anonymous)})
    ctx.revalidate(PATH_PROFILE, PATH_LEADERBOARD)
    return {"isAnonymous": bool(is_anonymous)}


@server_action
def toggle_participation(ctx: ActionContext, user: AuthUser, is_participating: bool):
    _update_profile(ctx.store, user, {"is_participating": bool(is_participating)})
    ctx.revalidate(PATH_PROFILE, PATH_LEADERBOARD)
    return {"isParticipating": bool(is_participating)}
