from typing import Any, Dict, List

from studydeck.actions.base import ActionContext, remote, server_action
from studydeck.actions.settings import ensure_profile
from studydeck.core.constants import LEADERBOARD_PRIVACY_MODES, PATH_DASHBOARD, PATH_LEADERBOARD
from studydeck.core.grades import course_stats
from studydeck.services.auth_service import AuthUser
from studydeck.services.row_store import RowStore


ANONYMOUS_NAME = "Anonymous User"
ANONYMOUS_MEMBER = "Anonymous Member"
PRIVACY_PUBLIC, PRIVACY_INCOGNITO, PRIVACY_HIDDEN = LEADERBOARD_PRIVACY_MODES


def _display(profile: Dict[str, Any], is_me: bool) -> Dict[str, Any]:
    masked = bool(profile.get("is_anonymous")) and not is_me
    return {
        "full_name": ANONYMOUS_NAME if masked else profile.get("full_name"),
        "avatar_url": None if masked else profile.get("avatar_url"),
    }


def build_leaderboard(store: RowStore, user: AuthUser) -> Dict[str, List[Dict[str, Any]]]:
    """Rank participating profiles by their weighted average over scored work.

    Profiles with no graded work are left out. Per course code, the best
    average is reported as that subject's specialist.
    """
    ensure_profile(store, user)
    profiles = store.select("profiles", {"is_participating": True})

    rankings = []
    best: Dict[str, Dict[str, Any]] = {}
    for profile in profiles:
        uid = profile["id"]
        is_me = uid == user.uid
        assessments = [a for a in store.select("assessments", {"user_id": uid}) if a.get("score") is not None]
        if not assessments:
            continue
        average = course_stats(assessments).average
        if average > 0:
            rankings.append(
                {
                    "user_id": uid,
                    **_display(profile, is_me),
                    "is_anonymous": bool(profile.get("is_anonymous")),
                    "is_me": is_me,
                    "current_average": average,
                    "focus_minutes": profile.get("focus_minutes") or 0,
                }
            )

        courses = {c["id"]: c for c in store.select("courses", {"user_id": uid})}
        by_code: Dict[str, List[Dict[str, Any]]] = {}
        for a in assessments:
            course = courses.get(a["course_id"])
            if course is not None:
                by_code.setdefault(course["course_code"], []).append(a)
        for code, items in by_code.items():
            score = course_stats(items).average
            if code not in best or score > best[code]["best_score"]:
                holder = _display(profile, is_me)
                best[code] = {
                    "subject": code,
                    "best_score": score,
                    "holder_id": uid,
                    "holder_name": (holder["full_name"] or "Unknown").split(" ")[0],
                }

    rankings.sort(key=lambda row: row["current_average"], reverse=True)
    for position, row in enumerate(rankings, start=1):
        row["rank"] = position
    return {"rankings": rankings, "specialists": [best[code] for code in sorted(best)]}


@server_action
def get_leaderboard(ctx: ActionContext, user: AuthUser):
    return remote("Failed to load leaderboard", lambda: build_leaderboard(ctx.store, user))


def build_squad_leaderboard(store: RowStore, user: AuthUser) -> Dict[str, Any]:
    """Rank the members of the user's squad by focus minutes.

    Hidden members are left out of the rankings and incognito members are
    masked, except to themselves. Both still count toward the squad average.
    """
    membership = store.find_first("squad_memberships", {"user_id": user.uid})
    if membership is None:
        return {"status": "no_squad", "rankings": [], "stats": {"average": 0, "totalMembers": 0}}

    members = store.select("squad_memberships", {"squad_id": membership["squad_id"]})
    profiles = {p["id"]: p for p in store.select("profiles", {"id": [m["user_id"] for m in members]})}
    total = 0
    rankings = []
    for member in members:
        uid = member["user_id"]
        profile = profiles.get(uid) or {}
        privacy = profile.get("leaderboard_privacy") or PRIVACY_PUBLIC
        is_me = uid == user.uid
        minutes = profile.get("focus_minutes") or 0
        total += minutes
        if privacy == PRIVACY_HIDDEN and not is_me:
            continue
        masked = privacy == PRIVACY_INCOGNITO and not is_me
        rankings.append(
            {
                "user_id": uid,
                "display_name": ANONYMOUS_MEMBER if masked else (profile.get("full_name") or "Unknown"),
                "avatar_url": None if masked else profile.get("avatar_url"),
                "focus_minutes": minutes,
                "role": member["role"],
                "privacy_status": privacy,
                "is_me": is_me,
            }
        )

    rankings.sort(key=lambda row: row["focus_minutes"], reverse=True)
    for position, row in enumerate(rankings, start=1):
        row["rank"] = position
    average = round(total / len(members)) if members else 0
    return {"status": "success", "rankings": rankings, "stats": {"average": average, "totalMembers": len(members)}}


@server_action
def get_squad_leaderboard(ctx: ActionContext, user: AuthUser):
    return remote("Failed to load squad leaderboard", lambda: build_squad_leaderboard(ctx.store, user))


@server_action
def cycle_privacy_mode(ctx: ActionContext, user: AuthUser):
    """Step the squad leaderboard visibility: public, incognito, hidden, then public again."""
    store = ctx.store

    def write() -> str:
        profile = ensure_profile(store, user)
        current = profile.get("leaderboard_privacy") or PRIVACY_PUBLIC
        position = LEADERBOARD_PRIVACY_MODES.index(current) if current in LEADERBOARD_PRIVACY_MODES else -1
        mode = LEADERBOARD_PRIVACY_MODES[(position + 1) % len(LEADERBOARD_PRIVACY_MODES)]
        store.update("profiles", {"leaderboard_privacy": mode}, {"id": user.uid})
        return mode

    mode = remote("Failed to update privacy", write)
    ctx.revalidate(PATH_LEADERBOARD, PATH_DASHBOARD)
    return {"mode": mode}
