"""Per-user route progress: attempts, sends, ratings, notes and wishlist."""

import logging
from typing import Any, Dict, List, Optional

from circuit.backend import BackendClient
from circuit.schemas import LogbookEntry, UserRouteProgress


logger = logging.getLogger(__name__)

PROGRESS_COLUMNS = "user_id, route_id, attempts, sent_at, rating, notes, wishlist, updated_at"
LOGBOOK_COLUMNS = (
    "attempts, sent_at, rating, notes, wishlist, updated_at, "
    "route:routes!inner(id, gym_id, name, grade, grade_color, location, setter, date_set, image_url, removed_at)"
)


def _logbook_entry(row: Dict[str, Any], include_private: bool) -> LogbookEntry:
    if not include_private:
        row = {**row, "notes": None, "wishlist": False}
    return LogbookEntry.model_validate(row)


class ProgressService:
    """Service for the `user_route_progress` table."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def get_progress(self, user_id: str, route_id: str) -> Optional[UserRouteProgress]:
        """Get the user's row for a route, or None if they never touched it."""
        response = await (
            self.backend.table("user_route_progress")
            .select(PROGRESS_COLUMNS)
            .eq("user_id", user_id)
            .eq("route_id", route_id)
            .maybe_single()
            .execute()
        )
        return UserRouteProgress.model_validate(response.data) if response.data else None

    async def progress_for_routes(self, user_id: str, route_ids: List[str]) -> Dict[str, UserRouteProgress]:
        if not route_ids:
            return {}
        response = await (
            self.backend.table("user_route_progress")
            .select(PROGRESS_COLUMNS)
            .eq("user_id", user_id)
            .in_("route_id", route_ids)
            .execute()
        )
        rows = [UserRouteProgress.model_validate(row) for row in response.data or []]
        return {p.route_id: p for p in rows}

    async def upsert(self, progress: UserRouteProgress) -> UserRouteProgress:
        """Write the full row, keyed on (user_id, route_id)."""
        response = await (
            self.backend.table("user_route_progress")
            .upsert(progress.to_row(), on_conflict="user_id,route_id")
            .execute()
        )
        data = response.data[0] if isinstance(response.data, list) and response.data else response.data
        logger.info(
            "Saved progress for user %s on route %s (attempts=%s, sent=%s)",
            progress.user_id, progress.route_id, progress.attempts, progress.sent_at is not None,
        )
        return UserRouteProgress.model_validate(data) if data else progress

    async def logbook(
        self,
        user_id: str,
        page: int,
        page_size: int,
        include_private: bool = False,
    ) -> List[LogbookEntry]:
        """
        Sent and attempted routes, most recent activity first.

        Removed routes are kept; the entry reports them as removed.
        Notes and wishlist flags are blanked unless `include_private`.
        """
        start = page * page_size
        response = await (
            self.backend.table("user_route_progress")
            .select(LOGBOOK_COLUMNS)
            .eq("user_id", user_id)
            .or_("sent_at.not.is.null,attempts.gt.0")
            .order("updated_at", desc=True)
            .range(start, start + page_size - 1)
            .execute()
        )
        return [_logbook_entry(row, include_private) for row in response.data or []]

    async def wishlist(self, user_id: str, page: int, page_size: int) -> List[LogbookEntry]:
        """Active routes the user has bookmarked."""
        start = page * page_size
        response = await (
            self.backend.table("user_route_progress")
            .select(LOGBOOK_COLUMNS)
            .eq("user_id", user_id)
            .eq("wishlist", True)
            .is_("route.removed_at", None)
            .order("updated_at", desc=True)
            .range(start, start + page_size - 1)
            .execute()
        )
        return [_logbook_entry(row, include_private=True) for row in response.data or []]

    async def sends(self, user_id: str) -> List[Dict[str, Any]]:
        """Every sent route of a user with its grade, for stats."""
        response = await (
            self.backend.table("user_route_progress")
            .select("route_id, route:routes(grade)")
            .eq("user_id", user_id)
            .not_is("sent_at", None)
            .execute()
        )
        return response.data or []
