"""Append-only activity log used for feeds."""

import logging
from typing import Any, Dict, List, Optional

from circuit.backend import BackendClient
from circuit.exceptions import BackendError
from circuit.schemas import ActivityLogEntry, ActivityType


logger = logging.getLogger(__name__)


class ActivityService:
    """Service for the `activity_log` table. Entries are never mutated."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def record(
        self,
        user_id: str,
        activity_type: ActivityType,
        gym_id: Optional[str] = None,
        route_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Append an entry after the action it describes has succeeded.

        A failure here is logged and reported through the return value; it
        never undoes or fails the action itself.
        """
        try:
            await (
                self.backend.table("activity_log")
                .insert(
                    {
                        "user_id": user_id,
                        "gym_id": gym_id,
                        "route_id": route_id,
                        "activity_type": activity_type.value,
                        "details": details or {},
                    },
                    returning=False,
                )
                .execute()
            )
        except BackendError as e:
            logger.error("Error logging %s activity: %r", activity_type.value, e)
            return False
        return True

    async def gym_feed(self, gym_id: str, page: int, page_size: int) -> List[ActivityLogEntry]:
        """Newest activity at a gym."""
        start = page * page_size
        response = await (
            self.backend.table("activity_log")
            .select("id, user_id, gym_id, route_id, activity_type, details, created_at")
            .eq("gym_id", gym_id)
            .order("created_at", desc=True)
            .range(start, start + page_size - 1)
            .execute()
        )
        return [ActivityLogEntry.model_validate(row) for row in response.data or []]
