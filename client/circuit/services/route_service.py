"""Route rows and their aggregate card statistics."""

import asyncio
import logging
from typing import Dict, List, Optional

from circuit.backend import BackendClient
from circuit.schemas import Route, RouteStats, SortOption


logger = logging.getLogger(__name__)

ROUTE_COLUMNS = (
    "id, gym_id, name, grade, grade_color, location, setter, date_set, "
    "description, image_url, removed_at"
)


class RouteService:
    """Service for the `routes` table and the route RPC functions."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def filtered_routes(
        self,
        gym_id: str,
        search_term: str = "",
        location: Optional[str] = None,
        grade: Optional[str] = None,
        sort: SortOption = SortOption.DATE_NEWEST,
        page_size: int = 10,
        offset: int = 0,
    ) -> List[Route]:
        """
        One page of active routes from the server-side filter function.

        Rating order depends on aggregates the function does not sort by,
        so it is requested as newest-first and re-sorted by the caller.
        """
        server_sort = SortOption.DATE_NEWEST if sort == SortOption.RATING_HIGHEST else sort
        response = await self.backend.rpc(
            "get_filtered_routes",
            {
                "p_gym_id": gym_id,
                "p_search_term": search_term.strip() or None,
                "p_location": location or None,
                "p_grade": grade or None,
                "p_sort": server_sort.value,
                "p_limit": page_size,
                "p_offset": offset,
            },
        )
        return [Route.model_validate(row) for row in response.data or []]

    async def card_stats(self, route_ids: List[str]) -> Dict[str, RouteStats]:
        """Aggregate stats and comment counts for exactly the given routes."""
        if not route_ids:
            return {}

        stats_response, counts_response = await asyncio.gather(
            self.backend.rpc("get_route_card_stats", {"p_route_ids": route_ids}),
            self.backend.rpc("get_route_comment_counts", {"p_route_ids": route_ids}),
        )

        stats = {
            row["route_id"]: RouteStats.model_validate(row)
            for row in stats_response.data or []
        }
        for row in counts_response.data or []:
            route_id = row["route_id"]
            current = stats.get(route_id) or RouteStats(route_id=route_id)
            stats[route_id] = current.model_copy(update={"comment_count": int(row.get("comment_count") or 0)})
        return stats

    async def get_route(self, route_id: str) -> Route:
        """Get one route, removed or not; raises NotFoundError when missing."""
        response = await (
            self.backend.table("routes")
            .select(ROUTE_COLUMNS)
            .eq("id", route_id)
            .single()
            .execute()
        )
        return Route.model_validate(response.data)

    async def loggable_routes(self, gym_id: str) -> List[Route]:
        """Active routes at a gym, newest first."""
        response = await (
            self.backend.table("routes")
            .select(ROUTE_COLUMNS)
            .eq("gym_id", gym_id)
            .is_("removed_at", None)
            .order("date_set", desc=True)
            .execute()
        )
        return [Route.model_validate(row) for row in response.data or []]
