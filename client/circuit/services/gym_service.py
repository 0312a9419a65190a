"""Gym directory lookups."""

from typing import List, Tuple

from circuit.backend import BackendClient
from circuit.schemas import Gym


GYM_COLUMNS = "id, name, city, state, country"


class GymService:
    """Service for the read-only `gyms` table."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def search_gyms(self, search_term: str, page: int, page_size: int) -> Tuple[List[Gym], int]:
        """
        Fetch one page of gyms ordered by name.

        A non-empty search term matches name, city or state. Returns the
        page and the exact total of matching gyms.
        """
        start = page * page_size
        query = (
            self.backend.table("gyms")
            .select(GYM_COLUMNS, count="exact")
            .order("name")
            .range(start, start + page_size - 1)
        )
        term = search_term.strip()
        if term:
            pattern = f"%{term}%"
            query = query.or_(f"name.ilike.{pattern},city.ilike.{pattern},state.ilike.{pattern}")

        response = await query.execute()
        gyms = [Gym.model_validate(row) for row in response.data or []]
        return gyms, response.count or 0

    async def get_gyms_by_ids(self, gym_ids: List[str]) -> List[Gym]:
        if not gym_ids:
            return []
        response = await (
            self.backend.table("gyms")
            .select(GYM_COLUMNS)
            .in_("id", gym_ids)
            .execute()
        )
        return [Gym.model_validate(row) for row in response.data or []]
