"""Climbing statistics for profiles and the dashboard."""

from typing import Any, Dict, List, Optional

from circuit.backend import BackendClient
from circuit.schemas import GymQuickStats, UserStats
from circuit.services.progress_service import ProgressService


def v_grade_value(grade: Optional[str]) -> int:
    """
    Numeric value of a V-scale grade; -1 for anything else.

    Ranges such as "V3-5" count as their upper bound.
    """
    if not grade or not grade.upper().startswith("V"):
        return -1
    upper = grade[1:].split("-")[-1].strip()
    return int(upper) if upper.isdigit() else -1


def compute_user_stats(sends: List[Dict[str, Any]]) -> UserStats:
    """Totals over a user's sent-route rows (`route_id`, `route.grade`)."""
    highest_grade = None
    highest_value = -1
    for row in sends:
        grade = (row.get("route") or {}).get("grade")
        value = v_grade_value(grade)
        if value > highest_value:
            highest_value = value
            highest_grade = grade

    return UserStats(
        total_sends=len(sends),
        unique_routes=len({row.get("route_id") for row in sends}),
        highest_grade=highest_grade,
    )


class StatsService:
    def __init__(self, backend: BackendClient):
        self.backend = backend
        self.progress_service = ProgressService(backend)

    async def user_stats(self, user_id: str) -> UserStats:
        return compute_user_stats(await self.progress_service.sends(user_id))

    async def gym_quick_stats(self, user_id: str, gym_id: str) -> GymQuickStats:
        response = await self.backend.rpc(
            "get_user_gym_quick_stats",
            {"p_user_id": user_id, "p_gym_id": gym_id},
        )
        data = response.data
        if isinstance(data, list):
            data = data[0] if data else None
        return GymQuickStats.model_validate(data) if data else GymQuickStats()
