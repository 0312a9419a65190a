"""Follow edges between climbers."""

import logging
from typing import Dict, List

from circuit.backend import BackendClient
from circuit.exceptions import ValidationError
from circuit.schemas import FollowCounts, UserMetadata


logger = logging.getLogger(__name__)


class FollowService:
    """Service for the `user_follows` table.

    Edges are (follower_id, following_id) pairs: checked, inserted and
    deleted, never updated.
    """

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def follow(self, follower_id: str, following_id: str):
        if follower_id == following_id:
            raise ValidationError("Cannot follow yourself.")
        await (
            self.backend.table("user_follows")
            .insert({"follower_id": follower_id, "following_id": following_id}, returning=False)
            .execute()
        )
        logger.info("User %s followed %s", follower_id, following_id)

    async def unfollow(self, follower_id: str, following_id: str):
        await (
            self.backend.table("user_follows")
            .delete()
            .eq("follower_id", follower_id)
            .eq("following_id", following_id)
            .execute()
        )
        logger.info("User %s unfollowed %s", follower_id, following_id)

    async def is_following(self, follower_id: str, following_id: str) -> bool:
        response = await (
            self.backend.table("user_follows")
            .select("follower_id")
            .eq("follower_id", follower_id)
            .eq("following_id", following_id)
            .maybe_single()
            .execute()
        )
        return response.data is not None

    async def counts(self, user_id: str) -> FollowCounts:
        """Follower and following totals for a user."""
        followers = await (
            self.backend.table("user_follows")
            .select("*", count="exact", head=True)
            .eq("following_id", user_id)
            .execute()
        )
        following = await (
            self.backend.table("user_follows")
            .select("*", count="exact", head=True)
            .eq("follower_id", user_id)
            .execute()
        )
        return FollowCounts(followers=followers.count or 0, following=following.count or 0)

    async def list_users(self, user_id: str, direction: str, page: int, page_size: int) -> List[UserMetadata]:
        """
        One page of a user's followers or followed users, newest edge first.

        `direction` is "followers" or "following".
        """
        if direction == "followers":
            columns, column, key = "follower:profiles!follower_id(*)", "following_id", "follower"
        elif direction == "following":
            columns, column, key = "following:profiles!following_id(*)", "follower_id", "following"
        else:
            raise ValueError(f"Unknown follow direction: {direction}")

        start = page * page_size
        response = await (
            self.backend.table("user_follows")
            .select(columns)
            .eq(column, user_id)
            .order("created_at", desc=True)
            .range(start, start + page_size - 1)
            .execute()
        )
        return [
            UserMetadata.model_validate(row[key])
            for row in response.data or []
            if row.get(key)
        ]

    async def following_statuses(self, follower_id: str, user_ids: List[str]) -> Dict[str, bool]:
        """Which of `user_ids` the follower already follows."""
        if not user_ids:
            return {}
        response = await (
            self.backend.table("user_follows")
            .select("following_id")
            .eq("follower_id", follower_id)
            .in_("following_id", user_ids)
            .execute()
        )
        followed = {row["following_id"] for row in response.data or []}
        return {user_id: user_id in followed for user_id in user_ids}
