"""Followers / following list for one climber."""

import logging
from typing import Dict, List, Optional

from circuit.exceptions import BackendError, ValidationError
from circuit.schemas import ActivityType, UserMetadata
from circuit.services.activity_service import ActivityService
from circuit.services.follow_service import FollowService


logger = logging.getLogger(__name__)

DIRECTIONS = ("followers", "following")


class FollowListController:
    """Paged list of users with the viewer's follow status for each."""

    def __init__(
        self,
        follow_service: FollowService,
        activity_service: ActivityService,
        user_id: str,
        direction: str,
        viewer_id: Optional[str],
        page_size: int = 15,
    ):
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown follow direction: {direction}")
        self.follow_service = follow_service
        self.activity_service = activity_service
        self.user_id = user_id
        self.direction = direction
        self.viewer_id = viewer_id
        self.page_size = page_size

        self.users: List[UserMetadata] = []
        self.following: Dict[str, bool] = {}
        self.page = 0
        self.has_more = False
        self.loading = False
        self.error: Optional[str] = None
        self._pending: set = set()

    async def load(self, page: int = 0):
        """Load a page; page 0 replaces the list, later pages append."""
        self.loading = True
        self.error = None
        try:
            users = await self.follow_service.list_users(self.user_id, self.direction, page, self.page_size)
            statuses = {}
            if self.viewer_id:
                ids = [u.user_id for u in users if u.user_id != self.viewer_id]
                statuses = await self.follow_service.following_statuses(self.viewer_id, ids)
        except BackendError as e:
            logger.error("Error fetching %s for %s: %r", self.direction, self.user_id, e)
            self.error = f"Failed to load {self.direction}."
            if page == 0:
                self.users = []
                self.following = {}
            self.has_more = False
            return
        finally:
            self.loading = False

        if page == 0:
            self.users = users
            self.following = statuses
        else:
            self.users = self.users + users
            self.following = {**self.following, **statuses}
        self.page = page
        self.has_more = len(users) == self.page_size

    async def load_more(self):
        if self.loading or not self.has_more:
            return
        await self.load(self.page + 1)

    def is_following(self, user_id: str) -> bool:
        return self.following.get(user_id, False)

    async def toggle_follow(self, user_id: str) -> bool:
        """Follow or unfollow a listed user; on failure the status is re-checked."""
        if not self.viewer_id:
            raise ValidationError("You must be logged in to follow climbers.")
        if user_id == self.viewer_id:
            raise ValidationError("Cannot follow yourself.")
        if user_id in self._pending:
            return False

        was_following = self.is_following(user_id)
        self._pending.add(user_id)
        self.following = {**self.following, user_id: not was_following}
        try:
            if was_following:
                await self.follow_service.unfollow(self.viewer_id, user_id)
            else:
                await self.follow_service.follow(self.viewer_id, user_id)
        except BackendError as e:
            logger.error("Error toggling follow for %s: %r", user_id, e)
            self.error = "Failed to update follow status."
            await self._recheck(user_id)
            return False
        finally:
            self._pending.discard(user_id)

        if not was_following:
            await self.activity_service.record(
                self.viewer_id,
                ActivityType.FOLLOW_USER,
                details={"followed_user_id": user_id},
            )
        return True

    async def _recheck(self, user_id: str):
        try:
            status = await self.follow_service.is_following(self.viewer_id, user_id)
        except BackendError as e:
            logger.error("Error re-checking follow status for %s: %r", user_id, e)
            status = False
        self.following = {**self.following, user_id: status}
