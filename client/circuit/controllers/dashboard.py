"""Dashboard: quick stats at the active gym and the gym's activity feed."""

import logging
from typing import List, Optional

from circuit.exceptions import BackendError
from circuit.schemas import ActivityLogEntry, GymQuickStats
from circuit.services.activity_service import ActivityService
from circuit.services.stats_service import StatsService


logger = logging.getLogger(__name__)


class DashboardController:
    def __init__(
        self,
        stats_service: StatsService,
        activity_service: ActivityService,
        user_id: str,
        gym_id: Optional[str],
        page_size: int = 20,
    ):
        self.stats_service = stats_service
        self.activity_service = activity_service
        self.user_id = user_id
        self.gym_id = gym_id
        self.page_size = page_size

        self.quick_stats = GymQuickStats()
        self.stats_error: Optional[str] = None

        self.feed: List[ActivityLogEntry] = []
        self.feed_page = 0
        self.feed_has_more = False
        self.feed_loading = False
        self.feed_error: Optional[str] = None

    async def load(self):
        await self.load_quick_stats()
        await self.load_feed()

    async def load_quick_stats(self):
        self.stats_error = None
        if not self.gym_id:
            self.quick_stats = GymQuickStats()
            return
        try:
            self.quick_stats = await self.stats_service.gym_quick_stats(self.user_id, self.gym_id)
        except BackendError as e:
            logger.error("Error fetching quick stats for gym %s: %r", self.gym_id, e)
            self.quick_stats = GymQuickStats()
            self.stats_error = "Failed to load stats."

    async def load_feed(self, page: int = 0):
        """Newest activity first; page 0 replaces the feed, later pages append."""
        if not self.gym_id:
            self.feed = []
            self.feed_has_more = False
            return
        self.feed_loading = True
        self.feed_error = None
        try:
            entries = await self.activity_service.gym_feed(self.gym_id, page, self.page_size)
        except BackendError as e:
            logger.error("Error fetching activity feed for gym %s: %r", self.gym_id, e)
            self.feed_error = "Failed to load activity."
            if page == 0:
                self.feed = []
            self.feed_has_more = False
            return
        finally:
            self.feed_loading = False

        self.feed = entries if page == 0 else self.feed + entries
        self.feed_page = page
        self.feed_has_more = len(entries) == self.page_size

    async def load_more_feed(self):
        if self.feed_loading or not self.feed_has_more:
            return
        await self.load_feed(self.feed_page + 1)
