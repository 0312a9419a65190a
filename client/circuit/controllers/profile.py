"""Own and public profile screens: stats, logbook, wishlist and follows."""

import asyncio
import logging
from typing import List, Optional

from circuit.exceptions import BackendError, NotFoundError, ValidationError
from circuit.schemas import ActivityType, FileUpload, FollowCounts, LogbookEntry, UserMetadata, UserStats
from circuit.services.activity_service import ActivityService
from circuit.services.follow_service import FollowService
from circuit.services.profile_service import ProfileService
from circuit.services.progress_service import ProgressService
from circuit.services.stats_service import StatsService
from circuit.services.storage_service import StorageService


logger = logging.getLogger(__name__)


class _BaseProfileController:
    """Shared loading of a profile row, follow counts, stats and logbook pages."""

    include_private = False

    def __init__(
        self,
        profile_service: ProfileService,
        progress_service: ProgressService,
        follow_service: FollowService,
        stats_service: StatsService,
        profile_user_id: str,
        page_size: int = 20,
    ):
        self.profile_service = profile_service
        self.progress_service = progress_service
        self.follow_service = follow_service
        self.stats_service = stats_service
        self.profile_user_id = profile_user_id
        self.page_size = page_size

        self.profile: Optional[UserMetadata] = None
        self.counts = FollowCounts()
        self.stats = UserStats()
        self.loading = False
        self.error: Optional[str] = None

        self.logbook: List[LogbookEntry] = []
        self.logbook_page = 0
        self.logbook_has_more = False
        self.logbook_loading = False

    async def load(self):
        self.loading = True
        self.error = None
        try:
            self.profile = await self.profile_service.get_profile(self.profile_user_id)
        except NotFoundError:
            logger.error("Profile %s not found", self.profile_user_id)
            self.profile = None
            self.error = "Profile not found."
            return
        except BackendError as e:
            logger.error("Error fetching profile %s: %r", self.profile_user_id, e)
            self.profile = None
            self.error = "Failed to load profile."
            return
        finally:
            self.loading = False

        await asyncio.gather(self.load_counts(), self.load_stats(), self.load_logbook())

    async def load_counts(self):
        try:
            self.counts = await self.follow_service.counts(self.profile_user_id)
        except BackendError as e:
            logger.error("Error fetching follow counts for %s: %r", self.profile_user_id, e)
            self.counts = FollowCounts()

    async def load_stats(self):
        try:
            self.stats = await self.stats_service.user_stats(self.profile_user_id)
        except BackendError as e:
            logger.error("Error fetching stats for %s: %r", self.profile_user_id, e)
            self.stats = UserStats()

    async def load_logbook(self, page: int = 0):
        """Load a logbook page; page 0 replaces, later pages append."""
        self.logbook_loading = True
        try:
            entries = await self.progress_service.logbook(
                self.profile_user_id, page, self.page_size, include_private=self.include_private
            )
        except BackendError as e:
            logger.error("Error fetching logbook for %s: %r", self.profile_user_id, e)
            if page == 0:
                self.logbook = []
            self.logbook_has_more = False
            return
        finally:
            self.logbook_loading = False

        self.logbook = entries if page == 0 else self.logbook + entries
        self.logbook_page = page
        self.logbook_has_more = len(entries) == self.page_size

    async def load_more_logbook(self):
        if self.logbook_loading or not self.logbook_has_more:
            return
        await self.load_logbook(self.logbook_page + 1)


class ProfileController(_BaseProfileController):
    """The signed-in user's own profile."""

    include_private = True

    def __init__(
        self,
        profile_service: ProfileService,
        progress_service: ProgressService,
        follow_service: FollowService,
        stats_service: StatsService,
        storage_service: StorageService,
        user_id: str,
        page_size: int = 20,
    ):
        super().__init__(profile_service, progress_service, follow_service, stats_service, user_id, page_size)
        self.storage_service = storage_service

        self.wishlist: List[LogbookEntry] = []
        self.wishlist_page = 0
        self.wishlist_has_more = False
        self.wishlist_loading = False
        self.saving = False

    async def load(self):
        await super().load()
        if self.profile is not None:
            await self.load_wishlist()

    async def load_wishlist(self, page: int = 0):
        self.wishlist_loading = True
        try:
            entries = await self.progress_service.wishlist(self.profile_user_id, page, self.page_size)
        except BackendError as e:
            logger.error("Error fetching wishlist for %s: %r", self.profile_user_id, e)
            if page == 0:
                self.wishlist = []
            self.wishlist_has_more = False
            return
        finally:
            self.wishlist_loading = False

        self.wishlist = entries if page == 0 else self.wishlist + entries
        self.wishlist_page = page
        self.wishlist_has_more = len(entries) == self.page_size

    async def load_more_wishlist(self):
        if self.wishlist_loading or not self.wishlist_has_more:
            return
        await self.load_wishlist(self.wishlist_page + 1)

    async def update_display_name(self, display_name: str) -> bool:
        name = display_name.strip()
        if not name:
            raise ValidationError("Display name cannot be empty.", field="display_name")

        self.saving = True
        self.error = None
        try:
            self.profile = await self.profile_service.upsert_metadata(self.profile_user_id, display_name=name)
        except BackendError as e:
            logger.error("Error updating display name for %s: %r", self.profile_user_id, e)
            self.error = "Failed to update profile."
            return False
        finally:
            self.saving = False
        return True

    async def upload_avatar(self, upload: FileUpload) -> bool:
        """Store a new avatar image and point the profile at it."""
        self.saving = True
        self.error = None
        try:
            avatar_url = await self.storage_service.upload_avatar(self.profile_user_id, upload)
            self.profile = await self.profile_service.upsert_metadata(self.profile_user_id, avatar_url=avatar_url)
        except BackendError as e:
            logger.error("Error uploading avatar for %s: %r", self.profile_user_id, e)
            self.error = f"Failed to upload avatar: {e.message}"
            return False
        finally:
            self.saving = False
        return True


class PublicProfileController(_BaseProfileController):
    """Another climber's profile, as seen by `viewer_id`."""

    def __init__(
        self,
        profile_service: ProfileService,
        progress_service: ProgressService,
        follow_service: FollowService,
        stats_service: StatsService,
        activity_service: ActivityService,
        profile_user_id: str,
        viewer_id: Optional[str],
        page_size: int = 20,
    ):
        super().__init__(profile_service, progress_service, follow_service, stats_service, profile_user_id, page_size)
        self.activity_service = activity_service
        self.viewer_id = viewer_id
        self.is_following = False
        self.follow_pending = False

    @property
    def is_own_profile(self) -> bool:
        return self.viewer_id == self.profile_user_id

    async def load(self):
        await super().load()
        if self.profile is not None:
            await self.load_follow_status()

    async def load_follow_status(self):
        if not self.viewer_id or self.is_own_profile:
            self.is_following = False
            return
        try:
            self.is_following = await self.follow_service.is_following(self.viewer_id, self.profile_user_id)
        except BackendError as e:
            logger.error("Error checking follow status for %s: %r", self.profile_user_id, e)
            self.is_following = False

    async def toggle_follow(self) -> bool:
        """
        Follow or unfollow, adjusting the follower count before the request.

        On failure the real status and counts are fetched again.
        """
        if not self.viewer_id:
            raise ValidationError("You must be logged in to follow climbers.")
        if self.is_own_profile:
            raise ValidationError("Cannot follow yourself.")
        if self.follow_pending:
            return False

        was_following = self.is_following
        self.follow_pending = True
        self.is_following = not was_following
        delta = -1 if was_following else 1
        self.counts = self.counts.model_copy(update={"followers": max(self.counts.followers + delta, 0)})
        try:
            if was_following:
                await self.follow_service.unfollow(self.viewer_id, self.profile_user_id)
            else:
                await self.follow_service.follow(self.viewer_id, self.profile_user_id)
        except BackendError as e:
            logger.error("Error toggling follow for %s: %r", self.profile_user_id, e)
            self.error = "Failed to update follow status."
            await asyncio.gather(self.load_follow_status(), self.load_counts())
            return False
        finally:
            self.follow_pending = False

        if not was_following:
            await self.activity_service.record(
                self.viewer_id,
                ActivityType.FOLLOW_USER,
                details={
                    "followed_user_id": self.profile_user_id,
                    "followed_user_name": self.profile.display_name if self.profile else None,
                },
            )
        return True
