"""Optimistic fetch-edit-upsert cycle for one user's progress on one route."""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from circuit.exceptions import BackendError, ValidationError
from circuit.schemas import UserRouteProgress
from circuit.services.progress_service import ProgressService


logger = logging.getLogger(__name__)

ProgressChange = Callable[[UserRouteProgress], UserRouteProgress]


class SyncState(str, Enum):
    SYNCED = "synced"
    PENDING_WRITE = "pending_write"
    WRITE_FAILED = "write_failed"
    RESYNCING = "resyncing"


def apply_attempt(progress: UserRouteProgress) -> UserRouteProgress:
    """One more attempt; an existing send is kept."""
    return progress.model_copy(update={"attempts": progress.attempts + 1})


def apply_send(
    progress: UserRouteProgress,
    when: Optional[datetime] = None,
    attempts: Optional[int] = None,
) -> UserRouteProgress:
    """
    Mark the route sent.

    The first send date sticks: sending again never moves `sent_at`.
    Without `attempts` the count is only raised to at least one; with it,
    that many attempts (the send included) are added.
    """
    sent_at = progress.sent_at or when or datetime.now(timezone.utc)
    if attempts is not None:
        if attempts < 1:
            raise ValidationError("Attempts must be at least 1.", field="attempts")
        total = progress.attempts + attempts
    else:
        total = max(progress.attempts, 1)
    return progress.model_copy(update={"sent_at": sent_at, "attempts": total})


def validate_rating(rating: int):
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5.", field="rating")


class ProgressController:
    """
    Progress row for (user, route) with an explicit sync state.

    Edits show up in `progress` immediately and are then upserted from
    the last row the server confirmed. A failed write re-fetches the row
    instead of trusting the optimistic copy.
    """

    def __init__(self, progress_service: ProgressService, user_id: str, route_id: str):
        self.progress_service = progress_service
        self.user_id = user_id
        self.route_id = route_id

        self.server = self._default()
        self.progress = self.server
        self.state = SyncState.SYNCED
        self.loaded = False
        self.loading = False
        self.error: Optional[str] = None
        self._lock = asyncio.Lock()

    def _default(self) -> UserRouteProgress:
        return UserRouteProgress(user_id=self.user_id, route_id=self.route_id)

    async def _fetch(self) -> UserRouteProgress:
        row = await self.progress_service.get_progress(self.user_id, self.route_id)
        return row or self._default()

    async def load(self) -> bool:
        """Fetch the row; a user who never touched the route starts at zero."""
        self.loading = True
        self.error = None
        try:
            self.server = await self._fetch()
        except BackendError as e:
            logger.error("Error fetching progress for route %s: %r", self.route_id, e)
            self.error = "Failed to load your progress."
            self.server = self._default()
            self.progress = self.server
            self.loaded = False
            return False
        finally:
            self.loading = False

        self.progress = self.server
        self.state = SyncState.SYNCED
        self.loaded = True
        return True

    async def _resync(self):
        self.state = SyncState.RESYNCING
        try:
            self.server = await self._fetch()
        except BackendError as e:
            logger.error("Error re-fetching progress for route %s: %r", self.route_id, e)
            self.progress = self.server
            self.state = SyncState.WRITE_FAILED
            return
        self.progress = self.server
        self.state = SyncState.SYNCED

    async def update(self, change: ProgressChange) -> bool:
        """Apply `change` to the last confirmed row and upsert the result."""
        async with self._lock:
            # Never build a write on top of a row we failed to read
            if not self.loaded and not await self.load():
                return False

            updated = change(self.server)
            self.progress = updated
            self.state = SyncState.PENDING_WRITE
            self.error = None
            try:
                self.server = await self.progress_service.upsert(updated)
            except BackendError as e:
                logger.error("Error saving progress for route %s: %r", self.route_id, e)
                self.error = "Failed to save your progress."
                self.state = SyncState.WRITE_FAILED
                await self._resync()
                return False

            self.progress = self.server
            self.state = SyncState.SYNCED
            return True

    async def log_attempt(self) -> bool:
        return await self.update(apply_attempt)

    async def log_send(self, when: Optional[datetime] = None) -> bool:
        return await self.update(lambda p: apply_send(p, when=when))

    async def set_rating(self, rating: int) -> bool:
        """Rate 1-5; choosing the current rating again clears it."""
        validate_rating(rating)
        return await self.update(
            lambda p: p.model_copy(update={"rating": None if p.rating == rating else rating})
        )

    async def toggle_wishlist(self) -> bool:
        return await self.update(lambda p: p.model_copy(update={"wishlist": not p.wishlist}))

    async def set_notes(self, notes: str) -> bool:
        return await self.update(lambda p: p.model_copy(update={"notes": notes}))
