"""Log-a-climb form: pick an active route, record a send or an attempt."""

import logging
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import List, Optional

from circuit.controllers.progress import ProgressController, apply_attempt, apply_send, validate_rating
from circuit.exceptions import BackendError, ValidationError
from circuit.schemas import ActivityType, Route, UserRouteProgress
from circuit.services.activity_service import ActivityService
from circuit.services.progress_service import ProgressService
from circuit.services.route_service import RouteService


logger = logging.getLogger(__name__)


class LogType(str, Enum):
    SEND = "send"
    ATTEMPT = "attempt"


class LogClimbController:
    """Controller behind the log-climb screen."""

    def __init__(
        self,
        route_service: RouteService,
        progress_service: ProgressService,
        activity_service: ActivityService,
        user_id: str,
        gym_id: Optional[str],
    ):
        self.route_service = route_service
        self.progress_service = progress_service
        self.activity_service = activity_service
        self.user_id = user_id
        self.gym_id = gym_id

        self.routes: List[Route] = []
        self.loading = False
        self.route_search_term = ""
        self.selected_route_id: Optional[str] = None

        self.log_type = LogType.SEND
        self.attempts = 1
        self.climbed_on = date.today()
        self.rating: Optional[int] = None
        self.notes = ""

        self.submitting = False
        self.error: Optional[str] = None

    # ============== Route picker ==============

    async def load_routes(self):
        """Routes that can still be logged: active routes at the active gym."""
        if not self.gym_id:
            self.routes = []
            return
        self.loading = True
        self.error = None
        try:
            routes = await self.route_service.loggable_routes(self.gym_id)
            self.routes = [r for r in routes if not r.is_removed]
        except BackendError as e:
            logger.error("Error fetching routes to log at gym %s: %r", self.gym_id, e)
            self.routes = []
            self.error = "Failed to load routes."
        finally:
            self.loading = False

    @property
    def filtered_routes(self) -> List[Route]:
        term = self.route_search_term.strip().lower()
        if not term:
            return list(self.routes)
        return [r for r in self.routes if term in r.name.lower() or term in r.grade.lower()]

    @property
    def selected_route(self) -> Optional[Route]:
        return next((r for r in self.routes if r.id == self.selected_route_id), None)

    def set_route_search(self, term: str):
        self.route_search_term = term
        self.selected_route_id = None

    def select_route(self, route_id: str):
        route = next((r for r in self.routes if r.id == route_id), None)
        if route is None:
            raise ValidationError("Please select a route.", field="route")
        self.selected_route_id = route_id
        self.route_search_term = route.name

    # ============== Submit ==============

    def validate(self):
        if self.selected_route is None:
            raise ValidationError("Please select a route.", field="route")
        if self.log_type == LogType.SEND and self.attempts < 1:
            raise ValidationError("Attempts must be at least 1.", field="attempts")
        if self.rating is not None:
            validate_rating(self.rating)
        if self.climbed_on > date.today():
            raise ValidationError("Date cannot be in the future.", field="date")

    def _climbed_at(self) -> datetime:
        if self.climbed_on == date.today():
            return datetime.now(timezone.utc)
        return datetime.combine(self.climbed_on, time(12, 0), tzinfo=timezone.utc)

    def _apply(self, progress: UserRouteProgress) -> UserRouteProgress:
        if self.log_type == LogType.SEND:
            updated = apply_send(progress, when=self._climbed_at(), attempts=self.attempts)
        else:
            updated = apply_attempt(progress)
        changes = {}
        if self.rating is not None:
            changes["rating"] = self.rating
        if self.notes.strip():
            changes["notes"] = self.notes.strip()
        return updated.model_copy(update=changes) if changes else updated

    async def submit(self) -> bool:
        """Validate, upsert the progress row and append an activity entry."""
        self.validate()
        route = self.selected_route

        self.submitting = True
        self.error = None
        try:
            progress = ProgressController(self.progress_service, self.user_id, route.id)
            saved = await progress.update(self._apply)
        finally:
            self.submitting = False

        if not saved:
            self.error = progress.error or "Failed to save log. Please try again."
            return False

        sent = self.log_type == LogType.SEND
        await self.activity_service.record(
            self.user_id,
            ActivityType.LOG_SEND if sent else ActivityType.LOG_ATTEMPT,
            gym_id=route.gym_id,
            route_id=route.id,
            details={
                "route_name": route.name,
                "route_grade": route.grade,
                "attempts": progress.progress.attempts,
            },
        )
        logger.info("Logged %s on route %s", self.log_type.value, route.id)
        return True
