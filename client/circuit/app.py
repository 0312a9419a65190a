"""The Circuit - client entry point wiring settings, backend, services and controllers."""

import logging
from typing import Optional

from circuit.backend import BackendClient
from circuit.config import Settings, get_settings
from circuit.controllers import (
    AddBetaController,
    DashboardController,
    FollowListController,
    GymSelectionController,
    LogClimbController,
    ProfileController,
    PublicProfileController,
    RouteDetailController,
    RouteListController,
    SessionController,
    SettingsController,
)
from circuit.exceptions import ValidationError
from circuit.logging_config import setup_logging
from circuit.schemas import Route
from circuit.services import (
    ActivityService,
    AuthService,
    BetaService,
    CommentService,
    FeedbackService,
    FollowService,
    GymService,
    ProfileService,
    ProgressService,
    RouteService,
    StatsService,
    StorageService,
)


logger = logging.getLogger(__name__)


class CircuitApp:
    """
    Composition root.

    Use as an async context manager: entering starts the session controller
    (picking up any existing session), leaving unsubscribes and closes the
    HTTP client. Screen controllers are built on demand for the current
    user and active gym.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        backend: Optional[BackendClient] = None,
        configure_logging: bool = True,
    ):
        self.settings = settings or get_settings()
        if configure_logging:
            setup_logging(self.settings)
        self.backend = backend or BackendClient.from_settings(self.settings)

        self.auth_service = AuthService(self.backend)
        self.activity_service = ActivityService(self.backend)
        self.beta_service = BetaService(self.backend)
        self.comment_service = CommentService(self.backend)
        self.feedback_service = FeedbackService(self.backend)
        self.follow_service = FollowService(self.backend)
        self.gym_service = GymService(self.backend)
        self.profile_service = ProfileService(self.backend)
        self.progress_service = ProgressService(self.backend)
        self.route_service = RouteService(self.backend)
        self.stats_service = StatsService(self.backend)
        self.storage_service = StorageService(self.backend)

        self.session = SessionController(self.backend, self.profile_service, self.gym_service)

    async def __aenter__(self) -> "CircuitApp":
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def start(self):
        logger.info("Starting %s", self.settings.app_name)
        await self.session.start()

    async def close(self):
        self.session.stop()
        await self.backend.aclose()

    # ============== Current session ==============

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user.id if self.session.user else None

    def _require_user(self) -> str:
        if self.user_id is None:
            raise ValidationError("You must be logged in.")
        return self.user_id

    # ============== Controller factories ==============

    def gym_selection(self) -> GymSelectionController:
        return GymSelectionController(
            self.gym_service,
            self.session,
            page_size=self.settings.gym_page_size,
            debounce_seconds=self.settings.search_debounce_seconds,
        )

    def dashboard(self) -> DashboardController:
        return DashboardController(
            self.stats_service,
            self.activity_service,
            self._require_user(),
            self.session.active_gym_id,
            page_size=self.settings.feed_page_size,
        )

    def route_list(self) -> RouteListController:
        return RouteListController(
            self.route_service,
            self.progress_service,
            self.session.active_gym_id,
            self.user_id,
            page_size=self.settings.route_page_size,
            debounce_seconds=self.settings.search_debounce_seconds,
        )

    def route_detail(self, route_id: Optional[str] = None) -> RouteDetailController:
        route_id = route_id or self.session.selected_route_id
        if not route_id:
            raise ValidationError("No route selected.", field="route")
        return RouteDetailController(
            self.route_service,
            self.progress_service,
            self.beta_service,
            self.comment_service,
            self.activity_service,
            route_id,
            self.user_id,
        )

    def log_climb(self) -> LogClimbController:
        return LogClimbController(
            self.route_service,
            self.progress_service,
            self.activity_service,
            self._require_user(),
            self.session.active_gym_id,
        )

    def add_beta(self, route: Route) -> AddBetaController:
        return AddBetaController(
            self.beta_service,
            self.storage_service,
            self.activity_service,
            route,
            self.user_id,
        )

    def profile(self) -> ProfileController:
        return ProfileController(
            self.profile_service,
            self.progress_service,
            self.follow_service,
            self.stats_service,
            self.storage_service,
            self._require_user(),
            page_size=self.settings.logbook_page_size,
        )

    def public_profile(self, profile_user_id: Optional[str] = None) -> PublicProfileController:
        profile_user_id = profile_user_id or self.session.viewing_profile_id
        if not profile_user_id:
            raise ValidationError("No profile selected.")
        return PublicProfileController(
            self.profile_service,
            self.progress_service,
            self.follow_service,
            self.stats_service,
            self.activity_service,
            profile_user_id,
            self.user_id,
            page_size=self.settings.logbook_page_size,
        )

    def follow_list(self, user_id: str, direction: str) -> FollowListController:
        return FollowListController(
            self.follow_service,
            self.activity_service,
            user_id,
            direction,
            self.user_id,
            page_size=self.settings.follow_page_size,
        )

    def settings_screen(self) -> SettingsController:
        return SettingsController(self.feedback_service, self.session)
