"""Route detail: the route, your progress on it, community beta and discussion."""

import logging
from typing import List, Optional

from circuit.controllers.progress import ProgressController
from circuit.exceptions import BackendError, NotFoundError, ValidationError
from circuit.schemas import ActivityType, BetaContent, BetaType, Comment, Route
from circuit.services.activity_service import ActivityService
from circuit.services.beta_service import BetaService, CommentService
from circuit.services.progress_service import ProgressService
from circuit.services.route_service import RouteService


logger = logging.getLogger(__name__)


class RouteDetailController:
    """Controller behind the route detail screen."""

    def __init__(
        self,
        route_service: RouteService,
        progress_service: ProgressService,
        beta_service: BetaService,
        comment_service: CommentService,
        activity_service: ActivityService,
        route_id: str,
        user_id: Optional[str],
    ):
        self.route_service = route_service
        self.beta_service = beta_service
        self.comment_service = comment_service
        self.activity_service = activity_service
        self.route_id = route_id
        self.user_id = user_id
        self.progress = ProgressController(progress_service, user_id, route_id) if user_id else None

        self.route: Optional[Route] = None
        self.loading = False
        self.error: Optional[str] = None

        self.beta: List[BetaContent] = []
        self.active_beta_tab = BetaType.TEXT
        self.beta_error: Optional[str] = None

        self.comments: List[Comment] = []
        self.comments_error: Optional[str] = None
        self.posting_comment = False

    @property
    def filtered_beta(self) -> List[BetaContent]:
        return [b for b in self.beta if b.beta_type == self.active_beta_tab]

    def set_beta_tab(self, beta_type: BetaType):
        self.active_beta_tab = beta_type

    async def load(self):
        """Load everything shown on the screen."""
        await self.load_route()
        if self.route is None:
            return
        if self.progress is not None:
            await self.progress.load()
        await self.load_beta()
        await self.load_comments()

    async def load_route(self):
        self.loading = True
        self.error = None
        try:
            self.route = await self.route_service.get_route(self.route_id)
        except NotFoundError:
            logger.error("Route %s not found", self.route_id)
            self.route = None
            self.error = "Route not found."
        except BackendError as e:
            logger.error("Error fetching route %s: %r", self.route_id, e)
            self.route = None
            self.error = "Failed to load route."
        finally:
            self.loading = False

    async def load_beta(self):
        self.beta_error = None
        try:
            self.beta = await self.beta_service.list_beta(self.route_id)
        except BackendError as e:
            logger.error("Error fetching beta for route %s: %r", self.route_id, e)
            self.beta = []
            self.beta_error = "Failed to load beta."

    async def load_comments(self):
        self.comments_error = None
        try:
            self.comments = await self.comment_service.list_comments(self.route_id)
        except BackendError as e:
            logger.error("Error fetching comments for route %s: %r", self.route_id, e)
            self.comments = []
            self.comments_error = "Failed to load comments."

    async def post_comment(self, text: str) -> bool:
        if self.user_id is None:
            raise ValidationError("You must be logged in to comment.")
        if not text.strip():
            raise ValidationError("Comment cannot be empty.", field="comment")

        self.posting_comment = True
        self.comments_error = None
        try:
            comment = await self.comment_service.add_comment(self.route_id, self.user_id, text.strip())
        except BackendError as e:
            logger.error("Error posting comment on route %s: %r", self.route_id, e)
            self.comments_error = "Failed to post comment."
            return False
        finally:
            self.posting_comment = False

        self.comments = self.comments + [comment]
        await self.activity_service.record(
            self.user_id,
            ActivityType.ADD_COMMENT,
            gym_id=self.route.gym_id if self.route else None,
            route_id=self.route_id,
            details={"route_name": self.route.name if self.route else None},
        )
        return True
