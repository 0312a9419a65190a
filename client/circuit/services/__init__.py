"""Services package."""

from circuit.services.auth_service import AuthService
from circuit.services.activity_service import ActivityService
from circuit.services.beta_service import BetaService, CommentService
from circuit.services.feedback_service import FeedbackService
from circuit.services.follow_service import FollowService
from circuit.services.gym_service import GymService
from circuit.services.profile_service import ProfileService
from circuit.services.progress_service import ProgressService
from circuit.services.route_service import RouteService
from circuit.services.stats_service import StatsService
from circuit.services.storage_service import StorageService

__all__ = [
    "AuthService",
    "ActivityService",
    "BetaService",
    "CommentService",
    "FeedbackService",
    "FollowService",
    "GymService",
    "ProfileService",
    "ProgressService",
    "RouteService",
    "StatsService",
    "StorageService",
]
