"""Screen controllers."""

from circuit.controllers.session import GymNameCache, SessionController
from circuit.controllers.routes import RouteListController, apply_view_filters, join_route_views
from circuit.controllers.progress import ProgressController, SyncState
from circuit.controllers.route_detail import RouteDetailController
from circuit.controllers.log_climb import LogClimbController, LogType
from circuit.controllers.beta import AddBetaController
from circuit.controllers.profile import ProfileController, PublicProfileController
from circuit.controllers.gym_selection import GymSelectionController
from circuit.controllers.follow_list import FollowListController
from circuit.controllers.dashboard import DashboardController
from circuit.controllers.settings import SettingsController

__all__ = [
    "GymNameCache",
    "SessionController",
    "RouteListController",
    "apply_view_filters",
    "join_route_views",
    "ProgressController",
    "SyncState",
    "RouteDetailController",
    "LogClimbController",
    "LogType",
    "AddBetaController",
    "ProfileController",
    "PublicProfileController",
    "GymSelectionController",
    "FollowListController",
    "DashboardController",
    "SettingsController",
]
