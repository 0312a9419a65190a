"""Pydantic models mirroring backend rows and the view models built from them."""

import time
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============== Enums ==============

class AppView(str, Enum):
    ONBOARDING = "onboarding"
    DASHBOARD = "dashboard"
    ROUTES = "routes"
    ROUTE_DETAIL = "routeDetail"
    ADD_BETA = "addBeta"
    LOG = "log"
    DISCOVER = "discover"
    PROFILE = "profile"
    PUBLIC_PROFILE = "publicProfile"
    SETTINGS = "settings"


class OnboardingStep(str, Enum):
    WELCOME = "welcome"
    AUTH = "auth"
    GYM_SELECTION = "gymSelection"
    COMPLETE = "complete"


class AuthEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


class RouteStatus(str, Enum):
    SENT = "sent"
    ATTEMPTED = "attempted"
    UNSEEN = "unseen"


class StatusFilter(str, Enum):
    ALL = "all"
    SENT = "sent"
    ATTEMPTED = "attempted"
    UNSEEN = "unseen"
    WISHLIST = "wishlist"


class SortOption(str, Enum):
    DATE_NEWEST = "date_newest"
    GRADE_HARDEST = "grade_hardest"
    GRADE_EASIEST = "grade_easiest"
    RATING_HIGHEST = "rating_highest"


class ActivityType(str, Enum):
    LOG_SEND = "log_send"
    LOG_ATTEMPT = "log_attempt"
    ADD_BETA = "add_beta"
    ADD_COMMENT = "add_comment"
    ADD_ROUTE = "add_route"
    FOLLOW_USER = "follow_user"


class BetaType(str, Enum):
    TEXT = "text"
    VIDEO = "video"
    DRAWING = "drawing"


class FeedbackType(str, Enum):
    CONTACT = "contact"
    GYM_SUGGESTION = "gym_suggestion"


# ============== Auth Schemas ==============

class User(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)


class Session(BaseModel):
    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    # Unix seconds; derived from `expires_in` when the response omits it
    expires_at: Optional[int] = None
    expires_in: Optional[int] = None
    token_type: str = "bearer"
    user: User

    @model_validator(mode="after")
    def _fill_expires_at(self) -> "Session":
        if self.expires_at is None and self.expires_in:
            self.expires_at = int(time.time()) + self.expires_in
        return self


# ============== Profile Schemas ==============

class UserMetadata(BaseModel):
    """One row per user in `profiles`, upserted on `user_id`."""

    model_config = ConfigDict(extra="ignore")

    user_id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    selected_gym_ids: List[str] = Field(default_factory=list)
    current_gym_id: Optional[str] = None


class FollowCounts(BaseModel):
    followers: int = 0
    following: int = 0


class UserStats(BaseModel):
    total_sends: int = 0
    unique_routes: int = 0
    highest_grade: Optional[str] = None


class GymQuickStats(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_sends: int = 0
    total_attempts: int = 0
    routes_climbed: int = 0
    highest_grade: Optional[str] = None


# ============== Gym / Route Schemas ==============

class Gym(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class Route(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    gym_id: str
    name: str
    grade: str
    grade_color: Optional[str] = None
    location: Optional[str] = None
    setter: Optional[str] = None
    date_set: Optional[date] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    removed_at: Optional[datetime] = None

    @property
    def is_removed(self) -> bool:
        return self.removed_at is not None


class UserRouteProgress(BaseModel):
    """Row of `user_route_progress`, keyed on (user_id, route_id)."""

    model_config = ConfigDict(extra="ignore")

    user_id: str
    route_id: str
    attempts: int = Field(0, ge=0)
    sent_at: Optional[datetime] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    notes: Optional[str] = None
    wishlist: bool = False
    updated_at: Optional[datetime] = None

    @property
    def status(self) -> RouteStatus:
        if self.sent_at is not None:
            return RouteStatus.SENT
        if self.attempts > 0:
            return RouteStatus.ATTEMPTED
        return RouteStatus.UNSEEN

    def to_row(self) -> Dict[str, Any]:
        """Columns sent on upsert."""
        return {
            "user_id": self.user_id,
            "route_id": self.route_id,
            "attempts": self.attempts,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "rating": self.rating,
            "notes": self.notes,
            "wishlist": self.wishlist,
        }


class RouteStats(BaseModel):
    model_config = ConfigDict(extra="ignore")

    route_id: str
    avg_rating: Optional[float] = None
    ascent_count: int = 0
    beta_count: int = 0
    comment_count: int = 0


class RouteView(BaseModel):
    """A route card: base row joined with the user's progress and aggregate stats."""

    model_config = ConfigDict(frozen=True)

    route: Route
    status: RouteStatus = RouteStatus.UNSEEN
    attempts: int = 0
    sent_at: Optional[datetime] = None
    user_rating: Optional[int] = None
    wishlist: bool = False
    avg_rating: Optional[float] = None
    ascent_count: int = 0
    beta_available: bool = False
    comment_count: int = 0

    @property
    def id(self) -> str:
        return self.route.id


class RouteListing(BaseModel):
    """Everything fetched for one listing generation."""

    model_config = ConfigDict(frozen=True)

    generation: int
    page: int = 0
    has_more: bool = False
    items: Tuple[RouteView, ...] = ()

    @property
    def ids(self) -> List[str]:
        return [v.id for v in self.items]


class LogbookEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    route: Route
    attempts: int = 0
    sent_at: Optional[datetime] = None
    rating: Optional[int] = None
    notes: Optional[str] = None
    wishlist: bool = False
    updated_at: Optional[datetime] = None

    @property
    def status(self) -> RouteStatus:
        if self.sent_at is not None:
            return RouteStatus.SENT
        if self.attempts > 0:
            return RouteStatus.ATTEMPTED
        return RouteStatus.UNSEEN

    @property
    def is_removed(self) -> bool:
        return self.route.is_removed


# ============== Social Schemas ==============

class ActivityLogEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: Optional[str] = None
    user_id: str
    gym_id: Optional[str] = None
    route_id: Optional[str] = None
    activity_type: ActivityType
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class BetaContent(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    route_id: str
    user_id: str
    beta_type: BetaType
    text_content: Optional[str] = None
    content_url: Optional[str] = None
    key_move: Optional[str] = None
    upvotes: int = 0
    created_at: Optional[datetime] = None
    author_name: Optional[str] = None
    author_avatar_url: Optional[str] = None


class Comment(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    route_id: str
    user_id: str
    comment_text: str
    created_at: Optional[datetime] = None
    author_name: Optional[str] = None
    author_avatar_url: Optional[str] = None


# ============== Uploads ==============

class FileUpload(BaseModel):
    """A file picked by the user, held in memory until uploaded."""

    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else ""
