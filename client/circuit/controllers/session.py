"""Session and onboarding controller: who is signed in, which gym, which screen."""

import logging
from typing import Dict, Iterable, List, Optional

from circuit.backend import AuthSubscription, BackendClient
from circuit.exceptions import BackendError, ValidationError
from circuit.schemas import AppView, AuthEvent, Gym, OnboardingStep, Session, User, UserMetadata
from circuit.services.gym_service import GymService
from circuit.services.profile_service import ProfileService


logger = logging.getLogger(__name__)

UNKNOWN_GYM = "Unknown Gym"
NO_GYM = "Select Gym"


class GymNameCache:
    """Gym names keyed by id.

    Misses are fetched in one batch and merged in; entries are never
    evicted since the set of gyms is small and global.
    """

    def __init__(self, gym_service: GymService):
        self.gym_service = gym_service
        self._names: Dict[str, str] = {}

    def __contains__(self, gym_id: str) -> bool:
        return gym_id in self._names

    def __len__(self) -> int:
        return len(self._names)

    def name(self, gym_id: Optional[str]) -> str:
        if not gym_id:
            return NO_GYM
        return self._names.get(gym_id, UNKNOWN_GYM)

    def remember(self, gyms: Iterable[Gym]):
        self._names.update({gym.id: gym.name for gym in gyms})

    async def ensure(self, gym_ids: Iterable[Optional[str]]) -> Dict[str, str]:
        """Fetch whichever of `gym_ids` are not cached yet."""
        missing = [g for g in dict.fromkeys(gym_ids) if g and g not in self._names]
        if missing:
            try:
                gyms = await self.gym_service.get_gyms_by_ids(missing)
            except BackendError as e:
                logger.error("Error fetching gym names for %s: %r", missing, e)
            else:
                self.remember(gyms)
        return dict(self._names)


class SessionController:
    """
    Root controller owning authentication and onboarding state.

    Onboarding moves welcome -> auth -> gymSelection -> complete. The
    current screen (`app_view`) is tracked separately. Every other
    controller is built from this one's `user` and `active_gym_id`.
    """

    def __init__(self, backend: BackendClient, profile_service: ProfileService, gym_service: GymService):
        self.backend = backend
        self.profile_service = profile_service
        self.gym_names = GymNameCache(gym_service)
        self._subscription: Optional[AuthSubscription] = None

        self.loading = True
        self.error: Optional[str] = None
        self.user: Optional[User] = None
        self.metadata: Optional[UserMetadata] = None
        self.onboarding_step = OnboardingStep.WELCOME
        self.app_view = AppView.ONBOARDING
        self.previous_view = AppView.DASHBOARD
        self.pending_gym_ids: List[str] = []
        self.active_gym_id: Optional[str] = None
        self.selected_route_id: Optional[str] = None
        self.viewing_profile_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def selected_gym_ids(self) -> List[str]:
        return list(self.metadata.selected_gym_ids) if self.metadata else []

    @property
    def active_gym_name(self) -> str:
        return self.gym_names.name(self.active_gym_id)

    # ============== Lifecycle ==============

    async def start(self):
        """Pick up an existing session and subscribe to auth changes."""
        self.loading = True
        self._subscription = self.backend.on_auth_state_change(self._on_auth_change)
        session = await self.backend.get_session()
        if session:
            await self._enter(session.user)
        else:
            self._reset(OnboardingStep.WELCOME)
        self.loading = False

    def stop(self):
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    async def _on_auth_change(self, event: AuthEvent, session: Optional[Session]):
        user = session.user if session else None
        if user is not None:
            if self.user is not None and self.user.id == user.id:
                # Token refresh or profile update for the same user
                self.user = user
                return
            await self._enter(user)
        elif self.user is not None:
            logger.info("Signed out (%s); returning to auth", event.value)
            self._reset(OnboardingStep.AUTH)

    async def _enter(self, user: User):
        """Load the user's metadata and route to dashboard or gym selection."""
        self.user = user
        self.error = None
        try:
            metadata = await self.profile_service.get_metadata(user.id)
        except BackendError as e:
            logger.error("Error fetching metadata for user %s: %r", user.id, e)
            metadata = None

        if self.user is None or self.user.id != user.id:
            # Signed out or switched user while the fetch was in flight
            return

        self.metadata = metadata
        gym_ids = metadata.selected_gym_ids if metadata else []
        self.pending_gym_ids = list(gym_ids)
        if gym_ids:
            current = metadata.current_gym_id
            self.active_gym_id = current if current in gym_ids else gym_ids[0]
            self.onboarding_step = OnboardingStep.COMPLETE
            self._set_view(AppView.DASHBOARD)
            await self.gym_names.ensure(gym_ids)
        else:
            self.active_gym_id = None
            self.onboarding_step = OnboardingStep.GYM_SELECTION
            self._set_view(AppView.ONBOARDING)

    def _reset(self, step: OnboardingStep):
        self.user = None
        self.metadata = None
        self.pending_gym_ids = []
        self.active_gym_id = None
        self.selected_route_id = None
        self.viewing_profile_id = None
        self.onboarding_step = step
        self.app_view = AppView.ONBOARDING
        self.previous_view = AppView.DASHBOARD

    # ============== Onboarding ==============

    def next_onboarding(self):
        if self.onboarding_step == OnboardingStep.WELCOME:
            self.onboarding_step = OnboardingStep.AUTH

    def auth_succeeded(self):
        """Called by the auth form; a user without gyms continues to gym selection."""
        if self.onboarding_step == OnboardingStep.AUTH and self.user is not None and not self.selected_gym_ids:
            self.onboarding_step = OnboardingStep.GYM_SELECTION

    def set_pending_gyms(self, gym_ids: Iterable[str]):
        """Replace the in-progress selection; nothing is saved until completion."""
        self.pending_gym_ids = list(dict.fromkeys(gym_ids))

    def toggle_pending_gym(self, gym_id: str):
        if gym_id in self.pending_gym_ids:
            self.pending_gym_ids = [g for g in self.pending_gym_ids if g != gym_id]
        else:
            self.pending_gym_ids = self.pending_gym_ids + [gym_id]

    async def complete_gym_selection(self) -> bool:
        """
        Persist the pending selection and finish onboarding.

        The active gym is kept if it is still selected, otherwise the first
        selected gym becomes active.
        """
        if self.user is None:
            raise ValidationError("You must be logged in to choose gyms.")
        if not self.pending_gym_ids:
            raise ValidationError("Please select at least one gym.", field="gyms")

        gym_ids = list(self.pending_gym_ids)
        active = self.active_gym_id if self.active_gym_id in gym_ids else gym_ids[0]
        self.error = None
        try:
            self.metadata = await self.profile_service.upsert_metadata(
                self.user.id, selected_gym_ids=gym_ids, current_gym_id=active
            )
        except BackendError as e:
            logger.error("Error saving gym selection for user %s: %r", self.user.id, e)
            self.error = "Failed to save your gyms. Please try again."
            return False

        self.active_gym_id = active
        self.onboarding_step = OnboardingStep.COMPLETE
        self._set_view(AppView.DASHBOARD)
        await self.gym_names.ensure(gym_ids)
        return True

    def open_gym_selection(self):
        """Re-enter gym selection seeded with the saved gyms."""
        self.pending_gym_ids = self.selected_gym_ids
        self.onboarding_step = OnboardingStep.GYM_SELECTION
        self._set_view(AppView.ONBOARDING)

    async def switch_gym(self, gym_id: str) -> bool:
        """Make another selected gym the active one. Switching to the active gym does nothing."""
        if self.user is None or gym_id == self.active_gym_id:
            return False
        if gym_id not in self.selected_gym_ids:
            raise ValidationError("Gym is not one of your gyms.", field="gym")

        self.error = None
        try:
            self.metadata = await self.profile_service.upsert_metadata(self.user.id, current_gym_id=gym_id)
        except BackendError as e:
            logger.error("Error switching active gym to %s: %r", gym_id, e)
            self.error = "Failed to switch gym."
            return False

        self.active_gym_id = gym_id
        self.selected_route_id = None
        self._set_view(AppView.DASHBOARD)
        logger.info("Switched active gym to: %s", gym_id)
        return True

    async def logout(self):
        """Sign out; state is reset by the resulting auth notification even if the revoke request fails."""
        try:
            await self.backend.sign_out()
        except BackendError as e:
            # The local session is cleared regardless, so there is nothing to show
            logger.error("Error revoking session on logout: %r", e)

    # ============== Navigation ==============

    def _set_view(self, view: AppView):
        self.app_view = view
        if view != AppView.LOG:
            self.previous_view = view

    def navigate(self, view: AppView, route_id: Optional[str] = None, profile_user_id: Optional[str] = None):
        if view in (AppView.ROUTE_DETAIL, AppView.ADD_BETA):
            if route_id:
                self.selected_route_id = route_id
        else:
            self.selected_route_id = None

        if view == AppView.PUBLIC_PROFILE:
            if self.user is not None and profile_user_id == self.user.id:
                view = AppView.PROFILE
            else:
                self.viewing_profile_id = profile_user_id

        self._set_view(view)

    def back(self):
        view = self.app_view
        if view in (AppView.ROUTE_DETAIL, AppView.ADD_BETA):
            self._set_view(AppView.ROUTES)
        elif view == AppView.ROUTES:
            self._set_view(AppView.DASHBOARD)
        elif view == AppView.LOG:
            self._set_view(self.previous_view)
        elif view in (AppView.PROFILE, AppView.DISCOVER, AppView.SETTINGS, AppView.PUBLIC_PROFILE):
            self._set_view(AppView.DASHBOARD)

    def beta_submitted(self):
        self._set_view(AppView.ROUTE_DETAIL if self.selected_route_id else AppView.ROUTES)

    def log_submitted(self):
        self._set_view(self.previous_view)
