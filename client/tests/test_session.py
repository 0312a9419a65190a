"""Onboarding, auth-change handling, gym selection and navigation."""
import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from circuit.controllers.session import GymNameCache, SessionController
from circuit.exceptions import BackendError, ValidationError
from circuit.schemas import AppView, AuthEvent, Gym, OnboardingStep, Session, User

from factories import make_metadata


def _session(user_id="user-1"):
    return Session(access_token="tok", user=User(id=user_id))


@pytest.fixture
def backend():
    backend = MagicMock()
    backend.get_session = AsyncMock(return_value=None)
    backend.sign_out = AsyncMock()
    return backend


@pytest.fixture
def profile_service():
    service = MagicMock()
    service.get_metadata = AsyncMock(return_value=None)
    service.upsert_metadata = AsyncMock(
        side_effect=lambda user_id, **fields: make_metadata(user_id, **fields)
    )
    return service


@pytest.fixture
def gym_service():
    service = MagicMock()
    service.get_gyms_by_ids = AsyncMock(
        side_effect=lambda ids: [Gym(id=gym_id, name=f"Gym {gym_id}") for gym_id in ids]
    )
    return service


@pytest.fixture
def controller(backend, profile_service, gym_service):
    return SessionController(backend, profile_service, gym_service)


@pytest.mark.asyncio
async def test_start_without_session_shows_welcome(controller, backend):
    await controller.start()

    assert controller.onboarding_step == OnboardingStep.WELCOME
    assert controller.app_view == AppView.ONBOARDING
    assert controller.loading is False
    backend.on_auth_state_change.assert_called_once()

    controller.next_onboarding()
    assert controller.onboarding_step == OnboardingStep.AUTH


@pytest.mark.asyncio
async def test_user_without_gyms_goes_to_gym_selection(controller, backend, profile_service):
    backend.get_session.return_value = _session()
    profile_service.get_metadata.return_value = make_metadata(selected_gym_ids=[])

    await controller.start()

    assert controller.onboarding_step == OnboardingStep.GYM_SELECTION
    assert controller.app_view == AppView.ONBOARDING
    assert controller.active_gym_id is None


@pytest.mark.asyncio
async def test_user_with_gyms_lands_on_dashboard(controller, backend, profile_service, gym_service):
    backend.get_session.return_value = _session()
    profile_service.get_metadata.return_value = make_metadata(
        selected_gym_ids=["g1", "g2"], current_gym_id="g2"
    )

    await controller.start()

    assert controller.onboarding_step == OnboardingStep.COMPLETE
    assert controller.app_view == AppView.DASHBOARD
    assert controller.active_gym_id == "g2"
    assert controller.active_gym_name == "Gym g2"
    gym_service.get_gyms_by_ids.assert_awaited_once_with(["g1", "g2"])


@pytest.mark.asyncio
async def test_stale_current_gym_falls_back_to_first_selected(controller, backend, profile_service):
    backend.get_session.return_value = _session()
    profile_service.get_metadata.return_value = make_metadata(
        selected_gym_ids=["g1", "g2"], current_gym_id="gone"
    )

    await controller.start()

    assert controller.active_gym_id == "g1"


@pytest.mark.asyncio
async def test_metadata_error_falls_back_to_gym_selection(controller, backend, profile_service):
    backend.get_session.return_value = _session()
    profile_service.get_metadata.side_effect = BackendError("timeout")

    await controller.start()

    assert controller.metadata is None
    assert controller.onboarding_step == OnboardingStep.GYM_SELECTION


@pytest.mark.asyncio
async def test_same_user_notification_does_not_refetch(controller, backend, profile_service):
    backend.get_session.return_value = _session()
    profile_service.get_metadata.return_value = make_metadata(selected_gym_ids=["g1"])
    await controller.start()

    await controller._on_auth_change(AuthEvent.TOKEN_REFRESHED, _session())

    assert profile_service.get_metadata.await_count == 1
    assert controller.app_view == AppView.DASHBOARD


@pytest.mark.asyncio
async def test_token_refresh_during_metadata_fetch_still_routes_user(controller, profile_service):
    release = asyncio.Event()

    async def slow_metadata(user_id):
        await release.wait()
        return make_metadata(user_id, selected_gym_ids=["g1"])

    profile_service.get_metadata.side_effect = slow_metadata

    entering = asyncio.create_task(controller._on_auth_change(AuthEvent.SIGNED_IN, _session()))
    await asyncio.sleep(0)
    await controller._on_auth_change(AuthEvent.TOKEN_REFRESHED, _session())
    release.set()
    await entering

    assert controller.user.id == "user-1"
    assert controller.metadata is not None
    assert controller.active_gym_id == "g1"
    assert controller.onboarding_step == OnboardingStep.COMPLETE
    assert controller.app_view == AppView.DASHBOARD
    assert profile_service.get_metadata.await_count == 1


@pytest.mark.asyncio
async def test_sign_out_resets_everything_and_returns_to_auth(controller, backend, profile_service):
    backend.get_session.return_value = _session()
    profile_service.get_metadata.return_value = make_metadata(selected_gym_ids=["g1"])
    await controller.start()
    controller.navigate(AppView.ROUTE_DETAIL, route_id="r1")

    await controller._on_auth_change(AuthEvent.SIGNED_OUT, None)

    assert controller.user is None
    assert controller.metadata is None
    assert controller.active_gym_id is None
    assert controller.selected_route_id is None
    assert controller.onboarding_step == OnboardingStep.AUTH
    assert controller.app_view == AppView.ONBOARDING


@pytest.mark.asyncio
async def test_sign_out_before_metadata_arrives_discards_it(controller, profile_service):
    release = asyncio.Event()

    async def slow_metadata(user_id):
        await release.wait()
        return make_metadata(user_id, selected_gym_ids=["g1"])

    profile_service.get_metadata.side_effect = slow_metadata

    entering = asyncio.create_task(controller._on_auth_change(AuthEvent.SIGNED_IN, _session()))
    await asyncio.sleep(0)
    await controller._on_auth_change(AuthEvent.SIGNED_OUT, None)
    release.set()
    await entering

    assert controller.user is None
    assert controller.metadata is None
    assert controller.onboarding_step == OnboardingStep.AUTH


@pytest.mark.asyncio
async def test_auth_succeeded_moves_to_gym_selection(controller):
    controller.next_onboarding()
    controller.user = User(id="user-1")

    controller.auth_succeeded()

    assert controller.onboarding_step == OnboardingStep.GYM_SELECTION


@pytest.mark.asyncio
async def test_pending_selection_is_saved_only_on_completion(controller, backend, profile_service):
    backend.get_session.return_value = _session()
    await controller.start()

    controller.toggle_pending_gym("g1")
    controller.toggle_pending_gym("g2")
    controller.toggle_pending_gym("g1")
    controller.toggle_pending_gym("g3")
    profile_service.upsert_metadata.assert_not_awaited()

    assert await controller.complete_gym_selection() is True

    profile_service.upsert_metadata.assert_awaited_once_with(
        "user-1", selected_gym_ids=["g2", "g3"], current_gym_id="g2"
    )
    assert controller.active_gym_id == "g2"
    assert controller.onboarding_step == OnboardingStep.COMPLETE
    assert controller.app_view == AppView.DASHBOARD


@pytest.mark.asyncio
async def test_completion_keeps_active_gym_still_selected(controller, backend, profile_service):
    backend.get_session.return_value = _session()
    profile_service.get_metadata.return_value = make_metadata(
        selected_gym_ids=["g1", "g2"], current_gym_id="g2"
    )
    await controller.start()

    controller.open_gym_selection()
    assert controller.pending_gym_ids == ["g1", "g2"]
    controller.toggle_pending_gym("g3")
    await controller.complete_gym_selection()

    assert controller.active_gym_id == "g2"


@pytest.mark.asyncio
async def test_completion_requires_a_gym(controller, backend, profile_service):
    backend.get_session.return_value = _session()
    await controller.start()

    with pytest.raises(ValidationError):
        await controller.complete_gym_selection()
    profile_service.upsert_metadata.assert_not_awaited()


@pytest.mark.asyncio
async def test_completion_failure_keeps_user_on_gym_selection(controller, backend, profile_service):
    backend.get_session.return_value = _session()
    await controller.start()
    controller.set_pending_gyms(["g1"])
    profile_service.upsert_metadata.side_effect = BackendError("down")

    assert await controller.complete_gym_selection() is False

    assert controller.error
    assert controller.onboarding_step == OnboardingStep.GYM_SELECTION


@pytest.mark.asyncio
async def test_switching_to_active_gym_is_a_no_op(controller, backend, profile_service):
    backend.get_session.return_value = _session()
    profile_service.get_metadata.return_value = make_metadata(
        selected_gym_ids=["g1", "g2"], current_gym_id="g1"
    )
    await controller.start()

    assert await controller.switch_gym("g1") is False
    profile_service.upsert_metadata.assert_not_awaited()

    assert await controller.switch_gym("g2") is True
    profile_service.upsert_metadata.assert_awaited_once_with("user-1", current_gym_id="g2")
    assert controller.active_gym_id == "g2"

    with pytest.raises(ValidationError):
        await controller.switch_gym("elsewhere")


@pytest.mark.asyncio
async def test_logout_delegates_to_backend(controller, backend):
    await controller.logout()

    backend.sign_out.assert_awaited_once()


@pytest.mark.asyncio
async def test_logout_failure_is_logged_without_banner(controller, backend, caplog):
    backend.sign_out.side_effect = BackendError("network down")

    with caplog.at_level(logging.ERROR, logger="circuit.controllers.session"):
        await controller.logout()

    assert controller.error is None
    assert "Error revoking session on logout" in caplog.text


def test_navigation_back_and_log_return(controller):
    controller.navigate(AppView.ROUTES)
    controller.navigate(AppView.ROUTE_DETAIL, route_id="r1")
    assert controller.selected_route_id == "r1"

    controller.navigate(AppView.LOG)
    assert controller.selected_route_id is None
    controller.log_submitted()
    assert controller.app_view == AppView.ROUTE_DETAIL

    controller.navigate(AppView.ADD_BETA, route_id="r1")
    controller.beta_submitted()
    assert controller.app_view == AppView.ROUTE_DETAIL

    controller.navigate(AppView.ADD_BETA)
    controller.beta_submitted()
    assert controller.app_view == AppView.ROUTE_DETAIL

    controller.back()
    assert controller.app_view == AppView.ROUTES
    controller.back()
    assert controller.app_view == AppView.DASHBOARD

    controller.navigate(AppView.SETTINGS)
    assert controller.selected_route_id is None


def test_public_profile_of_self_opens_own_profile(controller):
    controller.user = User(id="user-1")

    controller.navigate(AppView.PUBLIC_PROFILE, profile_user_id="user-1")
    assert controller.app_view == AppView.PROFILE

    controller.navigate(AppView.PUBLIC_PROFILE, profile_user_id="user-2")
    assert controller.app_view == AppView.PUBLIC_PROFILE
    assert controller.viewing_profile_id == "user-2"


@pytest.mark.asyncio
async def test_gym_name_cache_fetches_only_misses(gym_service):
    cache = GymNameCache(gym_service)

    await cache.ensure(["g1", "g2"])
    await cache.ensure(["g2", "g3", None])

    assert gym_service.get_gyms_by_ids.await_args_list[1].args == (["g3"],)
    assert cache.name("g3") == "Gym g3"
    assert cache.name("nope") == "Unknown Gym"
    assert cache.name(None) == "Select Gym"


@pytest.mark.asyncio
async def test_gym_name_cache_survives_fetch_error(gym_service):
    gym_service.get_gyms_by_ids.side_effect = BackendError("down")
    cache = GymNameCache(gym_service)

    names = await cache.ensure(["g1"])

    assert names == {}
    assert "g1" not in cache
