"""Log-climb form, add-beta form and route detail."""
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from circuit.controllers.beta import AddBetaController
from circuit.controllers.log_climb import LogClimbController, LogType
from circuit.controllers.route_detail import RouteDetailController
from circuit.exceptions import BackendError, NotFoundError, ValidationError
from circuit.schemas import ActivityType, BetaContent, BetaType, Comment, FileUpload

from factories import REMOVED_AT, make_progress, make_route


@pytest.fixture
def progress_service():
    service = MagicMock()
    service.get_progress = AsyncMock(return_value=None)
    service.upsert = AsyncMock(side_effect=lambda progress: progress)
    return service


@pytest.fixture
def activity_service():
    service = MagicMock()
    service.record = AsyncMock(return_value=True)
    return service


@pytest.fixture
def route_service():
    service = MagicMock()
    service.loggable_routes = AsyncMock(
        return_value=[
            make_route("r1", name="Pinch Me", grade="V4"),
            make_route("r2", name="Slab Dance", grade="V1"),
            make_route("gone", name="Old One", removed_at=REMOVED_AT),
        ]
    )
    service.get_route = AsyncMock(return_value=make_route("r1", name="Pinch Me", grade="V4"))
    return service


# ============== Log climb ==============

@pytest.fixture
def log_form(route_service, progress_service, activity_service):
    return LogClimbController(route_service, progress_service, activity_service, "user-1", "gym-1")


@pytest.mark.asyncio
async def test_picker_excludes_removed_routes_and_searches(log_form):
    await log_form.load_routes()

    assert [r.id for r in log_form.routes] == ["r1", "r2"]

    log_form.set_route_search("v1")
    assert [r.id for r in log_form.filtered_routes] == ["r2"]
    log_form.set_route_search("PINCH")
    assert [r.id for r in log_form.filtered_routes] == ["r1"]


@pytest.mark.asyncio
async def test_searching_clears_selection(log_form):
    await log_form.load_routes()
    log_form.select_route("r1")
    assert log_form.route_search_term == "Pinch Me"

    log_form.set_route_search("Pin")

    assert log_form.selected_route is None


@pytest.mark.asyncio
async def test_removed_route_cannot_be_selected(log_form):
    await log_form.load_routes()

    with pytest.raises(ValidationError):
        log_form.select_route("gone")


@pytest.mark.asyncio
async def test_validation(log_form):
    await log_form.load_routes()

    with pytest.raises(ValidationError) as exc_info:
        log_form.validate()
    assert exc_info.value.field == "route"

    log_form.select_route("r1")
    log_form.attempts = 0
    with pytest.raises(ValidationError):
        log_form.validate()

    log_form.attempts = 2
    log_form.rating = 9
    with pytest.raises(ValidationError):
        log_form.validate()

    log_form.rating = 3
    log_form.climbed_on = date.today() + timedelta(days=1)
    with pytest.raises(ValidationError):
        log_form.validate()

    log_form.climbed_on = date.today()
    log_form.validate()


@pytest.mark.asyncio
async def test_logging_a_send_adds_attempts_and_records_activity(log_form, progress_service, activity_service):
    progress_service.get_progress.return_value = make_progress("r1", attempts=2)
    await log_form.load_routes()
    log_form.select_route("r1")
    log_form.attempts = 3
    log_form.rating = 5
    log_form.notes = "  drop knee  "
    log_form.climbed_on = date.today() - timedelta(days=10)

    assert await log_form.submit() is True

    saved = progress_service.upsert.await_args.args[0]
    assert saved.attempts == 5
    assert saved.sent_at.date() == date.today() - timedelta(days=10)
    assert saved.rating == 5
    assert saved.notes == "drop knee"
    activity_service.record.assert_awaited_once_with(
        "user-1",
        ActivityType.LOG_SEND,
        gym_id="gym-1",
        route_id="r1",
        details={"route_name": "Pinch Me", "route_grade": "V4", "attempts": 5},
    )


@pytest.mark.asyncio
async def test_logging_an_attempt_never_sends(log_form, progress_service, activity_service):
    await log_form.load_routes()
    log_form.select_route("r2")
    log_form.log_type = LogType.ATTEMPT

    assert await log_form.submit() is True

    saved = progress_service.upsert.await_args.args[0]
    assert saved.attempts == 1
    assert saved.sent_at is None
    assert activity_service.record.await_args.args[1] == ActivityType.LOG_ATTEMPT


@pytest.mark.asyncio
async def test_failed_save_skips_activity(log_form, progress_service, activity_service):
    progress_service.upsert.side_effect = BackendError("down")
    await log_form.load_routes()
    log_form.select_route("r1")

    assert await log_form.submit() is False

    assert log_form.error
    activity_service.record.assert_not_awaited()


@pytest.mark.asyncio
async def test_no_active_gym_means_no_routes(route_service, progress_service, activity_service):
    form = LogClimbController(route_service, progress_service, activity_service, "user-1", None)

    await form.load_routes()

    assert form.routes == []
    route_service.loggable_routes.assert_not_awaited()


# ============== Add beta ==============

@pytest.fixture
def beta_services():
    beta_service = MagicMock()
    beta_service.add_beta = AsyncMock()
    storage_service = MagicMock()
    storage_service.upload_beta_media = AsyncMock(return_value="https://cdn.example/beta.mp4")
    return beta_service, storage_service


@pytest.mark.asyncio
async def test_text_beta_requires_text(beta_services, activity_service):
    beta_service, storage_service = beta_services
    form = AddBetaController(beta_service, storage_service, activity_service, make_route("r1"), "user-1")

    with pytest.raises(ValidationError):
        await form.submit()

    form.text_content = "Left foot high on the volume"
    assert await form.submit() is True

    beta_service.add_beta.assert_awaited_once_with(
        "r1", "user-1", BetaType.TEXT,
        text_content="Left foot high on the volume", content_url=None, key_move=None,
    )
    storage_service.upload_beta_media.assert_not_awaited()
    assert activity_service.record.await_args.kwargs["details"]["beta_type"] == "text"


@pytest.mark.asyncio
async def test_video_beta_uploads_then_inserts(beta_services, activity_service):
    beta_service, storage_service = beta_services
    form = AddBetaController(beta_service, storage_service, activity_service, make_route("r1"), "user-1")
    form.select_type(BetaType.VIDEO)

    with pytest.raises(ValidationError):
        await form.submit()

    upload = FileUpload(filename="send.mp4", content_type="video/mp4", content=b"0000")
    form.choose_file(upload)
    assert await form.submit() is True

    storage_service.upload_beta_media.assert_awaited_once_with("user-1", "r1", BetaType.VIDEO, upload)
    assert beta_service.add_beta.await_args.kwargs["content_url"] == "https://cdn.example/beta.mp4"
    assert activity_service.record.await_args.args[1] == ActivityType.ADD_BETA


@pytest.mark.asyncio
async def test_wrong_video_type_is_rejected_on_choose(beta_services, activity_service):
    beta_service, storage_service = beta_services
    form = AddBetaController(beta_service, storage_service, activity_service, make_route("r1"), "user-1")
    form.select_type(BetaType.VIDEO)

    with pytest.raises(ValidationError):
        form.choose_file(FileUpload(filename="a.gif", content_type="image/gif", content=b"x"))

    assert form.file is None


@pytest.mark.asyncio
async def test_beta_upload_failure_reports_error(beta_services, activity_service):
    beta_service, storage_service = beta_services
    storage_service.upload_beta_media.side_effect = BackendError("bucket full")
    form = AddBetaController(beta_service, storage_service, activity_service, make_route("r1"), "user-1")
    form.select_type(BetaType.DRAWING)
    form.choose_file(FileUpload(filename="map.png", content_type="image/png", content=b"x"))

    assert await form.submit() is False

    assert form.error == "Failed to submit beta: bucket full"
    assert form.submitting is False
    beta_service.add_beta.assert_not_awaited()
    activity_service.record.assert_not_awaited()


# ============== Route detail ==============

def _detail(route_service, progress_service, activity_service, user_id="user-1"):
    beta_service = MagicMock()
    beta_service.list_beta = AsyncMock(
        return_value=[
            BetaContent(id="b1", route_id="r1", user_id="u2", beta_type=BetaType.TEXT, text_content="crimp"),
            BetaContent(id="b2", route_id="r1", user_id="u3", beta_type=BetaType.VIDEO, content_url="https://v"),
        ]
    )
    comment_service = MagicMock()
    comment_service.list_comments = AsyncMock(return_value=[])
    comment_service.add_comment = AsyncMock(
        side_effect=lambda route_id, user_id, text: Comment(id="c1", route_id=route_id, user_id=user_id, comment_text=text)
    )
    controller = RouteDetailController(
        route_service, progress_service, beta_service, comment_service, activity_service, "r1", user_id
    )
    return controller, comment_service


@pytest.mark.asyncio
async def test_detail_loads_route_progress_and_beta(route_service, progress_service, activity_service):
    controller, _ = _detail(route_service, progress_service, activity_service)

    await controller.load()

    assert controller.route.name == "Pinch Me"
    assert controller.progress.loaded is True
    assert [b.id for b in controller.filtered_beta] == ["b1"]
    controller.set_beta_tab(BetaType.VIDEO)
    assert [b.id for b in controller.filtered_beta] == ["b2"]


@pytest.mark.asyncio
async def test_missing_route_is_reported_as_not_found(route_service, progress_service, activity_service):
    route_service.get_route.side_effect = NotFoundError("no rows", code="PGRST116")
    controller, _ = _detail(route_service, progress_service, activity_service)

    await controller.load()

    assert controller.route is None
    assert controller.error == "Route not found."
    progress_service.get_progress.assert_not_awaited()


@pytest.mark.asyncio
async def test_posting_a_comment(route_service, progress_service, activity_service):
    controller, comment_service = _detail(route_service, progress_service, activity_service)
    await controller.load()

    with pytest.raises(ValidationError):
        await controller.post_comment("   ")

    assert await controller.post_comment(" nice one ") is True

    comment_service.add_comment.assert_awaited_once_with("r1", "user-1", "nice one")
    assert [c.comment_text for c in controller.comments] == ["nice one"]
    assert activity_service.record.await_args.args[1] == ActivityType.ADD_COMMENT


@pytest.mark.asyncio
async def test_signed_out_detail_has_no_progress(route_service, progress_service, activity_service):
    controller, _ = _detail(route_service, progress_service, activity_service, user_id=None)

    await controller.load()

    assert controller.progress is None
    with pytest.raises(ValidationError):
        await controller.post_comment("hi")
