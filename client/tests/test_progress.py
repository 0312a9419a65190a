"""Progress arithmetic and the optimistic write / re-fetch cycle."""
import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from circuit.controllers.progress import ProgressController, SyncState, apply_attempt, apply_send
from circuit.exceptions import BackendError, ValidationError
from circuit.schemas import RouteStatus

from factories import make_progress


FIRST_SEND = datetime(2026, 3, 1, 18, 30, tzinfo=timezone.utc)
LATER = datetime(2026, 3, 8, 19, 0, tzinfo=timezone.utc)


def _service(existing=None):
    service = MagicMock()
    service.get_progress = AsyncMock(return_value=existing)
    service.upsert = AsyncMock(side_effect=lambda progress: progress)
    return service


# ============== Arithmetic ==============

def test_attempts_accumulate_without_sending():
    progress = make_progress("r1")
    for _ in range(4):
        progress = apply_attempt(progress)

    assert progress.attempts == 4
    assert progress.sent_at is None
    assert progress.status == RouteStatus.ATTEMPTED


def test_send_counts_at_least_one_attempt():
    sent = apply_send(make_progress("r1"), when=FIRST_SEND)

    assert sent.attempts == 1
    assert sent.sent_at == FIRST_SEND
    assert sent.status == RouteStatus.SENT


def test_send_keeps_existing_attempts():
    sent = apply_send(make_progress("r1", attempts=5), when=FIRST_SEND)

    assert sent.attempts == 5


def test_sending_again_keeps_first_send_date():
    once = apply_send(make_progress("r1", attempts=2), when=FIRST_SEND)
    twice = apply_send(once, when=LATER)

    assert twice.sent_at == FIRST_SEND
    assert twice.attempts == 2


def test_send_with_attempt_count_adds_them():
    sent = apply_send(make_progress("r1", attempts=2), when=FIRST_SEND, attempts=3)

    assert sent.attempts == 5


def test_send_with_zero_attempts_is_rejected():
    with pytest.raises(ValidationError):
        apply_send(make_progress("r1"), attempts=0)


def test_attempt_after_send_keeps_send():
    sent = apply_send(make_progress("r1"), when=FIRST_SEND)

    again = apply_attempt(sent)

    assert again.sent_at == FIRST_SEND
    assert again.attempts == 2


# ============== Controller ==============

@pytest.mark.asyncio
async def test_untouched_route_loads_as_zero():
    controller = ProgressController(_service(), "user-1", "r1")

    assert await controller.load() is True

    assert controller.progress.attempts == 0
    assert controller.progress.sent_at is None
    assert controller.state == SyncState.SYNCED


@pytest.mark.asyncio
async def test_logging_attempts_then_send():
    service = _service()
    controller = ProgressController(service, "user-1", "r1")
    await controller.load()

    await controller.log_attempt()
    await controller.log_attempt()
    await controller.log_send(when=FIRST_SEND)

    assert controller.progress.attempts == 2
    assert controller.progress.sent_at == FIRST_SEND
    assert controller.state == SyncState.SYNCED
    assert service.upsert.await_count == 3


@pytest.mark.asyncio
async def test_update_loads_first_when_needed():
    service = _service(make_progress("r1", attempts=3))
    controller = ProgressController(service, "user-1", "r1")

    await controller.log_attempt()

    service.get_progress.assert_awaited_once_with("user-1", "r1")
    assert controller.progress.attempts == 4


@pytest.mark.asyncio
async def test_no_write_when_initial_read_fails():
    service = _service()
    service.get_progress.side_effect = BackendError("down")
    controller = ProgressController(service, "user-1", "r1")

    assert await controller.log_attempt() is False

    service.upsert.assert_not_awaited()
    assert controller.error == "Failed to load your progress."


@pytest.mark.asyncio
async def test_failed_write_resyncs_from_server():
    service = _service(make_progress("r1", attempts=1))
    controller = ProgressController(service, "user-1", "r1")
    await controller.load()
    service.upsert.side_effect = BackendError("conflict")
    service.get_progress.return_value = make_progress("r1", attempts=7)

    assert await controller.log_attempt() is False

    assert controller.progress.attempts == 7
    assert controller.state == SyncState.SYNCED
    assert controller.error == "Failed to save your progress."
    assert service.get_progress.await_count == 2


@pytest.mark.asyncio
async def test_failed_write_and_failed_resync_reverts_to_last_confirmed():
    service = _service(make_progress("r1", attempts=1))
    controller = ProgressController(service, "user-1", "r1")
    await controller.load()
    service.upsert.side_effect = BackendError("conflict")
    service.get_progress.side_effect = BackendError("down")

    await controller.log_attempt()

    assert controller.progress.attempts == 1
    assert controller.state == SyncState.WRITE_FAILED


@pytest.mark.asyncio
async def test_edit_is_visible_while_write_is_pending():
    release = asyncio.Event()
    service = _service()

    async def slow_upsert(progress):
        await release.wait()
        return progress

    service.upsert.side_effect = slow_upsert
    controller = ProgressController(service, "user-1", "r1")
    await controller.load()

    writing = asyncio.create_task(controller.log_attempt())
    await asyncio.sleep(0)
    assert controller.state == SyncState.PENDING_WRITE
    assert controller.progress.attempts == 1

    release.set()
    await writing
    assert controller.state == SyncState.SYNCED


@pytest.mark.asyncio
async def test_concurrent_edits_are_applied_in_order():
    service = _service()
    controller = ProgressController(service, "user-1", "r1")
    await controller.load()

    await asyncio.gather(controller.log_attempt(), controller.log_attempt(), controller.log_attempt())

    assert controller.progress.attempts == 3
    assert [call.args[0].attempts for call in service.upsert.await_args_list] == [1, 2, 3]


@pytest.mark.asyncio
async def test_rating_toggles_off_when_repeated():
    controller = ProgressController(_service(), "user-1", "r1")
    await controller.load()

    await controller.set_rating(4)
    assert controller.progress.rating == 4
    await controller.set_rating(4)
    assert controller.progress.rating is None

    with pytest.raises(ValidationError):
        await controller.set_rating(6)


@pytest.mark.asyncio
async def test_wishlist_and_notes():
    controller = ProgressController(_service(), "user-1", "r1")
    await controller.load()

    await controller.toggle_wishlist()
    await controller.set_notes("heel hook on the lip")

    assert controller.progress.wishlist is True
    assert controller.progress.notes == "heel hook on the lip"
    assert controller.progress.attempts == 0
