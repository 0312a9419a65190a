"""Gym search and multi-select used during onboarding and "Manage My Gyms"."""

import logging
from typing import List, Optional

from circuit.concurrency import Debouncer, FetchGeneration
from circuit.controllers.session import SessionController
from circuit.exceptions import BackendError
from circuit.schemas import Gym
from circuit.services.gym_service import GymService


logger = logging.getLogger(__name__)


class GymSelectionController:
    """
    Paged gym directory whose selection lives on the session controller.

    Typing is debounced; clearing the search fetches immediately.
    """

    def __init__(
        self,
        gym_service: GymService,
        session: SessionController,
        page_size: int = 5,
        debounce_seconds: float = 0.3,
    ):
        self.gym_service = gym_service
        self.session = session
        self.page_size = page_size

        self.search_term = ""
        self.gyms: List[Gym] = []
        self.page = 0
        self.total_count = 0
        self.loading = False
        self.error: Optional[str] = None

        self._generation = FetchGeneration()
        self._debouncer = Debouncer(debounce_seconds)

    @property
    def total_pages(self) -> int:
        return max(1, -(-self.total_count // self.page_size))

    @property
    def has_next_page(self) -> bool:
        return (self.page + 1) * self.page_size < self.total_count

    @property
    def has_previous_page(self) -> bool:
        return self.page > 0

    @property
    def selected_gym_ids(self) -> List[str]:
        return list(self.session.pending_gym_ids)

    def is_selected(self, gym_id: str) -> bool:
        return gym_id in self.session.pending_gym_ids

    async def mount(self):
        await self.load_page(0)

    def unmount(self):
        self._debouncer.cancel()

    async def load_page(self, page: int):
        token = self._generation.next()
        self.loading = True
        self.error = None
        try:
            gyms, total = await self.gym_service.search_gyms(self.search_term, page, self.page_size)
        except BackendError as e:
            if not self._generation.is_current(token):
                return
            logger.error("Error fetching gyms: %r", e)
            self.error = "Failed to load gyms."
            self.gyms = []
            self.total_count = 0
            self.loading = False
            return

        if not self._generation.is_current(token):
            return
        self.gyms = gyms
        self.total_count = total
        self.page = page
        self.loading = False
        # Keep names for the gym switcher once selection completes
        self.session.gym_names.remember(gyms)

    async def next_page(self):
        if self.has_next_page and not self.loading:
            await self.load_page(self.page + 1)

    async def previous_page(self):
        if self.has_previous_page and not self.loading:
            await self.load_page(self.page - 1)

    def set_search_term(self, term: str):
        self.search_term = term
        if not term.strip():
            self._debouncer.cancel()
            self._debouncer.trigger_now(lambda: self.load_page(0))
        else:
            self._debouncer.trigger(lambda: self.load_page(0))

    async def wait_for_search(self):
        await self._debouncer.wait()

    def toggle(self, gym_id: str):
        self.session.toggle_pending_gym(gym_id)

    async def complete(self) -> bool:
        return await self.session.complete_gym_selection()
