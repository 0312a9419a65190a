"""Route listing controller: filters, search, pagination and the per-page join."""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from circuit.concurrency import Debouncer, FetchGeneration
from circuit.exceptions import BackendError
from circuit.schemas import (
    Route,
    RouteListing,
    RouteStats,
    RouteStatus,
    RouteView,
    SortOption,
    StatusFilter,
    UserRouteProgress,
)
from circuit.services.progress_service import ProgressService
from circuit.services.route_service import RouteService


logger = logging.getLogger(__name__)


def join_route_views(
    routes: Iterable[Route],
    progress: Dict[str, UserRouteProgress],
    stats: Dict[str, RouteStats],
) -> Tuple[RouteView, ...]:
    """Join base rows with the user's progress and aggregate stats by route id.

    Removed routes are dropped; server order is preserved.
    """
    views = []
    for route in routes:
        if route.is_removed:
            continue
        p = progress.get(route.id)
        s = stats.get(route.id)
        views.append(
            RouteView(
                route=route,
                status=p.status if p else RouteStatus.UNSEEN,
                attempts=p.attempts if p else 0,
                sent_at=p.sent_at if p else None,
                user_rating=p.rating if p else None,
                wishlist=p.wishlist if p else False,
                avg_rating=s.avg_rating if s else None,
                ascent_count=s.ascent_count if s else 0,
                beta_available=bool(s and s.beta_count > 0),
                comment_count=s.comment_count if s else 0,
            )
        )
    return tuple(views)


def apply_view_filters(
    views: Iterable[RouteView],
    status_filter: StatusFilter,
    sort: SortOption,
) -> List[RouteView]:
    """Filters and orderings the server cannot apply: status and rating."""
    if status_filter == StatusFilter.WISHLIST:
        result = [v for v in views if v.wishlist]
    elif status_filter == StatusFilter.ALL:
        result = list(views)
    else:
        wanted = RouteStatus(status_filter.value)
        result = [v for v in views if v.status == wanted]

    if sort == SortOption.RATING_HIGHEST:
        # Stable: unrated routes last, server order among equals
        result.sort(key=lambda v: (v.avg_rating is None, -(v.avg_rating or 0)))
    return result


class RouteListController:
    """
    Route list for one gym.

    Search, location, grade and sort are applied server-side one page at a
    time; status filter and rating sort are applied to the joined views.
    Each fresh query starts a new fetch generation, and results belonging
    to an older generation are discarded when they arrive.
    """

    def __init__(
        self,
        route_service: RouteService,
        progress_service: ProgressService,
        gym_id: Optional[str],
        user_id: Optional[str],
        page_size: int = 10,
        debounce_seconds: float = 0.3,
    ):
        self.route_service = route_service
        self.progress_service = progress_service
        self.gym_id = gym_id
        self.user_id = user_id
        self.page_size = page_size

        self.search_term = ""
        # Term the current generation was fetched with; "load more" pages use it
        self._active_search = ""
        self.location_filter: Optional[str] = None
        self.grade_filter: Optional[str] = None
        self.status_filter = StatusFilter.ALL
        self.sort = SortOption.DATE_NEWEST

        self.loading = False
        self.loading_more = False
        self.error: Optional[str] = None

        self._generation = FetchGeneration()
        self._debouncer = Debouncer(debounce_seconds)
        self.listing = RouteListing(generation=self._generation.current)

    # ============== Derived state ==============

    @property
    def routes(self) -> List[RouteView]:
        return apply_view_filters(self.listing.items, self.status_filter, self.sort)

    @property
    def has_more(self) -> bool:
        return self.listing.has_more

    @property
    def page(self) -> int:
        return self.listing.page

    def available_locations(self) -> List[str]:
        return sorted({v.route.location for v in self.listing.items if v.route.location})

    def available_grades(self) -> List[str]:
        return sorted({v.route.grade for v in self.listing.items if v.route.grade})

    # ============== Triggers ==============

    async def mount(self):
        await self.refresh()

    def unmount(self):
        self._debouncer.cancel()

    async def refresh(self):
        """Fetch page 0 with the current filters as a new generation."""
        await self._fetch(page=0, append=False)

    async def load_more(self):
        if self.loading or self.loading_more or not self.listing.has_more:
            return
        await self._fetch(page=self.listing.page + 1, append=True)

    def set_search_term(self, term: str):
        """Update the search text; the fetch runs once typing pauses."""
        self.search_term = term
        self._debouncer.trigger(self.refresh)

    async def wait_for_search(self):
        await self._debouncer.wait()

    async def set_gym(self, gym_id: Optional[str]):
        if gym_id != self.gym_id:
            self.gym_id = gym_id
            await self.refresh()

    async def set_user(self, user_id: Optional[str]):
        if user_id != self.user_id:
            self.user_id = user_id
            await self.refresh()

    async def set_location_filter(self, location: Optional[str]):
        if location != self.location_filter:
            self.location_filter = location
            await self.refresh()

    async def set_grade_filter(self, grade: Optional[str]):
        if grade != self.grade_filter:
            self.grade_filter = grade
            await self.refresh()

    async def set_sort(self, sort: SortOption):
        if sort != self.sort:
            self.sort = sort
            await self.refresh()

    def set_status_filter(self, status_filter: StatusFilter):
        self.status_filter = status_filter

    # ============== Fetch ==============

    async def _progress_for(self, route_ids: List[str]) -> Dict[str, UserRouteProgress]:
        if not self.user_id:
            return {}
        return await self.progress_service.progress_for_routes(self.user_id, route_ids)

    async def _fetch(self, page: int, append: bool):
        # "Load more" extends the current generation; anything else starts a new one
        token = self._generation.current if append else self._generation.next()
        if not append:
            self._active_search = self.search_term

        if not self.gym_id:
            self.listing = RouteListing(generation=token)
            self.loading = self.loading_more = False
            return

        if append:
            self.loading_more = True
        else:
            # A superseded "load more" will never clear its own flag
            self.loading_more = False
            self.loading = True
        self.error = None

        try:
            rows = await self.route_service.filtered_routes(
                self.gym_id,
                search_term=self._active_search,
                location=self.location_filter,
                grade=self.grade_filter,
                sort=self.sort,
                page_size=self.page_size,
                offset=page * self.page_size,
            )
            if not self._generation.is_current(token):
                return

            # Follow-up lookups cover this page's ids only
            ids = [r.id for r in rows]
            progress, stats = await asyncio.gather(
                self._progress_for(ids),
                self.route_service.card_stats(ids),
            )
        except BackendError as e:
            if not self._generation.is_current(token):
                return
            logger.error("Error fetching routes for gym %s: %r", self.gym_id, e)
            self.error = "Failed to load routes."
            if append:
                self.listing = self.listing.model_copy(update={"has_more": False})
            else:
                self.listing = RouteListing(generation=token)
            self._done(append)
            return

        if not self._generation.is_current(token):
            return

        views = join_route_views(rows, progress, stats)
        self.listing = RouteListing(
            generation=token,
            page=page,
            has_more=len(rows) == self.page_size,
            items=self.listing.items + views if append else views,
        )
        self._done(append)

    def _done(self, append: bool):
        if append:
            self.loading_more = False
        else:
            self.loading = False
