"""Profile rows: display name, avatar, selected gyms and active gym."""

import logging
from typing import Any, Optional

from circuit.backend import BackendClient
from circuit.schemas import UserMetadata


logger = logging.getLogger(__name__)

PROFILE_COLUMNS = "user_id, display_name, avatar_url, selected_gym_ids, current_gym_id"


class ProfileService:
    """Reads and upserts the one-per-user `profiles` row."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def get_metadata(self, user_id: str) -> Optional[UserMetadata]:
        """Get the user's row, or None when it has not been created yet."""
        response = await (
            self.backend.table("profiles")
            .select(PROFILE_COLUMNS)
            .eq("user_id", user_id)
            .maybe_single()
            .execute()
        )
        return UserMetadata.model_validate(response.data) if response.data else None

    async def get_profile(self, user_id: str) -> UserMetadata:
        """Get a user's row; raises NotFoundError when it is missing."""
        response = await (
            self.backend.table("profiles")
            .select(PROFILE_COLUMNS)
            .eq("user_id", user_id)
            .single()
            .execute()
        )
        return UserMetadata.model_validate(response.data)

    async def upsert_metadata(self, user_id: str, **fields: Any) -> UserMetadata:
        """Create the row if absent, else update only the given columns."""
        row = {"user_id": user_id, **fields}
        response = await (
            self.backend.table("profiles")
            .upsert(row, on_conflict="user_id")
            .execute()
        )
        data = response.data[0] if isinstance(response.data, list) and response.data else response.data
        logger.info("Saved profile fields %s for user %s", sorted(fields), user_id)
        if not data:
            return UserMetadata(**row)
        return UserMetadata.model_validate(data)
