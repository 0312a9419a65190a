"""Community beta and route discussion."""

import logging
from typing import Any, Dict, List, Optional

from circuit.backend import BackendClient
from circuit.schemas import BetaContent, BetaType, Comment


logger = logging.getLogger(__name__)

AUTHOR_JOIN = "profile:profiles!user_id(display_name, avatar_url)"


def _with_author(row: Dict[str, Any]) -> Dict[str, Any]:
    profile = row.get("profile") or {}
    return {
        **row,
        "author_name": profile.get("display_name"),
        "author_avatar_url": profile.get("avatar_url"),
    }


class BetaService:
    """Service for `route_beta`."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def list_beta(self, route_id: str) -> List[BetaContent]:
        response = await (
            self.backend.table("route_beta")
            .select(f"*, {AUTHOR_JOIN}")
            .eq("route_id", route_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [BetaContent.model_validate(_with_author(row)) for row in response.data or []]

    async def add_beta(
        self,
        route_id: str,
        user_id: str,
        beta_type: BetaType,
        text_content: Optional[str] = None,
        content_url: Optional[str] = None,
        key_move: Optional[str] = None,
    ):
        """Insert one beta row. Text tips carry no URL and media carries no text."""
        if beta_type == BetaType.TEXT:
            content_url = None
        else:
            text_content = None
        await (
            self.backend.table("route_beta")
            .insert(
                {
                    "route_id": route_id,
                    "user_id": user_id,
                    "beta_type": beta_type.value,
                    "text_content": text_content,
                    "content_url": content_url,
                    "key_move": key_move or None,
                },
                returning=False,
            )
            .execute()
        )
        logger.info("Beta (%s) added to route %s by %s", beta_type.value, route_id, user_id)


class CommentService:
    """Service for `route_comments`."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def list_comments(self, route_id: str) -> List[Comment]:
        response = await (
            self.backend.table("route_comments")
            .select(f"*, {AUTHOR_JOIN}")
            .eq("route_id", route_id)
            .order("created_at")
            .execute()
        )
        return [Comment.model_validate(_with_author(row)) for row in response.data or []]

    async def add_comment(self, route_id: str, user_id: str, text: str) -> Comment:
        response = await (
            self.backend.table("route_comments")
            .insert({"route_id": route_id, "user_id": user_id, "comment_text": text})
            .execute()
        )
        row = response.data[0] if isinstance(response.data, list) else response.data
        return Comment.model_validate(_with_author(row))
