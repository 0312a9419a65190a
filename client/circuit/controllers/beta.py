"""Add-beta form: a text tip, a video or a drawing for one route."""

import logging
from typing import Optional

from circuit.exceptions import BackendError, ValidationError
from circuit.schemas import ActivityType, BetaType, FileUpload, Route
from circuit.services.activity_service import ActivityService
from circuit.services.beta_service import BetaService
from circuit.services.storage_service import StorageService, beta_media_rules, validate_file


logger = logging.getLogger(__name__)


class AddBetaController:
    """Controller behind the add-beta screen."""

    def __init__(
        self,
        beta_service: BetaService,
        storage_service: StorageService,
        activity_service: ActivityService,
        route: Route,
        user_id: Optional[str],
    ):
        self.beta_service = beta_service
        self.storage_service = storage_service
        self.activity_service = activity_service
        self.route = route
        self.user_id = user_id

        self.beta_type = BetaType.TEXT
        self.text_content = ""
        self.file: Optional[FileUpload] = None
        self.key_move = ""
        self.submitting = False
        self.error: Optional[str] = None

    def select_type(self, beta_type: BetaType):
        """Switching type clears whatever was entered for the previous one."""
        self.beta_type = beta_type
        self.text_content = ""
        self.file = None
        self.error = None

    def choose_file(self, upload: FileUpload):
        """Accept a media file, rejecting bad types and sizes straight away."""
        if self.beta_type == BetaType.TEXT:
            raise ValidationError("Text beta has no file.", field="file")
        self.file = None
        allowed, max_bytes, kind = beta_media_rules(self.beta_type)
        validate_file(upload, allowed, max_bytes, kind)
        self.file = upload

    def validate(self):
        if self.user_id is None:
            raise ValidationError("You must be logged in to submit beta.")
        if self.beta_type == BetaType.TEXT and not self.text_content.strip():
            raise ValidationError("Please enter some text for the tip.", field="text")
        if self.beta_type != BetaType.TEXT and self.file is None:
            raise ValidationError(f"Please select a {self.beta_type.value} file to upload.", field="file")

    async def submit(self) -> bool:
        self.validate()
        self.submitting = True
        self.error = None
        try:
            content_url = None
            if self.beta_type != BetaType.TEXT:
                content_url = await self.storage_service.upload_beta_media(
                    self.user_id, self.route.id, self.beta_type, self.file
                )
            await self.beta_service.add_beta(
                self.route.id,
                self.user_id,
                self.beta_type,
                text_content=self.text_content.strip() or None,
                content_url=content_url,
                key_move=self.key_move.strip() or None,
            )
        except BackendError as e:
            logger.error("Error during beta submission for route %s: %r", self.route.id, e)
            self.error = f"Failed to submit beta: {e.message}"
            return False
        finally:
            self.submitting = False

        await self.activity_service.record(
            self.user_id,
            ActivityType.ADD_BETA,
            gym_id=self.route.gym_id,
            route_id=self.route.id,
            details={
                "route_name": self.route.name,
                "route_grade": self.route.grade,
                "beta_type": self.beta_type.value,
            },
        )
        return True
