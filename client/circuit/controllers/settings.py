"""Settings screen: feedback form, gym management entry point and logout."""

import logging
from typing import Optional

from circuit.controllers.session import SessionController
from circuit.exceptions import BackendError
from circuit.schemas import FeedbackType
from circuit.services.feedback_service import FeedbackService


logger = logging.getLogger(__name__)


class SettingsController:
    def __init__(self, feedback_service: FeedbackService, session: SessionController):
        self.feedback_service = feedback_service
        self.session = session

        self.feedback_type = FeedbackType.CONTACT
        self.message = ""
        self.submitting = False
        self.error: Optional[str] = None
        self.success: Optional[str] = None

    async def submit_feedback(self) -> bool:
        """Send the feedback form; an empty message raises ValidationError."""
        self.submitting = True
        self.error = None
        self.success = None
        try:
            await self.feedback_service.submit(self.feedback_type, self.message)
        except BackendError as e:
            self.error = e.message
            return False
        finally:
            self.submitting = False

        self.message = ""
        self.success = "Thanks! Your feedback has been sent."
        return True

    def manage_gyms(self):
        self.session.open_gym_selection()

    async def logout(self):
        await self.session.logout()
