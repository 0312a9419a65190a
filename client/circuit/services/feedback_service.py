"""Contact and gym-suggestion feedback."""

import logging

from circuit.backend import BackendClient
from circuit.exceptions import BackendError, ValidationError
from circuit.schemas import FeedbackType


logger = logging.getLogger(__name__)


class FeedbackService:
    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def submit(self, feedback_type: FeedbackType, message: str):
        """
        Insert a feedback row.

        The backend fills in the user id and email itself, and its row
        policies reject anonymous submissions.
        """
        if not message.strip():
            raise ValidationError("Feedback message cannot be empty.", field="message")

        try:
            await (
                self.backend.table("feedback")
                .insert({"feedback_type": feedback_type.value, "message": message.strip()}, returning=False)
                .execute()
            )
        except BackendError as e:
            logger.error("Error submitting feedback: %r", e)
            if "row level security policy" in e.message or "check constraint violation" in e.message:
                raise BackendError("You must be logged in to submit feedback.", code=e.code, status_code=e.status_code) from e
            if "feedback_feedback_type_check" in e.message:
                raise BackendError("Invalid feedback type provided.", code=e.code, status_code=e.status_code) from e
            raise BackendError(f"Failed to submit feedback: {e.message}", code=e.code, status_code=e.status_code) from e

        logger.info("%s feedback submitted successfully.", feedback_type.value)
