"""Authentication service: credential validation in front of the backend auth API."""

import logging
from typing import Optional

from circuit.backend import BackendClient
from circuit.exceptions import ValidationError
from circuit.schemas import Session, User


logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class AuthService:
    """Service for authentication operations."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    @staticmethod
    def validate_credentials(
        email: str,
        password: str,
        confirm_password: Optional[str] = None,
        signing_up: bool = False,
    ):
        """Reject incomplete credentials before any request is made."""
        if not email.strip() or not password:
            raise ValidationError("Please enter email and password.", field="email" if not email.strip() else "password")
        if not signing_up:
            return
        if password != confirm_password:
            raise ValidationError("Passwords do not match.", field="confirm_password")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
                field="password",
            )

    async def sign_up(
        self,
        email: str,
        password: str,
        confirm_password: str,
        display_name: Optional[str] = None,
    ) -> User:
        """Create a new account."""
        self.validate_credentials(email, password, confirm_password, signing_up=True)
        user = await self.backend.sign_up(email.strip(), password, display_name=(display_name or "").strip() or None)
        logger.info("Signed up user %s", user.id)
        return user

    async def sign_in(self, email: str, password: str) -> Session:
        """Sign in with email and password."""
        self.validate_credentials(email, password)
        session = await self.backend.sign_in(email.strip(), password)
        logger.info("Signed in user %s", session.user.id)
        return session

    async def sign_out(self):
        await self.backend.sign_out()
        logger.info("Logout successful")

    async def get_current_user(self) -> Optional[User]:
        """Get the signed-in user, if any."""
        session = await self.backend.get_session()
        return session.user if session else None
