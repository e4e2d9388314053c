"""Supabase authentication flows.

Each action returns ``None`` on success or a message ready to show the user;
nothing here raises for an expected auth failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from supabase import AuthError, Client

from aiwear.session import GenerationSession
from aiwear.supabase_client import get_supabase
from aiwear.validation import (
    ValidationError,
    ensure_sign_up_input,
    is_valid_password,
    validate_email,
)

logger = logging.getLogger(__name__)

NOT_CONFIGURED: str = "Supabase not configured"
GOOGLE_ACCOUNT_HINT: str = (
    'This email is registered with Google sign-in. Please use "Sign in with Google" instead.'
)


@dataclass(slots=True)
class AuthSession:
    client: Optional[Client] = None
    generation: Optional[GenerationSession] = None
    user: Any = None
    session: Any = None
    is_anonymous: bool = False
    oauth_url: Optional[str] = field(default=None, repr=False)

    def _db(self) -> Optional[Client]:
        return self.client or get_supabase()

    def _apply(self, user: Any, session: Any, *, anonymous: Optional[bool] = None) -> None:
        self.user = user
        self.session = session
        if anonymous is None:
            anonymous = bool(getattr(user, "is_anonymous", False)) if user else False
        self.is_anonymous = anonymous

    def initialize(self) -> None:
        db = self._db()
        if db is None:
            return
        session = db.auth.get_session()
        if session:
            self._apply(session.user, session)

    def sign_in_anonymously(self) -> Optional[str]:
        db = self._db()
        if db is None:
            return NOT_CONFIGURED
        try:
            response = db.auth.sign_in_anonymously()
        except AuthError as exc:
            logger.error("Anonymous sign in error: %s", exc)
            return exc.message
        self._apply(response.user, response.session, anonymous=True)
        return None

    def sign_in_with_google(self, redirect_to: str) -> Optional[str]:
        """Start the OAuth flow; the provider URL is left in ``oauth_url``."""

        db = self._db()
        if db is None:
            return NOT_CONFIGURED
        try:
            response = db.auth.sign_in_with_oauth(
                {
                    "provider": "google",
                    "options": {
                        "redirect_to": redirect_to,
                        "query_params": {"access_type": "offline", "prompt": "select_account"},
                    },
                }
            )
        except AuthError as exc:
            logger.error("Google OAuth error: %s", exc)
            return exc.message or "Google sign in failed"
        self.oauth_url = response.url
        return None

    def sign_in_with_email(self, email: str, password: str) -> Optional[str]:
        db = self._db()
        if db is None:
            return NOT_CONFIGURED
        if not validate_email(email):
            return "Please enter a valid email address."
        try:
            response = db.auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as exc:
            if "Invalid login credentials" in exc.message or "Email not confirmed" in exc.message:
                return GOOGLE_ACCOUNT_HINT
            return exc.message
        self._apply(response.user, response.session, anonymous=False)
        return None

    def sign_up_with_email(self, email: str, password: str) -> Optional[str]:
        db = self._db()
        if db is None:
            return NOT_CONFIGURED
        try:
            ensure_sign_up_input(email, password)
        except ValidationError as exc:
            return str(exc)
        try:
            response = db.auth.sign_up({"email": email, "password": password})
        except AuthError as exc:
            return exc.message
        if response.user:
            self._apply(response.user, response.session, anonymous=False)
        return None

    def sign_out(self) -> None:
        db = self._db()
        if db is None:
            return
        if self.generation is not None:
            self.generation.reset()
        db.auth.sign_out()
        self._apply(None, None, anonymous=False)

    def upgrade_anonymous_user(self, email: str, password: str) -> Optional[str]:
        """Attach credentials to the anonymous account; the user id stays the same."""

        db = self._db()
        if db is None:
            return NOT_CONFIGURED
        if not self.is_anonymous or not self.user:
            return "Not an anonymous user"
        try:
            ensure_sign_up_input(email, password)
        except ValidationError as exc:
            return str(exc)
        try:
            response = db.auth.update_user({"email": email, "password": password})
        except AuthError as exc:
            return exc.message
        self.user = response.user
        self.is_anonymous = False
        return None

    def request_password_reset(self, email: str, redirect_to: Optional[str] = None) -> Optional[str]:
        db = self._db()
        if db is None:
            return NOT_CONFIGURED
        if not validate_email(email):
            return "Please enter a valid email address."
        options = {"redirect_to": redirect_to} if redirect_to else {}
        try:
            db.auth.reset_password_for_email(email, options)
        except AuthError as exc:
            return exc.message
        return None

    def update_password(self, password: str) -> Optional[str]:
        db = self._db()
        if db is None:
            return NOT_CONFIGURED
        if not is_valid_password(password):
            return "Password must be at least 12 characters and meet four of the five requirements."
        try:
            db.auth.update_user({"password": password})
        except AuthError as exc:
            return exc.message
        return None
