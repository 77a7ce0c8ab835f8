# loan_session.py
from __future__ import annotations
from dataclasses import dataclass
import logging
from typing import Any, Callable, Optional

from loan_errors import AuthError, Result, ValidationError, provider_message

logger = logging.getLogger(__name__)

CONFIRM_EMAIL_MESSAGE = "Check your email for the confirmation link!"
MIN_PASSWORD_LENGTH = 6


@dataclass(frozen=True)
class User:
    id: str
    email: str = ""

    @classmethod
    def from_provider(cls, user) -> Optional["User"]:
        if user is None or not getattr(user, "id", None):
            return None
        return cls(id=str(user.id), email=getattr(user, "email", None) or "")


@dataclass(frozen=True)
class SessionContext:
    """The signed-in identity plus the client that is allowed to act for it."""

    client: Any
    user: User

    @property
    def user_id(self) -> str:
        return self.user.id


Listener = Callable[[str, Optional[User]], None]


def _session_user(session) -> Optional[User]:
    # older clients wrap the session in a response object
    session = getattr(session, "session", session)
    return User.from_provider(getattr(session, "user", None)) if session else None


class SessionController:
    """Tracks who is signed in and tells listeners when that changes.

    Listeners fire only when the user id actually changes, so the provider's
    own auth events and our explicit calls never announce the same sign-in
    twice.
    """

    def __init__(self, client):
        self.client = client
        self.loading = True
        self._user: Optional[User] = None
        self._listeners: list[Listener] = []
        self._subscription = client.auth.on_auth_state_change(self._on_auth_change)

    # ---------------- observers ----------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _on_auth_change(self, event, session):
        self._set_user(_session_user(session), str(event))

    def _set_user(self, user: Optional[User], event: str):
        before = self._user.id if self._user else None
        after = user.id if user else None
        self._user = user
        if before == after:
            return
        logger.info("Session changed (%s): %s -> %s", event, before, after)
        for listener in list(self._listeners):
            listener(event, user)

    # ---------------- queries ----------------
    def current_user(self) -> Optional[User]:
        return self._user

    def context(self) -> Optional[SessionContext]:
        return SessionContext(self.client, self._user) if self._user else None

    # ---------------- actions ----------------
    def restore(self) -> Result:
        try:
            user = _session_user(self.client.auth.get_session())
        except Exception as e:
            logger.warning("Session restore failed: %s", e)
            return Result.failure(AuthError(provider_message(e)))
        finally:
            self.loading = False
        self._set_user(user, "INITIAL_SESSION")
        return Result.success(user)

    def sign_up(self, email: str, password: str) -> Result:
        try:
            creds = _credentials(email, password)
        except ValidationError as e:
            return Result.failure(e)
        try:
            self.client.auth.sign_up(creds)
        except Exception as e:
            logger.info("Sign up rejected for %s: %s", creds["email"], e)
            return Result.failure(AuthError(provider_message(e)))
        return Result.success(None, info=CONFIRM_EMAIL_MESSAGE)

    def sign_in(self, email: str, password: str) -> Result:
        try:
            creds = _credentials(email, password)
        except ValidationError as e:
            return Result.failure(e)
        try:
            res = self.client.auth.sign_in_with_password(creds)
        except Exception as e:
            logger.info("Sign in rejected for %s: %s", creds["email"], e)
            return Result.failure(AuthError(provider_message(e)))
        user = User.from_provider(getattr(res, "user", None)) or _session_user(getattr(res, "session", None))
        if user is None:
            return Result.failure(AuthError("Sign in did not return a session."))
        self._set_user(user, "SIGNED_IN")
        return Result.success(user)

    def sign_out(self) -> Result:
        try:
            self.client.auth.sign_out()
            result = Result.success()
        except Exception as e:
            logger.warning("Sign out error: %s", e)
            result = Result.failure(AuthError(provider_message(e)))
        # local session is dropped even if the provider call failed
        self._set_user(None, "SIGNED_OUT")
        return result

    def close(self):
        unsubscribe = getattr(self._subscription, "unsubscribe", None)
        if unsubscribe:
            unsubscribe()
        self._listeners.clear()


def _credentials(email: str, password: str) -> dict:
    email = (email or "").strip()
    if not email or not password:
        raise ValidationError("Please enter both email and password.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", "password")
    return {"email": email, "password": password}
