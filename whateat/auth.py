"""
Sign in with Apple handshake, durable backend tokens and automatic refresh.

The identity provider (the OS Sign in with Apple service) is injected; only its
`credential_state()` check is needed here. The platform UI hands the resulting
identity token to `AuthManager.sign_in()`.

Every other component asks `AuthManager.get_valid_access_token()` for a bearer
token right before a call. Tokens close to expiry are refreshed first, and
concurrent callers share one in-flight refresh.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from whateat import config
from whateat.api_client import APIClient, APIError, DecodeError, UnauthorizedError
from whateat.observable import Observable
from whateat.secret_store import (
    ACCESS_TOKEN,
    APPLE_USER_EMAIL,
    APPLE_USER_FULL_NAME,
    APPLE_USER_IDENTIFIER,
    EXPIRES_AT,
    REFRESH_TOKEN,
    SecretStore,
)

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    SIGNED_OUT = "signed_out"


class CredentialState(str, Enum):
    AUTHORIZED = "authorized"
    REVOKED = "revoked"
    NOT_FOUND = "not_found"
    TRANSFERRED = "transferred"


class IdentityProvider(ABC):
    """Interface of the platform identity service."""

    @abstractmethod
    async def credential_state(self, user_identifier: str) -> CredentialState:
        """Current state of the Apple credential for *user_identifier*."""


class AuthError(Exception):
    """Base class for authentication failures."""

    message = "Authentication failed"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class NotLoggedInError(AuthError):
    message = "You are not logged in"


class SessionExpiredError(AuthError):
    message = "Your session has expired. Please sign in again."


class MissingIdentityTokenError(AuthError):
    message = "Failed to get identity token from Apple"


class BackendAuthFailedError(AuthError):
    pass


@dataclass
class AuthUser:
    id: str
    email: str | None = None
    created_at: str | None = None


@dataclass
class AuthResponse:
    """Body of POST /auth/signin and POST /auth/refresh."""
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    expires_in: int | None
    expires_at: int
    user: AuthUser | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "AuthResponse":
        if not isinstance(data, dict):
            raise DecodeError("auth response must be an object")

        def pick(*keys):
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        access_token = pick("accessToken", "access_token")
        refresh_token = pick("refreshToken", "refresh_token")
        expires_at = pick("expiresAt", "expires_at")
        expires_in = pick("expiresIn", "expires_in")
        if not isinstance(access_token, str) or not isinstance(refresh_token, str):
            raise DecodeError("auth response is missing tokens")
        try:
            expires_in = int(expires_in) if expires_in is not None else None
            if expires_at is None and expires_in is not None:
                expires_at = int(time.time()) + expires_in
            expires_at = int(expires_at)
        except (TypeError, ValueError) as e:
            raise DecodeError(f"auth response has an invalid expiry: {e}") from e

        user = None
        user_data = data.get("user")
        if isinstance(user_data, dict) and user_data.get("id") is not None:
            user = AuthUser(
                id=str(user_data["id"]),
                email=user_data.get("email"),
                created_at=user_data.get("createdAt") or user_data.get("created_at"),
            )

        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            expires_at=expires_at,
            user=user,
        )


@dataclass
class AuthProfile:
    """Who is signed in. Tokens stay in the secret store and are never copied here."""
    apple_user_identifier: str | None
    user_id: str | None = None
    display_name: str | None = None
    email: str | None = None


def format_full_name(given_name: str | None, family_name: str | None) -> str:
    return " ".join(part.strip() for part in (given_name, family_name) if part and part.strip())


class AuthManager(Observable):
    """Auth state machine: CHECKING -> AUTHENTICATED | SIGNED_OUT."""

    def __init__(
        self,
        api: APIClient,
        store: SecretStore,
        identity_provider: IdentityProvider,
        refresh_window: int = config.TOKEN_REFRESH_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__()
        self.api = api
        self.store = store
        self.identity_provider = identity_provider
        self.refresh_window = refresh_window
        self._clock = clock

        self.state = AuthState.CHECKING
        self.is_loading = False
        self.error_message: str | None = None
        self.user_id: str | None = None
        self.user_display_name: str | None = None
        self.user_email: str | None = None

        self._refresh_task: asyncio.Future | None = None
        # Bumped on every sign-out so a refresh that lands afterwards is discarded
        self._generation = 0

    @property
    def is_authenticated(self) -> bool:
        return self.state is AuthState.AUTHENTICATED

    @property
    def profile(self) -> AuthProfile | None:
        """The signed-in user, or None unless AUTHENTICATED."""
        if self.state is not AuthState.AUTHENTICATED:
            return None
        return AuthProfile(
            apple_user_identifier=self.store.get_string(APPLE_USER_IDENTIFIER),
            user_id=self.user_id,
            display_name=self.user_display_name,
            email=self.user_email,
        )

    def _set_state(self, state: AuthState) -> None:
        self.state = state
        self.notify()

    def _become_signed_out(self) -> None:
        """Clear every secret and drop to SIGNED_OUT."""
        self._generation += 1
        self.store.clear_all()
        self.user_id = None
        self.user_display_name = None
        self.user_email = None
        self._set_state(AuthState.SIGNED_OUT)

    def _persist(self, response: AuthResponse) -> None:
        self.store.put_string(ACCESS_TOKEN, response.access_token)
        self.store.put_string(REFRESH_TOKEN, response.refresh_token)
        self.store.put_string(EXPIRES_AT, str(response.expires_at))
        if response.user is not None:
            self.user_id = response.user.id

    async def check_existing_credentials(self) -> AuthState:
        """Resolve the cold-start CHECKING state from stored credentials."""
        user_identifier = self.store.get_string(APPLE_USER_IDENTIFIER)
        if not user_identifier:
            self._become_signed_out()
            return self.state

        try:
            credential_state = await self.identity_provider.credential_state(user_identifier)
        except Exception as e:
            logger.warning("Could not verify Apple credential state", extra={"error": str(e)})
            self._become_signed_out()
            return self.state

        if credential_state is not CredentialState.AUTHORIZED:
            logger.info("Apple credential no longer valid", extra={"credential_state": credential_state.value})
            self._become_signed_out()
            return self.state

        if not self.store.get_string(REFRESH_TOKEN):
            logger.info("No backend tokens stored")
            self._become_signed_out()
            return self.state

        try:
            await self.get_valid_access_token()
        except (AuthError, APIError) as e:
            logger.warning("Stored backend tokens are invalid", extra={"error": str(e)})
            # A rejected refresh token has already signed us out
            if self.state is not AuthState.SIGNED_OUT:
                self._become_signed_out()
            return self.state

        self.user_display_name = self.store.get_string(APPLE_USER_FULL_NAME)
        self.user_email = self.store.get_string(APPLE_USER_EMAIL)
        self._set_state(AuthState.AUTHENTICATED)
        return self.state

    async def sign_in(
        self,
        identity_token: str | None,
        user_identifier: str,
        given_name: str | None = None,
        family_name: str | None = None,
        email: str | None = None,
    ) -> AuthState:
        """Exchange an Apple identity token for backend tokens."""
        if self.is_loading:
            return self.state

        if not identity_token:
            self.error_message = MissingIdentityTokenError.message
            self.notify()
            raise MissingIdentityTokenError()

        self.is_loading = True
        self.error_message = None
        self.notify()

        self.store.put_string(APPLE_USER_IDENTIFIER, user_identifier)

        full_name = format_full_name(given_name, family_name)
        if full_name:
            self.store.put_string(APPLE_USER_FULL_NAME, full_name)
            self.user_display_name = full_name
        if email:
            self.store.put_string(APPLE_USER_EMAIL, email)
            self.user_email = email

        # Name and email only arrive on first enrollment; fall back to what we kept
        if self.user_display_name is None:
            self.user_display_name = self.store.get_string(APPLE_USER_FULL_NAME)
        if self.user_email is None:
            self.user_email = self.store.get_string(APPLE_USER_EMAIL)

        body = {"provider": "apple", "idToken": identity_token}
        if given_name is not None or family_name is not None:
            body["fullName"] = {
                key: value
                for key, value in (("givenName", given_name), ("familyName", family_name))
                if value is not None
            }

        try:
            payload = await self.api.post("/auth/signin", body)
            response = AuthResponse.from_dict(payload)
        except APIError as e:
            logger.error("Backend sign-in failed", extra={"error": e.message, "status": e.status_code})
            self.is_loading = False
            self._become_signed_out()
            self.error_message = e.message
            self.notify()
            raise BackendAuthFailedError(e.message) from e

        self._persist(response)
        logger.info("Signed in", extra={"user_id": self.user_id})
        self.is_loading = False
        self._set_state(AuthState.AUTHENTICATED)
        return self.state

    async def get_valid_access_token(self) -> str:
        """Return a bearer token that stays valid for at least the refresh window.

        A token close to expiry is refreshed first. Concurrent callers share a
        single in-flight ``POST /auth/refresh``.

        Returns:
            The access token to send as ``Authorization: Bearer <token>``.

        Raises:
            NotLoggedInError: No refresh token is stored, or the user signed out
                while the refresh was in flight.
            SessionExpiredError: The backend rejected the refresh token; the
                manager is now SIGNED_OUT.
            APIError: Any other refresh failure, unchanged.
        """
        access_token = self.store.get_string(ACCESS_TOKEN)
        expires_at = self.store.get_int(EXPIRES_AT)
        if access_token and expires_at is not None and expires_at > self._clock() + self.refresh_window:
            return access_token

        if self._refresh_task is None:
            refresh_token = self.store.get_string(REFRESH_TOKEN)
            if not refresh_token:
                raise NotLoggedInError()

            task = asyncio.ensure_future(self._refresh_tokens(refresh_token, self._generation))
            self._refresh_task = task
            task.add_done_callback(self._refresh_finished)

        # Shielded so one cancelled caller does not cancel the shared refresh
        return await asyncio.shield(self._refresh_task)

    def _refresh_finished(self, task: asyncio.Future) -> None:
        if self._refresh_task is task:
            self._refresh_task = None
        if not task.cancelled():
            # Mark retrieved even when every waiter was cancelled
            task.exception()

    async def _refresh_tokens(self, refresh_token: str, generation: int) -> str:
        logger.debug("Refreshing access token")
        try:
            payload = await self.api.post("/auth/refresh", {"refreshToken": refresh_token})
        except UnauthorizedError as e:
            logger.warning("Refresh token rejected, session ended")
            if generation == self._generation:
                self._become_signed_out()
            raise SessionExpiredError() from e

        response = AuthResponse.from_dict(payload)
        if generation != self._generation:
            # Signed out while the refresh was in flight
            raise NotLoggedInError()

        self._persist(response)
        logger.info("Tokens refreshed")
        return response.access_token

    async def sign_out(self) -> None:
        """Clear local credentials, then tell the backend (best effort)."""
        access_token = self.store.get_string(ACCESS_TOKEN)
        self._become_signed_out()

        if not access_token:
            return
        try:
            await self.api.post("/auth/signout", access_token=access_token)
            logger.info("Backend sign-out succeeded")
        except Exception as e:
            logger.warning("Backend sign-out failed, continuing", extra={"error": str(e)})
