"""Authenticated session lifecycle."""

import asyncio
from collections.abc import Awaitable
from collections.abc import Callable
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from logging import getLogger
from typing import Optional

from pydantic import ValidationError

from blueboxy.exceptions import AuthExpiredError
from blueboxy.exceptions import RefreshError

from .config import SessionConfig
from .events import SessionEvent
from .events import SessionEvents
from .models import SessionSnapshot
from .models import TokenPair
from .models import UserProfile
from .storage import KeyValueStore
from .storage import SecureStore

logger = getLogger(__name__)

TokenRefresher = Callable[[str], Awaitable[TokenPair]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _normalize_token(token: Optional[str]) -> Optional[str]:
    # An empty string is never a credential
    return token if token else None


class SessionStore:
    """Owner of "is this device authenticated, and as whom".

    Tokens and the user id live in the secure store, the profile and the
    expiry in the general store. Every mutation is persisted immediately.
    Login and logout transitions are broadcast through ``events``.

    Args:
        secure_store: Storage for tokens and the user id
        defaults: Storage for the profile and the session expiry
        config: Storage keys and validation timing
        refresher: Coroutine exchanging a refresh token for a new token pair
        events: Emitter for lifecycle events (a fresh one by default)
        now: Clock returning an aware datetime
    """

    def __init__(
        self,
        secure_store: SecureStore,
        defaults: KeyValueStore,
        config: Optional[SessionConfig] = None,
        refresher: Optional[TokenRefresher] = None,
        events: Optional[SessionEvents] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.secure_store = secure_store
        self.defaults = defaults
        self.config = config or SessionConfig()
        self.refresher = refresher
        self.events = events or SessionEvents()
        self.now = now or _utcnow

        self._user_id: Optional[int] = None
        self._current_user: Optional[UserProfile] = None
        self._auth_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._session_expiry: Optional[datetime] = None

        # Bumped whenever the session is replaced or ended
        self._generation = 0
        self._refresh_lock = asyncio.Lock()
        self._validation_task: Optional[asyncio.Task[None]] = None

        self._load_persisted_session()
        # Restoring a session is not a login; no event is emitted
        self._authenticated = self.is_session_valid()

    # State

    @property
    def user_id(self) -> Optional[int]:
        return self._user_id

    @property
    def current_user(self) -> Optional[UserProfile]:
        return self._current_user

    @property
    def auth_token(self) -> Optional[str]:
        return self._auth_token

    @property
    def refresh_token(self) -> Optional[str]:
        return self._refresh_token

    @property
    def session_expiry(self) -> Optional[datetime]:
        return self._session_expiry

    @property
    def is_authenticated(self) -> bool:
        return self.is_session_valid()

    def is_session_valid(self) -> bool:
        if self._user_id is None or self._auth_token is None:
            return False
        if self._session_expiry is not None:
            return self.now() < self._session_expiry
        return True

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            is_authenticated=self.is_session_valid(),
            user_id=self._user_id,
            user=self._current_user,
            expires_at=self._session_expiry,
            has_refresh_token=self._refresh_token is not None,
        )

    # Mutations

    def set_session(
        self,
        user_id: int,
        user: UserProfile,
        auth_token: str,
        refresh_token: str,
        expiry: Optional[datetime] = None,
    ) -> None:
        """Replace the whole session, as after a successful sign-in."""
        self._generation += 1
        self._user_id = user_id
        self._current_user = user
        self._auth_token = _normalize_token(auth_token)
        self._refresh_token = _normalize_token(refresh_token)
        self._session_expiry = _as_utc(expiry)

        self._persist_user_id()
        self._persist_user()
        self._persist_tokens()
        self._persist_expiry()
        self._update_authentication_state()

    def update_user(self, user: UserProfile) -> None:
        """Replace the profile without touching identity or tokens."""
        self._current_user = user
        self._persist_user()
        self.events.emit(SessionEvent.USER_UPDATED, user)

    def update_tokens(
        self,
        auth_token: str,
        refresh_token: str,
        expiry: Optional[datetime] = None,
    ) -> None:
        """Rotate the token pair for the current user."""
        self._auth_token = _normalize_token(auth_token)
        self._refresh_token = _normalize_token(refresh_token)
        self._session_expiry = _as_utc(expiry)

        self._persist_tokens()
        self._persist_expiry()
        self._update_authentication_state()

    def logout(self) -> None:
        """Forget the session in memory and in storage; always emits LOGOUT."""
        self._generation += 1
        self._user_id = None
        self._current_user = None
        self._auth_token = None
        self._refresh_token = None
        self._session_expiry = None
        self._authenticated = False

        self._clear_persisted_session()
        logger.info("User logged out")
        self.events.emit(SessionEvent.LOGOUT, None)

    # Refresh and validation

    def needs_refresh(self) -> bool:
        if self._session_expiry is None:
            return False
        threshold = timedelta(seconds=self.config.refresh_threshold)
        return self.now() + threshold > self._session_expiry

    async def refresh_session_if_needed(self) -> bool:
        """Refresh the tokens when the session is about to expire.

        Concurrent callers share one refresh: they wait for the lock and then
        see the rotated tokens instead of refreshing again.

        Returns:
            Whether the session is valid afterwards; False without a refresh token
        """
        if self._refresh_token is None:
            return False

        async with self._refresh_lock:
            refresh_token = self._refresh_token
            if refresh_token is None:
                return False
            if not self.needs_refresh():
                return self.is_session_valid()
            return await self._perform_token_refresh(refresh_token)

    async def _perform_token_refresh(self, refresh_token: str) -> bool:
        if self.refresher is None:
            return self.is_session_valid()

        logger.info("Refreshing session tokens")
        generation = self._generation
        try:
            pair = await self._request_tokens(refresh_token)
        except RefreshError as e:
            logger.warning("Token refresh failed: %s", e)
            return False

        if generation != self._generation:
            logger.info("Session changed during token refresh, discarding new tokens")
            return self.is_session_valid()

        self.update_tokens(pair.auth_token, pair.refresh_token, pair.expires_at)
        return self.is_session_valid()

    async def _request_tokens(self, refresh_token: str) -> TokenPair:
        try:
            result = await self.refresher(refresh_token)  # type: ignore[misc]
        except RefreshError:
            raise
        except Exception as e:
            msg = f"Refresh call failed: {e!r}"
            raise RefreshError(msg) from e

        try:
            return TokenPair.model_validate(result)
        except ValidationError as e:
            msg = f"Refresh call returned an invalid token pair: {e}"
            raise RefreshError(msg) from e

    async def validate_session(self) -> None:
        """One background check: refresh if needed, log out if that fails."""
        if not self._authenticated:
            return
        generation = self._generation
        still_valid = await self.refresh_session_if_needed()
        if not still_valid and generation == self._generation:
            logger.info("Session is no longer valid, logging out")
            self.logout()

    async def bearer_token(self) -> str:
        """Return a usable access token, refreshing it first if needed.

        Raises:
            AuthExpiredError: If there is no valid session; the store has
                logged out by then
        """
        if self.is_session_valid() and not self.needs_refresh():
            return self._auth_token  # type: ignore[return-value]

        if await self.refresh_session_if_needed() and self._auth_token is not None:
            return self._auth_token

        if self._user_id is not None or self._auth_token is not None:
            self.logout()
        msg = "Authentication required"
        raise AuthExpiredError(msg)

    async def _validation_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.validation_interval)
            try:
                await self.validate_session()
            except Exception:
                logger.exception("Session validation failed")

    @property
    def is_validating(self) -> bool:
        return self._validation_task is not None and not self._validation_task.done()

    def start_validation(self) -> None:
        """Start the periodic validity check; a running check is kept as is."""
        if self.is_validating:
            return
        self._validation_task = asyncio.create_task(self._validation_loop())

    def stop_validation(self) -> None:
        if self._validation_task is not None:
            self._validation_task.cancel()
            self._validation_task = None

    # Persistence

    def _update_authentication_state(self) -> None:
        was_authenticated = self._authenticated
        self._authenticated = self.is_session_valid()
        if self._authenticated and not was_authenticated:
            logger.info("User %s authenticated", self._user_id)
            self.events.emit(SessionEvent.LOGIN, self._current_user)

    def _load_persisted_session(self) -> None:
        raw_user_id = self._load_secret(self.config.user_id_key)
        if raw_user_id is not None:
            try:
                self._user_id = int(raw_user_id)
            except ValueError:
                logger.warning("Ignoring malformed persisted user id")

        self._auth_token = _normalize_token(self._load_secret(self.config.auth_token_key))
        self._refresh_token = _normalize_token(
            self._load_secret(self.config.refresh_token_key)
        )

        user_data = self.defaults.get(self.config.user_data_key)
        if user_data is not None:
            try:
                self._current_user = UserProfile.model_validate_json(user_data)
            except (ValidationError, TypeError) as e:
                logger.warning("Ignoring malformed persisted user profile: %s", e)

        expiry = self.defaults.get(self.config.session_expiry_key)
        if expiry is not None:
            try:
                self._session_expiry = _as_utc(datetime.fromisoformat(expiry))
            except (ValueError, TypeError):
                logger.warning("Ignoring malformed persisted session expiry")

        if self._user_id is not None:
            logger.debug("Restored session of user %s", self._user_id)

    def _load_secret(self, account: str) -> Optional[str]:
        secret = self.secure_store.load(self.config.keychain_service, account)
        if secret is None:
            return None
        try:
            return secret.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Ignoring undecodable secret %s", account)
            return None

    def _store_secret(self, account: str, value: Optional[str]) -> None:
        service = self.config.keychain_service
        if value is None:
            self.secure_store.delete(service, account)
        elif not self.secure_store.save(service, account, value.encode("utf-8")):
            logger.warning("Failed to save %s to secure store", account)

    def _persist_user_id(self) -> None:
        self._store_secret(
            self.config.user_id_key,
            str(self._user_id) if self._user_id is not None else None,
        )

    def _persist_tokens(self) -> None:
        self._store_secret(self.config.auth_token_key, self._auth_token)
        self._store_secret(self.config.refresh_token_key, self._refresh_token)

    def _persist_user(self) -> None:
        if self._current_user is None:
            self.defaults.remove(self.config.user_data_key)
        else:
            self.defaults.set(self.config.user_data_key, self._current_user.model_dump_json())

    def _persist_expiry(self) -> None:
        if self._session_expiry is None:
            self.defaults.remove(self.config.session_expiry_key)
        else:
            self.defaults.set(self.config.session_expiry_key, self._session_expiry.isoformat())

    def _clear_persisted_session(self) -> None:
        service = self.config.keychain_service
        for account in (
            self.config.user_id_key,
            self.config.auth_token_key,
            self.config.refresh_token_key,
        ):
            self.secure_store.delete(service, account)
        self.defaults.remove(self.config.user_data_key)
        self.defaults.remove(self.config.session_expiry_key)
