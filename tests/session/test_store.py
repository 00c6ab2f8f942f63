import asyncio
from datetime import datetime
from datetime import timedelta

import pytest

from blueboxy.exceptions import AuthExpiredError
from blueboxy.exceptions import RefreshError
from blueboxy.session import InMemoryKeyValueStore
from blueboxy.session import InMemorySecureStore
from blueboxy.session import SessionConfig
from blueboxy.session import SessionEvent
from blueboxy.session import SessionEvents
from blueboxy.session import SessionStore
from blueboxy.session import TokenPair
from blueboxy.session import UserProfile

SERVICE = "com.blueboxy.app"
USER = UserProfile(id=42, email="sam@example.com", name="Sam")


class Refresher:
    def __init__(self, clock, error=None, lifetime=timedelta(hours=1)):
        self.clock = clock
        self.error = error
        self.lifetime = lifetime
        self.calls: list[str] = []

    async def __call__(self, refresh_token: str) -> TokenPair:
        self.calls.append(refresh_token)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        n = len(self.calls)
        return TokenPair(
            auth_token=f"access-{n}",
            refresh_token=f"refresh-{n}",
            expires_at=self.clock() + self.lifetime,
        )


class Recorder:
    def __init__(self, events: SessionEvents):
        self.received: list[tuple[SessionEvent, object]] = []
        for event in SessionEvent:
            events.subscribe(event, lambda payload, e=event: self.received.append((e, payload)))

    def of(self, event: SessionEvent) -> list[object]:
        return [payload for e, payload in self.received if e is event]


@pytest.fixture
def secure_store() -> InMemorySecureStore:
    return InMemorySecureStore()


@pytest.fixture
def defaults() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def events() -> SessionEvents:
    return SessionEvents()


@pytest.fixture
def recorder(events: SessionEvents) -> Recorder:
    return Recorder(events)


@pytest.fixture
def make_store(secure_store, defaults, events, datetime_clock):
    def make(refresher=None, config=None) -> SessionStore:
        return SessionStore(
            secure_store,
            defaults,
            config=config,
            refresher=refresher,
            events=events,
            now=datetime_clock,
        )

    return make


def test_new_store_is_signed_out(make_store):
    store = make_store()

    assert store.is_authenticated is False
    assert store.user_id is None
    assert store.current_user is None
    assert store.snapshot().is_authenticated is False


def test_set_session_authenticates_and_persists(
    make_store, secure_store, defaults, recorder, datetime_clock
):
    store = make_store()
    expiry = datetime_clock() + timedelta(hours=1)

    store.set_session(42, USER, "access", "refresh", expiry)

    assert store.is_authenticated
    assert store.auth_token == "access"
    assert recorder.of(SessionEvent.LOGIN) == [USER]
    assert secure_store.load(SERVICE, "blueboxy.userId") == b"42"
    assert secure_store.load(SERVICE, "blueboxy.authToken") == b"access"
    assert secure_store.load(SERVICE, "blueboxy.refreshToken") == b"refresh"
    assert UserProfile.model_validate_json(defaults.get("blueboxy.userData")) == USER
    assert datetime.fromisoformat(defaults.get("blueboxy.sessionExpiry")) == expiry


def test_empty_auth_token_is_not_a_session(make_store, secure_store, recorder):
    store = make_store()

    store.set_session(42, USER, "", "refresh")

    assert store.auth_token is None
    assert store.is_authenticated is False
    assert secure_store.load(SERVICE, "blueboxy.authToken") is None
    assert recorder.of(SessionEvent.LOGIN) == []


def test_session_without_expiry_stays_valid(make_store, datetime_clock):
    store = make_store()
    store.set_session(42, USER, "access", "refresh")

    datetime_clock.advance(days=365)

    assert store.is_authenticated
    assert store.needs_refresh() is False


def test_naive_expiry_is_treated_as_utc(make_store, datetime_clock):
    store = make_store()
    naive = (datetime_clock() + timedelta(hours=1)).replace(tzinfo=None)

    store.set_session(42, USER, "access", "refresh", naive)

    assert store.session_expiry.tzinfo is not None
    assert store.is_authenticated


def test_login_event_only_on_transition(make_store, recorder, datetime_clock):
    store = make_store()
    store.set_session(42, USER, "access", "refresh")

    store.update_tokens("access-2", "refresh-2", datetime_clock() + timedelta(hours=2))
    store.set_session(42, USER, "access-3", "refresh-3")

    assert len(recorder.of(SessionEvent.LOGIN)) == 1

    store.logout()
    store.set_session(42, USER, "access-4", "refresh-4")

    assert len(recorder.of(SessionEvent.LOGIN)) == 2


def test_update_user_emits_event_and_persists(make_store, defaults, recorder):
    store = make_store()
    store.set_session(42, USER, "access", "refresh")
    renamed = USER.model_copy(update={"name": "Samantha"})

    store.update_user(renamed)

    assert store.current_user == renamed
    assert store.user_id == 42
    assert recorder.of(SessionEvent.USER_UPDATED) == [renamed]
    assert UserProfile.model_validate_json(defaults.get("blueboxy.userData")) == renamed


def test_logout_clears_memory_and_storage(make_store, secure_store, defaults, recorder):
    store = make_store()
    store.set_session(42, USER, "access", "refresh")

    store.logout()

    assert store.is_authenticated is False
    assert store.user_id is None
    assert store.refresh_token is None
    assert secure_store.items == {}
    assert defaults.values == {}
    assert recorder.of(SessionEvent.LOGOUT) == [None]


def test_logout_always_emits(make_store, recorder):
    store = make_store()

    store.logout()
    store.logout()

    assert len(recorder.of(SessionEvent.LOGOUT)) == 2


def test_session_is_restored_without_login_event(
    secure_store, defaults, datetime_clock
):
    expiry = datetime_clock() + timedelta(hours=1)
    first = SessionStore(secure_store, defaults, now=datetime_clock)
    first.set_session(42, USER, "access", "refresh", expiry)

    events = SessionEvents()
    recorder = Recorder(events)
    restored = SessionStore(secure_store, defaults, events=events, now=datetime_clock)

    assert restored.is_authenticated
    assert restored.user_id == 42
    assert restored.current_user == USER
    assert restored.auth_token == "access"
    assert restored.refresh_token == "refresh"
    assert restored.session_expiry == expiry
    assert recorder.received == []


def test_malformed_persisted_data_is_ignored(secure_store, defaults, datetime_clock):
    secure_store.save(SERVICE, "blueboxy.userId", b"not-a-number")
    secure_store.save(SERVICE, "blueboxy.authToken", b"access")
    defaults.set("blueboxy.userData", "{broken")
    defaults.set("blueboxy.sessionExpiry", "yesterday")

    store = SessionStore(secure_store, defaults, now=datetime_clock)

    assert store.user_id is None
    assert store.current_user is None
    assert store.session_expiry is None
    assert store.is_authenticated is False


def test_expiry_boundary(make_store, datetime_clock):
    store = make_store()
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(seconds=10))

    datetime_clock.advance(seconds=9)
    assert store.is_authenticated

    datetime_clock.advance(seconds=1)
    assert store.is_authenticated is False


def test_needs_refresh_threshold(make_store, datetime_clock):
    store = make_store()
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(minutes=10))

    assert store.needs_refresh() is False
    datetime_clock.advance(minutes=5, seconds=1)
    assert store.needs_refresh() is True


@pytest.mark.asyncio
async def test_expired_session_without_refresh_token_logs_out(
    make_store, recorder, datetime_clock
):
    refresher = Refresher(datetime_clock)
    store = make_store(refresher)
    store.set_session(42, USER, "access", "", datetime_clock() + timedelta(seconds=10))

    datetime_clock.advance(seconds=10)
    await store.validate_session()

    assert refresher.calls == []
    assert store.is_authenticated is False
    assert len(recorder.of(SessionEvent.LOGOUT)) == 1


@pytest.mark.asyncio
async def test_refresh_rotates_tokens(make_store, datetime_clock):
    refresher = Refresher(datetime_clock)
    store = make_store(refresher)
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(minutes=2))

    assert await store.refresh_session_if_needed() is True

    assert refresher.calls == ["refresh"]
    assert store.auth_token == "access-1"
    assert store.refresh_token == "refresh-1"
    assert store.session_expiry == datetime_clock() + timedelta(hours=1)


@pytest.mark.asyncio
async def test_refresh_not_needed_skips_refresher(make_store, datetime_clock):
    refresher = Refresher(datetime_clock)
    store = make_store(refresher)
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(hours=1))

    assert await store.refresh_session_if_needed() is True
    assert refresher.calls == []


@pytest.mark.asyncio
async def test_concurrent_refreshes_share_one_call(make_store, datetime_clock):
    refresher = Refresher(datetime_clock)
    store = make_store(refresher)
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(minutes=2))

    results = await asyncio.gather(*(store.refresh_session_if_needed() for _ in range(5)))

    assert results == [True] * 5
    assert refresher.calls == ["refresh"]


@pytest.mark.asyncio
async def test_failed_refresh_logs_out_once(make_store, recorder, datetime_clock):
    refresher = Refresher(datetime_clock, error=ConnectionError("offline"))
    store = make_store(refresher)
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(minutes=2))

    await store.validate_session()
    await store.validate_session()

    assert refresher.calls == ["refresh"]
    assert store.is_authenticated is False
    assert len(recorder.of(SessionEvent.LOGOUT)) == 1


@pytest.mark.asyncio
async def test_rejected_refresh_token_reports_invalid(make_store, datetime_clock):
    refresher = Refresher(datetime_clock, error=RefreshError("refresh token revoked"))
    store = make_store(refresher)
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(minutes=2))

    assert await store.refresh_session_if_needed() is False
    assert store.auth_token == "access"


@pytest.mark.asyncio
async def test_validate_session_when_signed_out_does_nothing(make_store, recorder):
    store = make_store()

    await store.validate_session()

    assert recorder.received == []


@pytest.mark.asyncio
async def test_bearer_token_returns_current_token(make_store, datetime_clock):
    store = make_store()
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(hours=1))

    assert await store.bearer_token() == "access"


@pytest.mark.asyncio
async def test_bearer_token_refreshes_when_close_to_expiry(make_store, datetime_clock):
    store = make_store(Refresher(datetime_clock))
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(minutes=1))

    assert await store.bearer_token() == "access-1"


@pytest.mark.asyncio
async def test_bearer_token_fails_and_logs_out(make_store, recorder, datetime_clock):
    store = make_store(Refresher(datetime_clock, error=RuntimeError("rejected")))
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(minutes=1))
    datetime_clock.advance(minutes=2)

    with pytest.raises(AuthExpiredError, match="Authentication required"):
        await store.bearer_token()

    assert store.user_id is None
    assert len(recorder.of(SessionEvent.LOGOUT)) == 1


@pytest.mark.asyncio
async def test_bearer_token_without_session(make_store, recorder):
    store = make_store()

    with pytest.raises(AuthExpiredError):
        await store.bearer_token()

    assert recorder.of(SessionEvent.LOGOUT) == []


@pytest.mark.asyncio
async def test_start_and_stop_validation(make_store):
    store = make_store()

    store.start_validation()
    task = store._validation_task
    store.start_validation()

    assert store.is_validating
    assert store._validation_task is task

    store.stop_validation()
    assert store.is_validating is False


@pytest.mark.asyncio
async def test_validation_timer_logs_out_expired_session(
    make_store, recorder, datetime_clock
):
    store = make_store(config=SessionConfig(validation_interval=0.01))
    store.set_session(42, USER, "access", "", datetime_clock() + timedelta(seconds=5))
    datetime_clock.advance(seconds=6)

    store.start_validation()
    await asyncio.sleep(0.1)
    store.stop_validation()

    assert store.is_authenticated is False
    assert len(recorder.of(SessionEvent.LOGOUT)) == 1


class BlockingRefresher(Refresher):
    """Refresher that waits until ``release`` is set before answering."""

    def __init__(self, clock):
        super().__init__(clock)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def __call__(self, refresh_token: str) -> TokenPair:
        self.started.set()
        await self.release.wait()
        return await super().__call__(refresh_token)


@pytest.mark.asyncio
async def test_logout_during_refresh_discards_new_tokens(
    make_store, secure_store, recorder, datetime_clock
):
    refresher = BlockingRefresher(datetime_clock)
    store = make_store(refresher)
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(minutes=2))

    validation = asyncio.create_task(store.validate_session())
    await refresher.started.wait()
    store.logout()
    refresher.release.set()
    await validation

    assert store.auth_token is None
    assert store.refresh_token is None
    assert secure_store.items == {}
    assert len(recorder.of(SessionEvent.LOGOUT)) == 1


@pytest.mark.asyncio
async def test_new_login_during_refresh_keeps_new_session(
    make_store, secure_store, datetime_clock
):
    refresher = BlockingRefresher(datetime_clock)
    store = make_store(refresher)
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(minutes=2))
    other = UserProfile(id=7, email="alex@example.com")

    refresh = asyncio.create_task(store.refresh_session_if_needed())
    await refresher.started.wait()
    store.logout()
    store.set_session(7, other, "b-access", "b-refresh", datetime_clock() + timedelta(hours=1))
    refresher.release.set()

    assert await refresh is True
    assert store.user_id == 7
    assert store.auth_token == "b-access"
    assert store.refresh_token == "b-refresh"
    assert secure_store.load(SERVICE, "blueboxy.authToken") == b"b-access"


@pytest.mark.asyncio
async def test_invalid_refresh_result_reports_invalid(make_store, datetime_clock):
    async def refresher(refresh_token: str):
        return {}

    store = make_store(refresher)
    store.set_session(42, USER, "access", "refresh", datetime_clock() + timedelta(minutes=2))

    assert await store.refresh_session_if_needed() is False
    assert store.auth_token == "access"


@pytest.mark.asyncio
async def test_validation_timer_survives_failing_tick(make_store, datetime_clock, caplog):
    store = make_store(config=SessionConfig(validation_interval=0.01))
    store.set_session(42, USER, "access", "refresh")
    ticks = []

    async def broken_validate():
        ticks.append(1)
        raise RuntimeError("storage unavailable")

    store.validate_session = broken_validate  # type: ignore[method-assign]

    store.start_validation()
    await asyncio.sleep(0.1)
    still_running = store.is_validating
    store.stop_validation()

    assert still_running
    assert len(ticks) > 1
    assert "Session validation failed" in caplog.text


def test_restore_logs_user(secure_store, defaults, datetime_clock, caplog):
    SessionStore(secure_store, defaults, now=datetime_clock).set_session(
        42, USER, "access", "refresh"
    )

    with caplog.at_level("DEBUG", logger="blueboxy.session.store"):
        SessionStore(secure_store, defaults, now=datetime_clock)
        SessionStore(InMemorySecureStore(), InMemoryKeyValueStore(), now=datetime_clock)

    assert caplog.text.count("Restored session of user 42") == 1
    assert "Restored session of user None" not in caplog.text
