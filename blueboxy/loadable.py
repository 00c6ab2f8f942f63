"""Lifecycle state of an asynchronous fetch.

A ``Loadable`` is one of four immutable variants: ``Idle``, ``Loading``,
``Loaded`` or ``Failed``. Owners replace the whole value on every lifecycle
event; nothing enforces the order of transitions. Accessors that do not
apply to the current variant return ``None`` or ``False``.
"""

from collections.abc import AsyncIterator
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any
from typing import Generic
from typing import Optional
from typing import TypeVar

from blueboxy.exceptions import NetworkError
from blueboxy.serialization import coerce

T = TypeVar("T")
U = TypeVar("U")
R = TypeVar("R")

PREPARING_MESSAGE = "Preparing..."


class LoadableState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class Loadable(Generic[T]):
    """Base of the four lifecycle variants."""

    state: LoadableState

    # Overridden by the variant that carries them
    value: Optional[T] = None
    error: Optional[NetworkError] = None
    progress: Optional[float] = None
    message: Optional[str] = None

    @staticmethod
    def idle() -> "Idle[Any]":
        return Idle()

    @staticmethod
    def loading(
        progress: Optional[float] = None, message: Optional[str] = None
    ) -> "Loading[Any]":
        return Loading(progress, message)

    @staticmethod
    def loaded(value: U) -> "Loaded[U]":
        return Loaded(value)

    @staticmethod
    def failed(error: NetworkError) -> "Failed[Any]":
        return Failed(error)

    @staticmethod
    def failed_with(exc: BaseException) -> "Failed[Any]":
        return Failed(NetworkError.from_exception(exc))

    @staticmethod
    async def from_awaitable(awaitable: Awaitable[U]) -> "Loadable[U]":
        """Await ``awaitable`` and capture its outcome as a terminal state."""
        try:
            return Loaded(await awaitable)
        except Exception as e:  # noqa: BLE001
            return Failed(NetworkError.from_exception(e))

    @property
    def is_idle(self) -> bool:
        return self.state is LoadableState.IDLE

    @property
    def is_loading(self) -> bool:
        return self.state is LoadableState.LOADING

    @property
    def is_loaded(self) -> bool:
        return self.state is LoadableState.LOADED

    @property
    def is_failed(self) -> bool:
        return self.state is LoadableState.FAILED

    def map(self, transform: Callable[[T], U]) -> "Loadable[U]":
        if isinstance(self, Loaded):
            return Loaded(transform(self.value))
        return self  # type: ignore[return-value]

    def flat_map(self, transform: Callable[[T], "Loadable[U]"]) -> "Loadable[U]":
        if isinstance(self, Loaded):
            return transform(self.value)
        return self  # type: ignore[return-value]

    def filter(
        self, predicate: Callable[[T], bool], or_error: NetworkError
    ) -> "Loadable[T]":
        """Reject a loaded value that fails ``predicate``."""
        if isinstance(self, Loaded) and not predicate(self.value):
            return Failed(or_error)
        return self

    def replace_error(self, default: T) -> "Loadable[T]":
        if isinstance(self, Failed):
            return Loaded(default)
        return self

    def combine_with(self, other: "Loadable[U]") -> "Loadable[tuple[T, U]]":
        """Merge two states into a state of a pair.

        Failure wins, the left error first. Otherwise any loading side makes
        the result loading; two loading sides average their known progress
        and join their messages. Only two loaded sides produce a value.
        """
        if isinstance(self, Loaded) and isinstance(other, Loaded):
            return Loaded((self.value, other.value))
        if isinstance(self, Failed):
            return Failed(self.error)
        if isinstance(other, Failed):
            return Failed(other.error)
        if isinstance(self, Loading) and isinstance(other, Loading):
            known = [p for p in (self.progress, other.progress) if p is not None]
            messages = [m for m in (self.message, other.message) if m]
            return Loading(
                sum(known) / len(known) if known else None,
                ", ".join(messages) or None,
            )
        if isinstance(self, Loading):
            return Loading(self.progress, self.message)
        if isinstance(other, Loading):
            return Loading(other.progress, other.message)
        return Idle()

    def render(
        self,
        on_loaded: Callable[[T], R],
        on_loading: Callable[[Optional[float], Optional[str]], R],
        on_failed: Callable[[NetworkError], R],
    ) -> R:
        """Produce exactly one representation of the current state.

        ``Idle`` renders through ``on_loading`` with a "Preparing..." message.
        """
        if isinstance(self, Loaded):
            return on_loaded(self.value)
        if isinstance(self, Loading):
            return on_loading(self.progress, self.message)
        if isinstance(self, Failed):
            return on_failed(self.error)
        return on_loading(None, PREPARING_MESSAGE)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"state": self.state.value}
        if isinstance(self, Loading):
            if self.progress is not None:
                data["progress"] = self.progress
            if self.message is not None:
                data["message"] = self.message
        elif isinstance(self, Loaded):
            data["value"] = self.value
        elif isinstance(self, Failed):
            data["error"] = self.error.to_dict()
        return data

    @staticmethod
    def from_dict(data: dict[str, Any], type_: Optional[type[U]] = None) -> "Loadable[U]":
        """Rebuild a state from ``to_dict`` output, validating the value as ``type_``.

        Raises:
            ValueError: If the state tag is unknown
            SerializationError: If the value does not validate as ``type_``
        """
        state = LoadableState(data["state"])
        if state is LoadableState.LOADING:
            return Loading(data.get("progress"), data.get("message"))
        if state is LoadableState.LOADED:
            value = data["value"]
            return Loaded(coerce(value, type_) if type_ is not None else value)
        if state is LoadableState.FAILED:
            return Failed(NetworkError.from_dict(data["error"]))
        return Idle()


@dataclass(frozen=True)
class Idle(Loadable[T]):
    state = LoadableState.IDLE


@dataclass(frozen=True)
class Loading(Loadable[T]):
    progress: Optional[float] = None
    message: Optional[str] = None
    state = LoadableState.LOADING


@dataclass(frozen=True)
class Loaded(Loadable[T]):
    value: T = field()
    state = LoadableState.LOADED


@dataclass(frozen=True)
class Failed(Loadable[T]):
    error: NetworkError = field()
    state = LoadableState.FAILED


async def track(awaitable: Awaitable[T], message: Optional[str] = None) -> AsyncIterator[Loadable[T]]:
    """Yield ``Loading`` and then the terminal state of ``awaitable``."""
    yield Loading(None, message)
    yield await Loadable.from_awaitable(awaitable)


def all_loaded(states: Iterable[Loadable[Any]]) -> bool:
    return all(s.is_loaded for s in states)


def any_loading(states: Iterable[Loadable[Any]]) -> bool:
    return any(s.is_loading for s in states)


def any_failed(states: Iterable[Loadable[Any]]) -> bool:
    return any(s.is_failed for s in states)


def loaded_values(states: Iterable[Loadable[T]]) -> list[T]:
    return [s.value for s in states if isinstance(s, Loaded)]


def errors(states: Iterable[Loadable[Any]]) -> list[NetworkError]:
    return [s.error for s in states if isinstance(s, Failed)]
