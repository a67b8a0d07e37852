"""App universe stores."""
from __future__ import annotations
import collections
import contextlib
import copy
import enum
import logging
from anyio import Event
from typing import (
    Any,
    AsyncIterator,
    Callable,
    ContextManager,
    Deque,
    Generator,
    Generic,
    List,
    TypeVar,
)

from .errors import StoreMisuseError
from .registry import SubscriptionHandle, SubscriptionRegistry, Unsubscribed
from .universe import Universe, UniverseT

_log = logging.getLogger(__name__)

MessageT = TypeVar("MessageT")
SelectedT = TypeVar("SelectedT")


class SubscriptionStrategy(str, enum.Enum):
    """Message strategy to use for a state stream.

    Props:
        LATEST: Receive the latest state. Guarantees that the store's state
            will match the state in the notification, but may miss transitions.
        EVERY: Receive every state change. Guarantees that you will be notified
            of every state transition, but the store's state have transitioned
            again by the time the notification is handled.
    """

    LATEST = "latest"
    EVERY = "every"


class StateStream(AsyncIterator[SelectedT]):
    """An asynchronous iterator of values selected from the universe."""

    def __init__(self, strategy: SubscriptionStrategy) -> None:
        self._notification_event = Event()
        self._queue: Deque[SelectedT] = collections.deque(
            maxlen=1 if strategy == SubscriptionStrategy.LATEST else None
        )

    def _notify(self, value: SelectedT) -> None:
        self._queue.append(value)
        self._notification_event.set()

    async def __anext__(self) -> SelectedT:
        while len(self._queue) == 0:
            await self._notification_event.wait()
            self._notification_event = Event()

        return self._queue.popleft()

    def __aiter__(self) -> AsyncIterator[SelectedT]:
        return self


class _StoreInner(Generic[UniverseT]):
    """State shared by every clone of a store."""

    def __init__(self, core: UniverseT, capture_messages: bool) -> None:
        self.universe: Universe[UniverseT] = Universe(core)
        self.registry: SubscriptionRegistry[Store[UniverseT, Any]] = SubscriptionRegistry()
        self.capture_messages = capture_messages
        self.captured: List[Any] = []


class Store(Generic[UniverseT, MessageT]):
    """A handle to an app universe.

    Cloning a store is cheap: every clone refers to the same universe and
    the same subscribers, and none of them is special.

    Args:
        initial_universe: The universe core holding the initial state.
        capture_messages: Record sent messages instead of applying them.
    """

    _inner: _StoreInner[UniverseT]

    def __init__(self, initial_universe: UniverseT, *, capture_messages: bool = False) -> None:
        self._inner = _StoreInner(initial_universe, capture_messages)

    @classmethod
    def _from_inner(cls, inner: _StoreInner[UniverseT]) -> Store[UniverseT, MessageT]:
        store = cls.__new__(cls)
        store._inner = inner
        return store

    def clone(self) -> Store[UniverseT, MessageT]:
        """Create another handle to the same universe."""
        return self._from_inner(self._inner)

    def __copy__(self) -> Store[UniverseT, MessageT]:
        return self.clone()

    def shares_state_with(self, other: Store[Any, Any]) -> bool:
        """Whether ``other`` is a clone of this store."""
        return self._inner is other._inner

    def read(self) -> UniverseT:
        """Get the current universe core. Do not mutate it."""
        return self._inner.universe.read()

    def reading(self) -> ContextManager[UniverseT]:
        """Hold a read borrow of the universe for the duration of a block.

        Sending a message before the block exits raises StoreMisuseError.
        """
        return self._inner.universe.reading()

    def send(self, message: MessageT) -> None:
        """Apply a message to the universe, then notify every subscriber.

        Subscribers are called after the universe has been released, in
        the order they subscribed, each with a clone of this store.
        """
        inner = self._inner

        if inner.registry.notifying:
            raise StoreMisuseError("Cannot send a message from inside a subscriber")

        if inner.capture_messages:
            inner.captured.append(message)
            _log.debug("Captured %s", type(message).__name__)
            return

        inner.universe.apply(message)
        inner.registry.notify(self.clone())

    def subscribe(self, callback: Callable[[Store[UniverseT, MessageT]], None]) -> SubscriptionHandle:
        """Call ``callback`` with the store after every message.

        Returns:
            A handle to pass to ``unsubscribe``. Subscribing the same
            callable twice yields two distinct handles.
        """
        return self._inner.registry.add(callback)

    def unsubscribe(self, handle: SubscriptionHandle) -> Unsubscribed:
        """Remove a subscription.

        Returns:
            Unsubscribed.REMOVED, or Unsubscribed.NOT_FOUND if the handle does
            not refer to a live subscription of this store.
        """
        return self._inner.registry.remove(handle)

    @property
    def subscription_count(self) -> int:
        return len(self._inner.registry)

    @contextlib.contextmanager
    def stream(
        self,
        strategy: SubscriptionStrategy = SubscriptionStrategy.LATEST,
        select: Callable[[UniverseT], Any] = copy.deepcopy,
    ) -> Generator[StateStream[Any], None, None]:
        """Create a stream of state changes to consume asynchronously.

        Args:
            strategy: whether to receive the latest state change (default)
                or every state change.
            select: Called with the universe after each message; its result
                is what the stream yields. Defaults to a deep copy, because
                the universe itself is mutated in place.

        Returns:
            A context manager wrapping a stream.
        """
        stream: StateStream[Any] = StateStream(strategy=strategy)
        handle = self.subscribe(lambda store: stream._notify(select(store.read())))
        try:
            yield stream
        finally:
            self.unsubscribe(handle)

    def write(self) -> ContextManager[UniverseT]:
        """Mutate the universe directly, without notifying subscribers.

        Meant for setting up state in tests; use ``send`` everywhere else.
        """
        return self._inner.universe.writing()

    @property
    def capture_messages(self) -> bool:
        return self._inner.capture_messages

    def set_capture_messages(self, capture: bool) -> None:
        """Set whether sent messages are recorded instead of applied."""
        self._inner.capture_messages = capture

    @property
    def captured_messages(self) -> List[MessageT]:
        """Messages sent while capturing, oldest first."""
        return list(self._inner.captured)

    def clear_captured_messages(self) -> None:
        self._inner.captured.clear()


def create_store(
    initial_universe: UniverseT,
    *,
    capture_messages: bool = False,
) -> Store[UniverseT, Any]:
    """Create a store holding ``initial_universe``."""
    return Store(initial_universe, capture_messages=capture_messages)
