"""Ordered registry of store subscriptions."""
from __future__ import annotations
import dataclasses
import enum
import itertools
import logging
from typing import Callable, Generic, Iterator, List, NamedTuple, TypeVar

from .errors import StoreMisuseError

_log = logging.getLogger(__name__)

HandleT = TypeVar("HandleT")

_registry_ids = itertools.count(1)


class Unsubscribed(str, enum.Enum):
    """Outcome of removing a subscription.

    Props:
        REMOVED: The subscription was live and has been removed.
        NOT_FOUND: No live subscription matched the handle, either because it
            was already removed or because it came from another store.
    """

    REMOVED = "removed"
    NOT_FOUND = "not_found"


@dataclasses.dataclass(frozen=True)
class SubscriptionHandle:
    """Opaque token identifying one subscription."""

    registry_id: int
    subscription_id: int


class _Record(NamedTuple):
    subscription_id: int
    callback: Callable[..., None]


class SubscriptionRegistry(Generic[HandleT]):
    """Callbacks in registration order, each with a never-reused id."""

    def __init__(self) -> None:
        self._id = next(_registry_ids)
        self._next_subscription_id = itertools.count(1)
        self._records: List[_Record] = []
        self._notifying = False

    @property
    def notifying(self) -> bool:
        return self._notifying

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, handle: object) -> bool:
        return self._find(handle) is not None

    def __iter__(self) -> Iterator[SubscriptionHandle]:
        return (SubscriptionHandle(self._id, r.subscription_id) for r in self._records)

    def add(self, callback: Callable[[HandleT], None]) -> SubscriptionHandle:
        """Append a callback and return the handle that removes it."""
        self._check_not_notifying("subscribe")

        subscription_id = next(self._next_subscription_id)
        self._records.append(_Record(subscription_id, callback))

        _log.debug("Added subscription %d", subscription_id)
        return SubscriptionHandle(self._id, subscription_id)

    def remove(self, handle: SubscriptionHandle) -> Unsubscribed:
        """Remove the subscription a handle was issued for, keeping order."""
        self._check_not_notifying("unsubscribe")

        index = self._find(handle)

        if index is None:
            _log.debug("Subscription %r not found", handle)
            return Unsubscribed.NOT_FOUND

        del self._records[index]

        _log.debug("Removed subscription %d", handle.subscription_id)
        return Unsubscribed.REMOVED

    def notify(self, handle: HandleT) -> None:
        """Call every subscriber, in registration order, with ``handle``."""
        self._check_not_notifying("notify")

        _log.debug("Notifying %d subscriber(s)", len(self._records))

        self._notifying = True
        try:
            for record in self._records:
                record.callback(handle)
        finally:
            self._notifying = False

    def _find(self, handle: object) -> int | None:
        if not isinstance(handle, SubscriptionHandle) or handle.registry_id != self._id:
            return None

        for index, record in enumerate(self._records):
            if record.subscription_id == handle.subscription_id:
                return index

        return None

    def _check_not_notifying(self, operation: str) -> None:
        if self._notifying:
            raise StoreMisuseError(
                f"Cannot {operation} while subscribers are being notified"
            )
