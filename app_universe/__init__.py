"""App universe - framework agnostic application state for Python."""
import logging

from .errors import StoreMisuseError
from .registry import SubscriptionHandle, SubscriptionRegistry, Unsubscribed
from .store import StateStream, Store, SubscriptionStrategy, create_store
from .universe import SupportsApply, UniverseCore, reducer

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "StateStream",
    "Store",
    "StoreMisuseError",
    "SubscriptionHandle",
    "SubscriptionRegistry",
    "SubscriptionStrategy",
    "SupportsApply",
    "UniverseCore",
    "Unsubscribed",
    "create_store",
    "reducer",
]
