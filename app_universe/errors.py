"""Errors raised by app_universe stores."""


class StoreMisuseError(RuntimeError):
    """The store was used in a way its single-threaded protocol forbids.

    Raised for re-entrant sends, subscribing or unsubscribing from inside a
    notification, and mutating while a borrow of the universe is held.
    """
