"""Universe cores and the borrow discipline around them."""
from __future__ import annotations
import contextlib
import functools
import inspect
import logging
from typing import (
    Any,
    Callable,
    Generator,
    Generic,
    List,
    Protocol,
    Tuple,
    Type,
    TypeVar,
    cast,
)

from .errors import StoreMisuseError

_log = logging.getLogger(__name__)

MessageT = TypeVar("MessageT")
MessageT_contra = TypeVar("MessageT_contra", contravariant=True)
ReducerMethodT = Callable[[Any, MessageT], None]

_MESSAGE_TYPE_ATTR = "__message_type__"
_APPLY_FLAG = "__apply__"


class SupportsApply(Protocol[MessageT_contra]):
    """Anything that can be used as a universe core."""

    def apply(self, message: MessageT_contra) -> None:
        ...


UniverseT = TypeVar("UniverseT", bound=SupportsApply[Any])


class UniverseCore(Generic[MessageT]):
    """Base class for application state.

    Subclasses mutate themselves in response to messages, either by
    overriding ``apply`` or by marking methods with ``@reducer``.

    Example:
        ```python
        class Increment(NamedTuple):
            value: int

        class Counter(UniverseCore[Increment]):
            def __init__(self) -> None:
                self.counter = 0

            @reducer(Increment)
            def increment(self, message: Increment) -> None:
                self.counter += message.value
        ```
    """

    _reducers: Tuple[Tuple[Any, Callable[..., None]], ...] = ()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._reducers = _reducer_methods(cls)

    def apply(self, message: MessageT) -> None:
        """Route a message to every reducer method registered for its type."""
        for message_type, method in self._reducers:
            if isinstance(message, message_type):
                method(self, message, **{_APPLY_FLAG: True})


def _reducer_methods(
    cls: Type[UniverseCore[Any]],
) -> Tuple[Tuple[Any, Callable[..., None]], ...]:
    found: List[Tuple[int, Any, Callable[..., None]]] = [
        (_definition_order(cls, name), getattr(member, _MESSAGE_TYPE_ATTR), member)
        for name, member in inspect.getmembers(cls)
        if callable(member) and hasattr(member, _MESSAGE_TYPE_ATTR)
    ]

    found.sort(key=lambda item: item[0])
    return tuple((message_type, member) for _, message_type, member in found)


def _definition_order(cls: type, name: str) -> int:
    # base classes first, then by position in the class body
    position = 0
    for klass in reversed(cls.__mro__):
        for attr in vars(klass):
            if attr == name:
                return position
            position += 1
    return position


def reducer(
    message_type: Any,
) -> Callable[[ReducerMethodT[MessageT]], ReducerMethodT[MessageT]]:
    """Mark a UniverseCore method as the reducer for a message type.

    Args:
        message_type: a type, or a tuple of types, as accepted by isinstance.
    """

    def _decorator(func: ReducerMethodT[MessageT]) -> ReducerMethodT[MessageT]:
        @functools.wraps(func)
        def _wrapper(self: Any, *args: Any, **kwargs: Any) -> None:
            is_core = isinstance(self, UniverseCore)
            ok_to_call = kwargs.pop(_APPLY_FLAG, False)

            if not is_core:
                raise TypeError("@reducer must be applied to methods of a UniverseCore")

            if not ok_to_call:
                raise TypeError("Do not call reducers directly; use Store.send")

            func(self, *args, **kwargs)

        setattr(_wrapper, _MESSAGE_TYPE_ATTR, message_type)
        return cast(ReducerMethodT[MessageT], _wrapper)

    return _decorator


class Universe(Generic[UniverseT]):
    """Owns a universe core and guards access to it.

    Any number of shared borrows may be open at once, or a single exclusive
    one, never both.
    """

    def __init__(self, core: UniverseT) -> None:
        self._core = core
        self._readers = 0
        self._writing = False

    @property
    def borrowed(self) -> bool:
        return self._writing or self._readers > 0

    def read(self) -> UniverseT:
        if self._writing:
            raise StoreMisuseError("Cannot read the universe while it is being mutated")
        return self._core

    @contextlib.contextmanager
    def reading(self) -> Generator[UniverseT, None, None]:
        core = self.read()
        self._readers += 1
        try:
            yield core
        finally:
            self._readers -= 1

    @contextlib.contextmanager
    def writing(self) -> Generator[UniverseT, None, None]:
        if self._writing:
            raise StoreMisuseError("Universe is already being mutated")
        if self._readers:
            raise StoreMisuseError(
                "Cannot mutate the universe while a read borrow is held"
            )

        self._writing = True
        try:
            yield self._core
        finally:
            self._writing = False

    def apply(self, message: Any) -> None:
        with self.writing() as core:
            core.apply(message)

        _log.debug("Applied %s to %s", type(message).__name__, type(self._core).__name__)
