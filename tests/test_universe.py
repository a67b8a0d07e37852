"""Tests universe cores and their borrow discipline."""
from __future__ import annotations

import gc
import pytest
import weakref
from typing import List, NamedTuple, Union
from app_universe import StoreMisuseError, UniverseCore, reducer
from app_universe.universe import Universe


class Increment(NamedTuple):
    """Message to increment the counter."""

    value: int = 1


class Decrement(NamedTuple):
    """Message to decrement the counter."""

    value: int = 1


class Reset(NamedTuple):
    """Message no reducer handles."""


Messages = Union[Increment, Decrement, Reset]


class Counter(UniverseCore[Messages]):
    """Universe core that keeps a counter."""

    def __init__(self, counter: int = 0) -> None:
        self.counter = counter

    @reducer(Increment)
    def increment(self, message: Increment) -> None:
        """Increment the counter."""
        self.counter += message.value

    @reducer(Decrement)
    def decrement(self, message: Decrement) -> None:
        """Decrement the counter."""
        self.counter -= message.value


class Exploding(UniverseCore[Increment]):
    @reducer(Increment)
    def explode(self, message: Increment) -> None:
        raise ValueError("boom")


def test_apply_routes_to_reducer() -> None:
    subject = Counter()

    subject.apply(Increment(3))
    assert subject.counter == 3

    subject.apply(Decrement(1))
    assert subject.counter == 2


def test_unhandled_message_is_ignored() -> None:
    subject = Counter(counter=5)
    subject.apply(Reset())

    assert subject.counter == 5


def test_direct_reducer_method_raises() -> None:
    subject = Counter()

    with pytest.raises(TypeError, match="use Store.send"):
        subject.increment(Increment())

    assert subject.counter == 0


def test_reducer_decorator_misuse_raises() -> None:
    @reducer(Increment)
    def _not_a_core_method(foo: int, message: Increment) -> None:
        ...

    with pytest.raises(TypeError, match="methods of a UniverseCore"):
        _not_a_core_method(42, Increment())


def test_multiple_reducers_run_in_definition_order() -> None:
    class Recorder(UniverseCore[Increment]):
        def __init__(self) -> None:
            self.calls: List[str] = []

        @reducer(Increment)
        def second(self, message: Increment) -> None:
            self.calls.append("second")

        @reducer(Increment)
        def first(self, message: Increment) -> None:
            self.calls.append("first")

    subject = Recorder()
    subject.apply(Increment())

    assert subject.calls == ["second", "first"]


def test_multimessage_reducer() -> None:
    class MessageCounter(UniverseCore[Messages]):
        def __init__(self) -> None:
            self.seen = 0

        @reducer((Increment, Decrement))
        def count(self, message: Union[Increment, Decrement]) -> None:
            self.seen += 1

    subject = MessageCounter()
    subject.apply(Increment())
    subject.apply(Decrement())
    subject.apply(Reset())

    assert subject.seen == 2


def test_overridden_apply() -> None:
    class Manual(UniverseCore[int]):
        def __init__(self) -> None:
            self.total = 0

        def apply(self, message: int) -> None:
            self.total += message

    subject = Universe(Manual())
    subject.apply(4)
    subject.apply(5)

    assert subject.read().total == 9


def test_universe_accepts_any_core_with_apply() -> None:
    class Plain:
        def __init__(self) -> None:
            self.messages: List[str] = []

        def apply(self, message: str) -> None:
            self.messages.append(message)

    subject = Universe(Plain())
    subject.apply("hello")

    assert subject.read().messages == ["hello"]


def test_apply_while_reading_raises() -> None:
    subject = Universe(Counter())

    with subject.reading() as core:
        with pytest.raises(StoreMisuseError, match="read borrow"):
            subject.apply(Increment())

        assert core.counter == 0

    subject.apply(Increment())
    assert subject.read().counter == 1


def test_nested_reads_allowed() -> None:
    subject = Universe(Counter(counter=7))

    with subject.reading() as first, subject.reading() as second:
        assert first is second
        assert subject.borrowed

    assert not subject.borrowed


def test_read_while_writing_raises() -> None:
    subject = Universe(Counter())

    with subject.writing() as core:
        core.counter = 10

        with pytest.raises(StoreMisuseError, match="being mutated"):
            subject.read()

        with pytest.raises(StoreMisuseError, match="already being mutated"):
            subject.apply(Increment())

    assert subject.read().counter == 10


def test_borrow_released_when_reducer_raises() -> None:
    subject = Universe(Exploding())

    with pytest.raises(ValueError, match="boom"):
        subject.apply(Increment())

    assert not subject.borrowed


def test_reducer_table_built_per_class() -> None:
    class Base(UniverseCore[Messages]):
        def __init__(self) -> None:
            self.counter = 0

        @reducer(Increment)
        def increment(self, message: Increment) -> None:
            self.counter += message.value

    class Override(Base):
        def increment(self, message: Increment) -> None:
            self.counter += 100

        @reducer(Decrement)
        def decrement(self, message: Decrement) -> None:
            self.counter -= message.value

    base = Base()
    base.apply(Increment(2))
    base.apply(Decrement(1))

    subject = Override()
    subject.apply(Increment(2))
    subject.apply(Decrement(1))

    assert base.counter == 2
    assert subject.counter == -1


def test_local_core_class_can_be_collected() -> None:
    def _make_and_use() -> "weakref.ref[type]":
        class Local(UniverseCore[int]):
            def __init__(self) -> None:
                self.total = 0

            @reducer(int)
            def add(self, message: int) -> None:
                self.total += message

        core = Local()
        core.apply(1)
        assert core.total == 1

        return weakref.ref(Local)

    ref = _make_and_use()
    gc.collect()

    assert ref() is None
