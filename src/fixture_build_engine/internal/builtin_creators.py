from __future__ import annotations

import collections
import collections.abc as abc
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fixture_build_engine.internal.util import randomness
from fixture_build_engine.internal.util.typeforms import runtime_class, type_arguments
from fixture_build_engine.settings import COLLECTION_COUNTS
from fixture_build_engine.strategies import ExecuteStrategy, TypeCreator

if TYPE_CHECKING:
    from fixture_build_engine.model.history import BuildHistory

_TEXT_TYPES = (str, bytes, bytearray, memoryview, range)

# abstract collection type -> the concrete class that is built for it
_ABSTRACT_COLLECTIONS: dict[type, type] = {
    abc.Iterable: list,
    abc.Collection: list,
    abc.Sequence: list,
    abc.MutableSequence: list,
    abc.Reversible: list,
    abc.Set: set,
    abc.MutableSet: set,
}

_ABSTRACT_MAPPINGS: dict[type, type] = {
    abc.Mapping: dict,
    abc.MutableMapping: dict,
}


def _generic_arguments(type_: Any) -> tuple[Any, ...]:
    """
    Type arguments of a parameterized form, or of the generic base a subclass declares
    (``class Names(list[str])`` gives ``(str,)``).
    """
    args = type_arguments(type_)
    if args:
        return args
    cls = runtime_class(type_)
    for base in getattr(cls, "__orig_bases__", ()):
        base_args = type_arguments(base)
        if base_args:
            return base_args
    return ()


@dataclass(frozen=True)
class CountedTypeCreator(TypeCreator):
    """
    A creator whose element count comes from ``min_count``/``max_count`` when set, and
    from the process-wide ``COLLECTION_COUNTS`` otherwise.
    """

    min_count: int | None = None
    max_count: int | None = None

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.min_count is not None and self.min_count < 0:
            raise ValueError(f"min_count must not be negative, got {self.min_count}")
        if (
            self.min_count is not None
            and self.max_count is not None
            and self.max_count < self.min_count
        ):
            raise ValueError(f"max_count ({self.max_count}) must not be less than min_count ({self.min_count})")

    def item_count(self) -> int:
        low = COLLECTION_COUNTS.min_count if self.min_count is None else self.min_count
        high = COLLECTION_COUNTS.max_count if self.max_count is None else self.max_count
        return randomness.RANDOM.randint(low, max(low, high))

    def create_items(self, element_type: Any, execute_strategy: ExecuteStrategy, count: int) -> list[Any]:
        items: list[Any] = []
        previous: Any = None
        for _ in range(count):
            previous = self.create_child_item(element_type, execute_strategy, previous)
            items.append(previous)
        return items


@dataclass(frozen=True)
class ArrayTypeCreator(CountedTypeCreator):
    """
    Builds tuples.

    ``tuple[T, ...]`` gets between 1 and ``max_count`` elements; a fixed form such as
    ``tuple[int, str]`` gets one element per slot. Tuples are immutable, so
    ``create_instance`` only decides the element types and ``populate_instance`` returns
    a new tuple.
    """

    priority: int = 100

    def can_create(self, type_: Any, reference_name: str | None, build_chain: BuildHistory) -> bool:
        return runtime_class(type_) is tuple and bool(type_arguments(type_))

    def can_populate(self, instance: Any, type_: Any) -> bool:
        return isinstance(instance, tuple) and (bool(type_arguments(type_)) or len(instance) > 0)

    def create_instance(
        self, type_: Any, reference_name: str | None, execute_strategy: ExecuteStrategy, *args: Any
    ) -> Any:
        args_ = type_arguments(type_)
        if len(args_) == 2 and args_[1] is Ellipsis:
            low = 1
            high = COLLECTION_COUNTS.max_count if self.max_count is None else self.max_count
            return (None,) * randomness.RANDOM.randint(low, max(low, high))
        return (None,) * len(args_)

    def populate_instance(self, instance: Any, type_: Any, execute_strategy: ExecuteStrategy) -> Any:
        args_ = type_arguments(type_)
        if not args_:
            element_types = [type(e) for e in instance]
        elif len(args_) == 2 and args_[1] is Ellipsis:
            element_types = [args_[0]] * len(instance)
        else:
            element_types = list(args_)

        items: list[Any] = []
        previous: Any = None
        for element_type in element_types:
            previous = self.create_child_item(element_type, execute_strategy, previous)
            items.append(previous)
        return tuple(items)


def _collection_class(type_: Any) -> type | None:
    cls = runtime_class(type_)
    if cls is None or issubclass(cls, _TEXT_TYPES) or issubclass(cls, abc.Mapping):
        return None
    if cls in _ABSTRACT_COLLECTIONS:
        return _ABSTRACT_COLLECTIONS[cls]
    if issubclass(cls, (list, set, frozenset, collections.deque)):
        return cls
    return None


@dataclass(frozen=True)
class EnumerableTypeCreator(CountedTypeCreator):
    """
    Builds single-argument collections: list, set, frozenset, deque, their subclasses, and
    the abstract Iterable, Collection, Sequence, MutableSequence (as list) and Set,
    MutableSet (as set).

    Populating an existing collection replaces its contents.
    """

    priority: int = 100

    def can_create(self, type_: Any, reference_name: str | None, build_chain: BuildHistory) -> bool:
        return _collection_class(type_) is not None and len(_generic_arguments(type_)) == 1

    def can_populate(self, instance: Any, type_: Any) -> bool:
        if _collection_class(type(instance)) is None:
            return False
        return len(_generic_arguments(type_)) == 1 or len(instance) > 0

    def create_instance(
        self, type_: Any, reference_name: str | None, execute_strategy: ExecuteStrategy, *args: Any
    ) -> Any:
        cls = _collection_class(type_)
        if issubclass(cls, frozenset):
            # filled in populate_instance
            return cls()
        return cls(*args)

    def populate_instance(self, instance: Any, type_: Any, execute_strategy: ExecuteStrategy) -> Any:
        args_ = _generic_arguments(type_)
        element_type = args_[0] if args_ else type(next(iter(instance)))
        items = self.create_items(element_type, execute_strategy, self.item_count())

        if isinstance(instance, frozenset):
            return type(instance)(items)

        instance.clear()
        if isinstance(instance, abc.MutableSet):
            for item in items:
                instance.add(item)
        else:
            instance.extend(items)
        return instance


def _mapping_class(type_: Any) -> type | None:
    cls = runtime_class(type_)
    if cls is None:
        return None
    if cls in _ABSTRACT_MAPPINGS:
        return _ABSTRACT_MAPPINGS[cls]
    if issubclass(cls, dict):
        return cls
    return None


@dataclass(frozen=True)
class MappingTypeCreator(CountedTypeCreator):
    """
    Builds dict, its subclasses (OrderedDict, defaultdict, ...) and the abstract Mapping and
    MutableMapping (as dict). Keys and values are built by the engine; the key hook is
    ``create_child_item`` so sequenced keys are possible.
    """

    priority: int = 100

    def can_create(self, type_: Any, reference_name: str | None, build_chain: BuildHistory) -> bool:
        if _mapping_class(type_) is None:
            return False
        if issubclass(_mapping_class(type_), collections.defaultdict):
            return False
        return len(_generic_arguments(type_)) == 2

    def can_populate(self, instance: Any, type_: Any) -> bool:
        if _mapping_class(type(instance)) is None:
            return False
        return len(_generic_arguments(type_)) == 2 or len(instance) > 0

    def create_instance(
        self, type_: Any, reference_name: str | None, execute_strategy: ExecuteStrategy, *args: Any
    ) -> Any:
        return _mapping_class(type_)(*args)

    def populate_instance(self, instance: Any, type_: Any, execute_strategy: ExecuteStrategy) -> Any:
        args_ = _generic_arguments(type_)
        if args_:
            key_type, value_type = args_
        else:
            key, value = next(iter(instance.items()))
            key_type, value_type = type(key), type(value)

        instance.clear()
        previous_key: Any = None
        for _ in range(self.item_count()):
            previous_key = self.create_child_item(key_type, execute_strategy, previous_key)
            instance[previous_key] = execute_strategy.create(value_type)
        return instance
