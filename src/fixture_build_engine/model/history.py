from __future__ import annotations

from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Hashable

from fixture_build_engine.model.errors import ArgumentRequiredError, BuildStateError


@dataclass(frozen=True, slots=True)
class Capability:
    """
    An opaque context tag attached to a build history item.

    Generators and creators use capabilities to tell siblings and children what they have
    already decided, e.g. ``Capability("gender", "female")`` on the person being built.
    """

    name: str
    value: Hashable = None


class ParameterValues(MutableMapping[str, Any]):
    """
    Constructor parameter values collected while the parameters of a type are being built.

    Pushed on the build history in place of the (not yet existing) instance so that relative
    generators can read sibling parameter values by name, as they would read properties.
    """

    def __init__(self, target_type: type) -> None:
        self.target_type = target_type
        self._values: dict[str, Any] = {}

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._values[key] = value

    def __delitem__(self, key: str) -> None:
        del self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParameterValues({self.target_type.__qualname__}, {self._values!r})"


@dataclass(eq=False, slots=True)
class BuildHistoryItem:
    instance: Any
    capabilities: set[Capability] = field(default_factory=set)

    def add_capability(self, capability: Capability) -> None:
        self.capabilities.add(capability)

    def capability(self, name: str) -> Capability | None:
        for c in self.capabilities:
            if c.name == name:
                return c
        return None


class BuildHistory:
    """
    The stack of instances currently under construction.

    The depth of the history is the nesting path of the object graph being built. Iteration
    runs from the innermost (most recently pushed) item to the outermost.
    """

    def __init__(self) -> None:
        self._items: list[BuildHistoryItem] = []

    def push(self, instance: Any) -> BuildHistoryItem:
        if instance is None:
            raise ArgumentRequiredError("instance")
        item = BuildHistoryItem(instance=instance)
        self._items.append(item)
        return item

    def pop(self) -> BuildHistoryItem:
        if not self._items:
            raise BuildStateError("cannot pop an empty build history")
        return self._items.pop()

    @contextmanager
    def scope(self, instance: Any) -> Iterator[BuildHistoryItem]:
        """
        Push ``instance`` for the duration of the block; the pop happens on every exit path.
        """
        item = self.push(instance)
        try:
            yield item
        finally:
            popped = self.pop()
            if popped is not item:
                raise BuildStateError(
                    f"build history out of order: expected {item.instance!r}, popped {popped.instance!r}"
                )

    @property
    def depth(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __iter__(self) -> Iterator[Any]:
        for item in reversed(self._items):
            yield item.instance

    def items(self) -> Iterator[BuildHistoryItem]:
        """
        Items from innermost to outermost.
        """
        return reversed(self._items)

    @property
    def first(self) -> Any:
        return self._items[0].instance if self._items else None

    @property
    def last(self) -> Any:
        return self._items[-1].instance if self._items else None

    @property
    def current(self) -> BuildHistoryItem | None:
        return self._items[-1] if self._items else None

    def contains_instance(self, instance: Any) -> bool:
        return any(item.instance is instance for item in self._items)

    def ancestors_of_type(self, type_: type) -> list[Any]:
        """
        Instances in the history whose runtime type is exactly ``type_``, innermost first.
        """
        return [i.instance for i in reversed(self._items) if type(i.instance) is type_]

    def find_capability(self, name: str) -> Capability | None:
        """
        Search the history for a capability by name, innermost first.
        """
        for item in reversed(self._items):
            found = item.capability(name)
            if found is not None:
                return found
        return None
