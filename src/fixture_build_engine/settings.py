"""
Process-wide collection count setting.

``COLLECTION_COUNTS`` is the only shared mutable state in the engine. It supplies the
element count of collections, arrays and mappings whose creator was not configured with
explicit counts. Changing it affects every later build in the process; use
``COLLECTION_COUNTS.override(...)`` to change it for a block and restore it afterwards.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

DEFAULT_MIN_COUNT = 10
DEFAULT_MAX_COUNT = 30


@dataclass(slots=True)
class CollectionCountSettings:
    min_count: int = DEFAULT_MIN_COUNT
    max_count: int = DEFAULT_MAX_COUNT

    def __post_init__(self) -> None:
        self._validate(self.min_count, self.max_count)

    @staticmethod
    def _validate(min_count: int, max_count: int) -> None:
        if min_count < 0:
            raise ValueError(f"min_count must not be negative, got {min_count}")
        if max_count < min_count:
            raise ValueError(f"max_count ({max_count}) must not be less than min_count ({min_count})")

    def set(self, *, min_count: int | None = None, max_count: int | None = None) -> None:
        new_min = self.min_count if min_count is None else min_count
        new_max = self.max_count if max_count is None else max_count
        self._validate(new_min, new_max)
        self.min_count = new_min
        self.max_count = new_max

    def reset(self) -> None:
        self.set(min_count=DEFAULT_MIN_COUNT, max_count=DEFAULT_MAX_COUNT)

    @contextmanager
    def override(
        self, *, min_count: int | None = None, max_count: int | None = None
    ) -> Iterator[CollectionCountSettings]:
        saved = (self.min_count, self.max_count)
        self.set(min_count=min_count, max_count=max_count)
        try:
            yield self
        finally:
            self.min_count, self.max_count = saved


COLLECTION_COUNTS = CollectionCountSettings()
