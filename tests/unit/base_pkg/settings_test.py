from __future__ import annotations

import pytest

from fixture_build_engine.settings import (
    COLLECTION_COUNTS,
    DEFAULT_MAX_COUNT,
    DEFAULT_MIN_COUNT,
    CollectionCountSettings,
)


def test_defaults() -> None:
    settings = CollectionCountSettings()
    assert (settings.min_count, settings.max_count) == (DEFAULT_MIN_COUNT, DEFAULT_MAX_COUNT)


@pytest.mark.parametrize(
    "min_count, max_count, expect_err_substr",
    [
        (-1, 5, "must not be negative"),
        (5, 4, "must not be less than"),
    ],
)
def test_invalid_counts_raise(min_count: int, max_count: int, expect_err_substr: str) -> None:
    with pytest.raises(ValueError, match=expect_err_substr):
        CollectionCountSettings(min_count, max_count)

    settings = CollectionCountSettings()
    with pytest.raises(ValueError, match=expect_err_substr):
        settings.set(min_count=min_count, max_count=max_count)
    # a rejected update leaves the settings untouched
    assert (settings.min_count, settings.max_count) == (DEFAULT_MIN_COUNT, DEFAULT_MAX_COUNT)


def test_set_and_reset() -> None:
    settings = CollectionCountSettings()

    settings.set(max_count=50)
    assert (settings.min_count, settings.max_count) == (DEFAULT_MIN_COUNT, 50)

    settings.reset()
    assert (settings.min_count, settings.max_count) == (DEFAULT_MIN_COUNT, DEFAULT_MAX_COUNT)


def test_override_restores_on_exit_and_on_error() -> None:
    before = (COLLECTION_COUNTS.min_count, COLLECTION_COUNTS.max_count)

    with COLLECTION_COUNTS.override(min_count=1, max_count=2) as counts:
        assert counts is COLLECTION_COUNTS
        assert (COLLECTION_COUNTS.min_count, COLLECTION_COUNTS.max_count) == (1, 2)
    assert (COLLECTION_COUNTS.min_count, COLLECTION_COUNTS.max_count) == before

    with pytest.raises(RuntimeError):
        with COLLECTION_COUNTS.override(min_count=0, max_count=0):
            raise RuntimeError("x")
    assert (COLLECTION_COUNTS.min_count, COLLECTION_COUNTS.max_count) == before
