from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from fixture_build_engine.internal.util.typeforms import type_name

_INDENT = "    "


class BuildLog:
    """
    An indented, human-readable trace of one build session.

    Each line is mirrored to ``logging.debug``. The text is attached to any
    :class:`~fixture_build_engine.model.errors.BuildError` raised during the session.
    """

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._depth = 0

    def _write(self, message: str) -> None:
        line = f"{_INDENT * self._depth}{message}"
        self._lines.append(line)
        logging.debug(line)

    @contextmanager
    def nested(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1

    def creating_type(self, type_: Any, context: Any = None) -> None:
        suffix = f" for {type(context).__name__}" if context is not None else ""
        self._write(f"Creating {type_name(type_)}{suffix}")

    def populating(self, instance: Any) -> None:
        self._write(f"Populating {type(instance).__name__}")

    def creating_property(self, name: str, type_: Any) -> None:
        self._write(f"Creating property {name} ({type_name(type_)})")

    def creating_parameter(self, name: str, type_: Any) -> None:
        self._write(f"Creating parameter {name} ({type_name(type_)})")

    def ignoring_property(self, name: str, reason: str) -> None:
        self._write(f"Ignoring property {name}: {reason}")

    def using_strategy(self, strategy: Any) -> None:
        self._write(f"Using {type(strategy).__name__}")

    def using_constructor(self, constructor: Any) -> None:
        self._write(f"Using constructor {constructor.declaring_type.__qualname__}.{constructor.name}")

    def post_build_action(self, action: Any) -> None:
        self._write(f"Running post-build action {type(action).__name__}")

    def failed(self, message: str) -> None:
        self._write(f"Failed: {message}")

    @property
    def text(self) -> str:
        return "\n".join(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __str__(self) -> str:
        return self.text
