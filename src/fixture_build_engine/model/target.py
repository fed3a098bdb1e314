from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from fixture_build_engine.internal.util.typeforms import type_name


class TargetKind(str, Enum):
    """
    What a value is being built for.

    TYPE: a type requested directly (top level, collection element, recursive create).
    PROPERTY: a property of an instance being populated.
    PARAMETER: a constructor parameter of a type being created.
    """

    TYPE = "type"
    PROPERTY = "property"
    PARAMETER = "parameter"


@dataclass(frozen=True, slots=True)
class BuildTarget:
    """
    Describes the member (or bare type) a value is being built for.

    Rules match against targets; ``declaring_type`` is the class that owns the property or
    parameter and is None for TYPE targets.
    """

    type: Any
    name: str | None = None
    kind: TargetKind = TargetKind.TYPE
    declaring_type: type | None = None

    @classmethod
    def for_type(cls, type_: Any) -> BuildTarget:
        return cls(type=type_)

    @classmethod
    def for_property(cls, declaring_type: type, name: str, type_: Any) -> BuildTarget:
        return cls(type=type_, name=name, kind=TargetKind.PROPERTY, declaring_type=declaring_type)

    @classmethod
    def for_parameter(cls, declaring_type: type, name: str, type_: Any) -> BuildTarget:
        return cls(type=type_, name=name, kind=TargetKind.PARAMETER, declaring_type=declaring_type)

    @property
    def is_member(self) -> bool:
        return self.kind is not TargetKind.TYPE

    def __str__(self) -> str:
        if self.kind is TargetKind.TYPE:
            return type_name(self.type)
        owner = self.declaring_type.__qualname__ if self.declaring_type else "?"
        return f"{self.kind.value} {owner}.{self.name}: {type_name(self.type)}"
