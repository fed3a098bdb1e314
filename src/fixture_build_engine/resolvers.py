from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Sequence

if TYPE_CHECKING:
    from fixture_build_engine.model.configuration import BuildConfiguration
    from fixture_build_engine.model.types import (
        ConstructorDescriptor,
        ParameterDescriptor,
        PropertyDescriptor,
        TypeDescriptor,
    )

ParameterPredicate = Callable[["ParameterDescriptor"], bool]


class ConstructorResolver(ABC):
    """
    Selects the constructor used to instantiate a type.
    """

    @abstractmethod
    def resolve(
        self,
        descriptor: TypeDescriptor,
        args: Sequence[Any] | None = None,
        *,
        is_buildable: ParameterPredicate | None = None,
    ) -> ConstructorDescriptor:
        """
        Args:
            descriptor: The type to construct.
            args: Explicit constructor arguments, or None to let the engine build them.
            is_buildable: Tells the resolver whether the engine can produce a value for
                a parameter; only consulted when ``args`` is None.

        Raises:
            MissingConstructorError: if ``args`` fit no constructor.
            BuildError: if the type has no constructor at all.
        """
        raise NotImplementedError


class PropertyResolver(ABC):
    """
    Decides which properties of a type are populated, and in which order.
    """

    @abstractmethod
    def properties_of(self, type_: type, name_filter: str | None = None) -> tuple[PropertyDescriptor, ...]:
        raise NotImplementedError

    @abstractmethod
    def ordered_properties(
        self, configuration: BuildConfiguration, type_: type
    ) -> tuple[PropertyDescriptor, ...]:
        raise NotImplementedError

    @abstractmethod
    def is_ignored(
        self,
        configuration: BuildConfiguration,
        instance: Any,
        prop: PropertyDescriptor,
        constructor_args: dict[str, Any] | None = None,
    ) -> bool:
        raise NotImplementedError
