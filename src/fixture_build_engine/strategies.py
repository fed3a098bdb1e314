from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, TypedDict

from fixture_build_engine.internal.util import randomness
from fixture_build_engine.internal.util.typeforms import (
    is_optional,
    strip_optional,
    type_name,
)
from fixture_build_engine.model.errors import (
    ArgumentRequiredError,
    GenerationNotSupportedError,
)

if TYPE_CHECKING:
    from fixture_build_engine.model.configuration import BuildConfiguration
    from fixture_build_engine.model.history import BuildHistory


class InstantiationPolicy(str, Enum):
    """
    Controls whether a strategy type may have one instance or multiple instances.

    SINGLETON: exactly one instance is allowed (instance_id must equal strategy name).
    PROTOTYPE: one or more instances are allowed (instance_id values may differ).
    """

    SINGLETON = "singleton"
    PROTOTYPE = "prototype"


class BuildStrategyConfig(TypedDict, total=False):
    """
    Configuration dictionary for a specific value generator or type creator instance.

    The dict key in `strategy_configs_by_instance_id` is the canonical instance_id.

    Reserved keys:
      - strategy_name: binds this instance config to a strategy implementation type
      - instance_id: optional, but if present must match the dict key
      - priority: per instance priority (higher is consulted earlier)
      - enabled: False removes the instance from the compiled configuration

    Any additional keys are passed through to the strategy constructor.
    """

    strategy_name: str
    instance_id: str
    priority: int
    enabled: bool


class ExecuteStrategy(Protocol):
    """
    The view of the execute strategy that generators, creators and rules may rely on.
    """

    @property
    def build_chain(self) -> BuildHistory: ...

    @property
    def configuration(self) -> BuildConfiguration: ...

    def create(self, type_: Any, *args: Any) -> Any: ...


@dataclass(frozen=True)
class BaseBuildStrategy(ABC):
    """
    Base contract shared by value generators and type creators.

    Strategies are consulted in descending priority order; the first one that supports a
    (type, reference name) pair wins. A strategy must not keep per-build state: the same
    instance is shared by every build that uses the configuration it belongs to.

    name defaults to the class name; instance_id defaults to name.
    """

    name: str = ""
    instance_id: str = ""
    priority: int = 0

    instantiation_policy: ClassVar[InstantiationPolicy] = InstantiationPolicy.SINGLETON

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", type(self).__name__)
        if not self.instance_id:
            object.__setattr__(self, "instance_id", self.name)

    @abstractmethod
    def is_supported(
        self, type_: Any, reference_name: str | None, build_chain: BuildHistory
    ) -> bool:
        raise NotImplementedError

    def _not_supported(self, type_: Any, reference_name: str | None) -> GenerationNotSupportedError:
        return GenerationNotSupportedError(
            f"{type(self).__name__} does not support type {type_name(type_)} "
            f"with reference name {reference_name or '<none>'}"
        )


@dataclass(frozen=True)
class ValueGenerator(BaseBuildStrategy, ABC):
    """
    Produces leaf values (primitives, semantic strings, dates, identifiers).

    Subclasses implement ``is_match`` and ``generate_value``. Optional type forms
    (``X | None``) are handled here: ``is_match`` only ever sees ``X``, and when
    ``allow_null`` is set ``generate`` returns None with probability ``null_probability``.
    """

    allow_null: bool = True
    null_probability: float = 0.1

    def is_supported(
        self, type_: Any, reference_name: str | None, build_chain: BuildHistory
    ) -> bool:
        if type_ is None:
            raise ArgumentRequiredError("type_")
        if build_chain is None:
            raise ArgumentRequiredError("build_chain")
        return self.is_match(strip_optional(type_), reference_name, build_chain)

    def generate(
        self, type_: Any, reference_name: str | None, execute_strategy: ExecuteStrategy
    ) -> Any:
        if type_ is None:
            raise ArgumentRequiredError("type_")
        if execute_strategy is None:
            raise ArgumentRequiredError("execute_strategy")

        if not self.is_supported(type_, reference_name, execute_strategy.build_chain):
            raise self._not_supported(type_, reference_name)

        if is_optional(type_) and self.allow_null and randomness.chance(self.null_probability):
            return None

        return self.generate_value(strip_optional(type_), reference_name, execute_strategy)

    @abstractmethod
    def is_match(self, type_: Any, reference_name: str | None, build_chain: BuildHistory) -> bool:
        raise NotImplementedError

    @abstractmethod
    def generate_value(
        self, type_: Any, reference_name: str | None, execute_strategy: ExecuteStrategy
    ) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class TypeCreator(BaseBuildStrategy, ABC):
    """
    Produces composite values (collections, arrays, mappings) and recurses back into the
    engine for their children.

    ``create`` returns a fully populated value. ``create_child_item`` is the customization
    seam: it is called once per element with the previously created element, so subclasses
    can replace independent random elements with sequenced ones.
    """

    def is_supported(
        self, type_: Any, reference_name: str | None, build_chain: BuildHistory
    ) -> bool:
        if type_ is None:
            raise ArgumentRequiredError("type_")
        if build_chain is None:
            raise ArgumentRequiredError("build_chain")
        return self.can_create(type_, reference_name, build_chain)

    def create(
        self,
        type_: Any,
        reference_name: str | None,
        execute_strategy: ExecuteStrategy,
        *args: Any,
    ) -> Any:
        if type_ is None:
            raise ArgumentRequiredError("type_")
        if execute_strategy is None:
            raise ArgumentRequiredError("execute_strategy")

        if not self.is_supported(type_, reference_name, execute_strategy.build_chain):
            raise self._not_supported(type_, reference_name)

        instance = self.create_instance(type_, reference_name, execute_strategy, *args)
        return self.populate_instance(instance, type_, execute_strategy)

    def populate(
        self, instance: Any, execute_strategy: ExecuteStrategy, type_: Any = None
    ) -> Any:
        """
        Refill an existing value. ``type_`` carries the element types when the runtime type
        alone does not (e.g. ``list[int]`` for a plain list instance).
        """
        if instance is None:
            raise ArgumentRequiredError("instance")
        if execute_strategy is None:
            raise ArgumentRequiredError("execute_strategy")

        type_ = type_ if type_ is not None else type(instance)
        if not self.can_populate(instance, type_):
            raise self._not_supported(type_, None)

        return self.populate_instance(instance, type_, execute_strategy)

    def create_child_item(
        self, type_: Any, execute_strategy: ExecuteStrategy, previous_item: Any
    ) -> Any:
        if execute_strategy is None:
            raise ArgumentRequiredError("execute_strategy")
        return execute_strategy.create(type_)

    @abstractmethod
    def can_create(self, type_: Any, reference_name: str | None, build_chain: BuildHistory) -> bool:
        raise NotImplementedError

    @abstractmethod
    def can_populate(self, instance: Any, type_: Any) -> bool:
        raise NotImplementedError

    @abstractmethod
    def create_instance(
        self,
        type_: Any,
        reference_name: str | None,
        execute_strategy: ExecuteStrategy,
        *args: Any,
    ) -> Any:
        raise NotImplementedError

    @abstractmethod
    def populate_instance(self, instance: Any, type_: Any, execute_strategy: ExecuteStrategy) -> Any:
        raise NotImplementedError
