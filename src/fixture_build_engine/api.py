from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, cast

from typing_extensions import Self

from fixture_build_engine.internal.compiler import BuildConfigurationCompiler
from fixture_build_engine.internal.orchestration import DefaultExecuteStrategy
from fixture_build_engine.internal.util.randomness import seed_generators
from fixture_build_engine.model.configuration import BuildConfiguration
from fixture_build_engine.model.errors import StrategyConfigError
from fixture_build_engine.services import default_compiler, load_configuration
from fixture_build_engine.strategies import BuildStrategyConfig

__all__ = [
    "ModelBuildEngine",
    "create",
    "populate",
    "seed_generators",
]


def _normalize_strategy_configs(
    strategy_configs: Iterable[BuildStrategyConfig] | None,
) -> dict[str, BuildStrategyConfig]:
    """
    Normalizes a collection of build strategy configurations into a dictionary indexed by
    instance ID or strategy name.

    Args:
        strategy_configs (Iterable[BuildStrategyConfig] | None): An iterable containing
            build strategy configurations. Each configuration must have a valid
            `instance_id` or `strategy_name`. If `None`, an empty dictionary is returned.

    Returns:
        dict[str, BuildStrategyConfig]: A dictionary where the keys are instance IDs or
        strategy names, and the values are the corresponding configurations.

    Raises:
        StrategyConfigError: If any configuration lacks both `instance_id` and
        `strategy_name`, or two configurations share an instance ID.
    """
    configs_by_instance_id: dict[str, BuildStrategyConfig] = {}
    if strategy_configs is None:
        return configs_by_instance_id

    c: BuildStrategyConfig
    for c in strategy_configs:
        iid = c.get("instance_id", c.get("strategy_name"))
        if not iid:
            raise StrategyConfigError("strategy config requires instance_id or strategy_name")
        if iid in configs_by_instance_id:
            raise StrategyConfigError(f"duplicate strategy config for instance_id '{iid}'")

        cfg = dict(c)
        cfg["instance_id"] = iid
        configs_by_instance_id[iid] = cast(BuildStrategyConfig, cast(object, cfg))

    return configs_by_instance_id


@dataclass(frozen=True, slots=True)
class ModelBuildEngine:
    """
    Builds test fixtures against one compiled configuration.

    The engine itself holds no build state: every ``create`` and ``populate`` call runs
    in a fresh :class:`DefaultExecuteStrategy`, so one engine can serve any number of
    builds. Use :meth:`strategy` to run several builds in one session (sharing its build
    log).
    """

    configuration: BuildConfiguration

    @classmethod
    def default(cls, strategy_configs: Iterable[BuildStrategyConfig] | None = None) -> Self:
        """
        Creates an engine with the built-in generators, creators and execute order rules.

        Args:
            strategy_configs (Iterable[BuildStrategyConfig] | None): Configurations that
                disable, re-prioritize or parameterize built-in strategies, or enable
                strategies published under the entry point groups.

        Returns:
            ModelBuildEngine: The engine.
        """
        return cls(load_configuration(_normalize_strategy_configs(strategy_configs)))

    @staticmethod
    def compiler(strategy_configs: Iterable[BuildStrategyConfig] | None = None) -> BuildConfigurationCompiler:
        """
        Returns a compiler preloaded with the defaults, to add rules to before building an
        engine with ``ModelBuildEngine(compiler.compile())``.
        """
        return default_compiler(_normalize_strategy_configs(strategy_configs))

    def strategy(self) -> DefaultExecuteStrategy:
        return DefaultExecuteStrategy(self.configuration)

    def create(self, type_: Any, *args: Any) -> Any:
        """
        Creates a fully populated instance of a type.

        Args:
            type_ (Any): A class or type form such as ``list[Person]`` or ``int | None``.
            *args (Any): Optional constructor arguments; when given, the constructor they
                fit is used and creation rules, type creators and value generators are
                skipped for the top level type.

        Returns:
            Any: The instance.

        Raises:
            ArgumentRequiredError: If `type_` is None.
            MissingConstructorError: If `args` fit no constructor.
            BuildError: If the type cannot be built.
        """
        return self.strategy().create(type_, *args)

    def populate(self, instance: Any) -> Any:
        """
        Populates the eligible properties of an existing instance, overwriting their values.

        Args:
            instance (Any): The instance to populate.

        Returns:
            Any: The same instance.
        """
        return self.strategy().populate(instance)


_default_engine: ModelBuildEngine | None = None


def default_engine() -> ModelBuildEngine:
    global _default_engine
    if _default_engine is None:
        _default_engine = ModelBuildEngine.default()
    return _default_engine


def create(type_: Any, *args: Any) -> Any:
    return default_engine().create(type_, *args)


def populate(instance: Any) -> Any:
    return default_engine().populate(instance)
