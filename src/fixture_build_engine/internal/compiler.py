from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from typing_extensions import Self

from fixture_build_engine.model.configuration import BuildConfiguration
from fixture_build_engine.model.errors import ArgumentRequiredError, StrategyConfigError
from fixture_build_engine.resolvers import ConstructorResolver, PropertyResolver
from fixture_build_engine.rules import (
    BaseCreationRule,
    BaseExecuteOrderRule,
    BaseIgnoreRule,
    PostBuildAction,
    TypeMappingRule,
)
from fixture_build_engine.strategies import TypeCreator, ValueGenerator


def _by_priority(items: Iterable[Any]) -> tuple[Any, ...]:
    # sorted() is stable: equal priorities keep the order they were added in
    return tuple(sorted(items, key=lambda i: -i.priority))


class BuildConfigurationCompiler:
    """
    Assembles a :class:`BuildConfiguration`.

    Generators, creators, creation rules and post-build actions are ordered by descending
    priority when compiled. Type mapping, ignore and execute order rules keep the order
    they were added in (first match wins), except that execute order rules added with
    ``fallback=True`` are consulted after all others.
    """

    def __init__(self) -> None:
        self._constructor_resolver: ConstructorResolver | None = None
        self._property_resolver: PropertyResolver | None = None
        self._type_mapping_rules: list[TypeMappingRule] = []
        self._ignore_rules: list[BaseIgnoreRule] = []
        self._creation_rules: list[BaseCreationRule] = []
        self._execute_order_rules: list[BaseExecuteOrderRule] = []
        self._fallback_execute_order_rules: list[BaseExecuteOrderRule] = []
        self._type_creators: list[TypeCreator] = []
        self._value_generators: list[ValueGenerator] = []
        self._post_build_actions: list[PostBuildAction] = []

    @classmethod
    def from_configuration(cls, configuration: BuildConfiguration) -> Self:
        """
        Start from an existing configuration. Its execute order rules become fallbacks, so
        rules added afterwards take precedence over them.
        """
        if configuration is None:
            raise ArgumentRequiredError("configuration")
        compiler = cls()
        compiler._constructor_resolver = configuration.constructor_resolver
        compiler._property_resolver = configuration.property_resolver
        compiler._type_mapping_rules.extend(configuration.type_mapping_rules)
        compiler._ignore_rules.extend(configuration.ignore_rules)
        compiler._creation_rules.extend(configuration.creation_rules)
        compiler._fallback_execute_order_rules.extend(configuration.execute_order_rules)
        compiler._type_creators.extend(configuration.type_creators)
        compiler._value_generators.extend(configuration.value_generators)
        compiler._post_build_actions.extend(configuration.post_build_actions)
        return compiler

    def with_constructor_resolver(self, resolver: ConstructorResolver) -> Self:
        if resolver is None:
            raise ArgumentRequiredError("resolver")
        self._constructor_resolver = resolver
        return self

    def with_property_resolver(self, resolver: PropertyResolver) -> Self:
        if resolver is None:
            raise ArgumentRequiredError("resolver")
        self._property_resolver = resolver
        return self

    def add_type_mapping_rule(self, rule: TypeMappingRule) -> Self:
        if rule is None:
            raise ArgumentRequiredError("rule")
        if any(r.source == rule.source for r in self._type_mapping_rules):
            logging.debug(f"type mapping for {rule.source!r} already present; the first one added wins")
        self._type_mapping_rules.append(rule)
        return self

    def map_type(self, source: Any, target: type) -> Self:
        return self.add_type_mapping_rule(TypeMappingRule(source, target))

    def add_ignore_rule(self, rule: BaseIgnoreRule) -> Self:
        if rule is None:
            raise ArgumentRequiredError("rule")
        self._ignore_rules.append(rule)
        return self

    def add_creation_rule(self, rule: BaseCreationRule) -> Self:
        if rule is None:
            raise ArgumentRequiredError("rule")
        self._creation_rules.append(rule)
        return self

    def add_execute_order_rule(self, rule: BaseExecuteOrderRule, *, fallback: bool = False) -> Self:
        if rule is None:
            raise ArgumentRequiredError("rule")
        if fallback:
            self._fallback_execute_order_rules.append(rule)
        else:
            self._execute_order_rules.append(rule)
        return self

    def add_type_creator(self, creator: TypeCreator) -> Self:
        if creator is None:
            raise ArgumentRequiredError("creator")
        self._type_creators.append(creator)
        return self

    def add_value_generator(self, generator: ValueGenerator) -> Self:
        if generator is None:
            raise ArgumentRequiredError("generator")
        self._value_generators.append(generator)
        return self

    def add_post_build_action(self, action: PostBuildAction) -> Self:
        if action is None:
            raise ArgumentRequiredError("action")
        self._post_build_actions.append(action)
        return self

    def remove_value_generators(self, generator_type: type[ValueGenerator]) -> Self:
        self._value_generators = [g for g in self._value_generators if not isinstance(g, generator_type)]
        return self

    def remove_type_creators(self, creator_type: type[TypeCreator]) -> Self:
        self._type_creators = [c for c in self._type_creators if not isinstance(c, creator_type)]
        return self

    def compile(self) -> BuildConfiguration:
        if self._constructor_resolver is None:
            raise StrategyConfigError("a build configuration requires a constructor resolver")
        if self._property_resolver is None:
            raise StrategyConfigError("a build configuration requires a property resolver")

        return BuildConfiguration(
            constructor_resolver=self._constructor_resolver,
            property_resolver=self._property_resolver,
            type_mapping_rules=tuple(self._type_mapping_rules),
            ignore_rules=tuple(self._ignore_rules),
            creation_rules=_by_priority(self._creation_rules),
            execute_order_rules=tuple(self._execute_order_rules + self._fallback_execute_order_rules),
            type_creators=_by_priority(self._type_creators),
            value_generators=_by_priority(self._value_generators),
            post_build_actions=_by_priority(self._post_build_actions),
        )
