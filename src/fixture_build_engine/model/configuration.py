from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fixture_build_engine.internal.util.typeforms import strip_annotated
from fixture_build_engine.resolvers import ConstructorResolver, PropertyResolver
from fixture_build_engine.rules import (
    BaseCreationRule,
    BaseExecuteOrderRule,
    BaseIgnoreRule,
    PostBuildAction,
    TypeMappingRule,
)
from fixture_build_engine.strategies import TypeCreator, ValueGenerator


@dataclass(frozen=True, slots=True)
class BuildConfiguration:
    """
    The compiled, read-only rule set a build runs against.

    Each collection is ordered; the first match wins. Instances are produced by
    :class:`~fixture_build_engine.internal.compiler.BuildConfigurationCompiler` and shared
    by every build session.
    """

    constructor_resolver: ConstructorResolver
    property_resolver: PropertyResolver
    type_mapping_rules: tuple[TypeMappingRule, ...] = ()
    ignore_rules: tuple[BaseIgnoreRule, ...] = ()
    creation_rules: tuple[BaseCreationRule, ...] = ()
    execute_order_rules: tuple[BaseExecuteOrderRule, ...] = ()
    type_creators: tuple[TypeCreator, ...] = ()
    value_generators: tuple[ValueGenerator, ...] = ()
    post_build_actions: tuple[PostBuildAction, ...] = ()

    def build_type_for(self, type_: Any) -> Any:
        """
        Return the type to build for a requested type: the target of the first matching
        mapping rule, otherwise the type itself.
        """
        for rule in self.type_mapping_rules:
            if rule.is_match(type_):
                return rule.target
        return strip_annotated(type_)
