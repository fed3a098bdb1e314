from __future__ import annotations

import datetime as dt
import enum
import ipaddress
import re
import uuid
from collections.abc import Mapping
from decimal import Decimal

from fixture_build_engine.internal import builtin_generators as g
from fixture_build_engine.internal.compiler import BuildConfigurationCompiler
from fixture_build_engine.internal.constructors import DefaultConstructorResolver
from fixture_build_engine.internal.properties import DefaultPropertyResolver
from fixture_build_engine.internal.util.strategy import (
    build_strategy_plans,
    discover_strategy_classes,
    instantiate_plans,
    validate_bound_configs,
)
from fixture_build_engine.internal.util.typeforms import runtime_class, strip_optional
from fixture_build_engine.model.configuration import BuildConfiguration
from fixture_build_engine.model.target import BuildTarget
from fixture_build_engine.rules import ExecuteOrderRule, PredicateExecuteOrderRule
from fixture_build_engine.strategies import (
    BuildStrategyConfig,
    TypeCreator,
    ValueGenerator,
)

BUILTIN_VALUE_GENERATOR_MODULES = ("fixture_build_engine.internal.builtin_generators",)
BUILTIN_TYPE_CREATOR_MODULES = ("fixture_build_engine.internal.builtin_creators",)
VALUE_GENERATOR_ENTRYPOINT_GROUP = "fixture_build_engine.value_generators"
TYPE_CREATOR_ENTRYPOINT_GROUP = "fixture_build_engine.type_creators"

VALUE_TYPES: tuple[type, ...] = (
    bool,
    int,
    float,
    Decimal,
    uuid.UUID,
    bytes,
    dt.date,
    dt.datetime,
    dt.time,
    dt.timedelta,
    ipaddress.IPv4Address,
    ipaddress.IPv6Address,
)


def _member_class(target: BuildTarget) -> type | None:
    return runtime_class(strip_optional(target.type))


def _is_enum_member(target: BuildTarget) -> bool:
    cls = _member_class(target)
    return cls is not None and issubclass(cls, enum.Enum)


def _is_value_type_member(target: BuildTarget) -> bool:
    return _member_class(target) in VALUE_TYPES


def _is_string_member(target: BuildTarget) -> bool:
    return _member_class(target) is str


def _is_class_member(target: BuildTarget) -> bool:
    cls = _member_class(target)
    if cls is None or cls is str or cls in VALUE_TYPES or issubclass(cls, enum.Enum):
        return False
    # collections and mappings are left unordered
    return cls.__module__ not in ("builtins", "collections", "collections.abc", "typing")


def _named(expression: str, priority: int) -> ExecuteOrderRule:
    return ExecuteOrderRule(name=re.compile(expression, re.IGNORECASE), priority=priority)


# Correlated members are built before the members that read them: gender before names,
# names and domain before email, country before state and city, date of birth before age.
DEFAULT_EXECUTE_ORDER_RULES = (
    _named(g.GENDER, 9600),
    _named(g.FIRST_NAME, 9580),
    _named(g.MIDDLE_NAME, 9570),
    _named(g.LAST_NAME, 9560),
    _named(g.DOMAIN, 9550),
    _named(g.EMAIL, 9540),
    _named(g.COUNTRY, 9400),
    _named(g.STATE, 9390),
    _named(g.CITY, 9380),
    _named(g.POST_CODE, 9370),
    _named(g.TIME_ZONE, 9360),
    _named(g.DATE_OF_BIRTH, 9340),
    _named(g.AGE, 9320),
    PredicateExecuteOrderRule(_is_enum_member, priority=4000),
    PredicateExecuteOrderRule(_is_value_type_member, priority=3000),
    PredicateExecuteOrderRule(_is_string_member, priority=2000),
    PredicateExecuteOrderRule(_is_class_member, priority=1000),
)


def load_strategies(
    strategy_configs_by_instance_id: Mapping[str, BuildStrategyConfig] | None = None,
) -> tuple[list[ValueGenerator], list[TypeCreator]]:
    """
    Discover -> plan -> instantiate the value generators and type creators.

    Built-ins are instantiated by default unless a config disables them. Entrypoint
    strategies are instantiated only when a config binds to them. Every config must bind
    to a discovered generator or creator.
    """
    generator_classes = discover_strategy_classes(
        base=ValueGenerator,
        builtin_modules=BUILTIN_VALUE_GENERATOR_MODULES,
        entrypoint_group=VALUE_GENERATOR_ENTRYPOINT_GROUP,
    )
    creator_classes = discover_strategy_classes(
        base=TypeCreator,
        builtin_modules=BUILTIN_TYPE_CREATOR_MODULES,
        entrypoint_group=TYPE_CREATOR_ENTRYPOINT_GROUP,
    )
    validate_bound_configs(strategy_configs_by_instance_id, [*generator_classes, *creator_classes])

    generators = instantiate_plans(
        build_strategy_plans(
            strategy_classes=generator_classes,
            raw_configs_by_instance_id=strategy_configs_by_instance_id,
        )
    )
    creators = instantiate_plans(
        build_strategy_plans(
            strategy_classes=creator_classes,
            raw_configs_by_instance_id=strategy_configs_by_instance_id,
        )
    )
    return generators, creators


def default_compiler(
    strategy_configs_by_instance_id: Mapping[str, BuildStrategyConfig] | None = None,
) -> BuildConfigurationCompiler:
    """
    A compiler holding the default resolvers, the discovered generators and creators and
    the default execute order rules (as fallbacks). Add rules to it and compile.
    """
    generators, creators = load_strategies(strategy_configs_by_instance_id)

    compiler = (
        BuildConfigurationCompiler()
        .with_constructor_resolver(DefaultConstructorResolver())
        .with_property_resolver(DefaultPropertyResolver())
    )
    for generator in generators:
        compiler.add_value_generator(generator)
    for creator in creators:
        compiler.add_type_creator(creator)
    for rule in DEFAULT_EXECUTE_ORDER_RULES:
        compiler.add_execute_order_rule(rule, fallback=True)
    return compiler


def load_configuration(
    strategy_configs_by_instance_id: Mapping[str, BuildStrategyConfig] | None = None,
) -> BuildConfiguration:
    return default_compiler(strategy_configs_by_instance_id).compile()
