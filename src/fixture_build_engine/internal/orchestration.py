"""
The execute strategy: builds instances of arbitrary types against a compiled configuration.

Every requested value, whether a top level type, a collection element, a constructor
parameter or a property, goes through the same pipeline, first match wins:

    1. type mapping rules choose the build type
    2. creation rules
    3. type creators
    4. value generators
    5. composite construction: constructor, parameters, then properties

After a value is built, the post-build actions matching its target run.
"""

from __future__ import annotations

import logging
import typing
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Optional

from fixture_build_engine.internal.build_log import BuildLog
from fixture_build_engine.internal.properties import property_target
from fixture_build_engine.internal.util.typeforms import (
    NONE_TYPE,
    is_optional,
    is_union,
    runtime_class,
    strip_optional,
    type_name,
    union_members,
)
from fixture_build_engine.model.configuration import BuildConfiguration
from fixture_build_engine.model.errors import (
    ArgumentRequiredError,
    BuildEngineError,
    BuildError,
)
from fixture_build_engine.model.history import BuildHistory, ParameterValues
from fixture_build_engine.model.target import BuildTarget
from fixture_build_engine.model.types import (
    ConstructorDescriptor,
    ParameterDescriptor,
    PropertyDescriptor,
    describe,
)
from fixture_build_engine.rules import BaseCreationRule, execute_order_priority
from fixture_build_engine.strategies import TypeCreator, ValueGenerator


def collapse_union(type_: Any) -> Any:
    """
    Reduce a union of several types to its first member, keeping ``None`` if present.

    ``int | str`` builds an ``int``; ``int | str | None`` builds an ``int | None``.
    """
    if not is_union(type_):
        return type_
    members = [m for m in union_members(type_) if m is not NONE_TYPE]
    if len(members) < 2:
        return type_
    return Optional[members[0]] if is_optional(type_) else members[0]


class DefaultExecuteStrategy:
    """
    Performs ``create`` and ``populate`` for one build session.

    An execute strategy owns its build history and build log and must not be shared
    between concurrent builds. Create a new one per session; the configuration it runs
    against can be shared freely.
    """

    def __init__(
        self,
        configuration: BuildConfiguration,
        *,
        build_history: BuildHistory | None = None,
        build_log: BuildLog | None = None,
    ) -> None:
        if configuration is None:
            raise ArgumentRequiredError("configuration")
        self._configuration = configuration
        self._build_chain = build_history if build_history is not None else BuildHistory()
        self._log = build_log if build_log is not None else BuildLog()

    @property
    def configuration(self) -> BuildConfiguration:
        return self._configuration

    @property
    def build_chain(self) -> BuildHistory:
        return self._build_chain

    @property
    def log(self) -> BuildLog:
        return self._log

    # ------------------------------------------------------------------ #
    # Public operations
    # ------------------------------------------------------------------ #

    def create(self, type_: Any, *args: Any) -> Any:
        """
        Build a fully populated instance of ``type_``.

        With ``args``, creation rules, type creators and value generators are skipped and
        the arguments are passed to the constructor they fit.

        Raises:
            ArgumentRequiredError: if ``type_`` is None.
            MissingConstructorError: if ``args`` fit no constructor.
            BuildError: if nothing can build the type, or user code fails during the build.
        """
        if type_ is None:
            raise ArgumentRequiredError("type_")

        target = BuildTarget.for_type(type_)
        with self._attach_log():
            if args:
                build_type = self._resolve_build_type(type_)
                self._log.creating_type(build_type, self._build_chain.last)
                with self._log.nested():
                    instance = self._create_composite(target, build_type, args)
            else:
                instance = self._build(target)
            self._run_post_build_actions(instance, target)
            return instance

    def populate(self, instance: Any) -> Any:
        """
        Populate an existing instance.

        A collection or mapping is refilled by the first type creator that can populate
        it (tuples are immutable, so a new tuple is returned). Any other instance has its
        eligible properties overwritten; collection-typed properties receive a new
        collection.
        """
        if instance is None:
            raise ArgumentRequiredError("instance")

        with self._attach_log():
            self._log.populating(instance)
            return self._populate_existing(instance, type(instance), BuildTarget.for_type(type(instance)))

    # ------------------------------------------------------------------ #
    # Pipeline
    # ------------------------------------------------------------------ #

    @contextmanager
    def _attach_log(self) -> Iterator[None]:
        """
        Attach the build log text to BuildErrors leaving a public operation.
        """
        try:
            yield
        except BuildError as e:
            if not e.build_log:
                e.build_log = self._log.text
            raise

    def _resolve_build_type(self, type_: Any) -> Any:
        type_ = collapse_union(type_)
        inner = strip_optional(type_)
        mapped = self._configuration.build_type_for(inner)
        if mapped is not inner and mapped != inner:
            logging.debug(f"type {type_name(inner)} mapped to {type_name(mapped)}")
            return mapped
        return type_

    def _build(self, target: BuildTarget) -> Any:
        """
        Produce a value for a target without running its post-build actions.
        """
        reference_name = target.name if target.is_member else None
        if not target.is_member:
            self._log.creating_type(target.type, self._build_chain.last)

        with self._log.nested():
            rule = self._creation_rule_for(target)
            if rule is not None:
                self._log.using_strategy(rule)
                return self._guard(f"creation rule for {target}", target, rule.create, target, self)

            build_type = self._resolve_build_type(target.type)

            # creators never produce None, so they see the non-optional form
            creator = self._type_creator_for(strip_optional(build_type), reference_name)
            if creator is not None:
                self._log.using_strategy(creator)
                return self._guard(
                    f"{type(creator).__name__} for {target}",
                    target,
                    creator.create,
                    strip_optional(build_type),
                    reference_name,
                    self,
                )

            generator = self._value_generator_for(build_type, reference_name)
            if generator is not None:
                self._log.using_strategy(generator)
                return self._guard(
                    f"{type(generator).__name__} for {target}",
                    target,
                    generator.generate,
                    build_type,
                    reference_name,
                    self,
                )

            return self._create_composite(target, build_type, None)

    def _creation_rule_for(self, target: BuildTarget) -> BaseCreationRule | None:
        for rule in self._configuration.creation_rules:
            if rule.is_match(target, self._build_chain):
                logging.debug(f"creation rule {type(rule).__name__} matched {target}")
                return rule
        return None

    def _type_creator_for(self, type_: Any, reference_name: str | None) -> TypeCreator | None:
        for creator in self._configuration.type_creators:
            if creator.is_supported(type_, reference_name, self._build_chain):
                return creator
        return None

    def _value_generator_for(self, type_: Any, reference_name: str | None) -> ValueGenerator | None:
        for generator in self._configuration.value_generators:
            if generator.is_supported(type_, reference_name, self._build_chain):
                return generator
        return None

    # ------------------------------------------------------------------ #
    # Composite construction
    # ------------------------------------------------------------------ #

    def _create_composite(
        self, target: BuildTarget, build_type: Any, args: Sequence[Any] | None
    ) -> Any:
        inner = strip_optional(build_type)
        cls = runtime_class(inner)
        if cls is None or inner is typing.Any:
            raise BuildError(
                f"cannot build {type_name(inner)}: no creation rule, type creator, value "
                f"generator or constructor supports it",
                target_type=inner,
                reference_name=target.name,
                context=self._build_chain.last,
            )

        descriptor = describe(cls)
        if descriptor.is_abstract:
            raise BuildError(
                f"cannot build {type_name(cls)}: it is abstract and no type mapping rule maps it",
                target_type=cls,
                reference_name=target.name,
                context=self._build_chain.last,
            )

        resolver = self._configuration.constructor_resolver
        if args is not None:
            constructor = resolver.resolve(descriptor, args)
            self._log.using_constructor(constructor)
            supplied = dict(zip((p.name for p in constructor.parameters), args))
            instance = self._guard(
                f"constructor {descriptor.name}.{constructor.name}",
                target,
                constructor.invoke,
                list(args),
            )
        else:
            constructor = resolver.resolve(
                descriptor,
                None,
                is_buildable=lambda p: self._is_parameter_buildable(cls, p),
            )
            self._log.using_constructor(constructor)
            supplied = self._build_parameters(cls, constructor)
            instance = self._guard(
                f"constructor {descriptor.name}.{constructor.name}",
                target,
                constructor.invoke_named,
                supplied,
            )

        return self._populate_instance(instance, supplied)

    def _is_parameter_buildable(self, owner: type, param: ParameterDescriptor) -> bool:
        if not param.has_annotation:
            return False
        return self._can_build(BuildTarget.for_parameter(owner, param.name, param.annotation))

    def _can_build(self, target: BuildTarget) -> bool:
        if self._creation_rule_for(target) is not None:
            return True
        reference_name = target.name if target.is_member else None
        build_type = self._resolve_build_type(target.type)
        if self._type_creator_for(strip_optional(build_type), reference_name) is not None:
            return True
        if self._value_generator_for(build_type, reference_name) is not None:
            return True
        cls = runtime_class(strip_optional(build_type))
        if cls is None:
            return False
        return bool(describe(cls).constructors)

    def _build_parameters(self, owner: type, constructor: ConstructorDescriptor) -> dict[str, Any]:
        """
        Build a value for every annotated parameter, in execute order.

        A ``ParameterValues`` mapping stands in for the instance on the build history, so
        generators can read the parameters built so far.
        """
        params = [p for p in constructor.parameters if p.has_annotation]
        targets = {p.name: BuildTarget.for_parameter(owner, p.name, p.annotation) for p in params}
        rules = self._configuration.execute_order_rules
        ordered = sorted(params, key=lambda p: -execute_order_priority(rules, targets[p.name]))

        values = ParameterValues(owner)
        with self._build_chain.scope(values), self._log.nested():
            for param in ordered:
                target = targets[param.name]
                self._log.creating_parameter(param.name, param.annotation)
                value = self._build(target)
                values[param.name] = value
                self._run_post_build_actions(value, target)
        return dict(values)

    def _populate_existing(self, instance: Any, type_: Any, target: BuildTarget) -> Any:
        """
        Refill a value that already exists: through a type creator when one can populate
        it, otherwise through its properties.
        """
        for creator in self._configuration.type_creators:
            if creator.can_populate(instance, type_):
                self._log.using_strategy(creator)
                return self._guard(
                    f"{type(creator).__name__} populating {target}",
                    target,
                    creator.populate,
                    instance,
                    self,
                    type_,
                )
        return self._populate_instance(instance, None)

    def _populate_reference(self, instance: Any, prop: PropertyDescriptor, target: BuildTarget) -> None:
        current = self._guard(f"reading {target}", target, prop.get_value, instance)
        if current is None or self._build_chain.contains_instance(current):
            self._log.ignoring_property(prop.name, "read-only and empty or under construction")
            return

        self._log.creating_property(prop.name, prop.annotation)
        with self._log.nested():
            self._log.populating(current)
            self._populate_existing(current, strip_optional(prop.annotation), target)
        self._run_post_build_actions(current, target)

    def _populate_instance(self, instance: Any, constructor_args: dict[str, Any] | None) -> Any:
        configuration = self._configuration
        resolver = configuration.property_resolver
        owner = type(instance)

        with self._build_chain.scope(instance), self._log.nested():
            for prop in resolver.ordered_properties(configuration, owner):
                if resolver.is_ignored(configuration, instance, prop, constructor_args):
                    self._log.ignoring_property(prop.name, "ignore rule, self reference or constructor argument")
                    continue

                target = property_target(prop, owner)
                if not prop.writable:
                    self._populate_reference(instance, prop, target)
                    continue

                self._log.creating_property(prop.name, prop.annotation)
                value = self._build(target)
                self._guard(f"setting {target}", target, prop.set_value, instance, value)
                self._run_post_build_actions(value, target)

        return instance

    # ------------------------------------------------------------------ #
    # Post-build actions and error handling
    # ------------------------------------------------------------------ #

    def _run_post_build_actions(self, instance: Any, target: BuildTarget) -> None:
        for action in self._configuration.post_build_actions:
            if action.is_match(target, self._build_chain):
                self._log.post_build_action(action)
                self._guard(
                    f"post-build action {type(action).__name__} for {target}",
                    target,
                    action.execute,
                    instance,
                    target,
                    self._build_chain,
                )

    def _guard(self, description: str, target: BuildTarget, func: Callable[..., Any], *args: Any) -> Any:
        """
        Call user-supplied code, wrapping its failures in a BuildError.
        """
        try:
            return func(*args)
        except (BuildEngineError, RecursionError):
            raise
        except Exception as e:
            self._log.failed(f"{description}: {type(e).__name__}: {e}")
            raise BuildError(
                f"{description} failed: {type(e).__name__}: {e}",
                target_type=target.type,
                reference_name=target.name,
                context=self._build_chain.last,
                build_log=self._log.text,
                causes=(e,),
            ) from e


