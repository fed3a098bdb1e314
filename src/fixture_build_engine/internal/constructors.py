from __future__ import annotations

import logging
from typing import Any, Sequence

from fixture_build_engine.internal.util.typeforms import (
    accepts_none,
    is_instance_of,
    runtime_class,
    strip_optional,
)
from fixture_build_engine.model.errors import (
    ArgumentRequiredError,
    BuildError,
    MissingConstructorError,
)
from fixture_build_engine.model.types import (
    ConstructorDescriptor,
    ParameterDescriptor,
    TypeDescriptor,
)
from fixture_build_engine.resolvers import ConstructorResolver, ParameterPredicate


def _argument_fits(param: ParameterDescriptor, value: Any) -> bool:
    if not param.has_annotation:
        return True
    if value is None:
        return accepts_none(param.annotation)
    return is_instance_of(value, param.annotation)


def _is_copy_constructor(descriptor: TypeDescriptor, constructor: ConstructorDescriptor) -> bool:
    return any(
        runtime_class(strip_optional(p.annotation)) is descriptor.type
        for p in constructor.parameters
        if p.has_annotation and not p.has_default
    )


class DefaultConstructorResolver(ConstructorResolver):
    """
    With explicit arguments: the smallest constructor whose leading parameters accept the
    arguments in order and whose remaining parameters all have defaults.

    Without arguments: the constructor with the most parameters the engine can satisfy.
    A parameter with a default is always satisfiable. Ties go to the constructor declared
    first; constructors that take the type itself are never chosen.
    """

    def resolve(
        self,
        descriptor: TypeDescriptor,
        args: Sequence[Any] | None = None,
        *,
        is_buildable: ParameterPredicate | None = None,
    ) -> ConstructorDescriptor:
        if descriptor is None:
            raise ArgumentRequiredError("descriptor")

        if not descriptor.constructors:
            raise BuildError(
                f"cannot build {descriptor.name}: it has no accessible constructor",
                target_type=descriptor.type,
            )

        if args is not None:
            return self._resolve_for_args(descriptor, args)
        return self._resolve_most_parameters(descriptor, is_buildable)

    def _resolve_for_args(
        self, descriptor: TypeDescriptor, args: Sequence[Any]
    ) -> ConstructorDescriptor:
        candidates = sorted(
            (c for c in descriptor.constructors if len(c.parameters) >= len(args)),
            key=lambda c: len(c.parameters),
        )
        for constructor in candidates:
            leading = constructor.parameters[: len(args)]
            remaining = constructor.parameters[len(args):]
            if not all(p.has_default for p in remaining):
                continue
            if all(_argument_fits(p, v) for p, v in zip(leading, args)):
                logging.debug(f"constructor {descriptor.name}.{constructor.name} matches {len(args)} args")
                return constructor

        arg_types = ", ".join(type(a).__name__ for a in args)
        raise MissingConstructorError(
            f"missing member: no constructor of {descriptor.name} accepts ({arg_types})",
            target_type=descriptor.type,
        )

    def _resolve_most_parameters(
        self, descriptor: TypeDescriptor, is_buildable: ParameterPredicate | None
    ) -> ConstructorDescriptor:
        best: ConstructorDescriptor | None = None
        for constructor in descriptor.constructors:
            if _is_copy_constructor(descriptor, constructor):
                logging.debug(f"skipping copy constructor {descriptor.name}.{constructor.name}")
                continue
            if is_buildable is not None and not all(
                p.has_default or is_buildable(p) for p in constructor.parameters
            ):
                logging.debug(f"skipping constructor {descriptor.name}.{constructor.name}: unbuildable parameter")
                continue
            if best is None or len(constructor.parameters) > len(best.parameters):
                best = constructor

        if best is None:
            raise BuildError(
                f"cannot build {descriptor.name}: no constructor has parameters the engine can build",
                target_type=descriptor.type,
            )
        return best
