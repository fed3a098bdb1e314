from __future__ import annotations

import datetime as dt
import enum
import logging
import re
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from fixture_build_engine.internal.util.typeforms import runtime_class, strip_optional
from fixture_build_engine.model.errors import ArgumentRequiredError
from fixture_build_engine.model.target import BuildTarget
from fixture_build_engine.model.types import PropertyDescriptor, describe
from fixture_build_engine.resolvers import PropertyResolver
from fixture_build_engine.rules import execute_order_priority

if TYPE_CHECKING:
    from fixture_build_engine.model.configuration import BuildConfiguration


# immutable once created, so a read-only member of these types cannot be filled in place
_VALUE_TYPES = (
    str, bytes, bytearray, int, float, complex, Decimal, uuid.UUID,
    dt.date, dt.time, dt.timedelta, enum.Enum, tuple, frozenset,
)


def is_reference_property(prop: PropertyDescriptor) -> bool:
    """
    True for a read-only property whose value is an object the engine can populate in
    place (a composite or a mutable collection).
    """
    if not prop.readable or prop.writable or prop.is_static or not prop.has_annotation:
        return False
    cls = runtime_class(strip_optional(prop.annotation))
    return cls is not None and cls is not object and not issubclass(cls, _VALUE_TYPES)


def property_target(prop: PropertyDescriptor, owner: type | None = None) -> BuildTarget:
    return BuildTarget.for_property(owner or prop.declaring_type, prop.name, prop.annotation)


class DefaultPropertyResolver(PropertyResolver):
    """
    Eligible properties are public, annotated and not static, in declaration order (base
    classes first). Writable properties are assigned; read-only properties holding a
    composite or a mutable collection are populated in place.
    """

    def properties_of(self, type_: type, name_filter: str | None = None) -> tuple[PropertyDescriptor, ...]:
        if type_ is None:
            raise ArgumentRequiredError("type_")

        pattern = re.compile(name_filter) if name_filter else None
        return tuple(
            p
            for p in describe(type_).properties
            if p.has_annotation
            and not p.is_static
            and ((p.readable and p.writable) or is_reference_property(p))
            and (pattern is None or pattern.search(p.name))
        )

    def ordered_properties(
        self, configuration: BuildConfiguration, type_: type
    ) -> tuple[PropertyDescriptor, ...]:
        if configuration is None:
            raise ArgumentRequiredError("configuration")

        props = self.properties_of(type_)
        # sorted() is stable, so equal priorities keep declaration order
        return tuple(
            sorted(
                props,
                key=lambda p: -execute_order_priority(
                    configuration.execute_order_rules, property_target(p, type_)
                ),
            )
        )

    def is_ignored(
        self,
        configuration: BuildConfiguration,
        instance: Any,
        prop: PropertyDescriptor,
        constructor_args: dict[str, Any] | None = None,
    ) -> bool:
        if configuration is None:
            raise ArgumentRequiredError("configuration")
        if instance is None:
            raise ArgumentRequiredError("instance")
        if prop is None:
            raise ArgumentRequiredError("prop")

        target = property_target(prop, type(instance))
        if any(rule.is_match(target) for rule in configuration.ignore_rules):
            logging.debug(f"{target} matched an ignore rule")
            return True

        current = prop.get_value(instance)
        if current is instance:
            return True

        if constructor_args and prop.name in constructor_args:
            supplied = constructor_args[prop.name]
            if supplied is not None and current is supplied:
                return True
            try:
                return supplied is not None and bool(current == supplied)
            except Exception as e:
                # comparison operators of user types may raise
                logging.debug(f"unable to compare {target} with its constructor argument: {e}")
                return False

        return False
