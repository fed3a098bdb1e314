"""
Type, constructor and property descriptors.

A descriptor is derived once per class by :func:`describe` and cached for the life of the
process. Everything the engine needs to know about a class (how to construct it and which
members it can populate) is read from the descriptor rather than by introspecting the class
at each step of a build.

Constructors:
    - the class itself (``__init__``) is the primary constructor
    - classmethods marked with :func:`alternate_constructor` are additional constructors
    - abstract classes and protocols have no constructors

Properties:
    - annotated class attributes (dataclass fields included) and ``property`` objects
    - walked base class first, in declaration order; redeclaring a name in a subclass
      keeps the original position
    - names starting with an underscore are not public and never described
"""

from __future__ import annotations

import dataclasses
import functools
import inspect
import logging
import typing
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Mapping, Sequence

from fixture_build_engine.internal.util.typeforms import is_abstract_type, strip_annotated
from fixture_build_engine.model.errors import ArgumentRequiredError

EMPTY: Any = inspect.Parameter.empty

_CONSTRUCTOR_MARKER = "__fixture_alternate_constructor__"


def alternate_constructor(func: Callable[..., Any] | classmethod) -> classmethod:
    """
    Mark a classmethod as an additional constructor the engine may select.

    May be stacked on top of ``@classmethod`` or used on its own, in which case the
    function is wrapped into a classmethod.
    """
    target = func.__func__ if isinstance(func, classmethod) else func
    setattr(target, _CONSTRUCTOR_MARKER, True)
    return func if isinstance(func, classmethod) else classmethod(func)


@dataclass(frozen=True, slots=True)
class ParameterDescriptor:
    name: str
    annotation: Any = EMPTY
    kind: inspect._ParameterKind = inspect.Parameter.POSITIONAL_OR_KEYWORD
    default: Any = EMPTY

    @property
    def has_default(self) -> bool:
        return self.default is not EMPTY

    @property
    def has_annotation(self) -> bool:
        return self.annotation is not EMPTY

    @property
    def is_keyword_only(self) -> bool:
        return self.kind is inspect.Parameter.KEYWORD_ONLY


@dataclass(frozen=True, slots=True)
class ConstructorDescriptor:
    """
    A way of constructing instances of ``declaring_type``.

    ``factory`` is the class itself for the primary constructor, or the bound classmethod
    for an alternate constructor.
    """

    name: str
    declaring_type: type
    factory: Callable[..., Any]
    parameters: tuple[ParameterDescriptor, ...]

    @property
    def is_primary(self) -> bool:
        return self.name == "__init__"

    def invoke(self, values: Sequence[Any]) -> Any:
        """
        Call the constructor with ``values`` bound to the leading parameters in order.

        Parameters beyond ``len(values)`` keep their defaults.
        """
        if len(values) > len(self.parameters):
            raise ValueError(
                f"{self.declaring_type.__qualname__}.{self.name} accepts {len(self.parameters)} "
                f"arguments, got {len(values)}"
            )
        positional: list[Any] = []
        keywords: dict[str, Any] = {}
        for param, value in zip(self.parameters, values):
            if param.is_keyword_only:
                keywords[param.name] = value
            else:
                positional.append(value)
        return self.factory(*positional, **keywords)

    def invoke_named(self, values: Mapping[str, Any]) -> Any:
        """
        Call the constructor with values bound by parameter name.

        Parameters missing from ``values`` keep their defaults. Positional-only parameters
        are passed positionally up to the first one missing.
        """
        positional: list[Any] = []
        keywords: dict[str, Any] = {}
        for param in self.parameters:
            if param.name not in values:
                continue
            if param.kind is inspect.Parameter.POSITIONAL_ONLY:
                if len(positional) < self.parameters.index(param):
                    raise ValueError(
                        f"{self.declaring_type.__qualname__}.{self.name}: positional-only "
                        f"parameter {param.name} follows an unbound parameter"
                    )
                positional.append(values[param.name])
            else:
                keywords[param.name] = values[param.name]
        return self.factory(*positional, **keywords)


@dataclass(frozen=True, slots=True)
class PropertyDescriptor:
    name: str
    annotation: Any
    declaring_type: type
    readable: bool = True
    writable: bool = True
    is_static: bool = False

    @property
    def has_annotation(self) -> bool:
        return self.annotation is not EMPTY

    def get_value(self, instance: Any) -> Any:
        return getattr(instance, self.name, None)

    def set_value(self, instance: Any, value: Any) -> None:
        setattr(instance, self.name, value)


@dataclass(frozen=True, slots=True)
class TypeDescriptor:
    type: type
    constructors: tuple[ConstructorDescriptor, ...]
    properties: tuple[PropertyDescriptor, ...]
    is_abstract: bool = False

    @property
    def name(self) -> str:
        return self.type.__qualname__

    def property_named(self, name: str) -> PropertyDescriptor | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None


# --------------------------------------------------------------------------- #
# Introspection helpers
# --------------------------------------------------------------------------- #


def _safe_type_hints(obj: Any) -> dict[str, Any]:
    try:
        return typing.get_type_hints(obj, include_extras=True)
    except (NameError, TypeError, AttributeError) as e:
        logging.debug(f"unable to resolve annotations of {obj!r}: {type(e).__name__}: {e}")
        return {}


def _own_annotations(klass: type) -> dict[str, Any]:
    try:
        return dict(inspect.get_annotations(klass))
    except (NameError, TypeError):
        return {}


def _is_class_var(annotation: Any) -> bool:
    if isinstance(annotation, str):
        return annotation.startswith(("ClassVar", "typing.ClassVar"))
    return typing.get_origin(strip_annotated(annotation)) is ClassVar


def _is_frozen_dataclass(cls: type) -> bool:
    if not dataclasses.is_dataclass(cls):
        return False
    params = getattr(cls, "__dataclass_params__", None)
    return bool(params is not None and params.frozen)


def _describe_parameters(
    signature: inspect.Signature, hints: dict[str, Any], fallback_hints: dict[str, Any]
) -> tuple[ParameterDescriptor, ...]:
    out: list[ParameterDescriptor] = []
    for p in signature.parameters.values():
        if p.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        annotation = hints.get(p.name, fallback_hints.get(p.name, p.annotation))
        if isinstance(annotation, str):
            # unresolved forward reference
            annotation = EMPTY
        out.append(
            ParameterDescriptor(
                name=p.name, annotation=annotation, kind=p.kind, default=p.default
            )
        )
    return tuple(out)


def _primary_constructor(
    cls: type, class_hints: dict[str, Any]
) -> ConstructorDescriptor | None:
    try:
        signature = inspect.signature(cls)
    except (TypeError, ValueError):
        # builtins without an introspectable signature
        return None
    init = cls.__init__
    init_hints = _safe_type_hints(init) if inspect.isfunction(init) else {}
    return ConstructorDescriptor(
        name="__init__",
        declaring_type=cls,
        factory=cls,
        parameters=_describe_parameters(signature, init_hints, class_hints),
    )


def _alternate_constructors(cls: type) -> list[ConstructorDescriptor]:
    by_name: dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        for attr_name, raw in vars(klass).items():
            if not isinstance(raw, classmethod):
                continue
            if getattr(raw.__func__, _CONSTRUCTOR_MARKER, False):
                by_name[attr_name] = raw.__func__

    out: list[ConstructorDescriptor] = []
    for attr_name, func in by_name.items():
        bound = getattr(cls, attr_name)
        out.append(
            ConstructorDescriptor(
                name=attr_name,
                declaring_type=cls,
                factory=bound,
                parameters=_describe_parameters(
                    inspect.signature(bound), _safe_type_hints(func), {}
                ),
            )
        )
    return out


def _describe_properties(cls: type, class_hints: dict[str, Any]) -> tuple[PropertyDescriptor, ...]:
    frozen = _is_frozen_dataclass(cls)
    by_name: dict[str, PropertyDescriptor] = {}

    for klass in reversed(cls.__mro__):
        if klass is object:
            continue

        for attr_name, raw_annotation in _own_annotations(klass).items():
            if attr_name.startswith("_"):
                continue
            annotation = class_hints.get(attr_name, raw_annotation)
            if _is_class_var(annotation):
                by_name[attr_name] = PropertyDescriptor(
                    name=attr_name,
                    annotation=annotation,
                    declaring_type=klass,
                    is_static=True,
                )
                continue
            if isinstance(annotation, str):
                logging.debug(f"skipping unresolved annotation {klass.__qualname__}.{attr_name}")
                continue
            by_name[attr_name] = PropertyDescriptor(
                name=attr_name,
                annotation=annotation,
                declaring_type=klass,
                readable=True,
                writable=not frozen,
            )

        for attr_name, raw in vars(klass).items():
            if attr_name.startswith("_") or not isinstance(raw, property):
                continue
            annotation: Any = EMPTY
            if raw.fget is not None:
                annotation = _safe_type_hints(raw.fget).get("return", EMPTY)
            if annotation is EMPTY and raw.fset is not None:
                setter_hints = _safe_type_hints(raw.fset)
                setter_hints.pop("return", None)
                annotation = next(iter(setter_hints.values()), EMPTY)
            by_name[attr_name] = PropertyDescriptor(
                name=attr_name,
                annotation=annotation,
                declaring_type=klass,
                readable=raw.fget is not None,
                writable=raw.fset is not None,
            )

    return tuple(by_name.values())


@functools.lru_cache(maxsize=None)
def describe(type_: type) -> TypeDescriptor:
    """
    Build (or fetch from cache) the descriptor of a class.
    """
    if type_ is None:
        raise ArgumentRequiredError("type_")
    if not isinstance(type_, type):
        raise TypeError(f"describe() expects a class, got {type_!r}")

    class_hints = _safe_type_hints(type_)
    abstract = is_abstract_type(type_)

    constructors: list[ConstructorDescriptor] = []
    if not abstract:
        primary = _primary_constructor(type_, class_hints)
        if primary is not None:
            constructors.append(primary)
        constructors.extend(_alternate_constructors(type_))

    return TypeDescriptor(
        type=type_,
        constructors=tuple(constructors),
        properties=_describe_properties(type_, class_hints),
        is_abstract=abstract,
    )
