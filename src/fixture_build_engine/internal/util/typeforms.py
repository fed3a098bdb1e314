from __future__ import annotations

import inspect
import types
import typing
from typing import Any, Annotated, Union

from typing_extensions import is_protocol

NONE_TYPE: type = type(None)


def strip_annotated(type_: Any) -> Any:
    """
    Drop ``Annotated[...]`` metadata, returning the underlying type form.
    """
    while typing.get_origin(type_) is Annotated:
        type_ = typing.get_args(type_)[0]
    return type_


def is_union(type_: Any) -> bool:
    origin = typing.get_origin(strip_annotated(type_))
    return origin is Union or origin is types.UnionType


def union_members(type_: Any) -> tuple[Any, ...]:
    type_ = strip_annotated(type_)
    if not is_union(type_):
        return (type_,)
    return typing.get_args(type_)


def is_optional(type_: Any) -> bool:
    """
    True when the type form is a union that admits ``None`` (``X | None``, ``Optional[X]``).
    """
    return is_union(type_) and NONE_TYPE in union_members(type_)


def strip_optional(type_: Any) -> Any:
    """
    Remove ``None`` from a union.

    ``int | None`` becomes ``int``; ``int | str | None`` becomes ``int | str``; anything
    else is returned unchanged (minus ``Annotated`` metadata).
    """
    type_ = strip_annotated(type_)
    if not is_optional(type_):
        return type_
    members = tuple(m for m in union_members(type_) if m is not NONE_TYPE)
    if len(members) == 1:
        return members[0]
    return Union[members]


def runtime_class(type_: Any) -> type | None:
    """
    Return the class backing a type form: ``list[int]`` -> ``list``, ``Person`` -> ``Person``.

    Returns None for forms with no single backing class (unions, ``Any``, type variables,
    unresolved string annotations).
    """
    type_ = strip_annotated(type_)
    if type_ is Any:
        # a class itself on 3.11+
        return None
    if isinstance(type_, type) and not isinstance(type_, types.GenericAlias):
        return type_
    origin = typing.get_origin(type_)
    if isinstance(origin, type):
        return origin
    return None


def type_arguments(type_: Any) -> tuple[Any, ...]:
    return typing.get_args(strip_annotated(type_))


def is_abstract_type(type_: Any) -> bool:
    cls = runtime_class(type_)
    if cls is None:
        return False
    return inspect.isabstract(cls) or is_protocol(cls)


def is_instance_of(value: Any, type_: Any) -> bool:
    """
    Runtime check of a value against a type form.

    Generic aliases are checked against their origin only; ``Any``, type variables and
    unresolved annotations accept everything.
    """
    type_ = strip_annotated(type_)
    if type_ is Any or type_ is inspect.Parameter.empty:
        return True
    if type_ is None or type_ is NONE_TYPE:
        return value is None
    if is_union(type_):
        return any(is_instance_of(value, m) for m in union_members(type_))
    cls = runtime_class(type_)
    if cls is None:
        return True
    if is_protocol(cls) and not getattr(cls, "_is_runtime_protocol", False):
        return True
    return isinstance(value, cls)


def accepts_none(type_: Any) -> bool:
    type_ = strip_annotated(type_)
    if type_ is Any or type_ is inspect.Parameter.empty:
        return True
    return is_optional(type_) or type_ is None or type_ is NONE_TYPE


def type_name(type_: Any) -> str:
    type_ = strip_annotated(type_)
    if isinstance(type_, type) and not isinstance(type_, types.GenericAlias):
        return f"{type_.__module__}.{type_.__qualname__}"
    return repr(type_)
