"""
Rules that customize a build.

Every rule is validated when it is created; a malformed rule raises
:class:`RuleConfigurationError` (or :class:`ArgumentRequiredError` for a missing
argument) immediately, never at build time.

Rules match against a :class:`BuildTarget`, which names the type being built and,
for members, the property or constructor parameter and its declaring class.
"""

from __future__ import annotations

import inspect
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from typing_extensions import get_protocol_members, is_protocol

from fixture_build_engine.internal.util.typeforms import (
    runtime_class,
    strip_annotated,
    strip_optional,
    type_name,
)
from fixture_build_engine.model.errors import (
    ArgumentRequiredError,
    GenerationNotSupportedError,
    RuleConfigurationError,
)
from fixture_build_engine.model.target import BuildTarget, TargetKind

if TYPE_CHECKING:
    from fixture_build_engine.model.history import BuildHistory
    from fixture_build_engine.strategies import ExecuteStrategy

NameMatcher = str | re.Pattern[str]
TargetPredicate = Callable[[BuildTarget], bool]

_MISSING: Any = object()


def _compile_name(name: NameMatcher | None) -> re.Pattern[str] | None:
    if name is None or isinstance(name, re.Pattern):
        return name
    if not name:
        raise RuleConfigurationError("a member name cannot be empty")
    return re.compile(f"^{re.escape(name)}$")


def _name_matches(pattern: re.Pattern[str] | None, name: str | None) -> bool:
    if pattern is None:
        return True
    return name is not None and pattern.search(name) is not None


def _declaring_type_matches(expected: type | None, actual: type | None) -> bool:
    if expected is None:
        return True
    return actual is not None and issubclass(actual, expected)


def _same_type(expected: Any, actual: Any) -> bool:
    actual = strip_annotated(actual)
    return actual == expected or strip_optional(actual) == expected


# --------------------------------------------------------------------------- #
# Ignore rules
# --------------------------------------------------------------------------- #


class BaseIgnoreRule(ABC):
    """
    A property matched by an ignore rule is never assigned during a build.
    """

    @abstractmethod
    def is_match(self, target: BuildTarget) -> bool:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class IgnoreRule(BaseIgnoreRule):
    """
    Ignore a property by declaring type, by name, or both.

    ``name`` may be an exact name or a compiled regular expression. The declaring type
    matches subclasses, so a rule on a base class covers the property everywhere it is
    inherited.
    """

    declaring_type: type | None = None
    name: NameMatcher | None = None
    _pattern: re.Pattern[str] | None = field(init=False, repr=False, compare=False, default=None)

    def __post_init__(self) -> None:
        if self.declaring_type is None and self.name is None:
            raise RuleConfigurationError("an ignore rule needs a declaring type, a name, or both")
        object.__setattr__(self, "_pattern", _compile_name(self.name))

    def is_match(self, target: BuildTarget) -> bool:
        if target.kind is not TargetKind.PROPERTY:
            return False
        return _declaring_type_matches(self.declaring_type, target.declaring_type) and _name_matches(
            self._pattern, target.name
        )


@dataclass(frozen=True, slots=True)
class PredicateIgnoreRule(BaseIgnoreRule):
    predicate: TargetPredicate

    def __post_init__(self) -> None:
        if self.predicate is None:
            raise ArgumentRequiredError("predicate")

    def is_match(self, target: BuildTarget) -> bool:
        return target.kind is TargetKind.PROPERTY and bool(self.predicate(target))


# --------------------------------------------------------------------------- #
# Execute order rules
# --------------------------------------------------------------------------- #


class BaseExecuteOrderRule(ABC):
    """
    Members matched by a rule with a higher priority are built earlier. Members no rule
    matches have priority 0.
    """

    priority: int = 0

    @abstractmethod
    def is_match(self, target: BuildTarget) -> bool:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class ExecuteOrderRule(BaseExecuteOrderRule):
    """
    Order properties and constructor parameters by declaring type, name and member type.

    Any of the three may be omitted but not all of them.
    """

    declaring_type: type | None = None
    name: NameMatcher | None = None
    member_type: Any = None
    priority: int = 0
    _pattern: re.Pattern[str] | None = field(init=False, repr=False, compare=False, default=None)

    def __post_init__(self) -> None:
        if self.declaring_type is None and self.name is None and self.member_type is None:
            raise RuleConfigurationError(
                "an execute order rule needs a declaring type, a name or a member type"
            )
        object.__setattr__(self, "_pattern", _compile_name(self.name))

    def is_match(self, target: BuildTarget) -> bool:
        if not target.is_member:
            return False
        if self.member_type is not None and not _same_type(self.member_type, target.type):
            return False
        return _declaring_type_matches(self.declaring_type, target.declaring_type) and _name_matches(
            self._pattern, target.name
        )


@dataclass(frozen=True, slots=True)
class PredicateExecuteOrderRule(BaseExecuteOrderRule):
    predicate: TargetPredicate
    priority: int = 0

    def __post_init__(self) -> None:
        if self.predicate is None:
            raise ArgumentRequiredError("predicate")

    def is_match(self, target: BuildTarget) -> bool:
        return target.is_member and bool(self.predicate(target))


def execute_order_priority(rules: tuple[BaseExecuteOrderRule, ...], target: BuildTarget) -> int:
    for rule in rules:
        if rule.is_match(target):
            return rule.priority
    return 0


# --------------------------------------------------------------------------- #
# Type mapping rules
# --------------------------------------------------------------------------- #


def _conforms_to_protocol(target: type, protocol: type) -> bool:
    annotated = {name for klass in target.__mro__ for name in inspect.get_annotations(klass)}
    return all(
        hasattr(target, member) or member in annotated for member in get_protocol_members(protocol)
    )


@dataclass(frozen=True, slots=True)
class TypeMappingRule:
    """
    Build ``target`` whenever ``source`` is requested.

    ``target`` must be a class that can stand in for ``source``: a subclass, or, for a
    protocol source, a class that has every protocol member.
    """

    source: Any
    target: type

    def __post_init__(self) -> None:
        if self.source is None:
            raise ArgumentRequiredError("source")
        if self.target is None:
            raise ArgumentRequiredError("target")
        if self.source == self.target:
            raise RuleConfigurationError(
                f"cannot map {type_name(self.source)} to itself"
            )

        source_class = runtime_class(self.source)
        if source_class is None or not isinstance(self.target, type):
            raise RuleConfigurationError(
                f"cannot map {type_name(self.source)} to {type_name(self.target)}: both must be classes"
            )

        if is_protocol(source_class):
            substitutable = _conforms_to_protocol(self.target, source_class)
        else:
            substitutable = issubclass(self.target, source_class)
        if not substitutable:
            raise RuleConfigurationError(
                f"{type_name(self.target)} is not assignable to {type_name(self.source)}"
            )

    def is_match(self, type_: Any) -> bool:
        return strip_annotated(type_) == self.source


# --------------------------------------------------------------------------- #
# Creation rules
# --------------------------------------------------------------------------- #


class BaseCreationRule(ABC):
    """
    A full override of normal construction for a type, a property or a parameter.

    Subclasses implement ``is_match`` and ``create_value``; ``create`` refuses targets
    the rule does not match.
    """

    priority: int = 0

    @abstractmethod
    def is_match(self, target: BuildTarget, build_chain: BuildHistory) -> bool:
        raise NotImplementedError

    def create(self, target: BuildTarget, execute_strategy: ExecuteStrategy) -> Any:
        if target is None:
            raise ArgumentRequiredError("target")
        if execute_strategy is None:
            raise ArgumentRequiredError("execute_strategy")
        if not self.is_match(target, execute_strategy.build_chain):
            raise GenerationNotSupportedError(f"{type(self).__name__} does not match {target}")
        return self.create_value(target, execute_strategy)

    @abstractmethod
    def create_value(self, target: BuildTarget, execute_strategy: ExecuteStrategy) -> Any:
        raise NotImplementedError


ValueFactory = Callable[[BuildTarget, "ExecuteStrategy"], Any]


@dataclass(frozen=True, slots=True)
class CreationRule(BaseCreationRule):
    """
    Supply a fixed ``value`` or the result of ``factory(target, execute_strategy)``.

    Match criteria:
      - ``type_``: the requested (or member) type
      - ``declaring_type`` / ``name``: the owning class and member name
      - ``kind``: restrict to types, properties or parameters

    At least one criterion is required, and exactly one of ``value`` or ``factory``.
    """

    type_: Any = None
    declaring_type: type | None = None
    name: NameMatcher | None = None
    kind: TargetKind | None = None
    value: Any = _MISSING
    factory: ValueFactory | None = None
    priority: int = 0
    _pattern: re.Pattern[str] | None = field(init=False, repr=False, compare=False, default=None)

    def __post_init__(self) -> None:
        if self.type_ is None and self.declaring_type is None and self.name is None:
            raise RuleConfigurationError("a creation rule needs a type, a declaring type or a name")
        if (self.value is _MISSING) == (self.factory is None):
            raise RuleConfigurationError("a creation rule needs exactly one of value or factory")
        if self.kind is TargetKind.TYPE and (self.declaring_type is not None or self.name is not None):
            raise RuleConfigurationError("a type creation rule cannot match a member name or owner")
        object.__setattr__(self, "_pattern", _compile_name(self.name))

    @classmethod
    def for_property(
        cls, declaring_type: type, name: NameMatcher, *, value: Any = _MISSING,
        factory: ValueFactory | None = None, priority: int = 0,
    ) -> CreationRule:
        return cls(
            declaring_type=declaring_type, name=name, kind=TargetKind.PROPERTY,
            value=value, factory=factory, priority=priority,
        )

    @classmethod
    def for_parameter(
        cls, declaring_type: type, name: NameMatcher, *, value: Any = _MISSING,
        factory: ValueFactory | None = None, priority: int = 0,
    ) -> CreationRule:
        return cls(
            declaring_type=declaring_type, name=name, kind=TargetKind.PARAMETER,
            value=value, factory=factory, priority=priority,
        )

    def is_match(self, target: BuildTarget, build_chain: BuildHistory) -> bool:
        if target is None:
            raise ArgumentRequiredError("target")
        if self.kind is not None and target.kind is not self.kind:
            return False
        if self.type_ is not None and not _same_type(self.type_, target.type):
            return False
        if self.declaring_type is not None or self._pattern is not None:
            if not target.is_member:
                return False
            if not _declaring_type_matches(self.declaring_type, target.declaring_type):
                return False
            if not _name_matches(self._pattern, target.name):
                return False
        return True

    def create_value(self, target: BuildTarget, execute_strategy: ExecuteStrategy) -> Any:
        if self.factory is not None:
            return self.factory(target, execute_strategy)
        return self.value


@dataclass(frozen=True, slots=True)
class PredicateCreationRule(BaseCreationRule):
    predicate: Callable[[BuildTarget, "BuildHistory"], bool]
    factory: ValueFactory
    priority: int = 0

    def __post_init__(self) -> None:
        if self.predicate is None:
            raise ArgumentRequiredError("predicate")
        if self.factory is None:
            raise ArgumentRequiredError("factory")

    def is_match(self, target: BuildTarget, build_chain: BuildHistory) -> bool:
        return bool(self.predicate(target, build_chain))

    def create_value(self, target: BuildTarget, execute_strategy: ExecuteStrategy) -> Any:
        return self.factory(target, execute_strategy)


@dataclass(frozen=True, slots=True)
class CircularReferenceCreationRule(BaseCreationRule):
    """
    Reuse an instance already under construction instead of building a new one.

    Matches when an instance whose runtime type is exactly the requested class is in the
    build history; the innermost such instance is returned. Terminates self-referential
    graphs such as ``Node.parent: Node``.
    """

    priority: int = 0

    def is_match(self, target: BuildTarget, build_chain: BuildHistory) -> bool:
        if target is None:
            raise ArgumentRequiredError("target")
        if build_chain is None:
            raise ArgumentRequiredError("build_chain")
        cls = runtime_class(strip_optional(target.type))
        return cls is not None and bool(build_chain.ancestors_of_type(cls))

    def create_value(self, target: BuildTarget, execute_strategy: ExecuteStrategy) -> Any:
        cls = runtime_class(strip_optional(target.type))
        ancestor = execute_strategy.build_chain.ancestors_of_type(cls)[0]
        logging.debug(f"circular reference to {type_name(cls)} resolved to an ancestor instance")
        return ancestor


# --------------------------------------------------------------------------- #
# Post-build actions
# --------------------------------------------------------------------------- #


class PostBuildAction(ABC):
    """
    Runs after a value has been built for a matching target.

    For a TYPE target ``instance`` is the built instance; for a PROPERTY or PARAMETER
    target it is the value assigned to the member, and the owner is ``build_chain.last``.
    """

    priority: int = 0

    @abstractmethod
    def is_match(self, target: BuildTarget, build_chain: BuildHistory) -> bool:
        raise NotImplementedError

    @abstractmethod
    def execute(self, instance: Any, target: BuildTarget, build_chain: BuildHistory) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class CallbackPostBuildAction(PostBuildAction):
    """
    Call ``action(instance, target, build_chain)`` for targets of ``type_`` (and,
    optionally, only for a named member).
    """

    type_: Any
    action: Callable[[Any, BuildTarget, "BuildHistory"], None]
    name: NameMatcher | None = None
    priority: int = 0
    _pattern: re.Pattern[str] | None = field(init=False, repr=False, compare=False, default=None)

    def __post_init__(self) -> None:
        if self.type_ is None:
            raise ArgumentRequiredError("type_")
        if self.action is None:
            raise ArgumentRequiredError("action")
        object.__setattr__(self, "_pattern", _compile_name(self.name))

    def is_match(self, target: BuildTarget, build_chain: BuildHistory) -> bool:
        if not _same_type(self.type_, target.type):
            return False
        if self._pattern is None:
            return True
        return _name_matches(self._pattern, target.name)

    def execute(self, instance: Any, target: BuildTarget, build_chain: BuildHistory) -> None:
        self.action(instance, target, build_chain)
