from __future__ import annotations

# ==============================================================================
# BRANCH LEDGER: orchestration.py
# ==============================================================================
#
# Functions / classes (in file order):
#   F001 = collapse_union
#   C001 = DefaultExecuteStrategy
#
# ------------------------------------------------------------------------------
# ## collapse_union(type_)
# ------------------------------------------------------------------------------
# F001B0001: not a union -> returned unchanged
# F001B0002: union with fewer than two non-None members -> returned unchanged
# F001B0003: multi-member union without None -> first member
# F001B0004: multi-member union with None -> Optional[first member]
#
# ------------------------------------------------------------------------------
# ## DefaultExecuteStrategy.create(self, type_, *args)   (C001, M001)
# ------------------------------------------------------------------------------
# C001M001B0001: type_ is None -> raise ArgumentRequiredError
# C001M001B0002: args given -> constructor fitting args; creators/generators skipped
# C001M001B0003: no args -> _build pipeline
# C001M001B0004: BuildError escapes -> build_log attached
# C001M001B0005: post-build actions for the TYPE target run once
#
# ------------------------------------------------------------------------------
# ## DefaultExecuteStrategy.populate(self, instance)   (C001, M002)
# ------------------------------------------------------------------------------
# C001M002B0001: instance is None -> raise ArgumentRequiredError
# C001M002B0002: a type creator can populate the instance -> creator refills it
# C001M002B0003: no creator -> eligible properties overwritten; ignored properties untouched
#
# ------------------------------------------------------------------------------
# ## DefaultExecuteStrategy._build(self, target)   (C001, M003)
# ------------------------------------------------------------------------------
# C001M003B0001: creation rule matches -> rule value
# C001M003B0002: type creator supports the (non-optional) build type -> creator value
# C001M003B0003: value generator supports the build type -> generated value
# C001M003B0004: nothing matches -> composite construction
#
# ------------------------------------------------------------------------------
# ## DefaultExecuteStrategy._create_composite(...)   (C001, M004)
# ------------------------------------------------------------------------------
# C001M004B0001: no runtime class or Any -> raise BuildError
# C001M004B0002: abstract without mapping -> raise BuildError
# C001M004B0003: parameters built in execute order, constructor invoked by name
# C001M004B0004: constructor raises -> BuildError with the cause
#
# ------------------------------------------------------------------------------
# ## DefaultExecuteStrategy._populate_instance(...)   (C001, M005)
# ------------------------------------------------------------------------------
# C001M005B0001: property ignored (rule, self reference, equal constructor argument) -> skip
# C001M005B0002: property built, assigned, post-build actions run
# C001M005B0003: read-only reference property -> existing value populated in place
# C001M005B0004: read-only property empty or under construction -> skip
# C001M005B0005: setter raises -> BuildError, history unwound
#
# ------------------------------------------------------------------------------
# ## DefaultExecuteStrategy._guard(...)   (C001, M006)
# ------------------------------------------------------------------------------
# C001M006B0001: BuildEngineError -> re-raised unchanged
# C001M006B0002: any other Exception -> wrapped in BuildError (causes, context, log)
#
# ------------------------------------------------------------------------------
# LEDGER COMPLETENESS CHECKLIST
#   [x] all `if` / `elif` / `else` captured
#   [x] all `except` handlers captured
#   [x] all early `return`s / `raise`s captured
#   [x] all loop 0 vs >= 1 iterations captured
# ==============================================================================

import datetime as dt
import re
import typing
import uuid
from collections import OrderedDict, deque
from decimal import Decimal
from typing import Any, Optional

import pytest

from fixture_build_engine.internal.orchestration import DefaultExecuteStrategy, collapse_union
from fixture_build_engine.model.configuration import BuildConfiguration
from fixture_build_engine.model.errors import (
    ArgumentRequiredError,
    BuildError,
    MissingConstructorError,
)
from fixture_build_engine.rules import (
    CallbackPostBuildAction,
    CircularReferenceCreationRule,
    CreationRule,
    ExecuteOrderRule,
    IgnoreRule,
)
from fixture_build_engine.services import default_compiler, load_configuration
from fixture_build_engine.settings import COLLECTION_COUNTS
from unit.helpers.models_helper import (
    Account,
    Animal,
    Color,
    Department,
    Dog,
    Exploding,
    Fragile,
    FrozenPoint,
    Inventory,
    KeywordOnly,
    Pair,
    Person,
    Profile,
    ReadOnlyParent,
    SelfAware,
    Shape,
    Square,
    Unbuildable,
    Untyped,
    Zoo,
)
from unit.helpers.strategies_helper import (
    CountingValueGenerator,
    RecordingValueGenerator,
    SequencedListCreator,
)

_DEFAULT = load_configuration()


# ==============================================================================
# Helpers (not tests)
# ==============================================================================


def _strategy(configuration: BuildConfiguration = _DEFAULT) -> DefaultExecuteStrategy:
    return DefaultExecuteStrategy(configuration)


def _create(type_: Any, *args: Any, configuration: BuildConfiguration = _DEFAULT) -> Any:
    return _strategy(configuration).create(type_, *args)


@pytest.fixture
def small_collections() -> Any:
    with COLLECTION_COUNTS.override(min_count=2, max_count=2) as counts:
        yield counts


# ==============================================================================
# collapse_union
# ==============================================================================

_COLLAPSE_CASES: list[dict[str, Any]] = [
    {"desc": "not a union", "type": int, "expected": int, "covers": ["F001B0001"]},
    {"desc": "optional", "type": Optional[int], "expected": Optional[int], "covers": ["F001B0002"]},
    {"desc": "two members", "type": int | str, "expected": int, "covers": ["F001B0003"]},
    {"desc": "two members and None", "type": int | str | None, "expected": Optional[int], "covers": ["F001B0004"]},
]


@pytest.mark.parametrize(
    "case",
    [pytest.param(c, id=f"{c['covers'][0]}:{c['desc']}") for c in _COLLAPSE_CASES],
)
def test_collapse_union(case: dict[str, Any]) -> None:
    assert collapse_union(case["type"]) == case["expected"]


# ==============================================================================
# Argument validation
# ==============================================================================


def test_requires_configuration() -> None:
    with pytest.raises(ArgumentRequiredError):
        DefaultExecuteStrategy(None)


def test_create_and_populate_require_arguments() -> None:
    # covers: C001M001B0001, C001M002B0001
    with pytest.raises(ArgumentRequiredError):
        _strategy().create(None)
    with pytest.raises(ArgumentRequiredError):
        _strategy().populate(None)


# ==============================================================================
# Primitives and nullable primitives
# ==============================================================================

_PRIMITIVE_TYPES = [bool, int, float, Decimal, uuid.UUID, str, bytes, dt.date, dt.datetime, dt.time, dt.timedelta, Color]


@pytest.mark.parametrize("type_", _PRIMITIVE_TYPES, ids=lambda t: t.__name__)
def test_primitive_values_have_the_exact_type_and_vary(type_: type) -> None:
    # covers: C001M003B0003
    values = [_create(type_) for _ in range(50)]

    assert all(type(v) is type_ for v in values)
    assert len(set(values)) > 1


def test_booleans_take_both_values() -> None:
    assert {_create(bool) for _ in range(1000)} == {True, False}


@pytest.mark.parametrize("type_", [Optional[bool], bool | None])
def test_nullable_booleans_take_all_three_values(type_: Any) -> None:
    assert {_create(type_) for _ in range(1000)} == {None, True, False}


def test_nullable_int_is_sometimes_null() -> None:
    values = [_create(Optional[int]) for _ in range(1000)]
    assert None in values
    assert any(isinstance(v, int) for v in values)


def test_multi_type_union_builds_its_first_member() -> None:
    assert all(type(_create(int | str)) is int for _ in range(20))
    assert {type(_create(int | str | None)) for _ in range(1000)} == {int, type(None)}


# ==============================================================================
# Constructors
# ==============================================================================


def test_create_with_args_invokes_the_matching_constructor() -> None:
    # covers: C001M001B0002
    account = _create(Account, "ann", 12, True)

    assert account._constructed_by == "opened"
    assert (account.owner, account.balance, account.active) == ("ann", 12, True)

    primary = _create(Account, "bob", 3)
    assert primary._constructed_by == "__init__"
    assert (primary.owner, primary.balance) == ("bob", 3)


def test_create_with_args_skips_creation_rules_for_the_top_level_type() -> None:
    configuration = default_compiler().add_creation_rule(CreationRule(type_=Account, value=None)).compile()

    assert _create(Account, "ann", 1, configuration=configuration).owner == "ann"
    assert _create(Account, configuration=configuration) is None


def test_create_with_args_that_fit_no_constructor_raises_missing_member() -> None:
    # covers: C001M001B0004
    with pytest.raises(MissingConstructorError, match="missing member") as excinfo:
        _create(Account, 5, "ann")

    assert "Creating" in excinfo.value.build_log


def test_create_without_args_uses_the_constructor_with_most_parameters() -> None:
    # covers: C001M004B0003
    account = _create(Account)

    assert account._constructed_by == "opened"
    assert isinstance(account.owner, str) and isinstance(account.active, bool)


def test_keyword_only_parameters_are_built() -> None:
    built = _create(KeywordOnly)
    assert isinstance(built.name, str) and isinstance(built.count, int)


def test_constructor_parameters_follow_execute_order() -> None:
    recorder = RecordingValueGenerator()
    configuration = default_compiler().add_value_generator(recorder).compile()

    person = _create(Person, configuration=configuration)

    assert recorder.calls == ["gender", "first_name", "last_name", "email", "city", "company", "nickname"]
    assert person.gender == "gender-1"
    assert person.nickname == "nickname-7"


def test_parameter_values_correlate() -> None:
    for _ in range(20):
        person = _create(Person)
        today = dt.date.today()
        born = person.date_of_birth

        assert person.age == today.year - born.year - ((today.month, today.day) < (born.month, born.day))
        expected_local = re.sub(r"[^a-z0-9._-]", "", f"{person.first_name}.{person.last_name}".lower())
        assert person.email.split("@")[0] == expected_local
        assert person.gender in ("Male", "Female")


# ==============================================================================
# Population
# ==============================================================================


def test_execute_order_rules_decide_population_order() -> None:
    for first, second in (("alpha", "beta"), ("beta", "alpha")):
        recorder = RecordingValueGenerator()
        configuration = (
            default_compiler()
            .add_value_generator(recorder)
            .add_execute_order_rule(ExecuteOrderRule(Pair, first, priority=20))
            .add_execute_order_rule(ExecuteOrderRule(Pair, second, priority=10))
            .compile()
        )

        _create(Pair, configuration=configuration)

        assert recorder.calls == [first, second]


def test_ignored_property_is_never_assigned() -> None:
    # covers: C001M005B0001, C001M002B0003
    configuration = default_compiler().add_ignore_rule(IgnoreRule(Profile, "nickname")).compile()

    created = _create(Profile, configuration=configuration)
    assert created.nickname == "unset"
    assert created.handle != ""

    existing = Profile()
    _strategy(configuration).populate(existing)
    assert existing.nickname == "unset"
    assert existing.handle != ""


def test_populate_twice_overwrites(small_collections: Any) -> None:
    configuration = default_compiler().add_value_generator(CountingValueGenerator()).compile()
    strategy = _strategy(configuration)
    profile = Profile()

    strategy.populate(profile)
    first_score, first_tags = profile.score, profile.tags
    strategy.populate(profile)

    assert profile.score > first_score
    assert len(profile.tags) == 2
    assert profile.tags is not first_tags


def test_populate_returns_the_same_instance() -> None:
    profile = Profile()
    assert _strategy().populate(profile) is profile


def test_populate_frozen_instance_leaves_it_unchanged() -> None:
    point = FrozenPoint(1, 2)
    assert _strategy().populate(point) == FrozenPoint(1, 2)


def test_property_holding_the_instance_itself_is_skipped() -> None:
    aware = _create(SelfAware)
    assert aware.me is aware


# ==============================================================================
# Type creators
# ==============================================================================


def test_collections_and_mappings(small_collections: Any) -> None:
    # covers: C001M003B0002
    inventory = _create(Inventory)

    assert type(inventory.tags) is list and len(inventory.tags) == 2
    assert type(inventory.scores) is dict and len(inventory.scores) <= 2
    assert type(inventory.coords) is tuple and [type(c) for c in inventory.coords] == [int, int]
    assert 1 <= len(inventory.readings) <= 2 and all(type(r) is float for r in inventory.readings)
    assert type(inventory.labels) is frozenset
    assert type(inventory.unique) is set
    assert type(inventory.queue) is deque and len(inventory.queue) == 2
    assert type(inventory.lookup) is dict
    assert type(inventory.sequence) is list
    assert type(inventory.ordered) is OrderedDict


def test_optional_collections_reach_the_creators(small_collections: Any) -> None:
    assert all(type(_create(Optional[list[int]])) is list for _ in range(50))


def test_custom_creator_sequences_children() -> None:
    configuration = default_compiler().add_type_creator(SequencedListCreator()).compile()

    with COLLECTION_COUNTS.override(min_count=4, max_count=4):
        assert _create(list[int], configuration=configuration) == [1, 2, 3, 4]


# ==============================================================================
# Type mapping
# ==============================================================================


def test_mapped_abstract_types_build_the_exact_target() -> None:
    configuration = default_compiler().map_type(Animal, Dog).map_type(Shape, Square).compile()

    assert type(_create(Animal, configuration=configuration)) is Dog
    zoo = _create(Zoo, configuration=configuration)
    assert type(zoo.keeper) is Dog
    assert type(zoo.enclosure) is Square


@pytest.mark.parametrize("type_", [Animal, Shape], ids=["abc", "protocol"])
def test_unmapped_abstract_type_fails(type_: type) -> None:
    # covers: C001M004B0002
    with pytest.raises(BuildError, match="abstract") as excinfo:
        _create(type_)
    assert excinfo.value.target_type is type_


def test_unbuildable_types_fail() -> None:
    # covers: C001M004B0001
    with pytest.raises(BuildError):
        _create(typing.Any)
    with pytest.raises(BuildError, match="no constructor has parameters"):
        _create(Unbuildable)
    with pytest.raises(BuildError):
        _create(Zoo)


# ==============================================================================
# Creation rules and post-build actions
# ==============================================================================


def test_creation_rules() -> None:
    # covers: C001M003B0001
    configuration = (
        default_compiler()
        .add_creation_rule(CreationRule.for_parameter(Person, "city", value="Springfield"))
        .add_creation_rule(CreationRule(type_=int, value=7))
        .compile()
    )

    person = _create(Person, configuration=configuration)

    assert person.city == "Springfield"
    assert person.age == 7
    assert _create(int, configuration=configuration) == 7


def test_creation_rule_factory_sees_the_target_and_strategy() -> None:
    seen: list[Any] = []

    def factory(target: Any, strategy: Any) -> str:
        seen.append((target.name, strategy.build_chain.depth))
        return "x"

    configuration = default_compiler().add_creation_rule(CreationRule.for_property(Profile, "handle", factory=factory)).compile()

    assert _create(Profile, configuration=configuration).handle == "x"
    assert seen == [("handle", 1)]


def test_post_build_actions_run_for_types_and_members() -> None:
    # covers: C001M001B0005, C001M005B0002
    events: list[Any] = []
    configuration = (
        default_compiler()
        .add_post_build_action(CallbackPostBuildAction(Profile, lambda i, t, c: events.append(("type", type(i)))))
        .add_post_build_action(
            CallbackPostBuildAction(str, lambda v, t, c: events.append(("member", t.name, type(c.last))), name="handle")
        )
        .compile()
    )

    _create(Profile, configuration=configuration)

    assert events == [("member", "handle", Profile), ("type", Profile)]


def test_circular_reference_rule_reuses_the_ancestor() -> None:
    configuration = default_compiler().add_creation_rule(CircularReferenceCreationRule()).compile()

    department = _create(Department, configuration=configuration)

    assert department.head.department is department


# ==============================================================================
# Failures
# ==============================================================================


def test_constructor_failure_is_wrapped_with_cause_and_log() -> None:
    # covers: C001M004B0004, C001M006B0002
    strategy = _strategy()

    with pytest.raises(BuildError) as excinfo:
        strategy.create(Exploding)

    error = excinfo.value
    assert isinstance(error.causes[0], RuntimeError)
    assert "boom" in str(error)
    assert "Creating" in error.build_log
    assert strategy.build_chain.depth == 0


def test_post_build_action_failure_is_wrapped() -> None:
    def fail(*_: Any) -> None:
        raise ValueError("bad action")

    configuration = default_compiler().add_post_build_action(CallbackPostBuildAction(Profile, fail)).compile()

    with pytest.raises(BuildError, match="bad action") as excinfo:
        _create(Profile, configuration=configuration)
    assert isinstance(excinfo.value.causes[0], ValueError)


def test_engine_errors_pass_through_unwrapped() -> None:
    # covers: C001M006B0001
    def nested(target: Any, strategy: Any) -> Any:
        return strategy.create(Animal)

    configuration = default_compiler().add_creation_rule(CreationRule.for_property(Profile, "handle", factory=nested)).compile()

    with pytest.raises(BuildError, match="abstract") as excinfo:
        _create(Profile, configuration=configuration)
    assert excinfo.value.causes == ()


def test_history_is_empty_and_log_recorded_after_a_build() -> None:
    strategy = _strategy()
    strategy.create(Profile)

    assert strategy.build_chain.depth == 0
    assert strategy.log.text.startswith("Creating unit.helpers.models_helper.Profile")
    assert strategy.configuration is _DEFAULT


def test_property_setter_failure_unwinds_the_history() -> None:
    # covers: C001M005B0005
    strategy = _strategy()

    with pytest.raises(BuildError, match="read only in practice") as excinfo:
        strategy.create(Fragile)

    assert isinstance(excinfo.value.causes[0], ValueError)
    assert excinfo.value.reference_name == "broken"
    assert strategy.build_chain.depth == 0

    with pytest.raises(BuildError):
        strategy.populate(Fragile())
    assert strategy.build_chain.depth == 0


# ==============================================================================
# Unannotated and read-only properties
# ==============================================================================


def test_unannotated_property_is_never_assigned() -> None:
    assert _create(Untyped).value == "unset"
    assert _strategy().populate(Untyped()).value == "unset"


def test_read_only_reference_properties_are_populated_in_place(small_collections: Any) -> None:
    # covers: C001M005B0003
    parent = ReadOnlyParent()
    person, tags = parent.person, parent.tags

    _strategy().populate(parent)

    assert parent.person is person
    assert isinstance(person.first_name, str) and person.first_name != ""
    assert parent.tags is tags and len(tags) == 2
    assert parent.title == "fixed"

    created = _create(ReadOnlyParent)
    assert created.person.last_name != ""


def test_read_only_reference_runs_post_build_actions() -> None:
    seen: list[Any] = []
    configuration = (
        default_compiler()
        .add_post_build_action(CallbackPostBuildAction(Person, lambda v, t, c: seen.append((v, t.name, c.last))))
        .compile()
    )

    parent = _create(ReadOnlyParent, configuration=configuration)

    assert seen == [(parent.person, "person", parent)]


def test_read_only_reference_without_a_value_is_skipped() -> None:
    # covers: C001M005B0004
    parent = ReadOnlyParent()
    parent._person = None

    _strategy().populate(parent)

    assert parent.person is None


# ==============================================================================
# Populating collections
# ==============================================================================


def test_populate_refills_collections_through_type_creators(small_collections: Any) -> None:
    # covers: C001M002B0002
    numbers = [1, 2, 3]
    mapping = {"a": 1.5}

    assert _strategy().populate(numbers) is numbers
    assert len(numbers) == 2 and all(type(n) is int for n in numbers)

    assert _strategy().populate(mapping) is mapping
    assert 1 <= len(mapping) <= 2
    assert all(type(k) is str and type(v) is float for k, v in mapping.items())

    refilled = _strategy().populate((1, "x"))
    assert [type(v) for v in refilled] == [int, str]
