from __future__ import annotations

import datetime as dt
import ipaddress
import zoneinfo
from typing import Any, Literal

import pytest
from packaging.version import Version

from fixture_build_engine.internal import builtin_generators as g
from fixture_build_engine.internal.util.randomness import FAKER, seed_generators
from fixture_build_engine.model.history import BuildHistory, Capability, ParameterValues
from fixture_build_engine.services import load_strategies
from unit.helpers.models_helper import Color, Empty, Person, Profile
from unit.helpers.strategies_helper import FakeExecuteStrategy

# ==============================================================================
# Helpers (not tests)
# ==============================================================================


def _strategy_with(values: dict[str, Any], owner: type = Person) -> FakeExecuteStrategy:
    history = BuildHistory()
    params = ParameterValues(owner)
    params.update(values)
    history.push(params)
    return FakeExecuteStrategy(build_chain=history)


def _generate(generator: g.ValueGenerator, type_: Any, name: str | None = None, **kwargs: Any) -> Any:
    return generator.generate(type_, name, kwargs.get("strategy") or FakeExecuteStrategy())


_SEMANTIC_NAMES = [
    "city",
    "company",
    "country",
    "domain",
    "gender",
    "first_name",
    "middle_name",
    "last_name",
    "state",
    "ip_address",
    "email",
    "phone_number",
    "post_code",
    "street_address",
    "website_url",
    "version",
    "time_zone",
]


# ==============================================================================
# Priorities
# ==============================================================================


@pytest.mark.parametrize("reference_name", _SEMANTIC_NAMES)
def test_semantic_generators_outrank_the_string_generator(reference_name: str) -> None:
    generators, _ = load_strategies()
    history = BuildHistory()
    string_priority = next(x for x in generators if isinstance(x, g.StringValueGenerator)).priority

    semantic = [
        x
        for x in generators
        if isinstance(x, g.SemanticValueGenerator) and x.is_supported(str, reference_name, history)
    ]

    assert semantic, f"no semantic generator for {reference_name}"
    assert all(x.priority > string_priority for x in semantic)


def test_name_expression_generators_never_match_a_bare_type() -> None:
    assert not g.CityValueGenerator().is_supported(str, None, BuildHistory())
    assert g.StringValueGenerator().is_supported(str, None, BuildHistory())


def test_semantic_name_matching() -> None:
    assert g.CityValueGenerator().is_supported(str, "HomeTown", BuildHistory()) is False
    assert g.CityValueGenerator().is_supported(str, "home_town", BuildHistory())
    assert g.EmailValueGenerator().is_supported(str, "EmailAddress", BuildHistory())


# ==============================================================================
# Primitives
# ==============================================================================

_PRIMITIVE_CASES: list[dict[str, Any]] = [
    {"generator": g.BooleanValueGenerator(), "type": bool},
    {"generator": g.IntegerValueGenerator(), "type": int},
    {"generator": g.FloatValueGenerator(), "type": float},
    {"generator": g.StringValueGenerator(), "type": str},
    {"generator": g.BytesValueGenerator(), "type": bytes},
    {"generator": g.BytesValueGenerator(), "type": bytearray},
    {"generator": g.DateValueGenerator(), "type": dt.date},
    {"generator": g.DateTimeValueGenerator(), "type": dt.datetime},
    {"generator": g.TimeValueGenerator(), "type": dt.time},
    {"generator": g.TimeDeltaValueGenerator(), "type": dt.timedelta},
    {"generator": g.TimeZoneValueGenerator(), "type": zoneinfo.ZoneInfo},
    {"generator": g.IpAddressObjectValueGenerator(), "type": ipaddress.IPv4Address},
    {"generator": g.IpAddressObjectValueGenerator(), "type": ipaddress.IPv6Address},
    {"generator": g.VersionValueGenerator(), "type": Version},
]


@pytest.mark.parametrize(
    "case", [pytest.param(c, id=c["type"].__name__) for c in _PRIMITIVE_CASES]
)
def test_primitive_generators_return_the_exact_type(case: dict[str, Any]) -> None:
    values = [_generate(case["generator"], case["type"]) for _ in range(20)]
    assert all(type(v) is case["type"] for v in values)


def test_integer_generator_bounds() -> None:
    generator = g.IntegerValueGenerator(minimum=3, maximum=5)
    assert {_generate(generator, int) for _ in range(200)} == {3, 4, 5}


def test_string_generator_length() -> None:
    generator = g.StringValueGenerator(min_length=4, max_length=6)
    assert all(4 <= len(_generate(generator, str)) <= 6 for _ in range(50))


def test_enum_generator() -> None:
    generator = g.EnumValueGenerator()
    assert {_generate(generator, Color) for _ in range(200)} == set(Color)
    assert not generator.is_supported(Empty, None, BuildHistory())


def test_literal_generator() -> None:
    generator = g.LiteralValueGenerator()
    assert {_generate(generator, Literal["a", "b"]) for _ in range(100)} == {"a", "b"}
    assert not generator.is_supported(str, None, BuildHistory())


# ==============================================================================
# Relative generators
# ==============================================================================


def test_gender_generator_records_a_capability() -> None:
    strategy = _strategy_with({})

    gender = _generate(g.GenderValueGenerator(), str, "gender", strategy=strategy)

    assert gender in ("Male", "Female")
    assert strategy.build_chain.current.capability("gender") == Capability("gender", gender.lower())


@pytest.mark.parametrize(
    "values, capability, expected",
    [
        ({}, None, None),
        ({}, "female", "female"),
        ({"gender": "M"}, None, "male"),
        ({"sex": "Woman"}, None, "female"),
        ({"gender": "other"}, None, None),
    ],
)
def test_gender_of(values: dict[str, Any], capability: str | None, expected: str | None) -> None:
    strategy = _strategy_with(values)
    if capability is not None:
        strategy.build_chain.current.add_capability(Capability("gender", capability))

    assert g.gender_of(strategy.build_chain) == expected
    assert g.gender_of(BuildHistory()) is None


@pytest.mark.parametrize("name", ["first_name", "middle_name"])
def test_first_and_middle_names_follow_gender(name: str) -> None:
    generator = g.FirstNameValueGenerator() if name == "first_name" else g.MiddleNameValueGenerator()

    seed_generators(11)
    expected = FAKER.first_name_female()
    seed_generators(11)
    actual = _generate(generator, str, name, strategy=_strategy_with({"gender": "Female"}))

    assert actual == expected


def test_email_is_built_from_names_and_domain() -> None:
    strategy = _strategy_with({"first_name": "Ann", "last_name": "O'Neil", "domain": "example.org"})

    assert _generate(g.EmailValueGenerator(), str, "email", strategy=strategy) == "ann.oneil@example.org"


def test_email_without_names() -> None:
    email = _generate(g.EmailValueGenerator(), str, "email", strategy=_strategy_with({}))
    local, _, domain = email.partition("@")
    assert local and domain


def test_age_follows_date_of_birth() -> None:
    born = dt.date(1990, 6, 15)
    today = dt.date.today()
    expected = today.year - 1990 - ((today.month, today.day) < (6, 15))

    age = _generate(g.AgeValueGenerator(), int, "age", strategy=_strategy_with({"date_of_birth": born}))

    assert age == expected


def test_age_without_date_of_birth() -> None:
    assert 1 <= _generate(g.AgeValueGenerator(), int, "age", strategy=_strategy_with({})) <= 100


def test_date_of_birth_as_datetime() -> None:
    born = _generate(g.DateOfBirthValueGenerator(minimum_age=18, maximum_age=20), dt.datetime, "dob")
    assert type(born) is dt.datetime
    assert born.time() == dt.time.min


# ==============================================================================
# member_values / find_member
# ==============================================================================


def test_member_values_of_instances_and_mappings() -> None:
    profile = Profile()
    profile.handle = "ann"

    assert g.member_values(None) == {}
    assert g.member_values({"a": 1}) == {"a": 1}
    assert g.member_values(profile) == {"handle": "ann", "nickname": "unset", "score": 0, "tags": []}


def test_find_member_skips_none_values() -> None:
    assert g.find_member({"first_name": None, "given_name": "Ann"}, g.FIRST_NAME) == "Ann"
    assert g.find_member({"first_name": None}, g.FIRST_NAME) is None
