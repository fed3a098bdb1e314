"""
Built-in value generators.

Every concrete generator defined in this module is discovered and instantiated by
:func:`fixture_build_engine.services.load_configuration`.

Semantic generators match a type and a case-insensitive member name pattern and carry
priority 1000, so they always win over the generic generator for the same type. The
generic :class:`StringValueGenerator` has the lowest priority of all.
"""

from __future__ import annotations

import datetime as dt
import enum
import functools
import ipaddress
import re
import typing
import uuid
import zoneinfo
from abc import ABC
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, ClassVar

from packaging.version import Version

from fixture_build_engine.internal.util.randomness import FAKER, RANDOM
from fixture_build_engine.model.history import Capability
from fixture_build_engine.model.types import describe
from fixture_build_engine.strategies import ValueGenerator

if TYPE_CHECKING:
    from fixture_build_engine.model.history import BuildHistory

SEMANTIC_PRIORITY = 1000
PRIMITIVE_PRIORITY = 500

GENDER_CAPABILITY = "gender"

FIRST_NAME = r"^(given|first|fore)_?name$"
MIDDLE_NAME = r"^middle_?name$"
LAST_NAME = r"^(surname|(last|family)_?name)$"
GENDER = r"^(gender|sex)$"
CITY = r"(^|_)(city|town)$"
COMPANY = r"^(company(_?name)?|employer|organi[sz]ation)$"
COUNTRY = r"^country(_?name)?$"
DOMAIN = r"^domain(_?name)?$"
EMAIL = r"^e_?mail(_?address)?$"
IP_ADDRESS = r"^ip(_?address)?$|_ip(_?address)?$"
STATE = r"^(state|region|province|county)$"
DATE_OF_BIRTH = r"^(dob|date_?of_?birth|birth_?date|born)$"
TIME_ZONE = r"^(time_?zone|tz)$"
PHONE = r"(^|_)(phone|mobile|fax)(_?number)?$"
POST_CODE = r"^(post_?code|postal_?code|zip(_?code)?)$"
ADDRESS = r"^(street_?)?address(_?line_?\d)?$|^street$"
URL = r"(^|_)(url|website|homepage)$"
VERSION = r"(^|_)version$"
AGE = r"^age$"
COUNT = r"(^|_)count$"


def member_values(owner: Any) -> dict[str, Any]:
    """
    The values already assigned to the instance (or constructor parameters) under
    construction, by member name.
    """
    if owner is None:
        return {}
    if isinstance(owner, Mapping):
        return dict(owner)
    values: dict[str, Any] = {}
    for prop in describe(type(owner)).properties:
        if prop.readable and not prop.is_static:
            values[prop.name] = prop.get_value(owner)
    return values


def find_member(owner: Any, expression: str) -> Any:
    """
    The first non-None member value whose name matches ``expression``.
    """
    for name, value in member_values(owner).items():
        if value is not None and re.search(expression, name, re.IGNORECASE):
            return value
    return None


@dataclass(frozen=True)
class MatchingValueGenerator(ValueGenerator, ABC):
    """
    Matches one of ``types`` exactly, and the member name against ``name_expression``
    when one is set. A generator with a name expression never matches a bare type.
    """

    types: ClassVar[tuple[Any, ...]] = ()
    name_expression: ClassVar[str | None] = None

    def is_match(self, type_: Any, reference_name: str | None, build_chain: BuildHistory) -> bool:
        if type_ not in self.types:
            return False
        if self.name_expression is None:
            return True
        return reference_name is not None and bool(
            re.search(self.name_expression, reference_name, re.IGNORECASE)
        )


@dataclass(frozen=True)
class SemanticValueGenerator(MatchingValueGenerator, ABC):
    priority: int = SEMANTIC_PRIORITY


@dataclass(frozen=True)
class PrimitiveValueGenerator(MatchingValueGenerator, ABC):
    priority: int = PRIMITIVE_PRIORITY


# --------------------------------------------------------------------------- #
# Primitives
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class BooleanValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (bool,)

    def generate_value(self, type_, reference_name, execute_strategy):
        return RANDOM.random() < 0.5


@dataclass(frozen=True)
class IntegerValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (int,)
    minimum: int = -(2**31)
    maximum: int = 2**31 - 1

    def generate_value(self, type_, reference_name, execute_strategy):
        return RANDOM.randint(self.minimum, self.maximum)


@dataclass(frozen=True)
class FloatValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (float,)

    def generate_value(self, type_, reference_name, execute_strategy):
        return RANDOM.uniform(-1_000_000.0, 1_000_000.0)


@dataclass(frozen=True)
class DecimalValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (Decimal,)

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.pydecimal(left_digits=7, right_digits=2)


@dataclass(frozen=True)
class UuidValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (uuid.UUID,)

    def generate_value(self, type_, reference_name, execute_strategy):
        return uuid.UUID(int=RANDOM.getrandbits(128), version=4)


@dataclass(frozen=True)
class StringValueGenerator(MatchingValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    priority: int = 0
    min_length: int = 8
    max_length: int = 24

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.pystr(min_chars=self.min_length, max_chars=self.max_length)


@dataclass(frozen=True)
class BytesValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (bytes, bytearray)
    length: int = 16

    def generate_value(self, type_, reference_name, execute_strategy):
        return type_(RANDOM.randbytes(self.length))


@dataclass(frozen=True)
class EnumValueGenerator(ValueGenerator):
    """
    Any enum with at least one member; the member is chosen uniformly.
    """

    priority: int = PRIMITIVE_PRIORITY

    def is_match(self, type_: Any, reference_name: str | None, build_chain: BuildHistory) -> bool:
        return isinstance(type_, type) and issubclass(type_, enum.Enum) and len(type_) > 0

    def generate_value(self, type_, reference_name, execute_strategy):
        return RANDOM.choice(list(type_))


@dataclass(frozen=True)
class LiteralValueGenerator(ValueGenerator):
    priority: int = PRIMITIVE_PRIORITY

    def is_match(self, type_: Any, reference_name: str | None, build_chain: BuildHistory) -> bool:
        return typing.get_origin(type_) is typing.Literal

    def generate_value(self, type_, reference_name, execute_strategy):
        return RANDOM.choice(typing.get_args(type_))


@dataclass(frozen=True)
class DateTimeValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (dt.datetime,)

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.date_time_between(start_date="-30y", end_date="+5y")


@dataclass(frozen=True)
class DateValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (dt.date,)

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.date_between(start_date="-30y", end_date="+5y")


@dataclass(frozen=True)
class TimeValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (dt.time,)

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.time_object()


@dataclass(frozen=True)
class TimeDeltaValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (dt.timedelta,)

    def generate_value(self, type_, reference_name, execute_strategy):
        return dt.timedelta(seconds=RANDOM.randint(0, 30 * 24 * 3600))


# --------------------------------------------------------------------------- #
# People
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class GenderValueGenerator(SemanticValueGenerator):
    """
    Picks a gender and records it as a capability on the instance under construction,
    so name generators running later for the same instance can follow it.
    """

    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = GENDER

    def generate_value(self, type_, reference_name, execute_strategy):
        gender = RANDOM.choice(("Male", "Female"))
        current = execute_strategy.build_chain.current
        if current is not None:
            current.add_capability(Capability(GENDER_CAPABILITY, gender.lower()))
        return gender


def gender_of(build_chain: BuildHistory) -> str | None:
    """
    The gender decided for the instance under construction: its capability if one was
    recorded, otherwise a gender-named member already assigned.
    """
    current = build_chain.current
    if current is None:
        return None
    capability = current.capability(GENDER_CAPABILITY)
    if capability is not None:
        return str(capability.value)
    value = find_member(current.instance, GENDER)
    if value is None:
        return None
    # enum members carry the gender in their name
    text = (value.name if isinstance(value, enum.Enum) else str(value)).lower()
    if text in ("f", "female", "woman"):
        return "female"
    if text in ("m", "male", "man"):
        return "male"
    return None


@dataclass(frozen=True)
class FirstNameValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = FIRST_NAME

    def generate_value(self, type_, reference_name, execute_strategy):
        gender = gender_of(execute_strategy.build_chain)
        if gender == "female":
            return FAKER.first_name_female()
        if gender == "male":
            return FAKER.first_name_male()
        return FAKER.first_name()


@dataclass(frozen=True)
class MiddleNameValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = MIDDLE_NAME

    def generate_value(self, type_, reference_name, execute_strategy):
        gender = gender_of(execute_strategy.build_chain)
        if gender == "female":
            return FAKER.first_name_female()
        if gender == "male":
            return FAKER.first_name_male()
        return FAKER.first_name()


@dataclass(frozen=True)
class LastNameValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = LAST_NAME

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.last_name()


@dataclass(frozen=True)
class EmailValueGenerator(SemanticValueGenerator):
    """
    Builds ``first.last@domain`` from the names and domain already assigned to the
    instance under construction; whatever is missing comes from Faker.
    """

    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = EMAIL

    def generate_value(self, type_, reference_name, execute_strategy):
        owner = execute_strategy.build_chain.last
        first = find_member(owner, FIRST_NAME)
        last = find_member(owner, LAST_NAME)
        domain = find_member(owner, DOMAIN)

        if first is None and last is None:
            local = FAKER.user_name()
        else:
            local = ".".join(str(p) for p in (first, last) if p is not None)
        local = re.sub(r"[^a-z0-9._-]", "", local.lower()) or FAKER.user_name()
        return f"{local}@{domain or FAKER.free_email_domain()}"


@dataclass(frozen=True)
class DateOfBirthValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (dt.date, dt.datetime)
    name_expression: ClassVar[str | None] = DATE_OF_BIRTH
    minimum_age: int = 0
    maximum_age: int = 100

    def generate_value(self, type_, reference_name, execute_strategy):
        born = FAKER.date_of_birth(minimum_age=self.minimum_age, maximum_age=self.maximum_age)
        if type_ is dt.datetime:
            return dt.datetime.combine(born, dt.time.min)
        return born


@dataclass(frozen=True)
class AgeValueGenerator(SemanticValueGenerator):
    """
    An age in years, computed from a date of birth already assigned to the instance when
    there is one.
    """

    types: ClassVar[tuple[Any, ...]] = (int,)
    name_expression: ClassVar[str | None] = AGE

    def generate_value(self, type_, reference_name, execute_strategy):
        born = find_member(execute_strategy.build_chain.last, DATE_OF_BIRTH)
        if isinstance(born, dt.date):
            if isinstance(born, dt.datetime):
                born = born.date()
            today = dt.date.today()
            return today.year - born.year - ((today.month, today.day) < (born.month, born.day))
        return RANDOM.randint(1, 100)


@dataclass(frozen=True)
class CountValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (int,)
    name_expression: ClassVar[str | None] = COUNT

    def generate_value(self, type_, reference_name, execute_strategy):
        return RANDOM.randint(0, 1000)


@dataclass(frozen=True)
class PhoneValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = PHONE

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.phone_number()


@dataclass(frozen=True)
class CompanyValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = COMPANY

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.company()


# --------------------------------------------------------------------------- #
# Places
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class CityValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = CITY

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.city()


@dataclass(frozen=True)
class CountryValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = COUNTRY

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.country()


@dataclass(frozen=True)
class StateValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = STATE

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.state()


@dataclass(frozen=True)
class PostCodeValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = POST_CODE

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.postcode()


@dataclass(frozen=True)
class AddressValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = ADDRESS

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.street_address()


@functools.lru_cache(maxsize=1)
def _zone_names() -> tuple[str, ...]:
    return tuple(sorted(zoneinfo.available_timezones()))


@dataclass(frozen=True)
class TimeZoneNameValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = TIME_ZONE

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.timezone()


@dataclass(frozen=True)
class TimeZoneValueGenerator(PrimitiveValueGenerator):
    """
    ``zoneinfo.ZoneInfo`` for any member name, chosen from the zones available on this
    system.
    """

    types: ClassVar[tuple[Any, ...]] = (zoneinfo.ZoneInfo,)

    def generate_value(self, type_, reference_name, execute_strategy):
        return zoneinfo.ZoneInfo(RANDOM.choice(_zone_names()))


# --------------------------------------------------------------------------- #
# Network and software
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class DomainValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = DOMAIN

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.domain_name()


@dataclass(frozen=True)
class IpAddressValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = IP_ADDRESS

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.ipv4()


@dataclass(frozen=True)
class IpAddressObjectValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (
        ipaddress.IPv4Address,
        ipaddress.IPv6Address,
    )

    def generate_value(self, type_, reference_name, execute_strategy):
        if type_ is ipaddress.IPv6Address:
            return ipaddress.IPv6Address(FAKER.ipv6())
        return ipaddress.IPv4Address(FAKER.ipv4())


@dataclass(frozen=True)
class UrlValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = URL

    def generate_value(self, type_, reference_name, execute_strategy):
        return FAKER.url()


def _random_version() -> Version:
    return Version(f"{RANDOM.randint(0, 9)}.{RANDOM.randint(0, 30)}.{RANDOM.randint(0, 99)}")


@dataclass(frozen=True)
class VersionValueGenerator(PrimitiveValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (Version,)

    def generate_value(self, type_, reference_name, execute_strategy):
        return _random_version()


@dataclass(frozen=True)
class VersionStringValueGenerator(SemanticValueGenerator):
    types: ClassVar[tuple[Any, ...]] = (str,)
    name_expression: ClassVar[str | None] = VERSION

    def generate_value(self, type_, reference_name, execute_strategy):
        return str(_random_version())
