"""
Shared random sources for the built-in generators and creators.

Both sources are process-wide. ``seed_generators`` reseeds them together so a test run can
reproduce the fixtures it built.
"""

from __future__ import annotations

import random

from faker import Faker

RANDOM: random.Random = random.Random()
FAKER: Faker = Faker()


def seed_generators(seed: int | str | bytes | None) -> None:
    RANDOM.seed(seed)
    FAKER.seed_instance(seed)


def chance(probability: float) -> bool:
    return RANDOM.random() < probability
