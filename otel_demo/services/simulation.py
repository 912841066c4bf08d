from __future__ import annotations

import asyncio
import math
import random
import string

from otel_demo.models.schemas import UserRecord


HELLO_MAX_DELAY_MS = 500
FLAKY_FAILURE_RATE = 0.3
CPU_ITERATIONS = 1_000_000
QUERY_MIN_MS = 50
QUERY_SPREAD_MS = 200

_REQUEST_ID_ALPHABET = string.ascii_lowercase + string.digits
_REQUEST_ID_LENGTH = 9

USERS: tuple[UserRecord, ...] = (
    UserRecord(id=1, name="John Doe", email="john@example.com"),
    UserRecord(id=2, name="Jane Smith", email="jane@example.com"),
)

_rng: random.Random | None = None


def set_random_source(rng: random.Random | None) -> None:
    global _rng
    _rng = rng


def get_random_source() -> random.Random:
    global _rng
    if _rng is None:
        _rng = random.Random()
    return _rng


def draw_hello_delay_ms(rng: random.Random) -> int:
    """Integer delay in [0, 500)."""
    return rng.randrange(HELLO_MAX_DELAY_MS)


def new_request_id(rng: random.Random) -> str:
    return "".join(rng.choice(_REQUEST_ID_ALPHABET) for _ in range(_REQUEST_ID_LENGTH))


def should_fail(rng: random.Random, rate: float = FLAKY_FAILURE_RATE) -> bool:
    return rng.random() < rate


def burn_cpu(rng: random.Random, iterations: int = CPU_ITERATIONS) -> float:
    # Runs inline on purpose: the point of the endpoint is to hold the CPU.
    result = 0.0
    for i in range(iterations):
        result += math.sqrt(i) * rng.random()
    return result


def draw_query_time_ms(rng: random.Random) -> int:
    """Integer latency in [50, 250)."""
    return QUERY_MIN_MS + rng.randrange(QUERY_SPREAD_MS)


async def run_simulated_query(query_time_ms: int) -> list[UserRecord]:
    await asyncio.sleep(query_time_ms / 1000)
    return list(USERS)


def draw_custom_value(rng: random.Random) -> float:
    return rng.random() * 100


def draw_temperature(rng: random.Random) -> float:
    return 20 + rng.random() * 10
