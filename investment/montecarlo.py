"""
Meridian 1.0 -- Monte Carlo outcome sampling.

Draws terminal investment values as::

    value = initial * (1 + mean + z * sd),   z ~ N(0, 1)

with ``z`` produced by the Box-Muller transform from two uniform draws on
``(0, 1]`` (so ``ln(u)`` is always finite).  Uniforms come from an
injected :class:`numpy.random.Generator`; pass a seeded one for
reproducible runs.
"""

from typing import Optional

import numpy as np

from options_engine.errors import InvalidInputError


def box_muller(rng: np.random.Generator, size: int) -> np.ndarray:
    """Standard normal samples via ``sqrt(-2 ln u) * cos(2 pi v)``."""
    # Generator.random() is [0, 1); flip it to (0, 1]
    u = 1.0 - rng.random(size)
    v = 1.0 - rng.random(size)
    return np.sqrt(-2.0 * np.log(u)) * np.cos(2.0 * np.pi * v)


def simulate_investment(
    initial_amount: float,
    expected_return: float,
    volatility: float,
    iterations: int = 10_000,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Simulate *iterations* terminal values, sorted ascending.

    Args:
        initial_amount: Amount invested today.
        expected_return: Mean return over the horizon (not annualised).
        volatility: Return standard deviation over the horizon (>= 0).
        iterations: Number of samples (>= 1).
        rng: Random generator (a fresh unseeded one if ``None``).

    Raises:
        InvalidInputError: For a negative amount or volatility or
            fewer than one iteration.
    """
    if initial_amount < 0:
        raise InvalidInputError("initial_amount must not be negative")
    if volatility < 0:
        raise InvalidInputError("volatility must not be negative")
    if isinstance(iterations, bool) or int(iterations) != iterations or iterations < 1:
        raise InvalidInputError(f"iterations must be a positive integer, got {iterations!r}")

    rng = rng if rng is not None else np.random.default_rng()
    z = box_muller(rng, int(iterations))
    outcomes = initial_amount * (1.0 + expected_return + z * volatility)
    outcomes.sort()
    return outcomes
