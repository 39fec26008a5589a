"""Small numeric helpers shared by the learning-kernel code."""

from __future__ import annotations

from typing import Union

import numpy as np

ArrayLike = Union[float, np.ndarray]


def heaviside(x: ArrayLike) -> ArrayLike:
    """Heaviside step: 0 for x < 0, 0.5 for x == 0, 1 for x > 0."""
    result = np.heaviside(x, 0.5)
    return float(result) if np.ndim(result) == 0 else result


def sigmoid(time: ArrayLike, offset: float, half_life: float) -> ArrayLike:
    """Sigmoid through zero at ``t = offset``, tending to ±1 as t → ±∞.

    Args:
        time: The time(s).
        offset: Time at which the sigmoid is zero.
        half_life: Steepness of the sigmoid.
    """
    t = np.asarray(time, dtype=float)
    with np.errstate(over="ignore"):
        result = 2.0 * (1.0 / (1.0 + np.exp(-(t - offset) / half_life)) - 0.5)
    return float(result) if np.ndim(result) == 0 else result
