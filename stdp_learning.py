"""
Spike-timing-dependent plasticity (STDP) learning functions.

Reads the learning-function parameters from a run's ``learning`` header and
evaluates the learning kernel the simulator used:

* ``stdp_soft`` / ``stdp_hard`` — exponential kernel: excitation decaying
  backwards from the spike (t ≤ 0), inhibition decaying forward (t > 0).
* ``stdp_alpha`` — alpha-function kernel ``t·e^(1-t)`` shifted by a zero
  offset δ so that it crosses zero at the spike, floored at the baseline.

Usage::

    params = stdp_parameters(network_info(lines))
    curve = params.kernel(np.arange(-50, 51))                  # hard / soft
    curve = params.kernel(t, time_window=72, weight=0.5, max_weight=1.0)  # alpha
"""

from __future__ import annotations

import functools
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Union

import numpy as np

from event_extractors import NetworkMetadata, parse_quantity
from spikes_config import (
    ALPHA_KEYS,
    HARD_SOFT_KEYS,
    LEARNING_TYPE_KEY,
    MetadataSection,
    ParsingConfig,
)
from spikes_errors import MissingField, UnknownLearningType
from spikes_math import ArrayLike, heaviside

logger = logging.getLogger("spikes.stdp")


class LearningType(Enum):
    """Learning functions the simulator can log in its ``learning`` header."""
    SOFT = "stdp_soft"
    HARD = "stdp_hard"
    ALPHA = "stdp_alpha"


# ---------------------------------------------------------------------------
# Kernels
# ---------------------------------------------------------------------------

def stdp(
    t: ArrayLike,
    inhibition_amplitude: float,
    inhibition_period: float,
    excitation_amplitude: float,
    excitation_period: float,
) -> ArrayLike:
    """Exponential STDP kernel used by the hard and soft limits.

    Args:
        t: Time(s) relative to the spike; t < 0 before, t > 0 after.
        inhibition_amplitude: Magnitude of inhibition just after the spike.
        inhibition_period: Decay time-constant (ms) of the inhibition.
        excitation_amplitude: Magnitude of excitation just before the spike.
        excitation_period: Decay time-constant (ms) of the excitation.
    """
    times = np.asarray(t, dtype=float)
    # np.where evaluates both branches; the discarded one may overflow.
    with np.errstate(over="ignore"):
        values = np.where(
            times > 0,
            -inhibition_amplitude * np.exp(-times / inhibition_period),
            excitation_amplitude * np.exp(times / excitation_period),
        )
    return float(values) if values.ndim == 0 else values


@functools.lru_cache(maxsize=256)
def zero_offset(tau: float, b: float) -> float:
    """Time offset δ that moves the alpha function's zero crossing close to t = 0.

    δ is the real root of a depressed cubic, found in closed form with
    real (sign-preserving) cube roots since ``R - λ`` is always negative.

    Args:
        tau: Time-constant of the alpha function (tau > 0).
        b: Baseline, the inhibition amount (b ≤ 0 in practice).

    Raises:
        ValueError: If ``tau <= 0`` or ``b >= 1``, where the formula is
            undefined.
    """
    if tau <= 0:
        raise ValueError(f"time constant must be positive, got {tau}")
    if b >= 1:
        raise ValueError(f"baseline must be below 1, got {b}")

    gamma = -b * math.exp(-1) / (1 - b)
    r = (27 * gamma - 7) / 54
    q = 2.0 / 9
    lam = math.sqrt(q * q * q + r * r)
    s = float(np.cbrt(r + lam))
    u = float(np.cbrt(r - lam))
    delta = tau * (s + u + 1.0 / 3)
    logger.debug("zero offset for tau=%s, b=%s: %s", tau, b, delta)
    return delta


def alpha_stdp(
    t: ArrayLike,
    time_window: float,
    baseline: float,
    learning_rate: float,
    time_constant: float,
    weight: float,
    max_weight: float,
) -> ArrayLike:
    """Alpha-function STDP kernel.

    Args:
        t: Time(s) since the start of the time window (the previous spike).
        time_window: Length T of the time window.
        baseline: Baseline b (b ≤ 0).
        learning_rate: Learning rate r (r > 0).
        time_constant: Time-constant tau (tau > 0).
        weight: Current connection weight.
        max_weight: Largest allowed weight; learning stops once reached.
    """
    delta = zero_offset(time_constant, baseline)
    times = np.asarray(t, dtype=float)
    time_factor = (delta - (times - time_window)) / time_constant
    with np.errstate(over="ignore"):
        alpha = math.e * (1 - baseline) * time_factor * np.exp(-time_factor) + baseline
    values = learning_rate * heaviside(max_weight - weight) * np.maximum(baseline, alpha)
    return float(values) if np.ndim(values) == 0 else values


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HardSoftParams:
    """Parameters of the exponential (hard or soft limit) STDP kernel."""
    learning_type: LearningType
    inhibition_amplitude: float
    inhibition_period: float
    excitation_amplitude: float
    excitation_period: float

    def kernel(self, t: ArrayLike) -> ArrayLike:
        return stdp(
            t,
            self.inhibition_amplitude,
            self.inhibition_period,
            self.excitation_amplitude,
            self.excitation_period,
        )


@dataclass(frozen=True)
class AlphaParams:
    """Parameters of the alpha-function STDP kernel."""
    baseline: float
    time_constant: float
    learning_rate: float

    @property
    def learning_type(self) -> LearningType:
        return LearningType.ALPHA

    @property
    def zero_offset(self) -> float:
        return zero_offset(self.time_constant, self.baseline)

    def kernel(
        self,
        t: ArrayLike,
        time_window: float,
        weight: float,
        max_weight: float,
    ) -> ArrayLike:
        return alpha_stdp(
            t,
            time_window,
            self.baseline,
            self.learning_rate,
            self.time_constant,
            weight,
            max_weight,
        )


StdpParams = Union[HardSoftParams, AlphaParams]


def _value(section: Mapping[str, str], key: str, with_units: bool = False) -> float:
    if key not in section:
        raise MissingField(f"missing learning parameter {key!r}", field=key)
    units = ParsingConfig().unit_suffixes if with_units else ()
    return parse_quantity(section[key], units, field=key)


def _hard_soft_params(
    learning_type: LearningType, section: Mapping[str, str]
) -> HardSoftParams:
    inhib_ampl, inhib_period, excite_ampl, excite_period = HARD_SOFT_KEYS
    return HardSoftParams(
        learning_type=learning_type,
        inhibition_amplitude=_value(section, inhib_ampl),
        inhibition_period=_value(section, inhib_period, with_units=True),
        excitation_amplitude=_value(section, excite_ampl),
        excitation_period=_value(section, excite_period, with_units=True),
    )


def _alpha_params(learning_type: LearningType, section: Mapping[str, str]) -> AlphaParams:
    baseline, time_constant, learning_rate = ALPHA_KEYS
    return AlphaParams(
        baseline=_value(section, baseline),
        time_constant=_value(section, time_constant, with_units=True),
        learning_rate=_value(section, learning_rate),
    )


_ParamBuilder = Callable[[LearningType, Mapping[str, str]], StdpParams]

_PARAM_BUILDERS: Dict[LearningType, _ParamBuilder] = {
    LearningType.SOFT: _hard_soft_params,
    LearningType.HARD: _hard_soft_params,
    LearningType.ALPHA: _alpha_params,
}


def stdp_parameters(metadata: Union[NetworkMetadata, Mapping]) -> StdpParams:
    """Learning-function parameters from a run's network metadata.

    Args:
        metadata: Output of ``network_info``, or a plain mapping of section
            name → attributes.

    Raises:
        MissingField: If the ``learning`` header or one of the keys the
            learning type needs is absent.
        UnknownLearningType: If ``learning_type`` is not a supported kernel.
        NumericParseFailure: If a parameter is not a finite number.
    """
    if not isinstance(metadata, NetworkMetadata):
        metadata = NetworkMetadata(dict(metadata))
    section = metadata.section(MetadataSection.LEARNING)
    if LEARNING_TYPE_KEY not in section:
        raise MissingField(
            "learning header has no learning type", field=LEARNING_TYPE_KEY
        )

    raw_type = section[LEARNING_TYPE_KEY].strip()
    try:
        learning_type = LearningType(raw_type)
    except ValueError:
        raise UnknownLearningType(raw_type) from None

    params = _PARAM_BUILDERS[learning_type](learning_type, section)
    logger.debug("STDP parameters: %s", params)
    return params
