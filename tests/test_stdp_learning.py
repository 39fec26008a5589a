"""Tests for STDP parameter extraction and learning kernels.

Covers:
- heaviside / sigmoid helpers
- Parameter extraction for soft, hard and alpha learning headers
- Exponential kernel shape around the spike
- Zero offset of the alpha function (closed-form cubic root)
- Alpha kernel: sign around the spike, baseline floor, saturation gating
"""

import math
import os
import sys

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from event_extractors import NetworkMetadata, network_info
from spikes_errors import MissingField, NumericParseFailure, UnknownLearningType
from spikes_math import heaviside, sigmoid
from stdp_learning import (
    AlphaParams,
    HardSoftParams,
    LearningType,
    alpha_stdp,
    stdp,
    stdp_parameters,
    zero_offset,
)


SOFT_HEADER = (
    "spiked_system-1 - learning; learning_type: stdp_soft; inhibitory_amplitude: 0.06; "
    "inhibitory_period: 15.0 ms; excitation_amplitude: 0.02; excitation_period: 10.0 ms"
)
ALPHA_HEADER = (
    "spiked_system-1 - learning; learning_type: stdp_alpha; baseline: -1.0; "
    "time_constant: 20.0 ms; learning_rate: 0.04"
)


def _alpha_shape(tf, b):
    return math.e * (1 - b) * tf * math.exp(-tf) + b


# ---------------------------------------------------------------------------
# Math helpers
# ---------------------------------------------------------------------------

class TestHeaviside:

    def test_values(self):
        assert heaviside(-1) == 0
        assert heaviside(0) == 0.5
        assert heaviside(1) == 1

    def test_scalar_returns_float(self):
        assert isinstance(heaviside(2.5), float)

    def test_array(self):
        np.testing.assert_array_equal(
            heaviside(np.array([-3.0, 0.0, 1e-9])), [0.0, 0.5, 1.0]
        )


class TestSigmoid:

    def test_zero_at_offset(self):
        assert sigmoid(5.0, 5.0, 2.0) == pytest.approx(0.0)

    def test_limits(self):
        assert sigmoid(1e6, 0.0, 1.0) == pytest.approx(1.0)
        assert sigmoid(-1e6, 0.0, 1.0) == pytest.approx(-1.0)

    def test_odd_about_offset(self):
        assert sigmoid(3.0, 1.0, 4.0) == pytest.approx(-sigmoid(-1.0, 1.0, 4.0))


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------

class TestStdpParameters:

    def test_soft(self):
        params = stdp_parameters(network_info([SOFT_HEADER]))
        assert params == HardSoftParams(
            learning_type=LearningType.SOFT,
            inhibition_amplitude=0.06,
            inhibition_period=15.0,
            excitation_amplitude=0.02,
            excitation_period=10.0,
        )

    def test_hard(self):
        header = SOFT_HEADER.replace("stdp_soft", "stdp_hard")
        params = stdp_parameters(network_info([header]))
        assert params.learning_type is LearningType.HARD

    def test_alpha(self):
        params = stdp_parameters(network_info([ALPHA_HEADER]))
        assert params == AlphaParams(baseline=-1.0, time_constant=20.0, learning_rate=0.04)
        assert params.learning_type is LearningType.ALPHA

    def test_plain_mapping(self):
        params = stdp_parameters({"learning": {
            "learning_type": "stdp_alpha",
            "baseline": "-0.5",
            "time_constant": "10 ms",
            "learning_rate": "0.1",
        }})
        assert params.time_constant == 10.0

    def test_unknown_learning_type(self):
        header = SOFT_HEADER.replace("stdp_soft", "stdp_triplet")
        with pytest.raises(UnknownLearningType) as info:
            stdp_parameters(network_info([header]))
        assert info.value.learning_type == "stdp_triplet"

    def test_missing_learning_header(self):
        with pytest.raises(MissingField):
            stdp_parameters(NetworkMetadata({}))

    def test_missing_learning_type(self):
        with pytest.raises(MissingField) as info:
            stdp_parameters(NetworkMetadata({"learning": {"baseline": "-1"}}))
        assert info.value.field == "learning_type"

    def test_missing_key_for_selected_type(self):
        header = ALPHA_HEADER.replace("; learning_rate: 0.04", "")
        with pytest.raises(MissingField) as info:
            stdp_parameters(network_info([header]))
        assert info.value.field == "learning_rate"

    def test_header_after_preamble_with_separator(self):
        preamble = "2020-01-01 12:00 - spikes.NetworkSetupEvent$ - "
        header = preamble + ALPHA_HEADER.split(" - ", 1)[1]
        params = stdp_parameters(network_info([header]))
        assert params == AlphaParams(baseline=-1.0, time_constant=20.0, learning_rate=0.04)

    def test_soft_keys_not_needed_for_alpha(self):
        """Alpha needs only its own keys; no hard/soft keys are required."""
        params = stdp_parameters(network_info([ALPHA_HEADER]))
        assert isinstance(params, AlphaParams)

    def test_unparseable_parameter(self):
        header = SOFT_HEADER.replace("0.06", "lots")
        with pytest.raises(NumericParseFailure) as info:
            stdp_parameters(network_info([header]))
        assert info.value.field == "inhibitory_amplitude"


# ---------------------------------------------------------------------------
# Exponential kernel
# ---------------------------------------------------------------------------

class TestExponentialKernel:

    def setup_method(self):
        self.params = stdp_parameters(network_info([SOFT_HEADER]))

    def test_at_spike_is_excitation_amplitude(self):
        assert self.params.kernel(0) == pytest.approx(0.02)

    def test_after_spike_is_inhibition(self):
        assert self.params.kernel(15.0) == pytest.approx(-0.06 * math.exp(-1))

    def test_before_spike_is_excitation(self):
        assert self.params.kernel(-10.0) == pytest.approx(0.02 * math.exp(-1))

    def test_array_shape_and_signs(self):
        t = np.arange(-50, 51)
        values = self.params.kernel(t)
        assert values.shape == t.shape
        assert np.all(values[t <= 0] > 0)
        assert np.all(values[t > 0] < 0)

    def test_large_times_do_not_overflow(self):
        values = stdp(np.array([-1e5, 1e5]), 0.06, 15.0, 0.02, 10.0)
        assert np.all(np.isfinite(values))
        np.testing.assert_allclose(values, [0.0, 0.0], atol=1e-300)


# ---------------------------------------------------------------------------
# Alpha kernel
# ---------------------------------------------------------------------------

class TestZeroOffset:

    def test_zero_baseline_gives_zero_offset(self):
        assert zero_offset(20.0, 0.0) == pytest.approx(0.0, abs=1e-12)

    @pytest.mark.parametrize("b", [-1e-6, -0.01, -0.5, -1.0, -10.0, -1e6])
    def test_real_and_increasing_in_tau(self, b):
        offsets = [zero_offset(tau, b) for tau in (0.5, 1.0, 5.0, 20.0, 100.0)]
        assert all(isinstance(d, float) and math.isfinite(d) for d in offsets)
        assert all(later > earlier for earlier, later in zip(offsets, offsets[1:]))

    def test_proportional_to_tau(self):
        assert zero_offset(40.0, -1.0) == pytest.approx(2 * zero_offset(20.0, -1.0))

    @pytest.mark.parametrize("tau,b", [(0.0, -1.0), (-5.0, -1.0), (10.0, 1.0), (10.0, 2.0)])
    def test_undefined_inputs(self, tau, b):
        with pytest.raises(ValueError):
            zero_offset(tau, b)

    def test_params_expose_offset(self):
        params = AlphaParams(baseline=-1.0, time_constant=20.0, learning_rate=0.04)
        assert params.zero_offset == zero_offset(20.0, -1.0)


class TestAlphaKernel:

    def setup_method(self):
        self.params = stdp_parameters(network_info([ALPHA_HEADER]))
        self.window = 72.0

    def test_depresses_well_after_spike(self):
        """Long after the spike the kernel sits on the baseline."""
        value = self.params.kernel(self.window + 50, self.window, weight=0.5, max_weight=1.0)
        assert value == pytest.approx(0.04 * -1.0)

    def test_matches_formula(self):
        t = np.arange(0, 100, 7, dtype=float)
        b, tau, r = -1.0, 20.0, 0.04
        delta = zero_offset(tau, b)
        expected = [
            r * max(b, _alpha_shape((delta - (ti - self.window)) / tau, b)) for ti in t
        ]
        np.testing.assert_allclose(
            self.params.kernel(t, self.window, weight=0.5, max_weight=1.0), expected
        )

    def test_floored_at_baseline(self):
        t = np.linspace(0, 500, 501)
        values = alpha_stdp(t, self.window, -1.0, 0.04, 20.0, 0.5, 1.0)
        assert np.all(values >= 0.04 * -1.0 - 1e-12)
        assert np.all(np.isfinite(values))

    def test_before_spike_potentiates(self):
        assert self.params.kernel(self.window - 10, self.window, 0.5, 1.0) > 0

    def test_saturated_weight_gates_learning(self):
        t = np.arange(0, 100, dtype=float)
        np.testing.assert_array_equal(
            self.params.kernel(t, self.window, weight=1.5, max_weight=1.0), 0.0
        )

    def test_weight_at_max_halves_learning(self):
        full = self.params.kernel(60.0, self.window, weight=0.5, max_weight=1.0)
        half = self.params.kernel(60.0, self.window, weight=1.0, max_weight=1.0)
        assert half == pytest.approx(full / 2)

    def test_scalar_in_scalar_out(self):
        assert isinstance(self.params.kernel(10, self.window, 0.5, 1.0), float)
