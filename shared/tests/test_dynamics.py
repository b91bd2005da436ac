"""
Tests for the competition right-hand side and the pulse operator.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from pulsed_competition.dynamics import (
    IDX_N_I, IDX_N_J, IDX_Q_I, IDX_Q_J, IDX_R,
    STATE_FIELDS,
    TRAJECTORY_FIELDS,
    SimulationState,
    apply_pulse,
    apply_pulse_array,
    competition_rhs,
    droop_growth_rate,
    quota_uptake_rate,
    total_nutrient,
)
from pulsed_competition.kinetics import KineticParameters, compute_kinetic_parameters


def make_strain(**changes):
    kwargs = dict(Qmin=1.0, Qmax=3.0, Vmax=2.0, mu_inf=0.8, H_up=5.0, m=0.1)
    kwargs.update(changes)
    return KineticParameters(**kwargs)


class TestSimulationState:
    """Tests for the state record."""

    def test_field_order(self):
        assert STATE_FIELDS == ("N_i", "N_j", "Q_i", "Q_j", "R")
        assert TRAJECTORY_FIELDS[0] == "time"
        assert (IDX_N_I, IDX_N_J, IDX_Q_I, IDX_Q_J, IDX_R) == (0, 1, 2, 3, 4)

    def test_array_round_trip(self):
        s = SimulationState(t=2.0, N_i=1.0, N_j=2.0, Q_i=3.0, Q_j=4.0, R=5.0)
        assert_allclose(s.to_array(), [1.0, 2.0, 3.0, 4.0, 5.0])
        assert SimulationState.from_array(2.0, s.to_array()) == s

    def test_from_array_wrong_shape(self):
        with pytest.raises(ValueError, match="shape"):
            SimulationState.from_array(0.0, [1.0, 2.0])

    def test_to_dict_uses_time_key(self):
        d = SimulationState(1.0, 2.0, 3.0, 4.0, 5.0, 6.0).to_dict()
        assert list(d) == list(TRAJECTORY_FIELDS)
        assert d["time"] == 1.0


class TestRates:
    """Tests for growth and uptake laws."""

    def test_no_growth_at_minimum_quota(self):
        p = make_strain()
        assert droop_growth_rate(p.Qmin, p) == 0.0

    def test_growth_below_minimum_quota_negative(self):
        p = make_strain()
        assert droop_growth_rate(0.5 * p.Qmin, p) < 0.0

    def test_no_uptake_at_maximum_quota(self):
        p = make_strain()
        assert quota_uptake_rate(10.0, p.Qmax, p) == 0.0

    def test_uptake_half_saturation(self):
        p = make_strain()
        # R == H_up and Q == Qmin -> Vmax / 2
        assert_allclose(quota_uptake_rate(p.H_up, p.Qmin, p), p.Vmax / 2)


class TestCompetitionRHS:
    """Tests for competition_rhs()."""

    def setup_method(self):
        self.si = make_strain()
        self.sj = make_strain(Qmin=0.5, Qmax=2.0, Vmax=1.0, mu_inf=1.2, H_up=2.0, m=0.2)

    def test_matches_manual_computation(self):
        y = np.array([10.0, 20.0, 2.0, 1.5, 4.0])
        dy = competition_rhs(0.0, y, self.si, self.sj)

        mu_i = 0.8 * (1 - 1.0 / 2.0)
        mu_j = 1.2 * (1 - 0.5 / 1.5)
        up_i = 2.0 * 4.0 / (5.0 + 4.0) * (3.0 - 2.0) / (3.0 - 1.0)
        up_j = 1.0 * 4.0 / (2.0 + 4.0) * (2.0 - 1.5) / (2.0 - 0.5)
        expected = [
            10.0 * (mu_i - 0.1),
            20.0 * (mu_j - 0.2),
            up_i - mu_i * 2.0,
            up_j - mu_j * 1.5,
            -(up_i * 10.0 + up_j * 20.0),
        ]
        assert dy.shape == (5,)
        assert_allclose(dy, expected, rtol=1e-14)

    def test_time_invariant(self):
        y = np.array([10.0, 20.0, 2.0, 1.5, 4.0])
        assert_allclose(
            competition_rhs(0.0, y, self.si, self.sj),
            competition_rhs(123.0, y, self.si, self.sj),
        )

    def test_negative_nutrient_clamped(self):
        """Overshoot below R = 0 gives no uptake and no further depletion."""
        y = np.array([10.0, 20.0, 2.0, 1.5, -1e-9])
        dy = competition_rhs(0.0, y, self.si, self.sj)
        assert dy[IDX_R] == 0.0
        y0 = y.copy()
        y0[IDX_R] = 0.0
        assert_allclose(dy, competition_rhs(0.0, y0, self.si, self.sj))

    def test_zero_populations_keep_nutrient(self):
        y = np.array([0.0, 0.0, 2.0, 1.5, 4.0])
        dy = competition_rhs(0.0, y, self.si, self.sj)
        assert dy[IDX_N_I] == 0.0
        assert dy[IDX_N_J] == 0.0
        assert dy[IDX_R] == 0.0

    def test_conservation_without_growth_or_mortality(self):
        """mu_inf = m = 0: total nutrient has zero time derivative."""
        si = make_strain(mu_inf=0.0, m=0.0)
        sj = make_strain(mu_inf=0.0, m=0.0, Qmin=0.5, Qmax=2.0)
        y = np.array([10.0, 20.0, 2.0, 1.5, 4.0])
        dy = competition_rhs(0.0, y, si, sj)

        # d/dt (R + Q_i N_i + Q_j N_j) with dN = 0
        d_total = dy[IDX_R] + dy[IDX_Q_I] * y[IDX_N_I] + dy[IDX_Q_J] * y[IDX_N_J]
        assert abs(d_total) < 1e-12

    def test_realistic_parameters_finite(self):
        si = compute_kinetic_parameters(100.0)
        sj = compute_kinetic_parameters(1e4)
        y = np.array([1e3, 1e3, si.Q_midpoint, sj.Q_midpoint, 40.0])
        dy = competition_rhs(0.0, y, si, sj)
        assert np.all(np.isfinite(dy))
        assert dy[IDX_R] < 0


class TestTotalNutrient:

    def test_single_state(self):
        assert total_nutrient([2.0, 3.0, 0.5, 0.25, 1.0]) == 1.0 + 1.0 + 0.75

    def test_stacked_states(self):
        y = np.array([[2.0, 3.0, 0.5, 0.25, 1.0], [0.0, 0.0, 1.0, 1.0, 7.0]])
        assert_allclose(total_nutrient(y), [2.75, 7.0])


class TestPulse:
    """Tests for the pulse operator."""

    def setup_method(self):
        self.state = SimulationState(t=14.0, N_i=1e3, N_j=5e2, Q_i=2e-8, Q_j=3e-7, R=10.0)

    def test_mixing(self):
        post = apply_pulse(self.state, 0.3, 40.0)
        assert_allclose(post.N_i, 0.7 * 1e3)
        assert_allclose(post.N_j, 0.7 * 5e2)
        assert_allclose(post.R, 0.7 * 10.0 + 0.3 * 40.0)

    def test_quota_and_time_unchanged(self):
        post = apply_pulse(self.state, 0.3, 40.0)
        assert post.t == self.state.t
        assert post.Q_i == self.state.Q_i
        assert post.Q_j == self.state.Q_j

    def test_zero_fraction_is_identity(self):
        assert apply_pulse(self.state, 0.0, 40.0) == self.state

    def test_full_replacement(self):
        post = apply_pulse(self.state, 1.0, 40.0)
        assert post.N_i == 0.0
        assert post.N_j == 0.0
        assert post.R == 40.0

    def test_array_form_matches_and_copies(self):
        y = self.state.to_array()
        out = apply_pulse_array(y, 0.3, 40.0)
        assert out is not y
        assert_allclose(y, self.state.to_array())
        assert_allclose(out, apply_pulse(self.state, 0.3, 40.0).to_array())

    @pytest.mark.parametrize("f", [-0.1, 1.5, float("nan")])
    def test_invalid_fraction(self, f):
        with pytest.raises(ValueError, match="fraction_replaced"):
            apply_pulse(self.state, f, 40.0)
        with pytest.raises(ValueError, match="fraction_replaced"):
            apply_pulse_array(self.state.to_array(), f, 40.0)

    def test_invalid_inflow(self):
        with pytest.raises(ValueError, match="R_in"):
            apply_pulse(self.state, 0.3, -1.0)
