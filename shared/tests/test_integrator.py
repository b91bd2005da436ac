"""
Tests for the stiff integrator adapter.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from pulsed_competition.errors import IntegrationFailure
from pulsed_competition.integrator import (
    STIFF_METHODS,
    IntegratorAdapter,
    ScipyIntegrator,
    make_integrator,
)


def decay(t, y, k):
    return -k * y


def blow_up(t, y):
    # Solution 1 / (1 - t) diverges at t = 1
    return y ** 2


class TestScipyIntegrator:
    """Tests for ScipyIntegrator."""

    @pytest.mark.parametrize("method", sorted(STIFF_METHODS))
    def test_exponential_decay(self, method):
        integ = ScipyIntegrator(method=method, rtol=1e-8, atol=1e-12)
        times = np.array([0.0, 0.5, 1.0, 2.0, 5.0])
        y0 = np.array([1.0, 3.0])

        out = integ.integrate(decay, y0, times, args=(0.7,))

        expected = np.outer(np.exp(-0.7 * times), y0)
        assert out.shape == (5, 2)
        assert_allclose(out, expected, rtol=1e-5)

    def test_first_row_is_initial_state(self):
        y0 = np.array([2.0])
        out = ScipyIntegrator().integrate(decay, y0, [1.0, 3.0], args=(1.0,))
        assert out[0, 0] == 2.0

    def test_nonzero_start_time(self):
        out = ScipyIntegrator(rtol=1e-8, atol=1e-12).integrate(
            decay, [1.0], [10.0, 11.0], args=(1.0,)
        )
        assert_allclose(out[-1, 0], np.exp(-1.0), rtol=1e-5)

    def test_atol_scale_accepted(self):
        out = ScipyIntegrator().integrate(
            decay, [1.0, 1e-8], [0.0, 1.0], args=(1.0,), atol_scale=[1.0, 1e-8]
        )
        assert_allclose(out[-1], [np.exp(-1.0), 1e-8 * np.exp(-1.0)], rtol=1e-4)

    def test_records_work_done(self):
        integ = ScipyIntegrator()
        integ.integrate(decay, [1.0], [0.0, 10.0], args=(1.0,))
        assert integ.last_n_steps > 0
        assert integ.last_nfev >= integ.last_n_steps

    def test_step_ceiling(self):
        integ = ScipyIntegrator(max_step=0.5, max_steps=1)
        with pytest.raises(IntegrationFailure, match="Step ceiling") as excinfo:
            integ.integrate(decay, [1.0], [0.0, 10.0], args=(1.0,))
        err = excinfo.value
        assert err.t_start == 0.0
        assert err.t_end == 10.0
        assert err.t_reached < 10.0
        assert err.n_steps == 1

    def test_wall_clock_ceiling(self):
        integ = ScipyIntegrator(max_step=1.0, max_wall_time=1e-9)
        with pytest.raises(IntegrationFailure, match="Wall-clock"):
            integ.integrate(decay, [1.0], [0.0, 1000.0], args=(1.0,))

    def test_finite_time_blow_up(self):
        """A diverging solution is reported, never truncated."""
        integ = ScipyIntegrator(method="BDF", max_steps=20_000)
        with pytest.raises(IntegrationFailure):
            integ.integrate(blow_up, [1.0], [0.0, 0.5, 2.0])

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown method"):
            ScipyIntegrator(method="RK45")

    @pytest.mark.parametrize("kwargs", [
        {"rtol": 0.0},
        {"atol": -1.0},
        {"max_steps": 0},
        {"max_wall_time": 0.0},
    ])
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ValueError):
            ScipyIntegrator(**kwargs)

    def test_repr(self):
        assert "BDF" in repr(ScipyIntegrator(method="BDF"))

    def test_make_integrator(self):
        integ = make_integrator(method="Radau", rtol=1e-5, max_steps=10)
        assert isinstance(integ, ScipyIntegrator)
        assert integ.method == "Radau"
        assert integ.rtol == 1e-5
        assert integ.max_steps == 10


class TestTimeValidation:
    """The adapter rejects bad output times before calling the solver."""

    def setup_method(self):
        self.integ = ScipyIntegrator()

    @pytest.mark.parametrize("times", [
        [0.0],
        [[0.0, 1.0]],
        [0.0, 2.0, 1.0],
        [0.0, 1.0, 1.0],
        [0.0, np.nan],
        [0.0, np.inf],
    ])
    def test_bad_times(self, times):
        with pytest.raises(IntegrationFailure):
            self.integ.integrate(decay, [1.0], times, args=(1.0,))

    def test_nonfinite_initial_state(self):
        with pytest.raises(IntegrationFailure, match="Initial state"):
            self.integ.integrate(decay, [np.nan], [0.0, 1.0], args=(1.0,))

    def test_base_class_is_abstract(self):
        with pytest.raises(NotImplementedError):
            IntegratorAdapter().integrate(decay, [1.0], [0.0, 1.0], args=(1.0,))
