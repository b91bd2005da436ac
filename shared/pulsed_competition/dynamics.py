"""
Two-strain Droop competition model and the nutrient pulse operator.

State vector layout (also the column order of every trajectory):

    y = [N_i, N_j, Q_i, Q_j, R]

N are population densities, Q internal nutrient quotas per cell and R the
external nutrient concentration. Between pulses:

    mu(Q)   = mu_inf * (1 - Qmin / Q)
    uptake  = Vmax * R / (H_up + R) * (Qmax - Q) / (Qmax - Qmin)
    dN/dt   = N * (mu(Q) - m)
    dQ/dt   = uptake - mu(Q) * Q
    dR/dt   = -(uptake_i * N_i + uptake_j * N_j)

A pulse replaces a fraction of the medium with water at nutrient
concentration R_in: cells are diluted, quotas are untouched.
"""

from dataclasses import dataclass, replace as dc_replace
from typing import Dict

import numpy as np

from .kinetics import KineticParameters


STATE_FIELDS = ("N_i", "N_j", "Q_i", "Q_j", "R")
TRAJECTORY_FIELDS = ("time",) + STATE_FIELDS
N_STATE = len(STATE_FIELDS)

# Column indices into the state vector
IDX_N_I, IDX_N_J, IDX_Q_I, IDX_Q_J, IDX_R = range(N_STATE)


@dataclass(frozen=True)
class SimulationState:
    """Snapshot of the culture at time t."""
    t: float
    N_i: float
    N_j: float
    Q_i: float
    Q_j: float
    R: float

    def to_array(self) -> np.ndarray:
        """State vector without the time coordinate."""
        return np.array([self.N_i, self.N_j, self.Q_i, self.Q_j, self.R], dtype=float)

    @classmethod
    def from_array(cls, t: float, y) -> "SimulationState":
        y = np.asarray(y, dtype=float)
        if y.shape != (N_STATE,):
            raise ValueError(f"Expected state vector of shape ({N_STATE},), got {y.shape}")
        return cls(float(t), *(float(v) for v in y))

    def replace(self, **changes) -> "SimulationState":
        return dc_replace(self, **changes)

    def to_dict(self) -> Dict[str, float]:
        return {
            "time": self.t,
            "N_i": self.N_i, "N_j": self.N_j,
            "Q_i": self.Q_i, "Q_j": self.Q_j,
            "R": self.R,
        }


def droop_growth_rate(Q: float, params: KineticParameters) -> float:
    """Droop growth rate mu_inf * (1 - Qmin/Q). Requires Q > 0."""
    return params.mu_inf * (1.0 - params.Qmin / Q)


def quota_uptake_rate(R: float, Q: float, params: KineticParameters) -> float:
    """Monod uptake in R, throttled linearly as Q approaches Qmax."""
    monod = params.Vmax * R / (params.H_up + R)
    return monod * (params.Qmax - Q) / (params.Qmax - params.Qmin)


def competition_rhs(
    t: float,
    y: np.ndarray,
    strain_i: KineticParameters,
    strain_j: KineticParameters,
) -> np.ndarray:
    """
    Time derivative of the two-strain state vector.

    Signature matches scipy's ``fun(t, y, *args)`` convention. The
    KineticParameters invariants (Qmax > Qmin > 0) and Q > 0 are
    preconditions; they are checked once when the parameters are built,
    not on every call.

    Parameters
    ----------
    t : float
        Time (unused; the system is autonomous between pulses).
    y : np.ndarray
        State vector [N_i, N_j, Q_i, Q_j, R].
    strain_i, strain_j : KineticParameters
        Rate constants of the two strains.

    Returns
    -------
    np.ndarray
        dy/dt, shape (5,).
    """
    N_i, N_j, Q_i, Q_j, R = y
    # Solver overshoot can make R slightly negative; no uptake from nothing
    if R < 0.0:
        R = 0.0

    mu_i = droop_growth_rate(Q_i, strain_i)
    mu_j = droop_growth_rate(Q_j, strain_j)
    up_i = quota_uptake_rate(R, Q_i, strain_i)
    up_j = quota_uptake_rate(R, Q_j, strain_j)

    return np.array([
        N_i * (mu_i - strain_i.m),
        N_j * (mu_j - strain_j.m),
        up_i - mu_i * Q_i,
        up_j - mu_j * Q_j,
        -(up_i * N_i + up_j * N_j),
    ])


def total_nutrient(y: np.ndarray) -> np.ndarray:
    """Free plus cell-bound nutrient, R + Q_i N_i + Q_j N_j.

    Accepts a single state vector or an (n, 5) array of states.
    """
    y = np.asarray(y, dtype=float)
    return (
        y[..., IDX_R]
        + y[..., IDX_Q_I] * y[..., IDX_N_I]
        + y[..., IDX_Q_J] * y[..., IDX_N_J]
    )


def _check_pulse_args(fraction_replaced: float, R_in: float):
    if not 0.0 <= fraction_replaced <= 1.0:
        raise ValueError(f"fraction_replaced must be in [0, 1], got {fraction_replaced}")
    if not R_in >= 0.0:
        raise ValueError(f"R_in must be >= 0, got {R_in}")


def apply_pulse_array(y: np.ndarray, fraction_replaced: float, R_in: float) -> np.ndarray:
    """Pulse operator on a bare state vector. Returns a new array."""
    _check_pulse_args(fraction_replaced, R_in)
    keep = 1.0 - fraction_replaced
    out = np.array(y, dtype=float)
    out[IDX_N_I] *= keep
    out[IDX_N_J] *= keep
    out[IDX_R] = keep * out[IDX_R] + fraction_replaced * R_in
    return out


def apply_pulse(
    state: SimulationState,
    fraction_replaced: float,
    R_in: float,
) -> SimulationState:
    """
    Instantaneously replace a fraction of the medium.

    Populations are diluted by (1 - fraction_replaced), the nutrient mixes
    with inflow at R_in, quotas and time are unchanged.
    """
    _check_pulse_args(fraction_replaced, R_in)
    keep = 1.0 - fraction_replaced
    return SimulationState(
        t=state.t,
        N_i=keep * state.N_i,
        N_j=keep * state.N_j,
        Q_i=state.Q_i,
        Q_j=state.Q_j,
        R=keep * state.R + fraction_replaced * R_in,
    )
