"""
Hybrid continuous/discrete driver for pulsed two-strain competition.

A run alternates stiff integration of the Droop competition model with
instantaneous nutrient pulses at t = start + k * period:

    integrate [current, boundary]  ->  pulse last point in place  ->  repeat

until the cycle boundary reaches the run end time (the largest requested
sample time). The pulse overwrites the final row of the cycle, so the next
cycle starts from the post-pulse state at the same timestamp. Duplicate
timestamps are then collapsed keeping the later (post-pulse) row, and only
the requested sample times are returned.

No pulse is applied at the end time itself: a run whose period is at least
as long as the run is a single continuous integration.
"""

import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import ArrayLike

from .dynamics import (
    IDX_N_I, IDX_N_J, IDX_Q_I, IDX_Q_J, IDX_R,
    N_STATE,
    STATE_FIELDS,
    TRAJECTORY_FIELDS,
    SimulationState,
    apply_pulse_array,
    competition_rhs,
)
from .errors import PhysicalBoundsWarning, ScheduleError
from .integrator import IntegratorAdapter, ScipyIntegrator
from .kinetics import (
    DEFAULT_METAPARAMETERS,
    KineticParameters,
    MetaParameters,
    compute_kinetic_parameters,
)


# Relative distance under which a pulse boundary is snapped onto a
# requested sample time (guards against k * period round-off)
_SNAP_RTOL = 1e-12


@dataclass(frozen=True)
class PulseSchedule:
    """Fixed pulse period in days; pulses fall at start + k * period."""
    period: float

    def __post_init__(self):
        if not (np.isfinite(self.period) and self.period > 0):
            raise ScheduleError(f"Pulse period must be finite and > 0, got {self.period}")

    def boundaries(self, start: float, end: float) -> np.ndarray:
        """Pulse instants strictly between ``start`` and ``end``."""
        n = int(np.floor((end - start) / self.period))
        k = np.arange(1, n + 1)
        b = start + k * self.period
        return b[b < end]


@dataclass(frozen=True)
class PulseEvent:
    """One applied pulse, with the state on both sides of it."""
    time: float
    pre: SimulationState
    post: SimulationState


def prepare_sample_times(sample_times: ArrayLike, start: float = 0.0) -> np.ndarray:
    """
    Validate and normalise requested sample times.

    The start time is added implicitly and duplicates collapse. Raises
    ScheduleError for non-finite times, times before ``start``, or when no
    requested time lies after ``start``.
    """
    t = np.atleast_1d(np.asarray(sample_times, dtype=float))
    if t.ndim != 1:
        raise ScheduleError(f"Sample times must be one-dimensional, got shape {t.shape}")
    if not np.all(np.isfinite(t)):
        raise ScheduleError("Sample times must be finite")
    if np.any(t < start):
        raise ScheduleError(
            f"Sample times before the start time {start:g}: {t[t < start].tolist()}"
        )
    t = np.unique(np.append(t, start))
    if len(t) < 2:
        raise ScheduleError(f"Need at least one sample time after the start time {start:g}")
    return t


@dataclass
class Trajectory:
    """Sampled output of one simulation run."""

    # Sampled data
    time: np.ndarray                        # Shape (n_times,), strictly increasing
    states: np.ndarray                      # Shape (n_times, 5), STATE_FIELDS order

    # Run inputs
    size_i: float
    size_j: float
    strain_i: KineticParameters
    strain_j: KineticParameters
    pulse_period: float
    fraction_replaced: float
    R_in: float

    # Pulse log and solver metadata
    pulses: List[PulseEvent] = field(default_factory=list)
    n_cycles: int = 0
    n_steps: int = 0
    n_rhs_evals: int = 0
    solver: str = ""

    # Version info for reproducibility
    numpy_version: str = ""
    scipy_version: str = ""

    field_names: Tuple[str, ...] = TRAJECTORY_FIELDS

    def __repr__(self) -> str:
        return (
            f"Trajectory(\n"
            f"  n_times={len(self.time)}, t=[{self.time[0]:.2f}, {self.time[-1]:.2f}],\n"
            f"  sizes=({self.size_i:g}, {self.size_j:g}), period={self.pulse_period:g},\n"
            f"  n_pulses={len(self.pulses)}, n_cycles={self.n_cycles}\n"
            f")"
        )

    def __len__(self) -> int:
        return len(self.time)

    def __getitem__(self, idx: int) -> SimulationState:
        return SimulationState.from_array(self.time[idx], self.states[idx])

    def get(self, name: str) -> np.ndarray:
        """Column by field name ("time", "N_i", "N_j", "Q_i", "Q_j" or "R")."""
        if name == "time":
            return self.time
        if name not in STATE_FIELDS:
            raise KeyError(f"Field '{name}' not found. Available: {list(TRAJECTORY_FIELDS)}")
        return self.states[:, STATE_FIELDS.index(name)]

    @property
    def final_state(self) -> SimulationState:
        return self[-1]

    def rows(self) -> List[Tuple[float, ...]]:
        """Rows of (time, N_i, N_j, Q_i, Q_j, R) for tabular export."""
        return [
            (float(t),) + tuple(float(v) for v in y)
            for t, y in zip(self.time, self.states)
        ]

    def to_dict(self) -> Dict:
        return {
            "size_i": self.size_i,
            "size_j": self.size_j,
            "pulse_period": self.pulse_period,
            "fraction_replaced": self.fraction_replaced,
            "R_in": self.R_in,
            "strain_i": self.strain_i.to_dict(),
            "strain_j": self.strain_j.to_dict(),
            "fields": list(self.field_names),
            "rows": [list(r) for r in self.rows()],
            "pulse_times": [p.time for p in self.pulses],
            "n_cycles": self.n_cycles,
            "n_steps": self.n_steps,
            "n_rhs_evals": self.n_rhs_evals,
            "solver": self.solver,
            "numpy_version": self.numpy_version,
            "scipy_version": self.scipy_version,
        }


def check_physical_bounds(
    states: np.ndarray,
    strain_i: KineticParameters,
    strain_j: KineticParameters,
    rtol: float = 1e-4,
) -> List[str]:
    """
    List violations of Qmin <= Q <= Qmax, N >= 0 and R >= 0.

    These bounds hold for the exact solution but are only monitored, not
    enforced, on the numerical one; small overshoots within ``rtol`` of the
    relevant scale are ignored.
    """
    problems = []
    for idx, label, p in ((IDX_Q_I, "Q_i", strain_i), (IDX_Q_J, "Q_j", strain_j)):
        q = states[:, idx]
        slack = rtol * p.Qmax
        if np.any(q < p.Qmin - slack):
            problems.append(f"{label} below Qmin ({q.min():.4g} < {p.Qmin:.4g})")
        if np.any(q > p.Qmax + slack):
            problems.append(f"{label} above Qmax ({q.max():.4g} > {p.Qmax:.4g})")
    for idx, label in ((IDX_N_I, "N_i"), (IDX_N_J, "N_j"), (IDX_R, "R")):
        col = states[:, idx]
        scale = max(float(np.max(np.abs(col))), 1.0)
        if np.any(col < -rtol * scale):
            problems.append(f"{label} negative (min {col.min():.4g})")
    return problems


class CompetitionSimulator:
    """
    Simulator for two strains competing under periodic nutrient pulses.

    Examples
    --------
    >>> sim = CompetitionSimulator()
    >>> traj = sim.simulate(
    ...     size_i=100.0,
    ...     size_j=10000.0,
    ...     initial_state=SimulationState(0.0, 1e3, 1e3, 0.0, 0.0, 40.0),
    ...     fraction_replaced=0.3,
    ...     R_in=40.0,
    ...     pulse_period=14.0,
    ...     sample_times=[0, 7, 14, 21, 28],
    ... )
    >>> traj.get("N_i")
    """

    def __init__(
        self,
        meta: MetaParameters = DEFAULT_METAPARAMETERS,
        integrator: Optional[IntegratorAdapter] = None,
        check_bounds: bool = True,
        verbose: bool = False,
    ):
        """
        Parameters
        ----------
        meta : MetaParameters
            Allometric/temperature metaparameters shared by both strains.
        integrator : IntegratorAdapter, optional
            Defaults to ScipyIntegrator() (LSODA).
        check_bounds : bool
            Warn (PhysicalBoundsWarning) when the output leaves the
            physical bounds.
        verbose : bool
            Print one line per cycle.
        """
        self.meta = meta
        self.integrator = integrator if integrator is not None else ScipyIntegrator()
        self.check_bounds = check_bounds
        self.verbose = verbose

    def simulate(
        self,
        size_i: float,
        size_j: float,
        initial_state: SimulationState,
        fraction_replaced: float,
        R_in: float,
        pulse_period: float,
        sample_times: ArrayLike,
    ) -> Trajectory:
        """
        Run one pulsed competition experiment.

        Parameters
        ----------
        size_i, size_j : float
            Cell volumes of the two strains.
        initial_state : SimulationState
            Start time, populations and nutrient. Its quota fields are
            replaced by the midpoint of each strain's [Qmin, Qmax].
        fraction_replaced : float
            Fraction of the medium exchanged at each pulse, in [0, 1].
        R_in : float
            Nutrient concentration of the inflow, >= 0.
        pulse_period : float
            Days between pulses, > 0.
        sample_times : array_like
            Requested output times; the largest is the run end time.

        Returns
        -------
        Trajectory

        Raises
        ------
        InvalidKineticParameters
            A size maps to unphysical rate constants.
        ScheduleError
            Bad period or sample times (raised before any integration).
        IntegrationFailure
            The solver could not complete a cycle.
        """
        schedule = PulseSchedule(pulse_period)
        requested = prepare_sample_times(sample_times, start=initial_state.t)

        strain_i = compute_kinetic_parameters(size_i, self.meta)
        strain_j = compute_kinetic_parameters(size_j, self.meta)

        return self.simulate_with_parameters(
            strain_i, strain_j, initial_state, fraction_replaced, R_in,
            schedule, requested, size_i=size_i, size_j=size_j,
        )

    def simulate_with_parameters(
        self,
        strain_i: KineticParameters,
        strain_j: KineticParameters,
        initial_state: SimulationState,
        fraction_replaced: float,
        R_in: float,
        schedule: Union[PulseSchedule, float],
        sample_times: ArrayLike,
        size_i: float = float("nan"),
        size_j: float = float("nan"),
    ) -> Trajectory:
        """
        Run the pulse/integrate cycle with explicit strain parameters.

        Same as ``simulate`` but skips the size-to-parameter mapping, e.g.
        to study hand-built or degenerate strains.
        """
        import scipy

        if not isinstance(schedule, PulseSchedule):
            schedule = PulseSchedule(schedule)
        if not 0.0 <= fraction_replaced <= 1.0:
            raise ValueError(f"fraction_replaced must be in [0, 1], got {fraction_replaced}")
        if not R_in >= 0.0:
            raise ValueError(f"R_in must be >= 0, got {R_in}")

        start = float(initial_state.t)
        requested = prepare_sample_times(sample_times, start=start)
        end = float(requested[-1])

        y = initial_state.replace(
            Q_i=strain_i.Q_midpoint, Q_j=strain_j.Q_midpoint
        ).to_array()
        args = (strain_i, strain_j)
        atol_scale = np.array([1.0, 1.0, strain_i.Qmin, strain_j.Qmin, 1.0])

        blocks_t: List[np.ndarray] = []
        blocks_y: List[np.ndarray] = []
        pulses: List[PulseEvent] = []
        n_steps = 0
        n_rhs_evals = 0
        current = start
        n_cycles = 0
        cycle_ends = [
            self._snap(b, requested, end) for b in schedule.boundaries(start, end)
        ] + [end]

        for boundary in cycle_ends:
            if boundary <= current:
                continue
            n_cycles += 1
            inner = requested[(requested > current) & (requested < boundary)]
            times = np.concatenate(([current], inner, [boundary]))

            block = self.integrator.integrate(
                competition_rhs, y, times, args=args, atol_scale=atol_scale
            )
            n_steps += getattr(self.integrator, "last_n_steps", 0)
            n_rhs_evals += getattr(self.integrator, "last_nfev", 0)
            blocks_t.append(times)
            blocks_y.append(block)

            if self.verbose:
                print(f"  cycle {n_cycles}: t=[{current:g}, {boundary:g}], "
                      f"N_i={block[-1, IDX_N_I]:.4g}, N_j={block[-1, IDX_N_J]:.4g}, "
                      f"R={block[-1, IDX_R]:.4g}")

            if boundary >= end:
                break

            # Pulse overwrites the last point; its timestamp is kept
            pre = block[-1].copy()
            block[-1] = apply_pulse_array(pre, fraction_replaced, R_in)
            pulses.append(PulseEvent(
                time=boundary,
                pre=SimulationState.from_array(boundary, pre),
                post=SimulationState.from_array(boundary, block[-1]),
            ))
            current = boundary
            y = block[-1].copy()

        time, states = self._collapse(blocks_t, blocks_y, requested)

        if self.check_bounds:
            problems = check_physical_bounds(states, strain_i, strain_j)
            if problems:
                warnings.warn(
                    f"Trajectory (sizes {size_i:g}, {size_j:g}, period "
                    f"{schedule.period:g}) left physical bounds: " + "; ".join(problems),
                    PhysicalBoundsWarning,
                )

        return Trajectory(
            time=time,
            states=states,
            size_i=size_i,
            size_j=size_j,
            strain_i=strain_i,
            strain_j=strain_j,
            pulse_period=schedule.period,
            fraction_replaced=fraction_replaced,
            R_in=R_in,
            pulses=pulses,
            n_cycles=n_cycles,
            n_steps=n_steps,
            n_rhs_evals=n_rhs_evals,
            solver=repr(self.integrator),
            numpy_version=np.__version__,
            scipy_version=scipy.__version__,
        )

    @staticmethod
    def _snap(boundary: float, requested: np.ndarray, end: float) -> float:
        """Use the requested time instead of a boundary a round-off away."""
        tol = _SNAP_RTOL * max(abs(end), 1.0)
        close = requested[np.abs(requested - boundary) <= tol]
        return float(close[0]) if len(close) else boundary

    @staticmethod
    def _collapse(
        blocks_t: Sequence[np.ndarray],
        blocks_y: Sequence[np.ndarray],
        requested: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Drop earlier rows of repeated timestamps, keep requested times."""
        t = np.concatenate(blocks_t)
        y = np.vstack(blocks_y)

        # Later row wins among equal timestamps (post-pulse state)
        keep = np.ones(len(t), dtype=bool)
        keep[:-1] = t[1:] != t[:-1]
        t, y = t[keep], y[keep]

        wanted = np.isin(t, requested)
        return t[wanted], y[wanted].reshape(-1, N_STATE)


# Convenience functions

def simulate_competition(
    size_i: float,
    size_j: float,
    initial_state: SimulationState,
    fraction_replaced: float,
    R_in: float,
    pulse_period: float,
    sample_times: ArrayLike,
    meta: MetaParameters = DEFAULT_METAPARAMETERS,
    **kwargs,
) -> Trajectory:
    """
    Convenience function to run one simulation.

    Parameters
    ----------
    size_i, size_j, initial_state, fraction_replaced, R_in, pulse_period,
    sample_times
        See CompetitionSimulator.simulate().
    meta : MetaParameters
        Metaparameters shared by both strains.
    **kwargs
        Passed to ScipyIntegrator() (method, rtol, atol, max_steps,
        max_wall_time).

    Returns
    -------
    Trajectory
    """
    sim = CompetitionSimulator(meta=meta, integrator=ScipyIntegrator(**kwargs))
    return sim.simulate(
        size_i, size_j, initial_state, fraction_replaced, R_in,
        pulse_period, sample_times,
    )
