"""
Failure taxonomy for pulsed competition runs.

Every failure that can end a single run is a subclass of
PulsedCompetitionError, so the sweep layer can record it against the
parameter combination that produced it and carry on with the rest.
"""

from typing import Optional


class PulsedCompetitionError(Exception):
    """Base class for all domain failures."""


class InvalidKineticParameters(PulsedCompetitionError, ValueError):
    """Size/temperature combination maps to unphysical rate constants.

    Raised when Qmax <= Qmin, Vmax <= 0, or the mu_inf denominator is not
    positive. Not retried: the same inputs always fail.
    """

    def __init__(
        self,
        message: str,
        size: Optional[float] = None,
        temperature: Optional[float] = None,
    ):
        super().__init__(message)
        self.size = size
        self.temperature = temperature


class ScheduleError(PulsedCompetitionError, ValueError):
    """Bad pulse period or requested sample times."""


class IntegrationFailure(PulsedCompetitionError, RuntimeError):
    """The stiff solver could not advance the state over one cycle."""

    def __init__(
        self,
        message: str,
        t_start: float = float("nan"),
        t_end: float = float("nan"),
        t_reached: float = float("nan"),
        n_steps: int = 0,
    ):
        super().__init__(message)
        self.t_start = t_start
        self.t_end = t_end
        self.t_reached = t_reached
        self.n_steps = n_steps

    def __str__(self) -> str:
        base = super().__str__()
        return (
            f"{base} (cycle [{self.t_start:g}, {self.t_end:g}], "
            f"reached t={self.t_reached:g} after {self.n_steps} steps)"
        )


class SweepPartialFailure(PulsedCompetitionError):
    """One or more sweep combinations failed.

    Only raised on request (SweepResult.raise_for_failures); the sweep
    itself always returns every successful trajectory.
    """

    def __init__(self, sweep_result):
        self.sweep_result = sweep_result
        failures = sweep_result.failures
        lines = [f"{len(failures)}/{len(sweep_result.results)} combinations failed:"]
        for r in failures:
            lines.append(f"  {r.combination}: {r.error_kind}: {r.error_message}")
        super().__init__("\n".join(lines))


class PhysicalBoundsWarning(RuntimeWarning):
    """Trajectory left Qmin <= Q <= Qmax, or produced negative N or R."""
