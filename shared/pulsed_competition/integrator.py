"""
Stiff ODE integration over one pulse cycle.

The simulator only needs one operation from an integrator: advance a state
through an ordered list of times and return the state at each of them.
IntegratorAdapter fixes that contract; ScipyIntegrator implements it with
scipy's adaptive implicit solvers.

ScipyIntegrator drives the scipy OdeSolver step by step (what solve_ivp
does internally) so that a step-count and wall-clock ceiling can be applied
per cycle. Exceeding either, or any solver failure, raises
IntegrationFailure; a truncated trajectory is never returned.
"""

import time
from typing import Callable, Optional, Tuple, Union

import numpy as np
from numpy.typing import ArrayLike
from scipy.integrate import BDF, LSODA, Radau

from .errors import IntegrationFailure


STIFF_METHODS = {
    "LSODA": LSODA,     # switches between Adams and BDF automatically
    "BDF": BDF,
    "Radau": Radau,
}


class IntegratorAdapter:
    """
    Contract for the integrator used by the simulation driver.

    Subclasses implement ``_integrate``. ``integrate`` validates the time
    sequence first: it must be finite, strictly increasing and contain at
    least two entries, the first being the time of ``y0``.
    """

    def integrate(
        self,
        rhs: Callable,
        y0: ArrayLike,
        times: ArrayLike,
        args: Tuple = (),
        atol_scale: Optional[ArrayLike] = None,
    ) -> np.ndarray:
        """
        Integrate ``rhs`` from ``y0`` at ``times[0]`` through ``times``.

        Parameters
        ----------
        rhs : callable
            ``rhs(t, y, *args) -> dy/dt``.
        y0 : array_like
            State at ``times[0]``.
        times : array_like
            Strictly increasing output times.
        args : tuple
            Extra arguments for ``rhs``.
        atol_scale : array_like, optional
            Per-component multiplier for the absolute tolerance, for states
            whose components differ by orders of magnitude.

        Returns
        -------
        np.ndarray
            Shape (len(times), len(y0)); row 0 equals ``y0``.

        Raises
        ------
        IntegrationFailure
        """
        times = np.asarray(times, dtype=float)
        if times.ndim != 1 or len(times) < 2:
            raise IntegrationFailure("Need at least two output times")
        if not np.all(np.isfinite(times)):
            raise IntegrationFailure("Output times must be finite")
        if not np.all(np.diff(times) > 0):
            raise IntegrationFailure(
                "Output times must be strictly increasing",
                t_start=times[0], t_end=times[-1], t_reached=times[0],
            )
        y0 = np.asarray(y0, dtype=float)
        if not np.all(np.isfinite(y0)):
            raise IntegrationFailure(
                "Initial state is not finite",
                t_start=times[0], t_end=times[-1], t_reached=times[0],
            )
        return self._integrate(rhs, y0, times, args, atol_scale)

    def _integrate(self, rhs, y0, times, args, atol_scale) -> np.ndarray:
        raise NotImplementedError


class ScipyIntegrator(IntegratorAdapter):
    """
    Adaptive implicit integration with scipy.integrate.

    Parameters
    ----------
    method : str
        "LSODA" (default), "BDF" or "Radau".
    rtol, atol : float
        Relative and absolute tolerances.
    max_step : float
        Maximum step size.
    max_steps : int
        Ceiling on solver steps per call (one pulse cycle).
    max_wall_time : float, optional
        Ceiling on wall-clock seconds per call. None disables it.

    Attributes
    ----------
    last_n_steps, last_nfev : int
        Steps taken and RHS evaluations of the most recent call. An
        instance is meant to serve one run at a time.
    """

    def __init__(
        self,
        method: str = "LSODA",
        rtol: float = 1e-6,
        atol: float = 1e-9,
        max_step: float = np.inf,
        max_steps: int = 50_000,
        max_wall_time: Optional[float] = None,
    ):
        if method not in STIFF_METHODS:
            raise ValueError(
                f"Unknown method '{method}'. Stiff-capable methods: {list(STIFF_METHODS)}"
            )
        if rtol <= 0 or atol <= 0:
            raise ValueError(f"Tolerances must be > 0 (rtol={rtol}, atol={atol})")
        if max_steps < 1:
            raise ValueError(f"max_steps must be >= 1, got {max_steps}")
        if max_wall_time is not None and max_wall_time <= 0:
            raise ValueError(f"max_wall_time must be > 0, got {max_wall_time}")

        self.method = method
        self.rtol = rtol
        self.atol = atol
        self.max_step = max_step
        self.max_steps = max_steps
        self.max_wall_time = max_wall_time
        self.last_n_steps = 0
        self.last_nfev = 0

    def __repr__(self) -> str:
        return (
            f"ScipyIntegrator(method={self.method!r}, rtol={self.rtol}, "
            f"atol={self.atol}, max_steps={self.max_steps})"
        )

    def _integrate(self, rhs, y0, times, args, atol_scale) -> np.ndarray:
        t0, t_end = float(times[0]), float(times[-1])

        if args:
            def fun(t, y):
                return rhs(t, y, *args)
        else:
            fun = rhs

        atol: Union[float, np.ndarray] = self.atol
        if atol_scale is not None:
            atol = self.atol * np.asarray(atol_scale, dtype=float)

        solver = STIFF_METHODS[self.method](
            fun, t0, y0, t_end,
            rtol=self.rtol, atol=atol, max_step=self.max_step,
        )

        out = np.empty((len(times), len(y0)))
        out[0] = y0
        next_idx = 1
        n_steps = 0
        started = time.perf_counter()

        while next_idx < len(times):
            message = solver.step()
            n_steps += 1

            if solver.status == "failed":
                self._record(n_steps, solver)
                raise IntegrationFailure(
                    f"{self.method} failed: {message}",
                    t_start=t0, t_end=t_end, t_reached=solver.t, n_steps=n_steps,
                )

            # Fill every requested time covered by this step
            stop_idx = np.searchsorted(times, solver.t, side="right")
            if stop_idx > next_idx:
                interpolant = solver.dense_output()
                out[next_idx:stop_idx] = interpolant(times[next_idx:stop_idx]).T
                next_idx = stop_idx

            if next_idx >= len(times):
                break
            if n_steps >= self.max_steps:
                self._record(n_steps, solver)
                raise IntegrationFailure(
                    f"Step ceiling of {self.max_steps} reached",
                    t_start=t0, t_end=t_end, t_reached=solver.t, n_steps=n_steps,
                )
            if (self.max_wall_time is not None
                    and time.perf_counter() - started > self.max_wall_time):
                self._record(n_steps, solver)
                raise IntegrationFailure(
                    f"Wall-clock ceiling of {self.max_wall_time:g}s reached",
                    t_start=t0, t_end=t_end, t_reached=solver.t, n_steps=n_steps,
                )

        self._record(n_steps, solver)
        if not np.all(np.isfinite(out)):
            raise IntegrationFailure(
                "Non-finite values in integrated trajectory",
                t_start=t0, t_end=t_end, t_reached=solver.t, n_steps=n_steps,
            )
        return out

    def _record(self, n_steps: int, solver):
        self.last_n_steps = n_steps
        self.last_nfev = int(solver.nfev)


def make_integrator(
    method: str = "LSODA",
    rtol: float = 1e-6,
    atol: float = 1e-9,
    max_steps: int = 50_000,
    max_wall_time: Optional[float] = None,
) -> ScipyIntegrator:
    """Build the default integrator from plain settings (picklable inputs)."""
    return ScipyIntegrator(
        method=method, rtol=rtol, atol=atol,
        max_steps=max_steps, max_wall_time=max_wall_time,
    )
