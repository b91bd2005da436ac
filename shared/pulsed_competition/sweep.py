"""
Parameter sweeps over (size_i, size_j, pulse_period) combinations.

Each combination is one independent simulation run. Runs are dispatched to
a process pool; the shared inputs (metaparameters, initial state, pulse
strength, sample times, solver settings) travel to every worker by value
inside a frozen SweepSettings, so workers never touch module-level state.

A failed combination becomes a CombinationResult carrying the failure kind
and message. It never aborts the sweep and never appears as a trajectory.
"""

import os
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from itertools import product
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from .dynamics import SimulationState
from .errors import PulsedCompetitionError, SweepPartialFailure
from .integrator import make_integrator
from .kinetics import DEFAULT_METAPARAMETERS, MetaParameters
from .simulator import CompetitionSimulator, Trajectory


Combination = Tuple[float, float, float]   # (size_i, size_j, pulse_period)


@dataclass(frozen=True)
class SweepSpecification:
    """
    Ordered collection of (size_i, size_j, pulse_period) triples.

    Grids and explicit lists are the same thing once built; the size and
    period sweeps below are projections of a Cartesian grid.
    """
    combinations: Tuple[Combination, ...]

    def __post_init__(self):
        normalised = tuple(
            (float(a), float(b), float(p)) for a, b, p in self.combinations
        )
        object.__setattr__(self, "combinations", normalised)
        if len(set(normalised)) != len(normalised):
            raise ValueError("Duplicate combinations in sweep specification")

    def __len__(self) -> int:
        return len(self.combinations)

    def __iter__(self):
        return iter(self.combinations)

    @classmethod
    def from_list(cls, triples: Iterable[Sequence[float]]) -> "SweepSpecification":
        triples = list(triples)
        for t in triples:
            if len(t) != 3:
                raise ValueError(f"Expected (size_i, size_j, pulse_period), got {t}")
        return cls(tuple(tuple(t) for t in triples))

    @classmethod
    def from_grid(
        cls,
        sizes_i: Sequence[float],
        sizes_j: Sequence[float],
        periods: Sequence[float],
    ) -> "SweepSpecification":
        """Cartesian product of the three axes."""
        return cls(tuple(product(sizes_i, sizes_j, periods)))

    @classmethod
    def size_sweep(
        cls,
        sizes_j: Sequence[float],
        size_i: float,
        period: float,
    ) -> "SweepSpecification":
        """Vary the competitor size against a fixed focal strain and period."""
        return cls.from_grid([size_i], sizes_j, [period])

    @classmethod
    def period_sweep(
        cls,
        periods: Sequence[float],
        size_i: float,
        size_j: float,
    ) -> "SweepSpecification":
        """Vary the pulse period for a fixed pair of sizes."""
        return cls.from_grid([size_i], [size_j], periods)


@dataclass(frozen=True)
class SweepSettings:
    """Inputs shared by every combination of a sweep (read-only)."""
    initial_state: SimulationState
    fraction_replaced: float
    R_in: float
    sample_times: Tuple[float, ...]
    meta: MetaParameters = DEFAULT_METAPARAMETERS

    # Integrator settings
    method: str = "LSODA"
    rtol: float = 1e-6
    atol: float = 1e-9
    max_steps: int = 50_000
    max_wall_time: Optional[float] = None

    check_bounds: bool = True

    def __post_init__(self):
        object.__setattr__(
            self, "sample_times", tuple(float(t) for t in self.sample_times)
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initial_state": self.initial_state.to_dict(),
            "fraction_replaced": self.fraction_replaced,
            "R_in": self.R_in,
            "sample_times": list(self.sample_times),
            "meta": self.meta.to_dict(),
            "method": self.method,
            "rtol": self.rtol,
            "atol": self.atol,
            "max_steps": self.max_steps,
            "max_wall_time": self.max_wall_time,
        }


@dataclass
class CombinationResult:
    """Outcome of one combination: a trajectory or an explicit failure."""
    combination: Combination
    trajectory: Optional[Trajectory] = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return self.trajectory is not None and self.error_kind is None

    def __repr__(self) -> str:
        size_i, size_j, period = self.combination
        label = f"sizes=({size_i:g}, {size_j:g}), period={period:g}"
        if not self.success:
            return f"CombinationResult({label}: FAILED - {self.error_kind}: {self.error_message})"
        final = self.trajectory.final_state
        return f"CombinationResult({label}: N_i={final.N_i:.4g}, N_j={final.N_j:.4g})"


@dataclass
class SweepResult:
    """All combination outcomes of a sweep, in specification order."""
    results: List[CombinationResult]
    parameters: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""

    def __repr__(self) -> str:
        return (
            f"SweepResult(\n"
            f"  n_successful={self.n_successful}/{self.n_total},\n"
            f"  n_failed={self.n_failed}\n"
            f")"
        )

    def __len__(self) -> int:
        return len(self.results)

    def __getitem__(self, combination: Sequence[float]) -> CombinationResult:
        key = tuple(float(v) for v in combination)
        for r in self.results:
            if r.combination == key:
                return r
        raise KeyError(f"Combination {key} not in sweep")

    @property
    def n_total(self) -> int:
        return len(self.results)

    @property
    def successes(self) -> List[CombinationResult]:
        return [r for r in self.results if r.success]

    @property
    def failures(self) -> List[CombinationResult]:
        return [r for r in self.results if not r.success]

    @property
    def n_successful(self) -> int:
        return len(self.successes)

    @property
    def n_failed(self) -> int:
        return len(self.failures)

    def trajectories(self) -> Dict[Combination, Trajectory]:
        return {r.combination: r.trajectory for r in self.successes}

    def final_populations(self) -> Dict[Combination, Tuple[float, float]]:
        """Final (N_i, N_j) of every successful combination."""
        out = {}
        for r in self.successes:
            final = r.trajectory.final_state
            out[r.combination] = (final.N_i, final.N_j)
        return out

    def raise_for_failures(self):
        """Raise SweepPartialFailure if any combination failed."""
        if self.failures:
            raise SweepPartialFailure(self)

    def to_dict(self) -> Dict[str, Any]:
        rows = []
        for r in self.results:
            row = {
                "size_i": r.combination[0],
                "size_j": r.combination[1],
                "pulse_period": r.combination[2],
                "success": r.success,
                "error_kind": r.error_kind,
                "error_message": r.error_message,
                "elapsed": r.elapsed,
            }
            if r.success:
                final = r.trajectory.final_state
                row["final_N_i"] = final.N_i
                row["final_N_j"] = final.N_j
                row["final_R"] = final.R
            rows.append(row)
        return {
            "n_total": self.n_total,
            "n_successful": self.n_successful,
            "n_failed": self.n_failed,
            "timestamp": self.timestamp,
            "parameters": self.parameters,
            "results": rows,
        }


def default_worker_count() -> int:
    """All available cores but one, which is left to the controlling process."""
    return max(1, (os.cpu_count() or 1) - 1)


def run_combination(combination: Combination, settings: SweepSettings) -> CombinationResult:
    """
    Simulate one combination and capture any domain failure.

    Module level so ProcessPoolExecutor can pickle it.
    """
    size_i, size_j, period = combination
    started = time.perf_counter()
    simulator = CompetitionSimulator(
        meta=settings.meta,
        integrator=make_integrator(
            method=settings.method,
            rtol=settings.rtol,
            atol=settings.atol,
            max_steps=settings.max_steps,
            max_wall_time=settings.max_wall_time,
        ),
        check_bounds=settings.check_bounds,
    )
    try:
        trajectory = simulator.simulate(
            size_i, size_j,
            settings.initial_state,
            settings.fraction_replaced,
            settings.R_in,
            period,
            settings.sample_times,
        )
    except PulsedCompetitionError as e:
        return CombinationResult(
            combination=combination,
            error_kind=type(e).__name__,
            error_message=str(e),
            elapsed=time.perf_counter() - started,
        )
    return CombinationResult(
        combination=combination,
        trajectory=trajectory,
        elapsed=time.perf_counter() - started,
    )


def _unexpected_failure(combination: Combination, exc: BaseException) -> CombinationResult:
    return CombinationResult(
        combination=combination,
        error_kind=type(exc).__name__,
        error_message=str(exc),
    )


def run_sweep(
    spec: SweepSpecification,
    settings: SweepSettings,
    n_workers: Optional[int] = None,
    verbose: bool = False,
) -> SweepResult:
    """
    Run every combination of a sweep.

    Parameters
    ----------
    spec : SweepSpecification
        Combinations to simulate.
    settings : SweepSettings
        Inputs shared by all combinations.
    n_workers : int, optional
        Worker processes. Defaults to default_worker_count(); 1 runs all
        combinations in the calling process.
    verbose : bool
        Show a progress bar and a summary line.

    Returns
    -------
    SweepResult
        One CombinationResult per combination, in specification order.
        Failures are recorded, not raised; see SweepResult.raise_for_failures.
    """
    if n_workers is None:
        n_workers = default_worker_count()
    if n_workers < 1:
        raise ValueError(f"n_workers must be >= 1, got {n_workers}")

    combinations = list(spec)
    results: List[Optional[CombinationResult]] = [None] * len(combinations)

    if verbose:
        print(f"Running {len(combinations)} combinations on {n_workers} worker(s)...")

    if n_workers == 1 or len(combinations) <= 1:
        iterator = enumerate(combinations)
        if verbose:
            iterator = tqdm(iterator, total=len(combinations), desc="  sweep")
        for idx, combo in iterator:
            try:
                results[idx] = run_combination(combo, settings)
            except Exception as e:
                results[idx] = _unexpected_failure(combo, e)
    else:
        with ProcessPoolExecutor(max_workers=n_workers) as executor:
            futures = {
                executor.submit(run_combination, combo, settings): idx
                for idx, combo in enumerate(combinations)
            }
            completed = as_completed(futures)
            if verbose:
                completed = tqdm(completed, total=len(futures), desc="  sweep")
            for future in completed:
                idx = futures[future]
                try:
                    results[idx] = future.result()
                except Exception as e:
                    results[idx] = _unexpected_failure(combinations[idx], e)

    sweep = SweepResult(
        results=results,
        parameters={**settings.to_dict(), "n_workers": n_workers},
        timestamp=datetime.now().isoformat(),
    )

    if verbose:
        print(f"  {sweep.n_successful}/{sweep.n_total} successful")
        for r in sweep.failures:
            print(f"  FAILED {r.combination}: {r.error_kind}: {r.error_message}")

    return sweep


def summarize_final_populations(sweep: SweepResult) -> np.ndarray:
    """
    Table of final outcomes, one row per successful combination.

    Columns: size_i, size_j, pulse_period, N_i, N_j, fraction of strain i.
    """
    rows = []
    for (size_i, size_j, period), (n_i, n_j) in sweep.final_populations().items():
        total = n_i + n_j
        share = n_i / total if total > 0 else np.nan
        rows.append((size_i, size_j, period, n_i, n_j, share))
    return np.array(rows, dtype=float).reshape(-1, 6)
