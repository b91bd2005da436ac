"""
CSV/JSON export of trajectories and sweep outcomes, and metaparameter files.
"""

import csv
import json
from pathlib import Path
from typing import Tuple, Union

import numpy as np

from .dynamics import TRAJECTORY_FIELDS
from .kinetics import MetaParameters
from .simulator import Trajectory
from .sweep import SweepResult


PathLike = Union[str, Path]


def save_trajectory_csv(trajectory: Trajectory, path: PathLike):
    """Write one header row (time, N_i, N_j, Q_i, Q_j, R) and one row per sample."""
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(TRAJECTORY_FIELDS)
        for row in trajectory.rows():
            writer.writerow([repr(v) for v in row])


def load_trajectory_csv(path: PathLike) -> Tuple[np.ndarray, np.ndarray]:
    """
    Read a file written by save_trajectory_csv.

    Returns
    -------
    time : np.ndarray
        Shape (n_times,).
    states : np.ndarray
        Shape (n_times, 5).
    """
    with open(path, newline="") as f:
        reader = csv.reader(f)
        header = tuple(next(reader))
        if header != TRAJECTORY_FIELDS:
            raise ValueError(f"Unexpected header {header}, expected {TRAJECTORY_FIELDS}")
        rows = [[float(v) for v in row] for row in reader if row]
    data = np.array(rows, dtype=float).reshape(-1, len(TRAJECTORY_FIELDS))
    return data[:, 0], data[:, 1:]


def save_sweep_csv(sweep: SweepResult, path: PathLike):
    """One row per combination with its status and final populations."""
    fieldnames = [
        "size_i", "size_j", "pulse_period", "success", "error_kind",
        "error_message", "final_N_i", "final_N_j", "final_R",
    ]
    with open(path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for row in sweep.to_dict()["results"]:
            writer.writerow({
                "size_i": row["size_i"],
                "size_j": row["size_j"],
                "pulse_period": row["pulse_period"],
                "success": row["success"],
                "error_kind": row["error_kind"] or "",
                "error_message": row["error_message"] or "",
                "final_N_i": row.get("final_N_i", ""),
                "final_N_j": row.get("final_N_j", ""),
                "final_R": row.get("final_R", ""),
            })


def save_sweep_json(sweep: SweepResult, path: PathLike, include_trajectories: bool = False):
    """Sweep summary as JSON, optionally with every successful trajectory."""
    data = sweep.to_dict()
    if include_trajectories:
        data["trajectories"] = [
            r.trajectory.to_dict() for r in sweep.results if r.success
        ]
    with open(path, "w") as f:
        json.dump(data, f, indent=2, default=str)


def load_metaparameters_json(path: PathLike) -> MetaParameters:
    """Metaparameters from a JSON object; missing keys keep their defaults."""
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}")
    return MetaParameters.from_dict(data)
