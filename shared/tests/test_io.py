"""
Tests for CSV/JSON persistence.
"""

import csv
import json

import numpy as np
import pytest

from pulsed_competition.dynamics import SimulationState
from pulsed_competition.io import (
    load_metaparameters_json,
    load_trajectory_csv,
    save_sweep_csv,
    save_sweep_json,
    save_trajectory_csv,
)
from pulsed_competition.kinetics import DEFAULT_METAPARAMETERS
from pulsed_competition.simulator import simulate_competition
from pulsed_competition.sweep import SweepSettings, SweepSpecification, run_sweep


INITIAL = SimulationState(t=0.0, N_i=1e3, N_j=1e3, Q_i=0.0, Q_j=0.0, R=40.0)


class TestTrajectoryCSV:

    def setup_method(self):
        self.traj = simulate_competition(
            100.0, 1e4, INITIAL, 0.3, 40.0, 14.0, [0, 7, 14, 21, 28]
        )

    def test_header_and_rows(self, tmp_path):
        path = tmp_path / "traj.csv"
        save_trajectory_csv(self.traj, path)

        with open(path, newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0] == ["time", "N_i", "N_j", "Q_i", "Q_j", "R"]
        assert len(rows) == 6
        assert float(rows[3][0]) == 14.0

    def test_values_exact(self, tmp_path):
        path = tmp_path / "traj.csv"
        save_trajectory_csv(self.traj, path)
        time, states = load_trajectory_csv(path)

        np.testing.assert_array_equal(time, self.traj.time)
        np.testing.assert_array_equal(states, self.traj.states)

    def test_wrong_header(self, tmp_path):
        path = tmp_path / "other.csv"
        path.write_text("t,a,b\n1,2,3\n")
        with pytest.raises(ValueError, match="Unexpected header"):
            load_trajectory_csv(path)


class TestSweepExport:

    def setup_method(self):
        spec = SweepSpecification.from_list([(100.0, 1e4, 14.0), (1e-8, 100.0, 14.0)])
        settings = SweepSettings(
            initial_state=INITIAL, fraction_replaced=0.3, R_in=40.0,
            sample_times=[0, 14, 28],
        )
        self.sweep = run_sweep(spec, settings, n_workers=1)

    def test_csv(self, tmp_path):
        path = tmp_path / "sweep.csv"
        save_sweep_csv(self.sweep, path)

        with open(path, newline="") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 2
        assert rows[0]["success"] == "True"
        assert rows[0]["error_kind"] == ""
        assert float(rows[0]["final_N_i"]) > 0
        assert rows[1]["success"] == "False"
        assert rows[1]["error_kind"] == "InvalidKineticParameters"
        assert rows[1]["final_N_i"] == ""

    def test_json_summary(self, tmp_path):
        path = tmp_path / "sweep.json"
        save_sweep_json(self.sweep, path)

        with open(path) as f:
            data = json.load(f)
        assert data["n_total"] == 2
        assert data["n_successful"] == 1
        assert "trajectories" not in data

    def test_json_with_trajectories(self, tmp_path):
        path = tmp_path / "sweep.json"
        save_sweep_json(self.sweep, path, include_trajectories=True)

        with open(path) as f:
            data = json.load(f)
        assert len(data["trajectories"]) == 1
        assert data["trajectories"][0]["pulse_times"] == [14.0]
        assert len(data["trajectories"][0]["rows"]) == 3


class TestMetaparametersJSON:

    def test_partial_override(self, tmp_path):
        path = tmp_path / "meta.json"
        path.write_text(json.dumps({"T": 300.0}))
        meta = load_metaparameters_json(path)
        assert meta.T == 300.0
        assert meta.Qmin_a == DEFAULT_METAPARAMETERS.Qmin_a

    def test_round_trip(self, tmp_path):
        path = tmp_path / "meta.json"
        path.write_text(json.dumps(DEFAULT_METAPARAMETERS.to_dict()))
        assert load_metaparameters_json(path) == DEFAULT_METAPARAMETERS

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "meta.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(ValueError, match="JSON object"):
            load_metaparameters_json(path)

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "meta.json"
        path.write_text(json.dumps({"temperature": 300.0}))
        with pytest.raises(ValueError, match="Unknown"):
            load_metaparameters_json(path)
