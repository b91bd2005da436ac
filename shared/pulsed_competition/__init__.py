"""
Pulsed Competition: size-structured phytoplankton under periodic nutrient pulses.

Two strains with Droop (internal quota) growth compete for one nutrient.
Their rate constants follow allometric and Arrhenius scaling with cell size
and temperature. The medium is partially replaced at a fixed period, and
sweeps over sizes and periods run in parallel worker processes.
"""

from .errors import (
    PulsedCompetitionError,
    InvalidKineticParameters,
    ScheduleError,
    IntegrationFailure,
    SweepPartialFailure,
    PhysicalBoundsWarning,
)

from .kinetics import (
    BOLTZMANN_EV,
    MetaParameters,
    KineticParameters,
    DEFAULT_METAPARAMETERS,
    arrhenius_factor,
    compute_kinetic_parameters,
)

from .dynamics import (
    STATE_FIELDS,
    TRAJECTORY_FIELDS,
    SimulationState,
    competition_rhs,
    apply_pulse,
    total_nutrient,
)

from .integrator import (
    IntegratorAdapter,
    ScipyIntegrator,
)

from .simulator import (
    PulseSchedule,
    PulseEvent,
    Trajectory,
    CompetitionSimulator,
    simulate_competition,
)

from .sweep import (
    SweepSpecification,
    SweepSettings,
    CombinationResult,
    SweepResult,
    default_worker_count,
    run_sweep,
)

from .io import (
    save_trajectory_csv,
    load_trajectory_csv,
    save_sweep_csv,
    save_sweep_json,
    load_metaparameters_json,
)

__version__ = "0.1.0"
__all__ = [
    # Errors
    "PulsedCompetitionError",
    "InvalidKineticParameters",
    "ScheduleError",
    "IntegrationFailure",
    "SweepPartialFailure",
    "PhysicalBoundsWarning",
    # Kinetic parameter mapping
    "BOLTZMANN_EV",
    "MetaParameters",
    "KineticParameters",
    "DEFAULT_METAPARAMETERS",
    "arrhenius_factor",
    "compute_kinetic_parameters",
    # Dynamics and pulse operator
    "STATE_FIELDS",
    "TRAJECTORY_FIELDS",
    "SimulationState",
    "competition_rhs",
    "apply_pulse",
    "total_nutrient",
    # Integration
    "IntegratorAdapter",
    "ScipyIntegrator",
    # Simulation driver
    "PulseSchedule",
    "PulseEvent",
    "Trajectory",
    "CompetitionSimulator",
    "simulate_competition",
    # Sweeps
    "SweepSpecification",
    "SweepSettings",
    "CombinationResult",
    "SweepResult",
    "default_worker_count",
    "run_sweep",
    # Persistence
    "save_trajectory_csv",
    "load_trajectory_csv",
    "save_sweep_csv",
    "save_sweep_json",
    "load_metaparameters_json",
]
