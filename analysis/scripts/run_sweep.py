"""
Parallel sweep over strain sizes and pulse periods.

Usage:
    python analysis/scripts/run_sweep.py --sizes_i 100 --sizes_j 1 10 100 1000 10000 \
        --periods 7 14 28 --workers 4 --output data/sweep

Every (size_i, size_j, period) combination is one run. Failed combinations
are reported and written to the outputs, never dropped silently.
"""

import matplotlib
matplotlib.use('Agg')

import argparse
import os
import sys

import numpy as np

from pulsed_competition import (
    DEFAULT_METAPARAMETERS,
    SimulationState,
    SweepSettings,
    SweepSpecification,
    load_metaparameters_json,
    run_sweep,
    save_sweep_csv,
    save_sweep_json,
)
from pulsed_competition.visualization import plot_sweep_outcome


def main():
    parser = argparse.ArgumentParser(
        description="Sweep of pulsed two-strain competition"
    )
    parser.add_argument('--sizes_i', type=float, nargs='+', default=[100.0],
                        help='Sizes of strain i (default: 100)')
    parser.add_argument('--sizes_j', type=float, nargs='+',
                        default=[1.0, 10.0, 1e3, 1e4, 1e5],
                        help='Sizes of strain j (default: 1 10 1000 10000 100000)')
    parser.add_argument('--periods', type=float, nargs='+', default=[14.0],
                        help='Pulse periods in days (default: 14)')
    parser.add_argument('--N0', type=float, default=1e3,
                        help='Initial density of each strain (default: 1000)')
    parser.add_argument('--R0', type=float, default=40.0,
                        help='Initial nutrient concentration (default: 40)')
    parser.add_argument('--fraction', type=float, default=0.3,
                        help='Fraction of medium replaced per pulse (default: 0.3)')
    parser.add_argument('--R_in', type=float, default=40.0,
                        help='Inflow nutrient concentration (default: 40)')
    parser.add_argument('--end', type=float, default=365.0,
                        help='Run length in days (default: 365)')
    parser.add_argument('--step', type=float, default=1.0,
                        help='Sampling interval in days (default: 1)')
    parser.add_argument('--method', type=str, default='LSODA',
                        choices=['LSODA', 'BDF', 'Radau'],
                        help='Stiff solver (default: LSODA)')
    parser.add_argument('--max_wall_time', type=float, default=None,
                        help='Wall-clock ceiling per cycle in seconds (default: none)')
    parser.add_argument('--meta', type=str, default=None,
                        help='JSON file overriding metaparameters (default: none)')
    parser.add_argument('--workers', type=int, default=None,
                        help='Worker processes (default: all cores but one)')
    parser.add_argument('--with_trajectories', action='store_true',
                        help='Include every trajectory in the JSON output')
    parser.add_argument('--strict', action='store_true',
                        help='Exit with status 1 if any combination failed')
    parser.add_argument('--output', type=str, default='data/sweep',
                        help='Output path prefix (default: data/sweep)')

    args = parser.parse_args()

    output_dir = os.path.dirname(args.output)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    spec = SweepSpecification.from_grid(args.sizes_i, args.sizes_j, args.periods)
    settings = SweepSettings(
        initial_state=SimulationState(
            t=0.0, N_i=args.N0, N_j=args.N0, Q_i=0.0, Q_j=0.0, R=args.R0
        ),
        fraction_replaced=args.fraction,
        R_in=args.R_in,
        sample_times=np.arange(0.0, args.end + 0.5 * args.step, args.step),
        meta=load_metaparameters_json(args.meta) if args.meta else DEFAULT_METAPARAMETERS,
        method=args.method,
        max_wall_time=args.max_wall_time,
    )

    sweep = run_sweep(spec, settings, n_workers=args.workers, verbose=True)

    save_sweep_csv(sweep, args.output + '.csv')
    save_sweep_json(sweep, args.output + '.json', include_trajectories=args.with_trajectories)

    # One outcome plot per swept axis that actually varies
    for axis, values in (("size_i", args.sizes_i), ("size_j", args.sizes_j),
                         ("pulse_period", args.periods)):
        if len(values) > 1:
            ax = plot_sweep_outcome(sweep, axis=axis)
            ax.figure.savefig(f"{args.output}_{axis}.png")

    print(f"\nResults saved to {args.output}.csv/.json")

    if args.strict and sweep.n_failed:
        sys.exit(1)


if __name__ == '__main__':
    main()
