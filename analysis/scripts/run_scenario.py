"""
Single pulsed-competition run.

Usage:
    python analysis/scripts/run_scenario.py --size_i 100 --size_j 10000 \
        --period 14 --fraction 0.3 --R_in 40 --end 28 --step 7 --output data/scenario

Writes <output>.csv (one row per sample time), <output>.json (full record)
and <output>.png (populations, quotas and nutrient over time).
"""

import matplotlib
matplotlib.use('Agg')

import argparse
import json
import os

import numpy as np

from pulsed_competition import (
    DEFAULT_METAPARAMETERS,
    SimulationState,
    load_metaparameters_json,
    save_trajectory_csv,
    simulate_competition,
)
from pulsed_competition.visualization import plot_trajectory


def main():
    parser = argparse.ArgumentParser(
        description="Two strains competing under periodic nutrient pulses"
    )
    parser.add_argument('--size_i', type=float, default=100.0,
                        help='Cell volume of strain i (default: 100)')
    parser.add_argument('--size_j', type=float, default=1e4,
                        help='Cell volume of strain j (default: 10000)')
    parser.add_argument('--N0', type=float, default=1e3,
                        help='Initial density of each strain (default: 1000)')
    parser.add_argument('--R0', type=float, default=40.0,
                        help='Initial nutrient concentration (default: 40)')
    parser.add_argument('--period', type=float, default=14.0,
                        help='Days between pulses (default: 14)')
    parser.add_argument('--fraction', type=float, default=0.3,
                        help='Fraction of medium replaced per pulse (default: 0.3)')
    parser.add_argument('--R_in', type=float, default=40.0,
                        help='Inflow nutrient concentration (default: 40)')
    parser.add_argument('--end', type=float, default=28.0,
                        help='Run length in days (default: 28)')
    parser.add_argument('--step', type=float, default=1.0,
                        help='Sampling interval in days (default: 1)')
    parser.add_argument('--method', type=str, default='LSODA',
                        choices=['LSODA', 'BDF', 'Radau'],
                        help='Stiff solver (default: LSODA)')
    parser.add_argument('--meta', type=str, default=None,
                        help='JSON file overriding metaparameters (default: none)')
    parser.add_argument('--output', type=str, default='data/scenario',
                        help='Output path prefix (default: data/scenario)')
    parser.add_argument('--verbose', action='store_true',
                        help='Print one line per pulse cycle')

    args = parser.parse_args()

    output_dir = os.path.dirname(args.output)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    meta = load_metaparameters_json(args.meta) if args.meta else DEFAULT_METAPARAMETERS
    sample_times = np.arange(0.0, args.end + 0.5 * args.step, args.step)
    initial = SimulationState(t=0.0, N_i=args.N0, N_j=args.N0, Q_i=0.0, Q_j=0.0, R=args.R0)

    traj = simulate_competition(
        size_i=args.size_i,
        size_j=args.size_j,
        initial_state=initial,
        fraction_replaced=args.fraction,
        R_in=args.R_in,
        pulse_period=args.period,
        sample_times=sample_times,
        meta=meta,
        method=args.method,
    )
    print(traj)

    save_trajectory_csv(traj, args.output + '.csv')
    with open(args.output + '.json', 'w') as f:
        json.dump(traj.to_dict(), f, indent=2, default=str)

    fig = plot_trajectory(
        traj,
        title=f"sizes {args.size_i:g} vs {args.size_j:g}, period {args.period:g} d",
    )
    fig.savefig(args.output + '.png')

    final = traj.final_state
    print(f"\nFinal state at t={final.t:g}:")
    print(f"  N_i = {final.N_i:.4g}")
    print(f"  N_j = {final.N_j:.4g}")
    print(f"  R   = {final.R:.4g}")
    print(f"\nResults saved to {args.output}.csv/.json/.png")


if __name__ == '__main__':
    main()
