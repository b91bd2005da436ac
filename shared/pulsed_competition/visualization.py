"""
Plots of single trajectories and sweep outcomes.
"""

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.figure import Figure
from typing import Optional, Sequence

from .simulator import Trajectory
from .sweep import SweepResult, summarize_final_populations


plt.rcParams.update({
    'font.size': 10,
    'axes.labelsize': 11,
    'axes.titlesize': 11,
    'legend.fontsize': 9,
    'figure.dpi': 150,
    'savefig.dpi': 300,
    'savefig.bbox': 'tight',
})

STRAIN_COLORS = ('#1f77b4', '#d62728')


def plot_trajectory(
    trajectory: Trajectory,
    axes: Optional[Sequence[Axes]] = None,
    title: Optional[str] = None,
    mark_pulses: bool = True,
) -> Figure:
    """
    Three stacked panels: populations (log scale), quotas, nutrient.

    Parameters
    ----------
    trajectory : Trajectory
        Simulation output.
    axes : sequence of 3 Axes, optional
        Target axes (creates a new figure if None).
    title : str, optional
        Figure title.
    mark_pulses : bool
        Draw a dotted vertical line at every pulse.

    Returns
    -------
    Figure
    """
    if axes is None:
        fig, axes = plt.subplots(3, 1, figsize=(7, 8), sharex=True)
    else:
        fig = axes[0].figure
    ax_n, ax_q, ax_r = axes

    t = trajectory.time
    labels = (f"i (size {trajectory.size_i:g})", f"j (size {trajectory.size_j:g})")

    for name, label, color in zip(("N_i", "N_j"), labels, STRAIN_COLORS):
        n = trajectory.get(name)
        ax_n.plot(t, np.where(n > 0, n, np.nan), color=color, label=label, marker='.')
    ax_n.set_yscale('log')
    ax_n.set_ylabel('N (cells L$^{-1}$)')
    ax_n.legend(loc='best', framealpha=0.9)

    for name, label, color, strain in zip(
        ("Q_i", "Q_j"), labels, STRAIN_COLORS,
        (trajectory.strain_i, trajectory.strain_j),
    ):
        # Normalised to [Qmin, Qmax] so both strains share one axis
        q = trajectory.get(name)
        ax_q.plot(t, (q - strain.Qmin) / (strain.Qmax - strain.Qmin),
                  color=color, label=label, marker='.')
    ax_q.set_ylim(-0.05, 1.05)
    ax_q.set_ylabel('(Q - Qmin) / (Qmax - Qmin)')

    ax_r.plot(t, trajectory.get("R"), color='k', marker='.')
    ax_r.set_ylabel('R (umol N L$^{-1}$)')
    ax_r.set_xlabel('Time (days)')
    ax_r.set_xlim(t[0], t[-1])

    if mark_pulses:
        for p in trajectory.pulses:
            for ax in axes:
                ax.axvline(p.time, color='gray', linestyle=':', linewidth=0.8)

    if title:
        fig.suptitle(title)

    return fig


def plot_sweep_outcome(
    sweep: SweepResult,
    axis: str = "size_j",
    ax: Optional[Axes] = None,
    title: Optional[str] = None,
) -> Axes:
    """
    Final share of strain i, N_i / (N_i + N_j), against one swept axis.

    Combinations that differ in the other axes are drawn as separate
    series. Failed combinations are marked with an x on the baseline.

    Parameters
    ----------
    sweep : SweepResult
        Sweep output.
    axis : str
        "size_i", "size_j" or "pulse_period".
    ax : Axes, optional
        Matplotlib axes (creates new if None).
    title : str, optional
        Plot title.

    Returns
    -------
    Axes
    """
    columns = {"size_i": 0, "size_j": 1, "pulse_period": 2}
    if axis not in columns:
        raise ValueError(f"axis must be one of {list(columns)}, got '{axis}'")
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 4))

    col = columns[axis]
    others = [c for c in range(3) if c != col]
    table = summarize_final_populations(sweep)

    series = {}
    for row in table:
        key = tuple(row[others])
        series.setdefault(key, []).append((row[col], row[5]))

    names = list(columns)
    for key, points in sorted(series.items()):
        points.sort()
        x, share = zip(*points)
        label = ", ".join(f"{names[c]}={v:g}" for c, v in zip(others, key))
        ax.plot(x, share, marker='o', label=label)

    failed_x = [r.combination[col] for r in sweep.failures]
    if failed_x:
        ax.scatter(failed_x, np.zeros(len(failed_x)), marker='x', color='red',
                   label='failed', zorder=3)

    if axis != "pulse_period":
        ax.set_xscale('log')
    ax.set_xlabel(axis)
    ax.set_ylabel('Final share of strain i')
    ax.set_ylim(-0.05, 1.05)
    if series or failed_x:
        ax.legend(loc='best', framealpha=0.9)
    if title:
        ax.set_title(title)

    return ax
