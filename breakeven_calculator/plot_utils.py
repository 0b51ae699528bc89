"""
A simple plotting tool for visualizing a 12-month projection.
"""

from typing import Optional, Sequence

import matplotlib.pyplot as plt

from breakeven_calculator.model import find_break_even_month
from breakeven_calculator.types import ProjectionPeriod


def plot_projection(
    periods: Sequence[ProjectionPeriod],
    fixed_costs: float,
    title: Optional[str] = None,
    show_break_even: bool = True,
):
    """Plot MRR (left axis) and learners (right axis) using matplotlib.

    This creates a standard pop-up window via matplotlib when run in a local
    Python session (e.g., from a script or REPL).

    Parameters
    ----------
    periods : Sequence[ProjectionPeriod]
        Output of `compute_projection`.
    fixed_costs : float
        Total fixed monthly costs, drawn as the break-even level for MRR.
    title : Optional[str]
        Optional chart title. Defaults to a summary of the break-even month.
    show_break_even : bool
        If True, draw the fixed-cost line and mark the break-even month.

    Returns
    -------
    matplotlib.axes.Axes
        The MRR Axes object for further customization.
    """

    months = [p.month for p in periods]
    mrr = [p.mrr for p in periods]
    learners = [p.learners for p in periods]
    be_month = find_break_even_month(periods, fixed_costs)

    if title is None:
        title = (
            f"12-Month MRR Forecast (break-even in month {be_month})"
            if be_month is not None
            else "12-Month MRR Forecast (break-even not reached)"
        )

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.plot(months, mrr, marker="o", linewidth=2.2, label="MRR", color="#1f77b4")

    ax2 = ax.twinx()
    ax2.bar(months, learners, alpha=0.25, color="#2ca02c", label="Learners")
    ax2.set_ylabel("Learners")

    if show_break_even:
        ax.axhline(fixed_costs, color="#DB4437", linestyle="--", linewidth=1.2, label="Fixed costs")
        if be_month is not None:
            ax.axvline(be_month, color="#DB4437", linestyle=":", linewidth=1.0)

    ax.set_title(title)
    ax.set_ylabel("MRR")
    ax.set_xlabel("Month")
    ax.set_xticks(months)

    ax.grid(True, linestyle=":", alpha=0.5)
    ax.legend(loc="upper left")
    plt.tight_layout()
    plt.show()
    return ax
