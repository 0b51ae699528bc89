from __future__ import annotations

import math
from typing import Sequence

import numpy as np
import pandas as pd

from breakeven_calculator.types import PROJECTION_MONTHS, Metrics, ParameterSet, ProjectionPeriod, ProjectionSummary


def _as_float(value: float) -> float:
    # ints beyond float range become signed inf instead of raising
    try:
        return float(value)
    except OverflowError:
        return math.inf if value > 0 else -math.inf


def _ceil(value: float) -> float:
    # math.ceil raises on inf/nan; let those flow through unchanged
    return math.ceil(value) if math.isfinite(value) else value


def _round(value: float) -> float:
    return round(value) if math.isfinite(value) else value


def compute_metrics(fixed_costs: float, params: ParameterSet) -> Metrics:
    """Unit economics and break-even point for the current costs and price.

    Notes:
    - Contribution margin may be negative (loss-making units); that is a result, not an error
    - CM ratio is a percentage and is 0 when the price is 0
    - Break-even learners is 0 when the contribution margin is not positive.
      0 means "not achievable", never "already broken even"
    - No validation is performed; every numeric input produces a result
    """

    fixed_costs = _as_float(fixed_costs)
    price = _as_float(params.price_per_learner)
    contribution_margin = price - _as_float(params.variable_cost_per_learner)
    cm_ratio = (contribution_margin / price) * 100 if price > 0 else 0.0
    break_even_learners = _ceil(fixed_costs / contribution_margin) if contribution_margin > 0 else 0
    break_even_mrr = break_even_learners * price if price else 0

    return Metrics(
        contribution_margin=contribution_margin,
        cm_ratio=cm_ratio,
        break_even_learners=break_even_learners,
        break_even_mrr=break_even_mrr,
        monthly_growth_rate=params.monthly_growth_rate,
        monthly_churn_rate=params.monthly_churn_rate,
    )


def compute_projection(params: ParameterSet) -> list[ProjectionPeriod]:
    """Simulate learners and MRR month by month over the fixed 12-month horizon.

    Model notes:
    - Month 1 takes the initial learner count as-is
    - From month 2, growth and churn are both applied to the previous month's base
    - The learner base is floored at 0
    - Output values are rounded; the unrounded base is carried to the next month
    """

    growth_rate = _as_float(params.monthly_growth_rate) / 100
    churn_rate = _as_float(params.monthly_churn_rate) / 100
    price = _as_float(params.price_per_learner)

    projection: list[ProjectionPeriod] = []
    current_learners = _as_float(params.initial_learner_count)

    for month in range(1, PROJECTION_MONTHS + 1):
        if month > 1:
            growth = current_learners * growth_rate
            churn = current_learners * churn_rate
            current_learners = max(0.0, current_learners + growth - churn)

        mrr = current_learners * price
        projection.append(ProjectionPeriod(month=month, learners=_round(current_learners), mrr=_round(mrr)))

    return projection


def projection_to_frame(periods: Sequence[ProjectionPeriod]) -> pd.DataFrame:
    return pd.DataFrame(
        [[p.month, p.learners, p.mrr] for p in periods],
        columns=["month", "learners", "mrr"],
    )


def find_break_even_month(periods: Sequence[ProjectionPeriod], fixed_costs: float) -> int | None:
    """First month whose MRR covers the fixed costs, or None within the horizon."""
    mrr = np.array([p.mrr for p in periods], dtype=float)
    hits = np.flatnonzero(mrr >= fixed_costs)
    if hits.size == 0:
        return None
    return int(periods[hits[0]].month)


def summarize_projection(
    periods: Sequence[ProjectionPeriod], fixed_costs: float, metrics: Metrics
) -> ProjectionSummary:
    last = periods[-1]
    return ProjectionSummary(
        break_even_month=find_break_even_month(periods, fixed_costs),
        final_mrr=last.mrr,
        final_learners=last.learners,
        arr=last.mrr * 12,
        net_growth_rate=metrics.monthly_growth_rate - metrics.monthly_churn_rate,
    )
