import math

import numpy as np
import pytest

from breakeven_calculator.model import (
    compute_metrics,
    compute_projection,
    find_break_even_month,
    projection_to_frame,
    summarize_projection,
)
from breakeven_calculator.types import PROJECTION_MONTHS, ParameterSet, ProjectionPeriod


def _growth_params(**overrides) -> ParameterSet:
    base = dict(
        price_per_learner=299.0,
        variable_cost_per_learner=45.0,
        initial_learner_count=150,
        monthly_growth_rate=8.5,
        monthly_churn_rate=5.2,
    )
    base.update(overrides)
    return ParameterSet(**base)


def test_compute_metrics_break_even_reachable():
    m = compute_metrics(65500, ParameterSet(price_per_learner=299, variable_cost_per_learner=45))
    assert m.contribution_margin == 254
    assert m.cm_ratio == pytest.approx(84.95, abs=0.01)
    assert m.break_even_learners == 258
    assert m.break_even_mrr == 258 * 299 == 77142


def test_compute_metrics_unreachable_break_even():
    params = ParameterSet(price_per_learner=100, variable_cost_per_learner=150)
    for fixed in (0, 1, 65500, 1e9):
        m = compute_metrics(fixed, params)
        assert m.contribution_margin == -50
        assert m.break_even_learners == 0
        assert m.break_even_mrr == 0


def test_compute_metrics_zero_price_guard():
    m = compute_metrics(1000, ParameterSet(price_per_learner=0, variable_cost_per_learner=10))
    assert m.cm_ratio == 0
    assert m.break_even_learners == 0
    assert m.break_even_mrr == 0


def test_compute_metrics_echoes_rates():
    m = compute_metrics(0, _growth_params())
    assert m.monthly_growth_rate == 8.5
    assert m.monthly_churn_rate == 5.2
    # Zero fixed costs need zero learners
    assert m.break_even_learners == 0


def test_compute_metrics_break_even_guard_random():
    rng = np.random.default_rng(11)
    for _ in range(200):
        price = float(rng.uniform(0, 500))
        variable = price + float(rng.uniform(0, 200))
        fixed = float(rng.uniform(0, 1e6))
        m = compute_metrics(fixed, ParameterSet(price_per_learner=price, variable_cost_per_learner=variable))
        assert m.break_even_learners == 0
        assert m.break_even_mrr == 0


def test_compute_metrics_never_raises_on_extremes():
    m = compute_metrics(-500, ParameterSet(price_per_learner=10, variable_cost_per_learner=5))
    assert m.break_even_learners == -100

    m = compute_metrics(1e308, ParameterSet(price_per_learner=1e-300, variable_cost_per_learner=0))
    assert math.isinf(m.break_even_learners)

    m = compute_metrics(1e6, ParameterSet(price_per_learner=-10, variable_cost_per_learner=-20))
    assert m.cm_ratio == 0
    assert m.break_even_learners == 100000


def test_compute_functions_accept_ints_beyond_float_range():
    m = compute_metrics(10**400, ParameterSet(price_per_learner=299, variable_cost_per_learner=45))
    assert math.isinf(m.break_even_learners)
    assert math.isinf(m.break_even_mrr)

    m = compute_metrics(65500, ParameterSet(price_per_learner=10**400, variable_cost_per_learner=45))
    assert m.break_even_learners == 0
    assert math.isinf(m.contribution_margin)

    periods = compute_projection(
        ParameterSet(
            price_per_learner=299,
            initial_learner_count=10**400,
            monthly_growth_rate=8.5,
            monthly_churn_rate=5.2,
        )
    )
    assert len(periods) == PROJECTION_MONTHS
    assert all(math.isinf(p.learners) and math.isinf(p.mrr) for p in periods)


def test_compute_projection_growth_scenario():
    projection = compute_projection(_growth_params())
    assert len(projection) == PROJECTION_MONTHS
    assert [p.month for p in projection] == list(range(1, 13))
    assert projection[0] == ProjectionPeriod(month=1, learners=150, mrr=44850)
    assert projection[1].learners == 155
    assert projection[-1].learners == 214
    assert projection[-1].mrr == 64101


def test_compute_projection_carries_unrounded_base():
    projection = compute_projection(_growth_params())
    expected = 150.0
    for p in projection[1:]:
        expected = max(0.0, expected + expected * (8.5 / 100) - expected * (5.2 / 100))
        assert p.learners == round(expected)
        assert p.mrr == round(expected * 299.0)


def test_compute_projection_first_month_pass_through():
    params = ParameterSet(price_per_learner=12.5, initial_learner_count=37, monthly_growth_rate=50, monthly_churn_rate=0)
    first = compute_projection(params)[0]
    assert first.learners == 37
    assert first.mrr == round(37 * 12.5)


def test_compute_projection_floors_at_zero():
    projection = compute_projection(
        ParameterSet(price_per_learner=10, initial_learner_count=1, monthly_growth_rate=0, monthly_churn_rate=100)
    )
    assert projection[0].learners == 1
    assert all(p.learners == 0 for p in projection[1:])

    projection = compute_projection(
        ParameterSet(price_per_learner=10, initial_learner_count=5, monthly_growth_rate=0, monthly_churn_rate=250)
    )
    assert all(p.learners >= 0 and p.mrr >= 0 for p in projection)


def test_compute_projection_non_negative_random():
    rng = np.random.default_rng(3)
    for _ in range(200):
        params = ParameterSet(
            price_per_learner=float(rng.uniform(0, 500)),
            initial_learner_count=int(rng.integers(0, 5000)),
            monthly_growth_rate=float(rng.uniform(0, 50)),
            monthly_churn_rate=float(rng.uniform(0, 150)),
        )
        assert all(p.learners >= 0 for p in compute_projection(params))


def test_compute_functions_are_idempotent():
    params = _growth_params()
    assert compute_projection(params) == compute_projection(params)
    assert compute_metrics(65500, params) == compute_metrics(65500, params)


def test_projection_to_frame_columns():
    df = projection_to_frame(compute_projection(_growth_params()))
    assert list(df.columns) == ["month", "learners", "mrr"]
    assert len(df) == 12
    assert df["learners"].iloc[-1] == 214


def test_summarize_projection():
    params = _growth_params()
    projection = compute_projection(params)

    summary = summarize_projection(projection, 50000, compute_metrics(50000, params))
    assert summary.break_even_month == 5
    assert summary.break_even_reached
    assert summary.final_mrr == 64101
    assert summary.final_learners == 214
    assert summary.arr == 64101 * 12
    assert summary.net_growth_rate == pytest.approx(3.3)

    summary = summarize_projection(projection, 65500, compute_metrics(65500, params))
    assert summary.break_even_month is None
    assert not summary.break_even_reached


def test_find_break_even_month_zero_fixed_costs_is_month_one():
    projection = compute_projection(ParameterSet())
    assert find_break_even_month(projection, 0) == 1


# end
