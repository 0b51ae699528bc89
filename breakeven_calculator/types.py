from dataclasses import dataclass, replace
from typing import Optional

# Fixed projection horizon (months 1..12)
PROJECTION_MONTHS = 12


@dataclass(frozen=True)
class ParameterSet:
    """Exogenous inputs for one recompute. Rates are plain percentages (8.5 means 8.5%)."""

    price_per_learner: float = 0.0
    variable_cost_per_learner: float = 0.0
    initial_learner_count: float = 0
    monthly_growth_rate: float = 0.0
    monthly_churn_rate: float = 0.0

    def with_variable_costs(self, total_variable_costs: float) -> "ParameterSet":
        return replace(self, variable_cost_per_learner=float(total_variable_costs))


@dataclass(frozen=True)
class Metrics:
    contribution_margin: float
    cm_ratio: float  # percent
    break_even_learners: float
    break_even_mrr: float
    monthly_growth_rate: float
    monthly_churn_rate: float


@dataclass(frozen=True)
class ProjectionPeriod:
    month: int
    learners: int
    mrr: int


@dataclass(frozen=True)
class ProjectionSummary:
    break_even_month: Optional[int]
    final_mrr: int
    final_learners: int
    arr: int
    net_growth_rate: float

    @property
    def break_even_reached(self) -> bool:
        return self.break_even_month is not None
