from breakeven_calculator.costs import CostLineItem, CostTable
from breakeven_calculator.model import compute_metrics, compute_projection, summarize_projection
from breakeven_calculator.types import Metrics, ParameterSet, ProjectionPeriod, ProjectionSummary

__all__ = [
    "CostLineItem",
    "CostTable",
    "Metrics",
    "ParameterSet",
    "ProjectionPeriod",
    "ProjectionSummary",
    "compute_metrics",
    "compute_projection",
    "summarize_projection",
]
