"""
End-to-end walkthrough (visual).

Run with:
    streamlit run scripts/e2e_walkthrough.py

Tip: set breakpoints anywhere in breakeven_calculator/*
"""

import io
import os

import pandas as pd
import streamlit as st

from breakeven_calculator.charts import learners_chart, mrr_chart
from breakeven_calculator.costs import CostTable, read_cost_items
from breakeven_calculator.model import compute_metrics, compute_projection, projection_to_frame, summarize_projection
from breakeven_calculator.persistence import apply_session_bundle, collect_session_bundle
from breakeven_calculator.scenarios import ScenarioStore, scenario_to_record
from breakeven_calculator.types import ParameterSet

VISUALIZE = os.getenv("E2E_VISUALIZE", "1") != "0"

FIXED_CSV = "description,amount\nRent,40000\nSalaries,25500\n"
SCENARIOS = {
    "Conservative Growth": dict(monthly_growth_rate=5.0, monthly_churn_rate=4.0),
    "Base case": dict(monthly_growth_rate=8.5, monthly_churn_rate=5.2),
    "Aggressive Expansion": dict(monthly_growth_rate=20.0, monthly_churn_rate=6.0),
}


def _show(chart) -> None:
    if VISUALIZE:
        st.altair_chart(chart, use_container_width=True)


def main() -> None:
    st.title("E2E walkthrough")

    st.header("1) Cost tables")
    fixed = CostTable("fixed", read_cost_items(io.StringIO(FIXED_CSV)))
    variable = CostTable("variable")
    variable.add("Hosting", 20)
    variable.add("Content licence", 25)
    st.dataframe(fixed.to_frame(), hide_index=True)
    st.dataframe(variable.to_frame(), hide_index=True)
    st.write({"fixed_total": fixed.total, "variable_total": variable.total})

    st.header("2) Metrics and projection per scenario")
    store = ScenarioStore()
    rows = []
    for name, rates in SCENARIOS.items():
        params = ParameterSet(price_per_learner=299, initial_learner_count=150, **rates).with_variable_costs(
            variable.total
        )
        metrics = compute_metrics(fixed.total, params)
        projection = compute_projection(params)
        summary = summarize_projection(projection, fixed.total, metrics)
        rows.append(
            {
                "scenario": name,
                "break_even_learners": metrics.break_even_learners,
                "break_even_month": summary.break_even_month,
                "month_12_mrr": summary.final_mrr,
                "arr": summary.arr,
            }
        )
        store.create(
            {
                "name": name,
                "fixed_costs": [vars(c) for c in fixed.items],
                "variable_costs": [vars(c) for c in variable.items],
                "price_per_learner": params.price_per_learner,
                "variable_cost_per_learner": params.variable_cost_per_learner,
                "initial_learner_count": params.initial_learner_count,
                **rates,
            }
        )
        with st.expander(name, expanded=False):
            frame = projection_to_frame(projection)
            _show(mrr_chart(frame, fixed.total))
            _show(learners_chart(frame))
    st.dataframe(pd.DataFrame(rows), hide_index=True)

    st.header("3) Storage records (rates x10)")
    st.json([scenario_to_record(s) for s in store.list_for_user()])

    st.header("4) Session bundle roundtrip")
    st.session_state["fixed_costs_df"] = fixed.to_frame()
    st.session_state["variable_costs_df"] = variable.to_frame()
    st.session_state["scenario_store"] = store
    bundle = collect_session_bundle(include_projection=False)
    apply_session_bundle(io.BytesIO(bundle))
    restored = st.session_state["scenario_store"]
    st.write({"bundle_bytes": len(bundle), "restored_scenarios": len(restored)})


main()
