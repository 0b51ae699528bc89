import io
import os
import zipfile
from dataclasses import replace
from pathlib import Path
from typing import Optional

import pandas as pd
import streamlit as st
from streamlit.logger import get_logger

from breakeven_calculator.charts import learners_chart, mrr_chart
from breakeven_calculator.costs import COST_COLUMNS, CostTable, clean_cost_frame, cost_items_to_frame, read_cost_items
from breakeven_calculator.model import compute_metrics, compute_projection, projection_to_frame, summarize_projection
from breakeven_calculator.persistence import apply_session_bundle, collect_session_bundle
from breakeven_calculator.scenarios import (
    Scenario,
    ScenarioStore,
    ScenarioValidationError,
    decode_share_param,
    encode_share_link,
    scenario_to_payload,
)
from breakeven_calculator.types import Metrics, ParameterSet, ProjectionPeriod, ProjectionSummary
from breakeven_calculator.ui import (
    break_even_note,
    format_currency,
    format_count,
    format_percent,
    format_signed_percent,
    inject_brand_styles,
    render_brand_header,
)

# MUST be the first Streamlit call:
st.set_page_config(page_title="Break-even Calculator", layout="wide")

# Streamlit logger (appears in deployment logs)
logger = get_logger(__name__)
logger.info("App startup: Streamlit logger initialized")

SCENARIOS_PATH = Path(os.getenv("BREAKEVEN_SCENARIOS_PATH", "scenarios.json"))
SHARE_BASE_URL = os.getenv("BREAKEVEN_SHARE_BASE_URL", "http://localhost:8501")

COST_TABLES = {
    "fixed": ("fixed_costs_df", "Fixed Monthly Costs"),
    "variable": ("variable_costs_df", "Variable Costs per Learner"),
}

for _key, _ in COST_TABLES.values():
    if _key not in st.session_state:
        st.session_state[_key] = pd.DataFrame(columns=COST_COLUMNS)
if "scenario_store" not in st.session_state:
    try:
        st.session_state["scenario_store"] = ScenarioStore.load(SCENARIOS_PATH)
    except (ValueError, OSError) as e:
        logger.warning(f"Could not load scenarios from {SCENARIOS_PATH}: {e}")
        st.session_state["scenario_store"] = ScenarioStore()


def _get_state(key: str, default):
    return st.session_state.get(key, default)


def _store() -> ScenarioStore:
    return st.session_state["scenario_store"]


def _apply_pending_state_updates() -> None:
    """Apply any deferred session state updates before widgets render."""

    pending = st.session_state.pop("_pending_state_update", None)
    if isinstance(pending, dict):
        for k, v in pending.items():
            st.session_state[k] = v


def _queue_scenario_into_form(scenario: Scenario) -> None:
    # Widget keys cannot be written after the widgets exist; apply on the next run
    st.session_state["_pending_state_update"] = {
        "price_per_learner": float(scenario.params.price_per_learner),
        "initial_learner_count": int(scenario.params.initial_learner_count),
        "monthly_growth_rate": float(scenario.params.monthly_growth_rate),
        "monthly_churn_rate": float(scenario.params.monthly_churn_rate),
        "fixed_costs_df": cost_items_to_frame(scenario.fixed_costs),
        "variable_costs_df": cost_items_to_frame(scenario.variable_costs),
    }


def _load_shared_scenario() -> None:
    shared = st.query_params.get("scenario")
    if not shared:
        return
    try:
        scenario = decode_share_param(shared)
        _queue_scenario_into_form(scenario)
        logger.info(f"Loaded shared scenario {scenario.name!r} from query params")
    except ScenarioValidationError as e:
        logger.warning(f"Ignoring invalid shared scenario: {e}")
        st.session_state["_shared_error"] = str(e)
    del st.query_params["scenario"]
    st.rerun()


def _apply_pending_bundle() -> None:
    data = st.session_state.pop("_pending_bundle", None)
    if data is None:
        return
    try:
        apply_session_bundle(io.BytesIO(data))
        logger.info("Session bundle restored")
    except (ValueError, zipfile.BadZipFile) as e:
        st.session_state["_bundle_error"] = str(e)


_load_shared_scenario()
_apply_pending_bundle()
inject_brand_styles()
_apply_pending_state_updates()


def number_input_state(label: str, *, key: str, default_value, **kwargs):
    kwargs["key"] = key
    if key not in st.session_state:
        kwargs["value"] = default_value
    return st.number_input(label, **kwargs)


def slider_state(label: str, *, key: str, default_value, **kwargs):
    kwargs["key"] = key
    if key not in st.session_state:
        kwargs["value"] = default_value
    return st.slider(label, **kwargs)


def _apply_editor_changes(base: pd.DataFrame, changes: dict) -> pd.DataFrame:
    """Fold a data_editor change set (edited/added/deleted rows) into the base frame."""
    df = base.reset_index(drop=True).copy()
    for row, values in (changes.get("edited_rows") or {}).items():
        for col, val in values.items():
            df.loc[int(row), col] = val
    deleted = [int(i) for i in (changes.get("deleted_rows") or [])]
    if deleted:
        df = df.drop(index=deleted)
    added = changes.get("added_rows") or []
    if added:
        df = pd.concat([df, pd.DataFrame(added)], ignore_index=True)
    return clean_cost_frame(df)


def _on_cost_editor_change(state_key: str) -> None:
    changes = st.session_state.get(f"{state_key}_editor") or {}
    logger.info(f"Cost editor change for {state_key}: {changes}")
    st.session_state[state_key] = _apply_editor_changes(st.session_state[state_key], changes)


def cost_table_ui(kind: str) -> CostTable:
    state_key, title = COST_TABLES[kind]
    st.subheader(title)
    st.data_editor(
        st.session_state[state_key],
        num_rows="dynamic",
        column_config={
            "id": None,
            "description": st.column_config.TextColumn("Description", width="large"),
            "amount": st.column_config.NumberColumn("Amount (ZAR)", min_value=0.0, step=10.0, format="%.2f"),
        },
        hide_index=True,
        width="stretch",
        key=f"{state_key}_editor",
        on_change=_on_cost_editor_change,
        args=(state_key,),
    )
    table = CostTable.from_frame(kind, st.session_state[state_key])
    st.markdown(f"**Total {kind} costs:** {format_currency(table.total)}")

    with st.expander("Import from CSV/XLSX", expanded=False):
        file_obj = st.file_uploader(
            "Cost items file",
            type=["csv", "xlsx", "xls"],
            key=f"{state_key}_file",
            help="Two columns: description and amount",
        )
        has_header = st.checkbox("File has header row", value=True, key=f"{state_key}_has_header")
        if file_obj is not None and st.button("Replace table with file contents", key=f"{state_key}_import_btn"):
            try:
                items = read_cost_items(file_obj, has_header=has_header)
                st.session_state["_pending_state_update"] = {state_key: cost_items_to_frame(items)}
                logger.info(f"Imported {len(items)} {kind} cost items")
                st.rerun()
            except ValueError as e:
                st.error(f"Import failed: {e}")
    return table


def sidebar_inputs(variable_cost_total: float) -> ParameterSet:
    st.sidebar.header("Financial Parameters")

    with st.sidebar.expander("Pricing", expanded=True):
        price = number_input_state(
            "Price per learner (ZAR/month)",
            min_value=0.0,
            default_value=float(_get_state("price_per_learner", 0.0)),
            step=1.0,
            help="Monthly subscription fee per active learner",
            key="price_per_learner",
        )
        st.markdown(f"Total variable cost per learner: **{format_currency(variable_cost_total)}**")
        st.caption("Calculated from the variable cost table")

    with st.sidebar.expander("Learners", expanded=True):
        initial = number_input_state(
            "Initial learner count",
            min_value=0,
            default_value=int(_get_state("initial_learner_count", 0)),
            step=1,
            key="initial_learner_count",
        )

    with st.sidebar.expander("Growth & churn", expanded=True):
        growth = slider_state(
            "Monthly growth rate (%)",
            min_value=0.0,
            max_value=50.0,
            default_value=float(_get_state("monthly_growth_rate", 0.0)),
            step=0.5,
            key="monthly_growth_rate",
        )
        churn = slider_state(
            "Monthly churn rate (%)",
            min_value=0.0,
            max_value=25.0,
            default_value=float(_get_state("monthly_churn_rate", 0.0)),
            step=0.1,
            key="monthly_churn_rate",
        )

    return ParameterSet(
        price_per_learner=float(price),
        initial_learner_count=int(initial),
        monthly_growth_rate=float(growth),
        monthly_churn_rate=float(churn),
    ).with_variable_costs(variable_cost_total)


def render_metrics(metrics: Metrics, fixed_costs: float) -> None:
    st.subheader("Key Metrics")
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Contribution margin", format_currency(metrics.contribution_margin))
    col2.metric("CM ratio", format_percent(metrics.cm_ratio))
    col3.metric("Break-even learners", format_count(metrics.break_even_learners))
    col4.metric("Break-even MRR", format_currency(metrics.break_even_mrr))
    if (note := break_even_note(metrics, fixed_costs)) is not None:
        st.caption(note)


def render_charts(projection: list[ProjectionPeriod], fixed_costs: float, summary: ProjectionSummary) -> None:
    frame = projection_to_frame(projection)
    c1, c2 = st.columns(2)
    with c1:
        st.subheader("12-Month MRR Forecast")
        st.altair_chart(mrr_chart(frame, fixed_costs), use_container_width=True)
        if summary.break_even_reached:
            hit = projection[summary.break_even_month - 1]
            st.success(
                f"Break-even in Month {summary.break_even_month}. "
                f"MRR: {format_currency(hit.mrr)} | Learners: {hit.learners:,}"
            )
        else:
            st.warning("Break-even not reached in 12 months")
    with c2:
        st.subheader("Active Learner Growth")
        st.altair_chart(learners_chart(frame), use_container_width=True)


def render_summary(summary: ProjectionSummary) -> None:
    st.subheader("12-Month Summary")
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Final MRR (Month 12)", format_currency(summary.final_mrr))
    col2.metric("Final active learners", f"{summary.final_learners:,}")
    col3.metric("Annual recurring revenue", format_currency(summary.arr))
    col4.metric("Net growth rate", format_signed_percent(summary.net_growth_rate))


def render_calculator() -> tuple[CostTable, CostTable, ParameterSet]:
    c1, c2 = st.columns(2)
    with c1:
        fixed = cost_table_ui("fixed")
    with c2:
        variable = cost_table_ui("variable")

    params = sidebar_inputs(variable.total)
    metrics = compute_metrics(fixed.total, params)
    projection = compute_projection(params)
    summary = summarize_projection(projection, fixed.total, metrics)
    st.session_state["projection_df"] = projection_to_frame(projection)
    logger.info(f"Recomputed: fixed={fixed.total:.2f} params={params} break_even={metrics.break_even_learners}")

    st.divider()
    render_metrics(metrics, fixed.total)
    render_charts(projection, fixed.total, summary)
    render_summary(summary)
    with st.expander("Monthly details", expanded=False):
        st.dataframe(st.session_state["projection_df"], width="stretch", hide_index=True)
    return fixed, variable, params


def _scenario_payload(name: str, fixed: CostTable, variable: CostTable, params: ParameterSet) -> dict:
    # storage keeps rates in tenths of a percent
    params = replace(
        params,
        monthly_growth_rate=round(params.monthly_growth_rate, 1),
        monthly_churn_rate=round(params.monthly_churn_rate, 1),
    )
    return scenario_to_payload(Scenario(name=name, fixed_costs=fixed.items, variable_costs=variable.items, params=params))


def _persist_store() -> None:
    try:
        _store().save(SCENARIOS_PATH)
    except OSError as e:
        st.error(f"Could not write {SCENARIOS_PATH}: {e}")


def render_scenarios(fixed: CostTable, variable: CostTable, params: ParameterSet) -> None:
    st.subheader("Scenario Management")
    if (err := st.session_state.pop("_shared_error", None)) is not None:
        st.error(f"Shared scenario could not be loaded: {err}")

    with st.form("save_scenario_form", clear_on_submit=True):
        name = st.text_input("Scenario name", placeholder="e.g. Conservative Growth")
        submitted = st.form_submit_button("Save current as scenario")
    if submitted:
        try:
            scenario = _store().create(_scenario_payload(name, fixed, variable, params))
            _persist_store()
            st.success(f'Scenario "{scenario.name}" saved successfully')
        except ScenarioValidationError as e:
            st.error("Invalid data:\n" + "\n".join(f"- {d}" for d in e.details))

    scenarios = _store().list_for_user()
    if not scenarios:
        st.info("No saved scenarios yet.")
        return

    rows = []
    for s in scenarios:
        m = s.metrics()
        rows.append(
            {
                "id": s.id,
                "name": s.name,
                "price": s.params.price_per_learner,
                "growth %": s.params.monthly_growth_rate,
                "churn %": s.params.monthly_churn_rate,
                "break-even learners": m.break_even_learners,
                "month 12 MRR": s.projection()[-1].mrr,
            }
        )
    st.dataframe(pd.DataFrame(rows), width="stretch", hide_index=True)

    labels = {f"{s.id}: {s.name}": s.id for s in scenarios}
    choice = st.selectbox("Scenario", list(labels), key="scenario_choice")
    selected: Optional[Scenario] = _store().get(labels[choice]) if choice else None
    if selected is None:
        return

    c1, c2, c3, c4 = st.columns(4)
    if c1.button("Load", key="scenario_load_btn"):
        _queue_scenario_into_form(selected)
        logger.info(f"Loading scenario {selected.id}")
        st.rerun()
    if c2.button("Update with current", key="scenario_update_btn"):
        try:
            _store().update(selected.id, _scenario_payload(selected.name, fixed, variable, params))
            _persist_store()
            st.rerun()
        except ScenarioValidationError as e:
            st.error("Invalid data:\n" + "\n".join(f"- {d}" for d in e.details))
    if c3.button("Duplicate", key="scenario_dup_btn"):
        _store().duplicate(selected.id)
        _persist_store()
        st.rerun()
    if c4.button("Delete", key="scenario_del_btn"):
        _store().delete(selected.id)
        _persist_store()
        st.rerun()

    st.text_input("Share link", value=encode_share_link(selected, SHARE_BASE_URL), key="scenario_share_link")


def render_save_load() -> None:
    st.subheader("Save / Load session")
    include_proj = st.checkbox("Include projection results", value=False, key="include_projection")
    bundle = collect_session_bundle(include_proj)
    st.download_button(
        "Export my session (.zip)",
        data=bundle,
        file_name="breakeven_session.zip",
        mime="application/zip",
        key="export_btn",
    )
    uploaded = st.file_uploader("Restore session bundle (.zip)", type=["zip"], key="session_bundle")
    if (err := st.session_state.pop("_bundle_error", None)) is not None:
        st.error(f"Failed to load bundle: {err}")
    if uploaded is not None and st.button("Restore", key="restore_btn"):
        # Applied at the top of the next run, before the form widgets exist
        st.session_state["_pending_bundle"] = uploaded.getvalue()
        st.rerun()


def render_help() -> None:
    st.subheader("How the numbers are calculated")
    st.latex(r"CM = price - variable\ cost \qquad CM\% = \frac{CM}{price}\times 100")
    st.latex(r"learners_{BE} = \left\lceil \frac{fixed\ costs}{CM} \right\rceil \qquad MRR_{BE} = learners_{BE}\times price")
    st.latex(r"L_1 = L_0 \qquad L_t = \max\left(0,\ L_{t-1}\left(1 + \frac{g - c}{100}\right)\right)")
    st.markdown(
        """
- Month 1 uses the initial learner count as entered; growth and churn start in month 2.
- Learners and MRR are rounded for display only; the unrounded count carries into the next month.
- Break-even learners is 0 either when price does not exceed the variable cost per learner (not achievable) or when there are no fixed costs; a note under the metric says which.
- Growth and churn rates use steps of 0.1%; finer values are rounded to one decimal when a scenario is saved or shared.
- Scenarios are saved to a JSON file with growth and churn stored as tenths of a percent (8.5% → 85).
        """
    )


render_brand_header("Break-even Calculator", "Subscription platform financial planning tool")

tab_calc, tab_scen, tab_save, tab_help = st.tabs(["Calculator", "Scenarios", "Save / Load", "Help"])

with tab_calc:
    fixed_table, variable_table, current_params = render_calculator()

with tab_scen:
    render_scenarios(fixed_table, variable_table, current_params)

with tab_save:
    render_save_load()

with tab_help:
    render_help()
