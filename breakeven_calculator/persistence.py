import io
import json
import zipfile
from contextlib import suppress
from datetime import datetime, timezone

import pandas as pd
import streamlit as st

from breakeven_calculator.costs import COST_COLUMNS, clean_cost_frame
from breakeven_calculator.scenarios import ScenarioStore

BUNDLE_SCHEMA_VERSION = 1

# Scalar form values; rates are plain percentages here
STATE_KEYS = [
    "price_per_learner",
    "initial_learner_count",
    "monthly_growth_rate",
    "monthly_churn_rate",
]
COST_FRAMES = {
    "fixed_costs_df": "fixed_costs.csv",
    "variable_costs_df": "variable_costs.csv",
}


def _ensure_headless_session_state() -> None:
    # Outside `streamlit run` (pytest or plain Python) there is no runtime to own
    # SessionState. Install a process-wide one so reads see earlier writes.
    with suppress(Exception):
        from streamlit import runtime as _st_runtime

        if not _st_runtime.exists():
            import streamlit.runtime.state.session_state_proxy as _ssp
            from streamlit.runtime.state.safe_session_state import SafeSessionState as _SafeSS
            from streamlit.runtime.state.session_state import SessionState as _SS

            if not hasattr(st, "_bc_headless_state"):
                st._bc_headless_state = _SafeSS(_SS(), lambda: None)
            _ssp.get_session_state = lambda: st._bc_headless_state  # type: ignore[assignment]


_ensure_headless_session_state()


def collect_session_bundle(include_projection: bool) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        meta = {
            "schema_version": BUNDLE_SCHEMA_VERSION,
            "app_name": "Break-even Calculator",
            "exported_at": datetime.now(timezone.utc).isoformat(),
        }
        zf.writestr("metadata.json", json.dumps(meta, indent=2))

        state: dict[str, object] = {}
        for k in STATE_KEYS:
            if k in st.session_state:
                v = st.session_state.get(k)
                if hasattr(v, "item"):
                    with suppress(Exception):
                        v = v.item()
                if isinstance(v, (int, float, str, bool)) or v is None:
                    state[k] = v
        zf.writestr("state.json", json.dumps(state, indent=2))

        # cost tables
        for key, member in COST_FRAMES.items():
            df = st.session_state.get(key)
            if isinstance(df, pd.DataFrame):
                zf.writestr(member, clean_cost_frame(df).to_csv(index=False))

        # scenarios (storage records, rates scaled)
        store = st.session_state.get("scenario_store")
        if isinstance(store, ScenarioStore) and len(store) > 0:
            zf.writestr("scenarios.json", json.dumps({"scenarios": store.to_records()}, indent=2))

        if include_projection and (proj := st.session_state.get("projection_df")) is not None:
            with suppress(Exception):
                zf.writestr("projection.csv", proj.to_csv(index=False))

    buf.seek(0)
    return buf.getvalue()


def apply_session_bundle(file_like) -> None:
    _ensure_headless_session_state()

    with zipfile.ZipFile(file_like, mode="r") as zf:
        names = set(zf.namelist())
        if "metadata.json" in names:
            meta = json.loads(zf.read("metadata.json"))
            if int(meta.get("schema_version", 0)) != BUNDLE_SCHEMA_VERSION:
                raise ValueError("Unsupported bundle version. Please update the app.")

        # state
        with suppress(KeyError, ValueError):
            state = json.loads(zf.read("state.json"))
            if isinstance(state, dict):
                for k, v in state.items():
                    if k in STATE_KEYS:
                        st.session_state[k] = v

        # cost tables
        for key, member in COST_FRAMES.items():
            with suppress(KeyError, pd.errors.EmptyDataError):
                df = pd.read_csv(io.BytesIO(zf.read(member)), dtype={"id": str, "description": str})
                if {"description", "amount"}.issubset(df.columns):
                    st.session_state.update({key: clean_cost_frame(df)})

        # scenarios
        with suppress(KeyError):
            raw = json.loads(zf.read("scenarios.json"))
            st.session_state.update({"scenario_store": ScenarioStore.from_records(raw.get("scenarios", []))})

        with suppress(KeyError, pd.errors.EmptyDataError):
            proj = pd.read_csv(io.BytesIO(zf.read("projection.csv")))
            if {"month", "learners", "mrr"}.issubset(proj.columns):
                st.session_state.update({"projection_df": proj})

        # Cost editors expect a frame to exist
        for key in COST_FRAMES:
            if key not in st.session_state:
                st.session_state.update({key: pd.DataFrame(columns=COST_COLUMNS)})
