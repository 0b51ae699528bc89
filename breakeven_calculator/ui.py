from __future__ import annotations

import streamlit as st

from breakeven_calculator.types import Metrics

CURRENCY_SYMBOL = "R"


def inject_brand_styles() -> None:
    st.markdown(
        """
        <style>
        :root { --brand-primary: #2196F3; --brand-secondary: #27AE80; --brand-danger: #DC2626; --brand-bg: #F8FAFC; --brand-text: #1E293B; }
        html, body, .stApp { font-family: Helvetica, Arial, sans-serif; color: var(--brand-text); }
        .stApp { background-color: var(--brand-bg) !important; }
        h1, h2, h3, h4, h5, h6 { color: #334155; }
        [data-testid="stMetricValue"] { color: var(--brand-primary); }
        .stButton>button { background-color: var(--brand-secondary); color: #fff; border: 0; border-radius: 6px; }
        .stButton>button:hover { background-color: #1f8f69; }
        .stApp header { background: transparent; }
        </style>
        """,
        unsafe_allow_html=True,
    )


def render_brand_header(title: str, subtitle: str = "") -> None:
    st.markdown(
        f"<div style='padding-top:8px;'><h1 style='margin-bottom:0;'>{title}</h1>"
        + (f"<p style='color:#64748B;margin-top:4px;'>{subtitle}</p>" if subtitle else "")
        + "</div>",
        unsafe_allow_html=True,
    )
    st.divider()


def format_currency(value: float) -> str:
    return f"{CURRENCY_SYMBOL} {value:,.0f}"


def format_percent(value: float, decimals: int = 1) -> str:
    return f"{value:.{decimals}f}%"


def format_signed_percent(value: float) -> str:
    return f"{value:+.1f}%"


def format_count(value: float) -> str:
    return f"{value:,}"


def break_even_note(metrics: Metrics, fixed_costs: float) -> str | None:
    """Caption explaining a break-even learner count of 0, which can mean two different things."""
    if metrics.contribution_margin <= 0:
        return "Break-even is not achievable while the contribution margin is zero or negative."
    if fixed_costs <= 0:
        return "No learners are needed to break even: there are no fixed costs to cover."
    return None
