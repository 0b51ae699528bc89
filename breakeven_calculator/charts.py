from __future__ import annotations

import altair as alt
import pandas as pd

MRR_COLOR = "#2196F3"
LEARNERS_COLOR = "#27AE80"
BREAK_EVEN_COLOR = "#DC2626"


def _with_labels(frame: pd.DataFrame) -> pd.DataFrame:
    df = frame.copy()
    df["month_label"] = "M" + df["month"].astype(int).astype(str)
    return df


def mrr_chart(frame: pd.DataFrame, fixed_costs: float) -> alt.LayerChart:
    """MRR line over the projection with a dashed rule at the fixed-cost break-even level."""
    df = _with_labels(frame)
    months = df["month_label"].tolist()
    x = alt.X("month_label:N", title="Month", sort=months, axis=alt.Axis(labelAngle=0))

    line = (
        alt.Chart(df)
        .mark_line(point=True, strokeWidth=3, color=MRR_COLOR)
        .encode(
            x=x,
            y=alt.Y("mrr:Q", title="MRR (R)", axis=alt.Axis(format=",.0f")),
            tooltip=[
                alt.Tooltip("month:Q", title="Month"),
                alt.Tooltip("mrr:Q", title="MRR", format=",.0f"),
                alt.Tooltip("learners:Q", title="Learners", format=","),
            ],
        )
    )
    rule = (
        alt.Chart(pd.DataFrame({"break_even": [float(fixed_costs)]}))
        .mark_rule(color=BREAK_EVEN_COLOR, strokeDash=[5, 5], size=2)
        .encode(y="break_even:Q", tooltip=[alt.Tooltip("break_even:Q", title="Fixed costs", format=",.0f")])
    )
    return alt.layer(line, rule).properties(height=280, padding={"bottom": 20, "left": 5, "right": 5, "top": 5})


def learners_chart(frame: pd.DataFrame) -> alt.Chart:
    df = _with_labels(frame)
    months = df["month_label"].tolist()
    return (
        alt.Chart(df)
        .mark_bar(color=LEARNERS_COLOR, cornerRadiusTopLeft=4, cornerRadiusTopRight=4)
        .encode(
            x=alt.X("month_label:N", title="Month", sort=months, axis=alt.Axis(labelAngle=0)),
            y=alt.Y("learners:Q", title="Active learners"),
            tooltip=[alt.Tooltip("month:Q", title="Month"), alt.Tooltip("learners:Q", title="Learners", format=",")],
        )
        .properties(height=280)
    )
