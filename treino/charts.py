from __future__ import annotations

from typing import Any, Dict

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def count_bar(df: pd.DataFrame, category: str, title: str, *, count_title: str = "Expressos") -> alt.Chart:
    counts = df[category].value_counts().rename_axis(category).reset_index(name="n")
    return (
        alt.Chart(counts)
        .mark_bar(cornerRadiusTopLeft=4, cornerRadiusTopRight=4)
        .encode(
            x=alt.X(f"{category}:N", title=title, sort="-y", axis=alt.Axis(labelAngle=0)),
            y=alt.Y("n:Q", title=count_title, axis=alt.Axis(gridDash=[4, 4], domain=False, ticks=False)),
            tooltip=[alt.Tooltip(f"{category}:N", title=title), alt.Tooltip("n:Q", title=count_title)],
        )
    )
