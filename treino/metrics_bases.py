from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import pandas as pd

from treino.constants import MICROSSEGURO_LIMIT_NO_SEARCH
from treino.filters import BaseFilters
from treino.projector import certificate_message, format_brl, status_tone


def _matches(df: pd.DataFrame, q: str) -> pd.Series:
    joined = df.astype(str).agg(" ".join, axis=1).str.lower()
    return joined.str.contains(q.strip().lower(), regex=False)


def compute_microsseguro(filters: BaseFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("microsseguro", pd.DataFrame())
    if df.empty:
        return {"filters": asdict(filters), "totals": {"total": 0, "exibidos": 0, "soma_vendas": 0.0}, "rows": [], "options": {}}

    options = {
        "agencias": sorted({v for v in df["agencia"] if v}),
        "supervisoes": sorted({v for v in df["supervisao"] if v}),
    }
    if filters.agencia:
        df = df[df["agencia"] == filters.agencia]
    if filters.supervisao:
        df = df[df["supervisao"] == filters.supervisao]
    if filters.q and not df.empty:
        df = df[_matches(df[["chave_loja", "expresso", "agencia", "supervisao"]], filters.q)]

    total = int(len(df))
    soma = float(df["vendas_2026"].sum()) if total else 0.0
    shown = df if filters.q else df.head(MICROSSEGURO_LIMIT_NO_SEARCH)
    rows = shown.assign(vendas_fmt=shown["vendas_2026"].map(format_brl)).to_dict(orient="records")
    return {
        "filters": asdict(filters),
        "totals": {"total": total, "exibidos": len(rows), "soma_vendas": soma, "soma_vendas_fmt": format_brl(soma)},
        "rows": rows,
        "options": options,
    }


def compute_pessoa_certificada(filters: BaseFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Ad-hoc lookup: nothing is listed until there is a search term."""
    df: pd.DataFrame = ctx.get("certificados", pd.DataFrame())
    if df.empty or not filters.q:
        return {"filters": asdict(filters), "total_base": int(len(df)), "rows": []}

    found = df[_matches(df, filters.q)]
    rows = found.to_dict(orient="records")
    for row in rows:
        row["tone"] = status_tone(row.get("status_prova"))
        row["message"] = certificate_message(row)
    return {"filters": asdict(filters), "total_base": int(len(df)), "rows": rows}
