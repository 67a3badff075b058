from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List

import pandas as pd

from treino.charts import count_bar, to_vega_spec
from treino.classify import (
    BUCKET_TRANSACIONAL,
    BUCKET_TREINADO,
    EXPIRED,
    EXPIRING_SOON,
    NO_CERTIFICATION,
    OK,
    certification_due,
    classify_frame,
    trained_and_zeroed,
    transacting_only,
)
from treino.filters import ExpressoFilters
from treino.ingest import matches_query
from treino.projector import certification_label, certification_message, format_date_ptbr

# Geral page certification filter -> classifier statuses.
CERT_FILTER_STATUSES = {
    "nao": {NO_CERTIFICATION},
    "ok": {OK, EXPIRING_SOON},
    "vencida": {EXPIRED},
}


def _options(df: pd.DataFrame) -> Dict[str, List[str]]:
    def uniq(col: str) -> List[str]:
        if col not in df.columns:
            return []
        return sorted({v for v in df[col].astype(str) if v})

    return {"agencias": uniq("agencia"), "municipios": uniq("municipio")}


def _eq(series: pd.Series, value: str) -> pd.Series:
    return series.astype(str).str.strip().str.lower() == value.strip().lower()


def _text_mask(df: pd.DataFrame, cols: List[str], q: str) -> pd.Series:
    return df.apply(lambda r: matches_query([str(r[c]) for c in cols], q), axis=1).astype(bool)


def _display(df: pd.DataFrame) -> List[Dict[str, Any]]:
    out = df.copy()
    if "dt_certificacao" in out.columns:
        out["dt_certificacao_fmt"] = out["dt_certificacao"].map(format_date_ptbr)
    if "cert_expiry" in out.columns:
        out["cert_expiry_fmt"] = out["cert_expiry"].map(format_date_ptbr)
    if "cert_status" in out.columns:
        out["cert_label"] = out["cert_status"].map(certification_label)
    return out.to_dict(orient="records")


def _empty(filters: ExpressoFilters, **extra: Any) -> Dict[str, Any]:
    return {"filters": asdict(filters), "summary": {}, "rows": [], "options": {"agencias": [], "municipios": []}, "charts": {}, **extra}


def compute_geral(filters: ExpressoFilters, ctx: Dict[str, Any], *, today: date) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("banco", pd.DataFrame())
    if df.empty:
        return _empty(filters)
    df = classify_frame(df, today)
    options = _options(df)

    if filters.agencia:
        df = df[_eq(df["agencia"], filters.agencia)]
    if filters.municipio:
        df = df[_eq(df["municipio"], filters.municipio)]
    if filters.chave:
        df = df[df["chave"].str.lower().str.contains(filters.chave.lower(), regex=False)]
    if filters.cert in CERT_FILTER_STATUSES:
        df = df[df["cert_status"].isin(CERT_FILTER_STATUSES[filters.cert])]
    if filters.trx != "todos":
        df = df[df["trx_band"] == filters.trx]
    if filters.status != "todos":
        df = df[df["status_bucket"] == filters.status]
    if filters.q and not df.empty:
        df = df[_text_mask(df, ["chave", "nome", "municipio", "agencia", "pacb"], filters.q)]

    assignments: Dict[str, Dict[str, Any]] = ctx.get("assignments") or {}
    df = df.copy()
    df["agendamento_status"] = df["chave"].map(lambda k: (assignments.get(k) or {}).get("status", ""))
    df["agendamento_trainer"] = df["chave"].map(lambda k: (assignments.get(k) or {}).get("trainerEmail", ""))

    summary = {
        "total": int(len(df)),
        "transacionando": int((df["status_bucket"] == BUCKET_TRANSACIONAL).sum()),
        "treinados": int((df["status_bucket"] == BUCKET_TREINADO).sum()),
        "sem_certificacao": int((df["cert_status"] == NO_CERTIFICATION).sum()),
        "certificacao_vencida": int((df["cert_status"] == EXPIRED).sum()),
        "bloqueados": int(df["bloqueado"].sum()),
    }

    charts: Dict[str, Any] = {}
    if not df.empty:
        labelled = df.assign(certificacao=df["cert_status"].map(certification_label))
        charts["certificacao"] = to_vega_spec(count_bar(labelled, "certificacao", "Certificação"))
        charts["trx"] = to_vega_spec(count_bar(df, "trx_band", "TRX"))

    return {
        "filters": asdict(filters),
        "summary": summary,
        "rows": _display(df),
        "options": options,
        "charts": charts,
    }


def compute_transacionando(filters: ExpressoFilters, ctx: Dict[str, Any], *, today: date) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("banco", pd.DataFrame())
    if df.empty:
        return _empty(filters)
    df = classify_frame(transacting_only(df), today)
    options = _options(df)
    if not df.empty:
        if filters.agencia:
            df = df[_eq(df["agencia"], filters.agencia)]
        if filters.status != "todos":
            df = df[df["status_bucket"] == filters.status]
        if filters.q and not df.empty:
            df = df[_text_mask(df, ["nome", "chave"], filters.q)]
        df = df.sort_values("trx", ascending=False, kind="stable")
    return {
        "filters": asdict(filters),
        "summary": {"total": int(len(df)), "trx_total": float(df["trx"].sum()) if not df.empty else 0.0},
        "rows": _display(df),
        "options": options,
        "charts": {},
    }


def compute_treinados_zerados(filters: ExpressoFilters, ctx: Dict[str, Any], *, today: date) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("banco", pd.DataFrame())
    if df.empty:
        return _empty(filters)
    df = classify_frame(trained_and_zeroed(df), today)
    options = _options(df)
    if not df.empty:
        if filters.agencia:
            df = df[_eq(df["agencia"], filters.agencia)]
        if filters.municipio:
            df = df[_eq(df["municipio"], filters.municipio)]
        if filters.q and not df.empty:
            df = df[_text_mask(df, ["nome", "chave", "municipio", "agencia", "pacb"], filters.q)]
        df = df.sort_values("nome", kind="stable")
    return {
        "filters": asdict(filters),
        "summary": {"total": int(len(df))},
        "rows": _display(df),
        "options": options,
        "charts": {},
    }


def compute_certificacao_vencida(filters: ExpressoFilters, ctx: Dict[str, Any], *, today: date) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("banco", pd.DataFrame())
    if df.empty:
        return _empty(filters, vencidos=[], proximos=[])
    due = certification_due(df, today)
    if not due.empty:
        if filters.agencia:
            due = due[_eq(due["agencia"], filters.agencia)]
        if filters.q and not due.empty:
            due = due[_text_mask(due, ["nome", "chave", "municipio"], filters.q)]

    rows = _display(due)
    for row in rows:
        row["message"] = certification_message(row, expired=row["cert_status"] == EXPIRED)
    vencidos = [r for r in rows if r["cert_status"] == EXPIRED]
    proximos = [r for r in rows if r["cert_status"] == EXPIRING_SOON]
    return {
        "filters": asdict(filters),
        "summary": {"total": len(rows), "vencidos": len(vencidos), "proximos": len(proximos)},
        "vencidos": vencidos,
        "proximos": proximos,
        "rows": rows,
        "options": _options(df),
        "charts": {},
    }
