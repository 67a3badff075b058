from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List

import pandas as pd

from treino.auth import Identity
from treino.charts import count_bar, to_vega_spec
from treino.constants import AGENDAMENTO_AGENDADO, AGENDAMENTO_CONCLUIDO
from treino.filters import AgendaFilters, TreinamentoFilters
from treino.ingest import matches_query, to_text
from treino.projector import agendamento_label, format_datetime_ptbr, to_local, training_message


def _status_key(assignment: Dict[str, Any]) -> str:
    if not assignment:
        return "sem"
    return AGENDAMENTO_CONCLUIDO if assignment.get("status") == AGENDAMENTO_CONCLUIDO else AGENDAMENTO_AGENDADO


def compute_treinamentos(
    filters: TreinamentoFilters,
    ctx: Dict[str, Any],
    *,
    identity: Identity,
) -> Dict[str, Any]:
    df: pd.DataFrame = ctx.get("treinamentos", pd.DataFrame())
    assignments: Dict[str, Dict[str, Any]] = ctx.get("assignments") or {}
    if df.empty:
        return {"filters": asdict(filters), "summary": {}, "rows": [], "options": {"municipios": []}}

    rows: List[Dict[str, Any]] = []
    for row in df.to_dict(orient="records"):
        ag = assignments.get(row["chave_loja"]) or {}
        status = _status_key(ag)
        if filters.status != "todos" and status != filters.status:
            continue
        if filters.municipio and row.get("municipio", "").lower() != filters.municipio.lower():
            continue
        if filters.q and not matches_query([str(v) for v in row.values()], filters.q):
            continue
        rows.append(
            {
                **row,
                "agendamento": ag or None,
                "agendamento_status": status,
                "agendamento_label": agendamento_label(ag),
                "scheduled_fmt": format_datetime_ptbr(ag.get("scheduledAt")) if ag else "",
                "is_mine": bool(ag) and ag.get("trainerUid") == identity.uid,
                "message": training_message(row, ag, fallback_email=identity.email),
            }
        )

    statuses = [_status_key(assignments.get(k) or {}) for k in df["chave_loja"]]
    return {
        "filters": asdict(filters),
        "summary": {
            "total": int(len(df)),
            "sem": statuses.count("sem"),
            "agendados": statuses.count(AGENDAMENTO_AGENDADO),
            "concluidos": statuses.count(AGENDAMENTO_CONCLUIDO),
            "exibidos": len(rows),
        },
        "rows": rows,
        "options": {"municipios": sorted({m for m in df["municipio"] if m})},
    }


def _scheduled(item: Dict[str, Any]):
    value = item.get("scheduledAt")
    return to_local(value) if isinstance(value, datetime) else None


def _sort_key(item: Dict[str, Any]) -> float:
    when = _scheduled(item)
    return when.timestamp() if when else 0.0


def compute_agenda(filters: AgendaFilters, ctx: Dict[str, Any], *, identity: Identity) -> Dict[str, Any]:
    """Scheduled trainings visible to `identity`; non-admins only see their own."""
    assignments: Dict[str, Dict[str, Any]] = ctx.get("assignments") or {}
    roster: pd.DataFrame = ctx.get("treinamentos", pd.DataFrame())
    current_keys = set(roster["chave_loja"]) if not roster.empty else set()

    items = [{**data, "chaveLoja": data.get("chaveLoja") or key} for key, data in assignments.items()]
    if not identity.is_admin:
        items = [x for x in items if x.get("trainerUid") == identity.uid]
    if filters.month:
        items = [x for x in items if _scheduled(x) and _scheduled(x).strftime("%Y-%m") == filters.month]
    if filters.day:
        items = [x for x in items if _scheduled(x) and _scheduled(x).strftime("%Y-%m-%d") == filters.day]
    if filters.employee and identity.is_admin:
        items = [x for x in items if filters.employee in to_text(x.get("trainerEmail")).lower()]
    if filters.q:
        fields = ("chaveLoja", "nomeLoja", "razaoSocial", "municipio", "cnpj", "trainerEmail", "status")
        items = [
            x
            for x in items
            if matches_query([to_text(x.get(f)) for f in fields] + [format_datetime_ptbr(x.get("scheduledAt"))], filters.q)
        ]
    items.sort(key=_sort_key)

    rows = []
    for x in items:
        when = _scheduled(x)
        rows.append(
            {
                **x,
                "scheduled_fmt": format_datetime_ptbr(x.get("scheduledAt")),
                "mes": when.strftime("%Y-%m") if when else "",
                "status_label": agendamento_label(x),
                "in_current_list": x["chaveLoja"] in current_keys,
                "is_mine": x.get("trainerUid") == identity.uid,
            }
        )

    charts: Dict[str, Any] = {}
    dated = pd.DataFrame([r for r in rows if r["mes"]], columns=["mes"]) if rows else pd.DataFrame()
    if not dated.empty:
        charts["por_mes"] = to_vega_spec(count_bar(dated, "mes", "Mês", count_title="Treinamentos"))

    return {
        "filters": asdict(filters),
        "summary": {
            "total": len(rows),
            "agendados": sum(1 for r in rows if r.get("status") != AGENDAMENTO_CONCLUIDO),
            "concluidos": sum(1 for r in rows if r.get("status") == AGENDAMENTO_CONCLUIDO),
            "fora_da_lista": sum(1 for r in rows if not r["in_current_list"]),
        },
        "rows": rows,
        "charts": charts,
    }
