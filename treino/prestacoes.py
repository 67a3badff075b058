from __future__ import annotations

import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from treino.auth import Identity, require_admin, require_owner_or_admin
from treino.constants import (
    COLLECTION_PRESTACOES,
    MAX_COMPROVANTES,
    PREFIX_PRESTACOES,
    STATUS_PAGA,
    STATUS_PENDENTE,
    SUBCOLLECTION_COMPROVANTES,
)
from treino.errors import InvalidInputError, NotFoundError
from treino.ingest import matches_query, parse_amount, to_text

logger = logging.getLogger(__name__)

AMOUNT_FIELDS = ("gasolina", "alimentacao", "hospedagem", "outrasDespesas")
SEARCH_FIELDS = ("destino", "dataViagem", "userNome", "userEmail", "userId")


@dataclass(frozen=True)
class UploadFile:
    name: str
    data: bytes
    content_type: str = "application/octet-stream"


def _report_path(report_id: str) -> str:
    return f"{COLLECTION_PRESTACOES}/{report_id}"


def _receipts_collection(report_id: str) -> str:
    return f"{COLLECTION_PRESTACOES}/{report_id}/{SUBCOLLECTION_COMPROVANTES}"


def _safe_filename(name: str) -> str:
    return re.sub(r"[^\w.\-]", "_", name.strip()) or "arquivo"


def build_report(identity: Identity, form: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate a submitted form and compute the derived fields of a Prestação."""
    destino = to_text(form.get("destino"))
    data_viagem = to_text(form.get("dataViagem"))
    if not data_viagem:
        raise InvalidInputError("Campo obrigatório: Data da viagem", field="dataViagem")
    if not destino:
        raise InvalidInputError("Campo obrigatório: Destino", field="destino")

    km_inicial = parse_amount(form.get("kmInicial"))
    km_final = parse_amount(form.get("kmFinal"))
    if km_inicial < 0 or km_final < 0:
        raise InvalidInputError("Quilometragem não pode ser negativa.", field="kmInicial")
    km_rodado = km_final - km_inicial
    if km_rodado < 0:
        raise InvalidInputError("KM final não pode ser menor que o KM inicial.", field="kmFinal")

    amounts = {name: round(parse_amount(form.get(name)), 2) for name in AMOUNT_FIELDS}
    for name, value in amounts.items():
        if value < 0:
            raise InvalidInputError("Valores não podem ser negativos.", field=name)

    descricao = to_text(form.get("outrasDespesasDescricao"))
    if amounts["outrasDespesas"] > 0 and not descricao:
        raise InvalidInputError("Descreva as outras despesas.", field="outrasDespesasDescricao")

    return {
        "userId": identity.uid,
        "userNome": identity.display_name,
        "userEmail": identity.email,
        "dataViagem": data_viagem,
        "destino": destino,
        "kmInicial": km_inicial,
        "kmFinal": km_final,
        "kmRodado": km_rodado,
        **amounts,
        "outrasDespesasDescricao": descricao,
        "totalViagem": round(sum(amounts.values()), 2),
        "statusPagamento": STATUS_PENDENTE,
        "pagoBy": None,
        "pagoAt": None,
    }


def submit_report(
    ctx,
    identity: Identity,
    form: Mapping[str, Any],
    files: Sequence[UploadFile] = (),
    submission_id: Optional[str] = None,
) -> str:
    """Create a Prestação and its receipts.

    `submission_id` becomes the document id, so re-sending the same attempt
    overwrites instead of duplicating.
    """
    if len(files) > MAX_COMPROVANTES:
        raise InvalidInputError(f"Máximo de {MAX_COMPROVANTES} comprovantes por prestação.", field="comprovantes")

    report = build_report(identity, form)
    report["createdAt"] = ctx.store.timestamp()
    report_id = ctx.store.add(COLLECTION_PRESTACOES, report, doc_id=submission_id)

    if files:
        paths: List[str] = []
        for upload in files:
            ts = int(time.time() * 1000)
            path = f"{PREFIX_PRESTACOES}/{identity.uid}/{report_id}/{ts}_{_safe_filename(upload.name)}"
            ctx.bucket.upload(path, upload.data, upload.content_type)
            paths.append(path)
        ctx.store.add(
            _receipts_collection(report_id),
            {"paths": paths, "createdAt": ctx.store.timestamp()},
            doc_id=report_id,
        )
    logger.info("prestacao %s submitted by %s (%d comprovantes)", report_id, identity.uid, len(files))
    return report_id


def report_total(doc: Mapping[str, Any]) -> float:
    """Stored numeric total wins (legacy documents); otherwise the category sum."""
    stored = doc.get("totalViagem")
    if isinstance(stored, (int, float)) and not isinstance(stored, bool) and math.isfinite(stored):
        return float(stored)
    return round(sum(parse_amount(doc.get(name)) for name in AMOUNT_FIELDS), 2)


def list_reports(ctx, identity: Identity, *, all_users: bool = False, query: str = "") -> List[Dict[str, Any]]:
    if all_users:
        require_admin(identity)
        docs = ctx.store.list(COLLECTION_PRESTACOES, order_by="createdAt", descending=True)
    else:
        docs = ctx.store.list(
            COLLECTION_PRESTACOES,
            where=[("userId", "==", identity.uid)],
            order_by="createdAt",
            descending=True,
        )
    out = []
    for doc_id, data in docs:
        if query and not matches_query([to_text(data.get(f)) for f in SEARCH_FIELDS] + [doc_id], query):
            continue
        out.append({**data, "id": doc_id, "total": report_total(data)})
    return out


def load_receipts(ctx, report_id: str) -> List[str]:
    """Download links are issued on read from the stored object paths; older
    documents that only carry `urls` are returned as stored."""
    seen: Dict[str, None] = {}
    for _, data in ctx.store.list(_receipts_collection(report_id)):
        paths = [p for p in data.get("paths") or [] if p]
        urls = [ctx.bucket.url_for(p) for p in paths] if paths else data.get("urls") or []
        for url in urls:
            if url:
                seen.setdefault(url, None)
    return list(seen)


def toggle_payment(ctx, identity: Identity, report_id: str, expected: Optional[str] = None) -> str:
    """Flip PAGA/PENDENTE. With `expected`, a report already moved away from that
    status is left as is, so a repeated click does not flip it back."""
    require_admin(identity)
    path = _report_path(report_id)
    doc = ctx.store.get(path)
    if doc is None:
        raise NotFoundError("Prestação não encontrada.")
    current = STATUS_PAGA if doc.get("statusPagamento") == STATUS_PAGA else STATUS_PENDENTE
    if expected is not None and expected != current:
        logger.info("prestacao %s already %s, toggle skipped", report_id, current)
        return current
    if current == STATUS_PAGA:
        update = {"statusPagamento": STATUS_PENDENTE, "pagoBy": None, "pagoAt": None}
    else:
        update = {"statusPagamento": STATUS_PAGA, "pagoBy": identity.email, "pagoAt": ctx.store.timestamp()}
    ctx.store.set(path, update, merge=True)
    logger.info("prestacao %s marked %s by %s", report_id, update["statusPagamento"], identity.email)
    return update["statusPagamento"]


def delete_report(ctx, identity: Identity, report_id: str) -> int:
    """Delete the receipts sub-collection in one batch, then the report itself."""
    path = _report_path(report_id)
    doc = ctx.store.get(path)
    if doc is None:
        raise NotFoundError("Prestação não encontrada.")
    require_owner_or_admin(identity, doc.get("userId"))

    receipts = ctx.store.list(_receipts_collection(report_id))
    removed = ctx.store.delete_many(f"{_receipts_collection(report_id)}/{doc_id}" for doc_id, _ in receipts)
    ctx.store.delete(path)
    logger.info("prestacao %s deleted by %s (%d comprovantes)", report_id, identity.uid, removed)

    for _, data in receipts:
        for object_path in data.get("paths") or []:
            try:
                ctx.bucket.delete(object_path)
            except Exception:
                logger.warning("could not delete stored receipt %s", object_path, exc_info=True)
    return removed


def report_summary(reports: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    totals = [(r.get("statusPagamento"), report_total(r)) for r in reports]
    return {
        "count": len(totals),
        "total": round(sum(t for _, t in totals), 2),
        "pendente": round(sum(t for s, t in totals if s != STATUS_PAGA), 2),
        "pago": round(sum(t for s, t in totals if s == STATUS_PAGA), 2),
    }


def reports_frame(reports: Sequence[Mapping[str, Any]]) -> pd.DataFrame:
    cols = ["id", "dataViagem", "destino", "userNome", "kmRodado", *AMOUNT_FIELDS, "total", "statusPagamento", "pagoBy"]
    if not reports:
        return pd.DataFrame(columns=cols)
    df = pd.DataFrame(list(reports))
    for c in cols:
        if c not in df.columns:
            df[c] = None
    return df[cols]
