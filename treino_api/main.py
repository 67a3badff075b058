from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, Optional

import numpy as np
import pandas as pd
from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from treino.auth import AuthorizationService, Identity
from treino.config import env_check, get_settings
from treino.constants import PATH_TREINAMENTOS
from treino.context import AppContext, build_context, load_dataset, prepare_context
from treino.errors import AuthenticationError, NotFoundError, TreinoError
from treino.filters import (
    normalize_agenda_filters,
    normalize_base_filters,
    normalize_expresso_filters,
    normalize_treinamento_filters,
)
from treino.firebase import verify_id_token
from treino.mail import ResendMailer, send_deactivation_request
from treino.metrics_bases import compute_microsseguro, compute_pessoa_certificada
from treino.metrics_expressos import (
    compute_certificacao_vencida,
    compute_geral,
    compute_transacionando,
    compute_treinados_zerados,
)
from treino.metrics_treinamentos import compute_agenda, compute_treinamentos
from treino import agendamentos, prestacoes
from treino_api.schemas import (
    AgendaFiltersModel,
    BaseFiltersModel,
    ExpressoFiltersModel,
    PrestacaoModel,
    ScheduleModel,
    TreinamentoFiltersModel,
)


app = FastAPI(title="TreinoExpresso API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

EXPRESSO_PAGES: Dict[str, Callable[..., Dict[str, Any]]] = {
    "geral": compute_geral,
    "transacionando": compute_transacionando,
    "treinados-zerados": compute_treinados_zerados,
    "certificacao-vencida": compute_certificacao_vencida,
}

# Row fields that are presentation-only and stay out of CSV exports.
EXPORT_DROP = ("message", "agendamento")


def get_context() -> AppContext:
    return build_context()


def get_mailer() -> ResendMailer:
    return ResendMailer.from_settings(get_settings())


def get_token_verifier() -> Callable[[str], Dict[str, Any]]:
    return verify_id_token


def get_identity(
    ctx: AppContext = Depends(get_context),
    verify: Callable[[str], Dict[str, Any]] = Depends(get_token_verifier),
    authorization: str = Header(default=""),
    x_user_uid: str = Header(default=""),
    x_user_email: str = Header(default=""),
    x_user_name: str = Header(default=""),
) -> Identity:
    """`Authorization: Bearer <Firebase ID token>`. The X-User-* headers count only
    when TRUST_PROXY_HEADERS is set for a proxy that authenticates upstream."""
    service = AuthorizationService(ctx.store, ctx.settings.admin_emails)
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        try:
            return service.resolve_claims(verify(token.strip()))
        except AuthenticationError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
    if ctx.settings.trust_proxy_headers and x_user_uid:
        return service.resolve(x_user_uid, x_user_email, x_user_name)
    raise HTTPException(status_code=401, detail="Usuário não autenticado.")


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception, where: str) -> JSONResponse:
    status = exc.status_code if isinstance(exc, TreinoError) else 500
    if status >= 500:
        logger.exception("%s failed", where)
    return JSONResponse(status_code=status, content={"error": str(exc), "type": type(exc).__name__})


@app.get("/api/env-check")
def api_env_check():
    return _json(env_check())


@app.post("/api/baixa-empresa")
def baixa_empresa(payload: Optional[Dict[str, Any]] = Body(default=None), mailer: ResendMailer = Depends(get_mailer)):
    try:
        message_id = send_deactivation_request(mailer, payload or {})
        return _json({"ok": True, "id": message_id})
    except TreinoError as exc:
        if exc.status_code >= 500:
            logger.exception("baixa_empresa failed")
        return _json({"ok": False, "message": str(exc)}, status_code=exc.status_code)
    except Exception as exc:
        logger.exception("baixa_empresa failed")
        return _json({"ok": False, "message": str(exc) or "Erro interno."}, status_code=500)


@app.get("/api/treinamentos")
def roster_file(ctx: AppContext = Depends(get_context)):
    try:
        data = ctx.bucket.download(PATH_TREINAMENTOS)
    except Exception:
        logger.exception("roster_file failed")
        return JSONResponse(status_code=500, content={"error": "Não foi possível carregar o arquivo."})
    return Response(
        content=data,
        media_type="application/vnd.ms-excel",
        headers={"Content-Disposition": 'inline; filename="lista-atual.xls"', "Cache-Control": "no-store"},
    )


def _expresso_page(page: str, filters: ExpressoFiltersModel, ctx: AppContext) -> Dict[str, Any]:
    compute = EXPRESSO_PAGES.get(page)
    if compute is None:
        raise NotFoundError(f"Página desconhecida: {page}")
    data_ctx = prepare_context(ctx, "banco", assignments=page == "geral")
    return compute(normalize_expresso_filters(filters.model_dump()), data_ctx, today=ctx.current_date())


@app.post("/expressos/{page}")
def expressos(page: str, filters: ExpressoFiltersModel, ctx: AppContext = Depends(get_context)):
    try:
        return _json(_expresso_page(page, filters, ctx))
    except Exception as exc:
        return _error(exc, f"expressos/{page}")


@app.post("/bases/microsseguro")
def microsseguro(filters: BaseFiltersModel, ctx: AppContext = Depends(get_context)):
    try:
        data_ctx = prepare_context(ctx, "microsseguro")
        return _json(compute_microsseguro(normalize_base_filters(filters.model_dump()), data_ctx))
    except Exception as exc:
        return _error(exc, "microsseguro")


@app.post("/bases/pessoa-certificada")
def pessoa_certificada(filters: BaseFiltersModel, ctx: AppContext = Depends(get_context)):
    try:
        data_ctx = prepare_context(ctx, "certificados")
        return _json(compute_pessoa_certificada(normalize_base_filters(filters.model_dump()), data_ctx))
    except Exception as exc:
        return _error(exc, "pessoa_certificada")


@app.post("/treinamentos")
def treinamentos(
    filters: TreinamentoFiltersModel,
    ctx: AppContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
):
    try:
        data_ctx = prepare_context(ctx, "treinamentos", assignments=True)
        f = normalize_treinamento_filters(filters.model_dump())
        return _json(compute_treinamentos(f, data_ctx, identity=identity))
    except Exception as exc:
        return _error(exc, "treinamentos")


@app.post("/treinamentos/agenda")
def agenda(
    filters: AgendaFiltersModel,
    ctx: AppContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
):
    try:
        data_ctx = prepare_context(ctx, "treinamentos", assignments=True)
        f = normalize_agenda_filters(filters.model_dump())
        return _json(compute_agenda(f, data_ctx, identity=identity))
    except Exception as exc:
        return _error(exc, "agenda")


@app.post("/export/{page}")
def export_page(page: str, filters: ExpressoFiltersModel, ctx: AppContext = Depends(get_context)):
    try:
        if page == "microsseguro":
            data_ctx = prepare_context(ctx, "microsseguro")
            result = compute_microsseguro(normalize_base_filters(filters.model_dump()), data_ctx)
        else:
            result = _expresso_page(page, filters, ctx)
    except Exception as exc:
        return _error(exc, f"export/{page}")

    export_df = pd.DataFrame(result.get("rows") or [])
    export_df = export_df.drop(columns=[c for c in EXPORT_DROP if c in export_df.columns])
    csv_bytes = export_df.to_csv(index=False, sep=";").encode("utf-8-sig")
    return Response(
        content=csv_bytes,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={page}.csv"},
    )


@app.get("/prestacoes")
def list_prestacoes(
    all_users: bool = Query(default=False, alias="all"),
    q: str = Query(default=""),
    ctx: AppContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
):
    try:
        reports = prestacoes.list_reports(ctx, identity, all_users=all_users, query=q)
        return _json({"summary": prestacoes.report_summary(reports), "rows": reports})
    except Exception as exc:
        return _error(exc, "list_prestacoes")


@app.post("/prestacoes")
def create_prestacao(
    form: PrestacaoModel,
    ctx: AppContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
):
    try:
        raw = form.model_dump()
        submission_id = raw.pop("submissionId", None)
        report_id = prestacoes.submit_report(ctx, identity, raw, submission_id=submission_id)
        return _json({"ok": True, "id": report_id}, status_code=201)
    except Exception as exc:
        return _error(exc, "create_prestacao")


@app.delete("/prestacoes/{report_id}")
def delete_prestacao(report_id: str, ctx: AppContext = Depends(get_context), identity: Identity = Depends(get_identity)):
    try:
        removed = prestacoes.delete_report(ctx, identity, report_id)
        return _json({"ok": True, "comprovantes_removidos": removed})
    except Exception as exc:
        return _error(exc, "delete_prestacao")


@app.get("/prestacoes/{report_id}/comprovantes")
def comprovantes(report_id: str, ctx: AppContext = Depends(get_context), identity: Identity = Depends(get_identity)):
    try:
        return _json({"urls": prestacoes.load_receipts(ctx, report_id)})
    except Exception as exc:
        return _error(exc, "comprovantes")


@app.post("/prestacoes/{report_id}/pagamento")
def pagamento(
    report_id: str,
    expected: Optional[str] = Query(default=None),
    ctx: AppContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
):
    try:
        status = prestacoes.toggle_payment(ctx, identity, report_id, expected=expected)
        return _json({"ok": True, "statusPagamento": status})
    except Exception as exc:
        return _error(exc, "pagamento")


def _roster_row(ctx: AppContext, chave: str) -> Dict[str, Any]:
    roster = load_dataset(ctx, "treinamentos")
    match = roster[roster["chave_loja"] == chave] if not roster.empty else roster
    if match.empty:
        raise NotFoundError("Loja não encontrada na lista de treinamentos.")
    return match.iloc[0].to_dict()


@app.put("/agendamentos/{chave}")
def agendar(
    chave: str,
    body: ScheduleModel,
    ctx: AppContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
):
    try:
        payload = agendamentos.schedule(ctx, identity, _roster_row(ctx, chave), body.scheduledAt)
        return _json({"ok": True, "agendamento": {k: v for k, v in payload.items() if k != "updatedAt"}})
    except Exception as exc:
        return _error(exc, "agendar")


@app.post("/agendamentos/{chave}/concluir")
def concluir(chave: str, ctx: AppContext = Depends(get_context), identity: Identity = Depends(get_identity)):
    try:
        agendamentos.mark_done(ctx, identity, chave)
        return _json({"ok": True})
    except Exception as exc:
        return _error(exc, "concluir")


@app.delete("/agendamentos/{chave}")
def resetar(chave: str, ctx: AppContext = Depends(get_context), identity: Identity = Depends(get_identity)):
    try:
        agendamentos.reset(ctx, identity, chave)
        return _json({"ok": True})
    except Exception as exc:
        return _error(exc, "resetar")
