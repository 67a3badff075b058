import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, time
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from treino import agendamentos, arquivos, lojas, prestacoes, uploads
from treino.auth import AuthorizationService, Identity
from treino.constants import AGENDAMENTO_CONCLUIDO, MAX_COMPROVANTES, STATUS_PAGA, STATUS_PENDENTE
from treino.context import build_context, prepare_context
from treino.errors import TreinoError, describe_error
from treino.filters import (
    BUCKET_CHOICES,
    CERT_CHOICES,
    TRX_CHOICES,
    normalize_agenda_filters,
    normalize_base_filters,
    normalize_expresso_filters,
    normalize_treinamento_filters,
)
from treino.mail import send_deactivation_request
from treino.metrics_bases import compute_microsseguro, compute_pessoa_certificada
from treino.metrics_expressos import (
    compute_certificacao_vencida,
    compute_geral,
    compute_transacionando,
    compute_treinados_zerados,
)
from treino.metrics_treinamentos import compute_agenda, compute_treinamentos
from treino.projector import LOCAL_TZ, format_brl, format_datetime_ptbr, moeda, payment_label

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 8px;}
        .chip {border-radius: 14px;padding: 2px 10px;font-size: 0.85rem;}
        .chip.ok {background: #dcfce7;color: #166534;}
        .chip.warn {background: #fef3c7;color: #92400e;}
        .chip.bad {background: #fee2e2;color: #991b1b;}
        .chip.neutral {background: #f3f4f6;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container()
    container.markdown(f"<div class='card'><div class='card-title'>{title}</div>", unsafe_allow_html=True)
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def render_page_header(title: str, breadcrumb: str, export_df: Optional[pd.DataFrame] = None, export_name: str = "export.csv"):
    c1, c2 = st.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if export_df is not None and not export_df.empty:
            st.download_button(
                "Exportar CSV",
                data=export_df.to_csv(index=False, sep=";").encode("utf-8-sig"),
                file_name=export_name,
                mime="text/csv",
            )


def chip(label: str, tone: str = "neutral") -> str:
    return f"<span class='chip {tone}'>{label}</span>"


def submission_id(form: str) -> str:
    """Session-scoped id for one attempt of `form`; reused until the attempt succeeds."""
    key = f"_submission_{form}"
    if key not in st.session_state:
        st.session_state[key] = uuid.uuid4().hex
    return st.session_state[key]


def in_flight(form: str) -> bool:
    return bool(st.session_state.get(f"_busy_{form}"))


def mark_busy(form: str):
    """on_click callback: runs before the rerun, so the triggering button renders disabled."""
    st.session_state[f"_busy_{form}"] = True


def release_busy():
    for key in [k for k in st.session_state if str(k).startswith("_busy_")]:
        del st.session_state[key]


def run_action(form: str, action, success: str):
    """Run a write for a busy `form`; the outcome is flashed after a rerun that re-enables the buttons."""
    try:
        action()
    except TreinoError as exc:
        flash = ("error", str(exc))
    except Exception as exc:
        logger.exception("%s failed", form)
        flash = ("error", describe_error(exc))
    else:
        st.session_state.pop(f"_submission_{form}", None)
        flash = ("success", success)
    finally:
        st.session_state[f"_busy_{form}"] = False
    st.session_state["_flash"] = flash
    st.rerun()


def show_flash():
    flash = st.session_state.pop("_flash", None)
    if flash is None:
        return
    kind, message = flash
    (st.success if kind == "success" else st.error)(message)


def show_chart(spec: Optional[Dict[str, Any]]):
    if spec:
        st.vega_lite_chart(spec, use_container_width=True)


def load_page_data(*datasets: str, assignments: bool = False) -> Optional[Dict[str, Any]]:
    try:
        return prepare_context(app_ctx, *datasets, assignments=assignments)
    except TreinoError as exc:
        st.error(str(exc))
    except Exception as exc:
        logger.exception("loading %s failed", ", ".join(datasets))
        st.error(describe_error(exc, "Erro ao carregar"))
    return None


def rows_frame(rows: List[Dict[str, Any]], columns: Dict[str, str]) -> pd.DataFrame:
    df = pd.DataFrame(rows)
    for c in columns:
        if c not in df.columns:
            df[c] = ""
    return df[list(columns)].rename(columns=columns)


# ---------- Identity ----------
def current_identity() -> Optional[Identity]:
    """Identity comes from the upstream authentication proxy headers; resolved once per session."""
    cached = st.session_state.get("_identity")
    if cached is not None:
        return cached
    if not app_ctx.settings.trust_proxy_headers:
        return None
    headers = st.context.headers
    uid = headers.get("X-User-Uid", "")
    if not uid:
        return None
    service = AuthorizationService(app_ctx.store, app_ctx.settings.admin_emails)
    identity = service.resolve(uid, headers.get("X-User-Email", ""), headers.get("X-User-Name", ""))
    st.session_state["_identity"] = identity
    return identity


# ---------- Page renderers ----------
def expresso_filters_sidebar(key: str, *, cert: bool = False, trx: bool = False) -> Dict[str, str]:
    raw = {
        "q": st.text_input("Buscar (nome, chave, município...)", key=f"{key}_q"),
        "agencia": st.text_input("Agência", key=f"{key}_agencia"),
    }
    cols = st.columns(3)
    raw["status"] = cols[0].selectbox("Status", BUCKET_CHOICES, key=f"{key}_status")
    if cert:
        raw["cert"] = cols[1].selectbox("Certificação", CERT_CHOICES, key=f"{key}_cert")
    if trx:
        raw["trx"] = cols[2].selectbox("TRX", TRX_CHOICES, key=f"{key}_trx")
    return raw


EXPRESSO_COLUMNS = {
    "chave": "Chave",
    "nome": "Expresso",
    "municipio": "Município",
    "agencia": "Agência",
    "pacb": "PACB",
    "status": "Status",
    "trx": "TRX",
    "dt_certificacao_fmt": "Certificação",
    "cert_label": "Situação",
}


def render_inicio_page():
    render_page_header("Início", "TreinoExpresso")
    st.write(f"Olá, **{identity.display_name}**.")
    reports = prestacoes.list_reports(app_ctx, identity)
    summary = prestacoes.report_summary(reports)
    cols = st.columns(3)
    cols[0].metric("Minhas prestações", summary["count"])
    cols[1].metric("Pendente", format_brl(summary["pendente"]))
    cols[2].metric("Pago", format_brl(summary["pago"]))


def render_nova_prestacao_page():
    render_page_header("Nova prestação", "Prestações / Nova")
    busy = in_flight("prestacao")
    with st.form("prestacao_form", clear_on_submit=False):
        c1, c2 = st.columns(2)
        data_viagem = c1.date_input("Data da viagem", format="DD/MM/YYYY")
        destino = c2.text_input("Destino")
        c1, c2 = st.columns(2)
        km_inicial = c1.number_input("KM inicial", min_value=0.0, step=1.0)
        km_final = c2.number_input("KM final", min_value=0.0, step=1.0)
        c1, c2, c3, c4 = st.columns(4)
        gasolina = c1.number_input("Gasolina (R$)", min_value=0.0, step=0.01)
        alimentacao = c2.number_input("Alimentação (R$)", min_value=0.0, step=0.01)
        hospedagem = c3.number_input("Hospedagem (R$)", min_value=0.0, step=0.01)
        outras = c4.number_input("Outras despesas (R$)", min_value=0.0, step=0.01)
        descricao = st.text_input("Descrição das outras despesas")
        files = st.file_uploader(
            f"Comprovantes (até {MAX_COMPROVANTES})",
            type=["pdf", "png", "jpg", "jpeg"],
            accept_multiple_files=True,
        )
        st.caption(f"Total da viagem: {format_brl(gasolina + alimentacao + hospedagem + outras)}")
        submitted = st.form_submit_button("Enviar prestação", disabled=busy, on_click=mark_busy, args=("prestacao",))

    if submitted:
        form = {
            "dataViagem": data_viagem.isoformat() if data_viagem else "",
            "destino": destino,
            "kmInicial": km_inicial,
            "kmFinal": km_final,
            "gasolina": gasolina,
            "alimentacao": alimentacao,
            "hospedagem": hospedagem,
            "outrasDespesas": outras,
            "outrasDespesasDescricao": descricao,
        }
        uploaded = [prestacoes.UploadFile(f.name, f.getvalue(), f.type or "application/octet-stream") for f in files or []]
        sid = submission_id("prestacao")
        run_action(
            "prestacao",
            lambda: prestacoes.submit_report(app_ctx, identity, form, uploaded, submission_id=sid),
            "Prestação enviada.",
        )


PRESTACAO_COLUMNS = {
    "dataViagem": "Data",
    "destino": "Destino",
    "userNome": "Colaborador",
    "kmRodado": "KM rodado",
    "total_fmt": "Total",
    "status_label": "Pagamento",
    "pagoBy": "Pago por",
}


def render_prestacoes_list(all_users: bool):
    q = st.text_input("Buscar", key=f"prestacoes_q_{all_users}")
    try:
        reports = prestacoes.list_reports(app_ctx, identity, all_users=all_users, query=q)
    except TreinoError as exc:
        st.error(str(exc))
        return
    summary = prestacoes.report_summary(reports)
    cols = st.columns(3)
    cols[0].metric("Prestações", summary["count"])
    cols[1].metric("Pendente", format_brl(summary["pendente"]))
    cols[2].metric("Pago", format_brl(summary["pago"]))

    for r in reports:
        r["total_fmt"] = moeda(r["total"])
        r["status_label"] = payment_label(r.get("statusPagamento"))
    with card("Prestações"):
        st.dataframe(rows_frame(reports, PRESTACAO_COLUMNS), hide_index=True, use_container_width=True)
        if reports:
            st.download_button(
                "Exportar CSV",
                data=prestacoes.reports_frame(reports).to_csv(index=False, sep=";").encode("utf-8-sig"),
                file_name="prestacoes.csv",
                mime="text/csv",
                key=f"export_prestacoes_{all_users}",
            )

    for r in reports:
        with st.expander(f"{r.get('dataViagem', '')} · {r.get('destino', '')} · {format_brl(r['total'])}"):
            st.write(f"Criada em {format_datetime_ptbr(r.get('createdAt'))}")
            urls = prestacoes.load_receipts(app_ctx, r["id"])
            for i, url in enumerate(urls, start=1):
                st.markdown(f"[Comprovante {i}]({url})")
            c1, c2 = st.columns(2)
            if identity.is_admin:
                label = "Marcar como pendente" if r.get("statusPagamento") == STATUS_PAGA else "Marcar como paga"
                shown = STATUS_PAGA if r.get("statusPagamento") == STATUS_PAGA else STATUS_PENDENTE
                if c1.button(label, key=f"pay_{r['id']}", disabled=in_flight("pagamento"), on_click=mark_busy, args=("pagamento",)):
                    run_action(
                        "pagamento",
                        lambda rid=r["id"], s=shown: prestacoes.toggle_payment(app_ctx, identity, rid, expected=s),
                        "Pagamento atualizado.",
                    )
            if c2.button("Excluir", key=f"del_{r['id']}", disabled=in_flight("excluir"), on_click=mark_busy, args=("excluir",)):
                run_action("excluir", lambda rid=r["id"]: prestacoes.delete_report(app_ctx, identity, rid), "Prestação excluída.")


def render_minhas_prestacoes_page():
    render_page_header("Minhas prestações", "Prestações / Minhas")
    render_prestacoes_list(all_users=False)


def render_prestacoes_admin_page():
    render_page_header("Prestações", "Prestações / Todas")
    render_prestacoes_list(all_users=True)


def render_geral_page():
    data = load_page_data("banco", assignments=True)
    if data is None:
        return
    with st.sidebar:
        st.markdown("### Filtros")
        raw = expresso_filters_sidebar("geral", cert=True, trx=True)
        raw["municipio"] = st.text_input("Município", key="geral_municipio")
        raw["chave"] = st.text_input("Chave", key="geral_chave")
    result = compute_geral(normalize_expresso_filters(raw), data, today=app_ctx.current_date())
    table = rows_frame(result["rows"], {**EXPRESSO_COLUMNS, "agendamento_status": "Treinamento"})
    render_page_header("Expressos", "Expressos / Geral", export_df=table, export_name="expressos.csv")

    summary = result["summary"]
    if summary:
        cols = st.columns(6)
        cols[0].metric("Total", summary["total"])
        cols[1].metric("Transacionando", summary["transacionando"])
        cols[2].metric("Treinados", summary["treinados"])
        cols[3].metric("Sem certificação", summary["sem_certificacao"])
        cols[4].metric("Certificação vencida", summary["certificacao_vencida"])
        cols[5].metric("Bloqueados", summary["bloqueados"])
    chart_cols = st.columns(2)
    with chart_cols[0]:
        show_chart(result["charts"].get("certificacao"))
    with chart_cols[1]:
        show_chart(result["charts"].get("trx"))
    with card("Expressos"):
        st.dataframe(table, hide_index=True, use_container_width=True)


def render_transacionando_page():
    data = load_page_data("banco")
    if data is None:
        return
    with st.sidebar:
        st.markdown("### Filtros")
        raw = expresso_filters_sidebar("trx")
    result = compute_transacionando(normalize_expresso_filters(raw), data, today=app_ctx.current_date())
    table = rows_frame(result["rows"], EXPRESSO_COLUMNS)
    render_page_header("Transacionando", "Expressos / Transacionando", export_df=table, export_name="transacionando.csv")
    st.metric("Expressos transacionando", result["summary"].get("total", 0))
    with card("Expressos com TRX"):
        st.dataframe(table, hide_index=True, use_container_width=True)


def render_treinados_zerados_page():
    data = load_page_data("banco")
    if data is None:
        return
    with st.sidebar:
        st.markdown("### Filtros")
        raw = {
            "q": st.text_input("Buscar", key="zerados_q"),
            "agencia": st.text_input("Agência", key="zerados_agencia"),
            "municipio": st.text_input("Município", key="zerados_municipio"),
        }
    result = compute_treinados_zerados(normalize_expresso_filters(raw), data, today=app_ctx.current_date())
    table = rows_frame(result["rows"], EXPRESSO_COLUMNS)
    render_page_header("Treinados zerados", "Expressos / Treinados zerados", export_df=table, export_name="treinados-zerados.csv")
    st.metric("Treinados sem produção", result["summary"].get("total", 0))
    with card("Treinados sem TRX nem produtos"):
        st.dataframe(table, hide_index=True, use_container_width=True)


def render_due_list(title: str, rows: List[Dict[str, Any]]):
    with card(f"{title} ({len(rows)})"):
        if not rows:
            st.info("Nenhum Expresso nesta situação.")
            return
        st.dataframe(
            rows_frame(rows, {**EXPRESSO_COLUMNS, "cert_expiry_fmt": "Vencimento"}),
            hide_index=True,
            use_container_width=True,
        )
        for r in rows:
            with st.expander(f"{r['nome']} ({r['chave']})"):
                st.code(r["message"], language=None)


def render_certificacao_vencida_page():
    data = load_page_data("banco")
    if data is None:
        return
    with st.sidebar:
        st.markdown("### Filtros")
        raw = {
            "q": st.text_input("Buscar", key="cert_q"),
            "agencia": st.text_input("Agência", key="cert_agencia"),
        }
    result = compute_certificacao_vencida(normalize_expresso_filters(raw), data, today=app_ctx.current_date())
    render_page_header("Certificação vencida", "Expressos / Certificação")
    cols = st.columns(2)
    cols[0].metric("Vencidas", result["summary"].get("vencidos", 0))
    cols[1].metric("Vencem em até 3 meses", result["summary"].get("proximos", 0))
    render_due_list("Certificação vencida", result["vencidos"])
    render_due_list("Vence em breve", result["proximos"])


def render_microsseguro_page():
    data = load_page_data("microsseguro")
    if data is None:
        return
    with st.sidebar:
        st.markdown("### Filtros")
        raw = {
            "q": st.text_input("Buscar", key="ms_q"),
            "agencia": st.text_input("Agência", key="ms_agencia"),
            "supervisao": st.text_input("Supervisão", key="ms_supervisao"),
        }
    result = compute_microsseguro(normalize_base_filters(raw), data)
    table = rows_frame(
        result["rows"],
        {
            "chave_loja": "Chave",
            "expresso": "Expresso",
            "agencia": "Agência",
            "supervisao": "Supervisão",
            "liberado_em": "Liberado em",
            "vendas_fmt": "Vendas 2026",
        },
    )
    render_page_header("Microsseguro", "Bases / Microsseguro", export_df=table, export_name="microsseguro.csv")
    totals = result["totals"]
    cols = st.columns(3)
    cols[0].metric("Liberados", totals.get("total", 0))
    cols[1].metric("Exibidos", totals.get("exibidos", 0))
    cols[2].metric("Vendas 2026", totals.get("soma_vendas_fmt", format_brl(0)))
    if not raw["q"] and totals.get("total", 0) > totals.get("exibidos", 0):
        st.caption("Use a busca para ver todos os registros.")
    with card("Expressos liberados"):
        st.dataframe(table, hide_index=True, use_container_width=True)


def render_pessoa_certificada_page():
    render_page_header("Pessoa certificada", "Bases / Pessoa certificada")
    q = st.text_input("Buscar por nome, CPF, CNPJ ou chave")
    if not q.strip():
        st.info("Digite um termo para buscar.")
        return
    data = load_page_data("certificados")
    if data is None:
        return
    result = compute_pessoa_certificada(normalize_base_filters({"q": q}), data)
    st.caption(f"{len(result['rows'])} resultado(s) em {result['total_base']} registros.")
    for r in result["rows"]:
        with card(f"{r['nome']} {chip(r['status_prova'] or '—', r['tone'])}"):
            st.write(f"CPF {r['cpf']} · {r['correspondente']} · Chave {r['chave_loja']} · CNPJ {r['cnpj']}")
            st.write(f"Realização: {r['data_realizacao'] or '—'}")
            st.code(r["message"], language=None)


def render_treinamentos_page():
    data = load_page_data("treinamentos", assignments=True)
    if data is None:
        return
    with st.sidebar:
        st.markdown("### Filtros")
        raw = {
            "q": st.text_input("Buscar", key="tr_q"),
            "municipio": st.text_input("Município", key="tr_municipio"),
            "status": st.selectbox("Agendamento", ["todos", "sem", "agendado", "concluido"], key="tr_status"),
        }
    result = compute_treinamentos(normalize_treinamento_filters(raw), data, identity=identity)
    render_page_header("Treinamentos", "Treinamentos / Lista")
    summary = result["summary"]
    if summary:
        cols = st.columns(4)
        cols[0].metric("Lojas", summary["total"])
        cols[1].metric("Sem agendamento", summary["sem"])
        cols[2].metric("Agendados", summary["agendados"])
        cols[3].metric("Concluídos", summary["concluidos"])

    for row in result["rows"]:
        title = f"{row['nome_loja'] or row['razao_social']} ({row['chave_loja']}) · {row['agendamento_label']}"
        with st.expander(title):
            st.write(f"{row['razao_social']} · CNPJ {row['cnpj']} · {row['municipio']}")
            st.write(f"Contato: {row['contato']} · ({row['ddd']}) {row['telefone']} · {row['email_contato']}")
            if row["scheduled_fmt"]:
                st.write(f"Agendado para {row['scheduled_fmt']}")
            st.code(row["message"], language=None)
            key = row["chave_loja"]
            if row["agendamento_status"] != AGENDAMENTO_CONCLUIDO:
                c1, c2 = st.columns(2)
                day = c1.date_input("Data", key=f"day_{key}", format="DD/MM/YYYY")
                hour = c2.time_input("Hora", value=time(9, 0), key=f"hour_{key}")
                if st.button("Agendar", key=f"sched_{key}", disabled=in_flight("agendar"), on_click=mark_busy, args=("agendar",)):
                    when = datetime.combine(day, hour, tzinfo=LOCAL_TZ)
                    run_action("agendar", lambda r=row, w=when: agendamentos.schedule(app_ctx, identity, r, w), "Treinamento agendado.")
            if row["agendamento_status"] == "agendado" and (row["is_mine"] or identity.is_admin):
                if st.button("Marcar como concluído", key=f"done_{key}", disabled=in_flight("concluir"), on_click=mark_busy, args=("concluir",)):
                    run_action("concluir", lambda k=key: agendamentos.mark_done(app_ctx, identity, k), "Treinamento concluído.")
            if row["agendamento"] and identity.is_admin:
                if st.button("Resetar agendamento", key=f"reset_{key}", disabled=in_flight("resetar"), on_click=mark_busy, args=("resetar",)):
                    run_action("resetar", lambda k=key: agendamentos.reset(app_ctx, identity, k), "Agendamento removido.")


def render_agenda_page():
    data = load_page_data("treinamentos", assignments=True)
    if data is None:
        return
    with st.sidebar:
        st.markdown("### Filtros")
        raw = {
            "month": st.text_input("Mês (AAAA-MM)", key="ag_month"),
            "day": st.text_input("Dia (AAAA-MM-DD)", key="ag_day"),
            "q": st.text_input("Buscar", key="ag_q"),
        }
        if identity.is_admin:
            raw["employee"] = st.text_input("Colaborador (e-mail)", key="ag_employee")
    result = compute_agenda(normalize_agenda_filters(raw), data, identity=identity)
    table = rows_frame(
        result["rows"],
        {
            "scheduled_fmt": "Data/Hora",
            "chaveLoja": "Chave",
            "nomeLoja": "Loja",
            "municipio": "Município",
            "trainerEmail": "Treinador",
            "status_label": "Status",
            "in_current_list": "Na lista atual",
        },
    )
    render_page_header("Agenda", "Treinamentos / Agenda", export_df=table, export_name="agenda.csv")
    summary = result["summary"]
    cols = st.columns(4)
    cols[0].metric("Total", summary["total"])
    cols[1].metric("Agendados", summary["agendados"])
    cols[2].metric("Concluídos", summary["concluidos"])
    cols[3].metric("Fora da lista atual", summary["fora_da_lista"])
    show_chart(result["charts"].get("por_mes"))
    with card("Agenda"):
        st.dataframe(table, hide_index=True, use_container_width=True)

    pending = [r for r in result["rows"] if r.get("status") != AGENDAMENTO_CONCLUIDO and (r["is_mine"] or identity.is_admin)]
    if pending:
        with card("Concluir treinamentos"):
            for r in pending:
                key = r["chaveLoja"]
                c1, c2 = st.columns([8, 2])
                c1.write(f"{r['scheduled_fmt']} · {r.get('nomeLoja') or key} · {r.get('trainerEmail', '')}")
                if c2.button("Marcar como concluído", key=f"ag_done_{key}", disabled=in_flight("concluir"), on_click=mark_busy, args=("concluir",)):
                    run_action("concluir", lambda k=key: agendamentos.mark_done(app_ctx, identity, k), "Treinamento concluído.")


def render_baixa_page():
    render_page_header("Baixa de empresa", "Solicitações / Baixa")
    chave = st.text_input("Chave", key="baixa_chave")
    loja = lojas.lookup_loja(app_ctx, chave) if chave.strip() else None
    if chave.strip() and loja is None:
        st.caption("Chave não encontrada na base de lojas; preencha manualmente.")
    loja = loja or {}
    busy = in_flight("baixa")
    with st.form("baixa_form"):
        assunto = st.selectbox("Assunto", ["Baixa", "Bloqueio", "Desbloqueio"])
        nome = st.text_input("Nome do Expresso", value=loja.get("nomeExpresso", ""))
        c1, c2 = st.columns(2)
        agencia = c1.text_input("Agência", value=loja.get("agencia", ""))
        pacb = c2.text_input("PACB", value=loja.get("pacb", ""))
        motivo = st.text_area("Motivo do pedido de baixa")
        email_gerente = st.text_input("E-mail do gerente da agência")
        submitted = st.form_submit_button("Enviar solicitação", disabled=busy, on_click=mark_busy, args=("baixa",))
    if submitted:
        payload = {
            "assuntoTipo": assunto,
            "nomeExpresso": nome,
            "chave": chave,
            "agencia": agencia,
            "pacb": pacb,
            "motivo": motivo,
            "emailGerente": email_gerente,
            "solicitanteEmail": identity.email,
            "solicitanteNome": identity.display_name,
        }
        run_action("baixa", lambda: send_deactivation_request(app_ctx.mailer, payload), "Solicitação enviada.")


def render_arquivos_page():
    render_page_header("Arquivos obrigatórios", "Documentos / Arquivos obrigatórios")
    if identity.is_admin:
        with card("Enviar PDF"):
            with st.form("arquivo_form", clear_on_submit=True):
                titulo = st.text_input("Título")
                pdf = st.file_uploader("Arquivo PDF", type=["pdf"])
                submitted = st.form_submit_button("Enviar", disabled=in_flight("arquivo"), on_click=mark_busy, args=("arquivo",))
            if submitted:
                if pdf is None:
                    st.error("Selecione um arquivo PDF.")
                else:
                    run_action(
                        "arquivo",
                        lambda: arquivos.upload_document(app_ctx, identity, titulo, pdf.name, pdf.getvalue()),
                        "Arquivo enviado.",
                    )
    docs = arquivos.list_documents(app_ctx)
    if not docs:
        st.info("Nenhum arquivo disponível.")
    for doc in docs:
        c1, c2 = st.columns([8, 2])
        c1.markdown(f"**[{doc.get('titulo', doc.get('filename', ''))}]({doc.get('url', '')})**  \n{format_datetime_ptbr(doc.get('uploadedAt'))}")
        if identity.is_admin and c2.button("Excluir", key=f"arq_{doc['id']}", disabled=in_flight("arquivo_del"), on_click=mark_busy, args=("arquivo_del",)):
            run_action("arquivo_del", lambda d=doc["id"]: arquivos.delete_document(app_ctx, identity, d), "Arquivo excluído.")


def render_bases_page():
    render_page_header("Bases", "Administração / Bases")
    if not identity.is_admin:
        st.warning("Apenas administradores podem atualizar as bases.")
        return
    for name, spec in uploads.BASES.items():
        with card(f"Base {name}"):
            f = st.file_uploader(f"Arquivo ({', '.join(spec.extensions)})", key=f"base_{name}")
            if st.button("Substituir base", key=f"base_btn_{name}", disabled=f is None or in_flight(f"base_{name}"), on_click=mark_busy, args=(f"base_{name}",)):
                run_action(
                    f"base_{name}",
                    lambda n=name, up=f: uploads.upload_base(app_ctx, identity, n, up.name, up.getvalue()),
                    "Base atualizada.",
                )
    with card("Importar lojas (CSV)"):
        f = st.file_uploader("CSV com chave_loja, nome_loja e agencia/pacb", type=["csv"], key="lojas_csv")
        if st.button("Importar", disabled=f is None or in_flight("lojas"), on_click=mark_busy, args=("lojas",)):
            run_action("lojas", lambda: lojas.import_lojas(app_ctx, identity, f.getvalue()), "Lojas importadas.")


# ---------- UI setup ----------
st.set_page_config(page_title="TreinoExpresso", layout="wide")
inject_base_styles()

try:
    app_ctx = build_context()
    identity = current_identity()
except Exception as exc:
    logger.exception("startup failed")
    st.error(describe_error(exc, "Erro ao iniciar"))
    st.stop()

if identity is None:
    st.error("Sessão não autenticada. Acesse pelo portal de login.")
    st.stop()

PAGES = {
    "Início": render_inicio_page,
    "Nova prestação": render_nova_prestacao_page,
    "Minhas prestações": render_minhas_prestacoes_page,
    "Expressos geral": render_geral_page,
    "Transacionando": render_transacionando_page,
    "Certificação vencida": render_certificacao_vencida_page,
    "Treinados zerados": render_treinados_zerados_page,
    "Microsseguro": render_microsseguro_page,
    "Pessoa certificada": render_pessoa_certificada_page,
    "Treinamentos": render_treinamentos_page,
    "Agenda": render_agenda_page,
    "Baixa de empresa": render_baixa_page,
    "Arquivos obrigatórios": render_arquivos_page,
}
if identity.is_admin:
    PAGES["Prestações (admin)"] = render_prestacoes_admin_page
    PAGES["Bases"] = render_bases_page

with st.sidebar:
    st.markdown("### Navegar")
    nav_choice = st.radio("Navegar", list(PAGES), index=0)
    st.caption(f"{identity.display_name}{' · admin' if identity.is_admin else ''}")
    st.markdown("---")

show_flash()
PAGES[nav_choice]()
release_busy()
