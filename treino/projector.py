from __future__ import annotations

from datetime import date, datetime
from typing import Any, Mapping, Optional
from zoneinfo import ZoneInfo

from treino.classify import EXPIRED, EXPIRING_SOON, NO_CERTIFICATION, OK, certification_expiry
from treino.constants import AGENDAMENTO_CONCLUIDO, EMPTY, STATUS_PAGA
from treino.ingest import parse_amount, to_text

LOCAL_TZ = ZoneInfo("America/Sao_Paulo")

CERTIFICATION_LABELS = {
    NO_CERTIFICATION: "Sem certificação",
    EXPIRED: "Vencida",
    EXPIRING_SOON: "Vence em breve",
    OK: "Em dia",
}


def moeda(value: object) -> str:
    """Plain two-decimal amount; missing values render as `0.00`."""
    return f"{parse_amount(value):.2f}"


def format_brl(value: object) -> str:
    s = f"{parse_amount(value):,.2f}"
    return "R$ " + s.replace(",", "X").replace(".", ",").replace("X", ".")


def format_date_ptbr(d: Optional[date]) -> str:
    if not isinstance(d, date):
        return EMPTY
    if isinstance(d, datetime):
        d = d.date()
    return d.strftime("%d/%m/%Y")


def to_local(dt: datetime) -> datetime:
    """Firestore timestamps come back as aware UTC datetimes."""
    return dt.astimezone(LOCAL_TZ) if dt.tzinfo else dt


def format_datetime_ptbr(dt: Optional[datetime]) -> str:
    if dt is None:
        return EMPTY
    if not isinstance(dt, datetime):
        return format_date_ptbr(dt)
    return to_local(dt).strftime("%d/%m/%Y %H:%M")


def certification_label(status: str) -> str:
    return CERTIFICATION_LABELS.get(status, EMPTY)


def payment_label(status: object) -> str:
    return "Paga" if str(status or "").upper() == STATUS_PAGA else "Pendente"


def agendamento_label(assignment: Optional[Mapping[str, Any]]) -> str:
    if not assignment:
        return "Sem agendamento"
    if assignment.get("status") == AGENDAMENTO_CONCLUIDO:
        return "Concluído"
    return "Agendado"


def status_tone(status: object) -> str:
    s = str(status or "").lower()
    if "aprov" in s:
        return "green"
    if "reprov" in s:
        return "red"
    if "pend" in s or "aguard" in s or "andam" in s:
        return "yellow"
    return "gray"


def _v(row: Mapping[str, Any], key: str) -> str:
    return to_text(row.get(key)) or EMPTY


# ---------------- WhatsApp templates ----------------
def certification_message(row: Mapping[str, Any], expired: bool) -> str:
    cert_date = row.get("dt_certificacao")
    expiry = row.get("cert_expiry") or certification_expiry(cert_date)
    lines = [
        "🚨 *CERTIFICAÇÃO VENCIDA*" if expired else "⏰ *CERTIFICAÇÃO PRÓXIMA DE VENCER*",
        "",
        f"🏪 *Expresso:* {_v(row, 'nome')}",
        f"🔑 *Chave:* {_v(row, 'chave')}",
        f"🏦 *Agência/PACB:* {_v(row, 'agencia')} / {_v(row, 'pacb')}",
        f"📍 *Município:* {_v(row, 'municipio')}",
        "",
        f"💳 *TRX:* {to_text(row.get('trx')) or '0'}",
        f"📌 *Status:* {_v(row, 'status')}",
        "",
        f"📅 *Certificado em:* {format_date_ptbr(cert_date)}",
        f"⛔ *Vencido em:* {format_date_ptbr(expiry)}" if expired else f"⌛ *Vence em:* {format_date_ptbr(expiry)}",
        "",
        "⚠️ Precisamos agendar a recertificação com urgência."
        if expired
        else "📣 Atenção: favor programar a renovação da certificação.",
    ]
    return "\n".join(lines)


def training_message(
    row: Mapping[str, Any],
    assignment: Optional[Mapping[str, Any]] = None,
    fallback_email: str = "",
) -> str:
    assignment = assignment or {}
    telefone = " ".join(x for x in (to_text(row.get("ddd")), to_text(row.get("telefone"))) if x)
    scheduled = assignment.get("scheduledAt")
    data_hora = format_datetime_ptbr(scheduled) if scheduled else "a definir"
    responsavel = assignment.get("trainerEmail") or fallback_email or EMPTY

    lines = [
        "📌 *Treinamento — Agendamento*",
        "",
        f"🏪 *Loja:* {_v(row, 'nome_loja')}",
        f"🏢 *Razão Social:* {_v(row, 'razao_social')}",
        f"🔑 *Chave Loja:* {_v(row, 'chave_loja')}",
        f"🧾 *CNPJ:* {_v(row, 'cnpj')}",
        f"📍 *Município:* {_v(row, 'municipio')}",
    ]
    cod_ag, nome_ag = to_text(row.get("cod_ag")), to_text(row.get("nome_ag"))
    if cod_ag or nome_ag:
        lines.append(f"🏦 *Agência:* {cod_ag or EMPTY}" + (f" — {nome_ag}" if nome_ag else ""))
    lines += [
        "",
        f"📅 *Data/Hora:* {data_hora}",
        f"👤 *Responsável:* {responsavel}",
        f"✅ *Status:* {agendamento_label(assignment)}",
        "",
        f"📞 *Telefone:* {telefone or EMPTY}",
        f"🙋 *Contato:* {_v(row, 'contato')}",
        f"✉️ *E-mail:* {_v(row, 'email_contato')}",
    ]
    return "\n".join(lines)


def certificate_message(row: Mapping[str, Any]) -> str:
    return "\n".join(
        [
            "🪪 *Consulta de Certificação*",
            "",
            f"👤 *Candidato:* {_v(row, 'nome')}",
            f"🆔 *CPF:* {_v(row, 'cpf')}",
            f"🏪 *Chave Loja:* {_v(row, 'chave_loja')}",
            f"🧾 *CNPJ:* {_v(row, 'cnpj')}",
            f"🏢 *Correspondente:* {_v(row, 'correspondente')}",
            "",
            f"✅ *Status da prova:* {_v(row, 'status_prova')}",
            f"📅 *Data realização:* {_v(row, 'data_realizacao')}",
        ]
    )
