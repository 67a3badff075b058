from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

CERT_CHOICES = ("todos", "nao", "ok", "vencida")
TRX_CHOICES = ("todos", "0", "1-199", "200+")
BUCKET_CHOICES = ("todos", "treinado", "transacional", "outro")
AGENDAMENTO_CHOICES = ("todos", "sem", "agendado", "concluido")


@dataclass(frozen=True)
class ExpressoFilters:
    agencia: str = ""
    municipio: str = ""
    chave: str = ""
    q: str = ""
    status: str = "todos"
    cert: str = "todos"
    trx: str = "todos"


@dataclass(frozen=True)
class BaseFilters:
    agencia: str = ""
    supervisao: str = ""
    q: str = ""


@dataclass(frozen=True)
class TreinamentoFilters:
    q: str = ""
    municipio: str = ""
    status: str = "todos"


@dataclass(frozen=True)
class AgendaFilters:
    month: str = ""
    day: str = ""
    employee: str = ""
    q: str = ""


def _text(raw: dict, key: str) -> str:
    return str(raw.get(key) or "").strip()


def _choice(raw: dict, key: str, choices: tuple) -> str:
    value = _text(raw, key).lower() or choices[0]
    return value if value in choices else choices[0]


def normalize_expresso_filters(raw: Optional[dict]) -> ExpressoFilters:
    raw = raw or {}
    return ExpressoFilters(
        agencia=_text(raw, "agencia"),
        municipio=_text(raw, "municipio"),
        chave=_text(raw, "chave"),
        q=_text(raw, "q"),
        status=_choice(raw, "status", BUCKET_CHOICES),
        cert=_choice(raw, "cert", CERT_CHOICES),
        trx=_choice(raw, "trx", TRX_CHOICES),
    )


def normalize_base_filters(raw: Optional[dict]) -> BaseFilters:
    raw = raw or {}
    return BaseFilters(agencia=_text(raw, "agencia"), supervisao=_text(raw, "supervisao"), q=_text(raw, "q"))


def normalize_treinamento_filters(raw: Optional[dict]) -> TreinamentoFilters:
    raw = raw or {}
    return TreinamentoFilters(
        q=_text(raw, "q"),
        municipio=_text(raw, "municipio"),
        status=_choice(raw, "status", AGENDAMENTO_CHOICES),
    )


def normalize_agenda_filters(raw: Optional[dict]) -> AgendaFilters:
    raw = raw or {}
    month = _text(raw, "month")[:7]
    day = _text(raw, "day")[:10]
    return AgendaFilters(month=month, day=day, employee=_text(raw, "employee").lower(), q=_text(raw, "q"))
