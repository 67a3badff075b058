from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ExpressoFiltersModel(BaseModel):
    agencia: str = ""
    municipio: str = ""
    chave: str = ""
    q: str = ""
    status: str = "todos"
    cert: str = "todos"
    trx: str = "todos"


class BaseFiltersModel(BaseModel):
    agencia: str = ""
    supervisao: str = ""
    q: str = ""


class TreinamentoFiltersModel(BaseModel):
    q: str = ""
    municipio: str = ""
    status: str = "todos"


class AgendaFiltersModel(BaseModel):
    month: str = ""
    day: str = ""
    employee: str = ""
    q: str = ""


class PrestacaoModel(BaseModel):
    dataViagem: str = ""
    destino: str = ""
    kmInicial: float = 0.0
    kmFinal: float = 0.0
    gasolina: float = 0.0
    alimentacao: float = 0.0
    hospedagem: float = 0.0
    outrasDespesas: float = 0.0
    outrasDespesasDescricao: str = ""
    submissionId: Optional[str] = None


class ScheduleModel(BaseModel):
    scheduledAt: datetime
