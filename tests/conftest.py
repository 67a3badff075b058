from __future__ import annotations

import copy
import io
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import pandas as pd
import pytest

from treino.auth import Identity
from treino.config import Settings
from treino.constants import PATH_BANCO, PATH_TREINAMENTOS
from treino.context import AppContext
from treino.mail import ResendMailer


class InMemoryStore:
    """Document store double with the same path-based surface as FirestoreStore."""

    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        self._next_id = 0
        self.batches: List[int] = []

    def timestamp(self):
        return datetime.now(timezone.utc)

    def get(self, path: str) -> Optional[Dict[str, Any]]:
        doc = self.docs.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        if merge and path in self.docs:
            self.docs[path].update(copy.deepcopy(data))
        else:
            self.docs[path] = copy.deepcopy(data)

    def add(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        if doc_id is None:
            self._next_id += 1
            doc_id = f"doc{self._next_id}"
        self.set(f"{collection}/{doc_id}", data)
        return doc_id

    def delete(self, path: str) -> None:
        self.docs.pop(path, None)

    def list(self, collection: str, where=None, order_by=None, descending=False):
        prefix = collection + "/"
        out = []
        for path, data in self.docs.items():
            if not path.startswith(prefix) or "/" in path[len(prefix):]:
                continue
            if any(op != "==" or data.get(field) != value for field, op, value in where or []):
                continue
            out.append((path[len(prefix):], copy.deepcopy(data)))
        if order_by:
            out = [item for item in out if item[1].get(order_by) is not None]
            out.sort(key=lambda item: item[1][order_by], reverse=descending)
        return out

    def delete_many(self, paths) -> int:
        paths = list(paths)
        self.batches.append(len(paths))
        for path in paths:
            self.docs.pop(path, None)
        return len(paths)

    def set_many(self, items, merge: bool = True) -> int:
        items = list(items)
        self.batches.append(len(items))
        for path, data in items:
            self.set(path, data, merge=merge)
        return len(items)


class InMemoryBucket:
    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, Optional[str]] = {}
        self.signed: List[str] = []

    def download(self, path: str) -> bytes:
        return self.objects[path]

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        self.objects[path] = data
        self.content_types[path] = content_type
        return path

    def delete(self, path: str) -> None:
        del self.objects[path]

    def url_for(self, path: str) -> str:
        """Every call issues a new link, like a signed URL with its own expiry."""
        self.signed.append(path)
        return f"https://storage.test/{path}?sig={len(self.signed)}"


class RecordingMailer:
    def __init__(self, api_key: Optional[str] = "re_test"):
        self.api_key = api_key
        self.sent = []

    def ensure_configured(self) -> None:
        ResendMailer(self.api_key, "from@test", "to@test").ensure_configured()

    def send(self, email, reply_to=None):
        self.sent.append((email, reply_to))
        return f"msg_{len(self.sent)}"


TODAY = date(2025, 6, 15)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def bucket():
    return InMemoryBucket()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def ctx(store, bucket, mailer):
    return AppContext(settings=Settings(), store=store, bucket=bucket, mailer=mailer, today=lambda: TODAY)


@pytest.fixture
def user():
    return Identity(uid="u1", email="ana@example.com", name="Ana")


@pytest.fixture
def other_user():
    return Identity(uid="u2", email="bruno@example.com", name="Bruno")


@pytest.fixture
def admin():
    return Identity(uid="adm", email="marcelo@treinexpresso.com.br", name="Marcelo", is_admin=True)


def banco_csv(rows: List[Dict[str, Any]]) -> bytes:
    """Banco base as the bank exports it: `;`-separated latin-1 text."""
    return pd.DataFrame(rows).to_csv(index=False, sep=";").encode("latin-1")


def roster_xlsx(rows: List[Dict[str, Any]]) -> bytes:
    buf = io.BytesIO()
    pd.DataFrame(rows).to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


BANCO_ROWS = [
    {
        "CHAVE_LOJA": "1001",
        "NOME_LOJA": "Mercado Sol",
        "MUNICIPIO": "Itu",
        "AG_PACB": "1234/5678",
        "STATUS_ANALISE": "Treinado",
        "QTD_TRXCONTABIL": "15",
        "DT_CERTIFICACAO": "01/01/2020",
        "BLOQUEADO": "nao",
        "QTD_CONTAS": "0",
    },
    {
        "CHAVE_LOJA": "1002",
        "NOME_LOJA": "Farmacia Lua",
        "MUNICIPIO": "Sorocaba",
        "AG_PACB": "1234/9999",
        "STATUS_ANALISE": "Treinado",
        "QTD_TRXCONTABIL": "0",
        "DT_CERTIFICACAO": "10/05/2023",
        "BLOQUEADO": "sim",
        "QTD_CONTAS": "0",
    },
    {
        "CHAVE_LOJA": "1003",
        "NOME_LOJA": "Padaria Estrela",
        "MUNICIPIO": "Itu",
        "AG_PACB": "4321/1111",
        "STATUS_ANALISE": "Transacional",
        "QTD_TRXCONTABIL": "1.250",
        "DT_CERTIFICACAO": "",
        "BLOQUEADO": "",
        "QTD_CONTAS": "0",
    },
    {
        "CHAVE_LOJA": "1004",
        "NOME_LOJA": "Loja Mar",
        "MUNICIPIO": "Salto",
        "AG_PACB": "4321/2222",
        "STATUS_ANALISE": "Em treinamento (treinado)",
        "QTD_TRXCONTABIL": "3",
        "DT_CERTIFICACAO": "01/08/2020",
        "BLOQUEADO": "nao",
        "QTD_CONTAS": "2",
    },
]

ROSTER_ROWS = [
    {
        "Chave Loja": "1001",
        "Razão Social": "Sol Comercio LTDA",
        "Nome da Loja": "Mercado Sol",
        "CNPJ": "12345678",
        "Filial": "1",
        "Controle": "95",
        "Município": "Itu",
        "DDD": "11",
        "Telefone": "99999-0000",
        "Contato": "Carla",
        "Email do Contato": "carla@sol.com",
    },
    {
        "Chave Loja": "1005",
        "Razão Social": "Rio Mercearia ME",
        "Nome da Loja": "Mercearia Rio",
        "CNPJ": "87654321",
        "Filial": "1",
        "Controle": "10",
        "Município": "Salto",
        "DDD": "11",
        "Telefone": "98888-1111",
        "Contato": "Davi",
        "Email do Contato": "davi@rio.com",
    },
]


@pytest.fixture
def seeded(ctx, bucket):
    bucket.upload(PATH_BANCO, banco_csv(BANCO_ROWS), "text/csv")
    bucket.upload(PATH_TREINAMENTOS, roster_xlsx(ROSTER_ROWS), "application/vnd.ms-excel")
    return ctx
