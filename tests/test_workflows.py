from __future__ import annotations

from datetime import datetime

import pandas as pd
import pytest
import requests

from treino import arquivos, lojas, uploads
from treino.auth import AuthorizationService
from treino.constants import DOC_CONFIG_TREINAMENTOS, PATH_BANCO, PATH_TREINAMENTOS
from treino.context import load_dataset
from treino.errors import ConfigurationError, InvalidInputError, MailDeliveryError, PermissionDeniedError
from treino.mail import ResendMailer, render_request_email, send_deactivation_request, validate_request

from conftest import BANCO_ROWS, RecordingMailer, banco_csv

REQUEST = {
    "assuntoTipo": "Baixa",
    "nomeExpresso": "Mercado Sol",
    "chave": "1001",
    "agencia": "1234",
    "pacb": "5678",
    "motivo": "Encerramento das atividades",
    "emailGerente": "gerente@banco.com",
    "solicitanteEmail": "ana@example.com",
}


# ---------- authorization ----------
def test_resolve_reads_role_from_profile(store):
    store.set("users/u9", {"role": "admin"})
    identity = AuthorizationService(store, ()).resolve("u9", "x@example.com")
    assert identity.is_admin


def test_resolve_seeds_admin_role_once(store):
    service = AuthorizationService(store, ["Chefe@Example.com"])
    identity = service.resolve("u1", "chefe@example.com", "Chefe")
    assert identity.is_admin
    assert store.get("users/u1")["role"] == "admin"


def test_resolve_keeps_existing_role_over_admin_list(store):
    store.set("users/u1", {"role": "user"})
    identity = AuthorizationService(store, ["chefe@example.com"]).resolve("u1", "chefe@example.com")
    assert not identity.is_admin


def test_resolve_requires_uid(store):
    with pytest.raises(PermissionDeniedError):
        AuthorizationService(store).resolve("")


def test_resolve_claims_seeds_admin_only_for_verified_email(store):
    service = AuthorizationService(store, ["chefe@example.com"])
    unverified = service.resolve_claims({"uid": "u7", "email": "chefe@example.com", "email_verified": False})
    assert not unverified.is_admin
    assert store.get("users/u7") is None

    verified = service.resolve_claims({"uid": "u8", "email": "chefe@example.com", "name": "Chefe", "email_verified": True})
    assert verified.is_admin and verified.name == "Chefe"


# ---------- deactivation request mail ----------
def test_validate_request_names_missing_field():
    payload = dict(REQUEST, emailGerente="  ")
    with pytest.raises(InvalidInputError) as info:
        validate_request(payload)
    assert str(info.value) == "Campo obrigatório: E-mail do gerente da agência"
    assert info.value.field == "emailGerente"


def test_render_request_email():
    email = render_request_email(validate_request(REQUEST), now=datetime(2025, 6, 15, 9, 30))
    assert email.subject == "Solicitação de baixa - Mercado Sol"
    assert "Solicitante (nome): —" in email.text
    assert "Solicitante (email/login): ana@example.com" in email.text
    assert "15/06/2025 09:30:00" in email.text
    assert "<strong>Mercado Sol</strong>" in email.html


def test_send_deactivation_request_uses_mailer():
    mailer = RecordingMailer()
    assert send_deactivation_request(mailer, REQUEST) == "msg_1"
    email, reply_to = mailer.sent[0]
    assert reply_to == "ana@example.com"
    assert "Encerramento das atividades" in email.text


def test_send_without_api_key_is_configuration_error():
    with pytest.raises(ConfigurationError):
        send_deactivation_request(RecordingMailer(api_key=None), {})


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self):
        return self._body


def test_resend_mailer_posts_to_http_api(monkeypatch):
    calls = []

    def fake_post(url, json, headers, timeout):
        calls.append((url, json, headers))
        return FakeResponse(200, {"id": "re_123"})

    monkeypatch.setattr(requests, "post", fake_post)
    mailer = ResendMailer("key", "from@test", "ops@test")
    email = render_request_email(validate_request(REQUEST))

    assert mailer.send(email, reply_to="ana@example.com") == "re_123"
    url, body, headers = calls[0]
    assert url == "https://api.resend.com/emails"
    assert body["to"] == ["ops@test"]
    assert body["reply_to"] == "ana@example.com"
    assert headers["Authorization"] == "Bearer key"


def test_resend_mailer_surfaces_provider_message(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda *a, **kw: FakeResponse(422, {"message": "Invalid `to` field"}))
    mailer = ResendMailer("key", "from@test", "ops@test")
    with pytest.raises(MailDeliveryError, match="Invalid"):
        mailer.send(render_request_email(validate_request(REQUEST)))


# ---------- bases / lojas / arquivos ----------
def test_upload_base_replaces_object(ctx, admin, bucket):
    rows = uploads.upload_base(ctx, admin, "banco", "banco.csv", banco_csv(BANCO_ROWS))
    assert rows == 4
    assert PATH_BANCO in bucket.objects


def test_upload_base_checks_role_and_extension(ctx, user, admin):
    with pytest.raises(PermissionDeniedError):
        uploads.upload_base(ctx, user, "banco", "banco.csv", banco_csv(BANCO_ROWS))
    with pytest.raises(InvalidInputError):
        uploads.upload_base(ctx, admin, "banco", "banco.xlsx", banco_csv(BANCO_ROWS))


def test_upload_roster_stamps_config(ctx, admin, store, bucket):
    data = "Chave Loja;Nome da Loja\n1001;Mercado Sol\n".encode("latin-1")
    uploads.upload_base(ctx, admin, "treinamentos", "lista.xls", data)
    assert bucket.objects[PATH_TREINAMENTOS] == data
    assert store.get(DOC_CONFIG_TREINAMENTOS)["uploadedBy"] == admin.email


def test_import_lojas_last_row_wins(ctx, admin, store):
    csv = "chave_loja,nome_loja,agencia/pacb\n1001,Sol,1234/5678\n1001,Sol Novo,1234/5679\n,Sem chave,1/2\n"
    written = lojas.import_lojas(ctx, admin, csv.encode("utf-8"))
    assert written == 1
    loja = lojas.lookup_loja(ctx, "1001")
    assert loja["nomeExpresso"] == "Sol Novo"
    assert (loja["agencia"], loja["pacb"]) == ("1234", "5679")
    assert lojas.lookup_loja(ctx, "") is None


def test_import_lojas_without_valid_rows(ctx, admin):
    with pytest.raises(InvalidInputError):
        lojas.import_lojas(ctx, admin, b"nome\nSol\n")


def test_arquivos_upload_list_delete(ctx, admin, user, bucket):
    with pytest.raises(InvalidInputError):
        arquivos.upload_document(ctx, admin, "Manual", "manual.pdf", b"not a pdf")
    with pytest.raises(PermissionDeniedError):
        arquivos.upload_document(ctx, user, "Manual", "manual.pdf", b"%PDF-1.4")

    doc_id = arquivos.upload_document(ctx, admin, "Manual do Expresso", "Manual Expresso.pdf", b"%PDF-1.4")
    docs = arquivos.list_documents(ctx)
    assert [d["titulo"] for d in docs] == ["Manual do Expresso"]
    assert docs[0]["path"].startswith("arquivos-obrigatorios/")
    assert docs[0]["path"].endswith("-Manual-Expresso.pdf")

    arquivos.delete_document(ctx, admin, doc_id)
    assert arquivos.list_documents(ctx) == []
    assert bucket.objects == {}


def test_document_links_are_issued_when_listed(ctx, admin, store, bucket):
    doc_id = arquivos.upload_document(ctx, admin, "Manual", "manual.pdf", b"%PDF-1.4")
    stored = store.get(f"arquivos_obrigatorios/{doc_id}")
    assert "url" not in stored

    first = arquivos.list_documents(ctx)[0]["url"]
    second = arquivos.list_documents(ctx)[0]["url"]
    assert bucket.signed == [stored["path"], stored["path"]]
    assert first != second


def test_roster_frame_round_trip(ctx, admin):
    data = pd.DataFrame([{"Chave Loja": "1001", "CNPJ": "12345678", "Filial": "1", "Controle": "95"}]).to_csv(
        index=False, sep=";"
    )
    uploads.upload_base(ctx, admin, "treinamentos", "lista.xls", data.encode("utf-8"))
    roster = load_dataset(ctx, "treinamentos")
    assert roster.iloc[0]["cnpj"] == "12.345.678/0001-95"
