from __future__ import annotations

import pytest

from treino import prestacoes
from treino.constants import STATUS_PAGA, STATUS_PENDENTE
from treino.errors import InvalidInputError, NotFoundError, PermissionDeniedError
from treino.prestacoes import UploadFile
from treino.projector import moeda


def form(**overrides):
    base = {
        "dataViagem": "2025-06-10",
        "destino": "Itu",
        "kmInicial": "100",
        "kmFinal": "180",
        "gasolina": "50.5",
        "alimentacao": "30",
        "hospedagem": "",
        "outrasDespesas": "0",
        "outrasDespesasDescricao": "",
    }
    base.update(overrides)
    return base


def test_build_report_computes_derived_fields(user):
    report = prestacoes.build_report(user, form())
    assert report["kmRodado"] == 80
    assert report["hospedagem"] == 0.0
    assert report["totalViagem"] == 80.5
    assert report["statusPagamento"] == STATUS_PENDENTE
    assert report["pagoBy"] is None and report["pagoAt"] is None
    assert report["userId"] == "u1"
    assert report["userNome"] == "Ana"


def test_total_equals_sum_of_categories(user):
    report = prestacoes.build_report(
        user, form(gasolina="10.10", alimentacao="20.20", hospedagem="30.30", outrasDespesas="1", outrasDespesasDescricao="pedágio")
    )
    assert report["totalViagem"] == pytest.approx(
        report["gasolina"] + report["alimentacao"] + report["hospedagem"] + report["outrasDespesas"]
    )


def test_total_formats_as_plain_amount(user):
    report = prestacoes.build_report(user, form(gasolina=50, alimentacao=30, hospedagem=None, outrasDespesas=None))
    assert moeda(report["totalViagem"]) == "80.00"


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"destino": ""}, "destino"),
        ({"dataViagem": ""}, "dataViagem"),
        ({"kmInicial": "200", "kmFinal": "100"}, "kmFinal"),
        ({"gasolina": "-1"}, "gasolina"),
        ({"outrasDespesas": "5", "outrasDespesasDescricao": ""}, "outrasDespesasDescricao"),
    ],
)
def test_build_report_rejects_invalid_forms(user, overrides, field):
    with pytest.raises(InvalidInputError) as info:
        prestacoes.build_report(user, form(**overrides))
    assert info.value.field == field


def test_submit_report_uploads_receipts(ctx, user, bucket, store):
    files = [UploadFile("nota fiscal.pdf", b"%PDF-1"), UploadFile("posto.jpg", b"\xff\xd8", "image/jpeg")]
    report_id = prestacoes.submit_report(ctx, user, form(), files)

    assert store.get(f"prestacoes/{report_id}")["destino"] == "Itu"
    assert len(bucket.objects) == 2
    assert all(p.startswith(f"prestacoes/u1/{report_id}/") for p in bucket.objects)
    assert any(p.endswith("_nota_fiscal.pdf") for p in bucket.objects)
    urls = prestacoes.load_receipts(ctx, report_id)
    assert len(urls) == 2


def test_receipt_links_are_issued_when_read(ctx, user, bucket, store):
    report_id = prestacoes.submit_report(ctx, user, form(), [UploadFile("a.pdf", b"1")])
    stored = store.get(f"prestacoes/{report_id}/comprovantes/{report_id}")
    assert "urls" not in stored
    assert bucket.signed == []

    first = prestacoes.load_receipts(ctx, report_id)
    second = prestacoes.load_receipts(ctx, report_id)
    assert bucket.signed == stored["paths"] * 2
    assert first != second


def test_legacy_receipts_without_paths_keep_stored_links(ctx, user, store):
    report_id = prestacoes.submit_report(ctx, user, form())
    store.add(f"prestacoes/{report_id}/comprovantes", {"urls": ["https://old/a", "https://old/a", ""]})
    assert prestacoes.load_receipts(ctx, report_id) == ["https://old/a"]


def test_submit_report_limits_receipts(ctx, user):
    files = [UploadFile(f"{i}.pdf", b"x") for i in range(11)]
    with pytest.raises(InvalidInputError):
        prestacoes.submit_report(ctx, user, form(), files)


def test_resubmitting_same_attempt_does_not_duplicate(ctx, user):
    first = prestacoes.submit_report(ctx, user, form(), submission_id="attempt-1")
    second = prestacoes.submit_report(ctx, user, form(), submission_id="attempt-1")
    assert first == second == "attempt-1"
    assert len(prestacoes.list_reports(ctx, user)) == 1


def test_list_reports_is_scoped_to_owner(ctx, user, other_user, admin):
    prestacoes.submit_report(ctx, user, form())
    prestacoes.submit_report(ctx, other_user, form(destino="Salto"))

    mine = prestacoes.list_reports(ctx, user)
    assert [r["destino"] for r in mine] == ["Itu"]
    assert mine[0]["total"] == 80.5

    assert len(prestacoes.list_reports(ctx, admin, all_users=True)) == 2
    assert [r["destino"] for r in prestacoes.list_reports(ctx, admin, all_users=True, query="salto")] == ["Salto"]
    with pytest.raises(PermissionDeniedError):
        prestacoes.list_reports(ctx, user, all_users=True)


def test_report_total_prefers_stored_number():
    assert prestacoes.report_total({"totalViagem": 99.0, "gasolina": 1}) == 99.0
    assert prestacoes.report_total({"totalViagem": "x", "gasolina": 1, "alimentacao": "2"}) == 3.0


def test_toggle_payment_is_admin_only_and_reversible(ctx, user, admin, store):
    report_id = prestacoes.submit_report(ctx, user, form())
    with pytest.raises(PermissionDeniedError):
        prestacoes.toggle_payment(ctx, user, report_id)

    assert prestacoes.toggle_payment(ctx, admin, report_id) == STATUS_PAGA
    doc = store.get(f"prestacoes/{report_id}")
    assert doc["pagoBy"] == admin.email
    assert doc["pagoAt"] is not None

    assert prestacoes.toggle_payment(ctx, admin, report_id) == STATUS_PENDENTE
    doc = store.get(f"prestacoes/{report_id}")
    assert doc["pagoBy"] is None and doc["pagoAt"] is None


def test_repeated_toggle_with_expected_status_is_applied_once(ctx, user, admin, store):
    report_id = prestacoes.submit_report(ctx, user, form())
    assert prestacoes.toggle_payment(ctx, admin, report_id, expected=STATUS_PENDENTE) == STATUS_PAGA
    assert prestacoes.toggle_payment(ctx, admin, report_id, expected=STATUS_PENDENTE) == STATUS_PAGA
    assert store.get(f"prestacoes/{report_id}")["statusPagamento"] == STATUS_PAGA


def test_delete_report_cascades_to_receipts(ctx, user, store, bucket):
    report_id = prestacoes.submit_report(ctx, user, form(), [UploadFile("a.pdf", b"1"), UploadFile("b.pdf", b"2")])
    store.add(f"prestacoes/{report_id}/comprovantes", {"urls": ["https://storage.test/extra"], "paths": []})

    removed = prestacoes.delete_report(ctx, user, report_id)

    assert removed == 2
    assert store.batches[-1] == 2
    assert not [p for p in store.docs if p.startswith(f"prestacoes/{report_id}")]
    assert bucket.objects == {}
    assert prestacoes.load_receipts(ctx, report_id) == []


def test_delete_report_requires_owner_or_admin(ctx, user, other_user, admin):
    report_id = prestacoes.submit_report(ctx, user, form())
    with pytest.raises(PermissionDeniedError):
        prestacoes.delete_report(ctx, other_user, report_id)
    prestacoes.delete_report(ctx, admin, report_id)
    with pytest.raises(NotFoundError):
        prestacoes.delete_report(ctx, admin, report_id)


def test_report_summary_splits_paid_and_pending():
    summary = prestacoes.report_summary(
        [{"totalViagem": 10.0, "statusPagamento": STATUS_PAGA}, {"totalViagem": 5.5, "statusPagamento": STATUS_PENDENTE}]
    )
    assert summary == {"count": 2, "total": 15.5, "pendente": 5.5, "pago": 10.0}
