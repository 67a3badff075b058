from __future__ import annotations

from datetime import datetime, timezone

import pandas as pd

from treino.constants import PATH_BANCO
from treino.context import prepare_context
from treino.filters import (
    normalize_agenda_filters,
    normalize_base_filters,
    normalize_expresso_filters,
    normalize_treinamento_filters,
)
from treino.metrics_bases import compute_microsseguro, compute_pessoa_certificada
from treino.metrics_expressos import (
    compute_certificacao_vencida,
    compute_geral,
    compute_transacionando,
    compute_treinados_zerados,
)
from treino.metrics_treinamentos import compute_agenda, compute_treinamentos

from conftest import TODAY, banco_csv


def test_normalize_expresso_filters_falls_back_to_defaults():
    f = normalize_expresso_filters({"status": "Desconhecido", "cert": "VENCIDA", "q": "  sol "})
    assert f.status == "todos"
    assert f.cert == "vencida"
    assert f.q == "sol"
    assert normalize_expresso_filters(None).trx == "todos"


def test_geral_summary_and_charts(seeded):
    data = prepare_context(seeded, "banco", assignments=True)
    result = compute_geral(normalize_expresso_filters({}), data, today=TODAY)
    assert result["summary"] == {
        "total": 4,
        "transacionando": 1,
        "treinados": 3,
        "sem_certificacao": 1,
        "certificacao_vencida": 1,
        "bloqueados": 1,
    }
    assert set(result["charts"]) == {"certificacao", "trx"}
    assert result["options"]["municipios"] == ["Itu", "Salto", "Sorocaba"]


def test_geral_filters_combine(seeded):
    data = prepare_context(seeded, "banco")
    f = normalize_expresso_filters({"municipio": "itu", "cert": "vencida"})
    result = compute_geral(f, data, today=TODAY)
    assert [r["chave"] for r in result["rows"]] == ["1001"]
    assert result["rows"][0]["cert_label"] == "Vencida"
    assert result["rows"][0]["dt_certificacao_fmt"] == "01/01/2020"

    f = normalize_expresso_filters({"trx": "200+"})
    assert [r["chave"] for r in compute_geral(f, data, today=TODAY)["rows"]] == ["1003"]

    f = normalize_expresso_filters({"q": "farmacia"})
    assert [r["chave"] for r in compute_geral(f, data, today=TODAY)["rows"]] == ["1002"]


def test_geral_joins_assignments(seeded, store):
    store.set("treinamentos_agendamentos/1001", {"status": "agendado", "trainerEmail": "ana@example.com"})
    data = prepare_context(seeded, "banco", assignments=True)
    rows = {r["chave"]: r for r in compute_geral(normalize_expresso_filters({}), data, today=TODAY)["rows"]}
    assert rows["1001"]["agendamento_trainer"] == "ana@example.com"
    assert rows["1002"]["agendamento_status"] == ""


def test_transacionando_sorted_by_trx(seeded):
    data = prepare_context(seeded, "banco")
    result = compute_transacionando(normalize_expresso_filters({}), data, today=TODAY)
    assert [r["chave"] for r in result["rows"]] == ["1003", "1001"]
    assert result["summary"]["trx_total"] == 1265.0


def test_treinados_zerados(seeded):
    data = prepare_context(seeded, "banco")
    result = compute_treinados_zerados(normalize_expresso_filters({}), data, today=TODAY)
    assert [r["chave"] for r in result["rows"]] == ["1002"]


def test_certificacao_vencida_splits_lists_with_messages(seeded):
    data = prepare_context(seeded, "banco")
    result = compute_certificacao_vencida(normalize_expresso_filters({}), data, today=TODAY)
    assert [r["chave"] for r in result["vencidos"]] == ["1001"]
    assert [r["chave"] for r in result["proximos"]] == ["1004"]
    assert result["vencidos"][0]["message"].startswith("🚨")
    assert result["proximos"][0]["message"].startswith("⏰")


def test_trained_zeroed_row_shows_only_on_its_page(ctx, bucket):
    row = {
        "CHAVE_LOJA": "2001",
        "NOME_LOJA": "Bazar Norte",
        "MUNICIPIO": "Itu",
        "AG_PACB": "1234/0001",
        "STATUS_ANALISE": "TREINADO",
        "qtd_TrxContabil": "0",
        "DT_CERTIFICACAO": "10/01/2024",
        "QTD_CONTAS": "0",
        "QTD_CESTA_SERV": "0",
        "QTD_MTOKEN": "0",
    }
    bucket.upload(PATH_BANCO, banco_csv([row]), "text/csv")
    data = prepare_context(ctx, "banco")
    f = normalize_expresso_filters({})

    assert [r["chave"] for r in compute_treinados_zerados(f, data, today=TODAY)["rows"]] == ["2001"]
    assert compute_transacionando(f, data, today=TODAY)["rows"] == []
    due = compute_certificacao_vencida(f, data, today=TODAY)
    assert due["vencidos"] == [] and due["proximos"] == []


def test_empty_base_pages():
    empty = {"banco": pd.DataFrame()}
    f = normalize_expresso_filters({})
    assert compute_geral(f, empty, today=TODAY)["rows"] == []
    assert compute_certificacao_vencida(f, empty, today=TODAY)["vencidos"] == []


def microsseguro_frame(n):
    return pd.DataFrame(
        {
            "chave_loja": [str(i) for i in range(n)],
            "expresso": [f"Loja {i}" for i in range(n)],
            "agencia": ["10" if i % 2 else "20" for i in range(n)],
            "supervisao": ["Norte"] * n,
            "liberado_em": ["01/01/2026"] * n,
            "vendas_2026": [1.5] * n,
        }
    )


def test_microsseguro_limits_rows_without_search():
    data = {"microsseguro": microsseguro_frame(350)}
    result = compute_microsseguro(normalize_base_filters({}), data)
    assert result["totals"]["total"] == 350
    assert result["totals"]["exibidos"] == 300
    assert result["totals"]["soma_vendas_fmt"] == "R$ 525,00"

    result = compute_microsseguro(normalize_base_filters({"q": "loja 34", "agencia": "10"}), data)
    assert {r["chave_loja"] for r in result["rows"]} == {"341", "343", "345", "347", "349"}


def test_pessoa_certificada_requires_query():
    df = pd.DataFrame(
        [
            {"cnpj": "", "chave_loja": "1001", "correspondente": "Sol", "cpf": "123.456.789-01", "nome": "Joana", "status_prova": "APROVADO", "data_realizacao": "01/02/2024"},
            {"cnpj": "", "chave_loja": "1002", "correspondente": "Lua", "cpf": "987.654.321-00", "nome": "Pedro", "status_prova": "REPROVADO", "data_realizacao": ""},
        ]
    )
    assert compute_pessoa_certificada(normalize_base_filters({}), {"certificados": df})["rows"] == []
    rows = compute_pessoa_certificada(normalize_base_filters({"q": "987.654"}), {"certificados": df})["rows"]
    assert [r["nome"] for r in rows] == ["Pedro"]
    assert rows[0]["tone"] == "red"


def test_treinamentos_rows_carry_assignment_state(seeded, store, user):
    store.set(
        "treinamentos_agendamentos/1001",
        {"status": "agendado", "trainerUid": "u1", "trainerEmail": "ana@example.com", "scheduledAt": datetime(2025, 7, 1, 13, tzinfo=timezone.utc)},
    )
    data = prepare_context(seeded, "treinamentos", assignments=True)
    result = compute_treinamentos(normalize_treinamento_filters({}), data, identity=user)
    assert result["summary"]["agendados"] == 1 and result["summary"]["sem"] == 1
    rows = {r["chave_loja"]: r for r in result["rows"]}
    assert rows["1001"]["is_mine"] is True
    assert rows["1001"]["scheduled_fmt"] == "01/07/2025 10:00"
    assert rows["1001"]["cnpj"] == "12.345.678/0001-95"
    assert rows["1005"]["agendamento_label"] == "Sem agendamento"

    only_free = compute_treinamentos(normalize_treinamento_filters({"status": "sem"}), data, identity=user)
    assert [r["chave_loja"] for r in only_free["rows"]] == ["1005"]


def test_agenda_visibility_and_filters(seeded, store, user, other_user, admin):
    store.set(
        "treinamentos_agendamentos/1001",
        {"chaveLoja": "1001", "status": "agendado", "trainerUid": "u1", "trainerEmail": "ana@example.com", "scheduledAt": datetime(2025, 7, 1, 13, tzinfo=timezone.utc)},
    )
    store.set(
        "treinamentos_agendamentos/2002",
        {"chaveLoja": "2002", "status": "concluido", "trainerUid": "u2", "trainerEmail": "bruno@example.com", "scheduledAt": datetime(2025, 6, 2, 13, tzinfo=timezone.utc)},
    )
    data = prepare_context(seeded, "treinamentos", assignments=True)

    mine = compute_agenda(normalize_agenda_filters({}), data, identity=user)
    assert [r["chaveLoja"] for r in mine["rows"]] == ["1001"]

    everyone = compute_agenda(normalize_agenda_filters({}), data, identity=admin)
    assert [r["chaveLoja"] for r in everyone["rows"]] == ["2002", "1001"]
    assert everyone["summary"]["fora_da_lista"] == 1
    assert "por_mes" in everyone["charts"]

    july = compute_agenda(normalize_agenda_filters({"month": "2025-07"}), data, identity=admin)
    assert [r["chaveLoja"] for r in july["rows"]] == ["1001"]

    by_employee = compute_agenda(normalize_agenda_filters({"employee": "Bruno"}), data, identity=admin)
    assert [r["chaveLoja"] for r in by_employee["rows"]] == ["2002"]

    ignored = compute_agenda(normalize_agenda_filters({"employee": "bruno"}), data, identity=other_user)
    assert [r["chaveLoja"] for r in ignored["rows"]] == ["2002"]
