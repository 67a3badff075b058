from __future__ import annotations

from typing import Dict, List, Sequence

import pandas as pd

from treino.constants import PRODUCT_COUNTERS
from treino.ingest import (
    apply_aliases,
    column_as_series,
    compose_cnpj,
    format_cnpj,
    format_cpf,
    normalize_headers,
    parse_bloqueado,
    parse_date_flexible,
    parse_number,
    split_agencia_pacb,
    text_series,
    to_text,
)
from treino.projector import format_date_ptbr


# Alias tables: logical field -> candidate headers (already normalized), in priority order.
BANCO_ALIASES: Dict[str, List[str]] = {
    "chave": ["chave_loja", "chave loja", "chave"],
    "nome": ["nome_loja", "nome loja", "nome_expresso", "nome"],
    "municipio": ["municipio", "município"],
    "ag_pacb": ["ag_pacb", "agencia/pacb", "agência/pacb", "ag/pacb"],
    "agencia": ["agencia", "agência", "cod_ag"],
    "pacb": ["pacb", "num_pacb"],
    "status": ["status_analise", "status análise", "status analise", "status"],
    "trx": ["qtd_trxcontabil", "qtd_trx_contabil", "trx"],
    "dt_certificacao": ["dt_certificacao", "dt_certificação", "data_certificacao", "data certificação"],
    "bloqueado": ["bloqueado"],
}

TREINAMENTOS_ALIASES: Dict[str, List[str]] = {
    "chave_loja": ["chave loja", "chave_loja", "chave"],
    "razao_social": ["razão social", "razao social", "razao_social"],
    "nome_loja": ["nome da loja", "nome loja", "nome_loja"],
    "cnpj": ["cnpj"],
    "filial": ["filial"],
    "controle": ["controle"],
    "cod_ag": ["cód. ag. relacionamento", "cod. ag. relacionamento", "cod_ag", "agência", "agencia"],
    "nome_ag": ["nome ag.", "nome ag", "nome_ag"],
    "num_pacb": ["num. pacb", "num pacb", "pacb"],
    "municipio": ["municipio", "município"],
    "ddd": ["ddd"],
    "telefone": ["telefone"],
    "status_tablet": ["status do tablet", "status tablet"],
    "contato": ["contato"],
    "email_contato": ["email do contato", "email contato", "e-mail do contato", "e-mail contato"],
}

MICROSSEGURO_ALIASES: Dict[str, List[str]] = {
    "chave_loja": ["chave_loja", "chave loja", "chaveloja", "chave"],
    "expresso": ["correspondente", "expresso", "nome", "nome_loja", "nome da loja"],
    "agencia": ["cod_ag", "cod ag", "ag", "agencia", "agência"],
    "supervisao": ["supervisao", "supervisão", "sup", "supervisor"],
    "liberado_em": ["válido des", "valido des", "valido_des", "válido_des", "liberado em", "liberado_em", "validade"],
}
MICROSSEGURO_VENDAS = ["vendas 2026", "vendas2026", "vendas", "venda 2026", "vendas_2026"]

CERTIFICADOS_ALIASES: Dict[str, List[str]] = {
    "cnpj": ["CNPJ"],
    "chave_loja": ["CHAVE_LOJA", "CHAVE LOJA", "CHAVE"],
    "correspondente": ["CORRESPONDENTE"],
    "cpf": ["CPF CANDIDATO", "CPF_CANDIDATO", "CPF"],
    "nome": ["NOME CANDIDATO", "NOME_CANDIDATO", "CANDIDATO"],
    "status_prova": ["STATUS PROVA", "STATUS_PROVA", "STATUS"],
    "data_realizacao": ["DATA REALIZAÇÃO", "DATA_REALIZAÇÃO", "DATA REALIZACAO", "DATA_REALIZACAO", "DATA"],
}

LOJAS_ALIASES: Dict[str, List[str]] = {
    "chave_loja": ["chave_loja", "chave loja", "chave"],
    "nome_expresso": ["nome_loja", "nome_expresso", "nome loja", "nome"],
    "ag_pacb": ["ag_pacb", "agencia/pacb", "agência/pacb"],
}

BANCO_COLUMNS = ["chave", "nome", "municipio", "agencia", "pacb", "status", "trx", "dt_certificacao", "bloqueado"]


def _texts(fields: pd.DataFrame, cols: Sequence[str]) -> pd.DataFrame:
    return pd.DataFrame({c: text_series(fields[c]) for c in cols}, index=fields.index)


def _drop_blank(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return df.reset_index(drop=True)
    return df[(df.astype(str) != "").any(axis=1)].reset_index(drop=True)


def _pt_br_date_text(value: object) -> str:
    d = parse_date_flexible(value)
    return format_date_ptbr(d) if d is not None else to_text(value)


def map_banco(raw: pd.DataFrame) -> pd.DataFrame:
    """Banco base (one row per Expresso) with typed counters, TRX and certification date."""
    df = normalize_headers(raw, "lower")
    fields = apply_aliases(df, BANCO_ALIASES)
    out = _texts(fields, ["chave", "nome", "municipio", "status"])

    split = [split_agencia_pacb(v) for v in fields["ag_pacb"]]
    out["agencia"] = [a or to_text(f) for (a, _), f in zip(split, fields["agencia"])]
    out["pacb"] = [p or to_text(f) for (_, p), f in zip(split, fields["pacb"])]
    out["trx"] = fields["trx"].map(parse_number).astype(float)
    out["dt_certificacao"] = fields["dt_certificacao"].map(parse_date_flexible).astype(object)
    out["bloqueado"] = fields["bloqueado"].map(parse_bloqueado).astype(bool)
    for counter in PRODUCT_COUNTERS:
        out[counter] = column_as_series(df, counter).map(parse_number).astype(float)

    out = out[(out["chave"] != "") | (out["nome"] != "")]
    return out.drop_duplicates().reset_index(drop=True)[BANCO_COLUMNS + PRODUCT_COUNTERS]


def map_treinamentos(raw: pd.DataFrame) -> pd.DataFrame:
    df = normalize_headers(raw, "lower")
    fields = apply_aliases(df, TREINAMENTOS_ALIASES)
    cols = [c for c in TREINAMENTOS_ALIASES if c not in {"cnpj", "filial", "controle"}]
    out = _texts(fields, cols)
    out["cnpj"] = [compose_cnpj(b, f, c) for b, f, c in zip(fields["cnpj"], fields["filial"], fields["controle"])]
    out = out[out["chave_loja"] != ""]
    return out.reset_index(drop=True)


def _first_non_zero(df: pd.DataFrame, candidates: Sequence[str]) -> pd.Series:
    out = pd.Series(0.0, index=df.index)
    for col in candidates:
        if col not in df.columns:
            continue
        values = column_as_series(df, col).map(parse_number)
        out = out.where(out != 0, values)
    return out.astype(float)


def map_microsseguro(raw: pd.DataFrame) -> pd.DataFrame:
    df = normalize_headers(raw, "lower")
    fields = apply_aliases(df, MICROSSEGURO_ALIASES)
    out = _texts(fields, ["chave_loja", "expresso", "agencia", "supervisao"])
    out["vendas_2026"] = _first_non_zero(df, MICROSSEGURO_VENDAS)
    out["liberado_em"] = fields["liberado_em"].map(_pt_br_date_text)
    text_cols = ["chave_loja", "expresso", "agencia", "supervisao"]
    keep = (out[text_cols] != "").any(axis=1) | (out["vendas_2026"] != 0)
    return out[keep].reset_index(drop=True)


def map_certificados(raw: pd.DataFrame) -> pd.DataFrame:
    df = normalize_headers(raw, "upper")
    fields = apply_aliases(df, CERTIFICADOS_ALIASES)
    out = _texts(fields, ["chave_loja", "correspondente", "nome", "status_prova"])
    out["cnpj"] = fields["cnpj"].map(format_cnpj)
    out["cpf"] = fields["cpf"].map(format_cpf)
    out["data_realizacao"] = fields["data_realizacao"].map(_pt_br_date_text)
    out = _drop_blank(out)
    return out[["cnpj", "chave_loja", "correspondente", "cpf", "nome", "status_prova", "data_realizacao"]]


def map_lojas(raw: pd.DataFrame) -> pd.DataFrame:
    """Admin import of the lojas base used for autofill; last row wins per key."""
    df = normalize_headers(raw, "lower")
    fields = apply_aliases(df, LOJAS_ALIASES)
    out = _texts(fields, ["chave_loja", "nome_expresso"])
    split = [split_agencia_pacb(v) for v in fields["ag_pacb"]]
    out["agencia"] = [a for a, _ in split]
    out["pacb"] = [p for _, p in split]
    out = out[out["chave_loja"] != ""]
    return out.drop_duplicates(subset=["chave_loja"], keep="last").reset_index(drop=True)
