from __future__ import annotations

from typing import List

# Object storage (fixed, well-known paths)
PATH_TREINAMENTOS = "trainings/lista-atual.xls"
PATH_BANCO = "base-lojas/banco.csv"
PATH_CERTIFICADOS = "pessoa-certificada/certificados.csv"
PATH_MICROSSEGURO = "microsseguro/liberados-microsseguro.xlsx"
PREFIX_ARQUIVOS = "arquivos-obrigatorios"
PREFIX_PRESTACOES = "prestacoes"

# Firestore collections
COLLECTION_PRESTACOES = "prestacoes"
SUBCOLLECTION_COMPROVANTES = "comprovantes"
COLLECTION_AGENDAMENTOS = "treinamentos_agendamentos"
COLLECTION_ARQUIVOS = "arquivos_obrigatorios"
COLLECTION_LOJAS = "lojas"
COLLECTION_USERS = "users"
DOC_CONFIG_TREINAMENTOS = "config/lista_treinamentos"

STATUS_PENDENTE = "PENDENTE"
STATUS_PAGA = "PAGA"

AGENDAMENTO_AGENDADO = "agendado"
AGENDAMENTO_CONCLUIDO = "concluido"

ROLE_ADMIN = "admin"

MAX_COMPROVANTES = 10
FIRESTORE_BATCH_LIMIT = 400
MICROSSEGURO_LIMIT_NO_SEARCH = 300

CERT_VALID_YEARS = 5
CERT_WARN_MONTHS = 3

# Product-adoption counters of the banco base (lower-case headers).
PRODUCT_COUNTERS: List[str] = [
    "qtd_contas",
    "qtd_contas_com_deposito",
    "qtd_cesta_serv",
    "qtd_mobilidade",
    "qtd_mtoken",
    "qtd_cartao_emitido",
    "vlr_ches",
    "qtd_chesp_contratado",
    "qtd_lime_ab_conta",
    "qtd_lime",
    "vlr_lime",
    "qtd_consignado",
    "vlr_consignado",
    "qtd_credito_parcel_dtlhes",
    "qtd_consorcio",
    "qtd_contas_pj",
    "qtd_contas_folha",
    "qtd_microsseguro",
    "qtd_super_protegido",
    "qtd_micro_vivavida",
    "qtd_plano_odonto",
    "qtd_seg_residencial",
    "qtd_seg_cartao_deb",
    "qtd_exp_sorte",
    "vlr_exp_sorte",
]

EMPTY = "—"
