from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

import pandas as pd

from treino.auth import Identity, require_admin
from treino.constants import (
    DOC_CONFIG_TREINAMENTOS,
    PATH_BANCO,
    PATH_CERTIFICADOS,
    PATH_MICROSSEGURO,
    PATH_TREINAMENTOS,
)
from treino.datasets import map_banco, map_certificados, map_microsseguro, map_treinamentos
from treino.errors import InvalidInputError
from treino.ingest import read_workbook_bytes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BaseSpec:
    path: str
    extensions: Tuple[str, ...]
    content_type: str
    mapper: Callable[[pd.DataFrame], pd.DataFrame]


BASES: Dict[str, BaseSpec] = {
    "treinamentos": BaseSpec(PATH_TREINAMENTOS, (".xls", ".xlsx"), "application/vnd.ms-excel", map_treinamentos),
    "banco": BaseSpec(PATH_BANCO, (".csv",), "text/csv", map_banco),
    "certificados": BaseSpec(PATH_CERTIFICADOS, (".csv",), "text/csv", map_certificados),
    "microsseguro": BaseSpec(
        PATH_MICROSSEGURO,
        (".xlsx", ".xls", ".csv"),
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        map_microsseguro,
    ),
}


def upload_base(ctx, identity: Identity, base: str, filename: str, data: bytes) -> int:
    """Replace one of the fixed-path bases; returns the number of usable rows."""
    require_admin(identity)
    spec = BASES.get(base)
    if spec is None:
        raise InvalidInputError(f"Base desconhecida: {base}", field="base")
    if not filename.lower().endswith(spec.extensions):
        raise InvalidInputError("Envie um arquivo " + " ou ".join(spec.extensions) + ".", field="arquivo")

    rows = spec.mapper(read_workbook_bytes(data))
    if rows.empty:
        raise InvalidInputError("O arquivo não tem linhas válidas.", field="arquivo")

    ctx.bucket.upload(spec.path, data, spec.content_type)
    if base == "treinamentos":
        ctx.store.set(
            DOC_CONFIG_TREINAMENTOS,
            {"uploadedAt": ctx.store.timestamp(), "uploadedBy": identity.email},
            merge=True,
        )
    logger.info("base %s replaced by %s (%d rows)", base, identity.email, len(rows))
    return len(rows)
