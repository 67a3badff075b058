from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from treino.auth import Identity, require_admin, require_owner_or_admin
from treino.constants import (
    AGENDAMENTO_AGENDADO,
    AGENDAMENTO_CONCLUIDO,
    COLLECTION_AGENDAMENTOS,
    DOC_CONFIG_TREINAMENTOS,
)
from treino.errors import InvalidInputError, NotFoundError
from treino.ingest import to_text

logger = logging.getLogger(__name__)


def _path(chave_loja: str) -> str:
    key = to_text(chave_loja)
    if not key:
        raise InvalidInputError("Campo obrigatório: Chave Loja", field="chaveLoja")
    return f"{COLLECTION_AGENDAMENTOS}/{key}"


def get_assignment(ctx, chave_loja: str) -> Optional[Dict[str, Any]]:
    return ctx.store.get(_path(chave_loja))


def schedule(ctx, identity: Identity, store_row: Mapping[str, Any], when: Optional[datetime]) -> Dict[str, Any]:
    """Claim a store for training; overwrites any previous assignment of the same key."""
    if not isinstance(when, datetime):
        raise InvalidInputError("Escolha a data e hora do treinamento.", field="scheduledAt")
    chave = to_text(store_row.get("chave_loja"))
    path = _path(chave)

    payload: Dict[str, Any] = {
        "chaveLoja": chave,
        "nomeLoja": to_text(store_row.get("nome_loja")),
        "razaoSocial": to_text(store_row.get("razao_social")),
        "municipio": to_text(store_row.get("municipio")),
        "cnpj": to_text(store_row.get("cnpj")),
        "trainerUid": identity.uid,
        "trainerEmail": identity.email,
        "scheduledAt": when,
        "status": AGENDAMENTO_AGENDADO,
        "updatedAt": ctx.store.timestamp(),
    }
    config = ctx.store.get(DOC_CONFIG_TREINAMENTOS) or {}
    if config.get("uploadedAt"):
        payload["listUploadedAt"] = config["uploadedAt"]

    ctx.store.set(path, payload, merge=True)
    logger.info("training for %s scheduled by %s", chave, identity.email)
    return payload


def mark_done(ctx, identity: Identity, chave_loja: str) -> None:
    path = _path(chave_loja)
    current = ctx.store.get(path)
    if current is None:
        raise NotFoundError("Agendamento não encontrado.")
    require_owner_or_admin(identity, current.get("trainerUid"))
    ctx.store.set(path, {"status": AGENDAMENTO_CONCLUIDO, "updatedAt": ctx.store.timestamp()}, merge=True)
    logger.info("training for %s concluded by %s", chave_loja, identity.email)


def reset(ctx, identity: Identity, chave_loja: str) -> None:
    """Admin-only hard delete; the store goes back to "Sem agendamento"."""
    require_admin(identity)
    ctx.store.delete(_path(chave_loja))
    logger.info("training assignment for %s reset by %s", chave_loja, identity.email)
