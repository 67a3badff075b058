from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from treino.auth import Identity, require_admin
from treino.constants import COLLECTION_LOJAS
from treino.datasets import map_lojas
from treino.errors import InvalidInputError
from treino.ingest import decode_text, read_csv_text, to_text

logger = logging.getLogger(__name__)


def import_lojas(ctx, identity: Identity, data: bytes) -> int:
    """Merge the admin CSV into `lojas/<chave>`, batched by the store's write limit."""
    require_admin(identity)
    rows = map_lojas(read_csv_text(decode_text(data)))
    if rows.empty:
        raise InvalidInputError("Nenhuma linha válida encontrada (verifique a coluna chave_loja).", field="arquivo")

    stamp = ctx.store.timestamp()
    items = [
        (
            f"{COLLECTION_LOJAS}/{row.chave_loja}",
            {
                "chaveLoja": row.chave_loja,
                "nomeExpresso": row.nome_expresso,
                "agencia": row.agencia,
                "pacb": row.pacb,
                "updatedAt": stamp,
                "updatedBy": identity.email,
            },
        )
        for row in rows.itertuples(index=False)
    ]
    written = ctx.store.set_many(items, merge=True)
    logger.info("imported %d lojas (by %s)", written, identity.email)
    return written


def lookup_loja(ctx, chave: str) -> Optional[Dict[str, Any]]:
    key = to_text(chave)
    if not key:
        return None
    return ctx.store.get(f"{COLLECTION_LOJAS}/{key}")
