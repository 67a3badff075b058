from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, List

from treino.auth import Identity, require_admin
from treino.constants import COLLECTION_ARQUIVOS, PREFIX_ARQUIVOS
from treino.errors import InvalidInputError, NotFoundError
from treino.ingest import to_text

logger = logging.getLogger(__name__)


def _slug(filename: str) -> str:
    stem = re.sub(r"\.pdf$", "", filename.strip(), flags=re.IGNORECASE)
    return re.sub(r"[^\w\-]+", "-", stem).strip("-") or "documento"


def upload_document(ctx, identity: Identity, titulo: str, filename: str, data: bytes) -> str:
    require_admin(identity)
    titulo = to_text(titulo)
    if not titulo:
        raise InvalidInputError("Campo obrigatório: Título", field="titulo")
    if not filename.lower().endswith(".pdf") or not data.startswith(b"%PDF"):
        raise InvalidInputError("Envie um arquivo PDF.", field="arquivo")

    path = f"{PREFIX_ARQUIVOS}/{int(time.time() * 1000)}-{_slug(filename)}.pdf"
    ctx.bucket.upload(path, data, "application/pdf")
    doc_id = ctx.store.add(
        COLLECTION_ARQUIVOS,
        {
            "titulo": titulo,
            "path": path,
            "filename": filename,
            "uploadedBy": identity.email,
            "uploadedAt": ctx.store.timestamp(),
        },
    )
    logger.info("arquivo obrigatorio %s uploaded by %s", path, identity.email)
    return doc_id


def list_documents(ctx) -> List[Dict[str, Any]]:
    docs = ctx.store.list(COLLECTION_ARQUIVOS, order_by="uploadedAt", descending=True)
    out = []
    for doc_id, data in docs:
        url = ctx.bucket.url_for(data["path"]) if data.get("path") else data.get("url", "")
        out.append({**data, "id": doc_id, "url": url})
    return out


def delete_document(ctx, identity: Identity, doc_id: str) -> None:
    require_admin(identity)
    path = f"{COLLECTION_ARQUIVOS}/{doc_id}"
    doc = ctx.store.get(path)
    if doc is None:
        raise NotFoundError("Arquivo não encontrado.")
    if doc.get("path"):
        ctx.bucket.delete(doc["path"])
    ctx.store.delete(path)
    logger.info("arquivo obrigatorio %s deleted by %s", doc.get("path"), identity.email)
