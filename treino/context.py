from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

import pandas as pd

from treino.config import Settings, get_settings
from treino.constants import (
    COLLECTION_AGENDAMENTOS,
    PATH_BANCO,
    PATH_CERTIFICADOS,
    PATH_MICROSSEGURO,
    PATH_TREINAMENTOS,
)
from treino.datasets import map_banco, map_certificados, map_microsseguro, map_treinamentos
from treino.firebase import FirestoreStore, StorageBucket, init_firebase
from treino.ingest import load_workbook
from treino.mail import ResendMailer

DATASETS: Dict[str, tuple] = {
    "banco": (PATH_BANCO, map_banco),
    "treinamentos": (PATH_TREINAMENTOS, map_treinamentos),
    "microsseguro": (PATH_MICROSSEGURO, map_microsseguro),
    "certificados": (PATH_CERTIFICADOS, map_certificados),
}


@dataclass
class AppContext:
    """Explicit handles to the vendor clients, passed to every page and workflow."""

    settings: Settings
    store: Any
    bucket: Any
    mailer: Any
    today: Optional[Callable[[], date]] = None

    def current_date(self) -> date:
        return self.today() if self.today else date.today()


def load_dataset(ctx: AppContext, name: str) -> pd.DataFrame:
    """Load and map one of the fixed-path bases; reloaded from storage on every call."""
    path, mapper = DATASETS[name]
    return mapper(load_workbook(ctx.bucket, path))


def load_assignments(ctx: AppContext) -> Dict[str, Dict[str, Any]]:
    return {doc_id: data for doc_id, data in ctx.store.list(COLLECTION_AGENDAMENTOS)}


def prepare_context(ctx: AppContext, *datasets: str, assignments: bool = False) -> Dict[str, Any]:
    """Frames (and optionally assignments) consumed by the `compute_*` page functions."""
    out: Dict[str, Any] = {name: load_dataset(ctx, name) for name in datasets}
    if assignments:
        out["assignments"] = load_assignments(ctx)
    return out


@lru_cache(maxsize=1)
def build_context() -> AppContext:
    """Composition root for the deployed app (Firestore, Cloud Storage, Resend)."""
    settings = get_settings()
    app = init_firebase(settings)
    return AppContext(
        settings=settings,
        store=FirestoreStore.from_app(app),
        bucket=StorageBucket.from_app(app),
        mailer=ResendMailer.from_settings(settings),
    )
