from __future__ import annotations

import calendar
from datetime import date
from typing import Iterable, Optional

import pandas as pd

from treino.constants import CERT_VALID_YEARS, CERT_WARN_MONTHS, PRODUCT_COUNTERS

NO_CERTIFICATION = "no_certification"
EXPIRED = "expired"
EXPIRING_SOON = "expiring_soon"
OK = "ok"

BUCKET_TREINADO = "treinado"
BUCKET_TRANSACIONAL = "transacional"
BUCKET_OUTRO = "outro"

TRX_BANDS = ("0", "1-199", "200+")


def add_months_safe(d: date, months: int) -> date:
    """Calendar month addition clamped to the last day of the target month."""
    total = d.year * 12 + (d.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def add_years_safe(d: date, years: int) -> date:
    return add_months_safe(d, years * 12)


def certification_expiry(cert_date: Optional[date], years: int = CERT_VALID_YEARS) -> Optional[date]:
    if not isinstance(cert_date, date):
        return None
    return add_years_safe(cert_date, years)


def classify_certification(
    cert_date: Optional[date],
    today: date,
    *,
    years: int = CERT_VALID_YEARS,
    warn_months: int = CERT_WARN_MONTHS,
) -> str:
    if not isinstance(cert_date, date):
        return NO_CERTIFICATION
    expiry = add_years_safe(cert_date, years)
    if today >= expiry:
        return EXPIRED
    if expiry <= add_months_safe(today, warn_months):
        return EXPIRING_SOON
    return OK


def status_bucket(text: object) -> str:
    s = str(text or "").strip().lower()
    if "transacion" in s:
        return BUCKET_TRANSACIONAL
    if "treinad" in s:
        return BUCKET_TREINADO
    return BUCKET_OUTRO


def is_exactly_treinado(text: object) -> bool:
    return str(text or "").strip().lower() == "treinado"


def trx_band(trx: float) -> str:
    if trx <= 0:
        return "0"
    if trx < 200:
        return "1-199"
    return "200+"


def counters_all_zero(df: pd.DataFrame, counters: Iterable[str] = PRODUCT_COUNTERS) -> pd.Series:
    mask = pd.Series(True, index=df.index)
    for col in counters:
        if col in df.columns:
            mask &= df[col].astype(float) == 0
    return mask


def classify_frame(df: pd.DataFrame, today: date) -> pd.DataFrame:
    """Attach `status_bucket`, `cert_expiry` and `cert_status` to a banco frame."""
    out = df.copy()
    out["status_bucket"] = out["status"].map(status_bucket)
    out["cert_expiry"] = out["dt_certificacao"].map(certification_expiry)
    out["cert_status"] = out["dt_certificacao"].map(lambda d: classify_certification(d, today))
    out["trx_band"] = out["trx"].map(trx_band)
    return out


# ---------------- Composite filters ----------------
def certification_due(df: pd.DataFrame, today: date) -> pd.DataFrame:
    """Transacting, trained stores whose certification expired or expires within the warning window."""
    if df.empty:
        return df.assign(cert_status=pd.Series(dtype=object), cert_expiry=pd.Series(dtype=object))
    classified = classify_frame(df, today)
    mask = (
        (classified["trx"] > 0)
        & (classified["status_bucket"] == BUCKET_TREINADO)
        & classified["cert_status"].isin([EXPIRED, EXPIRING_SOON])
    )
    due = classified[mask]
    expired = due[due["cert_status"] == EXPIRED].sort_values("dt_certificacao", kind="stable")
    expiring = due[due["cert_status"] == EXPIRING_SOON].sort_values("cert_expiry", kind="stable")
    return pd.concat([expired, expiring]).reset_index(drop=True)


def transacting_only(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return df
    mask = (df["trx"] > 0) & counters_all_zero(df)
    return df[mask].reset_index(drop=True)


def trained_and_zeroed(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return df
    mask = df["status"].map(is_exactly_treinado) & (df["trx"] == 0) & counters_all_zero(df)
    return df[mask].reset_index(drop=True)
