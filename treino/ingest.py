from __future__ import annotations

import io
import logging
import math
import re
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from openpyxl.utils.datetime import from_excel

from treino.errors import WorkbookLoadError


logger = logging.getLogger(__name__)

# Re-encoding artifacts of accented Portuguese characters in column headers.
MOJIBAKE_TABLE: Dict[str, str] = {
    "Ã³": "ó",
    "Ã£": "ã",
    "Ã§": "ç",
    "Ãº": "ú",
    "Ã¡": "á",
    "Ã©": "é",
    "Ã­": "í",
    "Ãª": "ê",
    "Ã´": "ô",
    "Ã¢": "â",
    "Ãµ": "õ",
}
_STRAY_A_CIRC = re.compile("\u00c2(?=[\u00a0-\u00bf])")

CSV_DELIMITERS = (";", ",", "\t", "|")
TEXT_ENCODINGS = ("utf-8-sig", "latin-1")

_DMY = re.compile(r"^(\d{2})/(\d{2})/(\d{4})")
_YMD = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")
SERIAL_MIN = 20000
SERIAL_MAX = 90000


# ---------------- Loader ----------------
def load_workbook(bucket, path: str) -> pd.DataFrame:
    """Fetch a workbook/CSV from object storage and decode its first sheet."""
    try:
        data = bucket.download(path)
    except Exception as exc:
        logger.exception("download of %s failed", path)
        raise WorkbookLoadError() from exc
    return read_workbook_bytes(data)


def read_workbook_bytes(data: bytes) -> pd.DataFrame:
    if not data:
        raise WorkbookLoadError()
    try:
        df = pd.read_excel(io.BytesIO(data), sheet_name=0, dtype=object)
    except Exception:
        logger.debug("binary workbook decode failed, trying text CSV")
        df = read_csv_text(decode_text(data))
    return _clean_frame(df)


def decode_text(data: bytes) -> str:
    for encoding in TEXT_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise WorkbookLoadError()


def sniff_delimiter(text: str) -> str:
    header = next((line for line in text.splitlines() if line.strip()), "")
    return max(CSV_DELIMITERS, key=header.count)


def read_csv_text(text: str) -> pd.DataFrame:
    if not text.strip():
        raise WorkbookLoadError()
    try:
        return pd.read_csv(
            io.StringIO(text),
            sep=sniff_delimiter(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except Exception as exc:
        raise WorkbookLoadError() from exc


def _clean_frame(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [str(c) for c in df.columns]
    df = df.astype(object).where(df.notna(), "")
    if df.empty:
        return df.reset_index(drop=True)
    filled = df.apply(lambda col: col.map(to_text) != "").any(axis=1)
    return df[filled].reset_index(drop=True)


# ---------------- Headers ----------------
def fix_mojibake(text: str) -> str:
    out = _STRAY_A_CIRC.sub("", text)
    for bad, good in MOJIBAKE_TABLE.items():
        out = out.replace(bad, good)
    return out


def _normalize_once(text: str, case: str) -> str:
    s = " ".join(fix_mojibake(text).split())
    return s.upper() if case == "upper" else s.lower()


def normalize_header(text: object, case: str = "lower") -> str:
    current = str(text)
    while True:
        nxt = _normalize_once(current, case)
        if nxt == current:
            return current
        current = nxt


def drop_duplicate_columns(df: pd.DataFrame) -> pd.DataFrame:
    return df.loc[:, ~df.columns.duplicated()]


def normalize_headers(df: pd.DataFrame, case: str = "lower") -> pd.DataFrame:
    out = df.copy()
    out.columns = [normalize_header(c, case) for c in out.columns]
    return drop_duplicate_columns(out)


def column_as_series(df: pd.DataFrame, col: str) -> pd.Series:
    if col not in df.columns:
        return pd.Series("", index=df.index, dtype=object)
    val = df[col]
    if isinstance(val, pd.DataFrame):
        return val.iloc[:, 0]
    return val


def pick_alias(df: pd.DataFrame, candidates: Sequence[str]) -> pd.Series:
    """First non-empty raw value per row across `candidates`, in priority order."""
    out = pd.Series("", index=df.index, dtype=object)
    for col in candidates:
        if col not in df.columns:
            continue
        filled = out.map(to_text) != ""
        out = out.where(filled, column_as_series(df, col))
    return out


def apply_aliases(df: pd.DataFrame, alias_table: Dict[str, Sequence[str]]) -> pd.DataFrame:
    return pd.DataFrame({field: pick_alias(df, cands) for field, cands in alias_table.items()}, index=df.index)


# ---------------- Cell coercion ----------------
def _is_missing(value: object) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def to_text(value: object) -> str:
    if _is_missing(value):
        return ""
    if isinstance(value, (bool, np.bool_)):
        return str(bool(value)).lower()
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)):
        f = float(value)
        if math.isfinite(f) and f == int(f):
            return str(int(f))
        return str(f)
    if isinstance(value, datetime):
        if value.hour or value.minute or value.second:
            return value.strftime("%Y-%m-%d %H:%M:%S")
        return value.strftime("%Y-%m-%d")
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def parse_number(value: object) -> float:
    """Lenient pt-BR number parsing: `1.234,56` -> 1234.56, junk -> 0."""
    if _is_missing(value) or isinstance(value, (bool, np.bool_)):
        return 0.0
    if isinstance(value, (int, float, np.integer, np.floating)):
        f = float(value)
        return f if math.isfinite(f) else 0.0
    text = str(value).strip().replace(" ", "")
    if not text:
        return 0.0
    text = text.replace(".", "").replace(",", ".")
    try:
        f = float(text)
    except ValueError:
        return 0.0
    return f if math.isfinite(f) else 0.0


def parse_amount(value: object) -> float:
    """Form amounts: plain decimals (`50.5`) or pt-BR text (`1.234,56`)."""
    if isinstance(value, str):
        try:
            f = float(value.strip())
        except ValueError:
            return parse_number(value)
        return f if math.isfinite(f) else 0.0
    return parse_number(value)


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _from_serial(n: float) -> Optional[date]:
    if not (SERIAL_MIN < n < SERIAL_MAX):
        return None
    return from_excel(n).date()


def parse_date_flexible(value: object) -> Optional[date]:
    """dd/mm/yyyy, yyyy-mm-dd or a spreadsheet serial; anything else is None."""
    if _is_missing(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(value, (bool, np.bool_)):
        return _from_serial(float(value))

    text = to_text(value)
    m = _DMY.match(text)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    m = _YMD.match(text)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    try:
        n = float(text)
    except ValueError:
        return None
    if not math.isfinite(n):
        return None
    return _from_serial(n)


def only_digits(value: object) -> str:
    return re.sub(r"\D", "", to_text(value))


def format_cpf(value: object) -> str:
    digits = only_digits(value)
    if not digits:
        return ""
    d = digits.zfill(11)[:11]
    return f"{d[:3]}.{d[3:6]}.{d[6:9]}-{d[9:]}"


def format_cnpj(value: object) -> str:
    digits = only_digits(value)
    if not digits:
        return ""
    d = digits.zfill(14)[:14]
    return f"{d[:2]}.{d[2:5]}.{d[5:8]}/{d[8:12]}-{d[12:]}"


def compose_cnpj(base: object, filial: object, controle: object) -> str:
    """Roster CNPJ split over three cells (8 + 4 + 2 digits)."""
    if not only_digits(base):
        return ""
    full = only_digits(base).zfill(8) + only_digits(filial).zfill(4) + only_digits(controle).zfill(2)
    return format_cnpj(full[:14])


def split_agencia_pacb(value: object) -> List[str]:
    """`"1234/56789"` -> `["1234", "56789"]`; a dash is accepted as separator."""
    raw = re.sub(r"\s+", "", to_text(value))
    if not raw:
        return ["", ""]
    for sep in ("/", "-"):
        if sep in raw:
            agencia, _, pacb = raw.partition(sep)
            return [agencia, pacb]
    return [raw, ""]


_TRUE_WORDS = {"sim", "s", "1", "true", "bloqueado", "yes"}
_FALSE_WORDS = {"nao", "não", "n", "0", "false", "desbloqueado", "no", ""}


def parse_bloqueado(value: object) -> bool:
    s = to_text(value).lower()
    if s in _TRUE_WORDS:
        return True
    if s in _FALSE_WORDS:
        return False
    return "bloq" in s or "sim" in s


def text_series(series: pd.Series) -> pd.Series:
    return series.map(to_text)


def matches_query(haystacks: Iterable[str], needle: str) -> bool:
    q = (needle or "").strip().lower()
    if not q:
        return True
    return q in " ".join(haystacks).lower()
