from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

DEFAULT_FROM_EMAIL = "TreinoExpresso <onboarding@resend.dev>"
DEFAULT_OPERATIONS_EMAIL = "marcelo@treinexpresso.com.br"
DEFAULT_ADMIN_EMAILS = (DEFAULT_OPERATIONS_EMAIL,)

FIREBASE_ENV_KEYS = (
    "NEXT_PUBLIC_FIREBASE_API_KEY",
    "NEXT_PUBLIC_FIREBASE_AUTH_DOMAIN",
    "NEXT_PUBLIC_FIREBASE_PROJECT_ID",
    "NEXT_PUBLIC_FIREBASE_STORAGE_BUCKET",
    "NEXT_PUBLIC_FIREBASE_MESSAGING_SENDER_ID",
    "NEXT_PUBLIC_FIREBASE_APP_ID",
)


def _env(name: str) -> Optional[str]:
    value = (os.environ.get(name) or "").strip()
    return value or None


def _split_emails(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return DEFAULT_ADMIN_EMAILS
    return tuple(e.strip().lower() for e in raw.split(",") if e.strip())


@dataclass(frozen=True)
class Settings:
    resend_api_key: Optional[str] = None
    from_email: str = DEFAULT_FROM_EMAIL
    mail_to: str = DEFAULT_OPERATIONS_EMAIL
    admin_emails: Tuple[str, ...] = DEFAULT_ADMIN_EMAILS
    firebase: Dict[str, Optional[str]] = field(default_factory=dict)
    credentials_path: Optional[str] = None
    # X-User-* headers are honoured only behind a proxy that sets them and strips client copies.
    trust_proxy_headers: bool = False

    @property
    def project_id(self) -> Optional[str]:
        return self.firebase.get("NEXT_PUBLIC_FIREBASE_PROJECT_ID")

    @property
    def storage_bucket(self) -> Optional[str]:
        return self.firebase.get("NEXT_PUBLIC_FIREBASE_STORAGE_BUCKET")


def settings_from_env() -> Settings:
    return Settings(
        resend_api_key=_env("RESEND_API_KEY"),
        from_email=_env("FROM_EMAIL") or DEFAULT_FROM_EMAIL,
        mail_to=_env("MAIL_TO") or DEFAULT_OPERATIONS_EMAIL,
        admin_emails=_split_emails(_env("ADMIN_EMAILS")),
        firebase={k: _env(k) for k in FIREBASE_ENV_KEYS},
        credentials_path=_env("GOOGLE_APPLICATION_CREDENTIALS"),
        trust_proxy_headers=(_env("TRUST_PROXY_HEADERS") or "").lower() in ("1", "true", "sim", "yes"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_dotenv()
    return settings_from_env()


def env_check() -> Dict[str, bool]:
    """Deployment diagnostics: which mail variables are present (values never exposed)."""
    load_dotenv()
    return {
        "has_RESEND_API_KEY": bool(_env("RESEND_API_KEY")),
        "has_FROM_EMAIL": bool(_env("FROM_EMAIL")),
        "has_MAIL_TO": bool(_env("MAIL_TO")),
    }
