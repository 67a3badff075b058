from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Tuple

import requests

from treino.config import Settings
from treino.constants import EMPTY
from treino.errors import ConfigurationError, InvalidInputError, MailDeliveryError

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"

REQUIRED_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("assuntoTipo", "Assunto"),
    ("nomeExpresso", "Nome do Expresso"),
    ("chave", "Chave"),
    ("agencia", "Agência"),
    ("pacb", "PACB"),
    ("motivo", "Motivo do pedido de baixa"),
    ("emailGerente", "E-mail do gerente da agência"),
)


@dataclass(frozen=True)
class DeactivationRequest:
    assunto_tipo: str
    nome_expresso: str
    chave: str
    agencia: str
    pacb: str
    motivo: str
    email_gerente: str
    solicitante_email: str = ""
    solicitante_nome: str = ""


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


def _clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


def validate_request(payload: Mapping[str, Any]) -> DeactivationRequest:
    """Every field except the solicitante ones is a required non-blank string."""
    for key, label in REQUIRED_FIELDS:
        if not _clean(payload.get(key)):
            raise InvalidInputError(f"Campo obrigatório: {label}", field=key)
    return DeactivationRequest(
        assunto_tipo=_clean(payload.get("assuntoTipo")),
        nome_expresso=_clean(payload.get("nomeExpresso")),
        chave=_clean(payload.get("chave")),
        agencia=_clean(payload.get("agencia")),
        pacb=_clean(payload.get("pacb")),
        motivo=_clean(payload.get("motivo")),
        email_gerente=_clean(payload.get("emailGerente")),
        solicitante_email=_clean(payload.get("solicitanteEmail")),
        solicitante_nome=_clean(payload.get("solicitanteNome")),
    )


def _rows(req: DeactivationRequest, now: datetime):
    return [
        ("Assunto", req.assunto_tipo),
        ("Nome do Expresso", req.nome_expresso),
        ("Chave", req.chave),
        ("Agência", req.agencia),
        ("PACB", req.pacb),
        ("Motivo do pedido de baixa", req.motivo),
        ("E-mail do gerente da agência", req.email_gerente),
        ("Solicitante (nome)", req.solicitante_nome or EMPTY),
        ("Solicitante (email/login)", req.solicitante_email or EMPTY),
        ("Data/Hora", now.strftime("%d/%m/%Y %H:%M:%S")),
    ]


def render_request_email(req: DeactivationRequest, now: Optional[datetime] = None) -> RenderedEmail:
    now = now or datetime.now()
    title = f"Solicitação de {req.assunto_tipo.lower()}"
    rows = _rows(req, now)
    text = title + "\n\n" + "\n".join(f"{label}: {value}" for label, value in rows) + "\n"
    cells = "".join(
        f"<tr><td style=\"padding:4px 12px 4px 0;color:#6b7280\">{html.escape(label)}</td>"
        f"<td style=\"padding:4px 0\"><strong>{html.escape(value)}</strong></td></tr>"
        for label, value in rows
    )
    body = f"<h2 style=\"font-family:sans-serif\">{html.escape(title)}</h2><table style=\"font-family:sans-serif\">{cells}</table>"
    return RenderedEmail(subject=f"{title} - {req.nome_expresso}", text=text, html=body)


class ResendMailer:
    """Transactional e-mail over the Resend HTTP API."""

    def __init__(self, api_key: Optional[str], from_email: str, mail_to: str, timeout: float = 15.0):
        self.api_key = api_key
        self.from_email = from_email
        self.mail_to = mail_to
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResendMailer":
        return cls(settings.resend_api_key, settings.from_email, settings.mail_to)

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise ConfigurationError("RESEND_API_KEY não configurada nas variáveis de ambiente.")

    def send(self, email: RenderedEmail, reply_to: Optional[str] = None) -> Optional[str]:
        self.ensure_configured()
        payload: Dict[str, Any] = {
            "from": self.from_email,
            "to": [self.mail_to],
            "subject": email.subject,
            "text": email.text,
            "html": email.html,
        }
        if reply_to:
            payload["reply_to"] = reply_to
        try:
            resp = requests.post(
                RESEND_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise MailDeliveryError(f"Falha ao enviar e-mail (Resend): {exc}") from exc
        if resp.status_code >= 400:
            try:
                message = resp.json().get("message")
            except ValueError:
                message = None
            logger.error("resend rejected the message: %s %s", resp.status_code, resp.text[:300])
            raise MailDeliveryError(message or "Falha ao enviar e-mail (Resend).")
        return resp.json().get("id")


def send_deactivation_request(mailer, payload: Mapping[str, Any], now: Optional[datetime] = None) -> Optional[str]:
    """Validate, render and send a request; returns the provider message id."""
    mailer.ensure_configured()
    req = validate_request(payload)
    email = render_request_email(req, now)
    message_id = mailer.send(email, reply_to=req.solicitante_email or None)
    logger.info("deactivation request sent for %s (%s)", req.chave, message_id)
    return message_id
