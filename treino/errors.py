from __future__ import annotations

from typing import Optional


class TreinoError(Exception):
    """Base class for errors surfaced to the user."""

    status_code = 500


class ConfigurationError(TreinoError):
    status_code = 500


class InvalidInputError(TreinoError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class PermissionDeniedError(TreinoError):
    status_code = 403


class AuthenticationError(TreinoError):
    status_code = 401


class NotFoundError(TreinoError):
    status_code = 404


class WorkbookLoadError(TreinoError):
    status_code = 500

    def __init__(self, message: str = "Não foi possível carregar o arquivo."):
        super().__init__(message)


class MailDeliveryError(TreinoError):
    status_code = 500


def describe_error(exc: BaseException, prefix: str = "Erro") -> str:
    """Human-readable message built from a provider error's code and message."""
    if isinstance(exc, TreinoError):
        return str(exc)
    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
    if code:
        return f"{prefix} ({code}): {message}"
    return f"{prefix}: {message}"
