from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from treino.constants import COLLECTION_USERS, ROLE_ADMIN
from treino.errors import PermissionDeniedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    uid: str
    email: str = ""
    name: str = ""
    is_admin: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.uid


class AuthorizationService:
    """Resolves a signed-in user into an Identity once per session.

    The `role` field of `users/{uid}` is the only thing consulted. The configured
    admin e-mails merely seed that field the first time such a user shows up
    without a role.
    """

    def __init__(self, store, admin_emails: Iterable[str] = ()):
        self.store = store
        self.admin_emails = {e.strip().lower() for e in admin_emails if e}

    def resolve(self, uid: str, email: str = "", name: str = "", email_verified: bool = True) -> Identity:
        if not uid:
            raise PermissionDeniedError("Usuário não autenticado.")
        email = (email or "").strip()
        path = f"{COLLECTION_USERS}/{uid}"
        profile = self.store.get(path) or {}
        role = profile.get("role")

        if role is None and email_verified and email.lower() in self.admin_emails:
            role = ROLE_ADMIN
            self.store.set(path, {"email": email, "role": role}, merge=True)
            logger.info("seeded admin role for %s", email)

        return Identity(
            uid=uid,
            email=email or str(profile.get("email") or ""),
            name=name or str(profile.get("nome") or profile.get("name") or ""),
            is_admin=role == ROLE_ADMIN,
        )

    def resolve_claims(self, claims: Mapping[str, Any]) -> Identity:
        """Identity from verified ID token claims; an unverified e-mail never seeds the admin role."""
        return self.resolve(
            str(claims.get("uid") or claims.get("sub") or ""),
            str(claims.get("email") or ""),
            str(claims.get("name") or ""),
            email_verified=bool(claims.get("email_verified")),
        )


def require_admin(identity: Optional[Identity]) -> Identity:
    if identity is None or not identity.is_admin:
        raise PermissionDeniedError("Apenas administradores podem executar esta ação.")
    return identity


def require_owner_or_admin(identity: Identity, owner_uid: Optional[str]) -> Identity:
    if identity.is_admin or (owner_uid and identity.uid == owner_uid):
        return identity
    raise PermissionDeniedError("Sem permissão para alterar este registro.")
