from __future__ import annotations

from dataclasses import dataclass

from flask import abort, g
from flask_login import current_user

from app.core.models import User, UserRole


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def principal_for(user: User) -> Principal:
    return Principal(user_id=user.id, role=user.role)


def load_principal_context() -> None:
    g.principal = None
    if not current_user.is_authenticated:
        return
    if not current_user.is_active:
        abort(403)
    g.principal = principal_for(current_user)


def current_principal() -> Principal:
    principal = getattr(g, "principal", None)
    if principal is None:
        abort(401)
    return principal
