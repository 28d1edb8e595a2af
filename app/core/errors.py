"""Error kinds raised by the burial services.

All of them derive from ``ValueError`` so route code that only cares about
"the request was refused" can keep catching ``ValueError``.
"""
from __future__ import annotations


class BurialError(ValueError):
    status_code = 400

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.kind


class ValidationError(BurialError):
    status_code = 400


class NotFoundError(BurialError):
    status_code = 404


class ConflictError(BurialError):
    status_code = 409


class InsufficientStockError(BurialError):
    status_code = 409


class NegativeStockError(BurialError):
    status_code = 400


class DuplicateReservationError(BurialError):
    status_code = 409


class InvalidStateError(BurialError):
    status_code = 409


class AuthenticationError(BurialError):
    status_code = 401


class AuthorizationError(BurialError):
    status_code = 403
