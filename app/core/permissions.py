from __future__ import annotations

import logging
from functools import wraps

from flask import abort, g, request
from flask_login import current_user

logger = logging.getLogger(__name__)


def _principal_or_abort():
    if not current_user.is_authenticated:
        abort(401)
    principal = getattr(g, "principal", None)
    if principal is None:
        abort(403)
    return principal


def require_principal(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        _principal_or_abort()
        return fn(*args, **kwargs)

    return wrapper


def require_role(*roles: str):
    allowed = {role.upper() for role in roles}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            principal = _principal_or_abort()
            if principal.role.value not in allowed:
                logger.warning(
                    "User %s (%s) refused on %s %s",
                    principal.user_id,
                    principal.role.value,
                    request.method,
                    request.path,
                )
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator
