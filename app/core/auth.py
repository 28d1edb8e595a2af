from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from app.core.errors import ConflictError, ValidationError
from app.core.extensions import db
from app.core.models import User, UserRole

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _payload() -> dict[str, object]:
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def _user_json(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "phone": user.phone,
        "role": user.role.value,
    }


@auth_bp.post("/register")
def register():
    payload = _payload()
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    full_name = str(payload.get("full_name") or payload.get("name") or "").strip()
    if not email or "@" not in email:
        raise ValidationError("Email tidak sah")
    if len(password) < 6:
        raise ValidationError("Kata laluan mesti sekurang-kurangnya 6 aksara")
    if not full_name:
        raise ValidationError("Nama penuh diperlukan")
    if User.query.filter_by(email=email).first():
        raise ConflictError("Email sudah didaftarkan")
    user = User(
        email=email,
        full_name=full_name,
        phone=str(payload.get("phone") or "").strip(),
        password_hash=generate_password_hash(password),
        role=UserRole.USER,
    )
    db.session.add(user)
    db.session.commit()
    login_user(user)
    logger.info("User %s registered", user.id)
    return jsonify({"user": _user_json(user)}), 201


@auth_bp.post("/login")
def login_post():
    payload = _payload()
    email = str(payload.get("email") or "").strip().lower()
    password = str(payload.get("password") or "")
    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        logger.warning("Failed login for %s", email or "-")
        return jsonify({"error": "Email atau kata laluan tidak sah", "kind": "AuthenticationError"}), 401
    if not user.is_active:
        return jsonify({"error": "Akaun tidak aktif", "kind": "AuthorizationError"}), 403
    login_user(user)
    return jsonify({"user": _user_json(user)})


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify({"user": _user_json(current_user)})


@auth_bp.post("/lang")
def set_lang():
    lang = str(_payload().get("lang") or "ms")
    if lang not in {"ms", "en"}:
        lang = "ms"
    session["lang"] = lang
    return jsonify({"lang": lang})
